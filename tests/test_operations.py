"""Engine operation tests: limits, precondition checks and logging."""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Generator

import pytest

from jobtree.config import settings
from jobtree.db.connection import get_connection
from jobtree.db.jobs import JobRepository
from jobtree.db.migrations import init_db
from jobtree.db.models import Graph, Job, NewJob
from jobtree.domain import operations as ops
from jobtree.errors import InvalidHierarchy, LimitExceeded, NotFound


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def graph(conn: sqlite3.Connection) -> Graph:
    return ops.create_graph(conn, "Freelance designers", "find new clients", language="en")


def _payloads(n: int, start: int = 0) -> list[dict[str, Any]]:
    return [
        {"formulation": f"I want to do step {i}", "label": f"Do step {i}"}
        for i in range(start, start + n)
    ]


# ---------------------------------------------------------------------------
# create_graph
# ---------------------------------------------------------------------------

class TestCreateGraph:
    def test_normalises_root_jobs(self, conn: sqlite3.Connection) -> None:
        graph = ops.create_graph(
            conn, "Designers", "I need to find new clients", big_job="grow my studio", language="en"
        )
        repo = JobRepository(conn)
        core = repo.find_by_id(graph.core_job_id)
        big = repo.find_by_id(graph.big_job_id)  # type: ignore[arg-type]
        assert (core.formulation, core.label) == ("I want to find new clients", "Find new clients")  # type: ignore[union-attr]
        assert (big.formulation, big.label) == ("I want to grow my studio", "Grow my studio")  # type: ignore[union-attr]
        assert graph.input.core_job == "I need to find new clients"

    def test_default_language(self, conn: sqlite3.Connection, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(settings, "default_language", "ru")
        graph = ops.create_graph(conn, "Дизайнеры", "найти клиентов")
        assert graph.language == "ru"
        core = JobRepository(conn).find_by_id(graph.core_job_id)
        assert core.formulation == "Я хочу найти клиентов"  # type: ignore[union-attr]

    def test_unknown_language(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            ops.create_graph(conn, "Designers", "find clients", language="de")

    def test_empty_segment_rejected(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(ValueError):
            ops.create_graph(conn, "", "find clients", language="en")
        assert ops.list_graphs(conn) == []


class TestUpdateGraph:
    def test_switch_language(self, conn: sqlite3.Connection, graph: Graph) -> None:
        updated = ops.update_graph(conn, graph.id, language="ru")
        assert updated.language == "ru"
        assert ops.get_graph(conn, graph.id).language == "ru"  # type: ignore[union-attr]

    def test_unknown_language(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(ValueError):
            ops.update_graph(conn, graph.id, language="de")
        assert ops.get_graph(conn, graph.id).language == "en"  # type: ignore[union-attr]

    def test_nothing_to_update(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(ValueError):
            ops.update_graph(conn, graph.id)

    def test_missing_graph(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.update_graph(conn, "no-such-graph", warnings=[])

    def test_warnings(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.add_graph_warning(conn, graph.id, "segment too broad")
        updated = ops.add_graph_warning(conn, graph.id, "  check wording ")
        assert updated.warnings == ["segment too broad", "check wording"]
        assert ops.update_graph(conn, graph.id, warnings=["only this"]).warnings == ["only this"]
        assert ops.clear_graph_warnings(conn, graph.id).warnings == []

    def test_blank_warning_rejected(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(ValueError):
            ops.add_graph_warning(conn, graph.id, "   ")

    def test_warnings_on_missing_graph(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.add_graph_warning(conn, "no-such-graph", "x")
        with pytest.raises(NotFound):
            ops.clear_graph_warnings(conn, "no-such-graph")


# ---------------------------------------------------------------------------
# limits
# ---------------------------------------------------------------------------

class TestLimits:
    def test_twelve_small_jobs_fit(self, conn: sqlite3.Connection, graph: Graph) -> None:
        created = ops.add_small_jobs(conn, graph.id, _payloads(12))
        assert len(created) == 12

    def test_thirteenth_small_job_rejected(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.add_small_jobs(conn, graph.id, _payloads(12))
        with pytest.raises(LimitExceeded) as excinfo:
            ops.add_small_jobs(conn, graph.id, _payloads(1, start=12))
        assert excinfo.value.maximum == 12
        assert excinfo.value.parent_id == graph.core_job_id
        assert JobRepository(conn).count_by_level(graph.id, "small") == 12

    def test_oversized_batch_rejected_whole(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.add_small_jobs(conn, graph.id, _payloads(10))
        with pytest.raises(LimitExceeded):
            ops.add_small_jobs(conn, graph.id, _payloads(3, start=10))
        assert JobRepository(conn).count_by_level(graph.id, "small") == 10

    def test_insert_after_respects_limit(self, conn: sqlite3.Connection, graph: Graph) -> None:
        created = ops.add_small_jobs(conn, graph.id, _payloads(12))
        with pytest.raises(LimitExceeded):
            ops.insert_job_after(conn, created[5].id, {"formulation": "I want to x", "label": "X"})
        assert [j.sort_order for j in JobRepository(conn).children_of(graph.core_job_id)] == list(range(12))

    def test_micro_limit(self, conn: sqlite3.Connection, graph: Graph) -> None:
        [small] = ops.add_small_jobs(conn, graph.id, _payloads(1))
        micros = ops.add_micro_jobs(conn, small.id, _payloads(6))
        with pytest.raises(LimitExceeded):
            ops.insert_job_after(conn, micros[0].id, {"formulation": "I want to x", "label": "X"})
        with pytest.raises(LimitExceeded):
            ops.add_micro_jobs(conn, small.id, _payloads(1))
        assert JobRepository(conn).count_children(small.id) == 6

    def test_limit_follows_settings(
        self, conn: sqlite3.Connection, graph: Graph, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setattr(settings, "small_jobs_max", 2)
        with pytest.raises(LimitExceeded):
            ops.add_small_jobs(conn, graph.id, _payloads(3))

    def test_rejection_is_logged(
        self, conn: sqlite3.Connection, graph: Graph, caplog: pytest.LogCaptureFixture
    ) -> None:
        ops.add_small_jobs(conn, graph.id, _payloads(12))
        with caplog.at_level(logging.WARNING, logger="jobtree.domain.operations"):
            with pytest.raises(LimitExceeded):
                ops.add_small_jobs(conn, graph.id, _payloads(1))
        assert any("add_small_jobs rejected" in r.getMessage() for r in caplog.records)


# ---------------------------------------------------------------------------
# placement checks
# ---------------------------------------------------------------------------

class TestPlacement:
    def test_add_small_to_missing_graph(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.add_small_jobs(conn, "no-such-graph", _payloads(1))

    def test_add_micro_under_core_rejected(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(InvalidHierarchy):
            ops.add_micro_jobs(conn, graph.core_job_id, _payloads(1))

    def test_add_micro_under_missing_job(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.add_micro_jobs(conn, "no-such-job", _payloads(1))

    def test_payload_with_wrong_parent_rejected(self, conn: sqlite3.Connection, graph: Graph) -> None:
        [small] = ops.add_small_jobs(conn, graph.id, _payloads(1))
        draft = NewJob(level="small", parent_id=small.id, formulation="I want to x", label="X")
        with pytest.raises(InvalidHierarchy):
            ops.add_small_jobs(conn, graph.id, [draft])

    def test_accepts_new_job_payloads(self, conn: sqlite3.Connection, graph: Graph) -> None:
        draft = NewJob(
            level="small", parent_id=graph.core_job_id, formulation="I want to x", label="X"
        )
        [job] = ops.add_small_jobs(conn, graph.id, [draft])
        assert job.parent_id == graph.core_job_id

    def test_touches_graph(self, conn: sqlite3.Connection, graph: Graph) -> None:
        conn.execute("UPDATE graphs SET updated_at = 0 WHERE id = ?", (graph.id,))
        ops.add_small_jobs(conn, graph.id, _payloads(1))
        assert ops.get_graph(conn, graph.id).updated_at > 0  # type: ignore[union-attr]


# ---------------------------------------------------------------------------
# reorder / delete
# ---------------------------------------------------------------------------

class TestReorderJobs:
    def test_reorders(self, conn: sqlite3.Connection, graph: Graph) -> None:
        created = ops.add_small_jobs(conn, graph.id, _payloads(3))
        ids = [created[2].id, created[0].id, created[1].id]
        result = ops.reorder_jobs(conn, graph.id, graph.core_job_id, ids)
        assert [j.id for j in result] == ids

    def test_parent_from_other_graph(self, conn: sqlite3.Connection, graph: Graph) -> None:
        other = ops.create_graph(conn, "Bakers", "sell bread", language="en")
        created = ops.add_small_jobs(conn, graph.id, _payloads(2))
        with pytest.raises(InvalidHierarchy):
            ops.reorder_jobs(conn, other.id, graph.core_job_id, [j.id for j in created])

    def test_jobs_from_other_scope(self, conn: sqlite3.Connection, graph: Graph) -> None:
        [small] = ops.add_small_jobs(conn, graph.id, _payloads(1))
        micros = ops.add_micro_jobs(conn, small.id, _payloads(2))
        with pytest.raises(InvalidHierarchy):
            ops.reorder_jobs(conn, graph.id, graph.core_job_id, [m.id for m in micros])

    def test_missing_graph(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.reorder_jobs(conn, "no-such-graph", None, ["x"])

    def test_missing_parent(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(NotFound):
            ops.reorder_jobs(conn, graph.id, "no-such-job", ["x"])


class TestDeleteJob:
    def test_deletes_small_job(self, conn: sqlite3.Connection, graph: Graph) -> None:
        created = ops.add_small_jobs(conn, graph.id, _payloads(3))
        assert ops.delete_job(conn, created[0].id) is True
        remaining = ops.list_children(conn, graph.core_job_id)
        assert [(j.id, j.sort_order) for j in remaining] == [(created[1].id, 0), (created[2].id, 1)]

    def test_core_job_cannot_be_deleted(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(InvalidHierarchy):
            ops.delete_job(conn, graph.core_job_id)
        assert ops.get_job(conn, graph.core_job_id) is not None

    def test_missing(self, conn: sqlite3.Connection) -> None:
        assert ops.delete_job(conn, "no-such-job") is False

    def test_delete_graph(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.add_small_jobs(conn, graph.id, _payloads(2))
        assert ops.delete_graph(conn, graph.id) is True
        assert ops.get_job(conn, graph.core_job_id) is None
        assert ops.delete_graph(conn, graph.id) is False


# ---------------------------------------------------------------------------
# solutions / edges
# ---------------------------------------------------------------------------

class TestSolutionsAndEdges:
    def _two(self, conn: sqlite3.Connection, graph: Graph) -> list[Job]:
        return ops.add_small_jobs(conn, graph.id, _payloads(2))

    def test_solutions(self, conn: sqlite3.Connection, graph: Graph) -> None:
        a, _ = self._two(conn, graph)
        solution = ops.add_solution(conn, a.id, "Upwork", "service", "Marketplace")
        assert [s.id for s in ops.list_solutions(conn, a.id)] == [solution.id]
        assert ops.delete_solution(conn, solution.id) is True
        assert ops.list_solutions(conn, a.id) == []

    def test_list_solutions_missing_job(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.list_solutions(conn, "no-such-job")

    def test_edges(self, conn: sqlite3.Connection, graph: Graph) -> None:
        a, b = self._two(conn, graph)
        edge = ops.connect_jobs(conn, a.id, b.id, "depends_on", "needs it")
        assert [e.id for e in ops.list_edges(conn, graph.id)] == [edge.id]
        assert ops.disconnect(conn, edge.id) is True
        assert ops.list_edges(conn, graph.id) == []

    def test_list_children_missing(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            ops.list_children(conn, "no-such-job")
