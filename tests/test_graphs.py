"""Graph, solution and edge repository tests."""

from __future__ import annotations

import sqlite3
from typing import Generator

import pytest
from pydantic import ValidationError

from jobtree.db.connection import get_connection
from jobtree.db.edges import EdgeRepository
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobRepository
from jobtree.db.migrations import init_db
from jobtree.db.models import Graph, Job
from jobtree.db.solutions import SolutionRepository
from jobtree.domain import operations as ops
from jobtree.errors import InvalidHierarchy, NotFound


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def graph(conn: sqlite3.Connection) -> Graph:
    return ops.create_graph(conn, "Freelance designers", "find new clients", language="en")


@pytest.fixture()
def smalls(conn: sqlite3.Connection, graph: Graph) -> list[Job]:
    return ops.add_small_jobs(
        conn,
        graph.id,
        [
            {"formulation": "I want to build a portfolio", "label": "Build a portfolio"},
            {"formulation": "I want to reach out to leads", "label": "Reach out to leads"},
            {"formulation": "I want to send a proposal", "label": "Send a proposal"},
        ],
    )


# ---------------------------------------------------------------------------
# graphs
# ---------------------------------------------------------------------------

class TestGraphRepository:
    def test_input_kept_verbatim(self, graph: Graph) -> None:
        assert graph.input.segment == "Freelance designers"
        assert graph.input.core_job == "find new clients"
        assert graph.language == "en"

    def test_find_recent_newest_first(self, conn: sqlite3.Connection, graph: Graph) -> None:
        other = ops.create_graph(conn, "Bakers", "sell more bread", language="en")
        conn.execute("UPDATE graphs SET updated_at = updated_at + 10 WHERE id = ?", (other.id,))
        assert [g.id for g in GraphRepository(conn).find_recent()] == [other.id, graph.id]

    def test_find_by_segment(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.create_graph(conn, "Bakers", "sell more bread", language="en")
        found = GraphRepository(conn).find_by_segment("designer")
        assert [g.id for g in found] == [graph.id]

    def test_warnings(self, conn: sqlite3.Connection, graph: Graph) -> None:
        repo = GraphRepository(conn)
        repo.add_warning(graph.id, "first")
        updated = repo.add_warning(graph.id, "second")
        assert updated is not None and updated.warnings == ["first", "second"]
        assert repo.clear_warnings(graph.id).warnings == []  # type: ignore[union-attr]
        assert repo.add_warning("nope", "x") is None

    def test_touch_refreshes_updated_at(self, conn: sqlite3.Connection, graph: Graph) -> None:
        conn.execute("UPDATE graphs SET updated_at = 0 WHERE id = ?", (graph.id,))
        GraphRepository(conn).touch(graph.id)
        assert GraphRepository(conn).find_by_id(graph.id).updated_at > 0  # type: ignore[union-attr]

    def test_delete_cascades(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        SolutionRepository(conn).add(smalls[0].id, "Behance", "product")
        EdgeRepository(conn).connect(smalls[0].id, smalls[1].id)
        assert GraphRepository(conn).delete(graph.id) is True
        for table in ("jobs", "solutions", "edges"):
            assert conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] == 0


# ---------------------------------------------------------------------------
# solutions
# ---------------------------------------------------------------------------

class TestSolutionRepository:
    def test_add_and_list(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        repo = SolutionRepository(conn)
        repo.add(smalls[0].id, "Behance", "product", "Portfolio hosting")
        repo.add(smalls[0].id, "Do it by hand", "self")
        names = [s.name for s in repo.by_job(smalls[0].id)]
        assert names == ["Behance", "Do it by hand"]
        assert repo.count_by_job(smalls[0].id) == 2
        assert repo.count_by_job(smalls[1].id) == 0

    def test_missing_job(self, conn: sqlite3.Connection) -> None:
        with pytest.raises(NotFound):
            SolutionRepository(conn).add("no-such-job", "X", "self")

    def test_invalid_type(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        with pytest.raises(ValidationError):
            SolutionRepository(conn).add(smalls[0].id, "X", "magic")

    def test_by_type(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        repo = SolutionRepository(conn)
        repo.add(smalls[0].id, "A", "partner")
        repo.add(smalls[1].id, "B", "self")
        assert [s.name for s in repo.by_type("partner")] == ["A"]

    def test_counts_by_graph(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        repo = SolutionRepository(conn)
        repo.add(smalls[0].id, "A", "self")
        repo.add(smalls[0].id, "B", "service")
        repo.add(smalls[2].id, "C", "partner")
        assert repo.counts_by_graph(graph.id) == {smalls[0].id: 2, smalls[2].id: 1}

    def test_grouped_by_type(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        repo = SolutionRepository(conn)
        repo.add(smalls[0].id, "A", "self")
        repo.add(smalls[0].id, "B", "self")
        repo.add(smalls[0].id, "C", "our_product")
        grouped = repo.grouped_by_type(smalls[0].id)
        assert sorted(grouped) == ["our_product", "self"]
        assert [s.name for s in grouped["self"]] == ["A", "B"]


# ---------------------------------------------------------------------------
# edges
# ---------------------------------------------------------------------------

class TestEdgeRepository:
    def test_connect(self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]) -> None:
        edge = EdgeRepository(conn).connect(smalls[0].id, smalls[1].id, "next", "then")
        assert edge.graph_id == graph.id
        assert (edge.type, edge.note) == ("next", "then")

    def test_connect_twice_returns_existing(
        self, conn: sqlite3.Connection, smalls: list[Job]
    ) -> None:
        repo = EdgeRepository(conn)
        first = repo.connect(smalls[0].id, smalls[1].id)
        second = repo.connect(smalls[0].id, smalls[1].id)
        assert first.id == second.id
        assert repo.count() == 1

    def test_self_loop_rejected(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        with pytest.raises(InvalidHierarchy):
            EdgeRepository(conn).connect(smalls[0].id, smalls[0].id)

    def test_cross_graph_rejected(
        self, conn: sqlite3.Connection, smalls: list[Job]
    ) -> None:
        other = ops.create_graph(conn, "Bakers", "sell more bread", language="en")
        with pytest.raises(InvalidHierarchy):
            EdgeRepository(conn).connect(smalls[0].id, other.core_job_id)
        assert EdgeRepository(conn).count() == 0

    def test_missing_job(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        with pytest.raises(NotFound):
            EdgeRepository(conn).connect(smalls[0].id, "no-such-job")

    def test_dependency_queries(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        repo = EdgeRepository(conn)
        a, b, c = smalls
        repo.connect(a.id, c.id, "depends_on")
        repo.connect(b.id, c.id, "depends_on")
        repo.connect(a.id, b.id, "next")
        assert sorted(repo.dependencies_of(c.id)) == sorted([a.id, b.id])
        assert repo.dependents_of(a.id) == [c.id]
        assert repo.next_of(a.id) == [b.id]
        assert len(repo.by_job(b.id)) == 2

    def test_delete_by_job(self, conn: sqlite3.Connection, smalls: list[Job]) -> None:
        repo = EdgeRepository(conn)
        a, b, c = smalls
        repo.connect(a.id, b.id)
        repo.connect(c.id, a.id)
        repo.connect(b.id, c.id)
        assert repo.delete_by_job(a.id) == 2
        assert repo.count() == 1

    def test_jobs_survive_edge_removal(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        edge = EdgeRepository(conn).connect(smalls[0].id, smalls[1].id)
        EdgeRepository(conn).delete(edge.id)
        assert JobRepository(conn).count_by_level(graph.id, "small") == 3
