"""View generator tests: timeline JSON and Mermaid flowchart."""

from __future__ import annotations

import re
import sqlite3
from typing import Generator

import pytest

from jobtree.db.connection import get_connection
from jobtree.db.edges import EdgeRepository
from jobtree.db.migrations import init_db
from jobtree.db.models import Graph, Job
from jobtree.db.solutions import SolutionRepository
from jobtree.domain import operations as ops
from jobtree.domain.views import (
    escape_label,
    mermaid_view,
    node_id,
    render_view,
    timeline_view,
)


@pytest.fixture()
def conn() -> Generator[sqlite3.Connection, None, None]:
    connection = get_connection(db_path=":memory:")  # type: ignore[arg-type]
    init_db(connection)
    yield connection
    connection.close()


@pytest.fixture()
def graph(conn: sqlite3.Connection) -> Graph:
    return ops.create_graph(
        conn, "Freelance designers", "find new clients", big_job="grow my studio", language="en"
    )


@pytest.fixture()
def smalls(conn: sqlite3.Connection, graph: Graph) -> list[Job]:
    jobs = ops.add_small_jobs(
        conn,
        graph.id,
        [
            {"formulation": "I want to send a proposal", "label": "Send a proposal", "phase": "during"},
            {"formulation": "I want to build a portfolio", "label": "Build a portfolio", "phase": "before"},
            {"formulation": "I want to ask for referrals", "label": "Ask for referrals",
             "phase": "after", "cadence": "repeat"},
            {"formulation": "I want to pick a niche", "label": "Pick a niche", "phase": "before"},
            {"formulation": "I want to rest", "label": "Rest"},
        ],
    )
    ops.add_micro_jobs(
        conn,
        jobs[1].id,
        [
            {"formulation": "I want to choose projects", "label": "Choose projects"},
            {"formulation": "I want to write case studies", "label": "Write case studies"},
        ],
    )
    return jobs


# ---------------------------------------------------------------------------
# timeline
# ---------------------------------------------------------------------------

class TestTimeline:
    def test_groups_by_phase_in_order(self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]) -> None:
        view = timeline_view(conn, graph.id)
        assert view is not None
        assert list(view["jobs"]) == ["before", "during", "after", "unknown"]
        assert [j["label"] for j in view["jobs"]["before"]] == ["Build a portfolio", "Pick a niche"]
        assert [j["label"] for j in view["jobs"]["during"]] == ["Send a proposal"]
        assert [j["label"] for j in view["jobs"]["after"]] == ["Ask for referrals"]
        assert [j["label"] for j in view["jobs"]["unknown"]] == ["Rest"]

    def test_follows_sort_order_within_phase(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        order = [smalls[3].id, smalls[0].id, smalls[1].id, smalls[2].id, smalls[4].id]
        ops.reorder_jobs(conn, graph.id, graph.core_job_id, order)
        view = timeline_view(conn, graph.id)
        assert [j["label"] for j in view["jobs"]["before"]] == ["Pick a niche", "Build a portfolio"]  # type: ignore[index]

    def test_micro_jobs_and_solution_counts(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        SolutionRepository(conn).add(smalls[1].id, "Dribbble", "product")
        SolutionRepository(conn).add(smalls[1].id, "Own site", "self")
        view = timeline_view(conn, graph.id)
        portfolio = view["jobs"]["before"][0]  # type: ignore[index]
        assert [m["label"] for m in portfolio["micro_jobs"]] == ["Choose projects", "Write case studies"]
        assert [m["sort_order"] for m in portfolio["micro_jobs"]] == [0, 1]
        assert portfolio["solution_count"] == 2
        assert view["jobs"]["before"][1]["solution_count"] == 0  # type: ignore[index]

    def test_graph_summary_and_stats(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        SolutionRepository(conn).add(smalls[0].id, "Template", "product")
        view = timeline_view(conn, graph.id)
        assert view["graph"] == {  # type: ignore[index]
            "id": graph.id,
            "segment": "Freelance designers",
            "core_job": "find new clients",
            "big_job": "grow my studio",
            "language": "en",
        }
        assert view["stats"] == {  # type: ignore[index]
            "total_jobs": 2 + 5 + 2,
            "small_job_count": 5,
            "micro_job_count": 2,
            "solution_count": 1,
        }

    def test_missing_graph(self, conn: sqlite3.Connection) -> None:
        assert timeline_view(conn, "nope") is None


# ---------------------------------------------------------------------------
# mermaid
# ---------------------------------------------------------------------------

class TestEscape:
    def test_replaces_unsafe_characters(self) -> None:
        assert escape_label('Say "hi" [now] {ok} a|b') == "Say 'hi' (now) (ok) a/b"

    def test_collapses_newlines(self) -> None:
        assert escape_label("first line\n  second\r\nthird") == "first line second third"

    def test_caps_length(self) -> None:
        assert escape_label("x" * 80) == "x" * 50
        assert escape_label("abcdef", limit=3) == "abc"

    def test_node_id_is_identifier_safe(self) -> None:
        assert node_id("123e4567-e89b-12d3-a456-426614174000") == "j_123e4567e89b12d3a456426614174000"


class TestMermaid:
    def test_header_and_subgraphs(self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]) -> None:
        text = mermaid_view(conn, graph.id)
        assert text is not None
        lines = text.splitlines()
        assert lines[0] == "flowchart TD"
        assert "    %% Graph: Freelance designers" in lines
        assert "    %% Core Job: find new clients" in lines
        subgraphs = [line.strip() for line in lines if line.strip().startswith("subgraph")]
        assert subgraphs == [
            'subgraph phase_before["Before"]',
            'subgraph phase_during["During"]',
            'subgraph phase_after["After"]',
            'subgraph phase_unknown["Unknown"]',
        ]
        assert text.count("\n    end") == 4

    def test_empty_phases_are_skipped(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.add_small_jobs(conn, graph.id, [{"formulation": "I want to rest", "label": "Rest", "phase": "after"}])
        text = mermaid_view(conn, graph.id)
        assert "subgraph phase_after" in text  # type: ignore[operator]
        assert "subgraph phase_before" not in text  # type: ignore[operator]

    def test_repeat_marker_and_micro_links(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        text = mermaid_view(conn, graph.id)
        assert f'{node_id(smalls[2].id)}["🔄 Ask for referrals"]' in text  # type: ignore[operator]
        micro_links = [line for line in text.splitlines() if " --- " in line]  # type: ignore[union-attr]
        assert len(micro_links) == 2
        assert all(line.strip().startswith(node_id(smalls[1].id)) for line in micro_links)

    def test_edges_use_type_styles(
        self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]
    ) -> None:
        edges = EdgeRepository(conn)
        a, b, c, d, _ = smalls
        edges.connect(b.id, a.id, "next", "then [pitch]")
        edges.connect(d.id, b.id, "depends_on")
        edges.connect(a.id, c.id, "optional")
        edges.connect(c.id, a.id, "repeats")
        text = mermaid_view(conn, graph.id)
        assert f"{node_id(b.id)} -->|then (pitch)| {node_id(a.id)}" in text  # type: ignore[operator]
        assert f"{node_id(d.id)} -.-> {node_id(b.id)}" in text  # type: ignore[operator]
        assert f"{node_id(a.id)} -.-> {node_id(c.id)}" in text  # type: ignore[operator]
        assert f"{node_id(c.id)} ==> {node_id(a.id)}" in text  # type: ignore[operator]

    def test_styling(self, conn: sqlite3.Connection, graph: Graph, smalls: list[Job]) -> None:
        text = mermaid_view(conn, graph.id)
        for phase in ("before", "during", "after", "unknown", "micro"):
            assert f"    classDef {phase} " in text  # type: ignore[operator]
        assert f"    class {node_id(smalls[1].id)},{node_id(smalls[3].id)} before" in text  # type: ignore[operator]

    def test_hostile_labels_stay_well_formed(self, conn: sqlite3.Connection, graph: Graph) -> None:
        ops.add_small_jobs(
            conn,
            graph.id,
            [{"formulation": "I want to x", "label": 'Break "out"] --> evil{x}|y\nz', "phase": "before"}],
        )
        text = mermaid_view(conn, graph.id)
        node_lines = [ln for ln in text.splitlines() if re.match(r"\s+j_\w+\[", ln)]  # type: ignore[union-attr]
        assert len(node_lines) == 1
        assert re.fullmatch(r'\s+j_\w+\["[^"\[\]{}|]*"\]', node_lines[0])

    def test_missing_graph(self, conn: sqlite3.Connection) -> None:
        assert mermaid_view(conn, "nope") is None


class TestRenderView:
    def test_dispatch(self, conn: sqlite3.Connection, graph: Graph) -> None:
        assert isinstance(render_view(conn, graph.id, "timeline"), dict)
        assert isinstance(render_view(conn, graph.id, "mermaid"), str)

    def test_unknown_mode(self, conn: sqlite3.Connection, graph: Graph) -> None:
        with pytest.raises(ValueError):
            render_view(conn, graph.id, "gantt")
