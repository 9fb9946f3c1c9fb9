"""Read-only projections of a job graph: a phase timeline and a Mermaid flowchart."""

from __future__ import annotations

import re
import sqlite3
from typing import Any, Optional, Union

from jobtree.config import settings
from jobtree.db.edges import EdgeRepository
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobRepository
from jobtree.db.models import Job
from jobtree.db.solutions import SolutionRepository

VIEW_MODES = ("timeline", "mermaid")

TIMELINE_PHASES = ("before", "during", "after", "unknown")

_PHASE_TITLES = {
    "before": "Before",
    "during": "During",
    "after": "After",
    "unknown": "Unknown",
}

_PHASE_STYLES = {
    "before": "fill:#e3f2fd,stroke:#1976d2",
    "during": "fill:#fff3e0,stroke:#f57c00",
    "after": "fill:#e8f5e9,stroke:#388e3c",
    "unknown": "fill:#fafafa,stroke:#757575",
}
_MICRO_STYLE = "fill:#f5f5f5,stroke:#9e9e9e,stroke-dasharray: 5 5"

_ARROWS = {
    "next": "-->",
    "depends_on": "-.->",
    "optional": "-.->",
    "repeats": "==>",
}

_NEWLINES = re.compile(r"\s*[\r\n]+\s*")
_UNSAFE_ID = re.compile(r"[^A-Za-z0-9_]")


def _group_micros(jobs: list[Job]) -> dict[str, list[Job]]:
    grouped: dict[str, list[Job]] = {}
    for job in jobs:
        if job.level == "micro" and job.parent_id:
            grouped.setdefault(job.parent_id, []).append(job)
    for micros in grouped.values():
        micros.sort(key=lambda j: j.sort_order)
    return grouped


def _small_by_phase(jobs: list[Job]) -> dict[str, list[Job]]:
    grouped: dict[str, list[Job]] = {phase: [] for phase in TIMELINE_PHASES}
    for job in jobs:
        if job.level == "small":
            grouped[job.phase].append(job)
    for small in grouped.values():
        small.sort(key=lambda j: j.sort_order)
    return grouped


# ---------------------------------------------------------------------------
# Timeline
# ---------------------------------------------------------------------------

def timeline_view(conn: sqlite3.Connection, graph_id: str) -> Optional[dict[str, Any]]:
    """Small jobs grouped by phase, each carrying its micro jobs and solution count.

    Returns ``None`` when the graph does not exist.
    """
    graph = GraphRepository(conn).find_by_id(graph_id)
    if graph is None:
        return None

    jobs = JobRepository(conn).by_graph(graph_id)
    micros = _group_micros(jobs)
    solution_counts = SolutionRepository(conn).counts_by_graph(graph_id)

    def entry(job: Job) -> dict[str, Any]:
        return {
            "id": job.id,
            "label": job.label,
            "formulation": job.formulation,
            "phase": job.phase,
            "cadence": job.cadence,
            "cadence_hint": job.cadence_hint,
            "scores": job.scores.model_dump() if job.scores else None,
            "sort_order": job.sort_order,
            "micro_jobs": [
                {
                    "id": m.id,
                    "label": m.label,
                    "formulation": m.formulation,
                    "cadence": m.cadence,
                    "sort_order": m.sort_order,
                }
                for m in micros.get(job.id, [])
            ],
            "solution_count": solution_counts.get(job.id, 0),
        }

    by_phase = _small_by_phase(jobs)
    return {
        "graph": {
            "id": graph.id,
            "segment": graph.input.segment,
            "core_job": graph.input.core_job,
            "big_job": graph.input.big_job,
            "language": graph.language,
        },
        "jobs": {phase: [entry(j) for j in by_phase[phase]] for phase in TIMELINE_PHASES},
        "stats": {
            "total_jobs": len(jobs),
            "small_job_count": sum(len(v) for v in by_phase.values()),
            "micro_job_count": sum(1 for j in jobs if j.level == "micro"),
            "solution_count": sum(solution_counts.values()),
        },
    }


# ---------------------------------------------------------------------------
# Mermaid
# ---------------------------------------------------------------------------

def escape_label(text: str, limit: Optional[int] = None) -> str:
    """Make *text* safe inside a quoted Mermaid node label or link label."""
    limit = settings.view_label_max if limit is None else limit
    text = text.replace('"', "'")
    text = text.replace("[", "(").replace("]", ")").replace("{", "(").replace("}", ")")
    text = text.replace("|", "/")
    text = _NEWLINES.sub(" ", text).strip()
    return text[:limit]


def node_id(job_id: str) -> str:
    return "j_" + _UNSAFE_ID.sub("", job_id)


def mermaid_view(conn: sqlite3.Connection, graph_id: str) -> Optional[str]:
    """Render the graph as a Mermaid ``flowchart TD``.

    Small jobs sit in one subgraph per non-empty phase, each with its micro
    jobs hanging off it; explicit edges follow, then the styling.  Returns
    ``None`` when the graph does not exist.
    """
    graph = GraphRepository(conn).find_by_id(graph_id)
    if graph is None:
        return None

    jobs = JobRepository(conn).by_graph(graph_id)
    edges = EdgeRepository(conn).by_graph(graph_id)
    micros = _group_micros(jobs)
    by_phase = _small_by_phase(jobs)

    lines = [
        "flowchart TD",
        "",
        f"    %% Graph: {escape_label(graph.input.segment)}",
        f"    %% Core Job: {escape_label(graph.input.core_job)}",
        "",
    ]

    for phase in TIMELINE_PHASES:
        small = by_phase[phase]
        if not small:
            continue
        lines.append(f'    subgraph phase_{phase}["{_PHASE_TITLES[phase]}"]')
        for job in small:
            icon = "🔄 " if job.cadence == "repeat" else ""
            lines.append(f'        {node_id(job.id)}["{icon}{escape_label(job.label)}"]')
            for micro in micros.get(job.id, []):
                lines.append(f'        {node_id(micro.id)}(["{escape_label(micro.label)}"])')
                lines.append(f"        {node_id(job.id)} --- {node_id(micro.id)}")
        lines.append("    end")
        lines.append("")

    if edges:
        lines.append("    %% Relationships")
        for edge in edges:
            arrow = _ARROWS.get(edge.type, "-->")
            note = f"|{escape_label(edge.note)}|" if edge.note else ""
            lines.append(f"    {node_id(edge.from_id)} {arrow}{note} {node_id(edge.to_id)}")
        lines.append("")

    lines.append("    %% Styling")
    for phase in TIMELINE_PHASES:
        lines.append(f"    classDef {phase} {_PHASE_STYLES[phase]}")
    lines.append(f"    classDef micro {_MICRO_STYLE}")

    for phase in TIMELINE_PHASES:
        if by_phase[phase]:
            ids = ",".join(node_id(j.id) for j in by_phase[phase])
            lines.append(f"    class {ids} {phase}")
    micro_ids = [node_id(j.id) for j in jobs if j.level == "micro"]
    if micro_ids:
        lines.append(f"    class {','.join(micro_ids)} micro")

    return "\n".join(lines)


def render_view(
    conn: sqlite3.Connection, graph_id: str, mode: str
) -> Union[dict[str, Any], str, None]:
    """Dispatch to :func:`timeline_view` or :func:`mermaid_view`.

    Raises:
        ValueError: *mode* is not one of ``VIEW_MODES``.
    """
    if mode == "timeline":
        return timeline_view(conn, graph_id)
    if mode == "mermaid":
        return mermaid_view(conn, graph_id)
    raise ValueError(f"Unknown view mode {mode!r}; expected one of {', '.join(VIEW_MODES)}")
