"""Utilities for rendering job graphs in the CLI."""

from __future__ import annotations

from typing import Optional

from jobtree.db.models import Job

_ICONS = {
    "big": "🎯",
    "core": "⭐",
    "small": "▪",
    "micro": "·",
}


def _job_line(job: Job, show_ids: bool) -> str:
    parts = [_ICONS.get(job.level, "•"), job.label]
    if job.level == "small":
        parts.append(f"[{job.phase}]")
    if job.cadence == "repeat":
        parts.append("🔄")
    if show_ids:
        parts.append(f"({job.id[:8]})")
    return " ".join(parts)


def render_job_tree(jobs: list[Job], show_ids: bool = True) -> str:
    """Render the jobs of one graph as an ASCII tree.

    Args:
        jobs: Every job of the graph (any order).
        show_ids: Append the first 8 characters of each job id.

    Returns:
        String representation of the tree, one job per line, children in
        ``sort_order``.
    """
    children: dict[Optional[str], list[Job]] = {}
    for job in jobs:
        children.setdefault(job.parent_id, []).append(job)
    for siblings in children.values():
        siblings.sort(key=lambda j: j.sort_order)

    lines: list[str] = []

    def _render(job: Job, prefix: str, is_last: bool, is_root: bool) -> None:
        if is_root:
            lines.append(_job_line(job, show_ids))
            child_prefix = ""
        else:
            connector = "└── " if is_last else "├── "
            lines.append(f"{prefix}{connector}{_job_line(job, show_ids)}")
            child_prefix = prefix + ("    " if is_last else "│   ")

        kids = children.get(job.id, [])
        for i, child in enumerate(kids):
            _render(child, child_prefix, i == len(kids) - 1, False)

    roots = children.get(None, [])
    if not roots:
        return "(empty graph)"
    for root in roots:
        _render(root, "", True, True)
    return "\n".join(lines)
