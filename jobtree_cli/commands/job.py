"""Job editing commands.

Job ids may be given in full or as the 8-character prefix printed by
``graph show``.
"""

from __future__ import annotations

import sqlite3
from typing import Any, List, Optional

import typer

from jobtree.db import get_connection, init_db
from jobtree.domain import operations as ops
from jobtree.domain.normalization import normalize_cadence, normalize_job, normalize_phase
from jobtree.errors import JobTreeError

from jobtree_cli.context import resolve_graph_id

job_app = typer.Typer(help="Add, insert, edit, reorder and delete jobs.")


def _fail(message: str) -> None:
    typer.echo(f"❌ {message}")
    raise typer.Exit(code=1)


def _resolve_job_id(conn: sqlite3.Connection, identifier: str) -> str:
    """Expand a unique id prefix to the full job id."""
    rows = conn.execute(
        "SELECT id FROM jobs WHERE id LIKE ? LIMIT 2", (f"{identifier}%",)
    ).fetchall()
    if not rows:
        _fail(f"Job '{identifier}' not found.")
    if len(rows) > 1:
        _fail(f"Job id prefix '{identifier}' is ambiguous.")
    return rows[0]["id"]


def _payload(
    formulation: str,
    label: Optional[str],
    phase: Optional[str],
    cadence: Optional[str],
) -> dict[str, Any]:
    payload: dict[str, Any] = {"formulation": formulation}
    if label:
        payload["label"] = label
    if phase:
        payload["phase"] = phase
    if cadence:
        payload["cadence"] = cadence
    return payload


@job_app.command("add")
def job_add(
    formulation: str = typer.Argument(..., help="What the customer wants to get done."),
    parent: Optional[str] = typer.Option(
        None, "--parent", "-p", help="Small job to add a micro job under. Omit to add a small job."
    ),
    label: Optional[str] = typer.Option(None, "--label", help="Short label. Derived when omitted."),
    phase: Optional[str] = typer.Option(None, "--phase", help="before | during | after (any language)."),
    cadence: Optional[str] = typer.Option(None, "--cadence", help="once | repeat (any language)."),
    graph: Optional[str] = typer.Option(None, "--graph", "-g", help="Graph id. Defaults to the active graph."),
) -> None:
    """Append a small job to the graph, or a micro job under --parent."""
    conn = get_connection()
    init_db(conn)

    try:
        if parent is None:
            graph_id = resolve_graph_id(graph)
            found = ops.get_graph(conn, graph_id)
            if found is None:
                _fail(f"Graph '{graph_id}' not found.")
            draft = normalize_job(
                {"level": "small", "parent_id": found.core_job_id,
                 **_payload(formulation, label, phase, cadence)},
                found.language,
            )
            [job] = ops.add_small_jobs(conn, graph_id, [draft])
        else:
            parent_id = _resolve_job_id(conn, parent)
            small = ops.get_job(conn, parent_id)
            language = ops.get_graph(conn, small.graph_id).language  # type: ignore[union-attr]
            draft = normalize_job(
                {"level": "micro", "parent_id": parent_id,
                 **_payload(formulation, label, phase, cadence)},
                language,
            )
            [job] = ops.add_micro_jobs(conn, parent_id, [draft])
        typer.echo(f"✅ Added {job.level} job: {job.label} ({job.id})")
    except (JobTreeError, ValueError) as exc:
        _fail(str(exc))
    finally:
        conn.close()


@job_app.command("insert-after")
def job_insert_after(
    anchor: str = typer.Argument(..., help="Job to insert after."),
    formulation: str = typer.Argument(..., help="What the customer wants to get done."),
    label: Optional[str] = typer.Option(None, "--label", help="Short label. Derived when omitted."),
    phase: Optional[str] = typer.Option(None, "--phase", help="Defaults to the anchor's phase."),
    cadence: Optional[str] = typer.Option(None, "--cadence", help="Defaults to the anchor's cadence."),
) -> None:
    """Insert a new sibling right after ANCHOR."""
    conn = get_connection()
    init_db(conn)

    try:
        anchor_id = _resolve_job_id(conn, anchor)
        anchor_job = ops.get_job(conn, anchor_id)
        language = ops.get_graph(conn, anchor_job.graph_id).language  # type: ignore[union-attr]
        draft = normalize_job(
            {"level": anchor_job.level, "parent_id": anchor_job.parent_id,  # type: ignore[union-attr]
             **_payload(formulation, label, phase, cadence)},
            language,
        )
        job = ops.insert_job_after(conn, anchor_id, draft)
        typer.echo(f"✅ Inserted {job.level} job at position {job.sort_order}: {job.label} ({job.id})")
    except (JobTreeError, ValueError) as exc:
        _fail(str(exc))
    finally:
        conn.close()


@job_app.command("update")
def job_update(
    job: str = typer.Argument(..., help="Job to update."),
    formulation: Optional[str] = typer.Option(None, "--formulation"),
    label: Optional[str] = typer.Option(None, "--label"),
    phase: Optional[str] = typer.Option(None, "--phase", help="Only small jobs; cascades to micros."),
    cadence: Optional[str] = typer.Option(None, "--cadence"),
) -> None:
    """Change content fields of a job."""
    patch = {
        k: v
        for k, v in {
            "formulation": formulation,
            "label": label,
            "phase": normalize_phase(phase) if phase is not None else None,
            "cadence": normalize_cadence(cadence) if cadence is not None else None,
        }.items()
        if v is not None
    }
    if not patch:
        _fail("No fields provided to update.")

    conn = get_connection()
    init_db(conn)
    try:
        updated = ops.update_job(conn, _resolve_job_id(conn, job), patch)
        typer.echo(f"✅ Updated {updated.level} job: {updated.label}")
    except (JobTreeError, ValueError) as exc:
        _fail(str(exc))
    finally:
        conn.close()


@job_app.command("reorder")
def job_reorder(
    job_ids: List[str] = typer.Argument(..., help="Every sibling, in the new order."),
) -> None:
    """Reorder a complete set of siblings."""
    conn = get_connection()
    init_db(conn)

    try:
        ids = [_resolve_job_id(conn, i) for i in job_ids]
        first = ops.get_job(conn, ids[0])
        jobs = ops.reorder_jobs(conn, first.graph_id, first.parent_id, ids)  # type: ignore[union-attr]
        for j in jobs:
            typer.echo(f"  {j.sort_order}. {j.label}")
    except (JobTreeError, ValueError) as exc:
        _fail(str(exc))
    finally:
        conn.close()


@job_app.command("delete")
def job_delete(
    job: str = typer.Argument(..., help="Small or micro job to delete."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete a job together with its micro jobs, solutions and edges."""
    conn = get_connection()
    init_db(conn)

    try:
        job_id = _resolve_job_id(conn, job)
        if not yes:
            typer.confirm(f"Delete job {job_id} and everything under it?", abort=True)
        ops.delete_job(conn, job_id)
        typer.echo(f"🗑️  Deleted job {job_id}")
    except JobTreeError as exc:
        _fail(str(exc))
    finally:
        conn.close()
