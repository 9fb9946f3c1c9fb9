"""Graph management commands."""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

import typer

from jobtree.db import get_connection, init_db
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobRepository
from jobtree.domain import operations as ops
from jobtree.domain.normalization import autofix
from jobtree.domain.validation import validate
from jobtree.domain.views import VIEW_MODES, render_view
from jobtree.errors import JobTreeError

from jobtree_cli.context import load_context, resolve_graph_id, save_context
from jobtree_cli.rendering import render_job_tree

graph_app = typer.Typer(help="Create, inspect and validate job graphs.")

GRAPH_OPTION = typer.Option(None, "--graph", "-g", help="Graph id. Defaults to the active graph.")


def _fail(message: str) -> None:
    typer.echo(f"❌ {message}")
    raise typer.Exit(code=1)


@graph_app.command("create")
def graph_create(
    segment: str = typer.Argument(..., help="Customer segment the graph is about."),
    core: str = typer.Option(..., "--core", help="Core job, in the customer's words."),
    big: Optional[str] = typer.Option(None, "--big", help="Optional big job above the core job."),
    language: Optional[str] = typer.Option(None, "--language", "-l", help="ru | en"),
) -> None:
    """Create a new graph and switch to it."""
    conn = get_connection()
    init_db(conn)

    try:
        graph = ops.create_graph(conn, segment, core, big_job=big, language=language)
        typer.echo(f"✅ Graph created: {segment} ({graph.id})")

        ctx = load_context()
        ctx.activate(graph.id, segment)
        save_context(ctx)
        typer.echo(f"📂 Switched to graph: {segment}")
    except (JobTreeError, ValueError) as exc:
        _fail(str(exc))
    finally:
        conn.close()


@graph_app.command("list")
def graph_list(
    limit: int = typer.Option(20, help="Maximum number of graphs to show."),
) -> None:
    """List graphs, most recently updated first."""
    conn = get_connection()
    init_db(conn)

    try:
        graphs = ops.list_graphs(conn, limit=limit)
        if not graphs:
            typer.echo("No graphs found.")
            return

        active_id = load_context().active_graph_id
        typer.echo("Graphs:")
        for g in graphs:
            marker = "*" if g.id == active_id else " "
            typer.echo(f"{marker} {g.input.segment} \t[{g.language}] [{g.id}]")
    finally:
        conn.close()


@graph_app.command("use")
def graph_use(
    identifier: str = typer.Argument(..., help="Graph id or exact segment text."),
) -> None:
    """Switch the active graph."""
    conn = get_connection()
    init_db(conn)

    try:
        repo = GraphRepository(conn)
        target = repo.find_by_id(identifier)
        if target is None:
            target = next(
                (g for g in repo.find_by_segment(identifier) if g.input.segment == identifier),
                None,
            )
        if target is None:
            _fail(f"Graph '{identifier}' not found.")

        ctx = load_context()
        ctx.activate(target.id, target.input.segment)
        save_context(ctx)
        typer.echo(f"📂 Switched to graph: {target.input.segment}")
    finally:
        conn.close()


@graph_app.command("show")
def graph_show(
    graph: Optional[str] = GRAPH_OPTION,
    ids: bool = typer.Option(True, "--ids/--no-ids", help="Show short job ids."),
) -> None:
    """Print the job hierarchy as a tree."""
    graph_id = resolve_graph_id(graph)
    conn = get_connection()
    init_db(conn)

    try:
        found = ops.get_graph(conn, graph_id)
        if found is None:
            _fail(f"Graph '{graph_id}' not found.")
        typer.echo(f"\n📊 Graph: {found.input.segment}  [{found.language}]")
        typer.echo(f"   ID: {found.id}")
        typer.echo("-" * 40)
        typer.echo(render_job_tree(JobRepository(conn).by_graph(graph_id), show_ids=ids))
        typer.echo("")
    finally:
        conn.close()


@graph_app.command("validate")
def graph_validate(graph: Optional[str] = GRAPH_OPTION) -> None:
    """Report formulation, label and count problems.  Exits 1 when there are errors."""
    graph_id = resolve_graph_id(graph)
    conn = get_connection()
    init_db(conn)

    try:
        result = validate(conn, graph_id)
    except JobTreeError as exc:
        _fail(str(exc))
    finally:
        conn.close()

    for issue in result.errors:
        typer.echo(f"  ERROR    {issue.code}: {issue.message}")
    for issue in result.warnings:
        typer.echo(f"  WARNING  {issue.code}: {issue.message}")
    stats = result.stats
    typer.echo(
        f"\n{stats['total_jobs']} jobs, {stats['small_job_count']} small, "
        f"{len(result.errors)} error(s), {len(result.warnings)} warning(s)"
    )
    if not result.valid:
        raise typer.Exit(code=1)
    typer.echo("✅ Graph is valid.")


@graph_app.command("autofix")
def graph_autofix(
    graph: Optional[str] = GRAPH_OPTION,
    language: Optional[str] = typer.Option(None, "--language", "-l", help="Override the graph language."),
) -> None:
    """Normalise formulations and labels in place."""
    graph_id = resolve_graph_id(graph)
    conn = get_connection()
    init_db(conn)

    try:
        changes = autofix(conn, graph_id, language=language)
    except (JobTreeError, ValueError) as exc:
        _fail(str(exc))
    finally:
        conn.close()

    if not changes:
        typer.echo("Nothing to fix.")
        return
    for change in changes:
        typer.echo(f"  {change.job_id[:8]} {change.field}: {change.old_value!r} -> {change.new_value!r}")
    typer.echo(f"🔧 {len(changes)} field(s) updated.")


@graph_app.command("view")
def graph_view(
    graph: Optional[str] = GRAPH_OPTION,
    mode: str = typer.Option("timeline", "--mode", "-m", help=" | ".join(VIEW_MODES)),
) -> None:
    """Print the timeline (JSON) or Mermaid view of a graph."""
    graph_id = resolve_graph_id(graph)
    conn = get_connection()
    init_db(conn)

    try:
        result = render_view(conn, graph_id, mode)
    except ValueError as exc:
        _fail(str(exc))
    finally:
        conn.close()

    if result is None:
        _fail(f"Graph '{graph_id}' not found.")
    if isinstance(result, str):
        typer.echo(result)
    else:
        typer.echo(json.dumps(result, indent=2, ensure_ascii=False))


@graph_app.command("delete")
def graph_delete(
    graph_id: str = typer.Argument(..., help="Graph id."),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt."),
) -> None:
    """Delete a graph with all its jobs, solutions and edges."""
    if not yes:
        typer.confirm(f"Delete graph {graph_id}?", abort=True)

    conn = get_connection()
    init_db(conn)
    try:
        deleted = ops.delete_graph(conn, graph_id)
    finally:
        conn.close()

    if not deleted:
        _fail(f"Graph '{graph_id}' not found.")

    ctx = load_context()
    if ctx.active_graph_id == graph_id:
        ctx.clear()
        save_context(ctx)
    typer.echo(f"🗑️  Deleted graph {graph_id}")


@graph_app.command("export")
def graph_export(graph: Optional[str] = GRAPH_OPTION) -> None:
    """Dump the graph and its validation report as JSON."""
    graph_id = resolve_graph_id(graph)
    conn = get_connection()
    init_db(conn)

    try:
        found = ops.get_graph(conn, graph_id)
        if found is None:
            _fail(f"Graph '{graph_id}' not found.")
        payload = {
            "graph": found.model_dump(),
            "jobs": [j.model_dump() for j in JobRepository(conn).by_graph(graph_id)],
            "validation": asdict(validate(conn, graph_id)),
        }
    finally:
        conn.close()
    typer.echo(json.dumps(payload, indent=2, ensure_ascii=False))
