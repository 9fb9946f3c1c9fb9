"""jobtree CLI: entry-point for building and inspecting job graphs.

Usage:
    jobtree --help

Sub-command groups:
    db      → database setup
    graph   → create, select, show, validate, autofix and view graphs
    job     → add, insert, edit, reorder and delete jobs
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from jobtree.xxx import ...`
# works when the CLI is invoked as `python jobtree_cli/main.py`.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

from typing import Optional

import typer

from jobtree.config import configure_logging, settings
from jobtree.db import get_connection, init_db
from jobtree.db.migrations import current_version

from jobtree_cli.commands.graph import graph_app
from jobtree_cli.commands.job import job_app

app = typer.Typer(
    name="jobtree",
    help="Job hierarchy engine CLI.",
    no_args_is_help=True,
)
app.add_typer(graph_app, name="graph")
app.add_typer(job_app, name="job")


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL (DEBUG, INFO, WARNING, ...)."
    ),
) -> None:
    configure_logging(log_level.upper() if log_level else None)


# ---------------------------------------------------------------------------
# DB commands
# ---------------------------------------------------------------------------
db_app = typer.Typer(help="Database operations.", no_args_is_help=True)
app.add_typer(db_app, name="db")


@db_app.command("init")
def db_init() -> None:
    """Initialise the SQLite database (create tables if they do not exist)."""
    conn = get_connection()
    init_db(conn)
    version = current_version(conn)
    conn.close()
    typer.echo(f"[db init] Database ready at {settings.db_path} (schema version {version})")


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
