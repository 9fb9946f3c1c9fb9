"""Persistent state for the jobtree CLI.

Tracks the "active graph" so commands can omit ``--graph``.
Stored in ``~/.jobtree_cli/context.json``.
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from pathlib import Path

import typer

from jobtree.config import settings


@dataclass
class CliContext:
    active_graph_id: str | None = None
    active_graph_name: str | None = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=2, ensure_ascii=False)

    @classmethod
    def from_json(cls, data: str) -> CliContext:
        try:
            raw = json.loads(data)
            return cls(**raw)
        except (json.JSONDecodeError, TypeError):
            return cls()

    def activate(self, graph_id: str, name: str) -> None:
        self.active_graph_id = graph_id
        self.active_graph_name = name

    def clear(self) -> None:
        self.active_graph_id = None
        self.active_graph_name = None


def _get_context_path() -> Path:
    """Return the path to the context JSON file."""
    return settings.cli_config_dir / "context.json"


def load_context() -> CliContext:
    """Load the CLI context from disk. Returns defaults if missing or corrupt."""
    path = _get_context_path()
    if not path.exists():
        return CliContext()
    try:
        return CliContext.from_json(path.read_text(encoding="utf-8"))
    except OSError:
        return CliContext()


def save_context(ctx: CliContext) -> None:
    """Save the CLI context to disk."""
    settings.cli_config_dir.mkdir(parents=True, exist_ok=True)
    _get_context_path().write_text(ctx.to_json(), encoding="utf-8")


def resolve_graph_id(graph_id: str | None) -> str:
    """Return *graph_id*, or the active graph's id when it is ``None``.

    Exits with code 1 when neither is available.
    """
    if graph_id:
        return graph_id
    ctx = load_context()
    if not ctx.active_graph_id:
        typer.echo("❌ No active graph selected.")
        typer.echo("Run 'graph create' or 'graph use <id>' first, or pass --graph.")
        raise typer.Exit(code=1)
    return ctx.active_graph_id
