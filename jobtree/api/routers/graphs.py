"""Graph-level endpoints.

Routes
------
POST   /graphs                      Create a graph with its core (and big) job
GET    /graphs                      List graphs, most recently updated first
GET    /graphs/{id}                 Fetch one graph
PATCH  /graphs/{id}                 Change the language or replace the warnings
DELETE /graphs/{id}                 Delete a graph with all its jobs
POST   /graphs/{id}/warnings        Append one warning to the graph
DELETE /graphs/{id}/warnings        Clear the graph warnings
GET    /graphs/{id}/jobs            Every job of the graph in hierarchy order
POST   /graphs/{id}/small-jobs      Append small jobs under the core job
GET    /graphs/{id}/edges           Explicit edges of the graph
GET    /graphs/{id}/validate        Run the validation engine
POST   /graphs/{id}/autofix         Normalise formulations and labels in place
GET    /graphs/{id}/view?mode=...   Timeline JSON or Mermaid text
"""

from __future__ import annotations

import sqlite3
from dataclasses import asdict
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from jobtree.api.deps import get_db
from jobtree.db.jobs import JobRepository
from jobtree.db.models import Graph, Language
from jobtree.domain import operations as ops
from jobtree.domain.normalization import autofix
from jobtree.domain.validation import validate
from jobtree.domain.views import render_view

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class GraphCreate(BaseModel):
    segment: str
    core_job: str
    big_job: Optional[str] = None
    language: Optional[str] = None
    options: Optional[dict[str, Any]] = None


class GraphPatch(BaseModel):
    language: Optional[Language] = None
    warnings: Optional[list[str]] = None


class WarningCreate(BaseModel):
    warning: str


class JobBatch(BaseModel):
    jobs: list[dict[str, Any]]


class AutofixRequest(BaseModel):
    language: Optional[str] = None


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _graph_or_404(conn: sqlite3.Connection, graph_id: str) -> Graph:
    graph = ops.get_graph(conn, graph_id)
    if graph is None:
        raise HTTPException(status_code=404, detail=f"Graph not found: {graph_id!r}")
    return graph


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("", status_code=201, response_model=dict[str, Any])
def create(body: GraphCreate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    """Create a graph; the core/big formulations are normalised on the way in."""
    graph = ops.create_graph(
        conn,
        segment=body.segment,
        core_job=body.core_job,
        big_job=body.big_job,
        language=body.language,
        options=body.options,
    )
    return graph.model_dump()


@router.get("", response_model=list[dict[str, Any]])
def list_all(
    conn: sqlite3.Connection = Depends(get_db), limit: int = 20, offset: int = 0
) -> list[dict[str, Any]]:
    return [g.model_dump() for g in ops.list_graphs(conn, limit, offset)]


@router.get("/{graph_id}", response_model=dict[str, Any])
def get_one(graph_id: str, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    return _graph_or_404(conn, graph_id).model_dump()


@router.patch("/{graph_id}", response_model=dict[str, Any])
def update(
    graph_id: str, body: GraphPatch, conn: sqlite3.Connection = Depends(get_db)
) -> dict[str, Any]:
    graph = ops.update_graph(conn, graph_id, language=body.language, warnings=body.warnings)
    return graph.model_dump()


@router.delete("/{graph_id}")
def remove(graph_id: str, conn: sqlite3.Connection = Depends(get_db)) -> Response:
    if not ops.delete_graph(conn, graph_id):
        raise HTTPException(status_code=404, detail=f"Graph not found: {graph_id!r}")
    return Response(status_code=204)


@router.post("/{graph_id}/warnings", status_code=201, response_model=dict[str, Any])
def add_warning(
    graph_id: str, body: WarningCreate, conn: sqlite3.Connection = Depends(get_db)
) -> dict[str, Any]:
    return ops.add_graph_warning(conn, graph_id, body.warning).model_dump()


@router.delete("/{graph_id}/warnings", response_model=dict[str, Any])
def clear_warnings(graph_id: str, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    return ops.clear_graph_warnings(conn, graph_id).model_dump()


@router.get("/{graph_id}/jobs", response_model=list[dict[str, Any]])
def graph_jobs(graph_id: str, conn: sqlite3.Connection = Depends(get_db)) -> list[dict[str, Any]]:
    """All jobs of the graph: big, core, small, micro, each level in sort order."""
    _graph_or_404(conn, graph_id)
    jobs = JobRepository(conn).by_graph(graph_id)
    return [j.model_dump() for j in jobs]


@router.post("/{graph_id}/small-jobs", status_code=201, response_model=list[dict[str, Any]])
def add_small(
    graph_id: str, body: JobBatch, conn: sqlite3.Connection = Depends(get_db)
) -> list[dict[str, Any]]:
    created = ops.add_small_jobs(conn, graph_id, body.jobs)
    return [j.model_dump() for j in created]


@router.get("/{graph_id}/edges", response_model=list[dict[str, Any]])
def graph_edges(graph_id: str, conn: sqlite3.Connection = Depends(get_db)) -> list[dict[str, Any]]:
    return [e.model_dump() for e in ops.list_edges(conn, graph_id)]


@router.get("/{graph_id}/validate", response_model=dict[str, Any])
def run_validation(graph_id: str, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    return asdict(validate(conn, graph_id))


@router.post("/{graph_id}/autofix", response_model=dict[str, Any])
def run_autofix(
    graph_id: str, conn: sqlite3.Connection = Depends(get_db), body: Optional[AutofixRequest] = None
) -> dict[str, Any]:
    """Normalise every job and return the list of changed fields."""
    language = body.language if body else None
    changes = autofix(conn, graph_id, language=language)
    return {"changed": len(changes), "changes": [asdict(c) for c in changes]}


@router.get("/{graph_id}/view")
def view(graph_id: str, conn: sqlite3.Connection = Depends(get_db), mode: str = "timeline") -> Any:
    """``mode=timeline`` returns JSON, ``mode=mermaid`` returns ``text/plain``."""
    result = render_view(conn, graph_id, mode)
    if result is None:
        raise HTTPException(status_code=404, detail=f"Graph not found: {graph_id!r}")
    if isinstance(result, str):
        return PlainTextResponse(result)
    return result
