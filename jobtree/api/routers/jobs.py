"""Job endpoints.

Routes
------
GET    /jobs/{id}                  Fetch a single job
PATCH  /jobs/{id}                  Update content fields (phase cascades to micros)
DELETE /jobs/{id}                  Delete a small/micro job and its subtree
GET    /jobs/{id}/children         Direct children in sort order
POST   /jobs/{id}/micro-jobs       Append micro jobs under a small job
POST   /jobs/{id}/insert-after     Insert a sibling right after this job
GET    /jobs/{id}/solutions        Solutions attached to the job
POST   /jobs/reorder               Reorder a complete sibling set
"""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from jobtree.api.deps import get_db
from jobtree.domain import operations as ops

router = APIRouter()


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------

class JobBatch(BaseModel):
    jobs: list[dict[str, Any]]


class ReorderRequest(BaseModel):
    graph_id: str
    parent_id: Optional[str] = None
    job_ids: list[str]


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post("/reorder", response_model=list[dict[str, Any]])
def reorder(
    body: ReorderRequest, conn: sqlite3.Connection = Depends(get_db)
) -> list[dict[str, Any]]:
    """Every child of ``parent_id`` must appear exactly once in ``job_ids``."""
    jobs = ops.reorder_jobs(conn, body.graph_id, body.parent_id, body.job_ids)
    return [j.model_dump() for j in jobs]


@router.get("/{job_id}", response_model=dict[str, Any])
def get_one(job_id: str, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    job = ops.get_job(conn, job_id)
    if job is None:
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id!r}")
    return job.model_dump()


@router.patch("/{job_id}", response_model=dict[str, Any])
def update(
    job_id: str, body: dict[str, Any], conn: sqlite3.Connection = Depends(get_db)
) -> dict[str, Any]:
    """Structural fields (level, parent, graph, sort order) are refused with 409."""
    if not body:
        raise HTTPException(status_code=422, detail="No fields provided to update.")
    return ops.update_job(conn, job_id, body).model_dump()


@router.delete("/{job_id}")
def remove(job_id: str, conn: sqlite3.Connection = Depends(get_db)) -> Response:
    if not ops.delete_job(conn, job_id):
        raise HTTPException(status_code=404, detail=f"Job not found: {job_id!r}")
    return Response(status_code=204)


@router.get("/{job_id}/children", response_model=list[dict[str, Any]])
def children(job_id: str, conn: sqlite3.Connection = Depends(get_db)) -> list[dict[str, Any]]:
    return [j.model_dump() for j in ops.list_children(conn, job_id)]


@router.post("/{job_id}/micro-jobs", status_code=201, response_model=list[dict[str, Any]])
def add_micro(
    job_id: str, body: JobBatch, conn: sqlite3.Connection = Depends(get_db)
) -> list[dict[str, Any]]:
    created = ops.add_micro_jobs(conn, job_id, body.jobs)
    return [j.model_dump() for j in created]


@router.post("/{job_id}/insert-after", status_code=201, response_model=dict[str, Any])
def insert_after(
    job_id: str, body: dict[str, Any], conn: sqlite3.Connection = Depends(get_db)
) -> dict[str, Any]:
    """Level and parent default to the anchor's; phase and cadence too."""
    return ops.insert_job_after(conn, job_id, body).model_dump()


@router.get("/{job_id}/solutions", response_model=list[dict[str, Any]])
def job_solutions(job_id: str, conn: sqlite3.Connection = Depends(get_db)) -> list[dict[str, Any]]:
    return [s.model_dump() for s in ops.list_solutions(conn, job_id)]
