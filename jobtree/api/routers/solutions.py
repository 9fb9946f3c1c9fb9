"""Solution endpoints.

Routes
------
POST   /solutions          Attach a solution to a job
GET    /solutions/{id}     Fetch a single solution
DELETE /solutions/{id}     Delete a solution
"""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from jobtree.api.deps import get_db
from jobtree.db.models import SolutionType
from jobtree.db.solutions import SolutionRepository
from jobtree.domain import operations as ops

router = APIRouter()


class SolutionCreate(BaseModel):
    job_id: str
    name: str
    type: SolutionType
    description: Optional[str] = None


@router.post("", status_code=201, response_model=dict[str, Any])
def create(body: SolutionCreate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    solution = ops.add_solution(
        conn, body.job_id, body.name, body.type, body.description
    )
    return solution.model_dump()


@router.get("/{solution_id}", response_model=dict[str, Any])
def get_one(solution_id: str, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    solution = SolutionRepository(conn).find_by_id(solution_id)
    if solution is None:
        raise HTTPException(status_code=404, detail=f"Solution not found: {solution_id!r}")
    return solution.model_dump()


@router.delete("/{solution_id}")
def remove(solution_id: str, conn: sqlite3.Connection = Depends(get_db)) -> Response:
    if not ops.delete_solution(conn, solution_id):
        raise HTTPException(status_code=404, detail=f"Solution not found: {solution_id!r}")
    return Response(status_code=204)
