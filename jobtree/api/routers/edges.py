"""Edge endpoints.

Routes
------
POST   /edges          Connect two jobs of the same graph
DELETE /edges/{id}     Remove an edge
"""

from __future__ import annotations

import sqlite3
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from jobtree.api.deps import get_db
from jobtree.db.models import EdgeType
from jobtree.domain import operations as ops

router = APIRouter()


class EdgeCreate(BaseModel):
    from_id: str
    to_id: str
    type: EdgeType = "next"
    note: Optional[str] = None


@router.post("", status_code=201, response_model=dict[str, Any])
def create(body: EdgeCreate, conn: sqlite3.Connection = Depends(get_db)) -> dict[str, Any]:
    """Connecting the same pair twice returns the existing edge."""
    edge = ops.connect_jobs(conn, body.from_id, body.to_id, body.type, body.note)
    return edge.model_dump()


@router.delete("/{edge_id}")
def remove(edge_id: str, conn: sqlite3.Connection = Depends(get_db)) -> Response:
    if not ops.disconnect(conn, edge_id):
        raise HTTPException(status_code=404, detail=f"Edge not found: {edge_id!r}")
    return Response(status_code=204)
