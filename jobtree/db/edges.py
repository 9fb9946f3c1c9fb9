"""Operations on the ``edges`` table.

Edges are explicit relations between two jobs of the same graph.  They sit
beside the parent/child tree and are only used by the diagram view.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from jobtree.db.connection import transaction
from jobtree.db.models import Edge
from jobtree.db.store import Column, EntityStore
from jobtree.errors import InvalidHierarchy, NotFound

EDGE_FIELDS: dict[str, Column] = {
    "id": Column("id"),
    "graph_id": Column("graph_id"),
    "from_id": Column("from_id"),
    "to_id": Column("to_id"),
    "type": Column("type"),
    "note": Column("note"),
    "created_at": Column("created_at"),
    "updated_at": Column("updated_at"),
}


class EdgeRepository(EntityStore[Edge]):
    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn, "edges", Edge, EDGE_FIELDS)

    def connect(
        self,
        from_id: str,
        to_id: str,
        edge_type: str = "next",
        note: Optional[str] = None,
    ) -> Edge:
        """Create a directed edge from *from_id* to *to_id*.

        Calling it twice for the same pair returns the existing edge.

        Raises:
            NotFound: Either job does not exist.
            InvalidHierarchy: The jobs belong to different graphs, or
                *from_id* equals *to_id*.
        """
        if from_id == to_id:
            raise InvalidHierarchy("An edge cannot connect a job to itself")

        with transaction(self.conn):
            graphs: dict[str, str] = {}
            for job_id in (from_id, to_id):
                row = self.conn.execute(
                    "SELECT graph_id FROM jobs WHERE id = ?", (job_id,)
                ).fetchone()
                if row is None:
                    raise NotFound("Job", job_id)
                graphs[job_id] = row["graph_id"]
            if graphs[from_id] != graphs[to_id]:
                raise InvalidHierarchy("Edges must connect jobs of the same graph")

            existing = self.find_between(from_id, to_id)
            if existing is not None:
                return existing
            return self.create(
                {
                    "graph_id": graphs[from_id],
                    "from_id": from_id,
                    "to_id": to_id,
                    "type": edge_type,
                    "note": note,
                }
            )

    def find_between(self, from_id: str, to_id: str) -> Optional[Edge]:
        return self.find_first({"from_id": from_id, "to_id": to_id})

    def by_graph(self, graph_id: str) -> list[Edge]:
        return self.find_many({"graph_id": graph_id}, order_by="created_at")

    def by_job(self, job_id: str) -> list[Edge]:
        """Return all edges where *job_id* is the source **or** the target."""
        return self._select(
            "SELECT * FROM edges WHERE from_id = ? OR to_id = ? ORDER BY created_at, rowid",
            (job_id, job_id),
        )

    def delete_by_job(self, job_id: str) -> int:
        with transaction(self.conn):
            cursor = self.conn.execute(
                "DELETE FROM edges WHERE from_id = ? OR to_id = ?", (job_id, job_id)
            )
        return cursor.rowcount

    def dependencies_of(self, job_id: str) -> list[str]:
        """Jobs that *job_id* depends on (``depends_on`` edges pointing at it)."""
        rows = self.conn.execute(
            "SELECT from_id FROM edges WHERE to_id = ? AND type = 'depends_on'", (job_id,)
        ).fetchall()
        return [r["from_id"] for r in rows]

    def dependents_of(self, job_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT to_id FROM edges WHERE from_id = ? AND type = 'depends_on'", (job_id,)
        ).fetchall()
        return [r["to_id"] for r in rows]

    def next_of(self, job_id: str) -> list[str]:
        rows = self.conn.execute(
            "SELECT to_id FROM edges WHERE from_id = ? AND type = 'next'", (job_id,)
        ).fetchall()
        return [r["to_id"] for r in rows]
