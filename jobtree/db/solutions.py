"""Repository for the ``solutions`` table.

A solution is one way of getting a job done (do it yourself, buy a product,
hire a service, ...).  Solutions are deleted with their job.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from jobtree.db.connection import transaction
from jobtree.db.models import Solution
from jobtree.db.store import Column, EntityStore
from jobtree.errors import NotFound

SOLUTION_FIELDS: dict[str, Column] = {
    "id": Column("id"),
    "job_id": Column("job_id"),
    "name": Column("name"),
    "type": Column("type"),
    "description": Column("description"),
    "created_at": Column("created_at"),
    "updated_at": Column("updated_at"),
}


class SolutionRepository(EntityStore[Solution]):
    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn, "solutions", Solution, SOLUTION_FIELDS)

    def add(
        self,
        job_id: str,
        name: str,
        solution_type: str,
        description: Optional[str] = None,
    ) -> Solution:
        """Attach a solution to *job_id*.

        Raises:
            NotFound: The job does not exist.
        """
        with transaction(self.conn):
            if self.conn.execute("SELECT 1 FROM jobs WHERE id = ?", (job_id,)).fetchone() is None:
                raise NotFound("Job", job_id)
            return self.create(
                {"job_id": job_id, "name": name, "type": solution_type, "description": description}
            )

    def by_job(self, job_id: str) -> list[Solution]:
        return self.find_many({"job_id": job_id}, order_by="created_at")

    def by_type(self, solution_type: str) -> list[Solution]:
        return self.find_many({"type": solution_type}, order_by="created_at")

    def count_by_job(self, job_id: str) -> int:
        return self.count({"job_id": job_id})

    def counts_by_graph(self, graph_id: str) -> dict[str, int]:
        """Return ``{job_id: solution_count}`` for jobs that have any."""
        rows = self.conn.execute(
            """
            SELECT s.job_id, COUNT(*) AS n
            FROM   solutions AS s
            JOIN   jobs      AS j ON j.id = s.job_id
            WHERE  j.graph_id = ?
            GROUP  BY s.job_id
            """,
            (graph_id,),
        ).fetchall()
        return {r["job_id"]: r["n"] for r in rows}

    def grouped_by_type(self, job_id: str) -> dict[str, list[Solution]]:
        grouped: dict[str, list[Solution]] = {}
        for solution in self.by_job(job_id):
            grouped.setdefault(solution.type, []).append(solution)
        return grouped
