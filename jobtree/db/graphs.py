"""Repository for the ``graphs`` table."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from time import time
from typing import Optional

from jobtree.db.connection import transaction
from jobtree.db.jobs import JobRepository
from jobtree.db.models import Graph, GraphInput, NewJob
from jobtree.db.store import Column, EntityStore

logger = logging.getLogger(__name__)

GRAPH_FIELDS: dict[str, Column] = {
    "id": Column("id"),
    "language": Column("language"),
    "input": Column("input_json", json=True),
    "core_job_id": Column("core_job_id"),
    "big_job_id": Column("big_job_id"),
    "warnings": Column("warnings_json", json=True),
    "created_at": Column("created_at"),
    "updated_at": Column("updated_at"),
}


class GraphRepository(EntityStore[Graph]):
    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn, "graphs", Graph, GRAPH_FIELDS)

    def create_with_roots(
        self,
        graph_input: GraphInput,
        language: str,
        core: NewJob,
        big: Optional[NewJob] = None,
    ) -> Graph:
        """Create a graph together with its core job (and optional big job).

        The three rows are written in one transaction; the graph's
        ``core_job_id``/``big_job_id`` point at the jobs created here.
        """
        jobs = JobRepository(self.conn)
        core_id = str(uuid.uuid4())
        big_id = str(uuid.uuid4()) if big is not None else None

        with transaction(self.conn):
            graph = self.create(
                {
                    "language": language,
                    "input": graph_input.model_dump(),
                    "core_job_id": core_id,
                    "big_job_id": big_id,
                    "warnings": [],
                }
            )
            if big is not None:
                big_draft = big.model_copy(update={"level": "big", "parent_id": None})
                jobs.check_parent(graph.id, "big", None)
                jobs.create(jobs.build_record(graph.id, big_draft, None, 0), entity_id=big_id)

            core_draft = core.model_copy(update={"level": "core", "parent_id": big_id})
            parent = jobs.check_parent(graph.id, "core", big_id)
            jobs.create(jobs.build_record(graph.id, core_draft, parent, 0), entity_id=core_id)

        logger.info("Created graph %s (language=%s, big_job=%s)", graph.id, language, bool(big))
        return graph

    def find_recent(self, limit: int = 20, offset: int = 0) -> list[Graph]:
        """Most recently updated graphs first."""
        return self.find_many(limit=limit, offset=offset, order_by="updated_at", descending=True)

    def find_by_segment(self, segment: str) -> list[Graph]:
        """Case-insensitive substring search on the segment text."""
        return self._select(
            """
            SELECT * FROM graphs
            WHERE  json_extract(input_json, '$.segment') LIKE ?
            ORDER  BY updated_at DESC, rowid
            """,
            (f"%{segment}%",),
        )

    def touch(self, graph_id: str) -> None:
        """Refresh ``updated_at`` without changing anything else."""
        self.conn.execute(
            "UPDATE graphs SET updated_at = ? WHERE id = ?", (int(time()), graph_id)
        )

    def add_warning(self, graph_id: str, warning: str) -> Optional[Graph]:
        with transaction(self.conn):
            graph = self.find_by_id(graph_id)
            if graph is None:
                return None
            return self.update(graph_id, {"warnings": [*graph.warnings, warning]})

    def clear_warnings(self, graph_id: str) -> Optional[Graph]:
        return self.update(graph_id, {"warnings": []})
