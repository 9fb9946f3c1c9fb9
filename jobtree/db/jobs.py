"""Hierarchy repository for the ``jobs`` table.

Every job lives in a sibling scope ``(graph_id, parent_id)``.  Within a
scope, ``sort_order`` values are always exactly ``0 .. n-1``: batch
creation numbers from the current end of the scope, ``insert_after`` shifts
the tail up by one, ``delete`` shifts it back down, and ``reorder``
rewrites the whole scope.  Each of those runs inside one transaction, so a
reader never sees a half-shifted scope.

Level rules enforced on every insert:

    big    parent is NULL, one per graph
    core   parent is NULL or the graph's big job, one per graph
    small  parent is the graph's core job
    micro  parent is a small job of the same graph

``big``/``core`` jobs always sit in the ``during`` phase, and a micro job
takes its phase from its small parent.
"""

from __future__ import annotations

import logging
import sqlite3
from time import time
from typing import Any, Iterable, Mapping, Optional, Union

from jobtree.db.connection import transaction
from jobtree.db.models import Job, JobPatch, NewJob
from jobtree.db.store import Column, EntityStore
from jobtree.errors import InvalidHierarchy, NotFound

logger = logging.getLogger(__name__)

JOB_FIELDS: dict[str, Column] = {
    "id": Column("id"),
    "graph_id": Column("graph_id"),
    "level": Column("level"),
    "parent_id": Column("parent_id"),
    "formulation": Column("formulation"),
    "label": Column("label"),
    "phase": Column("phase"),
    "cadence": Column("cadence"),
    "cadence_hint": Column("cadence_hint"),
    "when_text": Column("when_text"),
    "want": Column("want"),
    "so_that": Column("so_that"),
    "suggested_next": Column("suggested_next"),
    "scores": Column("scores_json", json=True),
    "sort_order": Column("sort_order"),
    "created_at": Column("created_at"),
    "updated_at": Column("updated_at"),
}

# Level each level's parent must have (None: must be a root).
PARENT_LEVEL: dict[str, Optional[str]] = {
    "big": None,
    "core": "big",
    "small": "core",
    "micro": "small",
}

# Fields that define a job's place in the tree and cannot be patched.
IMMUTABLE_FIELDS = frozenset(
    {"id", "graph_id", "level", "parent_id", "sort_order", "created_at", "updated_at"}
)

_LEVEL_RANK_SQL = "CASE level WHEN 'big' THEN 0 WHEN 'core' THEN 1 WHEN 'small' THEN 2 ELSE 3 END"

JobPayload = Union[NewJob, Mapping[str, Any]]


def _coerce(payload: JobPayload) -> NewJob:
    return payload if isinstance(payload, NewJob) else NewJob.model_validate(payload)


class JobRepository(EntityStore[Job]):
    """Jobs plus the tree operations built on top of the generic store."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn, "jobs", Job, JOB_FIELDS)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def by_graph(self, graph_id: str) -> list[Job]:
        """All jobs of a graph, big → core → small → micro, then by sort order."""
        return self._select(
            f"""
            SELECT * FROM jobs
            WHERE  graph_id = ?
            ORDER  BY {_LEVEL_RANK_SQL}, sort_order, rowid
            """,
            (graph_id,),
        )

    def children_of(self, parent_id: str) -> list[Job]:
        """Direct children of *parent_id*, ordered by ``sort_order``."""
        return self.find_many({"parent_id": parent_id}, order_by="sort_order")

    def roots_of(self, graph_id: str) -> list[Job]:
        """Parentless jobs of a graph, ordered by ``sort_order``."""
        return self.scope(graph_id, None)

    def scope(self, graph_id: str, parent_id: Optional[str]) -> list[Job]:
        """Every job in the sibling scope ``(graph_id, parent_id)``."""
        return self.find_many(
            {"graph_id": graph_id, "parent_id": parent_id}, order_by="sort_order"
        )

    def siblings_of(self, job: Job) -> list[Job]:
        """The scope *job* belongs to, including *job* itself."""
        return self.scope(job.graph_id, job.parent_id)

    def by_level(self, graph_id: str, level: str) -> list[Job]:
        return self._select(
            "SELECT * FROM jobs WHERE graph_id = ? AND level = ? ORDER BY sort_order, rowid",
            (graph_id, level),
        )

    def by_phase(self, graph_id: str, phase: str) -> list[Job]:
        return self._select(
            "SELECT * FROM jobs WHERE graph_id = ? AND phase = ? ORDER BY sort_order, rowid",
            (graph_id, phase),
        )

    def count_children(self, parent_id: str) -> int:
        return self.count({"parent_id": parent_id})

    def count_by_level(self, graph_id: str, level: str) -> int:
        return self.count({"graph_id": graph_id, "level": level})

    def next_sort_order(self, graph_id: str, parent_id: Optional[str]) -> int:
        """``1 + max(sort_order)`` over the scope, or ``0`` when it is empty."""
        row = self.conn.execute(
            "SELECT MAX(sort_order) FROM jobs WHERE graph_id = ? AND parent_id IS ?",
            (graph_id, parent_id),
        ).fetchone()
        return 0 if row[0] is None else row[0] + 1

    def hierarchy(self, graph_id: str) -> dict[str, Any]:
        """Jobs of a graph organised by level; micros grouped by small-job id."""
        jobs = self.by_graph(graph_id)
        micro: dict[str, list[Job]] = {}
        for job in jobs:
            if job.level == "micro" and job.parent_id:
                micro.setdefault(job.parent_id, []).append(job)
        return {
            "big": next((j for j in jobs if j.level == "big"), None),
            "core": next((j for j in jobs if j.level == "core"), None),
            "small": [j for j in jobs if j.level == "small"],
            "micro": micro,
        }

    # ------------------------------------------------------------------
    # Structural checks
    # ------------------------------------------------------------------

    def require_graph(self, graph_id: str) -> None:
        row = self.conn.execute("SELECT 1 FROM graphs WHERE id = ?", (graph_id,)).fetchone()
        if row is None:
            raise NotFound("Graph", graph_id)

    def check_parent(self, graph_id: str, level: str, parent_id: Optional[str]) -> Optional[Job]:
        """Verify that a *level* job may hang under *parent_id* in *graph_id*.

        Returns the parent job (``None`` for roots).

        Raises:
            NotFound: *parent_id* does not exist.
            InvalidHierarchy: wrong parent level, foreign graph, or a second
                big/core job in the same graph.
        """
        if level in ("big", "core") and self.count_by_level(graph_id, level) > 0:
            raise InvalidHierarchy(f"Graph {graph_id!r} already has a {level} job")

        expected = PARENT_LEVEL[level]
        if parent_id is None:
            if level in ("big", "core"):
                return None
            raise InvalidHierarchy(f"A {level} job needs a {expected} parent")
        if expected is None:
            raise InvalidHierarchy("A big job cannot have a parent")

        parent = self.find_by_id(parent_id)
        if parent is None:
            raise NotFound("Job", parent_id)
        if parent.graph_id != graph_id:
            raise InvalidHierarchy(
                f"Parent {parent_id!r} belongs to graph {parent.graph_id!r}, not {graph_id!r}"
            )
        if parent.level != expected:
            raise InvalidHierarchy(
                f"A {level} job needs a {expected} parent, got a {parent.level} job"
            )
        return parent

    def build_record(
        self,
        graph_id: str,
        draft: NewJob,
        parent: Optional[Job],
        sort_order: int,
        template: Optional[Job] = None,
    ) -> dict[str, Any]:
        """Turn an insertion payload into a full row for the store.

        Missing ``phase``/``cadence`` come from *template* (the anchor of an
        insert-after) and otherwise default to ``unknown``/``once``.
        """
        data = draft.model_dump()
        if draft.level in ("big", "core"):
            data["phase"] = "during"
        elif draft.level == "micro" and parent is not None:
            data["phase"] = parent.phase
        elif data["phase"] is None:
            data["phase"] = template.phase if template else "unknown"

        if data["cadence"] is None:
            data["cadence"] = template.cadence if template else "once"
            if template and data["cadence_hint"] is None:
                data["cadence_hint"] = template.cadence_hint

        data["graph_id"] = graph_id
        data["sort_order"] = sort_order
        return data

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add(self, graph_id: str, payload: JobPayload) -> Job:
        """Append one job at the end of its sibling scope."""
        draft = _coerce(payload)
        with transaction(self.conn):
            self.require_graph(graph_id)
            parent = self.check_parent(graph_id, draft.level, draft.parent_id)
            position = self.next_sort_order(graph_id, draft.parent_id)
            job = self.create(self.build_record(graph_id, draft, parent, position))
        logger.debug("Added %s job %s at position %d", job.level, job.id, position)
        return job

    def create_many(self, graph_id: str, payloads: Iterable[JobPayload]) -> list[Job]:
        """Insert a batch of siblings in one transaction.

        Every payload must share ``level`` and ``parent_id``.  ``sort_order``
        is the position in *payloads*, offset by the scope's current
        ``next_sort_order`` so the scope stays contiguous.  If any insert
        fails, none of the batch is kept.
        """
        drafts = [_coerce(p) for p in payloads]
        if not drafts:
            return []
        scopes = {(d.level, d.parent_id) for d in drafts}
        if len(scopes) > 1:
            raise InvalidHierarchy("A batch must contain siblings of one level under one parent")
        level, parent_id = scopes.pop()
        if level in ("big", "core") and len(drafts) > 1:
            raise InvalidHierarchy(f"A graph holds a single {level} job")

        with transaction(self.conn):
            self.require_graph(graph_id)
            parent = self.check_parent(graph_id, level, parent_id)
            offset = self.next_sort_order(graph_id, parent_id)
            created = [
                self.create(self.build_record(graph_id, draft, parent, offset + index))
                for index, draft in enumerate(drafts)
            ]
        logger.info(
            "Created %d %s jobs under %s in graph %s", len(created), level, parent_id, graph_id
        )
        return created

    def insert_after(self, anchor_id: str, payload: JobPayload) -> Job:
        """Insert a new job as the immediate next sibling of *anchor_id*.

        Siblings after the anchor move up by one, then the new job takes
        ``anchor.sort_order + 1``.  ``level`` and ``parent_id`` default to
        the anchor's; giving different ones is an ``InvalidHierarchy``.

        Raises:
            NotFound: The anchor does not exist.
        """
        with transaction(self.conn):
            anchor = self.find_by_id(anchor_id)
            if anchor is None:
                raise NotFound("Job", anchor_id)

            if isinstance(payload, NewJob):
                draft = payload
            else:
                draft = NewJob.model_validate(
                    {"level": anchor.level, "parent_id": anchor.parent_id, **payload}
                )
            if draft.level != anchor.level or draft.parent_id != anchor.parent_id:
                raise InvalidHierarchy(
                    "An inserted job must share the anchor's level and parent"
                )
            if anchor.level in ("big", "core"):
                raise InvalidHierarchy(f"A graph holds a single {anchor.level} job")

            parent = self.check_parent(anchor.graph_id, anchor.level, anchor.parent_id)
            self.conn.execute(
                """
                UPDATE jobs
                SET    sort_order = sort_order + 1, updated_at = ?
                WHERE  graph_id = ? AND parent_id IS ? AND sort_order > ?
                """,
                (int(time()), anchor.graph_id, anchor.parent_id, anchor.sort_order),
            )
            job = self.create(
                self.build_record(
                    anchor.graph_id, draft, parent, anchor.sort_order + 1, template=anchor
                )
            )
        logger.info("Inserted %s job %s after %s", job.level, job.id, anchor_id)
        return job

    def reorder(self, ordered_ids: Iterable[str]) -> list[Job]:
        """Rewrite ``sort_order = index`` for a complete sibling scope.

        *ordered_ids* must be exactly the current members of one
        ``(graph_id, parent_id)`` scope: no duplicates, nothing missing,
        nothing extra.  All checks run before the first write.

        Returns:
            The scope re-read in its new order.
        """
        ids = list(ordered_ids)
        if not ids:
            raise InvalidHierarchy("reorder needs at least one job id")
        if len(set(ids)) != len(ids):
            dupes = sorted({i for i in ids if ids.count(i) > 1})
            raise InvalidHierarchy(f"Duplicate job ids in reorder: {dupes}")

        with transaction(self.conn):
            jobs = []
            for job_id in ids:
                job = self.find_by_id(job_id)
                if job is None:
                    raise NotFound("Job", job_id)
                jobs.append(job)

            scopes = {(j.graph_id, j.parent_id) for j in jobs}
            if len(scopes) > 1:
                raise InvalidHierarchy("All jobs in a reorder must share one parent and graph")
            graph_id, parent_id = scopes.pop()

            current = {j.id for j in self.scope(graph_id, parent_id)}
            missing = current - set(ids)
            if missing:
                raise InvalidHierarchy(
                    f"reorder must list every sibling; missing {sorted(missing)}"
                )

            now = int(time())
            for index, job_id in enumerate(ids):
                self.conn.execute(
                    "UPDATE jobs SET sort_order = ?, updated_at = ? WHERE id = ?",
                    (index, now, job_id),
                )
            result = self.scope(graph_id, parent_id)
        logger.info("Reordered %d jobs under %s in graph %s", len(ids), parent_id, graph_id)
        return result

    def update_job(self, job_id: str, patch: Union[JobPatch, Mapping[str, Any]]) -> Job:
        """Patch content fields of a job.

        Structural fields (level, parent, graph, sort order) are rejected.
        Phase may only change on small jobs; the new phase is copied to the
        job's micro children in the same transaction.
        """
        if isinstance(patch, JobPatch):
            changes = patch.model_dump(exclude_unset=True)
        else:
            blocked = IMMUTABLE_FIELDS & patch.keys()
            if blocked:
                raise InvalidHierarchy(f"Cannot patch structural field(s) {sorted(blocked)}")
            changes = JobPatch.model_validate(patch).model_dump(exclude_unset=True)

        with transaction(self.conn):
            job = self.find_by_id(job_id)
            if job is None:
                raise NotFound("Job", job_id)
            phase_changed = "phase" in changes and changes["phase"] != job.phase
            if phase_changed and job.level != "small":
                raise InvalidHierarchy(f"The phase of a {job.level} job is fixed")

            updated = self.update(job_id, changes)
            if phase_changed:
                self.conn.execute(
                    "UPDATE jobs SET phase = ?, updated_at = ? WHERE parent_id = ?",
                    (changes["phase"], int(time()), job_id),
                )
        return updated  # type: ignore[return-value]

    def delete(self, job_id: str) -> bool:
        """Delete a job with its subtree, solutions and edges.

        Descendants, solutions and edges go via ``ON DELETE CASCADE``; the
        remaining siblings are shifted down to close the gap.
        """
        with transaction(self.conn):
            job = self.find_by_id(job_id)
            if job is None:
                return False
            super().delete(job_id)
            self.conn.execute(
                """
                UPDATE jobs
                SET    sort_order = sort_order - 1, updated_at = ?
                WHERE  graph_id = ? AND parent_id IS ? AND sort_order > ?
                """,
                (int(time()), job.graph_id, job.parent_id, job.sort_order),
            )
        logger.info("Deleted %s job %s", job.level, job_id)
        return True
