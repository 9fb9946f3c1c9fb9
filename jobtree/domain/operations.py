"""Caller-facing operations over job graphs.

These are what the HTTP routers, the CLI and the generation service call.
Each one runs inside a single :func:`transaction`, so the precondition
reads (does the parent exist, is there room for another sibling) and the
writes that depend on them commit together.  Rejected calls are logged at
``WARNING`` and re-raised unchanged.
"""

from __future__ import annotations

import functools
import logging
import sqlite3
from typing import Any, Callable, Iterable, Mapping, Optional, TypeVar, Union

from jobtree.config import settings
from jobtree.db.connection import transaction
from jobtree.db.edges import EdgeRepository
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobPayload, JobRepository
from jobtree.db.models import Edge, Graph, GraphInput, Job, JobPatch, NewJob, Solution
from jobtree.db.solutions import SolutionRepository
from jobtree.domain.language import get_profile
from jobtree.domain.normalization import extract_label, normalize_formulation
from jobtree.errors import InvalidHierarchy, JobTreeError, LimitExceeded, NotFound

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def _logged(func: F) -> F:
    """Log engine errors raised by *func* at WARNING and re-raise them."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except JobTreeError as exc:
            logger.warning("%s rejected: %s", func.__name__, exc)
            raise

    return wrapper  # type: ignore[return-value]


def _require_graph(conn: sqlite3.Connection, graph_id: str) -> Graph:
    graph = GraphRepository(conn).find_by_id(graph_id)
    if graph is None:
        raise NotFound("Graph", graph_id)
    return graph


def _require_job(conn: sqlite3.Connection, job_id: str) -> Job:
    job = JobRepository(conn).find_by_id(job_id)
    if job is None:
        raise NotFound("Job", job_id)
    return job


def _drafts(payloads: Iterable[JobPayload], level: str, parent_id: str) -> list[NewJob]:
    """Coerce payloads to ``NewJob``s placed at *level* under *parent_id*.

    Mappings may omit ``level``/``parent_id``; a payload that names a
    different placement is rejected.
    """
    drafts = []
    for payload in payloads:
        if isinstance(payload, NewJob):
            draft = payload
        else:
            draft = NewJob.model_validate({"level": level, "parent_id": parent_id, **payload})
        if draft.level != level or draft.parent_id != parent_id:
            raise InvalidHierarchy(
                f"Expected a {level} job under {parent_id!r}, "
                f"got a {draft.level} job under {draft.parent_id!r}"
            )
        drafts.append(draft)
    return drafts


def _check_room(jobs: JobRepository, level: str, parent_id: str, adding: int) -> None:
    maximum = settings.max_children(level)
    if maximum is not None and jobs.count_children(parent_id) + adding > maximum:
        raise LimitExceeded(level, parent_id, maximum)


# ---------------------------------------------------------------------------
# Graphs
# ---------------------------------------------------------------------------

@_logged
def create_graph(
    conn: sqlite3.Connection,
    segment: str,
    core_job: str,
    big_job: Optional[str] = None,
    language: Optional[str] = None,
    options: Optional[dict[str, Any]] = None,
) -> Graph:
    """Create a graph with its core job and, if given, its big job.

    The user's text is kept verbatim in ``graph.input``; the stored job
    formulations are normalised and their labels derived from them.
    """
    language = language or settings.default_language
    get_profile(language)
    graph_input = GraphInput(segment=segment, core_job=core_job, big_job=big_job, options=options)

    def root(level: str, text: str) -> NewJob:
        formulation = normalize_formulation(text, language)
        return NewJob(
            level=level,
            formulation=formulation,
            label=extract_label(formulation, language) or text.strip(),
        )

    with transaction(conn):
        return GraphRepository(conn).create_with_roots(
            graph_input,
            language,
            core=root("core", core_job),
            big=root("big", big_job) if big_job else None,
        )


def get_graph(conn: sqlite3.Connection, graph_id: str) -> Optional[Graph]:
    return GraphRepository(conn).find_by_id(graph_id)


def list_graphs(conn: sqlite3.Connection, limit: int = 20, offset: int = 0) -> list[Graph]:
    return GraphRepository(conn).find_recent(limit=limit, offset=offset)


@_logged
def update_graph(
    conn: sqlite3.Connection,
    graph_id: str,
    language: Optional[str] = None,
    warnings: Optional[list[str]] = None,
) -> Graph:
    """Switch a graph's language and/or replace its warnings.

    Jobs are not re-normalised; run autofix after a language change.
    """
    patch: dict[str, Any] = {}
    if language is not None:
        get_profile(language)
        patch["language"] = language
    if warnings is not None:
        patch["warnings"] = list(warnings)
    if not patch:
        raise ValueError("No fields to update")

    graph = GraphRepository(conn).update(graph_id, patch)
    if graph is None:
        raise NotFound("Graph", graph_id)
    return graph


@_logged
def add_graph_warning(conn: sqlite3.Connection, graph_id: str, warning: str) -> Graph:
    if not warning.strip():
        raise ValueError("Warning text must not be empty")
    graph = GraphRepository(conn).add_warning(graph_id, warning.strip())
    if graph is None:
        raise NotFound("Graph", graph_id)
    return graph


@_logged
def clear_graph_warnings(conn: sqlite3.Connection, graph_id: str) -> Graph:
    graph = GraphRepository(conn).clear_warnings(graph_id)
    if graph is None:
        raise NotFound("Graph", graph_id)
    return graph


def delete_graph(conn: sqlite3.Connection, graph_id: str) -> bool:
    """Delete a graph; its jobs, solutions and edges go with it."""
    deleted = GraphRepository(conn).delete(graph_id)
    if deleted:
        logger.info("Deleted graph %s", graph_id)
    return deleted


# ---------------------------------------------------------------------------
# Jobs
# ---------------------------------------------------------------------------

@_logged
def add_small_jobs(
    conn: sqlite3.Connection, graph_id: str, payloads: Iterable[JobPayload]
) -> list[Job]:
    """Append small jobs under the graph's core job.

    Raises:
        NotFound: The graph does not exist.
        InvalidHierarchy: A payload names another level or parent.
        LimitExceeded: The core job would end up with more than
            ``settings.small_jobs_max`` small jobs.
    """
    with transaction(conn):
        graph = _require_graph(conn, graph_id)
        jobs = JobRepository(conn)
        drafts = _drafts(payloads, "small", graph.core_job_id)
        _check_room(jobs, "small", graph.core_job_id, len(drafts))
        created = jobs.create_many(graph_id, drafts)
        GraphRepository(conn).touch(graph_id)
    return created


@_logged
def add_micro_jobs(
    conn: sqlite3.Connection, small_job_id: str, payloads: Iterable[JobPayload]
) -> list[Job]:
    """Append micro jobs under *small_job_id*.

    Raises:
        NotFound: The small job does not exist.
        InvalidHierarchy: *small_job_id* is not a small job, or a payload
            names another level or parent.
        LimitExceeded: The small job would end up with more than
            ``settings.micro_jobs_max`` micro jobs.
    """
    with transaction(conn):
        parent = _require_job(conn, small_job_id)
        if parent.level != "small":
            raise InvalidHierarchy(f"Micro jobs belong under a small job, not a {parent.level} job")
        jobs = JobRepository(conn)
        drafts = _drafts(payloads, "micro", small_job_id)
        _check_room(jobs, "micro", small_job_id, len(drafts))
        created = jobs.create_many(parent.graph_id, drafts)
        GraphRepository(conn).touch(parent.graph_id)
    return created


@_logged
def insert_job_after(
    conn: sqlite3.Connection, anchor_id: str, payload: JobPayload
) -> Job:
    """Insert a job right after *anchor_id*, unless its sibling set is full."""
    with transaction(conn):
        anchor = _require_job(conn, anchor_id)
        jobs = JobRepository(conn)
        if anchor.parent_id is not None:
            _check_room(jobs, anchor.level, anchor.parent_id, 1)
        job = jobs.insert_after(anchor_id, payload)
        GraphRepository(conn).touch(anchor.graph_id)
    return job


@_logged
def reorder_jobs(
    conn: sqlite3.Connection,
    graph_id: str,
    parent_id: Optional[str],
    job_ids: Iterable[str],
) -> list[Job]:
    """Give the children of *parent_id* (roots when ``None``) the order of *job_ids*.

    *job_ids* must list every child exactly once.
    """
    ids = list(job_ids)
    with transaction(conn):
        _require_graph(conn, graph_id)
        jobs = JobRepository(conn)
        if parent_id is not None:
            parent = _require_job(conn, parent_id)
            if parent.graph_id != graph_id:
                raise InvalidHierarchy(f"Parent {parent_id!r} is not in graph {graph_id!r}")
        foreign = [
            job.id
            for job in (jobs.find_by_id(i) for i in ids)
            if job is not None and (job.graph_id, job.parent_id) != (graph_id, parent_id)
        ]
        if foreign:
            raise InvalidHierarchy(f"Jobs {foreign} are not children of {parent_id!r}")
        result = jobs.reorder(ids)
        GraphRepository(conn).touch(graph_id)
    return result


@_logged
def update_job(
    conn: sqlite3.Connection, job_id: str, patch: Union[JobPatch, Mapping[str, Any]]
) -> Job:
    with transaction(conn):
        job = JobRepository(conn).update_job(job_id, patch)
        GraphRepository(conn).touch(job.graph_id)
    return job


@_logged
def delete_job(conn: sqlite3.Connection, job_id: str) -> bool:
    """Delete a small or micro job with everything under it.

    Big and core jobs anchor the graph and are removed only with it.
    Returns ``False`` when the job does not exist.
    """
    with transaction(conn):
        jobs = JobRepository(conn)
        job = jobs.find_by_id(job_id)
        if job is None:
            return False
        if job.level in ("big", "core"):
            raise InvalidHierarchy(f"A {job.level} job is deleted together with its graph")
        jobs.delete(job_id)
        GraphRepository(conn).touch(job.graph_id)
    return True


def get_job(conn: sqlite3.Connection, job_id: str) -> Optional[Job]:
    return JobRepository(conn).find_by_id(job_id)


def list_children(conn: sqlite3.Connection, job_id: str) -> list[Job]:
    """Direct children of *job_id* in order.

    Raises:
        NotFound: The job does not exist.
    """
    _require_job(conn, job_id)
    return JobRepository(conn).children_of(job_id)


# ---------------------------------------------------------------------------
# Solutions
# ---------------------------------------------------------------------------

@_logged
def add_solution(
    conn: sqlite3.Connection,
    job_id: str,
    name: str,
    solution_type: str,
    description: Optional[str] = None,
) -> Solution:
    return SolutionRepository(conn).add(job_id, name, solution_type, description)


def list_solutions(conn: sqlite3.Connection, job_id: str) -> list[Solution]:
    _require_job(conn, job_id)
    return SolutionRepository(conn).by_job(job_id)


def delete_solution(conn: sqlite3.Connection, solution_id: str) -> bool:
    return SolutionRepository(conn).delete(solution_id)


# ---------------------------------------------------------------------------
# Edges
# ---------------------------------------------------------------------------

@_logged
def connect_jobs(
    conn: sqlite3.Connection,
    from_id: str,
    to_id: str,
    edge_type: str = "next",
    note: Optional[str] = None,
) -> Edge:
    return EdgeRepository(conn).connect(from_id, to_id, edge_type, note)


def list_edges(conn: sqlite3.Connection, graph_id: str) -> list[Edge]:
    _require_graph(conn, graph_id)
    return EdgeRepository(conn).by_graph(graph_id)


def disconnect(conn: sqlite3.Connection, edge_id: str) -> bool:
    return EdgeRepository(conn).delete(edge_id)
