"""Read-only quality checks over a stored job graph.

Content problems (a formulation without the first-person prefix, a label
that still carries one, a job with two actions in it) are *reported*, never
raised.  Only a missing graph raises.
"""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Any, Literal, Optional

from jobtree.config import settings
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobRepository
from jobtree.db.models import Job
from jobtree.db.solutions import SolutionRepository
from jobtree.domain.language import LanguageProfile, get_profile
from jobtree.errors import NotFound

Severity = Literal["error", "warning"]


@dataclass
class ValidationIssue:
    code: str
    message: str
    job_id: Optional[str] = None
    field: Optional[str] = None
    severity: Severity = "error"


@dataclass
class ValidationResult:
    valid: bool
    errors: list[ValidationIssue] = field(default_factory=list)
    warnings: list[ValidationIssue] = field(default_factory=list)
    stats: dict[str, Any] = field(default_factory=dict)


def _check_job(job: Job, profile: LanguageProfile) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    if profile.match_prefix(job.formulation.strip()) is None:
        issues.append(
            ValidationIssue(
                code="INVALID_FORMULATION",
                message=f"Formulation must start with {profile.canonical_prefix!r}: {job.formulation!r}",
                job_id=job.id,
                field="formulation",
            )
        )

    label = job.label.strip()
    if not label:
        issues.append(
            ValidationIssue(
                code="INVALID_LABEL",
                message="Label is empty",
                job_id=job.id,
                field="label",
            )
        )
    elif profile.match_prefix(label) is not None:
        issues.append(
            ValidationIssue(
                code="INVALID_LABEL",
                message=f"Label must not start with a first-person prefix: {job.label!r}",
                job_id=job.id,
                field="label",
            )
        )

    if profile.has_conjunction(job.formulation):
        issues.append(
            ValidationIssue(
                code="MULTIPLE_ACTIONS",
                message="Formulation seems to describe more than one action",
                job_id=job.id,
                field="formulation",
                severity="warning",
            )
        )

    if job.phase == "unknown":
        issues.append(
            ValidationIssue(
                code="UNKNOWN_PHASE",
                message=f"Phase of {job.label!r} is unknown",
                job_id=job.id,
                field="phase",
                severity="warning",
            )
        )
    return issues


def _check_counts(small: list[Job], micro_counts: dict[str, int]) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []

    n = len(small)
    if n < settings.small_jobs_min:
        issues.append(
            ValidationIssue(
                code="TOO_FEW_SMALL_JOBS",
                message=f"{n} small jobs, expected at least {settings.small_jobs_min}",
                severity="warning",
            )
        )
    elif n > settings.small_jobs_max:
        issues.append(
            ValidationIssue(
                code="TOO_MANY_SMALL_JOBS",
                message=f"{n} small jobs, expected at most {settings.small_jobs_max}",
                severity="warning",
            )
        )

    for job in small:
        count = micro_counts[job.id]
        if count < settings.micro_jobs_min:
            code, bound = "TOO_FEW_MICRO_JOBS", f"at least {settings.micro_jobs_min}"
        elif count > settings.micro_jobs_max:
            code, bound = "TOO_MANY_MICRO_JOBS", f"at most {settings.micro_jobs_max}"
        else:
            continue
        issues.append(
            ValidationIssue(
                code=code,
                message=f"{job.label!r} has {count} micro jobs, expected {bound}",
                job_id=job.id,
                severity="warning",
            )
        )
    return issues


def validate(conn: sqlite3.Connection, graph_id: str) -> ValidationResult:
    """Check every job of *graph_id* against its language profile and the count bounds.

    Raises:
        NotFound: The graph does not exist.
    """
    graph = GraphRepository(conn).find_by_id(graph_id)
    if graph is None:
        raise NotFound("Graph", graph_id)
    profile = get_profile(graph.language)

    jobs = JobRepository(conn).by_graph(graph_id)
    small = [j for j in jobs if j.level == "small"]
    micro_counts = {j.id: 0 for j in small}
    for job in jobs:
        if job.level == "micro" and job.parent_id in micro_counts:
            micro_counts[job.parent_id] += 1

    issues: list[ValidationIssue] = []
    for job in jobs:
        issues.extend(_check_job(job, profile))
    issues.extend(_check_counts(small, micro_counts))

    errors = [i for i in issues if i.severity == "error"]
    warnings = [i for i in issues if i.severity == "warning"]
    solution_counts = SolutionRepository(conn).counts_by_graph(graph_id)

    return ValidationResult(
        valid=not errors,
        errors=errors,
        warnings=warnings,
        stats={
            "total_jobs": len(jobs),
            "small_job_count": len(small),
            "micro_job_counts": micro_counts,
            "jobs_with_solutions": len(solution_counts),
            "jobs_with_scores": sum(1 for j in jobs if j.scores is not None),
        },
    )


def is_valid(conn: sqlite3.Connection, graph_id: str) -> bool:
    return validate(conn, graph_id).valid
