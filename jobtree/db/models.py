"""pydantic models representing DB rows and insertion payloads.

These are plain data objects, not ORM models.  The store serialises /
deserialises to and from these types and re-validates every row it reads,
so a row that breaks the model surfaces as ``CorruptRecord`` instead of a
half-populated object.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

JobLevel = Literal["big", "core", "small", "micro"]
Phase = Literal["before", "during", "after", "unknown"]
Cadence = Literal["once", "repeat"]
SolutionType = Literal["self", "product", "service", "our_product", "partner"]
EdgeType = Literal["next", "depends_on", "optional", "repeats"]
Language = Literal["ru", "en"]

LEVELS: tuple[str, ...] = ("big", "core", "small", "micro")
PHASES: tuple[str, ...] = ("before", "during", "after", "unknown")
CADENCES: tuple[str, ...] = ("once", "repeat")
SOLUTION_TYPES: tuple[str, ...] = ("self", "product", "service", "our_product", "partner")
EDGE_TYPES: tuple[str, ...] = ("next", "depends_on", "optional", "repeats")


class JobScores(BaseModel):
    model_config = ConfigDict(extra="forbid")

    user_cost: int = Field(ge=1, le=10)
    user_benefit: int = Field(ge=1, le=10)
    cost_rationale: str = ""
    benefit_rationale: str = ""


class GraphInput(BaseModel):
    """What the user typed when the graph was created."""

    segment: str = Field(min_length=1)
    core_job: str = Field(min_length=1)
    big_job: Optional[str] = None
    options: Optional[dict[str, Any]] = None


class Graph(BaseModel):
    id: str
    language: Language
    input: GraphInput
    core_job_id: str
    big_job_id: Optional[str] = None
    warnings: list[str] = Field(default_factory=list)
    created_at: int
    updated_at: int


class Job(BaseModel):
    id: str
    graph_id: str
    level: JobLevel
    parent_id: Optional[str] = None
    formulation: str
    label: str
    phase: Phase
    cadence: Cadence
    cadence_hint: Optional[str] = None
    when_text: Optional[str] = None
    want: Optional[str] = None
    so_that: Optional[str] = None
    suggested_next: Optional[str] = None
    scores: Optional[JobScores] = None
    sort_order: int = Field(ge=0)
    created_at: int
    updated_at: int


class NewJob(BaseModel):
    """Insertion payload for one job.

    The same shape is used by manual edits and by the generation service.
    ``phase`` and ``cadence`` may be left out; the repository fills them
    from the anchor (insert-after) or the defaults.
    """

    model_config = ConfigDict(extra="forbid")

    level: JobLevel
    parent_id: Optional[str] = None
    formulation: str = Field(min_length=1)
    label: str = Field(min_length=1)
    phase: Optional[Phase] = None
    cadence: Optional[Cadence] = None
    cadence_hint: Optional[str] = None
    when_text: Optional[str] = None
    want: Optional[str] = None
    so_that: Optional[str] = None
    suggested_next: Optional[str] = None
    scores: Optional[JobScores] = None


class JobPatch(BaseModel):
    """Fields a caller may change on an existing job."""

    model_config = ConfigDict(extra="forbid")

    formulation: Optional[str] = Field(default=None, min_length=1)
    label: Optional[str] = Field(default=None, min_length=1)
    phase: Optional[Phase] = None
    cadence: Optional[Cadence] = None
    cadence_hint: Optional[str] = None
    when_text: Optional[str] = None
    want: Optional[str] = None
    so_that: Optional[str] = None
    suggested_next: Optional[str] = None
    scores: Optional[JobScores] = None


class Solution(BaseModel):
    id: str
    job_id: str
    name: str = Field(min_length=1)
    type: SolutionType
    description: Optional[str] = None
    created_at: int
    updated_at: int


class Edge(BaseModel):
    id: str
    graph_id: str
    from_id: str
    to_id: str
    type: EdgeType
    note: Optional[str] = None
    created_at: int
    updated_at: int
