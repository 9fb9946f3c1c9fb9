"""Error kinds raised by the hierarchy engine.

Content problems (a badly phrased formulation, an unknown phase) are never
raised; they are reported by validation or fixed by normalization.  These
exceptions cover structural problems only, and every one of them is raised
before the offending call writes anything.
"""

from __future__ import annotations


class JobTreeError(Exception):
    """Base class for every engine error."""


class NotFound(JobTreeError):
    """A referenced graph, job, solution, edge or anchor does not exist."""

    def __init__(self, kind: str, entity_id: str | None) -> None:
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} not found: {entity_id!r}")


class InvalidHierarchy(JobTreeError):
    """A write would break a parent / level / graph-membership invariant."""


class LimitExceeded(JobTreeError):
    """A sibling set would grow past the per-level maximum."""

    def __init__(self, level: str, parent_id: str | None, maximum: int) -> None:
        self.level = level
        self.parent_id = parent_id
        self.maximum = maximum
        super().__init__(
            f"Cannot add more than {maximum} {level} jobs under parent {parent_id!r}"
        )


class CorruptRecord(JobTreeError):
    """A stored row does not satisfy its entity's own schema on read.

    This signals a storage-layer bug and is not recoverable locally.
    """

    def __init__(self, table: str, entity_id: str | None, detail: str) -> None:
        self.table = table
        self.entity_id = entity_id
        self.detail = detail
        super().__init__(f"Corrupt row in {table} (id={entity_id!r}): {detail}")
