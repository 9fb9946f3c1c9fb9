"""Domain layer: operations, validation, normalization and views over job graphs."""

from jobtree.domain.normalization import autofix, normalize_job
from jobtree.domain.validation import ValidationResult, is_valid, validate
from jobtree.domain.views import mermaid_view, render_view, timeline_view

__all__ = [
    "autofix",
    "normalize_job",
    "ValidationResult",
    "is_valid",
    "validate",
    "mermaid_view",
    "render_view",
    "timeline_view",
]
