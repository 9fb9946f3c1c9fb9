"""jobtree: storage, validation, normalization and views for job hierarchies."""

__version__ = "0.1.0"
