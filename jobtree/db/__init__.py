"""Database layer package.

Public re-exports so callers can write::

    from jobtree.db import get_connection, init_db, transaction
    from jobtree.db import JobRepository
"""

from jobtree.db.connection import get_connection, transaction
from jobtree.db.edges import EdgeRepository
from jobtree.db.graphs import GraphRepository
from jobtree.db.jobs import JobRepository
from jobtree.db.migrations import init_db
from jobtree.db.solutions import SolutionRepository

__all__ = [
    "get_connection",
    "init_db",
    "transaction",
    "EdgeRepository",
    "GraphRepository",
    "JobRepository",
    "SolutionRepository",
]
