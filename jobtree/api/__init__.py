"""FastAPI HTTP layer package.

Public re-export so callers can write::

    from jobtree.api import app

    uvicorn jobtree.api:app --reload
"""

from jobtree.api.app import app

__all__ = ["app"]
