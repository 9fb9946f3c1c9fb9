"""FastAPI application factory.

Lifespan
--------
On startup the app configures logging and initialises the schema.  Every
request then opens its own SQLite connection through
:func:`jobtree.api.deps.get_db`, which closes it when the response is sent.

Routers
-------
    /graphs     graph creation, listing, validation, autofix and views
    /jobs       job insertion, update, reorder and delete
    /solutions  solutions attached to jobs
    /edges      explicit relations between jobs

Errors
------
Engine errors map onto status codes in one place:

    NotFound          404
    InvalidHierarchy  409
    LimitExceeded     409
    CorruptRecord     500
    ValueError        422   (includes pydantic validation of stored records)
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from jobtree import __version__
from jobtree.config import configure_logging
from jobtree.db import get_connection, init_db
from jobtree.errors import CorruptRecord, InvalidHierarchy, LimitExceeded, NotFound

from jobtree.api.routers import edges as edges_router
from jobtree.api.routers import graphs as graphs_router
from jobtree.api.routers import jobs as jobs_router
from jobtree.api.routers import solutions as solutions_router

logger = logging.getLogger(__name__)

_STATUS_BY_ERROR: dict[type[Exception], int] = {
    NotFound: 404,
    InvalidHierarchy: 409,
    LimitExceeded: 409,
    CorruptRecord: 500,
    ValueError: 422,
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create the schema once; requests open their own connections."""
    configure_logging()
    conn = get_connection()
    try:
        init_db(conn)
    finally:
        conn.close()
    yield


async def _engine_error(request: Request, exc: Exception) -> JSONResponse:
    status = next(
        code for kind, code in _STATUS_BY_ERROR.items() if isinstance(exc, kind)
    )
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Return a fully-configured FastAPI application instance."""
    app = FastAPI(
        title="jobtree API",
        description=(
            "REST interface for the job hierarchy engine. "
            "Builds big → core → small → micro job graphs, validates and "
            "normalises their wording, and renders timeline and Mermaid views."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for kind in _STATUS_BY_ERROR:
        app.add_exception_handler(kind, _engine_error)

    app.include_router(graphs_router.router, prefix="/graphs", tags=["graphs"])
    app.include_router(jobs_router.router, prefix="/jobs", tags=["jobs"])
    app.include_router(solutions_router.router, prefix="/solutions", tags=["solutions"])
    app.include_router(edges_router.router, prefix="/edges", tags=["edges"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn jobtree.api.app:app --reload
app = create_app()
