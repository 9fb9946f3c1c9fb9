"""Request-scoped dependencies shared by the routers."""

from __future__ import annotations

import sqlite3
from typing import Iterator

from jobtree.db import get_connection


def get_db() -> Iterator[sqlite3.Connection]:
    """Open a connection for one request and close it when the request ends.

    Requests never share a connection: each one reads only committed rows,
    and its writes wait on SQLite's writer lock instead of nesting into
    another request's transaction.
    """
    conn = get_connection()
    try:
        yield conn
    finally:
        conn.close()
