"""SQLite connection factory and the transaction primitive.

Usage::

    from jobtree.db.connection import get_connection, transaction

    conn = get_connection()
    with transaction(conn):
        conn.execute("UPDATE jobs SET ...")
"""

from __future__ import annotations

import sqlite3
import threading
import uuid
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional

from jobtree.config import settings


class JobTreeConnection(sqlite3.Connection):
    """A connection that carries the lock :func:`transaction` holds.

    The lock is re-entrant: nested transactions on the owning thread go
    through, other threads wait until the outermost transaction ends.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.write_lock = threading.RLock()


def get_connection(db_path: Optional[Path] = None) -> JobTreeConnection:
    """Open and configure a SQLite connection.

    Steps performed on every new connection:
    1. Disable the driver's implicit transactions (``isolation_level=None``);
       all transaction boundaries come from :func:`transaction`.
    2. Enable ``PRAGMA foreign_keys = ON`` so deletes cascade.
    3. Switch to WAL journal mode for concurrent readers.

    Args:
        db_path: Override the DB path.  Defaults to ``settings.db_path``.

    Returns:
        A configured :class:`JobTreeConnection` with ``row_factory`` set to
        :class:`sqlite3.Row` so columns can be accessed by name.
    """
    path = db_path or settings.db_path

    # Create parent directory if needed (no-op for `:memory:`)
    if str(path) != ":memory:":
        settings.ensure_workspace()

    conn = sqlite3.connect(
        str(path),
        check_same_thread=False,
        isolation_level=None,
        factory=JobTreeConnection,
    )
    conn.row_factory = sqlite3.Row

    # PRAGMAs
    conn.execute("PRAGMA foreign_keys = ON")
    conn.execute("PRAGMA journal_mode = WAL")

    return conn  # type: ignore[return-value]


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """Run the enclosed block as one atomic unit.

    The outermost call issues ``BEGIN IMMEDIATE`` so the writer lock is held
    before any precondition is read.  Nested calls become savepoints, which
    lets a batch (e.g. ``create_many``) reuse single-row helpers that open
    their own transaction.  Any exception rolls back to the state at entry
    and is re-raised.

    The connection's ``write_lock`` is held for the whole outermost
    transaction, so a second thread sharing the connection waits for the
    commit instead of nesting into someone else's transaction.
    """
    with conn.write_lock:  # type: ignore[attr-defined]
        if conn.in_transaction:
            name = f"sp_{uuid.uuid4().hex}"
            conn.execute(f"SAVEPOINT {name}")
            try:
                yield conn
            except BaseException:
                conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
                conn.execute(f"RELEASE SAVEPOINT {name}")
                raise
            else:
                conn.execute(f"RELEASE SAVEPOINT {name}")
            return

        conn.execute("BEGIN IMMEDIATE")
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            conn.execute("COMMIT")
