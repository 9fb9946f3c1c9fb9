"""Generic CRUD over one table, parameterised by a pydantic model.

Each entity declares a static ``{field_name: Column}`` map.  That map is the
only place where programmatic field names meet storage column names, so a
typo shows up as a ``ValueError`` on first use instead of a silently
missing value.  Columns flagged ``json=True`` hold serialised sub-objects
(``scores``, ``input``, ``warnings``).
"""

from __future__ import annotations

import json
import logging
import sqlite3
import uuid
from dataclasses import dataclass
from time import time
from typing import Any, Generic, Mapping, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from jobtree.db.connection import transaction
from jobtree.errors import CorruptRecord

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Fields the store owns; callers never write them directly.
_MANAGED = frozenset({"id", "created_at", "updated_at"})


@dataclass(frozen=True)
class Column:
    name: str
    json: bool = False


class EntityStore(Generic[T]):
    """Create / read / update / delete for a single entity table.

    Args:
        conn: Open DB connection.
        table: Table name.
        model: pydantic model every row is validated against on read.
        fields: Static field → column map.  Must contain ``id``.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        table: str,
        model: Type[T],
        fields: Mapping[str, Column],
    ) -> None:
        if "id" not in fields:
            raise ValueError(f"Field map for {table!r} must declare 'id'")
        self.conn = conn
        self.table = table
        self.model = model
        self.fields = dict(fields)
        self._by_column = {col.name: name for name, col in self.fields.items()}

    # ------------------------------------------------------------------
    # Mapping helpers
    # ------------------------------------------------------------------

    def column(self, field_name: str) -> str:
        """Return the storage column for *field_name*."""
        try:
            return self.fields[field_name].name
        except KeyError:
            raise ValueError(f"Unknown field {field_name!r} for {self.table}") from None

    def _to_row(self, data: Mapping[str, Any]) -> dict[str, Any]:
        row: dict[str, Any] = {}
        for name, value in data.items():
            col = self.fields.get(name)
            if col is None:
                raise ValueError(f"Unknown field {name!r} for {self.table}")
            if col.json and value is not None:
                value = json.dumps(value, ensure_ascii=False)
            row[col.name] = value
        return row

    def _from_row(self, row: sqlite3.Row) -> T:
        data: dict[str, Any] = {}
        entity_id = row["id"] if "id" in row.keys() else None
        try:
            for column_name in row.keys():
                name = self._by_column.get(column_name)
                if name is None:
                    continue
                value = row[column_name]
                # NULL means "use the model default"; required fields then fail validation.
                if value is None:
                    continue
                if self.fields[name].json:
                    value = json.loads(value)
                data[name] = value
            return self.model.model_validate(data)
        except (ValidationError, json.JSONDecodeError, TypeError) as exc:
            logger.error("Corrupt row in %s id=%r: %s", self.table, entity_id, exc)
            raise CorruptRecord(self.table, entity_id, str(exc)) from exc

    def _where(self, where: Optional[Mapping[str, Any]]) -> tuple[str, list[Any]]:
        if not where:
            return "", []
        conditions: list[str] = []
        params: list[Any] = []
        for name, value in where.items():
            col = self.column(name)
            if value is None:
                conditions.append(f"{col} IS NULL")
            else:
                conditions.append(f"{col} = ?")
                params.append(value)
        return " WHERE " + " AND ".join(conditions), params

    def _select(self, sql: str, params: tuple[Any, ...] | list[Any] = ()) -> list[T]:
        """Run a raw SELECT against this table and parse every row."""
        rows = self.conn.execute(sql, params).fetchall()
        return [self._from_row(r) for r in rows]

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create(self, data: Mapping[str, Any], entity_id: Optional[str] = None) -> T:
        """Insert a new record and return it as persisted.

        ``id`` (unless *entity_id* is given), ``created_at`` and
        ``updated_at`` are assigned here.  The full record is validated
        against the model before anything is written.
        """
        managed = _MANAGED & data.keys()
        if managed:
            raise ValueError(f"Cannot set managed field(s) {sorted(managed)} on create")
        unknown = set(data) - set(self.fields)
        if unknown:
            raise ValueError(f"Unknown field(s) {sorted(unknown)} for {self.table}")

        now = int(time())
        record = self.model.model_validate(
            {**data, "id": entity_id or str(uuid.uuid4()), "created_at": now, "updated_at": now}
        )
        row = self._to_row(record.model_dump())
        columns = ", ".join(row)
        placeholders = ", ".join("?" for _ in row)

        with transaction(self.conn):
            self.conn.execute(
                f"INSERT INTO {self.table} ({columns}) VALUES ({placeholders})",  # noqa: S608
                list(row.values()),
            )
            created = self.find_by_id(record.id)  # type: ignore[attr-defined]
            if created is None:
                raise RuntimeError(f"Failed to create entity in {self.table}")
        return created

    def find_by_id(self, entity_id: str) -> Optional[T]:
        """Fetch a single record by id.  Returns ``None`` if not found."""
        row = self.conn.execute(
            f"SELECT * FROM {self.table} WHERE id = ?", (entity_id,)  # noqa: S608
        ).fetchone()
        return self._from_row(row) if row else None

    def find_many(
        self,
        where: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[T]:
        """Return records matching the equality filter *where*.

        ``None`` values in *where* match ``NULL``.  *order_by* is a field
        name, not a column name.
        """
        clause, params = self._where(where)
        sql = f"SELECT * FROM {self.table}{clause}"  # noqa: S608
        if order_by:
            sql += f" ORDER BY {self.column(order_by)} {'DESC' if descending else 'ASC'}, rowid"
        if limit is not None:
            sql += " LIMIT ?"
            params.append(limit)
        if offset is not None:
            if limit is None:
                sql += " LIMIT -1"
            sql += " OFFSET ?"
            params.append(offset)
        return self._select(sql, params)

    def find_first(self, where: Mapping[str, Any]) -> Optional[T]:
        results = self.find_many(where, limit=1)
        return results[0] if results else None

    def update(self, entity_id: str, patch: Mapping[str, Any]) -> Optional[T]:
        """Merge *patch* into a record and return the updated record.

        Returns ``None`` if *entity_id* does not exist.  ``updated_at`` is
        always refreshed when the patch is non-empty.

        Raises:
            ValueError: For unknown or store-managed fields, or when the
                merged record fails model validation.
        """
        forbidden = {"id", "created_at"} & patch.keys()
        if forbidden:
            raise ValueError(f"Cannot update field(s) {sorted(forbidden)}")
        unknown = set(patch) - set(self.fields)
        if unknown:
            raise ValueError(f"Cannot update field(s) {sorted(unknown)}")

        with transaction(self.conn):
            existing = self.find_by_id(entity_id)
            if existing is None:
                return None
            if not patch:
                return existing

            merged = self.model.model_validate(
                {**existing.model_dump(), **patch, "updated_at": int(time())}
            )
            dumped = merged.model_dump()
            changed = {name: dumped[name] for name in (*patch.keys(), "updated_at")}
            row = self._to_row(changed)
            set_clause = ", ".join(f"{col} = ?" for col in row)
            self.conn.execute(
                f"UPDATE {self.table} SET {set_clause} WHERE id = ?",  # noqa: S608
                [*row.values(), entity_id],
            )
            return self.find_by_id(entity_id)

    def delete(self, entity_id: str) -> bool:
        """Delete a record by id.  Returns whether a row was removed."""
        with transaction(self.conn):
            cursor = self.conn.execute(
                f"DELETE FROM {self.table} WHERE id = ?", (entity_id,)  # noqa: S608
            )
        return cursor.rowcount > 0

    def delete_many(self, where: Mapping[str, Any]) -> int:
        """Delete every record matching *where*.  Returns the number removed."""
        clause, params = self._where(where)
        if not clause:
            raise ValueError("delete_many requires at least one condition")
        with transaction(self.conn):
            cursor = self.conn.execute(f"DELETE FROM {self.table}{clause}", params)  # noqa: S608
        return cursor.rowcount

    def count(self, where: Optional[Mapping[str, Any]] = None) -> int:
        clause, params = self._where(where)
        row = self.conn.execute(
            f"SELECT COUNT(*) FROM {self.table}{clause}", params  # noqa: S608
        ).fetchone()
        return row[0]

    def exists(self, entity_id: str) -> bool:
        row = self.conn.execute(
            f"SELECT 1 FROM {self.table} WHERE id = ? LIMIT 1", (entity_id,)  # noqa: S608
        ).fetchone()
        return row is not None
