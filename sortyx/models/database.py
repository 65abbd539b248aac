from __future__ import annotations

import json
import re
import sqlite3
import threading
import uuid
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

_FIELD_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def utc_now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.astimezone(UTC).isoformat()
    if isinstance(value, Path):
        return str(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _field_path(name: str) -> str:
    if not _FIELD_RE.match(name):
        raise ValueError(f"Invalid document field name `{name}`")
    return f"$.{name}"


class DatabaseManager:
    """Document store on sqlite: one row per (collection, id) with a JSON body."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row

    def initialize(self) -> None:
        with self._lock:
            self._conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS documents (
                    collection TEXT NOT NULL,
                    id TEXT NOT NULL,
                    data TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (collection, id)
                );

                CREATE INDEX IF NOT EXISTS idx_documents_collection
                    ON documents(collection, created_at);
                """
            )
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def insert(self, collection: str, data: dict[str, Any], *, doc_id: str | None = None) -> dict[str, Any]:
        document = dict(data)
        document["id"] = str(doc_id or document.get("id") or uuid.uuid4())
        with self._lock:
            self._conn.execute(
                "INSERT INTO documents (collection, id, data, created_at) VALUES (?, ?, ?, ?)",
                (collection, document["id"], json.dumps(document, default=_json_default), utc_now_iso()),
            )
            self._conn.commit()
        return json.loads(json.dumps(document, default=_json_default))

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        return json.loads(row["data"]) if row else None

    def update(self, collection: str, doc_id: str, changes: dict[str, Any]) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute(
                "SELECT data FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
            if not row:
                return None

            document = json.loads(row["data"])
            document.update(changes)
            document["id"] = doc_id
            payload = json.dumps(document, default=_json_default)
            self._conn.execute(
                "UPDATE documents SET data = ? WHERE collection = ? AND id = ?",
                (payload, collection, doc_id),
            )
            self._conn.commit()
        return json.loads(payload)

    def delete(self, collection: str, doc_id: str) -> bool:
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
            self._conn.commit()
        return cursor.rowcount > 0

    def _where(self, collection: str, filters: dict[str, Any] | None) -> tuple[str, list[Any]]:
        clauses = ["collection = ?"]
        args: list[Any] = [collection]
        for key, value in (filters or {}).items():
            if value is None:
                clauses.append("json_extract(data, ?) IS NULL")
                args.append(_field_path(key))
                continue
            clauses.append("json_extract(data, ?) = ?")
            args.extend([_field_path(key), int(value) if isinstance(value, bool) else value])
        return " AND ".join(clauses), args

    def delete_where(self, collection: str, filters: dict[str, Any]) -> int:
        where, args = self._where(collection, filters)
        with self._lock:
            cursor = self._conn.execute(f"DELETE FROM documents WHERE {where}", args)
            self._conn.commit()
        return cursor.rowcount

    def query(
        self,
        collection: str,
        filters: dict[str, Any] | None = None,
        *,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        where, args = self._where(collection, filters)
        direction = "DESC" if descending else "ASC"
        if order_by:
            order = f"json_extract(data, ?) {direction}, rowid {direction}"
            args.append(_field_path(order_by))
        else:
            order = f"rowid {direction}"

        sql = f"SELECT data FROM documents WHERE {where} ORDER BY {order}"
        if limit is not None:
            sql += " LIMIT ?"
            args.append(limit)

        with self._lock:
            rows = self._conn.execute(sql, args).fetchall()
        return [json.loads(row["data"]) for row in rows]

    def latest(self, collection: str, *, order_by: str) -> dict[str, Any] | None:
        rows = self.query(collection, order_by=order_by, descending=True, limit=1)
        return rows[0] if rows else None

    def count(self, collection: str, filters: dict[str, Any] | None = None) -> int:
        where, args = self._where(collection, filters)
        with self._lock:
            row = self._conn.execute(f"SELECT COUNT(*) AS total FROM documents WHERE {where}", args).fetchone()
        return int(row["total"])
