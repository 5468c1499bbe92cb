"""In-process DuckDB gateway.

Implements :class:`~medfly.gateway.base.RemoteGateway` on a local DuckDB
database so the whole client stack runs without a Supabase project (offline
development, demos, and tests).  It mirrors the behaviour the client relies on
from the hosted backend:

1. Rows get a server-assigned ``id`` and ISO-8601 ``created_at`` /
   ``updated_at`` strings, exactly as they arrive over PostgREST.
2. ``slug`` columns are unique per table; NOT NULL columns are enforced.
   Violations surface as :class:`~medfly.errors.RemoteWriteError` with the
   Postgres error code.
3. Every successful write is delivered to change-feed subscribers of that
   table *after* the write commits, in the writer's thread.
4. ``increment_note_view_count`` is available as an RPC.

Seed data can be loaded from a YAML file mapping table names to row lists::

    years:
      - {id: y1, year_number: 1, year_name: First Year}
    notes:
      - {id: n1, title: Cardiac Cycle, slug: cardiac-cycle, ...}
"""

from __future__ import annotations

import itertools
import threading
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

import duckdb
import yaml

from medfly.errors import FetchError, RemoteWriteError, SubscriptionError
from medfly.gateway.base import (
    AuthCallback,
    ChangeCallback,
    ChangeEvent,
    ChangeKind,
    Embed,
    Query,
    Subscription,
)
from medfly.log import get_logger

log = get_logger(__name__)

_STAMPS = "created_at VARCHAR, updated_at VARCHAR"

_SCHEMA: dict[str, str] = {
    "years": f"""
        id          VARCHAR PRIMARY KEY,
        year_number INTEGER NOT NULL,
        year_name   VARCHAR NOT NULL,
        description VARCHAR DEFAULT '',
        color       VARCHAR DEFAULT '',
        {_STAMPS}
    """,
    "lecturers": f"""
        id              VARCHAR PRIMARY KEY,
        name            VARCHAR NOT NULL,
        title           VARCHAR DEFAULT 'Dr.',
        specialization  VARCHAR DEFAULT '',
        email           VARCHAR,
        phone           VARCHAR,
        office_location VARCHAR,
        bio             VARCHAR DEFAULT '',
        profile_image   VARCHAR,
        is_active       BOOLEAN DEFAULT true,
        {_STAMPS}
    """,
    "units": f"""
        id           VARCHAR PRIMARY KEY,
        unit_name    VARCHAR NOT NULL,
        unit_code    VARCHAR NOT NULL,
        year_id      VARCHAR NOT NULL,
        lecturer_id  VARCHAR,
        description  VARCHAR DEFAULT '',
        credit_hours INTEGER DEFAULT 3,
        semester     VARCHAR DEFAULT '1',
        is_active    BOOLEAN DEFAULT true,
        {_STAMPS}
    """,
    "tags": f"""
        id            VARCHAR PRIMARY KEY,
        tag_name      VARCHAR NOT NULL,
        description   VARCHAR DEFAULT '',
        color_code    VARCHAR DEFAULT '#6B7280',
        parent_tag_id VARCHAR,
        {_STAMPS}
    """,
    "notes": f"""
        id                  VARCHAR PRIMARY KEY,
        title               VARCHAR NOT NULL,
        slug                VARCHAR NOT NULL,
        content             VARCHAR NOT NULL,
        excerpt             VARCHAR DEFAULT '',
        unit_id             VARCHAR NOT NULL,
        year_id             VARCHAR NOT NULL,
        lecturer_id         VARCHAR,
        featured_image      VARCHAR,
        difficulty_level    VARCHAR DEFAULT 'Intermediate',
        estimated_read_time INTEGER DEFAULT 0,
        is_published        BOOLEAN DEFAULT false,
        is_featured         BOOLEAN DEFAULT false,
        view_count          INTEGER DEFAULT 0,
        download_count      INTEGER DEFAULT 0,
        {_STAMPS}
    """,
    "note_tags": f"""
        id      VARCHAR PRIMARY KEY,
        note_id VARCHAR NOT NULL,
        tag_id  VARCHAR NOT NULL,
        {_STAMPS}
    """,
    "note_views": f"""
        id         VARCHAR PRIMARY KEY,
        note_id    VARCHAR NOT NULL,
        user_id    VARCHAR,
        user_agent VARCHAR DEFAULT '',
        {_STAMPS}
    """,
    "categories": f"""
        id          VARCHAR PRIMARY KEY,
        name        VARCHAR NOT NULL,
        slug        VARCHAR NOT NULL,
        description VARCHAR DEFAULT '',
        {_STAMPS}
    """,
    "posts": f"""
        id             VARCHAR PRIMARY KEY,
        title          VARCHAR NOT NULL,
        slug           VARCHAR NOT NULL,
        excerpt        VARCHAR DEFAULT '',
        content        VARCHAR NOT NULL,
        featured_image VARCHAR,
        category_id    VARCHAR,
        published      BOOLEAN DEFAULT false,
        {_STAMPS}
    """,
}

# Enforced here rather than with UNIQUE indexes so slug edits stay plain UPDATEs
_UNIQUE: dict[str, tuple[str, ...]] = {
    "notes": ("slug",),
    "posts": ("slug",),
    "categories": ("slug",),
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class LocalGateway:
    """Gateway backed by DuckDB with an in-process change feed."""

    def __init__(self, db_path: Path | str = ":memory:", *, seed: Path | str | dict | None = None) -> None:
        self._db_path = str(db_path)
        self.conn: duckdb.DuckDBPyConnection = duckdb.connect(self._db_path)
        self._lock = threading.RLock()
        self._tokens = itertools.count(1)
        self._listeners: dict[str, dict[int, ChangeCallback]] = {t: {} for t in _SCHEMA}
        self._auth_listeners: dict[int, AuthCallback] = {}
        self._session: dict[str, Any] | None = None
        self._rpcs: dict[str, Callable[..., Any]] = {
            "increment_note_view_count": self._increment_note_view_count,
        }
        self._ensure_schema()
        if seed is not None:
            self.load_seed(seed)

    # ------------------------------------------------------------------
    # Schema / seed
    # ------------------------------------------------------------------

    def _ensure_schema(self) -> None:
        for table, columns in _SCHEMA.items():
            self.conn.execute(f"CREATE TABLE IF NOT EXISTS {table} ({columns})")
        self._columns = {
            table: {row[0] for row in self.conn.execute(f"DESCRIBE {table}").fetchall()}
            for table in _SCHEMA
        }

    @property
    def tables(self) -> list[str]:
        return list(_SCHEMA)

    def load_seed(self, seed: Path | str | dict) -> int:
        """Insert rows from a YAML file (or an already-parsed mapping).

        Seeding bypasses the change feed.  Returns the number of rows written.
        """
        if isinstance(seed, dict):
            data = seed
        else:
            data = yaml.safe_load(Path(seed).read_text(encoding="utf-8")) or {}
        count = 0
        with self._lock:
            for table, rows in data.items():
                for row in rows or []:
                    self._insert_row(table, dict(row))
                    count += 1
        return count

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _check_table(self, table: str, error: type[Exception] = FetchError) -> None:
        if table not in _SCHEMA:
            raise error(f'relation "public.{table}" does not exist', code="42P01", table=table)

    def _check_column(self, table: str, column: str, error: type[Exception] = FetchError) -> None:
        if column not in self._columns[table]:
            raise error(
                f"Could not find the '{column}' column of '{table}' in the schema cache",
                code="PGRST204",
                table=table,
            )

    def _check_unique(self, table: str, row: dict[str, Any], exclude_id: str | None = None) -> None:
        for column in _UNIQUE.get(table, ()):
            if column not in row:
                continue
            clash = self.conn.execute(
                f"SELECT 1 FROM {table} WHERE {column} = ? AND id IS DISTINCT FROM ?",
                [row[column], exclude_id],
            ).fetchone()
            if clash:
                raise RemoteWriteError(
                    f'duplicate key value violates unique constraint "{table}_{column}_key"',
                    code="23505",
                    table=table,
                )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _rows(self, sql: str, params: list[Any] | None = None) -> list[dict[str, Any]]:
        return self.conn.execute(sql, params or []).pl().to_dicts()

    def _expand(self, row: dict[str, Any], embeds: tuple[Embed, ...]) -> dict[str, Any]:
        for embed in embeds:
            if embed.many:
                children = self._rows(
                    f"SELECT * FROM {embed.table} WHERE {embed.column} = ? ORDER BY created_at",
                    [row["id"]],
                )
                row[embed.alias] = [self._expand(child, embed.embeds) for child in children]
            else:
                key = row.get(embed.column)
                found = self._rows(f"SELECT * FROM {embed.table} WHERE id = ?", [key]) if key else []
                row[embed.alias] = self._expand(found[0], embed.embeds) if found else None
        return row

    def select(self, query: Query) -> list[dict[str, Any]]:
        table = query.table
        self._check_table(table)
        where: list[str] = []
        params: list[Any] = []

        for column, value in query.eq:
            self._check_column(table, column)
            where.append(f"{column} = ?")
            params.append(value)

        if query.search and query.search.term:
            clauses = []
            for column in query.search.columns:
                self._check_column(table, column)
                clauses.append(f"{column} ILIKE ?")
                params.append(f"%{query.search.term}%")
            where.append(f"({' OR '.join(clauses)})")

        sql = f"SELECT * FROM {table}"
        if where:
            sql += f" WHERE {' AND '.join(where)}"
        if query.order_by:
            self._check_column(table, query.order_by)
            sql += f" ORDER BY {query.order_by} {'DESC' if query.descending else 'ASC'}"
        if query.limit is not None:
            sql += f" LIMIT {int(query.limit)}"

        try:
            with self._lock:
                return [self._expand(row, query.embeds) for row in self._rows(sql, params)]
        except duckdb.Error as exc:
            raise FetchError(str(exc), table=table) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _insert_row(self, table: str, row: dict[str, Any]) -> dict[str, Any]:
        # YAML seeds parse bare timestamps into datetimes; store the wire format
        row = {k: v.isoformat() if isinstance(v, datetime) else v for k, v in row.items()}
        now = _now()
        row.setdefault("id", str(uuid.uuid4()))
        row.setdefault("created_at", now)
        row.setdefault("updated_at", row["created_at"])
        for column in row:
            self._check_column(table, column, RemoteWriteError)
        self._check_unique(table, row)
        columns = list(row)
        placeholders = ", ".join("?" for _ in columns)
        return self._rows(
            f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({placeholders}) RETURNING *",
            [row[c] for c in columns],
        )[0]

    def insert(self, table: str, payload: dict[str, Any], *, embeds: tuple[Embed, ...] = ()) -> dict[str, Any]:
        self._check_table(table, RemoteWriteError)
        try:
            with self._lock:
                stored = self._insert_row(table, dict(payload))
                result = self._expand(dict(stored), embeds)
        except duckdb.Error as exc:
            raise RemoteWriteError(str(exc), table=table) from exc
        self._notify(ChangeEvent(ChangeKind.INSERT, table, stored))
        return result

    def update(
        self, table: str, row_id: str, payload: dict[str, Any], *, embeds: tuple[Embed, ...] = ()
    ) -> dict[str, Any]:
        self._check_table(table, RemoteWriteError)
        changes = {k: v for k, v in payload.items() if k != "id"}
        changes.setdefault("updated_at", _now())
        for column in changes:
            self._check_column(table, column, RemoteWriteError)

        assignments = ", ".join(f"{column} = ?" for column in changes)
        try:
            with self._lock:
                old = self._rows(f"SELECT * FROM {table} WHERE id = ?", [row_id])
                if not old:
                    raise RemoteWriteError(
                        "JSON object requested, multiple (or no) rows returned",
                        code="PGRST116",
                        table=table,
                    )
                self._check_unique(table, changes, exclude_id=row_id)
                stored = self._rows(
                    f"UPDATE {table} SET {assignments} WHERE id = ? RETURNING *",
                    [*changes.values(), row_id],
                )[0]
                result = self._expand(dict(stored), embeds)
        except duckdb.Error as exc:
            raise RemoteWriteError(str(exc), table=table) from exc
        self._notify(ChangeEvent(ChangeKind.UPDATE, table, stored, old[0]))
        return result

    def delete(self, table: str, row_id: str) -> None:
        self._check_table(table, RemoteWriteError)
        try:
            with self._lock:
                removed = self._rows(f"DELETE FROM {table} WHERE id = ? RETURNING *", [row_id])
        except duckdb.Error as exc:
            raise RemoteWriteError(str(exc), table=table) from exc
        for row in removed:
            self._notify(ChangeEvent(ChangeKind.DELETE, table, {}, row))

    # ------------------------------------------------------------------
    # RPC
    # ------------------------------------------------------------------

    def rpc(self, name: str, params: dict[str, Any]) -> Any:
        fn = self._rpcs.get(name)
        if fn is None:
            raise RemoteWriteError(f"Could not find the function public.{name}", code="PGRST202")
        try:
            return fn(**params)
        except TypeError as exc:
            raise RemoteWriteError(f"Invalid arguments for {name}: {exc}", code="PGRST202") from exc

    def _increment_note_view_count(self, note_id: str) -> None:
        try:
            with self._lock:
                old = self._rows("SELECT * FROM notes WHERE id = ?", [note_id])
                updated = self._rows(
                    "UPDATE notes SET view_count = COALESCE(view_count, 0) + 1 WHERE id = ? RETURNING *",
                    [note_id],
                )
        except duckdb.Error as exc:
            raise RemoteWriteError(str(exc), table="notes") from exc
        for row in updated:
            self._notify(ChangeEvent(ChangeKind.UPDATE, "notes", row, old[0] if old else {}))

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def subscribe(self, channel: str, table: str, callback: ChangeCallback) -> Subscription:
        self._check_table(table, SubscriptionError)
        token = next(self._tokens)
        with self._lock:
            self._listeners[table][token] = callback

        def release() -> None:
            with self._lock:
                self._listeners[table].pop(token, None)

        return Subscription(release, name=channel)

    def subscriber_count(self, table: str) -> int:
        return len(self._listeners.get(table, {}))

    def _notify(self, event: ChangeEvent) -> None:
        with self._lock:
            callbacks = list(self._listeners[event.table].values())
        for callback in callbacks:
            try:
                callback(event)
            except Exception:  # noqa: BLE001
                # Hosted change feeds are delivered asynchronously; a failing
                # listener must not fail the write that triggered it.
                log.exception("change_listener_failed", table=event.table, kind=event.kind.value)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def get_session(self) -> dict[str, Any] | None:
        return dict(self._session) if self._session else None

    def sign_in(self, user: dict[str, Any]) -> dict[str, Any]:
        """Start a local session for *user* and announce ``SIGNED_IN``."""
        self._session = {"access_token": uuid.uuid4().hex, "user": dict(user)}
        self._announce("SIGNED_IN")
        return dict(self._session)

    def sign_out(self) -> None:
        self._session = None
        self._announce("SIGNED_OUT")

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        token = next(self._tokens)
        self._auth_listeners[token] = callback
        return Subscription(lambda: self._auth_listeners.pop(token, None), name="auth")

    def _announce(self, event: str) -> None:
        session = self.get_session()
        for callback in list(self._auth_listeners.values()):
            callback(event, session)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "LocalGateway":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
