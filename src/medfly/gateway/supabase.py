"""Supabase gateway.

Table reads and writes go through PostgREST via the ``supabase`` client;
change feeds use the realtime client, which is async-only, so it runs on a
private event-loop thread that is started on the first :meth:`subscribe`.
Change callbacks are delivered on a separate single "medfly-feed" thread so
listeners may block (refetch, unsubscribe) without stalling the loop.

Select strings follow PostgREST's embedding syntax::

    *,unit:units(*),year:years(*),lecturer:lecturers(*),tags:note_tags(*,tag:tags(*))

Environment variables (all optional; direct kwargs take precedence):
    MEDFLY_SUPABASE_URL   – project URL (e.g. https://xyzcompany.supabase.co)
    MEDFLY_SUPABASE_KEY   – anon/public API key
"""

from __future__ import annotations

import asyncio
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from enum import Enum
from typing import Any

import httpx
from supabase import Client, PostgrestAPIError, acreate_client, create_client

from medfly.errors import FetchError, RemoteError, RemoteWriteError, SubscriptionError
from medfly.gateway.base import (
    AuthCallback,
    ChangeCallback,
    ChangeEvent,
    ChangeKind,
    Embed,
    Query,
    Subscription,
    TextSearch,
)
from medfly.log import get_logger

log = get_logger(__name__)

# Characters PostgREST treats as syntax inside an ``or=(...)`` filter
_RESERVED = set(',.:()"\\')


# ---------------------------------------------------------------------------
# PostgREST rendering
# ---------------------------------------------------------------------------


def render_select(embeds: tuple[Embed, ...]) -> str:
    """Render a column list with join-expansions, e.g. ``*,unit:units(*)``."""
    return ",".join(["*", *(f"{e.alias}:{e.table}({render_select(e.embeds)})" for e in embeds)])


def _quote(value: str) -> str:
    if not any(ch in _RESERVED for ch in value):
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


def render_search(search: TextSearch) -> str:
    """Render an ``or`` filter body matching *search.term* against every column."""
    pattern = _quote(f"%{search.term}%")
    return ",".join(f"{column}.ilike.{pattern}" for column in search.columns)


def _to_json(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, set)):
        return [_to_json(v) for v in value]
    if isinstance(value, dict):
        return {k: _to_json(v) for k, v in value.items()}
    return value


def _filter_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return _to_json(value)


def _dump(model: Any) -> dict[str, Any] | None:
    if model is None:
        return None
    if hasattr(model, "model_dump"):
        return model.model_dump(mode="json")
    return dict(model)


def change_event_from_payload(table: str, payload: Any) -> ChangeEvent:
    """Normalise a realtime ``postgres_changes`` payload into a :class:`ChangeEvent`.

    The realtime client delivers either ``{"data": {"type", "table", "record",
    "old_record"}}`` or the flat ``{"eventType", "new", "old"}`` shape.
    """
    payload = payload if isinstance(payload, dict) else {}
    data = payload.get("data", payload)
    raw_kind = str(data.get("type") or data.get("eventType") or "UPDATE").upper()
    try:
        kind = ChangeKind(raw_kind)
    except ValueError:
        log.debug("unknown_change_kind", table=table, kind=raw_kind)
        kind = ChangeKind.UPDATE
    return ChangeEvent(
        kind=kind,
        table=data.get("table") or table,
        record=dict(data.get("record") or data.get("new") or {}),
        old_record=dict(data.get("old_record") or data.get("old") or {}),
    )


# ---------------------------------------------------------------------------
# Realtime
# ---------------------------------------------------------------------------


class _RealtimeLoop:
    """Async realtime client hosted on its own event-loop thread."""

    def __init__(self, url: str, key: str, *, timeout: float) -> None:
        self._timeout = timeout
        self._loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._loop.run_forever, name="medfly-realtime", daemon=True)
        self._thread.start()
        self._client = self.run(acreate_client(url, key))

    def run(self, coro: Any) -> Any:
        return asyncio.run_coroutine_threadsafe(coro, self._loop).result(self._timeout)

    def open_channel(self, channel: str, table: str, callback: Any) -> Any:
        async def _open() -> Any:
            handle = self._client.channel(channel)
            handle.on_postgres_changes("*", schema="public", table=table, callback=callback)
            await handle.subscribe()
            return handle

        return self.run(_open())

    def close_channel(self, handle: Any) -> None:
        self.run(self._client.remove_channel(handle))

    def close(self) -> None:
        self._loop.call_soon_threadsafe(self._loop.stop)
        self._thread.join(self._timeout)


# ---------------------------------------------------------------------------
# Gateway
# ---------------------------------------------------------------------------


class SupabaseGateway:
    """Gateway backed by a hosted Supabase project."""

    def __init__(
        self,
        url: str | None = None,
        key: str | None = None,
        *,
        client: Client | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._url = url or os.getenv("MEDFLY_SUPABASE_URL", "")
        self._key = key or os.getenv("MEDFLY_SUPABASE_KEY", "")
        if client is None and not (self._url and self._key):
            raise ValueError("Supabase URL and key are required (MEDFLY_SUPABASE_URL / MEDFLY_SUPABASE_KEY)")
        self._client = client or create_client(self._url, self._key)
        self._timeout = timeout
        self._realtime: _RealtimeLoop | None = None
        self._realtime_lock = threading.Lock()
        self._feed: ThreadPoolExecutor | None = None

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _execute(request: Any, error: type[RemoteError], table: str | None) -> Any:
        try:
            return request.execute()
        except PostgrestAPIError as exc:
            message = getattr(exc, "message", None) or str(exc)
            raise error(message, code=getattr(exc, "code", None), table=table) from exc
        except httpx.HTTPError as exc:
            raise error(f"{type(exc).__name__}: {exc}", table=table) from exc

    def _select_by_id(self, table: str, row_id: str, embeds: tuple[Embed, ...]) -> dict[str, Any]:
        rows = self.select(Query(table, embeds=embeds, eq=(("id", row_id),), limit=1))
        if not rows:
            raise RemoteWriteError(f"Row {row_id} not readable after write", code="PGRST116", table=table)
        return rows[0]

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def select(self, query: Query) -> list[dict[str, Any]]:
        request = self._client.table(query.table).select(render_select(query.embeds))
        for column, value in query.eq:
            request = request.eq(column, _filter_value(value))
        if query.search and query.search.term:
            request = request.or_(render_search(query.search))
        if query.order_by:
            request = request.order(query.order_by, desc=query.descending)
        if query.limit is not None:
            request = request.limit(query.limit)
        response = self._execute(request, FetchError, query.table)
        return list(response.data or [])

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, table: str, payload: dict[str, Any], *, embeds: tuple[Embed, ...] = ()) -> dict[str, Any]:
        request = self._client.table(table).insert(_to_json(payload))
        rows = self._execute(request, RemoteWriteError, table).data or []
        if not rows:
            raise RemoteWriteError("Insert returned no row", table=table)
        return self._select_by_id(table, rows[0]["id"], embeds) if embeds else rows[0]

    def update(
        self, table: str, row_id: str, payload: dict[str, Any], *, embeds: tuple[Embed, ...] = ()
    ) -> dict[str, Any]:
        request = self._client.table(table).update(_to_json(payload)).eq("id", row_id)
        rows = self._execute(request, RemoteWriteError, table).data or []
        if not rows:
            raise RemoteWriteError(
                "JSON object requested, multiple (or no) rows returned", code="PGRST116", table=table
            )
        return self._select_by_id(table, row_id, embeds) if embeds else rows[0]

    def delete(self, table: str, row_id: str) -> None:
        self._execute(self._client.table(table).delete().eq("id", row_id), RemoteWriteError, table)

    def rpc(self, name: str, params: dict[str, Any]) -> Any:
        return self._execute(self._client.rpc(name, _to_json(params)), RemoteWriteError, None).data

    # ------------------------------------------------------------------
    # Change feed
    # ------------------------------------------------------------------

    def _realtime_loop(self) -> _RealtimeLoop:
        with self._realtime_lock:
            if self._realtime is None:
                self._realtime = _RealtimeLoop(self._url, self._key, timeout=self._timeout)
            return self._realtime

    def _feed_executor(self) -> ThreadPoolExecutor:
        with self._realtime_lock:
            if self._feed is None:
                self._feed = ThreadPoolExecutor(max_workers=1, thread_name_prefix="medfly-feed")
            return self._feed

    @staticmethod
    def _deliver(callback: ChangeCallback, event: ChangeEvent) -> None:
        try:
            callback(event)
        except Exception:  # noqa: BLE001
            # A submitted task keeps its exception unread on the future otherwise
            log.exception("change_listener_failed", table=event.table, kind=event.kind.value)

    def subscribe(self, channel: str, table: str, callback: ChangeCallback) -> Subscription:
        feed = self._feed_executor()

        # Runs on the realtime loop thread; listeners do blocking refetches,
        # so they are handed to the feed thread in arrival order.
        def on_change(payload: Any) -> None:
            feed.submit(self._deliver, callback, change_event_from_payload(table, payload))

        try:
            realtime = self._realtime_loop()
            handle = realtime.open_channel(channel, table, on_change)
        except Exception as exc:  # noqa: BLE001
            raise SubscriptionError(f"Could not open channel {channel}: {exc}", table=table) from exc

        def release() -> None:
            try:
                realtime.close_channel(handle)
            except Exception as exc:  # noqa: BLE001
                raise SubscriptionError(f"Could not close channel {channel}: {exc}", table=table) from exc

        return Subscription(release, name=channel)

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def get_session(self) -> dict[str, Any] | None:
        return _dump(self._client.auth.get_session())

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        def on_event(event: Any, session: Any) -> None:
            callback(str(getattr(event, "value", event)), _dump(session))

        handle = self._client.auth.on_auth_state_change(on_event)
        return Subscription(handle.unsubscribe, name="auth")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        if self._realtime is not None:
            self._realtime.close()
            self._realtime = None
        if self._feed is not None:
            # close() may be reached from a listener running on the feed thread
            self._feed.shutdown(wait=False)
            self._feed = None

    def __enter__(self) -> "SupabaseGateway":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
