"""Create / update / delete commands.

Each command performs one remote write and then folds the row the backend
returned into the store, so the store always reflects what the server stored
(server-assigned ids, slugs, timestamps, joined relations) rather than what
the caller sent.  Nothing is inserted into the store before the write
succeeds.

Failures are logged and re-raised; surfacing them to the user is the
caller's job.  Writes are not tagged, so a table with an open change-feed
subscription is refetched once more shortly after each write.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from medfly import queries
from medfly.entities import Category, Difficulty, Lecturer, Note, NoteView, Post, Tag, Unit, Year
from medfly.errors import FetchError, MissingFieldsError, RemoteWriteError, WriteError
from medfly.gateway.base import Embed, Query, RemoteGateway
from medfly.log import get_logger
from medfly.store import AddEntity, RemoveEntity, Store, UpdateEntity
from medfly.text import estimate_read_time, slugify

log = get_logger(__name__)

Prepare = Callable[[dict[str, Any]], dict[str, Any]]

VIEW_COUNT_RPC = "increment_note_view_count"


@dataclass(frozen=True)
class EntitySpec:
    """How one table maps onto one store collection."""

    table: str
    collection: str
    parse: Callable[[dict[str, Any]], Any]
    required: tuple[str, ...]
    embeds: tuple[Embed, ...] = ()
    prepare_create: Prepare | None = None
    prepare_update: Prepare | None = None


# ---------------------------------------------------------------------------
# Payload normalisation
# ---------------------------------------------------------------------------


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _slug_from(source: str) -> Prepare:
    def prepare(data: dict[str, Any]) -> dict[str, Any]:
        if data.get(source) and not data.get("slug"):
            data["slug"] = slugify(data[source])
        return data

    return prepare


def _normalise_note(data: dict[str, Any]) -> dict[str, Any]:
    data = _slug_from("title")(data)
    if data.get("content") and not data.get("estimated_read_time"):
        data["estimated_read_time"] = estimate_read_time(data["content"])
    if "difficulty_level" in data:
        level = Difficulty.parse(data["difficulty_level"])
        if level is None:
            raise WriteError(f"Unknown difficulty level: {data['difficulty_level']!r}")
        data["difficulty_level"] = level.value
    return data


def prepare_note_create(data: dict[str, Any]) -> dict[str, Any]:
    data.setdefault("difficulty_level", Difficulty.INTERMEDIATE.value)
    data.setdefault("is_published", False)
    data.setdefault("is_featured", False)
    return _normalise_note(data)


def prepare_note_update(data: dict[str, Any]) -> dict[str, Any]:
    data = _normalise_note(data)
    data.setdefault("updated_at", _now())
    return data


def prepare_post_update(data: dict[str, Any]) -> dict[str, Any]:
    data = _slug_from("title")(data)
    data.setdefault("updated_at", _now())
    return data


NOTE_SPEC = EntitySpec(
    table=queries.NOTES,
    collection="notes",
    parse=queries.parse_note,
    required=("title", "slug", "content", "excerpt", "unit_id", "year_id"),
    embeds=queries.NOTE_EMBEDS,
    prepare_create=prepare_note_create,
    prepare_update=prepare_note_update,
)
UNIT_SPEC = EntitySpec(
    table=queries.UNITS,
    collection="units",
    parse=Unit.from_row,
    required=("unit_name", "unit_code", "year_id"),
    embeds=queries.UNIT_EMBEDS,
)
LECTURER_SPEC = EntitySpec(queries.LECTURERS, "lecturers", Lecturer.from_row, ("name",))
YEAR_SPEC = EntitySpec(queries.YEARS, "years", Year.from_row, ("year_number", "year_name"))
TAG_SPEC = EntitySpec(queries.TAGS, "tags", Tag.from_row, ("tag_name",))
CATEGORY_SPEC = EntitySpec(
    table=queries.CATEGORIES,
    collection="categories",
    parse=Category.from_row,
    required=("name", "slug"),
    prepare_create=_slug_from("name"),
    prepare_update=_slug_from("name"),
)
POST_SPEC = EntitySpec(
    table=queries.POSTS,
    collection="posts",
    parse=Post.from_row,
    required=("title", "slug", "content", "excerpt"),
    embeds=queries.POST_EMBEDS,
    prepare_create=_slug_from("title"),
    prepare_update=prepare_post_update,
)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class EntityCommands:
    """create / update / delete for the table described by *spec*."""

    def __init__(self, store: Store, gateway: RemoteGateway, spec: EntitySpec) -> None:
        self.store = store
        self.gateway = gateway
        self.spec = spec

    def create(self, payload: dict[str, Any]) -> Any:
        spec = self.spec
        data = dict(payload)
        if spec.prepare_create:
            data = spec.prepare_create(data)
        missing = [name for name in spec.required if data.get(name) in (None, "")]
        if missing:
            raise MissingFieldsError(spec.table, missing)

        try:
            row = self.gateway.insert(spec.table, data, embeds=spec.embeds)
        except RemoteWriteError as exc:
            log.error("create_failed", table=spec.table, error=str(exc))
            raise
        entity = spec.parse(row)
        self.store.dispatch(AddEntity(spec.collection, entity))
        log.info("created", table=spec.table, id=entity.id)
        return entity

    def update(self, entity_id: str, payload: dict[str, Any]) -> Any:
        spec = self.spec
        data = dict(payload)
        if spec.prepare_update:
            data = spec.prepare_update(data)

        try:
            row = self.gateway.update(spec.table, entity_id, data, embeds=spec.embeds)
        except RemoteWriteError as exc:
            log.error("update_failed", table=spec.table, id=entity_id, error=str(exc))
            raise
        entity = spec.parse(row)
        self.store.dispatch(UpdateEntity(spec.collection, entity))
        log.info("updated", table=spec.table, id=entity_id)
        return entity

    def delete(self, entity_id: str) -> None:
        spec = self.spec
        try:
            self.gateway.delete(spec.table, entity_id)
        except RemoteWriteError as exc:
            log.error("delete_failed", table=spec.table, id=entity_id, error=str(exc))
            raise
        self.store.dispatch(RemoveEntity(spec.collection, entity_id))
        log.info("deleted", table=spec.table, id=entity_id)


class NoteCommands(EntityCommands):
    """Note writes plus view tracking and tagging."""

    def __init__(self, store: Store, gateway: RemoteGateway) -> None:
        super().__init__(store, gateway, NOTE_SPEC)

    def increment_view(self, note_id: str) -> bool:
        """Bump the note's view counter; failures are logged, never raised."""
        try:
            self.gateway.rpc(VIEW_COUNT_RPC, {"note_id": note_id})
        except RemoteWriteError as exc:
            log.warning("view_count_failed", note_id=note_id, error=str(exc))
            return False
        return True

    def record_view(self, note_id: str, *, user_id: str | None = None, user_agent: str = "") -> NoteView | None:
        """Append a view event for analytics; failures are logged, never raised."""
        view = NoteView(note_id=note_id, user_id=user_id, user_agent=user_agent)
        try:
            self.gateway.insert(queries.NOTE_VIEWS, view.to_dict())
        except RemoteWriteError as exc:
            log.warning("record_view_failed", note_id=note_id, error=str(exc))
            return None
        return view

    def _reload(self, note_id: str) -> Note | None:
        # The write already landed; a failed re-read is caught up by the change feed
        try:
            note = queries.fetch_note(self.gateway, note_id)
        except FetchError as exc:
            log.warning("note_reload_failed", note_id=note_id, error=str(exc))
            return None
        if note is not None:
            self.store.dispatch(UpdateEntity(self.spec.collection, note))
        return note

    def tag_note(self, note_id: str, tag_id: str) -> Note | None:
        try:
            self.gateway.insert(queries.NOTE_TAGS, {"note_id": note_id, "tag_id": tag_id})
        except RemoteWriteError as exc:
            log.error("tag_failed", note_id=note_id, tag_id=tag_id, error=str(exc))
            raise
        return self._reload(note_id)

    def untag_note(self, note_id: str, tag_id: str) -> Note | None:
        """Remove *tag_id* from the note; any failure surfaces as :class:`RemoteWriteError`."""
        try:
            rows = self.gateway.select(
                Query(queries.NOTE_TAGS, eq=(("note_id", note_id), ("tag_id", tag_id)))
            )
        except FetchError as exc:
            log.error("untag_failed", note_id=note_id, tag_id=tag_id, error=str(exc))
            raise RemoteWriteError(exc.message, code=exc.code, table=queries.NOTE_TAGS) from exc
        try:
            for row in rows:
                self.gateway.delete(queries.NOTE_TAGS, row["id"])
        except RemoteWriteError as exc:
            log.error("untag_failed", note_id=note_id, tag_id=tag_id, error=str(exc))
            raise
        return self._reload(note_id)


@dataclass
class PlatformCommands:
    notes: NoteCommands
    units: EntityCommands
    lecturers: EntityCommands
    years: EntityCommands
    tags: EntityCommands

    @classmethod
    def build(cls, store: Store, gateway: RemoteGateway) -> "PlatformCommands":
        return cls(
            notes=NoteCommands(store, gateway),
            units=EntityCommands(store, gateway, UNIT_SPEC),
            lecturers=EntityCommands(store, gateway, LECTURER_SPEC),
            years=EntityCommands(store, gateway, YEAR_SPEC),
            tags=EntityCommands(store, gateway, TAG_SPEC),
        )


@dataclass
class EditorialCommands:
    posts: EntityCommands
    categories: EntityCommands

    @classmethod
    def build(cls, store: Store, gateway: RemoteGateway) -> "EditorialCommands":
        return cls(
            posts=EntityCommands(store, gateway, POST_SPEC),
            categories=EntityCommands(store, gateway, CATEGORY_SPEC),
        )
