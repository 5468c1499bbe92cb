"""Entity state stores.

A store holds an immutable snapshot of every entity collection plus transient
flags.  Snapshots only change through :func:`reduce`, a pure function of
``(state, command)``; :class:`Store` wraps it with a lock so callbacks arriving
on other threads (bootstrap workers, change feeds) are applied one at a time,
and notifies listeners with each new snapshot.

Two snapshot types exist:

* :class:`PlatformState` – years, units, lecturers, notes, tags, note search
  results, and the signed-in user.
* :class:`EditorialState` – posts, categories, and the signed-in user.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, TypeVar, Union

from medfly.entities import Note, Post


class CollectionStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


@dataclass(frozen=True)
class CollectionState:
    items: tuple[Any, ...] = ()
    status: CollectionStatus = CollectionStatus.IDLE
    error: str | None = None

    def __len__(self) -> int:
        return len(self.items)

    def __iter__(self):
        return iter(self.items)

    def get(self, entity_id: str) -> Any | None:
        return next((item for item in self.items if item.id == entity_id), None)


@dataclass(frozen=True)
class StoreState:
    COLLECTIONS: ClassVar[tuple[str, ...]] = ()

    current_user: dict[str, Any] | None = None

    def collection(self, name: str) -> CollectionState:
        if name not in self.COLLECTIONS:
            raise KeyError(f"{type(self).__name__} has no collection {name!r}")
        return getattr(self, name)

    @property
    def errors(self) -> dict[str, str]:
        """Collection name → error message for every collection whose last fetch failed."""
        return {
            name: coll.error
            for name in self.COLLECTIONS
            if (coll := getattr(self, name)).status is CollectionStatus.ERROR and coll.error
        }


@dataclass(frozen=True)
class PlatformState(StoreState):
    COLLECTIONS: ClassVar[tuple[str, ...]] = ("years", "units", "lecturers", "notes", "tags")

    years: CollectionState = field(default_factory=CollectionState)
    units: CollectionState = field(default_factory=CollectionState)
    lecturers: CollectionState = field(default_factory=CollectionState)
    notes: CollectionState = field(default_factory=CollectionState)
    tags: CollectionState = field(default_factory=CollectionState)
    search_results: tuple[Note, ...] = ()
    is_searching: bool = False

    @property
    def loading(self) -> bool:
        """True until the notes collection has settled (ready or failed)."""
        return self.notes.status in (CollectionStatus.IDLE, CollectionStatus.LOADING)

    @property
    def published_notes(self) -> tuple[Note, ...]:
        return tuple(n for n in self.notes.items if n.is_published)


@dataclass(frozen=True)
class EditorialState(StoreState):
    COLLECTIONS: ClassVar[tuple[str, ...]] = ("posts", "categories")

    posts: CollectionState = field(default_factory=CollectionState)
    categories: CollectionState = field(default_factory=CollectionState)

    @property
    def loading(self) -> bool:
        return any(getattr(self, n).status is CollectionStatus.LOADING for n in self.COLLECTIONS)

    @property
    def published_posts(self) -> tuple[Post, ...]:
        return tuple(p for p in self.posts.items if p.published)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReplaceCollection:
    collection: str
    items: tuple[Any, ...]


@dataclass(frozen=True)
class BeginLoad:
    collection: str


@dataclass(frozen=True)
class FailLoad:
    collection: str
    message: str


@dataclass(frozen=True)
class AddEntity:
    collection: str
    entity: Any


@dataclass(frozen=True)
class UpdateEntity:
    collection: str
    entity: Any


@dataclass(frozen=True)
class RemoveEntity:
    collection: str
    entity_id: str


@dataclass(frozen=True)
class SetSearching:
    searching: bool


@dataclass(frozen=True)
class SetSearchResults:
    items: tuple[Note, ...]


@dataclass(frozen=True)
class SetUser:
    user: dict[str, Any] | None


StoreCommand = Union[
    ReplaceCollection,
    BeginLoad,
    FailLoad,
    AddEntity,
    UpdateEntity,
    RemoveEntity,
    SetSearching,
    SetSearchResults,
    SetUser,
]

S = TypeVar("S", bound=StoreState)


def _with_collection(state: S, name: str, **changes: Any) -> S:
    return replace(state, **{name: replace(state.collection(name), **changes)})


def _require_search(state: StoreState) -> None:
    if not isinstance(state, PlatformState):
        raise TypeError(f"{type(state).__name__} has no search state")


def reduce(state: S, command: StoreCommand) -> S:
    """Return the snapshot that results from applying *command* to *state*.

    Pure: *state* is never modified.  ``AddEntity`` upserts by id (a new id is
    prepended, a known id is replaced in place); ``UpdateEntity`` on an unknown
    id leaves the collection unchanged.
    """
    if isinstance(command, ReplaceCollection):
        return _with_collection(
            state, command.collection,
            items=tuple(command.items), status=CollectionStatus.READY, error=None,
        )

    if isinstance(command, BeginLoad):
        return _with_collection(state, command.collection, status=CollectionStatus.LOADING)

    if isinstance(command, FailLoad):
        return _with_collection(
            state, command.collection, status=CollectionStatus.ERROR, error=command.message
        )

    if isinstance(command, AddEntity):
        items = state.collection(command.collection).items
        entity = command.entity
        if any(item.id == entity.id for item in items):
            items = tuple(entity if item.id == entity.id else item for item in items)
        else:
            items = (entity, *items)
        return _with_collection(state, command.collection, items=items)

    if isinstance(command, UpdateEntity):
        items = state.collection(command.collection).items
        entity = command.entity
        return _with_collection(
            state, command.collection,
            items=tuple(entity if item.id == entity.id else item for item in items),
        )

    if isinstance(command, RemoveEntity):
        items = state.collection(command.collection).items
        return _with_collection(
            state, command.collection,
            items=tuple(item for item in items if item.id != command.entity_id),
        )

    if isinstance(command, SetSearching):
        _require_search(state)
        return replace(state, is_searching=command.searching)

    if isinstance(command, SetSearchResults):
        _require_search(state)
        return replace(state, search_results=tuple(command.items), is_searching=False)

    if isinstance(command, SetUser):
        return replace(state, current_user=command.user)

    raise TypeError(f"Unknown store command: {command!r}")


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------

Listener = Callable[[Any], None]


class Store(Generic[S]):
    """Owns the current snapshot; the only writer of it."""

    def __init__(self, initial: S) -> None:
        self._state = initial
        self._lock = threading.Lock()
        self._tokens = itertools.count(1)
        self._listeners: dict[int, Listener] = {}

    @property
    def state(self) -> S:
        return self._state

    def dispatch(self, command: StoreCommand) -> S:
        with self._lock:
            self._state = reduce(self._state, command)
            state = self._state
            listeners = list(self._listeners.values())
        for listener in listeners:
            listener(state)
        return state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener* with every new snapshot; returns an unsubscribe function."""
        with self._lock:
            token = next(self._tokens)
            self._listeners[token] = listener

        def unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return unsubscribe


def platform_store() -> Store[PlatformState]:
    return Store(PlatformState())


def editorial_store() -> Store[EditorialState]:
    return Store(EditorialState())

