"""Composition roots for the platform and editorial sides.

Each context owns one store and wires the sync controller, command layer,
search and session watcher to it::

    with PlatformContext.from_settings(Settings.load()) as platform:
        platform.search.search("cardiac")
        platform.commands.notes.create({...})
        platform.state.notes
"""

from __future__ import annotations

from medfly import browse, queries
from medfly.auth import SessionWatcher
from medfly.commands import EditorialCommands, PlatformCommands
from medfly.config import Settings
from medfly.entities import Note
from medfly.gateway import RemoteGateway, open_gateway
from medfly.search import DEFAULT_LIMIT, NoteSearch
from medfly.store import EditorialState, PlatformState, Store, editorial_store, platform_store
from medfly.sync import SyncController

PLATFORM_FETCHERS = {
    "years": queries.fetch_years,
    "units": queries.fetch_units,
    "lecturers": queries.fetch_lecturers,
    "notes": queries.fetch_notes,
    "tags": queries.fetch_tags,
}
# Years are reference data and fetched once
PLATFORM_WATCHED = {
    queries.NOTES: ("notes",),
    queries.UNITS: ("units",),
    queries.LECTURERS: ("lecturers",),
    queries.TAGS: ("tags",),
}

EDITORIAL_FETCHERS = {
    "posts": queries.fetch_posts,
    "categories": queries.fetch_categories,
}
EDITORIAL_WATCHED = {
    queries.POSTS: ("posts",),
    queries.CATEGORIES: ("categories",),
}


class _Context:
    store: Store

    def __init__(self, gateway: RemoteGateway, *, owns_gateway: bool = False) -> None:
        self.gateway = gateway
        self._owns_gateway = owns_gateway
        self.session = SessionWatcher(self.store, gateway)

    def start(self) -> dict[str, bool]:
        """Load the session, subscribe, and bootstrap; returns collection → success."""
        self.session.start()
        return self.sync.start()

    def stop(self) -> None:
        self.sync.stop()
        self.session.stop()
        if self._owns_gateway:
            self.gateway.close()

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()


class PlatformContext(_Context):
    """Years, units, lecturers, notes and tags."""

    def __init__(
        self, gateway: RemoteGateway, *, search_limit: int = DEFAULT_LIMIT, owns_gateway: bool = False
    ) -> None:
        self.store: Store[PlatformState] = platform_store()
        self.sync = SyncController(self.store, gateway, PLATFORM_FETCHERS, PLATFORM_WATCHED)
        self.commands = PlatformCommands.build(self.store, gateway)
        self.search = NoteSearch(self.store, gateway, limit=search_limit)
        super().__init__(gateway, owns_gateway=owns_gateway)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlatformContext":
        return cls(open_gateway(settings), search_limit=settings.search_limit, owns_gateway=True)

    @property
    def state(self) -> PlatformState:
        return self.store.state

    def open_note(self, slug: str) -> tuple[Note, list[Note]] | None:
        """Resolve a published note for reading, count the view, and pick related notes."""
        note = browse.note_by_slug(self.state, slug)
        if note is None:
            return None
        self.commands.notes.increment_view(note.id)
        return note, browse.related_notes(self.state, note)


class EditorialContext(_Context):
    """Posts and categories."""

    def __init__(self, gateway: RemoteGateway, *, owns_gateway: bool = False) -> None:
        self.store: Store[EditorialState] = editorial_store()
        self.sync = SyncController(self.store, gateway, EDITORIAL_FETCHERS, EDITORIAL_WATCHED)
        self.commands = EditorialCommands.build(self.store, gateway)
        super().__init__(gateway, owns_gateway=owns_gateway)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EditorialContext":
        return cls(open_gateway(settings), owns_gateway=True)

    @property
    def state(self) -> EditorialState:
        return self.store.state
