"""Abstract remote gateway protocol.

The gateway is the only component that talks to the backend.  It exposes
table-scoped reads (equality filters, ``ilike`` text search, ordering, limit,
join-expansion), writes by id, one-shot RPCs, change-feed subscriptions, and
the auth session.  Everything above it (store, sync, commands, search) is
written against this protocol so the Supabase and local DuckDB backends are
interchangeable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Protocol, runtime_checkable


# ---------------------------------------------------------------------------
# Query description
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Embed:
    """Join-expansion of a related table into each returned row.

    For a many-to-one relation (``many=False``) *column* is the foreign key on
    the parent row (``notes.unit_id`` → ``units.id``).  For a one-to-many
    relation (``many=True``) *column* is the foreign key on the child table
    (``note_tags.note_id`` → ``notes.id``).  *embeds* nest further relations
    inside each embedded row.
    """

    alias: str
    table: str
    column: str
    many: bool = False
    embeds: tuple["Embed", ...] = ()


@dataclass(frozen=True)
class TextSearch:
    """Case-insensitive substring match of *term* against any of *columns*."""

    term: str
    columns: tuple[str, ...]


@dataclass(frozen=True)
class Query:
    table: str
    embeds: tuple[Embed, ...] = ()
    eq: tuple[tuple[str, Any], ...] = ()
    search: TextSearch | None = None
    order_by: str | None = None
    descending: bool = False
    limit: int | None = None


# ---------------------------------------------------------------------------
# Change feed
# ---------------------------------------------------------------------------


class ChangeKind(str, Enum):
    INSERT = "INSERT"
    UPDATE = "UPDATE"
    DELETE = "DELETE"


@dataclass(frozen=True)
class ChangeEvent:
    kind: ChangeKind
    table: str
    record: dict[str, Any] = field(default_factory=dict)
    old_record: dict[str, Any] = field(default_factory=dict)


ChangeCallback = Callable[[ChangeEvent], None]
#: ``callback(event_name, session_or_none)``
AuthCallback = Callable[[str, "dict[str, Any] | None"], None]


class Subscription:
    """Handle returned by :meth:`RemoteGateway.subscribe`; release with :meth:`unsubscribe`."""

    def __init__(self, release: Callable[[], None], *, name: str = "") -> None:
        self.name = name
        self._release: Callable[[], None] | None = release

    @property
    def active(self) -> bool:
        return self._release is not None

    def unsubscribe(self) -> None:
        release, self._release = self._release, None
        if release is not None:
            release()

    def __repr__(self) -> str:
        state = "active" if self.active else "closed"
        return f"<Subscription {self.name!r} {state}>"


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


@runtime_checkable
class RemoteGateway(Protocol):
    """Common interface shared by all gateways.

    Read failures raise :class:`~medfly.errors.FetchError`; write and RPC
    failures raise :class:`~medfly.errors.RemoteWriteError`.
    """

    # ------------------------------------------------------------------ reads

    def select(self, query: Query) -> list[dict[str, Any]]:
        """Return the rows matching *query*, with embeds expanded."""
        ...

    # ----------------------------------------------------------------- writes

    def insert(self, table: str, payload: dict[str, Any], *, embeds: tuple[Embed, ...] = ()) -> dict[str, Any]:
        """Insert one row and return it as stored, with *embeds* expanded."""
        ...

    def update(
        self, table: str, row_id: str, payload: dict[str, Any], *, embeds: tuple[Embed, ...] = ()
    ) -> dict[str, Any]:
        """Update the row with id *row_id* and return it as stored."""
        ...

    def delete(self, table: str, row_id: str) -> None:
        """Delete the row with id *row_id*."""
        ...

    def rpc(self, name: str, params: dict[str, Any]) -> Any:
        """Invoke a named remote procedure."""
        ...

    # ------------------------------------------------------------ change feed

    def subscribe(self, channel: str, table: str, callback: ChangeCallback) -> Subscription:
        """Call *callback* for every insert, update, or delete on *table*."""
        ...

    # ------------------------------------------------------------------- auth

    def get_session(self) -> dict[str, Any] | None:
        """Return the current auth session, or ``None`` when signed out."""
        ...

    def on_auth_state_change(self, callback: AuthCallback) -> Subscription:
        """Call *callback* on every sign-in / sign-out transition."""
        ...
