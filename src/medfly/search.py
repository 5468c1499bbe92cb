"""Note search and listing filter/sort helpers.

Two search paths:

* No text and no active filter: the published notes already held by the
  store are returned as-is, without a round trip.
* Otherwise one remote query combines a case-insensitive match on
  title/content/excerpt, one equality clause per active filter, and
  ``is_published = true``, newest first, capped at *limit* rows.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterable

from medfly import queries
from medfly.entities import Note
from medfly.errors import FetchError
from medfly.gateway.base import Query, RemoteGateway, TextSearch
from medfly.log import get_logger
from medfly.store import PlatformState, SetSearching, SetSearchResults, Store

log = get_logger(__name__)

DEFAULT_LIMIT = 50

# Filter values a select box produces for "no filter"
_ANY = (None, "", "all")


@dataclass(frozen=True)
class SearchFilters:
    year_id: str | None = None
    unit_id: str | None = None
    lecturer_id: str | None = None
    difficulty_level: str | None = None

    def active(self) -> tuple[tuple[str, Any], ...]:
        """``(column, value)`` pairs for every filter that is actually set."""
        pairs = (
            ("year_id", self.year_id),
            ("unit_id", self.unit_id),
            ("lecturer_id", self.lecturer_id),
            ("difficulty_level", self.difficulty_level),
        )
        return tuple((column, value) for column, value in pairs if value not in _ANY)


def build_search_query(text: str, filters: SearchFilters, limit: int = DEFAULT_LIMIT) -> Query:
    term = text.strip()
    return Query(
        queries.NOTES,
        embeds=queries.NOTE_EMBEDS,
        eq=(*filters.active(), ("is_published", True)),
        search=TextSearch(term, queries.NOTE_SEARCH_COLUMNS) if term else None,
        order_by="created_at",
        descending=True,
        limit=limit,
    )


class NoteSearch:
    """Runs note searches and records the results in the platform store."""

    def __init__(self, store: Store[PlatformState], gateway: RemoteGateway, *, limit: int = DEFAULT_LIMIT) -> None:
        self.store = store
        self.gateway = gateway
        self.limit = limit

    def search(self, text: str = "", filters: SearchFilters | None = None) -> tuple[Note, ...]:
        filters = filters or SearchFilters()
        if not text.strip() and not filters.active():
            results = self.store.state.published_notes
            self.store.dispatch(SetSearchResults(results))
            return results

        self.store.dispatch(SetSearching(True))
        try:
            rows = self.gateway.select(build_search_query(text, filters, self.limit))
            results = queries.parse_rows(queries.NOTES, rows, queries.parse_note)
        except FetchError as exc:
            log.warning("search_failed", text=text, error=str(exc))
            results = ()
        self.store.dispatch(SetSearchResults(results))
        log.debug("search_done", text=text, filters=dict(filters.active()), count=len(results))
        return results


# ---------------------------------------------------------------------------
# Listing helpers (blog/notes index pages)
# ---------------------------------------------------------------------------


class SortOrder(str, Enum):
    NEWEST = "newest"
    OLDEST = "oldest"
    ALPHABETICAL = "alphabetical"
    POPULAR = "popular"


def filter_listing(items: Iterable[Any], term: str = "", category_slug: str | None = None) -> list[Any]:
    """Keep items whose title, excerpt, content or category name contains *term*.

    Matching is case-insensitive.  *category_slug* additionally restricts to
    items in that category; ``None``, ``""`` and ``"all"`` disable it.
    """
    needle = term.strip().casefold()
    out = []
    for item in items:
        category = getattr(item, "category", None)
        if category_slug not in _ANY and (category is None or category.slug != category_slug):
            continue
        if needle:
            haystack = [item.title, item.excerpt, item.content]
            if category is not None:
                haystack.append(category.name)
            if not any(needle in (field or "").casefold() for field in haystack):
                continue
        out.append(item)
    return out


def _created(item: Any) -> float:
    return item.created_at.timestamp() if item.created_at else 0.0


def sort_listing(items: Iterable[Any], order: SortOrder | str = SortOrder.NEWEST) -> list[Any]:
    order = SortOrder(order)
    items = list(items)
    if order is SortOrder.NEWEST:
        return sorted(items, key=_created, reverse=True)
    if order is SortOrder.OLDEST:
        return sorted(items, key=_created)
    if order is SortOrder.ALPHABETICAL:
        return sorted(items, key=lambda item: (item.title.casefold(), item.title))
    return sorted(items, key=lambda item: (-getattr(item, "view_count", 0), item.title.casefold()))
