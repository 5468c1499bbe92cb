"""Selectors over store snapshots used by the browse and admin views.

All functions are pure reads of a snapshot; relations that cannot be resolved
come back as ``None`` or are skipped, never raised.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Any, Iterable

from medfly.entities import Note, Post, Unit, Year
from medfly.store import EditorialState, PlatformState

RELATED_LIMIT = 3
RECENT_LIMIT = 6


def published(notes: Iterable[Note]) -> list[Note]:
    return [n for n in notes if n.is_published]


def lookup(items: Iterable[Any], entity_id: str | None) -> Any | None:
    """The item with *entity_id*, or ``None`` when the id is unset or unknown."""
    if not entity_id:
        return None
    return next((item for item in items if item.id == entity_id), None)


# ---------------------------------------------------------------------------
# Platform
# ---------------------------------------------------------------------------


def note_by_slug(state: PlatformState, slug: str) -> Note | None:
    """Published note with *slug*; drafts are not reachable by slug."""
    return next((n for n in state.published_notes if n.slug == slug), None)


def related_notes(state: PlatformState, note: Note, limit: int = RELATED_LIMIT) -> list[Note]:
    """Published notes sharing *note*'s unit or year, excluding *note* itself."""
    related = [
        n for n in state.published_notes
        if n.id != note.id and (n.unit_id == note.unit_id or n.year_id == note.year_id)
    ]
    return related[:limit]


def year_by_number(state: PlatformState, number: int) -> Year | None:
    return next((y for y in state.years.items if y.year_number == number), None)


def units_for_year(state: PlatformState, year_id: str) -> list[Unit]:
    return [u for u in state.units.items if u.year_id == year_id]


def notes_for_unit(state: PlatformState, unit_id: str) -> list[Note]:
    return [n for n in state.published_notes if n.unit_id == unit_id]


@dataclass(frozen=True)
class YearOverview:
    year: Year
    units: tuple[Unit, ...]
    notes: tuple[Note, ...]
    lecturer_count: int


def year_overview(state: PlatformState, number: int) -> YearOverview | None:
    """Units, published notes and distinct lecturer count for year *number*."""
    year = year_by_number(state, number)
    if year is None:
        return None
    units = units_for_year(state, year.id)
    notes = [n for n in state.published_notes if n.year_id == year.id]
    lecturers = {u.lecturer_id for u in units if u.lecturer_id}
    return YearOverview(year, tuple(units), tuple(notes), len(lecturers))


# ---------------------------------------------------------------------------
# Editorial
# ---------------------------------------------------------------------------


def category_post_counts(state: EditorialState) -> dict[str, int]:
    """Category id → number of posts (drafts included) filed under it."""
    counts = Counter(p.category_id for p in state.posts.items if p.category_id)
    return {c.id: counts.get(c.id, 0) for c in state.categories.items}


def category_in_use(state: EditorialState, category_id: str) -> bool:
    """A category with posts filed under it should not be deleted."""
    return any(p.category_id == category_id for p in state.posts.items)


def featured_and_recent(state: EditorialState, limit: int = RECENT_LIMIT) -> tuple[Post | None, list[Post]]:
    """Home page split: the newest published post, then the next *limit*."""
    posts = list(state.published_posts)
    if not posts:
        return None, []
    return posts[0], posts[1 : 1 + limit]
