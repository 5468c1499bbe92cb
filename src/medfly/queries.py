"""Table names, join-expansions, and the collection readers built on them.

Readers are plain functions of a gateway; they return parsed entities in the
order the store keeps them. Gateway failures propagate as
:class:`~medfly.errors.FetchError`; rows that cannot be parsed are reported
the same way, so one malformed row fails its collection and nothing else.
"""

from __future__ import annotations

from typing import Any, Callable, Iterable, TypeVar

from medfly.entities import Category, Lecturer, Note, Post, Tag, Unit, Year
from medfly.errors import FetchError
from medfly.gateway.base import Embed, Query, RemoteGateway

T = TypeVar("T")

YEARS = "years"
UNITS = "units"
LECTURERS = "lecturers"
TAGS = "tags"
NOTES = "notes"
NOTE_TAGS = "note_tags"
NOTE_VIEWS = "note_views"
POSTS = "posts"
CATEGORIES = "categories"

YEAR = Embed("year", YEARS, "year_id")
LECTURER = Embed("lecturer", LECTURERS, "lecturer_id")
UNIT = Embed("unit", UNITS, "unit_id")
NOTE_TAG_ROWS = Embed("tags", NOTE_TAGS, "note_id", many=True, embeds=(Embed("tag", TAGS, "tag_id"),))
CATEGORY = Embed("category", CATEGORIES, "category_id")

NOTE_EMBEDS = (UNIT, YEAR, LECTURER, NOTE_TAG_ROWS)
UNIT_EMBEDS = (YEAR, LECTURER)
POST_EMBEDS = (CATEGORY,)

#: Columns the free-text note search matches against
NOTE_SEARCH_COLUMNS = ("title", "content", "excerpt")


def flatten_tags(join_rows: list[dict[str, Any]] | None) -> list[dict[str, Any]]:
    """Turn ``[{"tag": {...}}, ...]`` join rows into ``[{...}, ...]``.

    Join rows whose tag could not be expanded are dropped.
    """
    return [row["tag"] for row in join_rows or () if isinstance(row, dict) and row.get("tag")]


def parse_note(row: dict[str, Any]) -> Note:
    """Parse a join-expanded notes row, flattening its tag join rows first."""
    tags = row.get("tags")
    if tags and isinstance(tags[0], dict) and "tag" in tags[0]:
        row = {**row, "tags": flatten_tags(tags)}
    return Note.from_row(row)


def parse_rows(table: str, rows: Iterable[dict[str, Any]], parse: Callable[[dict[str, Any]], T]) -> tuple[T, ...]:
    """Parse every row of *table*, raising :class:`FetchError` on the first malformed one."""
    parsed = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except (KeyError, TypeError, ValueError) as exc:
            row_id = row.get("id") if isinstance(row, dict) else None
            raise FetchError(f"Malformed {table} row {row_id}: {exc}", table=table) from exc
    return tuple(parsed)


# ---------------------------------------------------------------------------
# Platform readers
# ---------------------------------------------------------------------------


def fetch_notes(gateway: RemoteGateway) -> tuple[Note, ...]:
    rows = gateway.select(Query(NOTES, embeds=NOTE_EMBEDS, order_by="created_at", descending=True))
    return parse_rows(NOTES, rows, parse_note)


def fetch_note(gateway: RemoteGateway, note_id: str) -> Note | None:
    rows = gateway.select(Query(NOTES, embeds=NOTE_EMBEDS, eq=(("id", note_id),), limit=1))
    return parse_rows(NOTES, rows[:1], parse_note)[0] if rows else None


def fetch_units(gateway: RemoteGateway) -> tuple[Unit, ...]:
    rows = gateway.select(Query(UNITS, embeds=UNIT_EMBEDS, order_by="unit_code"))
    return parse_rows(UNITS, rows, Unit.from_row)


def fetch_years(gateway: RemoteGateway) -> tuple[Year, ...]:
    rows = gateway.select(Query(YEARS, order_by="year_number"))
    return parse_rows(YEARS, rows, Year.from_row)


def fetch_lecturers(gateway: RemoteGateway) -> tuple[Lecturer, ...]:
    rows = gateway.select(Query(LECTURERS, order_by="name"))
    return parse_rows(LECTURERS, rows, Lecturer.from_row)


def fetch_tags(gateway: RemoteGateway) -> tuple[Tag, ...]:
    rows = gateway.select(Query(TAGS, order_by="tag_name"))
    return parse_rows(TAGS, rows, Tag.from_row)


# ---------------------------------------------------------------------------
# Editorial readers
# ---------------------------------------------------------------------------


def fetch_posts(gateway: RemoteGateway) -> tuple[Post, ...]:
    rows = gateway.select(Query(POSTS, embeds=POST_EMBEDS, order_by="created_at", descending=True))
    return parse_rows(POSTS, rows, Post.from_row)


def fetch_categories(gateway: RemoteGateway) -> tuple[Category, ...]:
    rows = gateway.select(Query(CATEGORIES, order_by="name"))
    return parse_rows(CATEGORIES, rows, Category.from_row)
