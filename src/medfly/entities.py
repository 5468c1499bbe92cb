"""Entity value objects for platform (notes) and editorial (posts) content.

Every entity is built from a backend row with :meth:`from_row` and turned back
into a plain dict with :meth:`to_dict`.  Join-expanded relations (a note's
``unit``, ``year``, ``lecturer`` and ``tags``; a post's ``category``) are
parsed into nested entities when the row carries them and left as ``None``
otherwise, so views must treat every relation as optionally absent.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class Difficulty(str, Enum):
    BEGINNER = "Beginner"
    INTERMEDIATE = "Intermediate"
    ADVANCED = "Advanced"

    @classmethod
    def parse(cls, value: Any) -> "Difficulty | None":
        """Return the matching member, or ``None`` for anything unrecognised."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


def parse_timestamp(value: Any) -> datetime | None:
    """Accept ISO-8601 strings (with a trailing ``Z``) or datetimes."""
    if value is None or isinstance(value, datetime):
        return value
    text = str(value)
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return datetime.fromisoformat(text)


def _nested(cls: type, row: dict[str, Any], key: str) -> Any:
    value = row.get(key)
    return cls.from_row(value) if isinstance(value, dict) else None


def _serialise(data: dict[str, Any]) -> dict[str, Any]:
    out: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, datetime):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        out[key] = value
    return out


# ---------------------------------------------------------------------------
# Platform content
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Year:
    id: str
    year_number: int
    year_name: str
    description: str = ""
    color: str = ""

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Year":
        return cls(
            id=row["id"],
            year_number=int(row.get("year_number") or 0),
            year_name=row.get("year_name") or "",
            description=row.get("description") or "",
            color=row.get("color") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Lecturer:
    id: str
    name: str
    title: str = "Dr."
    specialization: str = ""
    email: str | None = None
    phone: str | None = None
    office_location: str | None = None
    bio: str = ""
    profile_image: str | None = None
    is_active: bool = True

    @property
    def display_name(self) -> str:
        return f"{self.title} {self.name}".strip()

    @property
    def has_contact(self) -> bool:
        return bool(self.email or self.phone)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Lecturer":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            title=row.get("title") or "",
            specialization=row.get("specialization") or "",
            email=row.get("email") or None,
            phone=row.get("phone") or None,
            office_location=row.get("office_location") or None,
            bio=row.get("bio") or "",
            profile_image=row.get("profile_image") or None,
            is_active=bool(row.get("is_active", True)),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Unit:
    id: str
    unit_name: str
    unit_code: str
    year_id: str
    lecturer_id: str | None = None
    description: str = ""
    credit_hours: int = 3
    semester: str = "1"
    is_active: bool = True
    year: Year | None = None
    lecturer: Lecturer | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Unit":
        return cls(
            id=row["id"],
            unit_name=row.get("unit_name") or "",
            unit_code=row.get("unit_code") or "",
            year_id=row.get("year_id") or "",
            lecturer_id=row.get("lecturer_id") or None,
            description=row.get("description") or "",
            credit_hours=int(row.get("credit_hours") or 0),
            semester=str(row.get("semester") or ""),
            is_active=bool(row.get("is_active", True)),
            year=_nested(Year, row, "year"),
            lecturer=_nested(Lecturer, row, "lecturer"),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Tag:
    id: str
    tag_name: str
    description: str = ""
    color_code: str = "#6B7280"
    parent_tag_id: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Tag":
        return cls(
            id=row["id"],
            tag_name=row.get("tag_name") or "",
            description=row.get("description") or "",
            color_code=row.get("color_code") or "#6B7280",
            parent_tag_id=row.get("parent_tag_id") or None,
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class Note:
    """A published or draft medical note."""

    id: str
    title: str
    slug: str
    content: str = ""
    excerpt: str = ""
    unit_id: str = ""
    year_id: str = ""
    lecturer_id: str | None = None
    featured_image: str | None = None
    difficulty_level: Difficulty | None = Difficulty.INTERMEDIATE
    estimated_read_time: int = 0
    is_published: bool = False
    is_featured: bool = False
    view_count: int = 0
    download_count: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None
    unit: Unit | None = None
    year: Year | None = None
    lecturer: Lecturer | None = None
    #: Flattened from the ``note_tags`` join rows
    tags: tuple[Tag, ...] = field(default_factory=tuple)

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Note":
        """Build a note from a backend row.

        ``row["tags"]`` must already be flattened to plain tag rows (see
        :func:`medfly.queries.flatten_tags`).
        """
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            slug=row.get("slug") or "",
            content=row.get("content") or "",
            excerpt=row.get("excerpt") or "",
            unit_id=row.get("unit_id") or "",
            year_id=row.get("year_id") or "",
            lecturer_id=row.get("lecturer_id") or None,
            featured_image=row.get("featured_image") or None,
            difficulty_level=Difficulty.parse(row.get("difficulty_level")),
            estimated_read_time=int(row.get("estimated_read_time") or 0),
            is_published=bool(row.get("is_published")),
            is_featured=bool(row.get("is_featured")),
            view_count=int(row.get("view_count") or 0),
            download_count=int(row.get("download_count") or 0),
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
            unit=_nested(Unit, row, "unit"),
            year=_nested(Year, row, "year"),
            lecturer=_nested(Lecturer, row, "lecturer"),
            tags=tuple(Tag.from_row(t) for t in row.get("tags") or () if isinstance(t, dict)),
        )

    def to_dict(self) -> dict[str, Any]:
        data = _serialise(
            {k: v for k, v in self.__dict__.items() if k not in {"unit", "year", "lecturer", "tags"}}
        )
        data["tags"] = [t.to_dict() for t in self.tags]
        return data


@dataclass(frozen=True)
class NoteView:
    """One view event; the client only ever writes these."""

    note_id: str
    user_agent: str = ""
    user_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Editorial content
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Category:
    id: str
    name: str
    slug: str
    description: str = ""
    created_at: datetime | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Category":
        return cls(
            id=row["id"],
            name=row.get("name") or "",
            slug=row.get("slug") or "",
            description=row.get("description") or "",
            created_at=parse_timestamp(row.get("created_at")),
        )

    def to_dict(self) -> dict[str, Any]:
        return _serialise(asdict(self))


@dataclass(frozen=True)
class Post:
    id: str
    title: str
    slug: str
    content: str = ""
    excerpt: str = ""
    featured_image: str | None = None
    category_id: str | None = None
    published: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    category: Category | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Post":
        return cls(
            id=row["id"],
            title=row.get("title") or "",
            slug=row.get("slug") or "",
            content=row.get("content") or "",
            excerpt=row.get("excerpt") or "",
            featured_image=row.get("featured_image") or None,
            category_id=row.get("category_id") or None,
            published=bool(row.get("published")),
            created_at=parse_timestamp(row.get("created_at")),
            updated_at=parse_timestamp(row.get("updated_at")),
            category=_nested(Category, row, "category"),
        )

    def to_dict(self) -> dict[str, Any]:
        data = _serialise({k: v for k, v in self.__dict__.items() if k != "category"})
        data["category"] = self.category.to_dict() if self.category else None
        return data
