"""ContentDB: analytics views over a platform store snapshot.

Loads the notes, units, years and lecturers of a
:class:`~medfly.store.PlatformState` into an in-memory DuckDB database and
returns :mod:`polars` DataFrames for the admin dashboard and manager tables.

Usage::

    db = ContentDB(store.state)

    stats = db.dashboard_stats()          # totals for the dashboard cards
    table = db.notes_table(search="cardiac", published=True)
    units = db.unit_summary()             # units with note counts
    df    = db.query("SELECT title FROM notes WHERE view_count > 100")
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

import duckdb
import polars as pl

from medfly.store import PlatformState

_NOTE_COLUMNS = (
    "id", "title", "slug", "unit_id", "year_id", "lecturer_id", "difficulty_level",
    "estimated_read_time", "is_published", "is_featured", "view_count", "download_count",
    "created_at", "updated_at",
)


def _utc(value: datetime | None) -> datetime | None:
    return value.astimezone(timezone.utc).replace(tzinfo=None) if value else None


class ContentDB:
    """In-memory DuckDB database over one platform snapshot."""

    def __init__(self, state: PlatformState) -> None:
        self.conn: duckdb.DuckDBPyConnection = duckdb.connect(":memory:")
        self.refresh(state)

    # ------------------------------------------------------------------
    # Build / refresh
    # ------------------------------------------------------------------

    def refresh(self, state: PlatformState) -> None:
        """(Re-)populate the database from *state* (call after every sync)."""
        self._create_schema()
        self._load(state)

    def _create_schema(self) -> None:
        self.conn.execute("""
            CREATE OR REPLACE TABLE years (
                id          VARCHAR PRIMARY KEY,
                year_number INTEGER,
                year_name   VARCHAR
            )
        """)
        self.conn.execute("""
            CREATE OR REPLACE TABLE lecturers (
                id             VARCHAR PRIMARY KEY,
                name           VARCHAR,
                title          VARCHAR,
                specialization VARCHAR,
                email          VARCHAR,
                phone          VARCHAR,
                is_active      BOOLEAN
            )
        """)
        self.conn.execute("""
            CREATE OR REPLACE TABLE units (
                id          VARCHAR PRIMARY KEY,
                unit_name   VARCHAR,
                unit_code   VARCHAR,
                year_id     VARCHAR,
                lecturer_id VARCHAR,
                semester    VARCHAR,
                is_active   BOOLEAN
            )
        """)
        self.conn.execute("""
            CREATE OR REPLACE TABLE notes (
                id                  VARCHAR PRIMARY KEY,
                title               VARCHAR,
                slug                VARCHAR,
                unit_id             VARCHAR,
                year_id             VARCHAR,
                lecturer_id         VARCHAR,
                difficulty_level    VARCHAR,
                estimated_read_time INTEGER,
                is_published        BOOLEAN,
                is_featured         BOOLEAN,
                view_count          INTEGER,
                download_count      INTEGER,
                created_at          TIMESTAMP,
                updated_at          TIMESTAMP,
                tags                VARCHAR[]
            )
        """)

    def _load(self, state: PlatformState) -> None:
        years = [(y.id, y.year_number, y.year_name) for y in state.years]
        lecturers = [
            (lc.id, lc.name, lc.title, lc.specialization, lc.email, lc.phone, lc.is_active)
            for lc in state.lecturers
        ]
        units = [
            (u.id, u.unit_name, u.unit_code, u.year_id, u.lecturer_id, u.semester, u.is_active)
            for u in state.units
        ]
        notes = [
            (
                n.id, n.title, n.slug, n.unit_id, n.year_id, n.lecturer_id,
                n.difficulty_level.value if n.difficulty_level else None,
                n.estimated_read_time, n.is_published, n.is_featured,
                n.view_count, n.download_count, _utc(n.created_at), _utc(n.updated_at),
                [t.tag_name for t in n.tags],
            )
            for n in state.notes
        ]
        for table, rows in (("years", years), ("lecturers", lecturers), ("units", units), ("notes", notes)):
            if rows:
                placeholders = ", ".join("?" for _ in rows[0])
                self.conn.executemany(f"INSERT OR REPLACE INTO {table} VALUES ({placeholders})", rows)

    # ------------------------------------------------------------------
    # Query
    # ------------------------------------------------------------------

    def query(self, sql: str, params: list[Any] | None = None) -> pl.DataFrame:
        """Run a raw SQL query and return a Polars DataFrame."""
        return self.conn.execute(sql, params or []).pl()

    # ------------------------------------------------------------------
    # Pre-built views
    # ------------------------------------------------------------------

    def dashboard_stats(self) -> dict[str, int]:
        """Counts shown on the admin dashboard cards."""
        row = self.conn.execute("""
            SELECT
                (SELECT COUNT(*) FROM notes),
                (SELECT COUNT(*) FROM notes WHERE is_published),
                (SELECT COUNT(*) FROM notes WHERE NOT is_published),
                (SELECT COUNT(*) FROM notes WHERE is_featured),
                (SELECT COUNT(*) FROM years),
                (SELECT COUNT(*) FROM units),
                (SELECT COUNT(*) FROM lecturers)
        """).fetchone()
        keys = ("total_notes", "published_notes", "draft_notes", "featured_notes", "years", "units", "lecturers")
        return dict(zip(keys, (int(v) for v in row)))

    def notes_table(
        self,
        *,
        search: str | None = None,
        year_id: str | None = None,
        published: bool | None = None,
        order_by: str = "created_at",
        descending: bool = True,
    ) -> pl.DataFrame:
        """Notes joined to their unit and year, optionally filtered.

        Parameters
        ----------
        search:
            Case-insensitive substring filter on title.
        year_id:
            Only notes filed under this year.
        published:
            ``True`` for published only, ``False`` for drafts only.
        order_by:
            One of the note columns.
        """
        if order_by not in _NOTE_COLUMNS:
            raise ValueError(f"Cannot order notes by {order_by!r}")
        where: list[str] = []
        params: list[Any] = []
        if search:
            where.append("n.title ILIKE ?")
            params.append(f"%{search}%")
        if year_id:
            where.append("n.year_id = ?")
            params.append(year_id)
        if published is not None:
            where.append("n.is_published = ?")
            params.append(published)

        clause = f"WHERE {' AND '.join(where)}" if where else ""
        direction = "DESC" if descending else "ASC"
        return self.conn.execute(
            f"""
            SELECT n.id, n.title, n.slug, u.unit_code, y.year_name, n.difficulty_level,
                   n.is_published, n.is_featured, n.view_count, n.created_at
            FROM notes n
            LEFT JOIN units u ON u.id = n.unit_id
            LEFT JOIN years y ON y.id = n.year_id
            {clause}
            ORDER BY n.{order_by} {direction}, n.title
            """,
            params,
        ).pl()

    def unit_summary(self) -> pl.DataFrame:
        """Units with their year, lecturer and published/total note counts."""
        return self.conn.execute("""
            SELECT u.id, u.unit_code, u.unit_name, y.year_number, l.name AS lecturer,
                   COUNT(n.id) AS note_count,
                   COUNT(n.id) FILTER (WHERE n.is_published) AS published_count
            FROM units u
            LEFT JOIN years y ON y.id = u.year_id
            LEFT JOIN lecturers l ON l.id = u.lecturer_id
            LEFT JOIN notes n ON n.unit_id = u.id
            GROUP BY ALL
            ORDER BY u.unit_code
        """).pl()

    def lecturer_summary(self) -> pl.DataFrame:
        """Active lecturers with unit counts and whether they have contact details."""
        return self.conn.execute("""
            SELECT l.id, l.title, l.name, l.specialization,
                   (l.email IS NOT NULL OR l.phone IS NOT NULL) AS has_contact,
                   COUNT(u.id) AS unit_count
            FROM lecturers l
            LEFT JOIN units u ON u.lecturer_id = l.id
            WHERE l.is_active
            GROUP BY ALL
            ORDER BY l.name
        """).pl()

    def difficulty_counts(self) -> pl.DataFrame:
        """Published note count per difficulty level."""
        return self.conn.execute("""
            SELECT COALESCE(difficulty_level, '(unset)') AS difficulty_level,
                   COUNT(*) AS note_count
            FROM notes
            WHERE is_published
            GROUP BY 1
            ORDER BY note_count DESC, difficulty_level
        """).pl()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        self.conn.close()

    def __enter__(self) -> "ContentDB":
        return self

    def __exit__(self, *_: object) -> None:
        self.close()
