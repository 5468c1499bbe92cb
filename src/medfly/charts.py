"""Admin dashboard charts.

Builds :mod:`altair` charts from :class:`~medfly.db.ContentDB` views; the
results can be embedded directly in a marimo cell.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from medfly.entities import Difficulty

if TYPE_CHECKING:
    import altair as alt

    from medfly.db import ContentDB

_DIFFICULTY_COLOURS = {
    Difficulty.BEGINNER.value: "#059669",
    Difficulty.INTERMEDIATE.value: "#D97706",
    Difficulty.ADVANCED.value: "#DC2626",
    "(unset)": "#6B7280",
}


def difficulty_chart(db: "ContentDB", *, width: int = 360, height: int = 220) -> "alt.Chart":
    """Bar chart of published notes per difficulty level."""
    import altair as alt

    df = db.difficulty_counts()
    levels = list(_DIFFICULTY_COLOURS)
    return (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("difficulty_level:N", sort=levels, title="difficulty"),
            y=alt.Y("note_count:Q", title="published notes"),
            color=alt.Color(
                "difficulty_level:N",
                scale=alt.Scale(domain=levels, range=list(_DIFFICULTY_COLOURS.values())),
                legend=None,
            ),
            tooltip=[alt.Tooltip("difficulty_level:N"), alt.Tooltip("note_count:Q")],
        )
        .properties(width=width, height=height)
    )


def popular_notes_chart(db: "ContentDB", *, limit: int = 10, width: int = 480, height: int = 260) -> "alt.Chart":
    """Horizontal bars for the *limit* most viewed published notes."""
    import altair as alt

    df = db.query(
        """
        SELECT title, slug, view_count
        FROM notes
        WHERE is_published
        ORDER BY view_count DESC, title
        LIMIT ?
        """,
        [limit],
    )
    return (
        alt.Chart(df)
        .mark_bar(color="#4B90D9")
        .encode(
            x=alt.X("view_count:Q", title="views"),
            y=alt.Y("title:N", sort="-x", title=None),
            tooltip=[alt.Tooltip("title:N", title="note"), alt.Tooltip("slug:N"), alt.Tooltip("view_count:Q")],
        )
        .properties(width=width, height=height)
    )
