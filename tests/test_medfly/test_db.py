"""Unit tests for medfly.db.ContentDB."""

from __future__ import annotations

import duckdb
import polars as pl
import pytest

from medfly.db import ContentDB
from medfly.store import PlatformState


@pytest.fixture()
def db(platform):
    with ContentDB(platform.state) as content_db:
        yield content_db


# ---------------------------------------------------------------------------
# query()
# ---------------------------------------------------------------------------


class TestContentDBQuery:
    def test_basic_select(self, db: ContentDB):
        df = db.query("SELECT id FROM notes ORDER BY id")
        assert list(df["id"]) == ["n1", "n2", "n3", "n4"]

    def test_params(self, db: ContentDB):
        df = db.query("SELECT title FROM notes WHERE view_count > ?", [100])
        assert list(df["title"]) == ["Cardiac Cycle"]

    def test_tags_loaded(self, db: ContentDB):
        df = db.query("SELECT id FROM notes WHERE list_contains(tags, 'cardiology')")
        assert list(df["id"]) == ["n1"]

    def test_returns_polars_dataframe(self, db: ContentDB):
        assert isinstance(db.query("SELECT id FROM notes"), pl.DataFrame)

    def test_invalid_sql_raises(self, db: ContentDB):
        with pytest.raises(duckdb.Error):
            db.query("SELECT * FROM nonexistent_table")


# ---------------------------------------------------------------------------
# Pre-built views
# ---------------------------------------------------------------------------


class TestDashboard:
    def test_stats(self, db: ContentDB):
        assert db.dashboard_stats() == {
            "total_notes": 4,
            "published_notes": 3,
            "draft_notes": 1,
            "featured_notes": 1,
            "years": 2,
            "units": 2,
            "lecturers": 3,
        }

    def test_empty_snapshot(self):
        with ContentDB(PlatformState()) as empty:
            assert empty.dashboard_stats()["total_notes"] == 0


class TestNotesTable:
    def test_default_newest_first(self, db: ContentDB):
        df = db.notes_table()
        assert list(df["id"]) == ["n4", "n3", "n2", "n1"]
        assert df.filter(pl.col("id") == "n1")["unit_code"][0] == "PHY101"

    def test_search(self, db: ContentDB):
        assert list(db.notes_table(search="HEART")["title"]) == ["Heart Sounds"]

    def test_year_and_published(self, db: ContentDB):
        assert list(db.notes_table(year_id="y2", published=True)["id"]) == ["n3"]
        assert list(db.notes_table(published=False)["id"]) == ["n4"]

    def test_order_by_views(self, db: ContentDB):
        df = db.notes_table(published=True, order_by="view_count")
        assert list(df["id"]) == ["n1", "n3", "n2"]

    def test_rejects_unknown_order(self, db: ContentDB):
        with pytest.raises(ValueError):
            db.notes_table(order_by="title; DROP TABLE notes")


class TestSummaries:
    def test_unit_summary(self, db: ContentDB):
        rows = db.unit_summary().to_dicts()
        assert [r["unit_code"] for r in rows] == ["ANA201", "PHY101"]
        ana, phy = rows
        assert (ana["note_count"], ana["published_count"], ana["lecturer"]) == (2, 1, "Peter Mwangi")
        assert (phy["note_count"], phy["published_count"]) == (2, 2)

    def test_lecturer_summary_active_only(self, db: ContentDB):
        rows = db.lecturer_summary().to_dicts()
        assert [r["name"] for r in rows] == ["Amina Odhiambo", "Peter Mwangi"]
        assert [r["has_contact"] for r in rows] == [True, False]
        assert [r["unit_count"] for r in rows] == [1, 1]

    def test_difficulty_counts(self, db: ContentDB):
        df = db.difficulty_counts()
        assert dict(zip(df["difficulty_level"], df["note_count"])) == {
            "Advanced": 1,
            "Beginner": 1,
            "Intermediate": 1,
        }

    def test_refresh_picks_up_changes(self, db: ContentDB, platform):
        platform.commands.notes.update("n4", {"is_published": True})
        db.refresh(platform.state)
        assert db.dashboard_stats()["published_notes"] == 4
