"""Unit tests for medfly.commands."""

from __future__ import annotations

import pytest

from medfly.commands import EditorialCommands, PlatformCommands
from medfly.entities import Difficulty
from medfly.errors import FetchError, MissingFieldsError, RemoteWriteError, WriteError
from medfly.gateway.base import Query
from medfly.store import editorial_store, platform_store


class StubGateway:
    """Records writes and answers with a fixed server row."""

    def __init__(
        self,
        server_row: dict | None = None,
        error: Exception | None = None,
        read_error: Exception | None = None,
    ) -> None:
        self.server_row = server_row or {}
        self.error = error
        self.read_error = read_error
        self.inserts: list[tuple] = []
        self.updates: list[tuple] = []
        self.deletes: list[tuple] = []
        self.rpcs: list[tuple] = []

    def insert(self, table, payload, *, embeds=()):
        self.inserts.append((table, dict(payload), embeds))
        if self.error:
            raise self.error
        return {**payload, **self.server_row}

    def update(self, table, row_id, payload, *, embeds=()):
        self.updates.append((table, row_id, dict(payload)))
        if self.error:
            raise self.error
        return {"id": row_id, **payload, **self.server_row}

    def delete(self, table, row_id):
        self.deletes.append((table, row_id))
        if self.error:
            raise self.error

    def rpc(self, name, params):
        self.rpcs.append((name, params))
        if self.error:
            raise self.error

    def select(self, query):
        if self.read_error:
            raise self.read_error
        return []


def _note_payload(**overrides):
    payload = {
        "title": "Cardiac Cycle",
        "content": "<p>Systole and diastole.</p>",
        "excerpt": "Phases of the heartbeat.",
        "unit_id": "u1",
        "year_id": "y1",
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# create
# ---------------------------------------------------------------------------


class TestCreateNote:
    def test_folds_server_row_into_store(self):
        store = platform_store()
        gw = StubGateway({"id": "n1", "slug": "cardiac-cycle", "created_at": "2024-01-10T09:00:00Z"})
        note = PlatformCommands.build(store, gw).notes.create(_note_payload())

        assert note.id == "n1"
        assert note.slug == "cardiac-cycle"
        assert [n.id for n in store.state.notes] == ["n1"]
        assert store.state.notes.get("n1").title == "Cardiac Cycle"

    def test_payload_normalised_before_write(self):
        gw = StubGateway({"id": "n1"})
        PlatformCommands.build(platform_store(), gw).notes.create(_note_payload())
        table, sent, embeds = gw.inserts[0]
        assert table == "notes"
        assert sent["slug"] == "cardiac-cycle"
        assert sent["estimated_read_time"] == 1
        assert sent["difficulty_level"] == "Intermediate"
        assert sent["is_published"] is False
        assert embeds

    def test_explicit_slug_kept(self):
        gw = StubGateway({"id": "n1"})
        PlatformCommands.build(platform_store(), gw).notes.create(_note_payload(slug="custom"))
        assert gw.inserts[0][1]["slug"] == "custom"

    def test_difficulty_enum_accepted(self):
        gw = StubGateway({"id": "n1"})
        note = PlatformCommands.build(platform_store(), gw).notes.create(
            _note_payload(difficulty_level=Difficulty.ADVANCED)
        )
        assert gw.inserts[0][1]["difficulty_level"] == "Advanced"
        assert note.difficulty_level is Difficulty.ADVANCED

    def test_unknown_difficulty_rejected(self):
        gw = StubGateway({"id": "n1"})
        with pytest.raises(WriteError):
            PlatformCommands.build(platform_store(), gw).notes.create(_note_payload(difficulty_level="Expert"))
        assert gw.inserts == []

    def test_missing_fields_checked_before_write(self):
        store = platform_store()
        gw = StubGateway({"id": "n1"})
        with pytest.raises(MissingFieldsError) as info:
            PlatformCommands.build(store, gw).notes.create({"title": "Cardiac Cycle"})
        assert info.value.fields == ["content", "excerpt", "unit_id", "year_id"]
        assert gw.inserts == []
        assert len(store.state.notes) == 0

    def test_remote_rejection_reraised_and_store_untouched(self):
        store = platform_store()
        gw = StubGateway(error=RemoteWriteError("duplicate key value", code="23505", table="notes"))
        with pytest.raises(RemoteWriteError, match="duplicate key value"):
            PlatformCommands.build(store, gw).notes.create(_note_payload())
        assert len(store.state.notes) == 0


class TestCreateOthers:
    @pytest.mark.parametrize(
        "attr, payload, missing",
        [
            ("units", {"unit_name": "Renal"}, ["unit_code", "year_id"]),
            ("lecturers", {}, ["name"]),
            ("years", {"year_number": 4}, ["year_name"]),
            ("tags", {"description": "x"}, ["tag_name"]),
        ],
    )
    def test_required_fields(self, attr, payload, missing):
        commands = getattr(PlatformCommands.build(platform_store(), StubGateway()), attr)
        with pytest.raises(MissingFieldsError) as info:
            commands.create(payload)
        assert info.value.fields == missing

    def test_category_slug_from_name(self):
        store = editorial_store()
        gw = StubGateway({"id": "c9"})
        category = EditorialCommands.build(store, gw).categories.create({"name": "Exam Tips"})
        assert category.slug == "exam-tips"
        assert store.state.categories.get("c9") is not None

    def test_post_requires_content(self):
        gw = StubGateway({"id": "p9"})
        with pytest.raises(MissingFieldsError) as info:
            EditorialCommands.build(editorial_store(), gw).posts.create({"title": "Hello"})
        assert info.value.fields == ["content", "excerpt"]


# ---------------------------------------------------------------------------
# update / delete against the local gateway
# ---------------------------------------------------------------------------


class TestUpdateDelete:
    def test_title_change_regenerates_slug(self, platform):
        note = platform.commands.notes.update("n2", {"title": "Heart Murmurs"})
        assert note.slug == "heart-murmurs"
        assert platform.state.notes.get("n2").slug == "heart-murmurs"
        assert len(platform.state.notes) == 4

    def test_update_keeps_relations(self, platform):
        note = platform.commands.notes.update("n1", {"is_featured": False})
        assert note.unit.unit_code == "PHY101"
        assert {t.tag_name for t in note.tags} == {"cardiology", "exam-prep"}

    def test_update_missing_row_reraised(self, platform):
        with pytest.raises(RemoteWriteError):
            platform.commands.units.update("missing", {"unit_name": "x"})

    def test_create_through_change_feed_no_duplicate(self, platform):
        note = platform.commands.notes.create(_note_payload(title="Renal Physiology", unit_id="u1", year_id="y1"))
        ids = [n.id for n in platform.state.notes]
        assert ids.count(note.id) == 1
        assert len(ids) == 5

    def test_duplicate_slug(self, platform):
        with pytest.raises(RemoteWriteError) as info:
            platform.commands.notes.create(_note_payload())
        assert info.value.code == "23505"
        assert len(platform.state.notes) == 4

    def test_delete_unit_removes_exactly_that_unit(self, platform):
        platform.commands.units.delete("u2")
        assert [u.id for u in platform.state.units] == ["u1"]

    def test_delete_post(self, editorial):
        editorial.commands.posts.delete("p3")
        assert [p.id for p in editorial.state.posts] == ["p2", "p1"]


# ---------------------------------------------------------------------------
# Note extras
# ---------------------------------------------------------------------------


class TestNoteExtras:
    def test_increment_view(self, platform):
        assert platform.commands.notes.increment_view("n1") is True
        assert platform.state.notes.get("n1").view_count == 121

    def test_increment_view_failure_swallowed(self):
        gw = StubGateway(error=RemoteWriteError("function missing", code="PGRST202"))
        notes = PlatformCommands.build(platform_store(), gw).notes
        assert notes.increment_view("n1") is False
        assert gw.rpcs == [("increment_note_view_count", {"note_id": "n1"})]

    def test_record_view(self, platform, seeded):
        view = platform.commands.notes.record_view("n1", user_agent="pytest")
        assert view.note_id == "n1"
        (row,) = seeded.select(Query("note_views"))
        assert row["user_agent"] == "pytest"
        assert row["user_id"] is None

    def test_record_view_failure_swallowed(self):
        gw = StubGateway(error=RemoteWriteError("denied"))
        assert PlatformCommands.build(platform_store(), gw).notes.record_view("n1") is None

    def test_tag_note(self, platform):
        note = platform.commands.notes.tag_note("n2", "t1")
        assert [t.tag_name for t in note.tags] == ["cardiology"]
        assert [t.tag_name for t in platform.state.notes.get("n2").tags] == ["cardiology"]

    def test_untag_note(self, platform):
        note = platform.commands.notes.untag_note("n1", "t1")
        assert [t.tag_name for t in note.tags] == ["exam-prep"]
        assert [t.tag_name for t in platform.state.notes.get("n1").tags] == ["exam-prep"]

    def test_untag_lookup_failure_is_a_write_error(self):
        gw = StubGateway(read_error=FetchError("permission denied", code="42501", table="note_tags"))
        notes = PlatformCommands.build(platform_store(), gw).notes
        with pytest.raises(RemoteWriteError) as info:
            notes.untag_note("n1", "t1")
        assert info.value.code == "42501"
        assert info.value.table == "note_tags"
        assert gw.deletes == []

    def test_tag_note_reload_failure_returns_none(self):
        gw = StubGateway(read_error=FetchError("offline", table="notes"))
        notes = PlatformCommands.build(platform_store(), gw).notes
        assert notes.tag_note("n1", "t1") is None
        assert gw.inserts == [("note_tags", {"note_id": "n1", "tag_id": "t1"}, ())]
