"""Unit tests for medfly.store."""

from __future__ import annotations

import threading

import pytest

from medfly.entities import Note, Post, Tag, Unit
from medfly.store import (
    AddEntity,
    BeginLoad,
    CollectionStatus,
    EditorialState,
    FailLoad,
    PlatformState,
    RemoveEntity,
    ReplaceCollection,
    SetSearching,
    SetSearchResults,
    SetUser,
    Store,
    UpdateEntity,
    platform_store,
    reduce,
)


def _tag(tag_id: str, name: str | None = None) -> Tag:
    return Tag(id=tag_id, tag_name=name or tag_id)


def _unit(unit_id: str) -> Unit:
    return Unit(id=unit_id, unit_name=unit_id.upper(), unit_code=unit_id.upper(), year_id="y1")


def _with_tags(*tags: Tag) -> PlatformState:
    return reduce(PlatformState(), ReplaceCollection("tags", tags))


# ---------------------------------------------------------------------------
# reduce()
# ---------------------------------------------------------------------------


class TestReplaceCollection:
    def test_replace_wins(self):
        state = _with_tags(_tag("a"), _tag("b"))
        state = reduce(state, ReplaceCollection("tags", (_tag("c"),)))
        assert [t.id for t in state.tags] == ["c"]

    def test_marks_ready_and_clears_error(self):
        state = reduce(PlatformState(), FailLoad("tags", "boom"))
        state = reduce(state, ReplaceCollection("tags", (_tag("a"),)))
        assert state.tags.status is CollectionStatus.READY
        assert state.tags.error is None

    def test_previous_snapshot_untouched(self):
        before = _with_tags(_tag("a"))
        after = reduce(before, ReplaceCollection("tags", ()))
        assert len(before.tags) == 1
        assert len(after.tags) == 0

    def test_unknown_collection_raises(self):
        with pytest.raises(KeyError):
            reduce(PlatformState(), ReplaceCollection("posts", ()))


class TestAddEntity:
    def test_prepends_and_grows_by_one(self):
        state = reduce(_with_tags(_tag("a"), _tag("b")), AddEntity("tags", _tag("c")))
        assert [t.id for t in state.tags] == ["c", "a", "b"]

    def test_existing_id_replaced_in_place(self):
        state = _with_tags(_tag("a"), _tag("b"))
        state = reduce(state, AddEntity("tags", _tag("b", "renamed")))
        assert [t.id for t in state.tags] == ["a", "b"]
        assert state.tags.get("b").tag_name == "renamed"


class TestUpdateEntity:
    def test_replaces_only_matching_id(self):
        state = _with_tags(_tag("a"), _tag("b"))
        state = reduce(state, UpdateEntity("tags", _tag("a", "alpha")))
        assert len(state.tags) == 2
        assert state.tags.get("a").tag_name == "alpha"
        assert state.tags.get("b").tag_name == "b"

    def test_absent_id_is_noop(self):
        state = _with_tags(_tag("a"))
        after = reduce(state, UpdateEntity("tags", _tag("zzz")))
        assert after.tags.items == state.tags.items


class TestRemoveEntity:
    def test_removes_exactly_that_unit(self):
        state = reduce(PlatformState(), ReplaceCollection("units", (_unit("u1"), _unit("u2"), _unit("u3"))))
        state = reduce(state, RemoveEntity("units", "u2"))
        assert [u.id for u in state.units] == ["u1", "u3"]

    def test_absent_id_leaves_collection(self):
        state = _with_tags(_tag("a"))
        assert len(reduce(state, RemoveEntity("tags", "missing")).tags) == 1


class TestLoadStatus:
    def test_begin_load(self):
        state = reduce(PlatformState(), BeginLoad("notes"))
        assert state.notes.status is CollectionStatus.LOADING
        assert state.loading

    def test_fail_load_keeps_items(self):
        state = _with_tags(_tag("a"))
        state = reduce(state, FailLoad("tags", "Failed to fetch tags: offline"))
        assert state.tags.status is CollectionStatus.ERROR
        assert len(state.tags) == 1
        assert state.errors == {"tags": "Failed to fetch tags: offline"}

    def test_platform_loading_settles_with_notes(self):
        state = reduce(PlatformState(), ReplaceCollection("notes", ()))
        assert not state.loading

    def test_editorial_loading(self):
        state = reduce(EditorialState(), BeginLoad("posts"))
        assert state.loading
        assert not reduce(state, ReplaceCollection("posts", ())).loading


class TestSearchAndUser:
    def test_results_clear_searching_flag(self):
        state = reduce(PlatformState(), SetSearching(True))
        assert state.is_searching
        note = Note(id="n1", title="Cardiac Cycle", slug="cardiac-cycle")
        state = reduce(state, SetSearchResults((note,)))
        assert state.search_results == (note,)
        assert not state.is_searching

    def test_editorial_has_no_search_state(self):
        with pytest.raises(TypeError):
            reduce(EditorialState(), SetSearching(True))

    def test_set_user(self):
        state = reduce(EditorialState(), SetUser({"id": "u1"}))
        assert state.current_user == {"id": "u1"}
        assert reduce(state, SetUser(None)).current_user is None

    def test_unknown_command(self):
        with pytest.raises(TypeError):
            reduce(PlatformState(), object())


class TestDerived:
    def test_published_notes(self):
        notes = (
            Note(id="n1", title="A", slug="a", is_published=True),
            Note(id="n2", title="B", slug="b"),
        )
        state = reduce(PlatformState(), ReplaceCollection("notes", notes))
        assert [n.id for n in state.published_notes] == ["n1"]

    def test_published_posts(self):
        posts = (Post(id="p1", title="A", slug="a", published=True), Post(id="p2", title="B", slug="b"))
        state = reduce(EditorialState(), ReplaceCollection("posts", posts))
        assert [p.id for p in state.published_posts] == ["p1"]

    def test_empty_collection_is_falsy(self):
        assert not PlatformState().notes


# ---------------------------------------------------------------------------
# Store
# ---------------------------------------------------------------------------


class TestStore:
    def test_dispatch_returns_and_stores_state(self):
        store = platform_store()
        state = store.dispatch(AddEntity("tags", _tag("a")))
        assert store.state is state
        assert len(store.state.tags) == 1

    def test_listeners_receive_snapshots(self):
        store = platform_store()
        seen = []
        store.subscribe(seen.append)
        store.dispatch(AddEntity("tags", _tag("a")))
        assert len(seen) == 1
        assert seen[0].tags.get("a") is not None

    def test_unsubscribe(self):
        store = platform_store()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        store.dispatch(AddEntity("tags", _tag("a")))
        assert seen == []

    def test_concurrent_dispatch_loses_nothing(self):
        store = Store(PlatformState())

        def add(prefix: str) -> None:
            for i in range(50):
                store.dispatch(AddEntity("tags", _tag(f"{prefix}{i}")))

        threads = [threading.Thread(target=add, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(store.state.tags) == 200

    def test_subscribe_while_dispatching_from_threads(self):
        store = Store(PlatformState())
        stop = threading.Event()

        def churn() -> None:
            i = 0
            while not stop.is_set():
                store.dispatch(AddEntity("tags", _tag(f"t{i % 20}")))
                i += 1

        worker = threading.Thread(target=churn)
        worker.start()
        try:
            for _ in range(500):
                store.subscribe(lambda _state: None)()
        finally:
            stop.set()
            worker.join()
        assert store._listeners == {}

    def test_listener_may_unsubscribe_itself(self):
        store = platform_store()
        seen = []
        handles = []

        def once(state):
            seen.append(state)
            handles[0]()

        handles.append(store.subscribe(once))
        store.dispatch(AddEntity("tags", _tag("a")))
        store.dispatch(AddEntity("tags", _tag("b")))
        assert len(seen) == 1
