"""Tests for local record storage."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from selectly.client.models import (
    CollectedItem,
    DictionaryEntry,
    HighlightAnchor,
    HighlightItem,
)
from selectly.client.storage import (
    HighlightStore,
    ItemNotFoundError,
    ItemStore,
    collect_store,
    dictionary_store,
)


class FakeClock:
    """Deterministic millisecond clock."""

    def __init__(self, start: int = 1_000) -> None:
        self.now = start

    def __call__(self) -> int:
        self.now += 1
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> Iterator[ItemStore[CollectedItem]]:
    """Create an in-memory collect store."""
    s = collect_store(clock=clock)
    yield s
    s.close()


class TestAddItem:
    """Tests for ItemStore.add_item()."""

    def test_assigns_id_and_timestamps(self, store: ItemStore[CollectedItem]) -> None:
        """Should generate an id and stamp creation and update times."""
        item_id = store.add_item(CollectedItem(id="", text="hello"))

        item = store.get_by_id(item_id)
        assert item is not None
        assert item_id
        assert item.text == "hello"
        assert item.created_at == 1001
        assert item.updated_at == 1001
        assert item.deleted_at is None

    def test_keeps_given_id_and_created_at(self, store: ItemStore[CollectedItem]) -> None:
        """Should not override caller-provided id or creation time."""
        item_id = store.add_item(CollectedItem(id="fixed", text="x", created_at=5))

        item = store.get_by_id("fixed")
        assert item_id == "fixed"
        assert item is not None
        assert item.created_at == 5
        assert item.updated_at == 1001


class TestUpdateItem:
    """Tests for ItemStore.update_item()."""

    def test_applies_changes_and_bumps_time(self, store: ItemStore[CollectedItem]) -> None:
        """Should change fields and advance updated_at."""
        item_id = store.add_item(CollectedItem(id="a", text="old"))

        updated = store.update_item(item_id, text="new")

        assert updated.text == "new"
        assert updated.updated_at == 1002
        stored = store.get_by_id(item_id)
        assert stored is not None
        assert stored.text == "new"

    def test_ignores_id_and_updated_at(self, store: ItemStore[CollectedItem]) -> None:
        """Should not let callers rewrite the id or the update time."""
        store.add_item(CollectedItem(id="a", text="x"))

        updated = store.update_item("a", id="b", updated_at=1, text="y")

        assert updated.id == "a"
        assert updated.updated_at == 1002
        assert store.get_by_id("b") is None

    def test_missing_item_raises(self, store: ItemStore[CollectedItem]) -> None:
        """Should raise ItemNotFoundError for unknown ids."""
        with pytest.raises(ItemNotFoundError):
            store.update_item("ghost", text="x")


class TestSoftDelete:
    """Tests for ItemStore.soft_delete()."""

    def test_creates_tombstone(self, store: ItemStore[CollectedItem]) -> None:
        """Should set deleted_at equal to the new updated_at."""
        store.add_item(CollectedItem(id="a", text="x"))

        assert store.soft_delete("a") is True

        item = store.get_by_id("a")
        assert item is not None
        assert item.deleted_at == 1002
        assert item.updated_at == 1002
        assert store.get_all() == []
        assert store.count() == 0

    def test_already_deleted(self, store: ItemStore[CollectedItem]) -> None:
        """Should not bump a tombstone twice."""
        store.add_item(CollectedItem(id="a", text="x"))
        store.soft_delete("a")

        assert store.soft_delete("a") is False
        item = store.get_by_id("a")
        assert item is not None
        assert item.updated_at == 1002

    def test_missing(self, store: ItemStore[CollectedItem]) -> None:
        """Should return False for unknown ids."""
        assert store.soft_delete("ghost") is False


class TestSyncWrites:
    """Tests for writes performed by the sync engine."""

    def test_upsert_keeps_timestamps(self, store: ItemStore[CollectedItem]) -> None:
        """Should store remote records exactly as received."""
        store.upsert(CollectedItem(id="r", text="remote", updated_at=50, deleted_at=50))

        item = store.get_by_id("r")
        assert item is not None
        assert item.updated_at == 50
        assert item.deleted_at == 50

    def test_batch_upsert(self, store: ItemStore[CollectedItem]) -> None:
        """Should write all records."""
        count = store.batch_upsert(
            CollectedItem(id=str(i), text="t", created_at=i, updated_at=i) for i in range(3)
        )

        assert count == 3
        assert [item.id for item in store.get_all()] == ["2", "1", "0"]

    def test_batch_upsert_rolls_back(self, store: ItemStore[CollectedItem]) -> None:
        """Should write nothing if one record fails."""

        def items() -> Iterator[CollectedItem]:
            yield CollectedItem(id="ok", text="t")
            raise RuntimeError("broken source")

        with pytest.raises(RuntimeError):
            store.batch_upsert(items())

        assert store.get_by_id("ok") is None

    def test_update_owner_keeps_updated_at(self, store: ItemStore[CollectedItem]) -> None:
        """Owner stamping must not look like a local edit."""
        store.add_item(CollectedItem(id="a", text="x"))

        assert store.update_owner("a", "user-1") is True

        item = store.get_by_id("a")
        assert item is not None
        assert item.owner_id == "user-1"
        assert item.updated_at == 1001
        assert store.update_owner("ghost", "user-1") is False


class TestQueries:
    """Tests for read queries."""

    def test_get_all_filters_by_owner(self, store: ItemStore[CollectedItem]) -> None:
        """Should hide records of other users but keep unowned ones."""
        store.upsert(CollectedItem(id="mine", text="x", owner_id="u1", created_at=3))
        store.upsert(CollectedItem(id="theirs", text="x", owner_id="u2", created_at=2))
        store.upsert(CollectedItem(id="local", text="x", created_at=1))

        assert [i.id for i in store.get_all("u1")] == ["mine", "local"]
        assert [i.id for i in store.get_all()] == ["mine", "theirs", "local"]

    def test_get_all_including_deleted(self, store: ItemStore[CollectedItem]) -> None:
        """Should include tombstones."""
        store.add_item(CollectedItem(id="a", text="x"))
        store.add_item(CollectedItem(id="b", text="y"))
        store.soft_delete("a")

        assert {i.id for i in store.get_all_including_deleted()} == {"a", "b"}

    def test_get_modified_since(self, store: ItemStore[CollectedItem]) -> None:
        """Should return records updated at or after the timestamp."""
        store.upsert(CollectedItem(id="old", text="x", updated_at=10))
        store.upsert(CollectedItem(id="edge", text="x", updated_at=20))
        store.upsert(CollectedItem(id="new", text="x", updated_at=30, deleted_at=30))

        assert {i.id for i in store.get_modified_since(20)} == {"edge", "new"}

    def test_remove_and_clear(self, store: ItemStore[CollectedItem]) -> None:
        """Should hard-delete records."""
        store.add_item(CollectedItem(id="a", text="x"))
        store.add_item(CollectedItem(id="b", text="y"))

        assert store.remove("a") is True
        assert store.remove("a") is False
        assert store.clear_all() == 1
        assert store.get_all_including_deleted() == []


class TestDictionaryStore:
    """Tests for dictionary entries."""

    def test_legacy_entry_without_updated_at(self, clock: FakeClock) -> None:
        """Should index entries lacking updated_at by creation time."""
        store = dictionary_store(clock=clock)
        store.upsert(DictionaryEntry(id="w", source="chat", created_at=40))

        entry = store.get_by_id("w")
        assert entry is not None
        assert entry.updated_at is None
        assert entry.effective_updated_at == 40
        assert [e.id for e in store.get_modified_since(40)] == ["w"]
        store.close()

    def test_add_sets_updated_at(self, clock: FakeClock) -> None:
        """Should give new entries an explicit update time."""
        store = dictionary_store(clock=clock)
        store.add_item(DictionaryEntry(id="w", source="chat", translation="cat"))

        entry = store.get_by_id("w")
        assert entry is not None
        assert entry.updated_at == 1001
        store.close()


class TestHighlightStore:
    """Tests for HighlightStore."""

    @pytest.fixture
    def highlights(self, clock: FakeClock) -> Iterator[HighlightStore]:
        s = HighlightStore(clock=clock)
        yield s
        s.close()

    def test_anchor_round_trips(self, highlights: HighlightStore) -> None:
        """Should persist nested anchors."""
        anchor = HighlightAnchor(start_xpath="/p[2]", start_offset=3, text="quote")
        highlights.add_item(HighlightItem(id="h", text="quote", url="u", anchor=anchor))

        item = highlights.get_by_id("h")
        assert item is not None
        assert item.anchor == anchor

    def test_get_by_url(self, highlights: HighlightStore) -> None:
        """Should return live highlights of one page."""
        highlights.add_item(HighlightItem(id="a", text="x", url="page-1"))
        highlights.add_item(HighlightItem(id="b", text="y", url="page-2"))
        highlights.add_item(HighlightItem(id="c", text="z", url="page-1"))
        highlights.soft_delete("c")

        assert [h.id for h in highlights.get_by_url("page-1")] == ["a"]

    def test_replace_aggregates_keeps_own(self, highlights: HighlightStore) -> None:
        """Should swap aggregates of one page only."""
        highlights.add_item(HighlightItem(id="mine", text="x", url="page"))
        highlights.upsert(
            HighlightItem(id="agg-old", text="x", url="page", source="others")
        )
        highlights.upsert(
            HighlightItem(id="agg-other-page", text="x", url="elsewhere", source="others")
        )

        count = highlights.replace_aggregates_for_url(
            "page",
            [HighlightItem(id="agg-new", text="y", url="page", source="others", others_count=2)],
        )

        assert count == 1
        assert {h.id for h in highlights.get_by_url("page")} == {"mine", "agg-new"}
        assert highlights.get_by_id("agg-other-page") is not None


class TestPersistence:
    """Tests for file-backed stores."""

    def test_reopen(self, tmp_path: Path) -> None:
        """Should keep records across connections."""
        db_path = tmp_path / "nested" / "items.db"
        store = collect_store(db_path)
        store.add_item(CollectedItem(id="a", text="kept"))
        store.close()

        reopened = collect_store(db_path)
        item = reopened.get_by_id("a")
        reopened.close()

        assert item is not None
        assert item.text == "kept"

    def test_domains_share_a_file(self, tmp_path: Path) -> None:
        """Should keep one table per domain in the same database."""
        db_path = tmp_path / "items.db"
        collect = collect_store(db_path)
        dictionary = dictionary_store(db_path)
        collect.add_item(CollectedItem(id="same", text="snippet"))
        dictionary.add_item(DictionaryEntry(id="same", source="word"))

        assert collect.count() == 1
        assert dictionary.count() == 1
        collect.close()
        dictionary.close()
