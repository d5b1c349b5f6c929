import json
import random

import pytest

from break_reader.config import PASSAGES_FILE
from break_reader.content import (
    ContentHistory,
    ContentItem,
    ContentLibrary,
    ContentSelector,
    HistoryStore,
    parse_ref,
    update_history,
)


def make_library(count=12):
    return ContentLibrary([ContentItem(i, f"Passage {i}", f"Body of passage {i}.") for i in range(1, count + 1)])


@pytest.fixture
def history_path(tmp_path):
    return str(tmp_path / "cache" / "history.json")


class TestUpdateHistory:
    def test_repeat_pick_moves_to_front(self):
        existing = ContentHistory(last_picked_id=3, history=[3, 7, 9, 2, 5])

        updated = update_history(existing, 7)

        assert updated.history == [7, 3, 9, 2, 5]
        assert updated.last_picked_id == 7
        assert updated.last_picked_at is not None

    def test_new_pick_truncates_to_bound(self):
        updated = update_history(ContentHistory(history=[3, 7, 9, 2, 5]), 11)

        assert updated.history == [11, 3, 7, 9, 2]

    def test_no_existing_history(self):
        assert update_history(None, 4).history == [4]


class TestHistoryStore:
    def test_missing_file(self, history_path, logger):
        assert HistoryStore(history_path, logger).load() is None

    def test_corrupt_file(self, tmp_path, logger):
        path = tmp_path / "history.json"
        path.write_text("{not json", encoding="utf-8")

        assert HistoryStore(str(path), logger).load() is None

    def test_round_trip_creates_directory(self, history_path, logger):
        store = HistoryStore(history_path, logger)
        store.save(ContentHistory(last_picked_id=2, last_picked_at="2024-08-25T13:00:00+00:00", history=[2, 8]))

        loaded = store.load()
        assert loaded.history == [2, 8]
        assert loaded.last_picked_id == 2

        with open(history_path, encoding="utf-8") as f:
            assert set(json.load(f)) == {"lastPickedId", "lastPickedAt", "history"}

    def test_bad_field_types_are_dropped(self, tmp_path, logger):
        path = tmp_path / "history.json"
        path.write_text(json.dumps({"lastPickedId": "seven", "history": [1, "2", True, 4]}), encoding="utf-8")

        loaded = HistoryStore(str(path), logger).load()
        assert loaded.last_picked_id is None
        assert loaded.history == [1, 4]


class TestContentSelector:
    def test_pick_avoids_recent_history(self, history_path, logger):
        store = HistoryStore(history_path, logger)
        store.save(ContentHistory(history=[1, 2, 3, 4, 5]))
        selector = ContentSelector(make_library(), store, logger, rng=random.Random(0))

        for _ in range(10):
            assert selector.pick().id not in {1, 2, 3, 4, 5}
            store.save(ContentHistory(history=[1, 2, 3, 4, 5]))

    def test_pick_updates_history(self, history_path, logger):
        store = HistoryStore(history_path, logger)
        selector = ContentSelector(make_library(), store, logger, rng=random.Random(1))

        item = selector.pick()

        assert 1 <= item.id <= 12
        assert store.load().history == [item.id]

    def test_consecutive_picks_differ(self, history_path, logger):
        selector = ContentSelector(make_library(), HistoryStore(history_path, logger), logger, rng=random.Random(2))

        ids = [selector.pick().id for _ in range(6)]

        for i in range(1, len(ids)):
            assert ids[i] not in ids[max(0, i - 5):i]

    def test_degenerate_range_still_returns_in_range(self, history_path, logger):
        store = HistoryStore(history_path, logger)
        store.save(ContentHistory(history=[1, 2]))
        selector = ContentSelector(make_library(2), store, logger, rng=random.Random(3))

        assert selector.pick().id in (1, 2)

    def test_unwritable_history_is_not_fatal(self, tmp_path, logger):
        blocker = tmp_path / "file"
        blocker.write_text("", encoding="utf-8")
        store = HistoryStore(str(blocker / "history.json"), logger)
        selector = ContentSelector(make_library(), store, logger, rng=random.Random(4))

        assert 1 <= selector.pick().id <= 12

    def test_missing_id_uses_fallback(self, history_path, logger):
        selector = ContentSelector(
            make_library(3), HistoryStore(history_path, logger), logger, min_id=50, max_id=50
        )

        assert selector.pick().id == 0


class TestLibrary:
    def test_bundled_passages_load(self, logger):
        library = ContentLibrary.load(PASSAGES_FILE, logger)

        assert len(library) >= 10
        assert library.get(1).body

    def test_unreadable_library_is_empty(self, tmp_path, logger):
        assert len(ContentLibrary.load(str(tmp_path / "missing.json"), logger)) == 0

    def test_resolve(self):
        library = make_library(3)

        assert library.resolve("passage:2").id == 2
        assert library.resolve(3).id == 3
        assert library.resolve("passage:0").id == 0
        assert library.resolve("passage:99") is None
        assert library.resolve(None) is None

    @pytest.mark.parametrize("ref, expected", [("passage:4", 4), (4, 4), ("bogus", None), (True, None), (None, None)])
    def test_parse_ref(self, ref, expected):
        assert parse_ref(ref) == expected
