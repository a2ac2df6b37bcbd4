"""Tests for storage.py: per-key merge and corruption handling."""

from __future__ import annotations

import json

import pytest

from paper_planner import storage
from paper_planner.exceptions import StorageCorrupt, StorageUnavailable
from paper_planner.storage import KeyValueStore, PreferenceFlags


class TestKeyValueStore:
    def test_missing_key_returns_default(self, store):
        assert store.read("nothing") is None
        assert store.read("nothing", []) == []

    def test_write_then_read(self, store):
        store.write("projectState", {"answers": {"question": "Q"}})
        assert store.read("projectState") == {"answers": {"question": "Q"}}

    def test_values_stored_as_json_strings(self, store):
        store.write("flag", True)
        raw = json.loads(store.path.read_text(encoding="utf-8"))
        assert raw == {"flag": "true"}

    def test_writers_do_not_clobber_each_other(self, store):
        other = KeyValueStore(store.path)
        store.write("projectState", {"answers": {}})
        other.write("paperReviews", [])
        store.write("hideWelcomeSplash", True)
        assert set(KeyValueStore(store.path).keys()) == {"projectState", "paperReviews", "hideWelcomeSplash"}

    def test_corrupt_key_raises_on_read_raw(self, store):
        store.path.write_text(json.dumps({"projectState": "{oops"}), encoding="utf-8")
        with pytest.raises(StorageCorrupt):
            store.read_raw("projectState")
        assert store.read("projectState", {}) == {}

    def test_corrupt_file_treated_as_empty(self, store):
        store.path.write_text("not json at all", encoding="utf-8")
        assert store.read("anything", 5) == 5
        store.write("k", 1)
        assert store.read("k") == 1

    def test_update(self, store):
        store.write("count", 1)
        assert store.update("count", lambda v: v + 1) == 2
        assert store.read("count") == 2

    def test_remove(self, store):
        store.write("a", 1)
        store.write("b", 2)
        store.remove("a")
        store.remove("missing")
        assert store.keys() == ["b"]

    def test_no_temp_files_left(self, store):
        store.write("a", 1)
        assert [p.name for p in store.path.parent.iterdir()] == [store.path.name]

    def test_write_failure_raises_storage_unavailable(self, store, monkeypatch):
        store.write("a", 1)

        def fail(src, dst):
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(storage.os, "replace", fail)
        with pytest.raises(StorageUnavailable):
            store.write("b", 2)
        monkeypatch.undo()
        assert store.read("a") == 1
        assert store.read("b") is None
        assert [p.name for p in store.path.parent.iterdir()] == [store.path.name]


class TestPreferenceFlags:
    def test_defaults(self, store):
        prefs = PreferenceFlags(store)
        assert prefs.enhanced_layout is True
        assert prefs.research_approach is None
        assert prefs.hide_welcome_splash is False

    def test_round_trip(self, store):
        prefs = PreferenceFlags(store)
        prefs.enhanced_layout = False
        prefs.research_approach = "needsresearch"
        prefs.hide_welcome_splash = True
        again = PreferenceFlags(KeyValueStore(store.path))
        assert again.enhanced_layout is False
        assert again.research_approach == "needsresearch"
        assert again.hide_welcome_splash is True
