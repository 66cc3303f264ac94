"""
Tests for the local JSON state store.
"""
import json
import logging
from datetime import date

import pytest

from src.models.data_structures import AppState, ChildProfile, Gender, GrowthRecord
from src.storage.local_store import LocalStore


@pytest.fixture
def store(tmp_path):
    return LocalStore(data_dir=tmp_path, key="test_state")


def _state():
    state = AppState(profile=ChildProfile("Leo", date(2022, 5, 10), Gender.BOY))
    state.add_record(GrowthRecord(date=date(2022, 11, 10), height=68.0, weight=8.1))
    return state


class TestLocalStore:

    def test_missing_blob_loads_empty_state(self, store):
        state = store.load()
        assert state.profile is None
        assert state.records == []
        assert state.vaccines == []

    def test_save_then_load(self, store):
        assert store.save(_state())
        assert store.path.name == "test_state.json"
        loaded = store.load()
        assert loaded.profile.name == "Leo"
        assert loaded.records[0].height == 68.0

    def test_no_temp_files_left_behind(self, store, tmp_path):
        store.save(_state())
        assert [p.name for p in tmp_path.iterdir()] == ["test_state.json"]

    def test_corrupt_blob_loads_empty_state(self, store, caplog):
        store.path.write_text("{not json")
        with caplog.at_level(logging.ERROR):
            state = store.load()
        assert state.profile is None
        assert "Could not load state" in caplog.text

    def test_legacy_blob_without_vaccines(self, store):
        store.path.write_text(json.dumps({"profile": None, "records": []}))
        assert store.load().vaccines == []

    def test_clear(self, store):
        store.save(_state())
        store.clear()
        assert not store.path.exists()
        store.clear()  # clearing twice is harmless
        assert store.load().profile is None

    @pytest.mark.parametrize("blob", ["[]", "null", "42", '"text"'])
    def test_non_object_blob_loads_empty_state(self, store, blob, caplog):
        store.path.write_text(blob)
        with caplog.at_level(logging.ERROR):
            state = store.load()
        assert state.profile is None
        assert state.records == []
        assert "Could not load state" in caplog.text
