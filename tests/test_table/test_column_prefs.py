"""Tests for column preferences and their persistence."""

import json

import pytest

from smarttable.column_persist import (
    ColumnStorage,
    FileColumnStorage,
    MemoryColumnStorage,
    PersistedColumnState,
    column_persist_key,
    load_column_state,
)
from smarttable.column_prefs import ColumnPreferenceStore
from smarttable.exceptions import PersistenceError

BIZ_KEY = "profile.myActivities"
STORAGE_KEY = "table-columns:profile.myActivities"


class BrokenStorage(ColumnStorage):
    """Storage whose every operation fails."""

    def get(self, key):
        raise PersistenceError("read failed", key=key)

    def set(self, key, value):
        raise PersistenceError("write failed", key=key)

    def remove(self, key):
        raise PersistenceError("remove failed", key=key)


def make_store(presets, storage, **kwargs):
    return ColumnPreferenceStore(BIZ_KEY, presets, storage, clock=lambda: 1000, **kwargs)


class TestColumnPreferenceStore:
    """Test merging presets with persisted overrides."""

    def test_defaults_from_presets(self, presets, memory_storage):
        """With nothing stored the presets should apply."""
        store = make_store(presets, memory_storage)

        assert store.ordered_keys == ["name", "dept", "secret"]
        assert store.visible_keys == ["name", "dept"]
        assert store.width_of("name") == 200

    def test_width_round_trip(self, presets, memory_storage):
        """A stored width should survive a fresh load."""
        make_store(presets, memory_storage).set_width("name", 180)

        fresh = make_store(presets, memory_storage)

        assert fresh.width_of("name") == 180

    def test_width_clamped_and_floored(self, presets, memory_storage):
        """Widths should be floored and never below the minimum."""
        store = make_store(presets, memory_storage)

        assert store.set_width("name", 20) == 80
        assert store.set_width("dept", 150.9) == 150

    @pytest.mark.parametrize("width", [float("nan"), float("inf"), "wide", True])
    def test_invalid_width_rejected(self, presets, memory_storage, width):
        """Non-numeric or non-finite widths should raise."""
        store = make_store(presets, memory_storage)

        with pytest.raises(ValueError):
            store.set_width("name", width)

    def test_unknown_width_key_ignored(self, presets, memory_storage):
        """Widths for unknown columns should not be stored."""
        store = make_store(presets, memory_storage)

        assert store.set_width("missing", 200) is None
        assert memory_storage.data == {}

    def test_visibility(self, presets, memory_storage):
        """Visible keys should be exactly those given."""
        store = make_store(presets, memory_storage)

        assert store.set_visible_keys(["secret", "name", "bogus"]) == ["name", "secret"]
        assert make_store(presets, memory_storage).visible_keys == ["name", "secret"]

    def test_order(self, presets, memory_storage):
        """Reordering should put given keys first and keep the rest."""
        store = make_store(presets, memory_storage)

        assert store.set_ordered_keys(["secret"]) == ["secret", "name", "dept"]
        assert make_store(presets, memory_storage).ordered_keys == ["secret", "name", "dept"]

    def test_visible_columns_carry_width(self, presets, memory_storage):
        """Visible presets should come back with their effective width."""
        store = make_store(presets, memory_storage)
        store.set_width("dept", 300)

        columns = store.visible_columns

        assert [c.key for c in columns] == ["name", "dept"]
        assert columns[1].width == 300

    def test_removed_column_dropped(self, presets, memory_storage):
        """Stored entries for columns no longer preset should be ignored."""
        memory_storage.set(STORAGE_KEY, json.dumps({
            "version": 1,
            "updatedAt": 5,
            "columns": [
                {"key": "gone", "width": 500, "hidden": True},
                {"key": "dept", "width": 222, "hidden": True},
            ],
        }))

        store = make_store(presets, memory_storage)

        assert store.ordered_keys == ["name", "dept", "secret"]
        assert store.width_of("dept") == 222
        assert store.is_visible("dept") is False

    def test_version_mismatch_discarded(self, presets, memory_storage):
        """A record from another schema version should not apply."""
        memory_storage.set(STORAGE_KEY, json.dumps({
            "version": 99,
            "updatedAt": 5,
            "columns": [{"key": "name", "width": 400}],
        }))

        store = make_store(presets, memory_storage)

        assert store.width_of("name") == 200
        assert store.persisted is None

    def test_corrupt_storage_fails_open(self, presets, memory_storage):
        """Unparseable storage should fall back to the presets."""
        memory_storage.set(STORAGE_KEY, "{not json")

        store = make_store(presets, memory_storage)

        assert store.visible_keys == ["name", "dept"]

    @pytest.mark.parametrize("field", ["width", "order"])
    def test_non_finite_numbers_ignored(self, presets, memory_storage, field):
        """Infinite widths or orders in storage should fall back to the presets."""
        memory_storage.set(
            STORAGE_KEY,
            '{"version": 1, "updatedAt": 1, "columns": [{"key": "name", "' + field + '": Infinity}]}',
        )

        store = make_store(presets, memory_storage)

        assert store.width_of("name") == 200
        assert store.ordered_keys == ["name", "dept", "secret"]

    def test_broken_storage_never_raises(self, presets):
        """Read and write failures should be absorbed."""
        store = make_store(presets, BrokenStorage())

        assert store.visible_keys == ["name", "dept"]
        assert store.set_width("name", 150) == 150
        assert store.width_of("name") == 150
        store.reset_to_default()

    def test_extra_fields_preserved(self, presets, memory_storage):
        """Unknown stored fields should survive a write."""
        memory_storage.set(STORAGE_KEY, json.dumps({
            "version": 1,
            "updatedAt": 5,
            "density": "compact",
            "columns": [{"key": "name", "width": 210, "pinned": "left"}],
        }))

        make_store(presets, memory_storage).set_visible_keys(["name"])
        saved = json.loads(memory_storage.get(STORAGE_KEY))

        assert saved["density"] == "compact"
        name = next(c for c in saved["columns"] if c["key"] == "name")
        assert name["pinned"] == "left"
        assert name["width"] == 210

    def test_updated_at_increases(self, presets, memory_storage):
        """Every write should advance updatedAt."""
        store = make_store(presets, memory_storage)
        store.set_width("name", 100)
        first = store.persisted.updated_at
        store.set_width("name", 120)

        assert store.persisted.updated_at > first

    def test_reset_to_default(self, presets, memory_storage):
        """Reset should remove the stored record."""
        store = make_store(presets, memory_storage)
        store.set_width("name", 300)

        store.reset_to_default()

        assert memory_storage.get(STORAGE_KEY) is None
        assert store.width_of("name") == 200

    def test_duplicate_preset_keys_rejected(self, presets, memory_storage):
        """Preset keys should be unique."""
        with pytest.raises(ValueError):
            make_store(presets + presets[:1], memory_storage)


class TestColumnPersist:
    """Test the persisted record and storage backends."""

    def test_persist_key(self):
        """Keys should be prefix:bizKey."""
        assert column_persist_key(BIZ_KEY) == STORAGE_KEY

    def test_record_requires_columns(self):
        """A payload without columns should be rejected."""
        with pytest.raises(PersistenceError):
            PersistedColumnState.from_dict({"version": 1})

    def test_nan_numbers_dropped(self):
        """NaN widths and orders should load as unset."""
        storage = MemoryColumnStorage()
        storage.set(
            STORAGE_KEY,
            '{"version": 1, "updatedAt": 1, "columns": [{"key": "name", "width": NaN, "order": NaN}]}',
        )

        state = load_column_state(storage, BIZ_KEY)

        assert state.columns[0].width is None
        assert state.columns[0].order is None

    def test_load_missing_returns_none(self):
        """Nothing stored should load as None."""
        assert load_column_state(MemoryColumnStorage(), BIZ_KEY) is None

    def test_file_storage_round_trip(self, tmp_path):
        """File storage should read back what it wrote."""
        storage = FileColumnStorage(tmp_path)
        storage.set(STORAGE_KEY, '{"a": 1}')

        assert storage.get(STORAGE_KEY) == '{"a": 1}'
        assert (tmp_path / "table-columns__profile.myActivities.json").exists()

        storage.remove(STORAGE_KEY)
        assert storage.get(STORAGE_KEY) is None

    def test_file_storage_blocks_traversal(self, tmp_path):
        """Keys escaping the root directory should be refused."""
        storage = FileColumnStorage(tmp_path / "layouts")

        with pytest.raises(PersistenceError):
            storage.set("../../etc/passwd", "x")
