# ABOUTME: Unit tests for CheckpointStore against an in-memory Redis.
# ABOUTME: Covers location lookup, bounded auto retention, listing, restore and export/import.

import json

import pytest

from keeper.models.checkpoint import CheckpointType
from keeper.models.session_state import SessionState
from keeper.persistence import keys
from keeper.persistence.checkpoint_store import CheckpointStore
from keeper.persistence.exceptions import CheckpointNotFound
from tests.conftest import make_location


def session_at(name: str, location_id: str | None = None, **fields) -> SessionState:
    return SessionState(
        session_id="sess-cp",
        current_location=make_location(name, location_id),
        **fields,
    )


class TestSave:
    """Test checkpoint creation"""

    def test_summary_fields_denormalized(self, checkpoint_store):
        state = session_at("Old Mill", game_day=2, time_of_day="Dawn")
        state.current_location.descriptor = "creaking"

        checkpoint = checkpoint_store.save_manual(state, "Before the stairs")

        assert checkpoint.checkpoint_type == CheckpointType.MANUAL
        assert checkpoint.location_name == "Old Mill"
        assert checkpoint.location_descriptor == "creaking"
        assert checkpoint.game_day == 2
        assert checkpoint.game_time == "Dawn"
        assert checkpoint.protagonist_hp == state.protagonist.status.hp

    def test_auto_checkpoint_named_after_location(self, checkpoint_store):
        checkpoint = checkpoint_store.save_auto(session_at("Old Mill"))

        assert checkpoint.checkpoint_name == "Old Mill"
        assert checkpoint.checkpoint_type == CheckpointType.AUTO

    def test_auto_checkpoint_without_location(self, checkpoint_store):
        checkpoint = checkpoint_store.save_auto(SessionState(session_id="sess-cp"))

        assert checkpoint.checkpoint_name.startswith("Auto-save - ")

    def test_restore_returns_embedded_state(self, checkpoint_store):
        state = session_at("Old Mill", discovered_facts=["The wheel turns at night"])
        checkpoint = checkpoint_store.save_manual(state, "mill")

        restored = checkpoint_store.restore(checkpoint.checkpoint_id)

        assert restored == state

    def test_restore_missing_raises(self, checkpoint_store):
        with pytest.raises(CheckpointNotFound):
            checkpoint_store.restore("cp-missing")


class TestFindLatestForLocation:
    """Test location lookup used when a location is revisited"""

    def test_returns_most_recent_for_name(self, checkpoint_store):
        """Two checkpoints at Old Mill: the later one wins"""
        # Arrange
        first = session_at("Old Mill")
        first.current_location.events.append("You found footprints")
        checkpoint_store.save_auto(first)

        second = session_at("Old Mill")
        second.current_location.events.extend(["You found footprints", "The wheel stopped"])
        later = checkpoint_store.save_auto(second)

        # Act
        found = checkpoint_store.find_latest_for_location("sess-cp", "Old Mill")

        # Assert
        assert found.checkpoint_id == later.checkpoint_id
        assert found.state.current_location.events[-1] == "The wheel stopped"

    def test_falls_back_to_location_id(self, checkpoint_store):
        """A renamed location is still found by its id"""
        # Arrange
        saved = checkpoint_store.save_auto(session_at("The Old Mill", location_id="loc-mill"))
        checkpoint_store.save_auto(session_at("Docks"))

        # Act
        found = checkpoint_store.find_latest_for_location("sess-cp", "Old Mill", "loc-mill")

        # Assert
        assert found.checkpoint_id == saved.checkpoint_id

    def test_miss_returns_none(self, checkpoint_store):
        checkpoint_store.save_auto(session_at("Docks"))

        assert checkpoint_store.find_latest_for_location("sess-cp", "Old Mill") is None
        assert checkpoint_store.find_latest_for_location("sess-cp", "Old Mill", "loc-mill") is None


class TestRetention:
    """Test prune_auto"""

    def test_keeps_n_most_recent_auto_checkpoints(self, checkpoint_store):
        # Arrange
        saved = [
            checkpoint_store.save(
                "sess-cp", f"auto {i}", CheckpointType.AUTO, session_at(f"Room {i}")
            )
            for i in range(5)
        ]

        # Act
        deleted = checkpoint_store.prune_auto("sess-cp", keep=2)

        # Assert
        remaining = checkpoint_store.list_by_type("sess-cp", CheckpointType.AUTO)
        assert deleted == 3
        assert [c.checkpoint_id for c in remaining] == [saved[4].checkpoint_id, saved[3].checkpoint_id]

    def test_keep_larger_than_count_deletes_nothing(self, checkpoint_store):
        checkpoint_store.save("sess-cp", "auto", CheckpointType.AUTO, session_at("Room"))

        assert checkpoint_store.prune_auto("sess-cp", keep=10) == 0
        assert len(checkpoint_store.list_checkpoints("sess-cp")) == 1

    def test_manual_and_transition_checkpoints_never_pruned(self, checkpoint_store):
        # Arrange
        manual = checkpoint_store.save_manual(session_at("Study"), "keep me")
        transition = checkpoint_store.save(
            "sess-cp", "Docks", CheckpointType.TRANSITION, session_at("Docks")
        )
        for i in range(3):
            checkpoint_store.save("sess-cp", f"auto {i}", CheckpointType.AUTO, session_at("Room"))

        # Act
        checkpoint_store.prune_auto("sess-cp", keep=0)

        # Assert
        remaining = {c.checkpoint_id for c in checkpoint_store.list_checkpoints("sess-cp")}
        assert remaining == {manual.checkpoint_id, transition.checkpoint_id}

    def test_save_auto_applies_retention(self, redis_client):
        store = CheckpointStore(redis_client, auto_retention=2)
        for i in range(4):
            store.save_auto(session_at(f"Room {i}"))

        assert len(store.list_by_type("sess-cp", CheckpointType.AUTO)) == 2

    def test_pruned_checkpoint_leaves_location_index(self, checkpoint_store):
        checkpoint_store.save("sess-cp", "old", CheckpointType.AUTO, session_at("Old Mill"))
        checkpoint_store.save("sess-cp", "new", CheckpointType.AUTO, session_at("Docks"))

        checkpoint_store.prune_auto("sess-cp", keep=1)

        assert checkpoint_store.find_latest_for_location("sess-cp", "Old Mill") is None


class TestListing:
    """Test list_checkpoints and get_latest"""

    def test_newest_first_with_limit(self, checkpoint_store):
        for name in ("a", "b", "c"):
            checkpoint_store.save_manual(session_at("Study"), name)

        summaries = checkpoint_store.list_checkpoints("sess-cp", limit=2)

        assert [s.checkpoint_name for s in summaries] == ["c", "b"]
        assert checkpoint_store.get_latest("sess-cp").checkpoint_name == "c"

    def test_empty_session(self, checkpoint_store):
        assert checkpoint_store.list_checkpoints("sess-none") == []
        assert checkpoint_store.get_latest("sess-none") is None

    def test_delete(self, checkpoint_store):
        checkpoint = checkpoint_store.save_manual(session_at("Study"), "gone")

        assert checkpoint_store.delete(checkpoint.checkpoint_id) is True
        assert checkpoint_store.load_by_id(checkpoint.checkpoint_id) is None
        assert checkpoint_store.delete(checkpoint.checkpoint_id) is False

    def test_listing_reads_summary_rows_only(self, checkpoint_store, redis_client, monkeypatch):
        """Listing never loads or parses the stored snapshots"""
        # Arrange
        checkpoint_store.save_manual(session_at("Study"), "before the seance")
        checkpoint_store.save_auto(session_at("Old Mill"))

        def no_snapshot(checkpoint_id):
            raise AssertionError(f"snapshot of {checkpoint_id} loaded while listing")

        monkeypatch.setattr(checkpoint_store, "load_by_id", no_snapshot)

        # Act
        summaries = checkpoint_store.list_checkpoints("sess-cp")
        autos = checkpoint_store.list_by_type("sess-cp", CheckpointType.AUTO)

        # Assert
        assert [s.checkpoint_name for s in summaries] == ["Old Mill", "before the seance"]
        assert [s.location_name for s in autos] == ["Old Mill"]
        assert not hasattr(summaries[0], "serialized_state")

    def test_record_without_summary_row_still_listed(self, checkpoint_store, redis_client):
        checkpoint = checkpoint_store.save_manual(session_at("Study"), "older save")
        redis_client.delete(keys.checkpoint_summary_key(checkpoint.checkpoint_id))

        summaries = checkpoint_store.list_checkpoints("sess-cp")

        assert [s.checkpoint_id for s in summaries] == [checkpoint.checkpoint_id]

    def test_delete_removes_summary_row(self, checkpoint_store, redis_client):
        checkpoint = checkpoint_store.save_manual(session_at("Study"), "gone")

        checkpoint_store.delete(checkpoint.checkpoint_id)

        assert redis_client.get(keys.checkpoint_summary_key(checkpoint.checkpoint_id)) is None
        assert checkpoint_store.list_checkpoints("sess-cp") == []


class TestExportImport:
    """Test export_json and import_json"""

    def test_export_is_camel_case(self, checkpoint_store):
        checkpoint = checkpoint_store.save_manual(session_at("Study"), "export me")

        data = json.loads(checkpoint_store.export_json(checkpoint.checkpoint_id))

        assert data["checkpointName"] == "export me"
        assert "serializedState" in data

    def test_import_into_other_session(self, checkpoint_store):
        """Imported checkpoints are manual, renamed, and rebound to the target session"""
        # Arrange
        original = checkpoint_store.save_auto(session_at("Old Mill"))
        payload = checkpoint_store.export_json(original.checkpoint_id)

        # Act
        imported = checkpoint_store.import_json(payload, session_id="sess-other")

        # Assert
        assert imported.checkpoint_id != original.checkpoint_id
        assert imported.checkpoint_name == "[Imported] Old Mill"
        assert imported.checkpoint_type == CheckpointType.MANUAL
        assert imported.session_id == "sess-other"
        assert imported.state.session_id == "sess-other"
        assert checkpoint_store.list_checkpoints("sess-other")[0].checkpoint_id == imported.checkpoint_id

    def test_export_missing_raises(self, checkpoint_store):
        with pytest.raises(CheckpointNotFound):
            checkpoint_store.export_json("cp-missing")
