# ABOUTME: Unit tests for TurnStore against an in-memory Redis.
# ABOUTME: Covers monotonic numbering, progressive updates and terminal-status immutability.

import pytest

from keeper.models.turn import TurnStatus
from keeper.persistence import keys
from keeper.persistence.exceptions import InvalidTurnTransition, TurnNotFound
from keeper.persistence.turn_store import TurnStore


class TestCreateTurn:
    """Test turn allocation"""

    def test_turn_numbers_are_monotonic_per_session(self, turn_store):
        first = turn_store.create_turn("sess-a", "look")
        second = turn_store.create_turn("sess-a", "listen")
        other = turn_store.create_turn("sess-b", "wait")

        assert (first.turn_number, second.turn_number) == (1, 2)
        assert other.turn_number == 1

    def test_new_turn_is_processing(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look", location_name="Study")

        stored = turn_store.get_turn(turn.turn_id)
        assert stored.status == TurnStatus.PROCESSING
        assert stored.location_name == "Study"
        assert stored.completed_at is None

    def test_unknown_context_fields_are_dropped(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look", status="completed")

        assert turn.status == TurnStatus.PROCESSING

    def test_peek_next_number_does_not_allocate(self, turn_store):
        assert turn_store.get_next_turn_number("sess-a") == 1
        assert turn_store.get_next_turn_number("sess-a") == 1

        turn_store.create_turn("sess-a", "look")

        assert turn_store.get_next_turn_number("sess-a") == 2


class TestProgressAndCompletion:
    """Test update_progress, complete_turn and mark_error"""

    def test_update_progress_writes_fields(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")

        turn_store.update_progress(turn.turn_id, intent_analysis={"action": "look"})

        assert turn_store.get_turn(turn.turn_id).intent_analysis == {"action": "look"}

    def test_update_progress_rejects_non_progressive_fields(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")

        with pytest.raises(ValueError, match="status"):
            turn_store.update_progress(turn.turn_id, status="completed")

    def test_update_progress_missing_turn(self, turn_store):
        with pytest.raises(TurnNotFound):
            turn_store.update_progress("turn-missing", narrative_output="x")

    def test_complete_turn(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")

        completed = turn_store.complete_turn(turn.turn_id, "You see dust.", ["dust"])

        assert completed.status == TurnStatus.COMPLETED
        assert completed.narrative_output == "You see dust."
        assert completed.revealed_facts == ["dust"]
        assert completed.completed_at is not None

    def test_completed_turn_is_immutable(self, turn_store):
        """Terminal status never changes and progress writes are ignored"""
        # Arrange
        turn = turn_store.create_turn("sess-a", "look")
        turn_store.complete_turn(turn.turn_id, "You see dust.")

        # Act
        turn_store.update_progress(turn.turn_id, narrative_output="rewritten")
        turn_store.mark_error(turn.turn_id, "late failure")

        # Assert
        stored = turn_store.get_turn(turn.turn_id)
        assert stored.status == TurnStatus.COMPLETED
        assert stored.narrative_output == "You see dust."
        assert stored.error_message is None

    def test_cannot_complete_errored_turn(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")
        turn_store.mark_error(turn.turn_id, RuntimeError("boom"))

        with pytest.raises(InvalidTurnTransition):
            turn_store.complete_turn(turn.turn_id, "too late")

    def test_update_progress_does_not_revive_errored_turn(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")
        turn_store.mark_error(turn.turn_id, "timed out")

        returned = turn_store.update_progress(turn.turn_id, narrative_output="late narration")

        stored = turn_store.get_turn(turn.turn_id)
        assert returned.status == TurnStatus.ERROR
        assert stored.status == TurnStatus.ERROR
        assert stored.narrative_output is None

    def test_progress_write_retries_after_concurrent_error(self, turn_store, redis_client, monkeypatch):
        """An error recorded between read and write wins; the progress write is dropped"""
        # Arrange
        turn = turn_store.create_turn("sess-a", "look")
        original = redis_client.transaction
        attempts = []

        def racing_transaction(func, *watches, **kwargs):
            def interleaved(pipe):
                if not attempts:
                    # Another process expires the turn after WATCH, before EXEC
                    turn_store._write(turn.model_copy(update={
                        "status": TurnStatus.ERROR,
                        "error_message": "timed out",
                    }))
                attempts.append(pipe)
                return func(pipe)
            return original(interleaved, *watches, **kwargs)

        monkeypatch.setattr(redis_client, "transaction", racing_transaction)

        # Act
        turn_store.update_progress(turn.turn_id, intent_analysis={"action": "look"})

        # Assert
        stored = turn_store.get_turn(turn.turn_id)
        assert len(attempts) == 2
        assert stored.status == TurnStatus.ERROR
        assert stored.error_message == "timed out"
        assert stored.intent_analysis is None

    def test_complete_turn_loses_to_concurrent_error(self, turn_store, redis_client, monkeypatch):
        # Arrange
        turn = turn_store.create_turn("sess-a", "look")
        original = redis_client.transaction

        def racing_transaction(func, *watches, **kwargs):
            def interleaved(pipe):
                if turn_store.get_turn(turn.turn_id).status == TurnStatus.PROCESSING:
                    turn_store._write(turn.model_copy(update={"status": TurnStatus.ERROR}))
                return func(pipe)
            return original(interleaved, *watches, **kwargs)

        monkeypatch.setattr(redis_client, "transaction", racing_transaction)

        # Act / Assert
        with pytest.raises(InvalidTurnTransition):
            turn_store.complete_turn(turn.turn_id, "too late")
        assert turn_store.get_turn(turn.turn_id).narrative_output is None

    def test_mark_error_message(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")

        failed = turn_store.mark_error(turn.turn_id, RuntimeError("collaborator exploded"))

        assert failed.status == TurnStatus.ERROR
        assert failed.error_message == "collaborator exploded"

    def test_mark_error_uses_type_name_for_empty_message(self, turn_store):
        turn = turn_store.create_turn("sess-a", "look")

        failed = turn_store.mark_error(turn.turn_id, TimeoutError())

        assert failed.error_message == "TimeoutError"

    def test_mark_error_missing_turn_returns_none(self, turn_store):
        assert turn_store.mark_error("turn-missing", "boom") is None


class TestQueries:
    """Test listing and pending lookups"""

    def test_list_turns_newest_first(self, turn_store):
        for text in ("one", "two", "three"):
            turn_store.create_turn("sess-a", text)

        turns = turn_store.list_turns("sess-a", limit=2)

        assert [t.input_text for t in turns] == ["three", "two"]
        assert turn_store.get_latest("sess-a").input_text == "three"

    def test_list_turns_non_positive_limit(self, turn_store):
        turn_store.create_turn("sess-a", "one")

        assert turn_store.list_turns("sess-a", limit=0) == []

    def test_get_pending_only_processing(self, turn_store):
        done = turn_store.create_turn("sess-a", "one")
        turn_store.complete_turn(done.turn_id, "ok")
        pending = turn_store.create_turn("sess-a", "two")

        assert [t.turn_id for t in turn_store.get_pending("sess-a")] == [pending.turn_id]

    def test_record_ttl_applied(self, redis_client):
        store = TurnStore(redis_client, record_ttl_seconds=60)
        turn = store.create_turn("sess-a", "look")

        assert 0 < redis_client.ttl(keys.turn_key(turn.turn_id)) <= 60
