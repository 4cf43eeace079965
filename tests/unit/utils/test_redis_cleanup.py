# ABOUTME: Unit tests for the per-session Redis purge utility.
# ABOUTME: Validates that one session's keys go away, others stay, and Redis errors are reported.

from unittest.mock import Mock

from redis import Redis, RedisError

from keeper.models.session_state import SessionState
from keeper.persistence import keys
from keeper.utils.redis_cleanup import purge_session
from tests.conftest import make_location


class TestPurgeSession:
    """Test suite for purge_session function"""

    def test_removes_all_session_data(self, redis_client, turn_store, checkpoint_store, registry):
        """Turns, checkpoints, indexes and stored state are all deleted"""
        # Arrange
        state = SessionState(session_id="sess-gone", current_location=make_location("Study"))
        registry.put(state)
        turn = turn_store.create_turn("sess-gone", "look")
        checkpoint = checkpoint_store.save_auto(state)

        # Act
        result = purge_session(redis_client, "sess-gone")

        # Assert
        assert result["success"] is True
        assert result["deleted"] > 0
        assert redis_client.get(keys.turn_key(turn.turn_id)) is None
        assert redis_client.get(keys.checkpoint_key(checkpoint.checkpoint_id)) is None
        assert redis_client.get(keys.checkpoint_summary_key(checkpoint.checkpoint_id)) is None
        assert list(redis_client.scan_iter(match=keys.session_pattern("sess-gone"))) == []
        assert "sess-gone" not in redis_client.smembers(keys.SESSIONS_INDEX)

    def test_other_sessions_untouched(self, redis_client, turn_store):
        turn_store.create_turn("sess-gone", "look")
        kept = turn_store.create_turn("sess-kept", "look")

        purge_session(redis_client, "sess-gone")

        assert turn_store.get_turn(kept.turn_id) is not None

    def test_empty_session_succeeds(self, redis_client):
        result = purge_session(redis_client, "sess-never")

        assert result == {"success": True, "message": "Session sess-never purged", "deleted": 0}

    def test_connection_error_returns_failure_dict(self):
        """Redis errors are reported, not raised"""
        # Arrange
        mock_redis = Mock(spec=Redis)
        mock_redis.zrange.side_effect = RedisError("Connection refused")

        # Act
        result = purge_session(mock_redis, "sess-1")

        # Assert
        assert result["success"] is False
        assert "Connection refused" in result["message"]
        assert result["deleted"] == 0
