# ABOUTME: Redis cleanup utility for discarding one session's durable data.
# ABOUTME: Removes turn records, checkpoints and the stored session state without touching other sessions.

from loguru import logger
from redis import Redis, RedisError

from keeper.persistence import keys


def purge_session(redis_client: Redis, session_id: str) -> dict:
    """
    Delete every Redis key belonging to one session.

    Removes:
    - Turn records listed in the session's turn index
    - Checkpoint records and summary rows listed in the session's checkpoint index
    - All session-scoped keys (indexes, sequences, stored state)
    - The session id from the global session index

    Args:
        redis_client: Connected Redis client instance (decode_responses=True)
        session_id: Session whose data should be removed

    Returns:
        Dict with success status, message and number of deleted keys:
        - {"success": True, "message": "...", "deleted": 7}  on success
        - {"success": False, "message": "...", "deleted": 0}  on error

    Examples:
        >>> redis_client = Redis.from_url("redis://localhost:6379", decode_responses=True)
        >>> result = purge_session(redis_client, "sess-1")
        >>> result["success"]
        True
    """
    try:
        logger.info(f"Purging Redis data for session {session_id}")

        doomed: list[str] = []
        doomed.extend(
            keys.turn_key(turn_id)
            for turn_id in redis_client.zrange(keys.session_turns_key(session_id), 0, -1)
        )
        for checkpoint_id in redis_client.zrange(keys.session_checkpoints_key(session_id), 0, -1):
            doomed.append(keys.checkpoint_key(checkpoint_id))
            doomed.append(keys.checkpoint_summary_key(checkpoint_id))
        doomed.extend(redis_client.scan_iter(match=keys.session_pattern(session_id)))

        deleted = redis_client.delete(*doomed) if doomed else 0
        redis_client.srem(keys.SESSIONS_INDEX, session_id)

        logger.info(f"Purged {deleted} keys for session {session_id}")
        return {
            "success": True,
            "message": f"Session {session_id} purged",
            "deleted": deleted,
        }

    except RedisError as e:
        logger.error(f"Failed to purge session {session_id}: {e}")
        return {
            "success": False,
            "message": f"Failed to purge session: {e}",
            "deleted": 0,
        }
