# ABOUTME: Redis key namespace for turn records, checkpoints and session state.
# ABOUTME: All durable keys used by the Keeper are built here so stores and cleanup agree.

PREFIX = "keeper"

# Global index of known session ids
SESSIONS_INDEX = f"{PREFIX}:sessions"


def turn_key(turn_id: str) -> str:
    return f"{PREFIX}:turn:{turn_id}"


def session_turns_key(session_id: str) -> str:
    """Sorted set of turn ids scored by turn number"""
    return f"{PREFIX}:session:{session_id}:turns"


def turn_sequence_key(session_id: str) -> str:
    return f"{PREFIX}:session:{session_id}:turn_seq"


def checkpoint_key(checkpoint_id: str) -> str:
    return f"{PREFIX}:checkpoint:{checkpoint_id}"


def checkpoint_summary_key(checkpoint_id: str) -> str:
    """Listing row stored apart from the snapshot"""
    return f"{PREFIX}:checkpoint:{checkpoint_id}:summary"


def session_checkpoints_key(session_id: str) -> str:
    """Sorted set of checkpoint ids scored by creation sequence"""
    return f"{PREFIX}:session:{session_id}:checkpoints"


def checkpoint_sequence_key(session_id: str) -> str:
    return f"{PREFIX}:session:{session_id}:checkpoint_seq"


def auto_checkpoints_key(session_id: str) -> str:
    return f"{PREFIX}:session:{session_id}:checkpoints:auto"


def location_checkpoints_key(session_id: str, location_name: str) -> str:
    return f"{PREFIX}:session:{session_id}:checkpoints:by_location:{location_name}"


def session_state_key(session_id: str) -> str:
    return f"{PREFIX}:session:{session_id}:state"


def session_pattern(session_id: str) -> str:
    """Glob matching every key scoped to one session"""
    return f"{PREFIX}:session:{session_id}:*"
