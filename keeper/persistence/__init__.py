# ABOUTME: Persistence layer exports for turn records, checkpoints and the Redis connection.
# ABOUTME: Both stores touch only their own keys so reads of one key never wait on writes of another.

from keeper.persistence.checkpoint_store import CheckpointStore
from keeper.persistence.connection import create_redis_connection
from keeper.persistence.exceptions import CheckpointNotFound, InvalidTurnTransition, TurnNotFound
from keeper.persistence.turn_store import TurnStore

__all__ = [
    "CheckpointStore",
    "TurnStore",
    "create_redis_connection",
    "CheckpointNotFound",
    "InvalidTurnTransition",
    "TurnNotFound",
]
