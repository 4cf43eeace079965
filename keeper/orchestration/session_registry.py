# ABOUTME: SessionRegistry owning each session's current state between pipeline executions.
# ABOUTME: In-memory cache backed by Redis with an explicit create/get/put/evict/delete lifecycle.

import uuid

from loguru import logger
from redis import Redis

from keeper.models.session_state import Location, Participant, SessionState
from keeper.orchestration.exceptions import SessionNotFound
from keeper.persistence import keys
from keeper.utils.redis_cleanup import purge_session


class SessionRegistry:
    """
    Get/put interface over the "current" Session State of every session.

    The cache holds the live instance; Redis holds the copy that survives a
    process restart. Every put writes through.
    """

    def __init__(self, redis_client: Redis):
        self.redis = redis_client
        self._cache: dict[str, SessionState] = {}

    def create(
        self,
        session_id: str | None = None,
        protagonist: Participant | None = None,
        location: Location | None = None,
        participants: list[Participant] | None = None,
    ) -> SessionState:
        """
        Create and store a fresh session.

        Args:
            session_id: Optional explicit id (default: generated)
            protagonist: Optional protagonist record
            location: Optional starting location
            participants: Optional non-protagonist participants

        Returns:
            The new SessionState
        """
        session_id = session_id or f"sess-{uuid.uuid4().hex[:12]}"
        fields: dict = {"session_id": session_id}
        if protagonist is not None:
            fields["protagonist"] = protagonist
        if location is not None:
            fields["current_location"] = location
        if participants:
            fields["participants"] = participants

        session = SessionState(**fields)
        self.put(session)
        logger.info(f"Created session {session_id}")
        return session

    def get(self, session_id: str) -> SessionState | None:
        """Cached state, else the persisted copy (which is then cached)"""
        session = self._cache.get(session_id)
        if session is not None:
            return session

        raw = self.redis.get(keys.session_state_key(session_id))
        if raw is None:
            return None
        session = SessionState.model_validate_json(raw)
        self._cache[session_id] = session
        logger.debug(f"Loaded session {session_id} from Redis")
        return session

    def require(self, session_id: str) -> SessionState:
        """
        Raises:
            SessionNotFound: If the session does not exist
        """
        session = self.get(session_id)
        if session is None:
            raise SessionNotFound(f"No active session {session_id}")
        return session

    def exists(self, session_id: str) -> bool:
        return session_id in self._cache or bool(
            self.redis.exists(keys.session_state_key(session_id))
        )

    def put(self, session: SessionState) -> None:
        """Make `session` the current state of its session (write-through)"""
        self._cache[session.session_id] = session
        self.redis.set(keys.session_state_key(session.session_id), session.model_dump_json())
        self.redis.sadd(keys.SESSIONS_INDEX, session.session_id)

    def evict(self, session_id: str) -> None:
        """Drop the cached instance; the persisted copy stays"""
        self._cache.pop(session_id, None)

    def delete(self, session_id: str) -> bool:
        """Remove the session and all of its turns and checkpoints"""
        self.evict(session_id)
        result = purge_session(self.redis, session_id)
        return result["success"]

    def list_sessions(self) -> list[str]:
        return sorted(self.redis.smembers(keys.SESSIONS_INDEX))
