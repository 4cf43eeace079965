# ABOUTME: Redis-backed store for durable Turn records with monotonic per-session numbering.
# ABOUTME: Applies progressive stage updates and enforces that terminal turns are never mutated again.

import uuid
from collections.abc import Callable
from datetime import datetime
from typing import Any

from loguru import logger
from redis import Redis

from keeper.models.turn import Turn, TurnStatus
from keeper.persistence import keys
from keeper.persistence.exceptions import InvalidTurnTransition, TurnNotFound

# Fields a stage may write while the turn is processing
PROGRESS_FIELDS = frozenset({
    "participant_id",
    "participant_name",
    "intent_analysis",
    "action_outcomes",
    "location_decision",
    "narrative_output",
    "revealed_facts",
    "location_id",
    "location_name",
    "descriptor",
})


class TurnStore:
    """
    Persist and query Turn records.

    Layout:
        keeper:turn:{turn_id}              JSON record
        keeper:session:{sid}:turns         sorted set, turn ids scored by turn number
        keeper:session:{sid}:turn_seq      INCR counter for turn numbers
    """

    def __init__(self, redis_client: Redis, record_ttl_seconds: int | None = None):
        """
        Args:
            redis_client: Redis connection (decode_responses=True)
            record_ttl_seconds: Optional expiry applied to each turn record
        """
        self.redis = redis_client
        self.record_ttl_seconds = record_ttl_seconds

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_turn(
        self,
        session_id: str,
        input_text: str,
        is_simulated: bool = False,
        **context: Any,
    ) -> Turn:
        """
        Allocate a new processing Turn with the next turn number for the session.

        Args:
            session_id: Owning session
            input_text: Triggering input
            is_simulated: True for internally generated turns
            **context: Optional location/participant context fields

        Returns:
            The stored Turn
        """
        turn_number = self.get_next_turn_number(session_id, allocate=True)
        turn = Turn(
            turn_id=f"turn-{uuid.uuid4().hex[:12]}",
            session_id=session_id,
            turn_number=turn_number,
            input_text=input_text,
            is_simulated=is_simulated,
            **{k: v for k, v in context.items() if k in PROGRESS_FIELDS},
        )
        self._write(turn)
        self.redis.zadd(keys.session_turns_key(session_id), {turn.turn_id: turn_number})

        logger.info(
            f"Created turn {turn.turn_id} (#{turn_number}) for session {session_id}"
            f"{' [simulated]' if is_simulated else ''}"
        )
        return turn

    def _transition(
        self,
        turn_id: str,
        change: Callable[[Turn], Turn | None],
    ) -> tuple[Turn, bool]:
        """
        Apply `change` to the stored turn inside a WATCH/MULTI transaction.

        `change` returns the replacement record, or None to leave the record
        as it is. A concurrent write to the turn key (another process marking
        it stale, a worker recording progress) makes Redis abort the EXEC;
        the read and `change` are then repeated against the newer record.

        Returns:
            (stored turn, whether this call wrote it)

        Raises:
            TurnNotFound: If the turn does not exist
        """
        key = keys.turn_key(turn_id)
        outcome: dict[str, Any] = {}

        def apply(pipe) -> None:
            raw = pipe.get(key)
            if raw is None:
                raise TurnNotFound(f"Turn {turn_id} not found")
            current = Turn.model_validate_json(raw)
            replacement = change(current)
            outcome["turn"] = replacement or current
            outcome["written"] = replacement is not None
            pipe.multi()
            if replacement is not None:
                pipe.set(key, replacement.model_dump_json(by_alias=True), ex=self.record_ttl_seconds)

        self.redis.transaction(apply, key)
        return outcome["turn"], outcome["written"]

    def update_progress(self, turn_id: str, **fields: Any) -> Turn | None:
        """
        Write partial progressive fields.

        No-op (returns the stored turn unchanged) once the turn is terminal.

        Raises:
            TurnNotFound: If the turn does not exist
            ValueError: If a field is not a progressive field
        """
        unknown = set(fields) - PROGRESS_FIELDS
        if unknown:
            raise ValueError(f"Not progressive turn fields: {sorted(unknown)}")

        turn, written = self._transition(
            turn_id,
            lambda current: None if current.is_terminal else current.model_copy(update=fields),
        )
        if not written:
            logger.debug(f"Ignoring progress update for terminal turn {turn_id}")
        return turn

    def complete_turn(
        self,
        turn_id: str,
        narrative_output: str,
        revealed_facts: list[str] | None = None,
        **fields: Any,
    ) -> Turn:
        """
        Transition a processing turn to completed.

        Raises:
            TurnNotFound: If the turn does not exist
            InvalidTurnTransition: If the turn is not processing
        """
        update = {k: v for k, v in fields.items() if k in PROGRESS_FIELDS}
        update.update(
            narrative_output=narrative_output,
            revealed_facts=list(revealed_facts or []),
            status=TurnStatus.COMPLETED,
        )

        def complete(current: Turn) -> Turn | None:
            if current.status != TurnStatus.PROCESSING:
                return None
            return current.model_copy(update={**update, "completed_at": datetime.now()})

        turn, written = self._transition(turn_id, complete)
        if not written:
            raise InvalidTurnTransition(
                f"Turn {turn_id} is {turn.status.value}; only processing turns can complete"
            )

        logger.info(f"Turn {turn_id} completed")
        return turn

    def mark_error(self, turn_id: str, error: BaseException | str) -> Turn | None:
        """
        Transition a processing turn to error.

        Subsequent calls on a terminal turn are no-ops.

        Returns:
            The stored turn, or None if it does not exist
        """
        message = str(error) or type(error).__name__

        def fail(current: Turn) -> Turn | None:
            if current.is_terminal:
                return None
            return current.model_copy(update={
                "status": TurnStatus.ERROR,
                "error_message": message,
                "completed_at": datetime.now(),
            })

        try:
            turn, written = self._transition(turn_id, fail)
        except TurnNotFound:
            logger.warning(f"Cannot mark missing turn {turn_id} as error")
            return None

        if written:
            logger.error(f"Turn {turn_id} marked as error: {message}")
        return turn

    def _write(self, turn: Turn) -> None:
        self.redis.set(
            keys.turn_key(turn.turn_id),
            turn.model_dump_json(by_alias=True),
            ex=self.record_ttl_seconds,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_turn(self, turn_id: str) -> Turn | None:
        raw = self.redis.get(keys.turn_key(turn_id))
        if raw is None:
            return None
        return Turn.model_validate_json(raw)

    def require_turn(self, turn_id: str) -> Turn:
        turn = self.get_turn(turn_id)
        if turn is None:
            raise TurnNotFound(f"Turn {turn_id} not found")
        return turn

    def list_turns(self, session_id: str, limit: int = 20) -> list[Turn]:
        """Turns of a session, newest first"""
        if limit <= 0:
            return []
        turn_ids = self.redis.zrevrange(keys.session_turns_key(session_id), 0, limit - 1)
        turns = (self.get_turn(turn_id) for turn_id in turn_ids)
        return [turn for turn in turns if turn is not None]

    def get_latest(self, session_id: str) -> Turn | None:
        turns = self.list_turns(session_id, limit=1)
        return turns[0] if turns else None

    def get_pending(self, session_id: str) -> list[Turn]:
        """Processing turns of a session, oldest first"""
        turn_ids = self.redis.zrange(keys.session_turns_key(session_id), 0, -1)
        turns = (self.get_turn(turn_id) for turn_id in turn_ids)
        return [t for t in turns if t is not None and t.status == TurnStatus.PROCESSING]

    def get_next_turn_number(self, session_id: str, allocate: bool = False) -> int:
        """
        Next turn number for a session.

        Args:
            session_id: Session identifier
            allocate: Reserve the number (INCR) instead of peeking

        Returns:
            Turn number starting at 1
        """
        sequence_key = keys.turn_sequence_key(session_id)
        if allocate:
            return int(self.redis.incr(sequence_key))
        current = self.redis.get(sequence_key)
        return int(current or 0) + 1
