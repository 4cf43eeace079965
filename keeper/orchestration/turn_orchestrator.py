# ABOUTME: TurnOrchestrator, the turn lifecycle manager bridging request/response calls and background pipelines.
# ABOUTME: Allocates durable turn records, supervises executions, and serves the Turn API views.

import asyncio
from datetime import datetime
from typing import Any

from loguru import logger
from redis import Redis
from rq import Queue

from keeper.agents.collaborators import StageCollaborators
from keeper.config.settings import Settings, get_settings
from keeper.models.pipeline_state import PipelineState
from keeper.models.turn import Turn, TurnStatus
from keeper.orchestration.exceptions import TurnAlreadyProcessing
from keeper.orchestration.graph_builder import build_pipeline
from keeper.orchestration.session_registry import SessionRegistry
from keeper.persistence.checkpoint_store import CheckpointStore
from keeper.persistence.exceptions import InvalidTurnTransition
from keeper.persistence.turn_store import TurnStore
from keeper.utils.logging import log_turn_event
from keeper.workers.queue_config import create_queue_connection, enqueue_job, get_turn_queue

TURN_JOB = "keeper.workers.turn_worker.process_turn_job"


class TurnOrchestrator:
    """
    Turn lifecycle manager.

    `start_turn` returns a turn id as soon as the record exists and runs the
    pipeline as a supervised background task (or an RQ job). Every failure
    path of that task ends in `mark_error`, so no turn stays processing
    because of an unhandled error.
    """

    def __init__(
        self,
        redis_client: Redis,
        collaborators: StageCollaborators | None = None,
        settings: Settings | None = None,
        registry: SessionRegistry | None = None,
        turn_store: TurnStore | None = None,
        checkpoint_store: CheckpointStore | None = None,
        pipeline: Any = None,
        turn_queue: Queue | None = None,
    ):
        """
        Initialize turn orchestrator.

        Args:
            redis_client: Redis connection (decode_responses=True) for the stores
            collaborators: Stage collaborators; required unless `pipeline` is given
            settings: Application settings (default: get_settings())
            registry: Session registry (default: Redis-backed registry)
            turn_store: Turn store (default: Redis-backed store)
            checkpoint_store: Checkpoint store (default: Redis-backed store)
            pipeline: Prebuilt compiled pipeline
            turn_queue: RQ queue used when settings.turn_executor is "rq"

        Raises:
            ValueError: If neither collaborators nor pipeline is given
        """
        self.settings = settings or get_settings()
        self.redis = redis_client
        self.registry = registry or SessionRegistry(redis_client)
        self.turn_store = turn_store or TurnStore(
            redis_client, self.settings.turn_record_ttl_seconds
        )
        self.checkpoint_store = checkpoint_store or CheckpointStore(
            redis_client, self.settings.auto_checkpoint_retention
        )

        if pipeline is None:
            if collaborators is None:
                raise ValueError("TurnOrchestrator needs collaborators or a prebuilt pipeline")
            pipeline = build_pipeline(
                collaborators,
                turn_store=self.turn_store,
                checkpoint_store=self.checkpoint_store,
                settings=self.settings,
                session_registry=self.registry,
            )
        self.pipeline = pipeline

        self._turn_queue = turn_queue
        # Strong references keep running tasks alive until their done-callback fires
        self._tasks: dict[str, asyncio.Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_turn(self, session_id: str, input_text: str, is_simulated: bool = False) -> str:
        """
        Allocate a processing turn and schedule its pipeline without waiting for it.

        With the asyncio executor this must be called from inside a running
        event loop.

        Args:
            session_id: Session the turn belongs to
            input_text: Player input or simulated event text
            is_simulated: True for internally generated turns

        Returns:
            The new turn id

        Raises:
            SessionNotFound: If the session does not exist
        """
        session = self.registry.require(session_id)
        location = session.current_location
        turn = self.turn_store.create_turn(
            session_id,
            input_text,
            is_simulated=is_simulated,
            participant_id=session.protagonist.id,
            participant_name=session.protagonist.name,
            location_id=location.id if location else None,
            location_name=location.name if location else None,
            descriptor=location.descriptor if location else None,
        )

        try:
            if self.settings.turn_executor == "rq":
                self._enqueue(turn)
            else:
                task = asyncio.get_running_loop().create_task(
                    self.execute_turn(turn.turn_id), name=f"turn-{turn.turn_id}"
                )
                self._tasks[turn.turn_id] = task
                task.add_done_callback(
                    lambda done, turn_id=turn.turn_id: self._on_task_done(turn_id, done)
                )
        except Exception as e:
            self.mark_error(turn.turn_id, f"Failed to schedule turn: {e}")
            raise

        return turn.turn_id

    def _enqueue(self, turn: Turn) -> None:
        if self._turn_queue is None:
            self._turn_queue = get_turn_queue(
                create_queue_connection(self.settings.redis_url),
                self.settings.rq_turn_queue,
                self.settings.rq_worker_timeout,
            )
        # The worker owns the session until the turn is terminal
        self.registry.evict(turn.session_id)
        enqueue_job(
            self._turn_queue,
            TURN_JOB,
            args=(turn.turn_id,),
            job_timeout=self.settings.rq_worker_timeout,
        )

    async def execute_turn(self, turn_id: str) -> PipelineState | None:
        """
        Run the pipeline for an allocated turn.

        The pipeline works on a copy of the session; the copy only becomes
        current when the terminal stage succeeds. Any failure marks the turn
        as error.

        Returns:
            Final pipeline state, or None if the execution failed
        """
        turn = self.turn_store.require_turn(turn_id)
        session_id = turn.session_id
        log_turn_event("Pipeline started", session_id, turn_id)
        started = datetime.now()

        try:
            session = self.registry.require(session_id)
            state: PipelineState = {
                "session": session.model_copy(deep=True),
                "input_text": turn.input_text,
                "is_simulated": turn.is_simulated,
                "turn_id": turn_id,
            }
            result = await self.pipeline.ainvoke(state)
        except Exception as e:
            logger.bind(session=session_id, turn=turn_id).exception("Pipeline execution failed")
            self.mark_error(turn_id, e)
            return None

        stored = self.turn_store.get_turn(turn_id)
        if stored is not None and stored.status == TurnStatus.PROCESSING:
            # Pipeline built without a turn store or registry
            try:
                self.complete_turn(
                    turn_id, result.get("narrative_output") or "", result.get("revealed_facts")
                )
            except InvalidTurnTransition:
                logger.warning(f"Turn {turn_id} ended before its pipeline; result discarded")
            else:
                self.registry.put(result["session"])

        duration_ms = (datetime.now() - started).total_seconds() * 1000
        log_turn_event("Pipeline finished", session_id, turn_id, duration_ms=round(duration_ms))
        return result

    def _on_task_done(self, turn_id: str, task: asyncio.Task) -> None:
        self._tasks.pop(turn_id, None)
        if task.cancelled():
            self.mark_error(turn_id, "Turn processing was cancelled")
            return
        error = task.exception()
        if error is not None:
            self.mark_error(turn_id, error)

    async def wait_for_turn(
        self,
        turn_id: str,
        timeout: float | None = None,
        poll_interval: float = 0.5,
    ) -> Turn | None:
        """
        Wait until a turn is terminal (or the timeout passes) and return it.

        Local tasks are awaited directly; turns run by RQ workers are polled.
        """
        task = self._tasks.get(turn_id)
        if task is not None:
            try:
                await asyncio.wait_for(asyncio.shield(task), timeout)
            except asyncio.TimeoutError:
                logger.warning(f"Timed out waiting for turn {turn_id}")
            return self.get_turn(turn_id)

        loop = asyncio.get_running_loop()
        deadline = None if timeout is None else loop.time() + timeout
        while True:
            turn = self.get_turn(turn_id)
            if turn is None or turn.is_terminal:
                return turn
            if deadline is not None and loop.time() >= deadline:
                return turn
            await asyncio.sleep(poll_interval)

    def get_turn(self, turn_id: str) -> Turn | None:
        """
        Current state of a turn, including partially populated progressive fields.

        A turn processing for longer than settings.turn_stale_after_seconds is
        marked as error here and returned as such.
        """
        turn = self.turn_store.get_turn(turn_id)
        if turn is None or turn.status != TurnStatus.PROCESSING:
            return turn

        ceiling = self.settings.turn_stale_after_seconds
        age = (datetime.now() - turn.started_at).total_seconds()
        if ceiling and age > ceiling:
            logger.warning(f"Turn {turn_id} processing for {age:.0f}s; marking as timed out")
            return self.mark_error(
                turn_id, f"Turn timed out after {ceiling}s without completing"
            )
        return turn

    def mark_error(self, turn_id: str, error: BaseException | str) -> Turn | None:
        """Set the turn to error; no-op once the turn is terminal"""
        return self.turn_store.mark_error(turn_id, error)

    def complete_turn(
        self,
        turn_id: str,
        narrative_output: str,
        revealed_facts: list[str] | None = None,
        **fields: Any,
    ) -> Turn:
        """
        Raises:
            InvalidTurnTransition: If the turn is not processing
        """
        return self.turn_store.complete_turn(turn_id, narrative_output, revealed_facts, **fields)

    # ------------------------------------------------------------------
    # Turn API
    # ------------------------------------------------------------------

    def session_lock(self, session_id: str) -> asyncio.Lock:
        """Per-session lock serializing turn creation (player and progression paths)"""
        lock = self._locks.get(session_id)
        if lock is None:
            lock = self._locks[session_id] = asyncio.Lock()
        return lock

    def has_pending_turn(self, session_id: str) -> bool:
        """True if a turn of the session is still processing (stale turns are expired first)"""
        for pending in self.turn_store.get_pending(session_id):
            turn = self.get_turn(pending.turn_id)
            if turn is not None and turn.status == TurnStatus.PROCESSING:
                return True
        return False

    async def create_turn(
        self, session_id: str, input_text: str, is_simulated: bool = False
    ) -> dict:
        """
        Start a turn for an active session.

        Returns:
            {"turnId": ..., "status": "processing"}

        Raises:
            SessionNotFound: If no active session exists
            TurnAlreadyProcessing: If the session already has a processing turn
        """
        async with self.session_lock(session_id):
            self.registry.require(session_id)
            if self.has_pending_turn(session_id):
                raise TurnAlreadyProcessing(
                    f"Session {session_id} already has a turn in progress"
                )
            turn_id = self.start_turn(session_id, input_text, is_simulated=is_simulated)

        return {"turnId": turn_id, "status": TurnStatus.PROCESSING.value}

    def get_turn_view(self, turn_id: str) -> dict | None:
        turn = self.get_turn(turn_id)
        return turn.to_view() if turn else None

    def list_turns(self, session_id: str, limit: int = 20) -> list[dict]:
        """Turn views of a session, newest first"""
        return [turn.to_view() for turn in self.turn_store.list_turns(session_id, limit)]

    def get_conversation(self, session_id: str, limit: int = 50) -> list[dict]:
        """
        Conversation transcript, oldest first.

        Simulated turns keep their narration but carry no player input.
        """
        turns = reversed(self.turn_store.list_turns(session_id, limit))
        return [
            {
                "turnNumber": turn.turn_number,
                "inputText": None if turn.is_simulated else turn.input_text,
                "narrativeOutput": turn.narrative_output,
            }
            for turn in turns
        ]
