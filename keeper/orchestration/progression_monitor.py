# ABOUTME: ProgressionMonitor, a periodic check that synthesizes simulated turns when a session stalls.
# ABOUTME: Serializes against player turns per session and caps chained simulated turns.

import asyncio
import hashlib
import json

from loguru import logger

from keeper.config.settings import Settings
from keeper.models.session_state import SessionState
from keeper.orchestration.exceptions import SimulatedChainLimitReached
from keeper.orchestration.turn_orchestrator import TurnOrchestrator
from keeper.state.manager import StateManager

MIN_OUTCOMES_FOR_STALL = 3
SIMULATED_INPUT_TEMPLATE = "[SIMULATED] Time passes and the story moves on ({reasons})."


def participant_state_hash(session: SessionState) -> str:
    """Hash of the participant fields that change when the story progresses"""
    rows = []
    for participant in session.participants:
        rows.append(json.dumps({
            "id": participant.id,
            "name": participant.name,
            "hp": participant.status.hp,
            "sanity": participant.status.sanity,
            "conditions": sorted(participant.status.conditions),
            "revealed": sorted(k.id for k in participant.knowledge if k.revealed),
            "relationships": [r.model_dump() for r in participant.relationships],
        }, sort_keys=True))
    return hashlib.sha256("|".join(sorted(rows)).encode()).hexdigest()


class ProgressionMonitor:
    """
    Watches one session and triggers an internally generated turn when it stalls.

    Triggers (any one suffices):
    - every participant with a counter has used up the location's short actions
    - at least three outcomes since the last newly discovered fact
    - participant state unchanged while at least three outcomes accumulated
    """

    def __init__(
        self,
        orchestrator: TurnOrchestrator,
        session_id: str,
        settings: Settings | None = None,
    ):
        self.orchestrator = orchestrator
        self.session_id = session_id
        self.settings = settings or orchestrator.settings

        self._fact_count = 0
        self._participant_hash = ""
        self._location_id: str | None = None
        self._baselined = False

    # ------------------------------------------------------------------
    # Baseline
    # ------------------------------------------------------------------

    def reset_on_location_change(self, session: SessionState | None = None) -> None:
        """Re-baseline against the current session state"""
        session = session or self.orchestrator.registry.require(self.session_id)
        self._fact_count = len(session.discovered_facts)
        self._participant_hash = participant_state_hash(session)
        self._location_id = session.current_location.id if session.current_location else None
        self._baselined = True
        logger.debug(f"Progression baseline reset for session {self.session_id}")

    # ------------------------------------------------------------------
    # Trigger evaluation
    # ------------------------------------------------------------------

    def evaluate(self, session: SessionState) -> list[str]:
        """
        Names of the trigger conditions currently met.

        Progress (new facts, changed participant state) moves the baseline
        forward instead of triggering.
        """
        if not self._baselined:
            self.reset_on_location_change(session)

        manager = StateManager(
            session,
            outcome_buffer_size=self.settings.action_outcome_buffer_size,
            default_short_action_cap=self.settings.default_short_action_cap,
        )
        outcome_count = len(session.temporary.action_outcomes)
        triggers = []

        if manager.is_location_exhausted():
            triggers.append("location exhausted")

        fact_count = len(session.discovered_facts)
        if fact_count > self._fact_count:
            self._fact_count = fact_count
        elif outcome_count >= MIN_OUTCOMES_FOR_STALL:
            triggers.append("no new facts")

        current_hash = participant_state_hash(session)
        if current_hash != self._participant_hash:
            self._participant_hash = current_hash
        elif outcome_count >= MIN_OUTCOMES_FOR_STALL:
            triggers.append("participants unchanged")

        return triggers

    def simulated_chain_length(self) -> int:
        """Simulated turns since the last player turn"""
        limit = self.settings.max_simulated_chain + 1
        chain = 0
        for turn in self.orchestrator.turn_store.list_turns(self.session_id, limit=limit):
            if not turn.is_simulated:
                break
            chain += 1
        return chain

    # ------------------------------------------------------------------
    # Triggering
    # ------------------------------------------------------------------

    def trigger_simulated_turn(self, reasons: list[str]) -> str:
        """
        Start a simulated turn.

        Raises:
            SimulatedChainLimitReached: If the chain cap is already reached
        """
        chain = self.simulated_chain_length()
        if chain >= self.settings.max_simulated_chain:
            raise SimulatedChainLimitReached(
                f"Session {self.session_id} already chained {chain} simulated turns"
            )
        text = SIMULATED_INPUT_TEMPLATE.format(reasons=", ".join(reasons))
        turn_id = self.orchestrator.start_turn(self.session_id, text, is_simulated=True)
        logger.info(f"Progression monitor started simulated turn {turn_id}: {reasons}")
        return turn_id

    async def check(self) -> str | None:
        """
        Run one progression check.

        Returns:
            Id of the simulated turn started, or None
        """
        async with self.orchestrator.session_lock(self.session_id):
            if self.orchestrator.has_pending_turn(self.session_id):
                return None

            session = self.orchestrator.registry.get(self.session_id)
            if session is None:
                return None

            location_id = session.current_location.id if session.current_location else None
            if self._baselined and location_id != self._location_id:
                self.reset_on_location_change(session)
                return None

            triggers = self.evaluate(session)
            if not triggers:
                return None

            try:
                return self.trigger_simulated_turn(triggers)
            except SimulatedChainLimitReached as e:
                logger.warning(f"{e}; waiting for player input")
                return None

    async def run_periodic(self, stop_event: asyncio.Event | None = None) -> None:
        """Check every progression_check_interval_seconds until stop_event is set"""
        stop_event = stop_event or asyncio.Event()
        interval = self.settings.progression_check_interval_seconds
        logger.info(f"Progression monitor running for session {self.session_id} every {interval}s")

        while not stop_event.is_set():
            try:
                await self.check()
            except Exception as e:
                logger.error(f"Progression check failed for session {self.session_id}: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                continue
