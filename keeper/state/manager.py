# ABOUTME: StateManager, the invariant-enforcing mutation surface over one SessionState instance.
# ABOUTME: Bounds the outcome buffer and visited history, scopes ephemeral clearing, tracks action counters.

from loguru import logger

from keeper.models.session_state import (
    ActionOutcome,
    IntentAnalysis,
    Location,
    LocationTransitionRequest,
    ReactionDecision,
    Relationship,
    SessionState,
    TimeCost,
)

DEFAULT_OUTCOME_BUFFER_SIZE = 10
DEFAULT_VISITED_HISTORY_SIZE = 3
DEFAULT_SHORT_ACTION_CAP = 3

MAX_TENSION = 10.0
MIN_ATTITUDE = -100
MAX_ATTITUDE = 100


class StateManager:
    """
    Thin facade over one SessionState.

    Every method is total: invalid numeric inputs are clamped to zero and
    nothing raises. No method leaves the outcome buffer or the visited
    history over capacity.
    """

    def __init__(
        self,
        session: SessionState,
        outcome_buffer_size: int = DEFAULT_OUTCOME_BUFFER_SIZE,
        visited_history_size: int = DEFAULT_VISITED_HISTORY_SIZE,
        default_short_action_cap: int = DEFAULT_SHORT_ACTION_CAP,
    ):
        self.session = session
        self.outcome_buffer_size = max(outcome_buffer_size, 0)
        self.visited_history_size = max(visited_history_size, 0)
        self.default_short_action_cap = max(default_short_action_cap, 0)

    # ------------------------------------------------------------------
    # Action outcomes
    # ------------------------------------------------------------------

    def add_action_outcome(self, outcome: ActionOutcome) -> None:
        """
        Append an outcome, evicting the oldest beyond the buffer size, and
        charge its time cost to the acting participant's counter.

        Args:
            outcome: Resolved action outcome
        """
        temporary = self.session.temporary
        temporary.action_outcomes.append(outcome)
        overflow = len(temporary.action_outcomes) - self.outcome_buffer_size
        if overflow > 0:
            del temporary.action_outcomes[:overflow]

        participant_key = outcome.participant_id or outcome.participant
        self._charge_time_cost(participant_key, outcome.time_cost)

    def get_all_action_outcomes(self) -> list[ActionOutcome]:
        return list(self.session.temporary.action_outcomes)

    def get_latest_action_outcome(self) -> ActionOutcome | None:
        outcomes = self.session.temporary.action_outcomes
        return outcomes[-1] if outcomes else None

    def _charge_time_cost(self, participant_key: str, time_cost: TimeCost) -> None:
        counters = self.session.location_time.participant_actions
        current = max(counters.get(participant_key, 0), 0)

        if time_cost == TimeCost.SHORT:
            counters[participant_key] = current + 1
        elif time_cost == TimeCost.SCENE:
            counters[participant_key] = max(current, self.short_action_cap())
        elif participant_key in counters:
            counters[participant_key] = current

    # ------------------------------------------------------------------
    # Location counters
    # ------------------------------------------------------------------

    def short_action_cap(self) -> int:
        """Short-action cap of the current location, falling back to the default"""
        location = self.session.current_location
        if location is not None and location.short_action_cap is not None:
            return max(location.short_action_cap, 0)
        return self.default_short_action_cap

    def participant_action_count(self, participant_key: str) -> int:
        return max(self.session.location_time.participant_actions.get(participant_key, 0), 0)

    def is_location_exhausted(self) -> bool:
        """True once every participant with a counter has reached the short-action cap"""
        counters = self.session.location_time.participant_actions
        if not counters:
            return False
        cap = self.short_action_cap()
        return all(max(count, 0) >= cap for count in counters.values())

    # ------------------------------------------------------------------
    # Single-slot ephemeral fields
    # ------------------------------------------------------------------

    def set_intent_analysis(self, analysis: IntentAnalysis | None) -> None:
        self.session.temporary.intent_analysis = analysis

    def clear_intent_analysis(self) -> None:
        self.session.temporary.intent_analysis = None

    def set_location_transition_request(
        self, request: LocationTransitionRequest | None
    ) -> None:
        self.session.temporary.transition_request = request

    def clear_location_transition_request(self) -> None:
        self.session.temporary.transition_request = None

    def set_transition_rejection(self, note: str | None) -> None:
        self.session.temporary.transition_rejection = note

    def set_reaction_decisions(self, decisions: list[ReactionDecision]) -> None:
        self.session.temporary.reaction_decisions = list(decisions)

    def set_narrative_direction(self, direction: str | None) -> None:
        self.session.temporary.narrative_direction = direction

    def merge_contextual_data(self, data: dict) -> None:
        """Shallow-merge enrichment results into the scratch dict"""
        self.session.temporary.contextual_data.update(data)

    # ------------------------------------------------------------------
    # Location transitions
    # ------------------------------------------------------------------

    def commit_location_transition(self, new_location: Location) -> None:
        """
        Make new_location current.

        The previous current location (if any) is prepended to the visited
        history. The history never holds two entries with the same id and
        never holds the new current location. All per-location counters reset
        and the one-shot just_transitioned flag is raised.

        Args:
            new_location: Location snapshot that becomes current
        """
        session = self.session
        previous = session.current_location

        history = list(session.visited_locations)
        if previous is not None:
            history.insert(0, previous)

        deduped: list[Location] = []
        seen_ids = {new_location.id}
        for location in history:
            if location.id in seen_ids:
                continue
            seen_ids.add(location.id)
            deduped.append(location)

        session.visited_locations = deduped[: self.visited_history_size]
        session.location_time.participant_actions = {}
        session.current_location = new_location
        session.temporary.just_transitioned = True

        logger.info(
            f"Location transition committed: "
            f"{previous.name if previous else 'None'} -> {new_location.name}"
        )

    def consume_one_shot_flags(self) -> None:
        """Lower the just-transitioned flag and drop the rejection note once narrated"""
        self.session.temporary.just_transitioned = False
        self.session.temporary.transition_rejection = None

    # ------------------------------------------------------------------
    # Scoped clearing
    # ------------------------------------------------------------------

    def clear_ephemeral_turn_state(self) -> None:
        """
        Clear the working data of the previous turn.

        Only called at the start of a turn triggered by a genuine external
        event. Internally generated turns keep the prior turn's data.
        """
        temporary = self.session.temporary
        temporary.action_outcomes = []
        temporary.intent_analysis = None
        temporary.transition_rejection = None
        temporary.contextual_data = {}
        temporary.reaction_decisions = []
        temporary.narrative_direction = None

    # ------------------------------------------------------------------
    # Durable ledger
    # ------------------------------------------------------------------

    def append_discovered_fact(self, fact: str) -> bool:
        """
        Append a fact unless the exact same text is already recorded.

        Returns:
            True if the fact was added
        """
        if not fact or fact in self.session.discovered_facts:
            return False
        self.session.discovered_facts.append(fact)
        return True

    def set_tension(self, level: float) -> None:
        self.session.tension = min(max(level, 0.0), MAX_TENSION)

    # ------------------------------------------------------------------
    # Location history
    # ------------------------------------------------------------------

    def record_location_event(self, event: str) -> bool:
        """
        Record something that happened at the current location.

        The event travels with the location into the visited history, so a
        revisit resumes it. Blank and already-recorded events are skipped.

        Returns:
            True if the event was recorded
        """
        location = self.session.current_location
        event = event.strip()
        if location is None or not event or event in location.events:
            return False
        location.events.append(event)
        return True

    def record_location_condition(self, condition: str) -> bool:
        location = self.session.current_location
        condition = condition.strip()
        if location is None or not condition or condition in location.conditions:
            return False
        location.conditions.append(condition)
        return True

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    def apply_relationship_change(
        self, participant_id: str, attitude_change: int
    ) -> Relationship | None:
        """
        Shift how a participant regards the protagonist.

        A participant with no relationship to the protagonist gets a neutral
        acquaintance first. Attitude stays within [-100, 100].

        Returns:
            The updated relationship, or None if the participant is unknown
        """
        protagonist = self.session.protagonist
        participant = self.session.find_participant(participant_id)
        if participant is None or participant is protagonist:
            logger.warning(f"Relationship change for unknown participant {participant_id!r} ignored")
            return None

        relationship = next(
            (r for r in participant.relationships if r.target_id == protagonist.id), None
        )
        if relationship is None:
            relationship = Relationship(target_id=protagonist.id, target_name=protagonist.name)
            participant.relationships.append(relationship)

        attitude = relationship.attitude + attitude_change
        relationship.attitude = min(max(attitude, MIN_ATTITUDE), MAX_ATTITUDE)
        return relationship
