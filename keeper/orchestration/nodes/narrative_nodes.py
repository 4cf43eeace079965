# ABOUTME: Narrative-generation node factory, the terminal stage of the turn pipeline.
# ABOUTME: Its failure aborts the execution; on success it records facts and world changes and completes the turn.

from loguru import logger

from keeper.agents.collaborators import NarrativeGenerator
from keeper.agents.extraction import Ok
from keeper.config.settings import Settings
from keeper.models.pipeline_state import PipelineState, Stage
from keeper.models.stage_io import NarrativeDirectives, NarrativeResult
from keeper.orchestration.exceptions import TerminalStageFailed
from keeper.orchestration.nodes.helpers import (
    _call_collaborator,
    _location_context,
    _make_state_manager,
)
from keeper.orchestration.session_registry import SessionRegistry
from keeper.persistence.exceptions import InvalidTurnTransition
from keeper.persistence.turn_store import TurnStore
from keeper.state.manager import StateManager


def _apply_world_changes(manager: StateManager, narrative: NarrativeResult) -> None:
    """Record the narration's events, conditions, tension and relationship shifts"""
    events = [event for event in narrative.new_events if manager.record_location_event(event)]
    for condition in narrative.new_conditions:
        manager.record_location_condition(condition)
    if narrative.tension_level is not None:
        manager.set_tension(narrative.tension_level)
    for change in narrative.relationship_changes:
        manager.apply_relationship_change(change.participant_id, change.attitude_change)

    if events or narrative.relationship_changes:
        logger.debug(
            f"Narration recorded {len(events)} event(s) and "
            f"{len(narrative.relationship_changes)} relationship change(s)"
        )


def _create_narrative_generation_node(
    generator: NarrativeGenerator,
    turn_store: TurnStore | None,
    settings: Settings,
    session_registry: SessionRegistry | None = None,
):
    """
    Factory for narrative_generation_node with injected dependencies.

    Args:
        generator: Narrative-generation collaborator
        turn_store: Optional store; the node completes the turn in it
        settings: Application settings
        session_registry: Optional registry; the resulting session becomes
            current only after the turn moved from processing to completed.
            Both writes happen without an await between them, so no other
            task of the process sees one without the other

    Returns:
        Node function with captured dependencies
    """

    async def narrative_generation_node(state: PipelineState) -> dict:
        """
        Generate the turn's narration.

        Raises:
            TerminalStageFailed: If the collaborator fails or returns no narration
        """
        session = state["session"]
        logger.info(f"[STAGE: NARRATIVE_GENERATION] Session {session.session_id}")

        manager = _make_state_manager(session, settings)
        temporary = session.temporary
        directives = NarrativeDirectives(
            raw_input=None if state["is_simulated"] else state["input_text"],
            is_simulated=state["is_simulated"],
            action_outcomes=manager.get_all_action_outcomes(),
            reaction_decisions=list(temporary.reaction_decisions),
            just_transitioned=temporary.just_transitioned,
            transition_rejection=temporary.transition_rejection,
            narrative_direction=temporary.narrative_direction,
            location_exhausted=manager.is_location_exhausted(),
        )

        try:
            result = await _call_collaborator(
                lambda: generator.generate(session.snapshot(), directives),
                NarrativeResult,
                settings.max_parse_attempts,
                Stage.NARRATIVE_GENERATION.value,
            )
        except Exception as e:
            raise TerminalStageFailed(f"Narrative generation failed: {e}") from e

        if isinstance(result, Ok):
            narrative = result.value
        else:
            logger.warning("Narrative output unstructured; using raw text as narration")
            narrative = NarrativeResult(narrative_text=result.raw.strip())

        if not narrative.narrative_text.strip():
            raise TerminalStageFailed("Narrative generation returned no narration")

        revealed = [fact for fact in narrative.revealed_facts if manager.append_discovered_fact(fact)]
        _apply_world_changes(manager, narrative)
        manager.consume_one_shot_flags()

        turn_id = state.get("turn_id")
        if turn_store is not None and turn_id:
            try:
                turn_store.complete_turn(
                    turn_id,
                    narrative.narrative_text,
                    revealed,
                    **_location_context(session),
                )
            except InvalidTurnTransition as e:
                # A turn that already ended (e.g. expired as stale) never commits its state
                raise TerminalStageFailed(f"Turn result discarded: {e}") from e

        if session_registry is not None:
            session_registry.put(session)

        return {
            "current_stage": Stage.NARRATIVE_GENERATION.value,
            "narrative_output": narrative.narrative_text,
            "revealed_facts": revealed,
        }

    return narrative_generation_node
