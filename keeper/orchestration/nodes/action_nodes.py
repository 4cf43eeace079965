# ABOUTME: Action-resolution, reaction-analysis and reaction-execution node factories.
# ABOUTME: Outcomes flow through the StateManager; collaborator failures become tagged error outcomes.

from loguru import logger

from keeper.agents.collaborators import ActionResolver, ReactionAnalyzer, ReactionExecutor
from keeper.agents.extraction import Ok
from keeper.config.settings import Settings
from keeper.models.pipeline_state import PipelineState, Stage
from keeper.models.session_state import (
    ActionOutcome,
    LocationTransitionRequest,
    ReactionDecision,
    SessionState,
)
from keeper.orchestration.nodes.helpers import (
    _call_collaborator,
    _dump_outcomes,
    _error_outcome,
    _make_state_manager,
    _record_progress,
)
from keeper.persistence.turn_store import TurnStore


def _stamp(outcome: ActionOutcome, session: SessionState) -> ActionOutcome:
    """Fill location and game time when the collaborator left them out"""
    location = session.current_location
    update = {}
    if outcome.location is None and location is not None:
        update["location"] = location.name
    if outcome.game_time is None:
        update["game_time"] = session.time_of_day
    return outcome.model_copy(update=update) if update else outcome


def _create_action_resolution_node(
    resolver: ActionResolver,
    turn_store: TurnStore | None,
    settings: Settings,
):
    """
    Factory for action_resolution_node with injected dependencies.

    Args:
        resolver: Action-resolution collaborator
        turn_store: Optional store for the turn's progressive fields
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def action_resolution_node(state: PipelineState) -> dict:
        """
        Resolve the player's action into outcomes.

        An outcome naming a requested location raises a transition request
        for the location-resolution stage.
        """
        session = state["session"]
        raw_input = state["input_text"]
        logger.info(f"[STAGE: ACTION_RESOLUTION] Session {session.session_id}")

        manager = _make_state_manager(session, settings)
        intent = session.temporary.intent_analysis

        try:
            result = await _call_collaborator(
                lambda: resolver.resolve(session.snapshot(), intent, raw_input),
                list[ActionOutcome],
                settings.max_parse_attempts,
                Stage.ACTION_RESOLUTION.value,
                unwrap_key="outcomes",
            )
            if isinstance(result, Ok):
                outcomes = [_stamp(outcome, session) for outcome in result.value]
            else:
                logger.warning("Action resolution output unusable; keeping raw text as outcome")
                outcomes = [_stamp(ActionOutcome(
                    participant=session.protagonist.name,
                    participant_id=session.protagonist.id,
                    result=result.raw,
                ), session)]
        except Exception as e:
            logger.warning(f"Action resolution collaborator failed: {e}")
            outcomes = [_error_outcome(session, "Action resolution", e)]

        for outcome in outcomes:
            manager.add_action_outcome(outcome)
            if outcome.requested_location:
                manager.set_location_transition_request(
                    LocationTransitionRequest(
                        target_location_name=outcome.requested_location,
                        reason=outcome.result,
                    )
                )

        turn_outcomes = list(state.get("turn_outcomes", [])) + _dump_outcomes(outcomes)
        _record_progress(turn_store, state.get("turn_id"), action_outcomes=turn_outcomes)
        return {"current_stage": Stage.ACTION_RESOLUTION.value, "turn_outcomes": turn_outcomes}

    return action_resolution_node


def _create_reaction_analysis_node(analyzer: ReactionAnalyzer, settings: Settings):
    """
    Factory for reaction_analysis_node with injected dependencies.

    Args:
        analyzer: Reaction-analysis collaborator
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def reaction_analysis_node(state: PipelineState) -> dict:
        """Decide which participants respond; failure means nobody responds"""
        session = state["session"]
        logger.info(f"[STAGE: REACTION_ANALYSIS] Session {session.session_id}")

        decisions: list[ReactionDecision] = []
        try:
            result = await _call_collaborator(
                lambda: analyzer.analyze(session.snapshot(), state["input_text"]),
                list[ReactionDecision],
                settings.max_parse_attempts,
                Stage.REACTION_ANALYSIS.value,
                unwrap_key="decisions",
            )
            if isinstance(result, Ok):
                decisions = result.value
            else:
                logger.warning("Reaction analysis output unusable; no participant responds")
        except Exception as e:
            logger.warning(f"Reaction analysis collaborator failed: {e}. No participant responds")

        _make_state_manager(session, settings).set_reaction_decisions(decisions)
        responding = [d.participant_name for d in decisions if d.is_responding]
        if responding:
            logger.debug(f"Responding participants: {responding}")
        return {"current_stage": Stage.REACTION_ANALYSIS.value}

    return reaction_analysis_node


def _create_reaction_execution_node(
    executor: ReactionExecutor | None,
    turn_store: TurnStore | None,
    settings: Settings,
):
    """
    Factory for reaction_execution_node with injected dependencies.

    Args:
        executor: Reaction-execution collaborator (None skips the stage's effect)
        turn_store: Optional store for the turn's progressive fields
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def reaction_execution_node(state: PipelineState) -> dict:
        """Let responding participants act; their outcomes count like any other"""
        session = state["session"]
        logger.info(f"[STAGE: REACTION_EXECUTION] Session {session.session_id}")

        responding = [d for d in session.temporary.reaction_decisions if d.is_responding]
        if executor is None or not responding:
            logger.warning("Reaction execution has nothing to run; skipping")
            return {"current_stage": Stage.REACTION_EXECUTION.value}

        try:
            result = await _call_collaborator(
                lambda: executor.execute(session.snapshot(), responding),
                list[ActionOutcome],
                settings.max_parse_attempts,
                Stage.REACTION_EXECUTION.value,
                unwrap_key="outcomes",
            )
            if isinstance(result, Ok):
                outcomes = [_stamp(outcome, session) for outcome in result.value]
            else:
                logger.warning("Reaction execution output unusable; no reactions recorded")
                outcomes = []
        except Exception as e:
            logger.warning(f"Reaction execution collaborator failed: {e}")
            outcomes = [_error_outcome(session, "Reaction execution", e)]

        manager = _make_state_manager(session, settings)
        for outcome in outcomes:
            manager.add_action_outcome(outcome)

        turn_outcomes = list(state.get("turn_outcomes", [])) + _dump_outcomes(outcomes)
        _record_progress(turn_store, state.get("turn_id"), action_outcomes=turn_outcomes)
        return {"current_stage": Stage.REACTION_EXECUTION.value, "turn_outcomes": turn_outcomes}

    return reaction_execution_node
