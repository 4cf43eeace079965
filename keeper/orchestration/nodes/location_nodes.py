# ABOUTME: Location-resolution node factory deciding and committing moves between narrative locations.
# ABOUTME: Revisits resume a location's local history from its latest checkpoint; moves are checkpointed.

from loguru import logger

from keeper.agents.collaborators import LocationDecider
from keeper.agents.extraction import Ok
from keeper.config.settings import Settings
from keeper.models.checkpoint import CheckpointType
from keeper.models.pipeline_state import PipelineState, Stage
from keeper.models.session_state import ERROR_TAG, Location, SessionState
from keeper.models.stage_io import LocationDecision
from keeper.orchestration.nodes.helpers import (
    _call_collaborator,
    _location_context,
    _make_state_manager,
    _record_progress,
)
from keeper.persistence.checkpoint_store import CheckpointStore
from keeper.persistence.turn_store import TurnStore
from keeper.state.manager import StateManager

DEFAULT_REJECTION_NOTE = "The move does not happen yet."


def _resume_location(
    checkpoint_store: CheckpointStore | None,
    session: SessionState,
    target: Location,
) -> Location:
    """
    Return the target's snapshot from its latest checkpoint, or the target itself.

    A lookup miss is the first visit; lookup errors degrade to the same.
    """
    if checkpoint_store is None:
        return target
    try:
        checkpoint = checkpoint_store.find_latest_for_location(
            session.session_id, target.name, target.id
        )
    except Exception as e:
        logger.warning(f"Checkpoint lookup for '{target.name}' failed: {e}. Treating as first visit")
        return target

    if checkpoint is None:
        logger.debug(f"First visit to '{target.name}'")
        return target

    previous = checkpoint.state.current_location
    if previous is None or (previous.id != target.id and previous.name != target.name):
        return target

    logger.info(
        f"Resuming '{target.name}' from checkpoint {checkpoint.checkpoint_id} "
        f"({len(previous.events)} recorded events)"
    )
    return previous


def _commit_transition(
    manager: StateManager,
    checkpoint_store: CheckpointStore | None,
    target: Location,
    auto_retention: int,
) -> None:
    session = manager.session
    current = session.current_location
    if current is not None and current.id == target.id:
        logger.info(f"Already at '{target.name}'; no transition")
        return

    resumed = _resume_location(checkpoint_store, session, target)

    if checkpoint_store is not None and current is not None:
        # Departure snapshot keeps the local history of the location being left
        try:
            checkpoint_store.save_auto(session, keep=auto_retention)
        except Exception as e:
            logger.warning(f"Departure checkpoint for '{current.name}' failed: {e}")

    manager.commit_location_transition(resumed)

    if checkpoint_store is not None:
        try:
            checkpoint_store.save(
                session.session_id,
                resumed.name,
                CheckpointType.TRANSITION,
                session,
                f"Arrived at {resumed.name}",
            )
        except Exception as e:
            logger.warning(f"Transition checkpoint for '{resumed.name}' failed: {e}")


def _create_location_resolution_node(
    decider: LocationDecider,
    checkpoint_store: CheckpointStore | None,
    turn_store: TurnStore | None,
    settings: Settings,
):
    """
    Factory for location_resolution_node with injected dependencies.

    Args:
        decider: Location-decision collaborator
        checkpoint_store: Store used to resume revisited locations and record moves
        turn_store: Optional store for the turn's progressive fields
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def location_resolution_node(state: PipelineState) -> dict:
        """
        Decide whether the story moves, commit the move, and leave a narrative direction.

        A rejected pending request leaves a note for the narrative stage. The
        request slot is always cleared.
        """
        session = state["session"]
        logger.info(f"[STAGE: LOCATION_RESOLUTION] Session {session.session_id}")

        manager = _make_state_manager(session, settings)
        request = session.temporary.transition_request

        try:
            result = await _call_collaborator(
                lambda: decider.decide(session.snapshot()),
                LocationDecision,
                settings.max_parse_attempts,
                Stage.LOCATION_RESOLUTION.value,
            )
            if isinstance(result, Ok):
                decision = result.value
            else:
                logger.warning("Location decision output unusable; staying put")
                decision = LocationDecision(reasoning="Location decision unavailable")
        except Exception as e:
            logger.warning(f"Location decision collaborator failed: {e}. Staying put")
            decision = LocationDecision(
                reasoning=f"{ERROR_TAG} Location decision failed: {type(e).__name__}: {e}"
            )

        if decision.should_transition:
            if decision.target_location is None:
                logger.warning("Transition approved without a target location; skipping move")
            else:
                _commit_transition(
                    manager,
                    checkpoint_store,
                    decision.target_location,
                    settings.auto_checkpoint_retention,
                )
        elif request is not None:
            note = decision.reasoning or DEFAULT_REJECTION_NOTE
            manager.set_transition_rejection(
                f"Move to {request.target_location_name} rejected: {note}"
            )
            logger.info(f"Transition to '{request.target_location_name}' rejected")

        manager.clear_location_transition_request()
        manager.set_narrative_direction(decision.narrative_direction)

        _record_progress(
            turn_store,
            state.get("turn_id"),
            location_decision=decision.model_dump(mode="json"),
            **_location_context(session),
        )
        return {"current_stage": Stage.LOCATION_RESOLUTION.value}

    return location_resolution_node
