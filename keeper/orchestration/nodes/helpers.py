# ABOUTME: Helper utilities shared by pipeline stage nodes.
# ABOUTME: Builds state managers, runs the bounded parse-retry loop and writes best-effort turn progress.

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger

from keeper.agents.extraction import Ok, ParseError, ParseResult, parse_structured
from keeper.config.settings import Settings
from keeper.models.session_state import ERROR_TAG, ActionOutcome, SessionState, TimeCost
from keeper.persistence.turn_store import TurnStore
from keeper.state.manager import StateManager


def _make_state_manager(session: SessionState, settings: Settings) -> StateManager:
    return StateManager(
        session,
        outcome_buffer_size=settings.action_outcome_buffer_size,
        visited_history_size=settings.visited_location_history_size,
        default_short_action_cap=settings.default_short_action_cap,
    )


async def _call_collaborator(
    call: Callable[[], Awaitable[Any]],
    target: Any,
    max_attempts: int,
    stage: str,
    unwrap_key: str | None = None,
) -> ParseResult:
    """
    Invoke a collaborator and validate its output, re-asking on malformed output.

    Collaborator exceptions are not caught here; the calling node decides
    whether they degrade or abort.

    Args:
        call: Zero-argument coroutine factory invoking the collaborator
        target: Type the output must validate against
        max_attempts: Total attempts while the output stays malformed
        stage: Stage name for logging
        unwrap_key: Optional wrapper key (e.g. "outcomes")

    Returns:
        Ok(value) from the first well-formed attempt, or the last ParseError
    """
    result: ParseResult = ParseError(raw="", reason="no attempt made")
    for attempt in range(1, max(max_attempts, 1) + 1):
        raw = await call()
        result = parse_structured(raw, target, unwrap_key=unwrap_key)
        if isinstance(result, Ok):
            return result
        logger.warning(
            f"[STAGE: {stage.upper()}] Malformed collaborator output "
            f"(attempt {attempt}/{max_attempts}): {result.reason}"
        )
    return result


def _record_progress(turn_store: TurnStore | None, turn_id: str | None, **fields: Any) -> None:
    """Write progressive turn fields; a storage failure never aborts the stage"""
    if turn_store is None or not turn_id:
        return
    try:
        turn_store.update_progress(turn_id, **fields)
    except Exception as e:
        logger.warning(f"Failed to record progress for turn {turn_id}: {e}")


def _error_outcome(session: SessionState, label: str, error: BaseException) -> ActionOutcome:
    """Synthetic outcome standing in for a failed collaborator call"""
    location = session.current_location
    return ActionOutcome(
        participant=session.protagonist.name,
        participant_id=session.protagonist.id,
        result=f"{ERROR_TAG} {label} failed: {type(error).__name__}: {error}",
        location=location.name if location else None,
        game_time=session.time_of_day,
        time_cost=TimeCost.INSTANT,
    )


def _dump_outcomes(outcomes: list[ActionOutcome]) -> list[dict]:
    return [outcome.model_dump(mode="json") for outcome in outcomes]


def _location_context(session: SessionState) -> dict[str, Any]:
    location = session.current_location
    if location is None:
        return {}
    return {
        "location_id": location.id,
        "location_name": location.name,
        "descriptor": location.descriptor,
    }
