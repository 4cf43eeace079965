# ABOUTME: RQ worker function executing one turn pipeline in a worker process.
# ABOUTME: Module-level function with internal imports; rebuilds stores and collaborators from settings.

from typing import Any

from loguru import logger


def process_turn_job(turn_id: str) -> dict[str, Any]:
    """
    RQ worker function: run the pipeline for an already allocated turn.

    Worker pattern: imports dependencies inside function (runs in separate
    process). The turn record and session state are read from Redis; the
    resulting state and turn outcome are written back there.

    Args:
        turn_id: Turn allocated by TurnOrchestrator.start_turn

    Returns:
        Dict with turn_id and final status

    Raises:
        ConnectionError: When Redis is not accessible
    """
    # Import dependencies inside worker (separate process)
    import asyncio

    from keeper.agents.llm_collaborators import build_llm_collaborators
    from keeper.config.settings import get_settings
    from keeper.orchestration.turn_orchestrator import TurnOrchestrator
    from keeper.persistence.connection import create_redis_connection
    from keeper.persistence.turn_store import TurnStore

    settings = get_settings()
    redis_client = create_redis_connection(settings.redis_url)

    try:
        collaborators = build_llm_collaborators(settings)
    except Exception as e:
        # No pipeline can run; the turn must not stay processing
        TurnStore(redis_client, settings.turn_record_ttl_seconds).mark_error(turn_id, e)
        raise

    orchestrator = TurnOrchestrator(
        redis_client,
        collaborators=collaborators,
        settings=settings.model_copy(update={"turn_executor": "asyncio"}),
    )

    logger.info(f"Worker processing turn {turn_id}")
    asyncio.run(orchestrator.execute_turn(turn_id))

    turn = orchestrator.turn_store.get_turn(turn_id)
    status = turn.status.value if turn else "missing"
    logger.info(f"Worker finished turn {turn_id}: {status}")
    return {"turn_id": turn_id, "status": status}
