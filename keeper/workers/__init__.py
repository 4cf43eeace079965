# ABOUTME: Worker module initialization for RQ background turn processing.
# ABOUTME: Exports queue configuration and retry utilities; turn_worker is imported by RQ by path.

from keeper.workers.llm_retry import llm_retry
from keeper.workers.queue_config import (
    TURN_QUEUE,
    create_queue_connection,
    enqueue_job,
    get_turn_queue,
)

__all__ = [
    # Queue configuration
    "create_queue_connection",
    "get_turn_queue",
    "enqueue_job",
    "TURN_QUEUE",
    # Utilities
    "llm_retry",
]
