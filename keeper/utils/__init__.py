# ABOUTME: Utility module exports for structured logging and Redis session cleanup.
# ABOUTME: Provides logging.py (loguru config) and redis_cleanup.py (per-session purge).

from keeper.utils.logging import get_logger, log_stage_transition, log_turn_event, setup_logging
from keeper.utils.redis_cleanup import purge_session

__all__ = [
    "setup_logging",
    "get_logger",
    "log_turn_event",
    "log_stage_transition",
    "purge_session",
]
