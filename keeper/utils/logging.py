# ABOUTME: Loguru configuration and context-binding helpers for turn and stage tracing.
# ABOUTME: Every pipeline record can carry session, turn and stage fields in its extra dict.

import sys
from pathlib import Path
from typing import Any

from loguru import logger

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# Context fields render after the message, e.g. "| {'session': 'sess-1', 'turn': 'turn-ab12'}"
DEFAULT_FORMAT = (
    "<green>{time:HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level> | {extra}"
)

LOG_FILE_PATTERN = "keeper_{time:YYYY-MM-DD}.log"


def setup_logging(
    log_level: str = "INFO",
    log_dir: str | Path | None = None,
    console_output: bool = True,
    file_output: bool = True,
    rotation: str = "50 MB",
    retention: str = "14 days",
    compression: str = "zip",
) -> None:
    """
    Replace loguru's default sink with the Keeper console and file sinks.

    The CLI disables console output so log lines never interleave with the
    narration; the file sink keeps the full trace.

    Args:
        log_level: Minimum level, case-insensitive
        log_dir: Directory for the daily log files (default: ./logs)
        console_output: Add a colourised stderr sink
        file_output: Add a rotating file sink
        rotation: Size or interval after which the file rotates
        retention: How long rotated files are kept
        compression: Archive format for rotated files

    Raises:
        ValueError: If log_level is not a known level
    """
    level = log_level.upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"Invalid log level: '{log_level}'. Must be one of: {', '.join(LOG_LEVELS)}")

    logger.remove()

    if console_output:
        logger.add(sys.stderr, format=DEFAULT_FORMAT, level=level, colorize=True)

    if file_output:
        directory = Path(log_dir) if log_dir is not None else Path("logs")
        directory.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(directory / LOG_FILE_PATTERN),
            format=DEFAULT_FORMAT,
            level=level,
            rotation=rotation,
            retention=retention,
            compression=compression,
            backtrace=True,
            diagnose=False,
            enqueue=True,
        )

    logger.debug(f"Logging ready (level={level}, console={console_output}, file={file_output})")


def get_logger() -> Any:
    return logger


def _context(session_id: str, turn_id: str | None, **fields: Any) -> dict[str, Any]:
    context: dict[str, Any] = {"session": session_id}
    if turn_id:
        context["turn"] = turn_id
    context.update({key: value for key, value in fields.items() if value is not None})
    return context


def log_turn_event(
    message: str,
    session_id: str,
    turn_id: str | None = None,
    stage: str | None = None,
    level: str = "INFO",
    **extra_context: Any,
) -> None:
    """
    Emit a turn lifecycle record bound to its session, turn and stage.

    Example:
        >>> log_turn_event("Pipeline finished", "sess-1", "turn-ab12", duration_ms=840)
    """
    logger.bind(**_context(session_id, turn_id, stage=stage, **extra_context)).log(
        level.upper(), message
    )


def log_stage_transition(
    from_stage: str,
    to_stage: str,
    session_id: str,
    turn_id: str | None = None,
    duration_ms: float | None = None,
) -> None:
    """Record that a stage finished (with its duration) and which stage runs next"""
    logger.bind(
        **_context(
            session_id,
            turn_id,
            stage=from_stage,
            next_stage=to_stage,
            duration_ms=duration_ms,
        )
    ).debug(f"Stage transition: {from_stage} -> {to_stage}")
