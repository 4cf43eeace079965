# ABOUTME: Backoff retry decorator for LLM API calls made by stage collaborators and RQ turn workers.
# ABOUTME: Retries transient OpenAI failures on the configured backoff schedule with structured logging.

import inspect
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from openai import APIConnectionError, APIError, APITimeoutError, RateLimitError
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

from keeper.config.settings import get_settings

# Type variable for generic function decoration
F = TypeVar("F", bound=Callable[..., Any])

RETRYABLE_ERRORS = (APIError, APIConnectionError, APITimeoutError, RateLimitError)


def _retrying_decorator(attempts: int, backoff: list[int]) -> Callable[[F], F]:
    # The last backoff interval repeats for any attempt beyond the schedule
    waits = [wait_fixed(seconds) for seconds in backoff] or [wait_fixed(1)]
    return retry(
        stop=stop_after_attempt(attempts),
        wait=wait_chain(*waits),
        retry=retry_if_exception_type(RETRYABLE_ERRORS),
        before_sleep=before_sleep_log(logger, "WARNING"),
        reraise=True,
    )


def llm_retry(
    func: F | None = None,
    *,
    attempts: int | None = None,
    backoff: list[int] | None = None,
) -> Any:
    """
    Retry decorator for LLM API calls with a fixed backoff schedule.

    Defaults come from settings (llm_retry_attempts, llm_retry_backoff_seconds):
    - 5 attempts
    - Wait 2s, 5s, then 10s between attempts
    - Retries on: APIError, APIConnectionError, APITimeoutError, RateLimitError
    - Logs each retry attempt with structured logging

    Usage:
        @llm_retry
        async def call_openai_api(...):
            ...

        @llm_retry(attempts=2, backoff=[0])
        def call_in_tests(...):
            ...

    Args:
        func: Function to wrap (when used without arguments)
        attempts: Override for the number of attempts
        backoff: Override for the backoff schedule in seconds

    Returns:
        Wrapped function with retry behavior
    """

    def decorate(target: F) -> F:
        settings = get_settings()
        retrying = _retrying_decorator(
            attempts if attempts is not None else settings.llm_retry_attempts,
            backoff if backoff is not None else settings.llm_retry_backoff_list,
        )

        @wraps(target)
        async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
            """Async wrapper that applies retry logic."""
            @retrying
            async def _retry_call() -> Any:
                try:
                    return await target(*args, **kwargs)
                except RETRYABLE_ERRORS as e:
                    logger.warning(
                        f"LLM API call failed in {target.__name__}: {type(e).__name__}: {e}"
                    )
                    raise
                except Exception as e:
                    # Non-retryable errors - log and raise immediately
                    logger.error(
                        f"Non-retryable error in {target.__name__}: {type(e).__name__}: {e}"
                    )
                    raise

            return await _retry_call()

        @wraps(target)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            """Sync wrapper that applies retry logic."""
            @retrying
            def _retry_call() -> Any:
                try:
                    return target(*args, **kwargs)
                except RETRYABLE_ERRORS as e:
                    logger.warning(
                        f"LLM API call failed in {target.__name__}: {type(e).__name__}: {e}"
                    )
                    raise
                except Exception as e:
                    logger.error(
                        f"Non-retryable error in {target.__name__}: {type(e).__name__}: {e}"
                    )
                    raise

            return _retry_call()

        if inspect.iscoroutinefunction(target):
            return async_wrapper  # type: ignore
        return sync_wrapper  # type: ignore

    if func is not None:
        return decorate(func)
    return decorate
