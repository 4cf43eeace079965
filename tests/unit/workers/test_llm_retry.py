# ABOUTME: Unit tests for the LLM retry decorator and RQ queue helpers.
# ABOUTME: Verifies retryable versus non-retryable errors and enqueue parameters with mocked queues.

from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError

from keeper.workers.llm_retry import llm_retry
from keeper.workers.queue_config import (
    FAILURE_TTL,
    RESULT_TTL,
    create_queue_connection,
    enqueue_job,
)


def connection_error() -> APIConnectionError:
    return APIConnectionError(request=httpx.Request("POST", "https://api.openai.com/v1"))


class TestLLMRetry:
    """Test llm_retry decorator"""

    def test_sync_retries_until_success(self):
        calls = []

        @llm_retry(attempts=3, backoff=[0])
        def flaky():
            calls.append(1)
            if len(calls) < 3:
                raise connection_error()
            return "ok"

        assert flaky() == "ok"
        assert len(calls) == 3

    def test_sync_gives_up_after_attempts(self):
        calls = []

        @llm_retry(attempts=2, backoff=[0])
        def always_fails():
            calls.append(1)
            raise connection_error()

        with pytest.raises(APIConnectionError):
            always_fails()
        assert len(calls) == 2

    def test_non_retryable_error_raised_immediately(self):
        calls = []

        @llm_retry(attempts=5, backoff=[0])
        def broken():
            calls.append(1)
            raise KeyError("bad payload")

        with pytest.raises(KeyError):
            broken()
        assert len(calls) == 1

    @pytest.mark.asyncio
    async def test_async_retries_until_success(self):
        calls = []

        @llm_retry(attempts=2, backoff=[0])
        async def flaky():
            calls.append(1)
            if len(calls) == 1:
                raise connection_error()
            return "ok"

        assert await flaky() == "ok"
        assert len(calls) == 2

    def test_preserves_function_name(self):
        @llm_retry(attempts=1, backoff=[0])
        def named_call():
            return None

        assert named_call.__name__ == "named_call"


class TestQueueConfig:
    """Test RQ queue helpers"""

    def test_enqueue_job_passes_ttls(self):
        # Arrange
        queue = MagicMock()
        queue.name = "turns"
        queue.enqueue.return_value = MagicMock(id="job-1")

        # Act
        job = enqueue_job(
            queue,
            "keeper.workers.turn_worker.process_turn_job",
            args=("turn-1",),
            job_timeout=120,
        )

        # Assert
        assert job.id == "job-1"
        queue.enqueue.assert_called_once_with(
            "keeper.workers.turn_worker.process_turn_job",
            args=("turn-1",),
            kwargs={},
            job_timeout=120,
            result_ttl=RESULT_TTL,
            failure_ttl=FAILURE_TTL,
        )

    def test_unreachable_redis_raises_connection_error(self):
        with pytest.raises(ConnectionError):
            create_queue_connection("redis://127.0.0.1:1")
