# ABOUTME: Thin AsyncOpenAI chat-completion wrapper used by every LLM-backed collaborator.
# ABOUTME: Transient provider errors are retried on the configured backoff schedule before surfacing.

from typing import Any

from openai import AsyncOpenAI

from keeper.agents.exceptions import LLMCallFailed
from keeper.workers.llm_retry import llm_retry


class LLMClient:
    """
    One chat-completion call per collaborator request.

    Retries are applied per call, so a collaborator that re-asks after
    malformed output gets a fresh retry budget each time.
    """

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str = "gpt-4o",
        retry_attempts: int | None = None,
        retry_backoff: list[int] | None = None,
    ):
        """
        Args:
            client: AsyncOpenAI instance (shared by all collaborators)
            model: Chat model name
            retry_attempts: Attempts per call; None defers to settings
            retry_backoff: Seconds between attempts; None defers to settings
        """
        self.client = client
        self.model = model
        self.retry_attempts = retry_attempts
        self.retry_backoff = retry_backoff

    async def call(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: float = 0.7,
        response_format: dict[str, str] | None = None,
        timeout: float = 30.0,
    ) -> str:
        """
        Send the Keeper system prompt plus one stage prompt and return the reply text.

        Raises:
            LLMCallFailed: If the request still fails after the retry budget,
                or fails with a non-transient error
        """
        request: dict[str, Any] = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "timeout": timeout,
        }
        if response_format:
            request["response_format"] = response_format

        @llm_retry(attempts=self.retry_attempts, backoff=self.retry_backoff)
        async def complete() -> Any:
            return await self.client.chat.completions.create(**request)

        try:
            completion = await complete()
        except Exception as e:
            raise LLMCallFailed(f"{self.model} completion failed: {e}") from e

        # Content is None for refusals and tool-only replies
        return completion.choices[0].message.content or ""
