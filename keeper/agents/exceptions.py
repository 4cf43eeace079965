# ABOUTME: Exception definitions for stage collaborator failures.
# ABOUTME: Defines error types raised by LLMClient and the LLM-backed collaborators.


class LLMCallFailed(Exception):
    """Raised when OpenAI API call fails after retries"""
    pass


class CollaboratorUnavailable(Exception):
    """Raised when a collaborator cannot be constructed (e.g. no API key configured)"""
    pass
