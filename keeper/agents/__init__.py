# ABOUTME: Agent layer exports: collaborator interfaces, OpenAI-backed collaborators and extraction.
# ABOUTME: Stages depend on the interfaces only; concrete collaborators are injected at graph build time.

from keeper.agents.collaborators import (
    ActionResolver,
    ContextEnricher,
    IntentAnalyzer,
    LocationDecider,
    NarrativeGenerator,
    ReactionAnalyzer,
    ReactionExecutor,
    StageCollaborators,
)
from keeper.agents.exceptions import CollaboratorUnavailable, LLMCallFailed
from keeper.agents.extraction import Ok, ParseError, extract_json_block, parse_structured
from keeper.agents.llm_client import LLMClient
from keeper.agents.llm_collaborators import build_llm_collaborators, summarize_session

__all__ = [
    # Interfaces
    "IntentAnalyzer",
    "ContextEnricher",
    "ActionResolver",
    "ReactionAnalyzer",
    "ReactionExecutor",
    "LocationDecider",
    "NarrativeGenerator",
    "StageCollaborators",
    # Extraction
    "Ok",
    "ParseError",
    "extract_json_block",
    "parse_structured",
    # LLM-backed implementations
    "LLMClient",
    "build_llm_collaborators",
    "summarize_session",
    # Exceptions
    "LLMCallFailed",
    "CollaboratorUnavailable",
]
