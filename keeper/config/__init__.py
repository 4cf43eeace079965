"""Configuration module for the Keeper turn orchestration core"""

from .prompts import (
    ACTION_RESOLUTION_PROMPT,
    CONTEXT_ENRICHMENT_PROMPT,
    INTENT_ANALYSIS_PROMPT,
    LOCATION_DECISION_PROMPT,
    NARRATIVE_GENERATION_PROMPT,
    REACTION_ANALYSIS_PROMPT,
    REACTION_EXECUTION_PROMPT,
    SYSTEM_PROMPT,
)
from .settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
    "SYSTEM_PROMPT",
    "INTENT_ANALYSIS_PROMPT",
    "CONTEXT_ENRICHMENT_PROMPT",
    "ACTION_RESOLUTION_PROMPT",
    "REACTION_ANALYSIS_PROMPT",
    "REACTION_EXECUTION_PROMPT",
    "LOCATION_DECISION_PROMPT",
    "NARRATIVE_GENERATION_PROMPT",
]
