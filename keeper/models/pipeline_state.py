# ABOUTME: LangGraph state schema for one pipeline execution and the enumeration of pipeline stages.
# ABOUTME: The live SessionState travels inside the graph state and is mutated through the StateManager.

from enum import Enum
from typing import NotRequired, TypedDict

from keeper.models.session_state import SessionState


class Stage(str, Enum):
    """Pipeline positions in execution order"""
    ENTRY = "entry"
    INTENT_ANALYSIS = "intent_analysis"
    CONTEXT_ENRICHMENT = "context_enrichment"
    ACTION_RESOLUTION = "action_resolution"
    REACTION_ANALYSIS = "reaction_analysis"
    REACTION_EXECUTION = "reaction_execution"
    LOCATION_RESOLUTION = "location_resolution"
    NARRATIVE_GENERATION = "narrative_generation"
    TERMINAL = "terminal"


class PipelineState(TypedDict):
    """Root state for one LangGraph pipeline execution"""

    session: SessionState
    input_text: str
    is_simulated: bool
    turn_id: NotRequired[str | None]

    # Last stage that finished
    current_stage: NotRequired[str]

    # Outcomes produced during this execution (JSON-compatible, for the turn record)
    turn_outcomes: NotRequired[list[dict]]

    # Terminal outputs
    narrative_output: NotRequired[str | None]
    revealed_facts: NotRequired[list[str]]
