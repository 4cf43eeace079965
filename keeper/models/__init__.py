"""Data models for the Keeper turn orchestration core"""

from .checkpoint import Checkpoint, CheckpointSummary, CheckpointType
from .pipeline_state import PipelineState, Stage
from .session_state import (
    ERROR_TAG,
    ActionOutcome,
    IntentAnalysis,
    KnowledgeItem,
    Location,
    LocationTime,
    LocationTransitionRequest,
    NarrativePhase,
    Participant,
    ParticipantStatus,
    ReactionDecision,
    Relationship,
    SessionState,
    TemporaryInfo,
    TimeCost,
)
from .stage_io import (
    ActionOutcomeBatch,
    EnrichedContext,
    LocationDecision,
    NarrativeDirectives,
    NarrativeResult,
    ReactionDecisionBatch,
    RelationshipChange,
    RuleReference,
)
from .turn import TERMINAL_STATUSES, Turn, TurnStatus

__all__ = [
    # Session state models
    "ERROR_TAG",
    "NarrativePhase",
    "TimeCost",
    "ParticipantStatus",
    "Relationship",
    "KnowledgeItem",
    "Participant",
    "Location",
    "LocationTime",
    "ActionOutcome",
    "IntentAnalysis",
    "LocationTransitionRequest",
    "ReactionDecision",
    "TemporaryInfo",
    "SessionState",
    # Stage I/O models
    "RuleReference",
    "EnrichedContext",
    "LocationDecision",
    "NarrativeDirectives",
    "NarrativeResult",
    "RelationshipChange",
    "ActionOutcomeBatch",
    "ReactionDecisionBatch",
    # Turn models
    "Turn",
    "TurnStatus",
    "TERMINAL_STATUSES",
    # Checkpoint models
    "Checkpoint",
    "CheckpointSummary",
    "CheckpointType",
    # Pipeline models
    "PipelineState",
    "Stage",
]
