# ABOUTME: Durable Turn record model tracking one pipeline execution from start to terminal state.
# ABOUTME: Persisted as camelCase JSON; exposes the public turn view returned by the Turn API.

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class TurnStatus(str, Enum):
    """Lifecycle status of a turn"""
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({TurnStatus.COMPLETED, TurnStatus.ERROR})


class Turn(BaseModel):
    """
    One record per pipeline execution.

    Progressive fields stay None until the stage that owns them writes them.
    Structured fields (intent, outcomes, decision, facts) are stored as plain
    JSON-compatible values so the record stays readable without the models.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    turn_id: str
    session_id: str
    turn_number: int = Field(ge=1)
    input_text: str
    is_simulated: bool = False

    participant_id: str | None = None
    participant_name: str | None = None

    intent_analysis: dict[str, Any] | None = None
    action_outcomes: list[dict[str, Any]] | None = None
    location_decision: dict[str, Any] | None = None
    narrative_output: str | None = None
    revealed_facts: list[str] | None = None

    location_id: str | None = None
    location_name: str | None = None
    descriptor: str | None = None

    status: TurnStatus = TurnStatus.PROCESSING
    error_message: str | None = None
    started_at: datetime = Field(default_factory=datetime.now)
    completed_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_view(self) -> dict[str, Any]:
        """Public turn view returned by get_turn"""
        return {
            "turnId": self.turn_id,
            "turnNumber": self.turn_number,
            "inputText": self.input_text,
            "narrativeOutput": self.narrative_output,
            "status": self.status.value,
            "errorMessage": self.error_message,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "locationId": self.location_id,
            "locationName": self.location_name,
        }
