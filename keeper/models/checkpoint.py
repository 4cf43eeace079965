# ABOUTME: Checkpoint models for full Session State snapshots tagged by location and type.
# ABOUTME: Includes the denormalized summary row used for listing without deserializing state.

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from keeper.models.session_state import SessionState


class CheckpointType(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    TRANSITION = "transition"


class CheckpointSummary(BaseModel):
    """Denormalized listing row for a checkpoint"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    checkpoint_id: str
    session_id: str
    checkpoint_name: str
    checkpoint_type: CheckpointType
    description: str | None = None
    game_day: int
    game_time: str
    location_name: str | None = None
    location_descriptor: str | None = None
    protagonist_hp: int | None = None
    protagonist_sanity: int | None = None
    created_at: datetime = Field(default_factory=datetime.now)


class Checkpoint(CheckpointSummary):
    """Full checkpoint: summary row plus the serialized Session State"""

    serialized_state: str

    @property
    def state(self) -> SessionState:
        """Deserialize the embedded Session State"""
        return SessionState.model_validate_json(self.serialized_state)

    def summary(self) -> CheckpointSummary:
        return CheckpointSummary.model_validate(
            self.model_dump(exclude={"serialized_state"})
        )
