# ABOUTME: Pydantic models for the mutable per-session narrative state and its ephemeral turn data.
# ABOUTME: Defines participants, locations, action outcomes, intents and transition requests.

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field

ERROR_TAG = "[ERROR]"


class NarrativePhase(str, Enum):
    """Coarse pacing phase of the story"""
    INTRO = "intro"
    INVESTIGATION = "investigation"
    CONFRONTATION = "confrontation"
    DOWNTIME = "downtime"


class TimeCost(str, Enum):
    """How much of a location's action budget an outcome consumes"""
    INSTANT = "instant"
    SHORT = "short"
    SCENE = "scene"


class ParticipantStatus(BaseModel):
    """Vitals and conditions of a participant"""

    hp: int = 10
    max_hp: int = 10
    sanity: int = 60
    max_sanity: int = 99
    luck: int = 50
    mp: int | None = 10
    conditions: list[str] = Field(default_factory=list)


class Relationship(BaseModel):
    """How one participant regards another"""

    target_id: str
    target_name: str
    relationship_type: str = "acquaintance"
    attitude: int = Field(default=0, ge=-100, le=100)
    description: str | None = None


class KnowledgeItem(BaseModel):
    """Something a participant knows and may reveal"""

    id: str
    text: str
    category: Literal["knowledge", "observation", "rumor", "secret"] = "knowledge"
    revealed: bool = False


class Participant(BaseModel):
    """Protagonist or non-protagonist character taking part in the session"""

    id: str
    name: str
    attributes: dict[str, int] = Field(default_factory=dict)
    status: ParticipantStatus = Field(default_factory=ParticipantStatus)
    skills: dict[str, int] = Field(default_factory=dict)
    inventory: list[str] = Field(default_factory=list)
    relationships: list[Relationship] = Field(default_factory=list)
    knowledge: list[KnowledgeItem] = Field(default_factory=list)
    location_id: str | None = None
    notes: str | None = None


class Location(BaseModel):
    """A narrative location snapshot, including what has happened there"""

    id: str
    name: str
    descriptor: str | None = None
    description: str = ""
    short_action_cap: int | None = Field(
        default=None,
        description="Short actions allowed before the location is exhausted"
    )
    participant_ids: list[str] = Field(default_factory=list)
    conditions: list[str] = Field(default_factory=list)
    events: list[str] = Field(default_factory=list)


class ActionOutcome(BaseModel):
    """Result of one resolved action by the protagonist or a participant"""

    participant: str
    participant_id: str | None = None
    result: str
    timestamp: datetime = Field(default_factory=datetime.now)
    game_time: str | None = None
    location: str | None = None
    time_elapsed_minutes: int = Field(default=0, ge=0)
    time_cost: TimeCost = TimeCost.INSTANT
    dice_rolls: list[str] = Field(default_factory=list)
    location_changes: list[str] = Field(default_factory=list)
    requested_location: str | None = None

    model_config = {"use_enum_values": False}

    @property
    def is_failure_marker(self) -> bool:
        """True when this outcome records a stage failure instead of a real action"""
        return self.result.startswith(ERROR_TAG)


class IntentAnalysis(BaseModel):
    """Structured reading of what the player is trying to do"""

    participant: str
    action: str
    action_type: str = "exploration"
    target_name: str | None = None
    target_intent: str | None = None
    requires_dice: bool = False


class LocationTransitionRequest(BaseModel):
    """A pending request to move the story to another location"""

    target_location_name: str
    target_location_id: str | None = None
    reason: str = ""
    requested_at: datetime = Field(default_factory=datetime.now)


class ReactionDecision(BaseModel):
    """Whether a non-protagonist participant responds this turn"""

    participant_id: str
    participant_name: str
    will_respond: bool = False
    response_type: str = "none"
    urgency: Literal["low", "medium", "high"] = "low"
    reasoning: str = ""

    @property
    def is_responding(self) -> bool:
        return self.will_respond and self.response_type != "none"


class LocationTime(BaseModel):
    """Per-location action counters, reset on every location change"""

    participant_actions: dict[str, int] = Field(default_factory=dict)


class TemporaryInfo(BaseModel):
    """Ephemeral data owned by the current turn"""

    action_outcomes: list[ActionOutcome] = Field(default_factory=list)
    intent_analysis: IntentAnalysis | None = None
    transition_request: LocationTransitionRequest | None = None
    just_transitioned: bool = False
    transition_rejection: str | None = None
    reaction_decisions: list[ReactionDecision] = Field(default_factory=list)
    narrative_direction: str | None = None
    contextual_data: dict[str, Any] = Field(default_factory=dict)


class SessionState(BaseModel):
    """Canonical mutable record of one player's ongoing session"""

    session_id: str
    phase: NarrativePhase = NarrativePhase.INTRO
    game_day: int = 1
    time_of_day: str = "Evening"
    tension: float = Field(default=1.0, ge=0.0)

    current_location: Location | None = None
    visited_locations: list[Location] = Field(default_factory=list)
    location_time: LocationTime = Field(default_factory=LocationTime)

    protagonist: Participant = Field(
        default_factory=lambda: Participant(id="investigator-1", name="Investigator")
    )
    participants: list[Participant] = Field(default_factory=list)

    discovered_facts: list[str] = Field(default_factory=list)
    open_threads: list[str] = Field(default_factory=list)

    temporary: TemporaryInfo = Field(default_factory=TemporaryInfo)

    def find_participant(self, participant_id: str) -> Participant | None:
        """Look up the protagonist or a participant by id"""
        if self.protagonist.id == participant_id:
            return self.protagonist
        for participant in self.participants:
            if participant.id == participant_id:
                return participant
        return None

    def snapshot(self) -> "SessionState":
        """Deep copy handed to external collaborators so they cannot mutate live state"""
        return self.model_copy(deep=True)
