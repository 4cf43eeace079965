# ABOUTME: Structured inputs and outputs exchanged between pipeline stages and their collaborators.
# ABOUTME: Covers enriched context, location decisions, narrative directives and batch wrappers.

from typing import Any

from pydantic import BaseModel, Field

from keeper.models.session_state import ActionOutcome, Location, ReactionDecision


class RuleReference(BaseModel):
    """One rule or reference snippet retrieved for the current intent"""

    title: str
    text: str = ""


class EnrichedContext(BaseModel):
    """Scratch data merged into temporary.contextual_data by context enrichment"""

    rules: list[RuleReference] = Field(default_factory=list)
    references: list[str] = Field(default_factory=list)
    notes: dict[str, Any] = Field(default_factory=dict)

    def as_contextual_data(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.notes)
        if self.rules:
            data["rules"] = [rule.model_dump() for rule in self.rules]
        if self.references:
            data["references"] = list(self.references)
        return data


class LocationDecision(BaseModel):
    """Decision on whether the story moves to another location this turn"""

    should_transition: bool = False
    target_location: Location | None = None
    reasoning: str = ""
    narrative_direction: str | None = None


class NarrativeDirectives(BaseModel):
    """Everything the narrative generator must honour for this turn"""

    raw_input: str | None = None
    is_simulated: bool = False
    action_outcomes: list[ActionOutcome] = Field(default_factory=list)
    reaction_decisions: list[ReactionDecision] = Field(default_factory=list)
    just_transitioned: bool = False
    transition_rejection: str | None = None
    narrative_direction: str | None = None
    location_exhausted: bool = False


class RelationshipChange(BaseModel):
    """Shift in how a participant regards the protagonist"""

    participant_id: str
    attitude_change: int
    reason: str | None = None


class NarrativeResult(BaseModel):
    """
    Final narration for the turn and the world changes it commits.

    Events and conditions are recorded on the current location, so a later
    revisit resumes them. `tension_level` replaces the session tension
    (0 to 10); None leaves it unchanged.
    """

    narrative_text: str
    revealed_facts: list[str] = Field(default_factory=list)
    new_events: list[str] = Field(default_factory=list)
    new_conditions: list[str] = Field(default_factory=list)
    tension_level: float | None = None
    relationship_changes: list[RelationshipChange] = Field(default_factory=list)


class ActionOutcomeBatch(BaseModel):
    """Wrapper used when a collaborator returns {"outcomes": [...]}"""

    outcomes: list[ActionOutcome] = Field(default_factory=list)


class ReactionDecisionBatch(BaseModel):
    """Wrapper used when a collaborator returns {"decisions": [...]}"""

    decisions: list[ReactionDecision] = Field(default_factory=list)
