# ABOUTME: Typed capability interfaces for the external collaborators behind each pipeline stage.
# ABOUTME: Collaborators may return validated models or raw text; stages validate both through extraction.

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from keeper.models.session_state import IntentAnalysis, ReactionDecision, SessionState
from keeper.models.stage_io import NarrativeDirectives


@runtime_checkable
class IntentAnalyzer(Protocol):
    async def analyze(self, raw_input: str, session: SessionState) -> Any:
        """Return an IntentAnalysis (or text containing one)"""
        ...


@runtime_checkable
class ContextEnricher(Protocol):
    async def enrich(self, session: SessionState, intent: IntentAnalysis | None) -> Any:
        """Return an EnrichedContext (or text containing one)"""
        ...


@runtime_checkable
class ActionResolver(Protocol):
    async def resolve(
        self, session: SessionState, intent: IntentAnalysis | None, raw_input: str
    ) -> Any:
        """Return a list of ActionOutcome (or text containing {"outcomes": [...]})"""
        ...


@runtime_checkable
class ReactionAnalyzer(Protocol):
    async def analyze(self, session: SessionState, trigger_text: str) -> Any:
        """Return a list of ReactionDecision (or text containing {"decisions": [...]})"""
        ...


@runtime_checkable
class ReactionExecutor(Protocol):
    async def execute(self, session: SessionState, decisions: list[ReactionDecision]) -> Any:
        """Return a list of ActionOutcome for the responding participants"""
        ...


@runtime_checkable
class LocationDecider(Protocol):
    async def decide(self, session: SessionState) -> Any:
        """Return a LocationDecision (or text containing one)"""
        ...


@runtime_checkable
class NarrativeGenerator(Protocol):
    async def generate(self, session: SessionState, directives: NarrativeDirectives) -> Any:
        """Return a NarrativeResult (or text containing one)"""
        ...


@dataclass
class StageCollaborators:
    """Bundle of collaborators injected into the pipeline's node factories"""

    intent_analyzer: IntentAnalyzer
    context_enricher: ContextEnricher
    action_resolver: ActionResolver
    reaction_analyzer: ReactionAnalyzer
    location_decider: LocationDecider
    narrative_generator: NarrativeGenerator
    reaction_executor: ReactionExecutor | None = None
