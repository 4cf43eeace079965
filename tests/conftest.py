# ABOUTME: Shared pytest fixtures for all test modules (unit, integration, contract).
# ABOUTME: Provides an in-memory Redis, session factories, scripted collaborators and test settings.

import json
from typing import Any
from unittest.mock import AsyncMock

import fakeredis
import pytest

from keeper.agents.collaborators import StageCollaborators
from keeper.config.settings import Settings
from keeper.models.session_state import (
    ActionOutcome,
    IntentAnalysis,
    Location,
    Participant,
    SessionState,
    TimeCost,
)
from keeper.models.stage_io import EnrichedContext, LocationDecision, NarrativeResult
from keeper.orchestration.session_registry import SessionRegistry
from keeper.orchestration.turn_orchestrator import TurnOrchestrator
from keeper.persistence.checkpoint_store import CheckpointStore
from keeper.persistence.turn_store import TurnStore


# --- Helper Functions ---

def make_outcome(
    result: str = "You search the desk and find a torn letter.",
    participant: str = "Investigator",
    participant_id: str = "investigator-1",
    time_cost: TimeCost = TimeCost.SHORT,
    **fields: Any,
) -> ActionOutcome:
    """Helper to build an ActionOutcome with sensible defaults"""
    return ActionOutcome(
        participant=participant,
        participant_id=participant_id,
        result=result,
        time_cost=time_cost,
        **fields,
    )


def make_location(name: str, location_id: str | None = None, **fields: Any) -> Location:
    """Helper to build a Location whose id is derived from its name"""
    slug = name.lower().replace(" ", "-")
    return Location(id=location_id or f"loc-{slug}", name=name, **fields)


def fenced(payload: Any) -> str:
    """Wrap a JSON payload the way a chat model usually returns it"""
    return f"Here you go:\n```json\n{json.dumps(payload)}\n```"


# --- Settings ---

@pytest.fixture
def settings() -> Settings:
    """Settings isolated from the environment and any .env file"""
    return Settings(
        _env_file=None,
        openai_api_key="sk-test",
        max_parse_attempts=2,
        llm_retry_attempts=2,
        llm_retry_backoff_seconds="0",
        turn_stale_after_seconds=300,
        progression_check_interval_seconds=0.01,
    )


# --- Redis and Stores ---

@pytest.fixture
def redis_client():
    """In-memory Redis with decoded responses, like the production store connection"""
    client = fakeredis.FakeRedis(decode_responses=True)
    yield client
    client.flushall()


@pytest.fixture
def turn_store(redis_client) -> TurnStore:
    return TurnStore(redis_client)


@pytest.fixture
def checkpoint_store(redis_client) -> CheckpointStore:
    return CheckpointStore(redis_client, auto_retention=10)


@pytest.fixture
def registry(redis_client) -> SessionRegistry:
    return SessionRegistry(redis_client)


# --- Session Fixtures ---

@pytest.fixture
def study() -> Location:
    """Starting location with a tight short-action cap"""
    return make_location(
        "Professor's Study",
        descriptor="dusty",
        description="Bookshelves line every wall.",
        short_action_cap=3,
    )


@pytest.fixture
def librarian() -> Participant:
    return Participant(id="npc-librarian", name="Miss Abigail", location_id="loc-professor's-study")


@pytest.fixture
def session(study, librarian) -> SessionState:
    """Fresh session standing in the study with one other participant"""
    return SessionState(
        session_id="sess-test",
        current_location=study,
        protagonist=Participant(id="investigator-1", name="Harvey Walters"),
        participants=[librarian],
    )


@pytest.fixture
def stored_session(registry, session) -> SessionState:
    """Session registered as current state"""
    registry.put(session)
    return session


# --- Collaborator Fixtures ---

@pytest.fixture
def collaborators() -> StageCollaborators:
    """
    Scripted collaborators for a quiet "search the room" turn.

    Each is an AsyncMock; tests override return values or side effects per stage.
    """
    intent_analyzer = AsyncMock()
    intent_analyzer.analyze.return_value = IntentAnalysis(
        participant="Harvey Walters",
        action="search the room",
        action_type="exploration",
    )

    context_enricher = AsyncMock()
    context_enricher.enrich.return_value = EnrichedContext(references=["Spot Hidden"])

    action_resolver = AsyncMock()
    action_resolver.resolve.return_value = fenced({
        "outcomes": [{
            "participant": "Harvey Walters",
            "participant_id": "investigator-1",
            "result": "Behind the loose panel lies a journal.",
            "time_cost": "short",
        }]
    })

    reaction_analyzer = AsyncMock()
    reaction_analyzer.analyze.return_value = []

    reaction_executor = AsyncMock()
    reaction_executor.execute.return_value = []

    location_decider = AsyncMock()
    location_decider.decide.return_value = LocationDecision(
        should_transition=False,
        reasoning="Nothing draws the investigator away",
    )

    narrative_generator = AsyncMock()
    narrative_generator.generate.return_value = NarrativeResult(
        narrative_text="Dust swirls as you pry the panel loose, revealing a leather journal.",
        revealed_facts=["The professor kept a hidden journal"],
    )

    return StageCollaborators(
        intent_analyzer=intent_analyzer,
        context_enricher=context_enricher,
        action_resolver=action_resolver,
        reaction_analyzer=reaction_analyzer,
        location_decider=location_decider,
        narrative_generator=narrative_generator,
        reaction_executor=reaction_executor,
    )


# --- Orchestrator Fixture ---

@pytest.fixture
def orchestrator(redis_client, collaborators, settings, registry):
    """Real TurnOrchestrator over the in-memory Redis and scripted collaborators"""
    return TurnOrchestrator(
        redis_client,
        collaborators=collaborators,
        settings=settings,
        registry=registry,
    )
