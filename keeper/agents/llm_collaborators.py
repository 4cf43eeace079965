# ABOUTME: OpenAI-backed implementations of the stage collaborator interfaces.
# ABOUTME: Each collaborator renders its prompt from a session summary and returns the raw JSON text.

import json

from loguru import logger
from openai import AsyncOpenAI

from keeper.agents.collaborators import StageCollaborators
from keeper.agents.exceptions import CollaboratorUnavailable
from keeper.agents.llm_client import LLMClient
from keeper.config.prompts import (
    ACTION_RESOLUTION_PROMPT,
    CONTEXT_ENRICHMENT_PROMPT,
    INTENT_ANALYSIS_PROMPT,
    LOCATION_DECISION_PROMPT,
    NARRATIVE_GENERATION_PROMPT,
    REACTION_ANALYSIS_PROMPT,
    REACTION_EXECUTION_PROMPT,
    SYSTEM_PROMPT,
)
from keeper.config.settings import Settings
from keeper.models.session_state import IntentAnalysis, ReactionDecision, SessionState
from keeper.models.stage_io import NarrativeDirectives

JSON_RESPONSE = {"type": "json_object"}


def summarize_session(session: SessionState) -> str:
    """
    Render the parts of a session a collaborator needs as compact text.

    Args:
        session: Session snapshot

    Returns:
        Multi-line summary
    """
    lines = [
        f"Day {session.game_day}, {session.time_of_day}. Phase: {session.phase.value}. "
        f"Tension: {session.tension:.1f}",
    ]

    location = session.current_location
    if location:
        lines.append(f"Location: {location.name} ({location.descriptor or 'no descriptor'})")
        if location.description:
            lines.append(f"  {location.description}")
        if location.events:
            lines.append(f"  Events here: {'; '.join(location.events[-5:])}")
    else:
        lines.append("Location: unknown")

    if session.visited_locations:
        lines.append(
            "Recently visited: " + ", ".join(loc.name for loc in session.visited_locations)
        )

    status = session.protagonist.status
    lines.append(
        f"Protagonist: {session.protagonist.name} (HP {status.hp}/{status.max_hp}, "
        f"SAN {status.sanity}/{status.max_sanity})"
    )
    for participant in session.participants:
        lines.append(f"Present: {participant.name} [{participant.id}]")

    outcomes = session.temporary.action_outcomes
    if outcomes:
        lines.append("Recent outcomes:")
        lines.extend(f"  - {o.participant}: {o.result}" for o in outcomes[-5:])

    if session.discovered_facts:
        lines.append("Known facts:")
        lines.extend(f"  - {fact}" for fact in session.discovered_facts[-10:])

    return "\n".join(lines)


class _LLMCollaborator:
    """Shared plumbing for collaborators that call the chat completion API"""

    temperature = 0.7

    def __init__(self, llm_client: LLMClient, timeout: float = 30.0):
        self.llm_client = llm_client
        self.timeout = timeout

    async def _ask(self, user_prompt: str) -> str:
        return await self.llm_client.call(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=user_prompt,
            temperature=self.temperature,
            response_format=JSON_RESPONSE,
            timeout=self.timeout,
        )


class LLMIntentAnalyzer(_LLMCollaborator):
    temperature = 0.2

    async def analyze(self, raw_input: str, session: SessionState) -> str:
        return await self._ask(
            INTENT_ANALYSIS_PROMPT.format(
                session_summary=summarize_session(session), raw_input=raw_input
            )
        )


class LLMContextEnricher(_LLMCollaborator):
    temperature = 0.2

    async def enrich(self, session: SessionState, intent: IntentAnalysis | None) -> str:
        return await self._ask(
            CONTEXT_ENRICHMENT_PROMPT.format(
                session_summary=summarize_session(session),
                intent=intent.model_dump_json() if intent else "none",
            )
        )


class LLMActionResolver(_LLMCollaborator):
    temperature = 0.5

    async def resolve(
        self, session: SessionState, intent: IntentAnalysis | None, raw_input: str
    ) -> str:
        return await self._ask(
            ACTION_RESOLUTION_PROMPT.format(
                session_summary=summarize_session(session),
                intent=intent.model_dump_json() if intent else "none",
                raw_input=raw_input,
            )
        )


class LLMReactionAnalyzer(_LLMCollaborator):
    temperature = 0.4

    async def analyze(self, session: SessionState, trigger_text: str) -> str:
        return await self._ask(
            REACTION_ANALYSIS_PROMPT.format(
                session_summary=summarize_session(session), trigger_text=trigger_text
            )
        )


class LLMReactionExecutor(_LLMCollaborator):
    async def execute(self, session: SessionState, decisions: list[ReactionDecision]) -> str:
        return await self._ask(
            REACTION_EXECUTION_PROMPT.format(
                session_summary=summarize_session(session),
                decisions=json.dumps([d.model_dump() for d in decisions], indent=2),
            )
        )


class LLMLocationDecider(_LLMCollaborator):
    temperature = 0.3

    async def decide(self, session: SessionState) -> str:
        request = session.temporary.transition_request
        return await self._ask(
            LOCATION_DECISION_PROMPT.format(
                session_summary=summarize_session(session),
                transition_request=request.model_dump_json() if request else "none",
            )
        )


class LLMNarrativeGenerator(_LLMCollaborator):
    temperature = 0.8

    async def generate(self, session: SessionState, directives: NarrativeDirectives) -> str:
        return await self._ask(
            NARRATIVE_GENERATION_PROMPT.format(
                session_summary=summarize_session(session),
                raw_input=directives.raw_input or "(no player input; the world moves on)",
                directives=directives.model_dump_json(indent=2),
            )
        )


def build_llm_collaborators(settings: Settings) -> StageCollaborators:
    """
    Construct the OpenAI-backed collaborator bundle from settings.

    Args:
        settings: Application settings

    Returns:
        StageCollaborators wired to one shared LLMClient

    Raises:
        CollaboratorUnavailable: If no OpenAI API key is configured
    """
    if not settings.openai_api_key:
        raise CollaboratorUnavailable(
            "KEEPER_OPENAI_API_KEY is not set; LLM-backed collaborators are unavailable"
        )

    llm_client = LLMClient(
        AsyncOpenAI(api_key=settings.openai_api_key),
        model=settings.openai_model,
        retry_attempts=settings.llm_retry_attempts,
        retry_backoff=settings.llm_retry_backoff_list,
    )
    timeout = settings.llm_timeout_seconds
    logger.info(f"Built LLM collaborators using model {settings.openai_model}")

    return StageCollaborators(
        intent_analyzer=LLMIntentAnalyzer(llm_client, timeout),
        context_enricher=LLMContextEnricher(llm_client, timeout),
        action_resolver=LLMActionResolver(llm_client, timeout),
        reaction_analyzer=LLMReactionAnalyzer(llm_client, timeout),
        location_decider=LLMLocationDecider(llm_client, timeout),
        narrative_generator=LLMNarrativeGenerator(llm_client, timeout),
        reaction_executor=LLMReactionExecutor(llm_client, timeout),
    )
