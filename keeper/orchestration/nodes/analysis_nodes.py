# ABOUTME: Entry, intent-analysis and context-enrichment node factories for the turn pipeline.
# ABOUTME: Entry scopes ephemeral clearing to player turns; analysis stages degrade instead of aborting.

from loguru import logger

from keeper.agents.collaborators import ContextEnricher, IntentAnalyzer
from keeper.agents.extraction import Ok
from keeper.config.settings import Settings
from keeper.models.pipeline_state import PipelineState, Stage
from keeper.models.session_state import IntentAnalysis
from keeper.models.stage_io import EnrichedContext
from keeper.orchestration.nodes.helpers import (
    _call_collaborator,
    _location_context,
    _make_state_manager,
    _record_progress,
)
from keeper.persistence.turn_store import TurnStore


def _create_entry_node(turn_store: TurnStore | None, settings: Settings):
    """
    Factory for entry_node with injected dependencies.

    Args:
        turn_store: Optional store for the turn's progressive fields
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def entry_node(state: PipelineState) -> dict:
        """
        Prepare the session for a new execution.

        Player turns clear the previous turn's ephemeral data; simulated turns
        keep it so the follow-up pass can still see it.
        """
        session = state["session"]
        logger.info(
            f"[STAGE: ENTRY] Session {session.session_id} "
            f"({'simulated' if state['is_simulated'] else 'player'} turn)"
        )

        if not state["is_simulated"]:
            _make_state_manager(session, settings).clear_ephemeral_turn_state()

        _record_progress(
            turn_store,
            state.get("turn_id"),
            participant_id=session.protagonist.id,
            participant_name=session.protagonist.name,
            **_location_context(session),
        )
        return {"current_stage": Stage.ENTRY.value, "turn_outcomes": []}

    return entry_node


def _create_intent_analysis_node(
    analyzer: IntentAnalyzer,
    turn_store: TurnStore | None,
    settings: Settings,
):
    """
    Factory for intent_analysis_node with injected dependencies.

    Args:
        analyzer: Intent-analysis collaborator
        turn_store: Optional store for the turn's progressive fields
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def intent_analysis_node(state: PipelineState) -> dict:
        """Analyse the player's input; falls back to the raw text as the intent"""
        session = state["session"]
        raw_input = state["input_text"]
        logger.info(f"[STAGE: INTENT_ANALYSIS] Session {session.session_id}")

        fallback = IntentAnalysis(
            participant=session.protagonist.name,
            action=raw_input,
            action_type="unknown",
        )
        try:
            result = await _call_collaborator(
                lambda: analyzer.analyze(raw_input, session.snapshot()),
                IntentAnalysis,
                settings.max_parse_attempts,
                Stage.INTENT_ANALYSIS.value,
            )
            if isinstance(result, Ok):
                intent = result.value
            else:
                logger.warning("Intent analysis output unusable; using raw input as intent")
                intent = fallback
        except Exception as e:
            logger.warning(f"Intent analysis collaborator failed: {e}. Using raw input as intent")
            intent = fallback

        _make_state_manager(session, settings).set_intent_analysis(intent)
        _record_progress(
            turn_store, state.get("turn_id"), intent_analysis=intent.model_dump(mode="json")
        )
        return {"current_stage": Stage.INTENT_ANALYSIS.value}

    return intent_analysis_node


def _create_context_enrichment_node(enricher: ContextEnricher, settings: Settings):
    """
    Factory for context_enrichment_node with injected dependencies.

    Args:
        enricher: Context-enrichment collaborator
        settings: Application settings

    Returns:
        Node function with captured dependencies
    """

    async def context_enrichment_node(state: PipelineState) -> dict:
        """Merge rules and references for the current intent into scratch data"""
        session = state["session"]
        logger.info(f"[STAGE: CONTEXT_ENRICHMENT] Session {session.session_id}")

        intent = session.temporary.intent_analysis
        try:
            result = await _call_collaborator(
                lambda: enricher.enrich(session.snapshot(), intent),
                EnrichedContext,
                settings.max_parse_attempts,
                Stage.CONTEXT_ENRICHMENT.value,
            )
        except Exception as e:
            logger.warning(f"Context enrichment collaborator failed: {e}. Continuing without it")
            return {"current_stage": Stage.CONTEXT_ENRICHMENT.value}

        if isinstance(result, Ok):
            _make_state_manager(session, settings).merge_contextual_data(
                result.value.as_contextual_data()
            )
        else:
            logger.warning("Context enrichment output unusable; continuing with empty context")

        return {"current_stage": Stage.CONTEXT_ENRICHMENT.value}

    return context_enrichment_node
