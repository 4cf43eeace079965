# ABOUTME: LangGraph pipeline builder compiling the stage transition table into a StateGraph.
# ABOUTME: Node factories capture collaborators and stores via closures; routing comes only from the table.

import time

from langgraph.graph import StateGraph
from loguru import logger

from keeper.agents.collaborators import StageCollaborators
from keeper.config.settings import Settings, get_settings
from keeper.models.pipeline_state import PipelineState, Stage
from keeper.orchestration.nodes import (
    CONDITIONAL_BRANCHES,
    STAGE_TRANSITIONS,
    _create_action_resolution_node,
    _create_context_enrichment_node,
    _create_entry_node,
    _create_intent_analysis_node,
    _create_location_resolution_node,
    _create_narrative_generation_node,
    _create_reaction_analysis_node,
    _create_reaction_execution_node,
    graph_target,
    next_stage,
    validate_transition_table,
)
from keeper.orchestration.session_registry import SessionRegistry
from keeper.persistence.checkpoint_store import CheckpointStore
from keeper.persistence.turn_store import TurnStore
from keeper.utils.logging import log_stage_transition


def _traced(stage: Stage, node):
    """Wrap a node so each run logs its duration and the stage it hands over to"""

    async def traced_node(state: PipelineState) -> dict:
        started = time.perf_counter()
        update = await node(state)
        log_stage_transition(
            stage.value,
            next_stage(stage, state).value,
            state["session"].session_id,
            state.get("turn_id"),
            duration_ms=round((time.perf_counter() - started) * 1000, 1),
        )
        return update

    traced_node.__name__ = node.__name__
    return traced_node


def build_pipeline(
    collaborators: StageCollaborators,
    turn_store: TurnStore | None = None,
    checkpoint_store: CheckpointStore | None = None,
    settings: Settings | None = None,
    session_registry: SessionRegistry | None = None,
):
    """
    Build the compiled turn pipeline.

    Args:
        collaborators: External collaborators backing each stage
        turn_store: Optional store receiving progressive turn fields
        checkpoint_store: Optional store used by location resolution
        settings: Application settings (default: get_settings())
        session_registry: Optional registry receiving the resulting session state

    Returns:
        Compiled LangGraph application; run with `await app.ainvoke(state)`

    Note:
        Dependency injection pattern keeps nodes free of global state.
        No LangGraph checkpointer is attached: every execution starts from the
        session state handed in and runs to the terminal stage without interrupts.
    """
    settings = settings or get_settings()
    stage_order = validate_transition_table()
    logger.info(f"Building turn pipeline: {' -> '.join(stage.value for stage in stage_order)}")

    nodes = {
        Stage.ENTRY: _create_entry_node(turn_store, settings),
        Stage.INTENT_ANALYSIS: _create_intent_analysis_node(
            collaborators.intent_analyzer, turn_store, settings
        ),
        Stage.CONTEXT_ENRICHMENT: _create_context_enrichment_node(
            collaborators.context_enricher, settings
        ),
        Stage.ACTION_RESOLUTION: _create_action_resolution_node(
            collaborators.action_resolver, turn_store, settings
        ),
        Stage.REACTION_ANALYSIS: _create_reaction_analysis_node(
            collaborators.reaction_analyzer, settings
        ),
        Stage.REACTION_EXECUTION: _create_reaction_execution_node(
            collaborators.reaction_executor, turn_store, settings
        ),
        Stage.LOCATION_RESOLUTION: _create_location_resolution_node(
            collaborators.location_decider, checkpoint_store, turn_store, settings
        ),
        Stage.NARRATIVE_GENERATION: _create_narrative_generation_node(
            collaborators.narrative_generator, turn_store, settings, session_registry
        ),
    }

    workflow = StateGraph(PipelineState)
    for stage, node in nodes.items():
        workflow.add_node(stage.value, _traced(stage, node))

    workflow.set_entry_point(Stage.ENTRY.value)

    # Unconditional edges
    for source, target in STAGE_TRANSITIONS.items():
        workflow.add_edge(source.value, graph_target(target))

    # Conditional edges
    for source, (predicate, routes) in CONDITIONAL_BRANCHES.items():
        workflow.add_conditional_edges(
            source.value,
            predicate,
            {route: graph_target(target) for route, target in routes.items()},
        )

    app = workflow.compile()
    logger.info("Turn pipeline built successfully")
    return app
