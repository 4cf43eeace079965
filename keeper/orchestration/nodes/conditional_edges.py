# ABOUTME: Explicit stage transition table and the routing predicates derived from it.
# ABOUTME: The pipeline graph is compiled from this table, so routing is testable without stage content.

from collections.abc import Callable
from typing import Literal

from langgraph.graph import END

from keeper.models.pipeline_state import PipelineState, Stage

# ============================================================================
# Transition Table
# ============================================================================

# Unconditional edges: stage -> next stage
STAGE_TRANSITIONS: dict[Stage, Stage] = {
    Stage.INTENT_ANALYSIS: Stage.CONTEXT_ENRICHMENT,
    Stage.CONTEXT_ENRICHMENT: Stage.ACTION_RESOLUTION,
    Stage.ACTION_RESOLUTION: Stage.REACTION_ANALYSIS,
    Stage.REACTION_EXECUTION: Stage.LOCATION_RESOLUTION,
    Stage.LOCATION_RESOLUTION: Stage.NARRATIVE_GENERATION,
    Stage.NARRATIVE_GENERATION: Stage.TERMINAL,
}


# ============================================================================
# Conditional Edge Predicates
# ============================================================================


def route_after_entry(state: PipelineState) -> Literal["simulated", "player"]:
    """
    Simulated turns have no player intent to analyse.

    Args:
        state: Current pipeline state

    Returns:
        Route key: "simulated" or "player"
    """
    return "simulated" if state["is_simulated"] else "player"


def route_after_reaction_analysis(state: PipelineState) -> Literal["respond", "skip"]:
    """
    Enter reaction execution only if at least one participant responds.

    Args:
        state: Current pipeline state

    Returns:
        Route key: "respond" or "skip"
    """
    decisions = state["session"].temporary.reaction_decisions
    if any(decision.is_responding for decision in decisions):
        return "respond"
    return "skip"


# Conditional edges: stage -> (predicate, route key -> next stage)
CONDITIONAL_BRANCHES: dict[Stage, tuple[Callable[[PipelineState], str], dict[str, Stage]]] = {
    Stage.ENTRY: (
        route_after_entry,
        {"player": Stage.INTENT_ANALYSIS, "simulated": Stage.REACTION_ANALYSIS},
    ),
    Stage.REACTION_ANALYSIS: (
        route_after_reaction_analysis,
        {"respond": Stage.REACTION_EXECUTION, "skip": Stage.LOCATION_RESOLUTION},
    ),
}


def next_stage(stage: Stage, state: PipelineState) -> Stage:
    """
    Resolve the stage that follows `stage` for the given state.

    Raises:
        ValueError: If `stage` has no outgoing edge (i.e. it is terminal)
    """
    if stage in CONDITIONAL_BRANCHES:
        predicate, routes = CONDITIONAL_BRANCHES[stage]
        return routes[predicate(state)]
    if stage in STAGE_TRANSITIONS:
        return STAGE_TRANSITIONS[stage]
    raise ValueError(f"Stage {stage.value} has no outgoing transition")


def validate_transition_table() -> list[Stage]:
    """
    Check that the table forms a DAG reaching the terminal stage from entry.

    Returns:
        Stages in a topological order starting at entry

    Raises:
        ValueError: If a stage is revisited on some path, a stage is both
            conditional and unconditional, or a path does not end at terminal
    """
    overlap = set(STAGE_TRANSITIONS) & set(CONDITIONAL_BRANCHES)
    if overlap:
        raise ValueError(f"Stages with both edge kinds: {sorted(s.value for s in overlap)}")

    def successors(stage: Stage) -> list[Stage]:
        if stage in CONDITIONAL_BRANCHES:
            return list(CONDITIONAL_BRANCHES[stage][1].values())
        if stage in STAGE_TRANSITIONS:
            return [STAGE_TRANSITIONS[stage]]
        return []

    order: list[Stage] = []
    visiting: set[Stage] = set()
    done: set[Stage] = set()

    def visit(stage: Stage) -> None:
        if stage in done:
            return
        if stage in visiting:
            raise ValueError(f"Cycle through stage {stage.value}")
        visiting.add(stage)
        following = successors(stage)
        if not following and stage != Stage.TERMINAL:
            raise ValueError(f"Stage {stage.value} is a dead end")
        for successor in following:
            visit(successor)
        visiting.discard(stage)
        done.add(stage)
        order.append(stage)

    visit(Stage.ENTRY)
    order.reverse()
    return order


def graph_target(stage: Stage) -> str:
    """LangGraph node name for a stage (terminal maps to END)"""
    return END if stage == Stage.TERMINAL else stage.value
