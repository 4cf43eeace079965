# ABOUTME: Public interface for pipeline node factories, routing predicates and the transition table.
# ABOUTME: Exports all node factories, helpers and routing from the nodes package.

# Action nodes
from keeper.orchestration.nodes.action_nodes import (
    _create_action_resolution_node,
    _create_reaction_analysis_node,
    _create_reaction_execution_node,
)

# Entry and analysis nodes
from keeper.orchestration.nodes.analysis_nodes import (
    _create_context_enrichment_node,
    _create_entry_node,
    _create_intent_analysis_node,
)

# Routing
from keeper.orchestration.nodes.conditional_edges import (
    CONDITIONAL_BRANCHES,
    STAGE_TRANSITIONS,
    graph_target,
    next_stage,
    route_after_entry,
    route_after_reaction_analysis,
    validate_transition_table,
)

# Helper utilities
from keeper.orchestration.nodes.helpers import (
    _call_collaborator,
    _make_state_manager,
    _record_progress,
)

# Location nodes
from keeper.orchestration.nodes.location_nodes import _create_location_resolution_node

# Narrative nodes
from keeper.orchestration.nodes.narrative_nodes import _create_narrative_generation_node

__all__ = [
    # Helper utilities
    "_call_collaborator",
    "_make_state_manager",
    "_record_progress",
    # Entry and analysis nodes
    "_create_entry_node",
    "_create_intent_analysis_node",
    "_create_context_enrichment_node",
    # Action nodes
    "_create_action_resolution_node",
    "_create_reaction_analysis_node",
    "_create_reaction_execution_node",
    # Location nodes
    "_create_location_resolution_node",
    # Narrative nodes
    "_create_narrative_generation_node",
    # Routing
    "STAGE_TRANSITIONS",
    "CONDITIONAL_BRANCHES",
    "graph_target",
    "next_stage",
    "route_after_entry",
    "route_after_reaction_analysis",
    "validate_transition_table",
]
