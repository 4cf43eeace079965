# ABOUTME: Orchestration layer exports for the turn pipeline, turn lifecycle and session ownership.
# ABOUTME: Provides the LangGraph pipeline builder, TurnOrchestrator, SessionRegistry and ProgressionMonitor.

from keeper.orchestration.exceptions import (
    SessionNotFound,
    SimulatedChainLimitReached,
    TerminalStageFailed,
    TurnAlreadyProcessing,
)
from keeper.orchestration.graph_builder import build_pipeline
from keeper.orchestration.progression_monitor import ProgressionMonitor
from keeper.orchestration.session_registry import SessionRegistry
from keeper.orchestration.turn_orchestrator import TurnOrchestrator

__all__ = [
    "ProgressionMonitor",
    "SessionRegistry",
    "TurnOrchestrator",
    "build_pipeline",
    "SessionNotFound",
    "SimulatedChainLimitReached",
    "TerminalStageFailed",
    "TurnAlreadyProcessing",
]
