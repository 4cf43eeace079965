# ABOUTME: Exception definitions for orchestration layer errors.
# ABOUTME: Defines error types raised by TurnOrchestrator, SessionRegistry and ProgressionMonitor.


class SessionNotFound(Exception):
    """Raised when a turn is requested for a session that does not exist"""

    pass


class TurnAlreadyProcessing(Exception):
    """Raised when a session already has a processing turn"""

    pass


class SimulatedChainLimitReached(Exception):
    """Raised when too many internally generated turns were chained without player input"""

    pass


class TerminalStageFailed(Exception):
    """Raised when the narrative generation stage fails and the turn must abort"""

    pass
