# ABOUTME: Exception definitions for persistence layer errors.
# ABOUTME: Defines error types raised by TurnStore and CheckpointStore.


class TurnNotFound(Exception):
    """Raised when a turn id has no stored record"""
    pass


class InvalidTurnTransition(Exception):
    """Raised when completing a turn that is not processing"""
    pass


class CheckpointNotFound(Exception):
    """Raised when a checkpoint id has no stored record"""
    pass
