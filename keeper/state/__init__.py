# ABOUTME: Session state management exports.
# ABOUTME: StateManager is the only component that mutates a SessionState.

from keeper.state.manager import StateManager

__all__ = ["StateManager"]
