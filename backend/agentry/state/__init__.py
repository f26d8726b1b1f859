"""
Agent state slices and the StateManager that owns them
"""

from .command_history import CommandHistoryState
from .slice import ResetScope, StateSlice, parse_scopes
from .state_manager import StateManager, slice_name

__all__ = [
    "CommandHistoryState",
    "ResetScope",
    "StateSlice",
    "StateManager",
    "parse_scopes",
    "slice_name",
]
