"""
agentry - runtime for long-lived agents

Agents consume input, dispatch it through a command/tool registry, stream
events to any number of observers, correlate human-interaction requests
with their responses and snapshot their state as restorable checkpoints.
"""

from .agent import Agent, AgentCheckpointData, AgentConfig, AgentStatus, AgentType
from .builtins import builtin_package
from .core import (
    AbortSignal,
    AgentEventBus,
    AgentEventEnvelope,
    EventType,
    MessageLevel,
    Settings,
    configure_logging,
    get_settings,
)
from .state import CommandHistoryState, ResetScope, StateManager, StateSlice
from .team import AgentPackage, AgentTeam, Command, Hook, Service, Tool

__version__ = "0.1.0"

__all__ = [
    "Agent",
    "AgentCheckpointData",
    "AgentConfig",
    "AgentStatus",
    "AgentType",
    "AbortSignal",
    "AgentEventBus",
    "AgentEventEnvelope",
    "EventType",
    "MessageLevel",
    "Settings",
    "configure_logging",
    "get_settings",
    "CommandHistoryState",
    "ResetScope",
    "StateManager",
    "StateSlice",
    "AgentPackage",
    "AgentTeam",
    "Command",
    "Hook",
    "Service",
    "Tool",
    "builtin_package",
]
