"""
Agent runtime: lifecycle, dispatch, human interaction and checkpoints
"""

from .agent import Agent, AgentStatus
from .checkpoint import AgentCheckpointData
from .config import AgentConfig, AgentType

__all__ = [
    "Agent",
    "AgentStatus",
    "AgentCheckpointData",
    "AgentConfig",
    "AgentType",
]
