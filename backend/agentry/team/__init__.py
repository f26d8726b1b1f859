"""
Agent team: registries, packages and the agent factory
"""

from .agent_team import AgentTeam
from .contracts import Command, Hook, Service, Tool
from .package import AgentPackage
from .registry import Registry

__all__ = [
    "AgentTeam",
    "AgentPackage",
    "Command",
    "Hook",
    "Registry",
    "Service",
    "Tool",
]
