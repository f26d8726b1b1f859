"""
Agent packages: the unit plugins use to contribute to a team
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, List, Optional

from ..agent.config import AgentConfig, WorkHandler
from .contracts import Command, Hook, Service, Tool

if TYPE_CHECKING:
    from .agent_team import AgentTeam


@dataclass
class AgentPackage:
    """Bundle of tools, commands, hooks, services and agent types"""
    name: str
    version: str = "0.1.0"
    description: str = ""
    tools: List[Tool] = field(default_factory=list)
    commands: List[Command] = field(default_factory=list)
    hooks: List[Hook] = field(default_factory=list)
    services: List[Service] = field(default_factory=list)
    agent_configs: List[AgentConfig] = field(default_factory=list)
    chat_handler: Optional[WorkHandler] = None
    install: Optional[Callable[['AgentTeam'], None]] = None  # extra setup run after registration
