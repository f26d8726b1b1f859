"""
Agent-type configuration

An AgentConfig describes one kind of agent a team can create: how it is
presented, which model parameters it carries, which commands run when it
starts, and how unprefixed input is handled.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional, Union

if TYPE_CHECKING:
    from ..core.cancellation import AbortSignal
    from ..core.config import Settings
    from .agent import Agent

WorkHandler = Callable[['Agent', str, 'AbortSignal'], Union[None, Awaitable[None]]]


class AgentType(Enum):
    """Whether a human can be asked questions by the agent"""
    INTERACTIVE = "interactive"
    BACKGROUND = "background"


@dataclass
class AgentConfig:
    """Configuration for one agent type"""
    name: str
    display_name: str = ""
    description: str = ""
    visual: Dict[str, Any] = field(default_factory=dict)  # color, icon, ...
    ai_config: Dict[str, Any] = field(default_factory=dict)  # model, temperature, ...
    initial_commands: List[str] = field(default_factory=list)
    persistent: bool = False
    storage_path: Optional[str] = None
    type: AgentType = AgentType.INTERACTIVE
    work_handler: Optional[WorkHandler] = None
    enabled_hooks: Optional[List[str]] = None  # None enables every team hook

    def __post_init__(self):
        if not self.name:
            raise ValueError("Agent config requires a name")
        if not self.display_name:
            self.display_name = self.name
        if isinstance(self.type, str):
            self.type = AgentType(self.type)

    @property
    def interactive(self) -> bool:
        return self.type == AgentType.INTERACTIVE

    def resolve_storage_path(self, settings: 'Settings') -> Path:
        """Directory where this agent type's checkpoints are kept by storage collaborators"""
        path = Path(self.storage_path) if self.storage_path else Path(self.name)
        if path.is_absolute():
            return path
        return settings.storage_path / path

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary, omitting the work handler"""
        return {
            'name': self.name,
            'display_name': self.display_name,
            'description': self.description,
            'visual': self.visual,
            'ai_config': self.ai_config,
            'initial_commands': self.initial_commands,
            'persistent': self.persistent,
            'storage_path': self.storage_path,
            'type': self.type.value,
            'has_work_handler': self.work_handler is not None,
            'enabled_hooks': self.enabled_hooks
        }
