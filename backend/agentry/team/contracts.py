"""
Interfaces plugins implement to extend an agent team: tools, commands,
hooks and services
"""

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel

if TYPE_CHECKING:
    from ..agent.agent import Agent
    from ..core.cancellation import AbortSignal


class Tool(ABC):
    """
    Base class for agent tools

    ``input_schema`` is either a pydantic model class, in which case input is
    validated into an instance of it, or a JSON schema dict passed through
    untouched.
    """

    name: str = ""
    description: str = ""
    input_schema: Union[Type[BaseModel], Dict[str, Any], None] = None

    @abstractmethod
    async def execute(self, input: Any, agent: 'Agent') -> Any:
        """Execute the tool with validated input"""
        pass

    def validate_input(self, input: Any) -> Any:
        schema = self.input_schema
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            if isinstance(input, schema):
                return input
            return schema.model_validate(input or {})
        return input

    def to_function_schema(self) -> Dict[str, Any]:
        """Convert tool to function calling format"""
        schema = self.input_schema
        if isinstance(schema, type) and issubclass(schema, BaseModel):
            parameters = schema.model_json_schema()
        else:
            parameters = schema or {"type": "object", "properties": {}}
        return {
            "name": self.name,
            "description": self.description,
            "parameters": parameters
        }


class Command(ABC):
    """Slash command; ``execute`` may be a plain or a coroutine function"""

    name: str = ""
    description: str = ""

    @abstractmethod
    def execute(self, args: str, agent: 'Agent') -> Any:
        pass

    def help(self) -> List[str]:
        return [f"/{self.name} - {self.description}"]


class Hook:
    """Callbacks run around every input an agent handles"""

    name: str = ""
    description: str = ""

    async def before_input(self, agent: 'Agent', message: str):
        pass

    async def after_input(self, agent: 'Agent', message: str):
        pass


class Service:
    """
    Team-wide collaborator shared by every agent

    attach/detach run for each agent as it starts and exits; run runs once
    per team startup until the signal fires.
    """

    name: str = ""
    description: str = ""

    async def attach(self, agent: 'Agent'):
        pass

    async def detach(self, agent: 'Agent'):
        pass

    async def run(self, signal: 'AbortSignal') -> Optional[Any]:
        return None
