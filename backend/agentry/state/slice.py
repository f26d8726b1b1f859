"""
State slice contract

A slice is a named, independently serializable unit of agent state. The
StateManager only relies on the capability interface below and never on a
slice's concrete shape.
"""

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, ClassVar, Iterable, Set


class ResetScope(Enum):
    """Portions of agent state a reset may target"""
    CHAT = "chat"
    MEMORY = "memory"
    SETTINGS = "settings"
    ALL = "all"


def parse_scopes(values: Iterable[Any]) -> Set[ResetScope]:
    """Coerce strings or ResetScope members into a scope set"""
    return {value if isinstance(value, ResetScope) else ResetScope(str(value).lower()) for value in values}


class StateSlice(ABC):
    """
    Base class for agent state slices

    Subclasses declare a unique ``name`` and must be constructible with no
    arguments so that checkpoints and sub-agents can materialize them.
    ``persistent`` slices are copied by value into sub-agents.
    """

    name: ClassVar[str] = ""
    persistent: ClassVar[bool] = False

    @abstractmethod
    def serialize(self) -> Any:
        """Return a JSON-compatible representation of this slice"""
        pass

    @abstractmethod
    def deserialize(self, data: Any) -> None:
        """Replace this slice's contents with a serialized representation"""
        pass

    def reset(self, scopes: Set[ResetScope]) -> None:
        """Clear the fields governed by any of the given scopes"""
        pass

    @staticmethod
    def in_scope(scopes: Set[ResetScope], *targets: ResetScope) -> bool:
        """True if scopes include ALL or any of targets"""
        return ResetScope.ALL in scopes or any(target in scopes for target in targets)

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
