"""
Built-in slice recording the slash commands an agent has run
"""

from typing import Any, List, Optional, Set

from .slice import ResetScope, StateSlice


class CommandHistoryState(StateSlice):
    name = "command_history"
    persistent = True

    def __init__(self, commands: Optional[List[str]] = None, limit: int = 100):
        self.commands: List[str] = list(commands or [])
        self.limit = limit

    def record(self, command: str):
        self.commands.append(command)
        if len(self.commands) > self.limit:
            del self.commands[:len(self.commands) - self.limit]

    def serialize(self) -> Any:
        return {'commands': list(self.commands), 'limit': self.limit}

    def deserialize(self, data: Any) -> None:
        self.commands = list(data.get('commands', []))
        self.limit = data.get('limit', self.limit)

    def reset(self, scopes: Set[ResetScope]) -> None:
        if self.in_scope(scopes, ResetScope.CHAT):
            self.commands = []
