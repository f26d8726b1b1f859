"""
Agent event envelopes

An envelope is one immutable, sequence-numbered record on an agent's event
bus. Front ends consume envelopes through Agent.events() and render them by
type.
"""

import copy
import time
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional


class EventType(Enum):
    """Tagged variants carried by an envelope"""
    OUTPUT_CHAT = "output.chat"
    OUTPUT_REASONING = "output.reasoning"
    SYSTEM_MESSAGE = "state.system"
    STATE_BUSY = "state.busy"
    STATE_NOT_BUSY = "state.not_busy"
    STATE_IDLE = "state.idle"
    STATE_ABORTED = "state.aborted"
    STATE_EXIT = "state.exit"
    INPUT_RECEIVED = "input.received"
    HUMAN_REQUEST = "human.request"
    HUMAN_RESPONSE = "human.response"
    RESET = "reset"


class MessageLevel(Enum):
    """Severity of a state.system message"""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class AgentEventEnvelope:
    """
    One event on an agent's bus

    ``data`` is a private deep copy of the payload behind a read-only view,
    so producers and subscribers cannot change what others observe.
    """
    sequence: int
    type: EventType
    data: Mapping[str, Any] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)
    agent_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'data', MappingProxyType(copy.deepcopy(dict(self.data))))

    def to_dict(self) -> Dict[str, Any]:
        """Convert envelope to dictionary for serialization"""
        return {
            'sequence': self.sequence,
            'type': self.type.value,
            'data': copy.deepcopy(dict(self.data)),
            'timestamp': self.timestamp,
            'agent_id': self.agent_id
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AgentEventEnvelope':
        """Create envelope from dictionary"""
        return cls(
            sequence=data['sequence'],
            type=EventType(data['type']),
            data=data.get('data') or {},
            timestamp=data.get('timestamp', time.time()),
            agent_id=data.get('agent_id')
        )
