"""
Checkpoint schema

A checkpoint is a timestamped snapshot of every state slice of an agent.
Storage collaborators persist it as JSON: {timestamp, label?, state}.
"""

import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AgentCheckpointData(BaseModel):
    """Immutable snapshot of an agent's state slices"""
    model_config = ConfigDict(frozen=True)

    timestamp: float = Field(default_factory=time.time, description="Creation time, seconds since epoch")
    label: Optional[str] = Field(default=None, description="Opaque caller-supplied label")
    state: Dict[str, Any] = Field(default_factory=dict, description="Serialized slices keyed by slice name")

    def to_json(self) -> str:
        return self.model_dump_json(exclude_none=True)

    @classmethod
    def from_json(cls, json_str: str) -> 'AgentCheckpointData':
        return cls.model_validate_json(json_str)

    def to_dict(self) -> Dict[str, Any]:
        return self.model_dump(mode='json', exclude_none=True)
