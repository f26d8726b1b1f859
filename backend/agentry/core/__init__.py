"""
Core runtime primitives: errors, cancellation, events, event bus,
human-interaction correlation and settings
"""

from .cancellation import AbortSignal
from .config import Settings, configure_logging, get_settings, reset_settings
from .errors import (
    AgentConfigNotFoundError,
    AgentExitedError,
    AgentStateError,
    AgentryError,
    CommandNotFoundError,
    DuplicateRegistrationError,
    DuplicateSliceError,
    FatalInitializationError,
    HumanInteractionUnavailableError,
    InvalidHumanResponseError,
    OperationAbortedError,
    PendingInteractionError,
    SliceNotInitializedError,
    StateRestoreError,
    StateWaitTimeoutError,
    ToolExecutionError,
    UnknownInteractionSequenceError,
)
from .event_bus import AgentEventBus, EventCursor
from .events import AgentEventEnvelope, EventType, MessageLevel
from .human_interaction import (
    AskPasswordRequest,
    AskPasswordResponse,
    AskTextRequest,
    AskTextResponse,
    ConfirmRequest,
    ConfirmResponse,
    HumanInteractionCorrelator,
    OpenUrlRequest,
    OpenUrlResponse,
    SelectManyRequest,
    SelectManyResponse,
    SelectOneRequest,
    SelectOneResponse,
    SelectOption,
    TreeNode,
    TreeSelectManyRequest,
    TreeSelectOneRequest,
    parse_human_request,
)

__all__ = [
    "AbortSignal",
    "Settings",
    "configure_logging",
    "get_settings",
    "reset_settings",
    "AgentryError",
    "AgentConfigNotFoundError",
    "AgentExitedError",
    "AgentStateError",
    "CommandNotFoundError",
    "DuplicateRegistrationError",
    "DuplicateSliceError",
    "FatalInitializationError",
    "HumanInteractionUnavailableError",
    "InvalidHumanResponseError",
    "OperationAbortedError",
    "PendingInteractionError",
    "SliceNotInitializedError",
    "StateRestoreError",
    "StateWaitTimeoutError",
    "ToolExecutionError",
    "UnknownInteractionSequenceError",
    "AgentEventBus",
    "EventCursor",
    "AgentEventEnvelope",
    "EventType",
    "MessageLevel",
    "HumanInteractionCorrelator",
    "parse_human_request",
    "ConfirmRequest",
    "ConfirmResponse",
    "OpenUrlRequest",
    "OpenUrlResponse",
    "SelectOneRequest",
    "SelectOneResponse",
    "SelectManyRequest",
    "SelectManyResponse",
    "AskTextRequest",
    "AskTextResponse",
    "AskPasswordRequest",
    "AskPasswordResponse",
    "TreeSelectOneRequest",
    "TreeSelectManyRequest",
    "SelectOption",
    "TreeNode",
]
