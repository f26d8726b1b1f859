"""
Error taxonomy for the agentry runtime

Every framework error derives from AgentryError. Errors raised during input
dispatch are converted into system events by the Agent; errors raised during
initialization propagate to the creator of the Agent.
"""

from typing import Any, Dict, Optional


class AgentryError(Exception):
    """Base class for all agentry errors"""

    def __init__(self, message: str, data: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.data = data or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to dictionary for event payloads"""
        result = {
            'error': self.__class__.__name__,
            'message': self.message
        }
        if self.data:
            result['data'] = self.data
        return result


# State manager errors

class DuplicateSliceError(AgentryError):
    """A slice with the same name is already initialized"""

    def __init__(self, slice_name: str):
        super().__init__(f"State slice '{slice_name}' is already initialized", {'slice_name': slice_name})
        self.slice_name = slice_name


class SliceNotInitializedError(AgentryError):
    """The requested slice was never initialized"""

    def __init__(self, slice_name: str):
        super().__init__(f"State slice '{slice_name}' is not initialized", {'slice_name': slice_name})
        self.slice_name = slice_name


class StateWaitTimeoutError(AgentryError, TimeoutError):
    """A timed wait_for_state call was not satisfied in time"""

    def __init__(self, slice_name: str, timeout: float):
        super().__init__(
            f"Timed out after {timeout} seconds waiting for state slice '{slice_name}'",
            {'slice_name': slice_name, 'timeout': timeout}
        )
        self.slice_name = slice_name
        self.timeout = timeout


class StateRestoreError(AgentryError):
    """Serialized data could not be loaded into a slice; no slice was changed"""

    def __init__(self, slice_name: str, cause: BaseException):
        super().__init__(f"Could not restore state slice '{slice_name}': {cause!r}", {'slice_name': slice_name})
        self.slice_name = slice_name
        self.cause = cause


class OperationAbortedError(AgentryError):
    """A suspending operation was ended by its abort signal"""

    def __init__(self, reason: Optional[str] = None):
        super().__init__(f"Operation aborted: {reason or 'no reason given'}", {'reason': reason})
        self.reason = reason


# Dispatch errors

class CommandNotFoundError(AgentryError):
    """Slash command is not registered with the team"""

    def __init__(self, command_name: str):
        super().__init__(f"Unknown command: /{command_name}", {'command_name': command_name})
        self.command_name = command_name


class ToolExecutionError(AgentryError):
    """A tool could not be resolved, validated or executed"""

    def __init__(self, tool_name: str, message: str):
        super().__init__(f"Tool '{tool_name}' failed: {message}", {'tool_name': tool_name})
        self.tool_name = tool_name


# Human interaction errors

class UnknownInteractionSequenceError(AgentryError):
    """No outstanding human request has this sequence"""

    def __init__(self, sequence: int):
        super().__init__(f"No pending human request with sequence {sequence}", {'sequence': sequence})
        self.sequence = sequence


class InvalidHumanResponseError(AgentryError):
    """Response payload does not match the kind of the pending request"""

    def __init__(self, sequence: int, kind: str, detail: str):
        super().__init__(
            f"Invalid response for '{kind}' request {sequence}: {detail}",
            {'sequence': sequence, 'kind': kind}
        )
        self.sequence = sequence
        self.kind = kind


class HumanInteractionUnavailableError(AgentryError):
    """Background agents cannot ask a human"""


class PendingInteractionError(AgentryError):
    """A checkpoint was requested while human requests are outstanding"""

    def __init__(self, sequences):
        sequences = sorted(sequences)
        super().__init__(
            f"Cannot checkpoint while human requests are pending: {sequences}",
            {'sequences': sequences}
        )
        self.sequences = sequences


# Lifecycle errors

class FatalInitializationError(AgentryError):
    """Agent initialization failed; the agent never became usable"""

    def __init__(self, agent_type: str, cause: BaseException):
        super().__init__(f"Agent '{agent_type}' failed to initialize: {cause}", {'agent_type': agent_type})
        self.agent_type = agent_type
        self.cause = cause


class AgentStateError(AgentryError):
    """Operation is not valid in the agent's current lifecycle state"""


class AgentExitedError(AgentStateError):
    """The agent has exited"""


# Team errors

class AgentConfigNotFoundError(AgentryError):
    """No agent-type configuration registered under this name"""

    def __init__(self, agent_type: str):
        super().__init__(f"Unknown agent type: {agent_type}", {'agent_type': agent_type})
        self.agent_type = agent_type


class DuplicateRegistrationError(AgentryError):
    """Registry key already present and the registry rejects duplicates"""

    def __init__(self, registry: str, key: str):
        super().__init__(f"{registry} '{key}' is already registered", {'registry': registry, 'key': key})
        self.registry = registry
        self.key = key
