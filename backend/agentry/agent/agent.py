"""
Agent runtime for agentry

An Agent composes a StateManager, an event bus and a human-interaction
correlator. It runs the lifecycle state machine

    CREATED -> INITIALIZING -> IDLE <-> BUSY -> (ABORTED -> IDLE | EXITED)

dispatches input to slash commands or to the chat collaborator, executes
tools, produces checkpoints and spawns sub-agents that inherit persistent
state by value.
"""

import asyncio
import copy
import inspect
import logging
import time
import uuid
from contextvars import ContextVar
from enum import Enum
from typing import (
    TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Sequence,
    Set, Tuple, Type, TypeVar, Union
)

from pydantic import BaseModel, ValidationError

from ..core.cancellation import AbortSignal
from ..core.errors import (
    AgentExitedError,
    AgentStateError,
    AgentryError,
    CommandNotFoundError,
    FatalInitializationError,
    HumanInteractionUnavailableError,
    InvalidHumanResponseError,
    PendingInteractionError,
    ToolExecutionError,
    UnknownInteractionSequenceError,
)
from ..core.event_bus import AgentEventBus, EventCursor
from ..core.events import AgentEventEnvelope, EventType, MessageLevel
from ..core.human_interaction import (
    AskPasswordRequest,
    AskTextRequest,
    ConfirmRequest,
    HumanInteractionCorrelator,
    OpenUrlRequest,
    SelectManyRequest,
    SelectOneRequest,
    SelectOption,
    TreeNode,
    TreeSelectManyRequest,
    TreeSelectOneRequest,
)
from ..state.command_history import CommandHistoryState
from ..state.slice import ResetScope, StateSlice, parse_scopes
from ..state.state_manager import StateManager
from .checkpoint import AgentCheckpointData
from .config import AgentConfig, AgentType

if TYPE_CHECKING:
    from ..team.agent_team import AgentTeam
    from ..team.contracts import Hook, Service

logger = logging.getLogger(__name__)

S = TypeVar('S', bound=StateSlice)
R = TypeVar('R')

OptionLike = Union[str, Tuple[str, str], SelectOption, Dict[str, str]]

# Agent whose input is being handled in the current context. Tasks started
# during dispatch (tool calls) inherit it.
_dispatching: ContextVar[Optional['Agent']] = ContextVar('agentry_dispatching', default=None)


class AgentStatus(Enum):
    """Agent lifecycle status"""
    CREATED = "created"
    INITIALIZING = "initializing"
    IDLE = "idle"
    BUSY = "busy"
    ABORTED = "aborted"
    EXITED = "exited"


class Agent:
    """A long-lived agent bound to the team that created it"""

    def __init__(self, team: 'AgentTeam', config: AgentConfig,
                 parent: Optional['Agent'] = None, agent_id: Optional[str] = None):
        self.id = agent_id or str(uuid.uuid4())
        self.team = team
        self.config = config
        self.parent = parent
        self.status = AgentStatus.CREATED
        self.created_at = time.time()
        self.last_activity = self.created_at

        self.state_manager = StateManager()
        self.bus = AgentEventBus(agent_id=self.id, history_limit=team.settings.event_history_limit)
        self.correlator = HumanInteractionCorrelator(self.bus)

        self._abort_signal: Optional[AbortSignal] = None
        self._dispatch_task: Optional[asyncio.Task] = None
        self._tool_tasks: Set[asyncio.Task] = set()
        self._attached_services: List['Service'] = []
        self._exit_requested = False
        self._exit_task: Optional[asyncio.Task] = None

        self.state_manager.initialize_state(CommandHistoryState)

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def headless(self) -> bool:
        return self.config.type == AgentType.BACKGROUND

    @property
    def abort_signal(self) -> Optional[AbortSignal]:
        """Signal of the input currently being handled, if any"""
        return self._abort_signal

    # State

    def initialize_state(self, slice_type: Type[S], initial_props: Optional[Dict[str, Any]] = None) -> S:
        return self.state_manager.initialize_state(slice_type, initial_props)

    def get_state(self, slice_type: Type[S]) -> S:
        return self.state_manager.get_state(slice_type)

    def mutate_state(self, slice_type: Type[S], fn: Callable[[S], R]) -> R:
        return self.state_manager.mutate_state(slice_type, fn)

    def subscribe_state(self, slice_type: Type[S], fn: Callable[[S], None]) -> Callable[[], None]:
        return self.state_manager.subscribe(slice_type, fn)

    async def wait_for_state(self, slice_type: Type[S], predicate: Callable[[S], bool],
                             signal: Optional[AbortSignal] = None) -> S:
        return await self.state_manager.wait_for_state(slice_type, predicate, signal)

    async def timed_wait_for_state(self, slice_type: Type[S], predicate: Callable[[S], bool],
                                   timeout: float, signal: Optional[AbortSignal] = None) -> S:
        return await self.state_manager.timed_wait_for_state(slice_type, predicate, timeout, signal)

    def subscribe_state_async(self, slice_type: Type[S], signal: Optional[AbortSignal] = None) -> AsyncIterator[S]:
        return self.state_manager.subscribe_async(slice_type, signal)

    def reset(self, scopes: Iterable[Union[ResetScope, str]]):
        """Reset every slice for the given scopes and tell subscribers"""
        scope_set = parse_scopes(scopes)
        self.state_manager.reset(scope_set)
        self.bus.emit(EventType.RESET, {
            'source': 'reset',
            'scopes': sorted(scope.value for scope in scope_set)
        })

    # Events

    def events(self, signal: Optional[AbortSignal] = None) -> EventCursor:
        """Subscribe to envelopes appended from now on"""
        return self.bus.events(signal)

    def chat_output(self, content: str) -> AgentEventEnvelope:
        return self.bus.emit(EventType.OUTPUT_CHAT, {'content': content})

    def reasoning_output(self, content: str) -> AgentEventEnvelope:
        return self.bus.emit(EventType.OUTPUT_REASONING, {'content': content})

    def system_message(self, message: str, level: MessageLevel = MessageLevel.INFO,
                       data: Optional[Dict[str, Any]] = None) -> AgentEventEnvelope:
        payload = {'message': message, 'level': level.value}
        if data:
            payload.update(data)
        return self.bus.emit(EventType.SYSTEM_MESSAGE, payload)

    def info_message(self, message: str) -> AgentEventEnvelope:
        return self.system_message(message, MessageLevel.INFO)

    def warning_message(self, message: str) -> AgentEventEnvelope:
        return self.system_message(message, MessageLevel.WARNING)

    def error_message(self, message: str, data: Optional[Dict[str, Any]] = None) -> AgentEventEnvelope:
        return self.system_message(message, MessageLevel.ERROR, data)

    # These only announce activity to observers; the lifecycle status is
    # owned by handle_input.
    def set_busy(self, message: str = "Working...") -> AgentEventEnvelope:
        return self.bus.emit(EventType.STATE_BUSY, {'message': message})

    def set_not_busy(self) -> AgentEventEnvelope:
        return self.bus.emit(EventType.STATE_NOT_BUSY)

    def set_idle(self) -> AgentEventEnvelope:
        return self.bus.emit(EventType.STATE_IDLE)

    # Lifecycle

    async def initialize(self):
        """
        Attach team services, inherit persistent parent state and run the
        configured initial commands. Any failure is fatal to this agent.
        """
        if self.status != AgentStatus.CREATED:
            raise AgentStateError(f"Agent {self.id} is already {self.status.value}")

        self.status = AgentStatus.INITIALIZING
        logger.info(f"Initializing agent {self.id} ({self.config.name})")
        try:
            for service in self.team.services.all():
                await service.attach(self)
                self._attached_services.append(service)

            if self.parent is not None:
                self._inherit_state(self.parent)

            self._abort_signal = AbortSignal()
            for command in self.config.initial_commands:
                await self._run_command(command if command.startswith('/') else f"/{command}")
        except Exception as e:
            logger.error(f"Agent {self.id} failed to initialize: {e}")
            self.status = AgentStatus.EXITED
            await self._detach_services()
            self.bus.close()
            raise FatalInitializationError(self.config.name, e) from e
        finally:
            self._abort_signal = None

        self.status = AgentStatus.IDLE
        self.bus.emit(EventType.STATE_IDLE)
        logger.info(f"Agent {self.id} ready")
        if self._exit_requested:
            # an initial command asked to exit
            self.request_exit()

    async def handle_input(self, message: str):
        """
        Handle one input. Errors are reported as system messages and the agent
        returns to IDLE; abort() ends the input early.
        """
        if self.status == AgentStatus.EXITED:
            raise AgentExitedError(f"Agent {self.id} has exited")
        if self.status != AgentStatus.IDLE:
            raise AgentStateError(f"Agent {self.id} cannot accept input while {self.status.value}")

        self.last_activity = time.time()
        self.bus.emit(EventType.INPUT_RECEIVED, {'message': message})
        self.status = AgentStatus.BUSY
        self.bus.emit(EventType.STATE_BUSY, {'message': "Processing input"})

        signal = self._abort_signal = AbortSignal()
        task = self._dispatch_task = asyncio.create_task(self._dispatch(message, signal))
        try:
            await asyncio.wait({task})
        except asyncio.CancelledError:
            self.abort("Input handling was cancelled")
            await asyncio.wait({task})
            self._finish_dispatch(task, signal)
            raise

        self._finish_dispatch(task, signal)
        if self._exit_requested and self.status != AgentStatus.EXITED:
            await self.team.delete_agent(self)

    def abort(self, reason: Optional[str] = None) -> bool:
        """Abort the input in flight. Returns False if the agent is not busy."""
        if self.status != AgentStatus.BUSY or self._abort_signal is None:
            return False

        logger.info(f"Aborting agent {self.id}: {reason or 'user request'}")
        self._abort_signal.abort(reason or "Aborted by user")
        if self._dispatch_task is not None and not self._dispatch_task.done():
            self._dispatch_task.cancel()
        return True

    def request_exit(self):
        """Exit once the input in flight completes (or right away when idle)"""
        self._exit_requested = True
        if self.status != AgentStatus.IDLE or self._exit_task is not None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(f"Agent {self.id} exit requested outside an event loop; deferred to next input")
            return
        self._exit_task = loop.create_task(self.team.delete_agent(self))
        self._exit_task.add_done_callback(self._on_exit_done)

    def _on_exit_done(self, task: asyncio.Task):
        self._exit_task = None
        if task.cancelled():
            logger.warning(f"Exit of agent {self.id} was cancelled")
            return
        error = task.exception()
        if error is not None:
            logger.error(f"Agent {self.id} failed to exit: {error}", exc_info=error)

    async def shutdown(self, reason: Optional[str] = None):
        """Move to EXITED: stop work, reject human requests, detach services"""
        if self.status == AgentStatus.EXITED:
            return
        if self.in_dispatch():
            self.request_exit()
            return

        self.status = AgentStatus.EXITED
        task = self._dispatch_task
        try:
            if task is not None and not task.done():
                if self._abort_signal is not None:
                    self._abort_signal.abort(reason or "Agent exiting")
                task.cancel()
                await asyncio.wait({task})
        finally:
            self._unwind_tools()
            self.correlator.reject_all(AgentExitedError(f"Agent {self.id} exited"))
            self.bus.emit(EventType.STATE_EXIT, {'reason': reason})
            await self._detach_services()
            self.bus.close()
            logger.info(f"Agent {self.id} exited")

    def in_dispatch(self) -> bool:
        """True when called from this agent's input handling, including the tool tasks it started"""
        task = self._dispatch_task
        if task is None or task.done():
            return False
        return _dispatching.get() is self

    # Dispatch

    async def _dispatch(self, message: str, signal: AbortSignal):
        # runs in its own task context, so the value never leaks to the caller
        _dispatching.set(self)
        hooks = self._active_hooks()
        for hook in hooks:
            await hook.before_input(self, message)

        if message.startswith('/'):
            await self._run_command(message)
        else:
            await self._run_chat(message, signal)

        for hook in hooks:
            await hook.after_input(self, message)

    async def _run_command(self, text: str):
        name, _, args = text[1:].strip().partition(' ')
        command = self.team.commands.get(name)
        if command is None:
            raise CommandNotFoundError(name)

        self.mutate_state(CommandHistoryState, lambda history: history.record(text.strip()))
        result = command.execute(args.strip(), self)
        if inspect.isawaitable(result):
            await result

    async def _run_chat(self, message: str, signal: AbortSignal):
        handler = self.config.work_handler or self.team.chat_handler
        if handler is None:
            raise AgentryError(f"No chat handler is configured for agent type '{self.config.name}'")
        result = handler(self, message, signal)
        if inspect.isawaitable(result):
            await result

    def _finish_dispatch(self, task: asyncio.Task, signal: AbortSignal):
        self._dispatch_task = None
        self._abort_signal = None
        if self.status == AgentStatus.EXITED:
            return

        if task.cancelled() or signal.aborted:
            if not task.cancelled() and task.exception() is not None:
                logger.debug(f"Agent {self.id} input ended after abort: {task.exception()}")
            self.status = AgentStatus.ABORTED
            self.bus.emit(EventType.STATE_ABORTED, {'reason': signal.reason})
            self._unwind_tools()
        else:
            error = task.exception()
            if error is not None:
                self._report_dispatch_error(error)

        self.status = AgentStatus.IDLE
        self.bus.emit(EventType.STATE_IDLE)

    def _report_dispatch_error(self, error: BaseException):
        logger.error(f"Agent {self.id} failed handling input: {error}", exc_info=error)
        if isinstance(error, AgentryError):
            data = error.to_dict()
        else:
            data = {'error': type(error).__name__, 'message': str(error)}
        self.error_message(str(error), data)

    def _active_hooks(self) -> List['Hook']:
        hooks = self.team.hooks.all()
        enabled = self.config.enabled_hooks
        if enabled is None:
            return hooks
        return [hook for hook in hooks if hook.name in enabled]

    # Tools

    async def execute_tool(self, name: str, input: Any = None) -> Any:
        """Run a registered tool as a tracked task; failures raise ToolExecutionError"""
        tool = self.team.tools.get(name)
        if tool is None:
            raise ToolExecutionError(name, "tool is not registered")
        try:
            validated = tool.validate_input(input)
        except ValidationError as e:
            raise ToolExecutionError(name, f"invalid input: {e}") from e

        task = asyncio.create_task(self._call_tool(tool, validated))
        self._tool_tasks.add(task)
        task.add_done_callback(self._tool_tasks.discard)
        try:
            return await task
        except (asyncio.CancelledError, ToolExecutionError):
            raise
        except Exception as e:
            raise ToolExecutionError(name, str(e)) from e

    async def _call_tool(self, tool, input: Any) -> Any:
        logger.debug(f"Agent {self.id} executing tool {tool.name}")
        result = tool.execute(input, self)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _unwind_tools(self):
        for task in list(self._tool_tasks):
            if not task.done():
                task.cancel()

    # Human interaction

    async def ask_human(self, request: Union[BaseModel, Dict[str, Any]],
                        signal: Optional[AbortSignal] = None) -> BaseModel:
        """Emit a human.request and wait for its response"""
        if self.headless:
            raise HumanInteractionUnavailableError(
                f"Agent type '{self.config.name}' runs in the background and cannot ask a human")
        if self.status == AgentStatus.EXITED:
            raise AgentExitedError(f"Agent {self.id} has exited")
        return await self.correlator.ask(request, signal or self._abort_signal)

    def send_human_response(self, sequence: int, response: Union[BaseModel, Dict[str, Any]]) -> bool:
        """Deliver a human response. Unknown or invalid responses are reported, not raised."""
        try:
            self.correlator.resolve(sequence, response)
            return True
        except (UnknownInteractionSequenceError, InvalidHumanResponseError) as e:
            logger.warning(f"Agent {self.id} ignored human response: {e}")
            if not self.bus.closed:
                self.warning_message(str(e))
            return False

    async def ask_for_confirmation(self, message: str, default: bool = False) -> bool:
        response = await self.ask_human(ConfirmRequest(message=message, default=default))
        return response.confirmed

    async def ask_for_text(self, question: str, default: Optional[str] = None) -> Optional[str]:
        response = await self.ask_human(AskTextRequest(question=question, default=default))
        return response.text

    async def ask_for_password(self, message: str) -> Optional[str]:
        response = await self.ask_human(AskPasswordRequest(message=message))
        return response.password

    async def ask_for_selection(self, title: str, options: Sequence[OptionLike]) -> Optional[str]:
        response = await self.ask_human(SelectOneRequest(title=title, options=_to_options(options)))
        return response.selected

    async def ask_for_multiple_selections(self, title: str, options: Sequence[OptionLike],
                                          min_selections: int = 0,
                                          max_selections: Optional[int] = None) -> List[str]:
        response = await self.ask_human(SelectManyRequest(
            title=title,
            options=_to_options(options),
            min_selections=min_selections,
            max_selections=max_selections
        ))
        return response.selected

    async def ask_for_tree_selection(self, title: str, tree: Union[TreeNode, Dict[str, Any]],
                                     multiple: bool = False) -> Union[Optional[str], List[str]]:
        request_type = TreeSelectManyRequest if multiple else TreeSelectOneRequest
        response = await self.ask_human(request_type(title=title, tree=tree))
        return response.selected

    async def open_url(self, url: str, title: Optional[str] = None) -> bool:
        response = await self.ask_human(OpenUrlRequest(url=url, title=title))
        return response.opened

    # Checkpoints

    def generate_checkpoint(self, label: Optional[str] = None) -> AgentCheckpointData:
        """Snapshot every slice. Refused while human requests are outstanding."""
        pending = self.correlator.pending_sequences
        if pending:
            raise PendingInteractionError(pending)
        return AgentCheckpointData(
            label=label,
            state=copy.deepcopy(self.state_manager.serialize())
        )

    def restore_checkpoint(self, data: Union[AgentCheckpointData, Dict[str, Any], str]) -> List[str]:
        """
        Restore slices from a checkpoint. Slice names this agent does not
        know are reported as warnings and returned.
        """
        if self.status == AgentStatus.EXITED:
            raise AgentExitedError(f"Agent {self.id} has exited")
        if isinstance(data, str):
            data = AgentCheckpointData.from_json(data)
        elif not isinstance(data, AgentCheckpointData):
            data = AgentCheckpointData.model_validate(data)

        missing: List[str] = []

        def on_missing(name: str):
            missing.append(name)
            logger.warning(f"Agent {self.id} has no state slice '{name}'; skipped during restore")
            self.warning_message(f"Checkpoint contains unknown state slice '{name}', skipping")

        self.state_manager.deserialize(copy.deepcopy(data.state), on_missing)
        self.bus.emit(EventType.RESET, {
            'source': 'checkpoint',
            'label': data.label,
            'timestamp': data.timestamp,
            'missing': missing
        })
        return missing

    # Sub-agents

    async def create_sub_agent(self, agent_type: str) -> 'Agent':
        """Create an agent of agent_type that inherits this agent's persistent slices"""
        return await self.team.create_agent(agent_type, parent=self)

    def _inherit_state(self, parent: 'Agent'):
        for state in parent.state_manager.slices():
            if not state.persistent:
                continue
            data = copy.deepcopy(state.serialize())
            if not self.state_manager.has_state(state.name):
                self.state_manager.initialize_state(type(state))
            self.state_manager.deserialize({state.name: data})

    async def _detach_services(self):
        services, self._attached_services = self._attached_services, []
        for service in reversed(services):
            try:
                await service.detach(self)
            except Exception as e:
                logger.error(f"Service {service.name} failed to detach from agent {self.id}: {e}")

    def get_status(self) -> Dict[str, Any]:
        """Get agent status and metadata"""
        return {
            'agent_id': self.id,
            'type': self.config.name,
            'display_name': self.config.display_name,
            'status': self.status.value,
            'parent_id': self.parent.id if self.parent else None,
            'created_at': self.created_at,
            'last_activity': self.last_activity,
            'slices': self.state_manager.slice_names(),
            'pending_human_requests': self.correlator.pending_sequences
        }

    def __repr__(self) -> str:
        return f"<Agent {self.id} type={self.config.name!r} status={self.status.value}>"


def _to_options(options: Sequence[OptionLike]) -> List[SelectOption]:
    result = []
    for option in options:
        if isinstance(option, SelectOption):
            result.append(option)
        elif isinstance(option, str):
            result.append(SelectOption(name=option, value=option))
        elif isinstance(option, dict):
            result.append(SelectOption.model_validate(option))
        else:
            name, value = option
            result.append(SelectOption(name=name, value=value))
    return result
