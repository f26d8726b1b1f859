"""
Human-interaction requests, responses and their correlator

A request is emitted on the event bus as a human.request envelope and the
asking coroutine suspends on a future keyed by the envelope's sequence. A
front end answers with send_human_response(sequence, payload); the payload
is validated against the response model for the request's kind.
"""

import asyncio
import logging
from typing import Annotated, Any, Dict, List, Literal, Optional, Type, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError, field_validator

from .cancellation import AbortSignal
from .errors import (
    InvalidHumanResponseError,
    OperationAbortedError,
    UnknownInteractionSequenceError,
)
from .event_bus import AgentEventBus
from .events import EventType

logger = logging.getLogger(__name__)


class SelectOption(BaseModel):
    """One choice in a select request"""
    name: str = Field(..., description="Label shown to the human")
    value: str = Field(..., description="Value returned when chosen")


class TreeNode(BaseModel):
    """Node of a tree-select request; leaves carry a value"""
    name: str
    value: Optional[str] = None
    children: List['TreeNode'] = Field(default_factory=list)

    def leaf_values(self) -> List[str]:
        if not self.children:
            return [self.value] if self.value is not None else []
        values: List[str] = []
        for child in self.children:
            values.extend(child.leaf_values())
        return values


TreeNode.model_rebuild()


# Requests

class HumanRequestBase(BaseModel):
    sequence: Optional[int] = Field(default=None, description="Assigned from the event bus when asked")


class ConfirmRequest(HumanRequestBase):
    kind: Literal["confirm"] = "confirm"
    message: str
    default: bool = False


class OpenUrlRequest(HumanRequestBase):
    kind: Literal["open-url"] = "open-url"
    url: str
    title: Optional[str] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        if not v.startswith(('http://', 'https://', 'file://')):
            raise ValueError("URL must use http, https or file scheme")
        return v


class SelectOneRequest(HumanRequestBase):
    kind: Literal["select-one"] = "select-one"
    title: str
    options: List[SelectOption]

    @field_validator('options')
    @classmethod
    def validate_options(cls, v):
        if not v:
            raise ValueError("Select requests need at least one option")
        return v


class SelectManyRequest(HumanRequestBase):
    kind: Literal["select-many"] = "select-many"
    title: str
    options: List[SelectOption]
    min_selections: int = 0
    max_selections: Optional[int] = None

    @field_validator('options')
    @classmethod
    def validate_options(cls, v):
        if not v:
            raise ValueError("Select requests need at least one option")
        return v


class AskTextRequest(HumanRequestBase):
    kind: Literal["ask-text"] = "ask-text"
    question: str
    default: Optional[str] = None


class AskPasswordRequest(HumanRequestBase):
    kind: Literal["ask-password"] = "ask-password"
    message: str


class TreeSelectOneRequest(HumanRequestBase):
    kind: Literal["tree-select-one"] = "tree-select-one"
    title: str
    tree: TreeNode


class TreeSelectManyRequest(HumanRequestBase):
    kind: Literal["tree-select-many"] = "tree-select-many"
    title: str
    tree: TreeNode


HumanInteractionRequest = Annotated[
    Union[
        ConfirmRequest,
        OpenUrlRequest,
        SelectOneRequest,
        SelectManyRequest,
        AskTextRequest,
        AskPasswordRequest,
        TreeSelectOneRequest,
        TreeSelectManyRequest,
    ],
    Field(discriminator='kind'),
]

_request_adapter = TypeAdapter(HumanInteractionRequest)


def parse_human_request(data: Union[Dict[str, Any], BaseModel]) -> HumanRequestBase:
    """Validate a request dict (or model) into its kind-specific model"""
    if isinstance(data, HumanRequestBase):
        return data
    return _request_adapter.validate_python(data)


# Responses

class ConfirmResponse(BaseModel):
    confirmed: bool


class OpenUrlResponse(BaseModel):
    opened: bool


class SelectOneResponse(BaseModel):
    selected: Optional[str] = None


class SelectManyResponse(BaseModel):
    selected: List[str] = Field(default_factory=list)


class AskTextResponse(BaseModel):
    text: Optional[str] = None


class AskPasswordResponse(BaseModel):
    password: Optional[str] = None


RESPONSE_MODELS: Dict[str, Type[BaseModel]] = {
    "confirm": ConfirmResponse,
    "open-url": OpenUrlResponse,
    "select-one": SelectOneResponse,
    "select-many": SelectManyResponse,
    "ask-text": AskTextResponse,
    "ask-password": AskPasswordResponse,
    "tree-select-one": SelectOneResponse,
    "tree-select-many": SelectManyResponse,
}


class _PendingRequest:
    __slots__ = ('request', 'future')

    def __init__(self, request: HumanRequestBase, future: asyncio.Future):
        self.request = request
        self.future = future


class HumanInteractionCorrelator:
    """Matches human responses to outstanding requests by sequence number"""

    def __init__(self, bus: AgentEventBus):
        self.bus = bus
        self._pending: Dict[int, _PendingRequest] = {}

    @property
    def pending_sequences(self) -> List[int]:
        return sorted(self._pending)

    def get_pending_request(self, sequence: int) -> Optional[HumanRequestBase]:
        entry = self._pending.get(sequence)
        return entry.request if entry else None

    async def ask(self, request: Union[HumanRequestBase, Dict[str, Any]],
                  signal: Optional[AbortSignal] = None) -> BaseModel:
        """
        Emit a human.request envelope and wait for the matching response.
        Raises OperationAbortedError if the signal fires first.
        """
        request = parse_human_request(request)
        if signal is not None:
            signal.raise_if_aborted()

        sequence = self.bus.next_sequence
        request = request.model_copy(update={'sequence': sequence})
        future = asyncio.get_running_loop().create_future()
        self.bus.emit(EventType.HUMAN_REQUEST, {
            'sequence': sequence,
            'request': request.model_dump(mode='json')
        })
        self._pending[sequence] = _PendingRequest(request, future)

        remove_listener = signal.add_listener(future.cancel) if signal else None
        try:
            return await future
        except asyncio.CancelledError:
            if signal is not None and signal.aborted:
                raise OperationAbortedError(signal.reason) from None
            raise
        finally:
            if remove_listener:
                remove_listener()
            self._pending.pop(sequence, None)

    def resolve(self, sequence: int, response: Union[BaseModel, Dict[str, Any]]) -> BaseModel:
        """
        Deliver a response to the request with this sequence.
        Raises UnknownInteractionSequenceError or InvalidHumanResponseError;
        in both cases no future is touched.
        """
        entry = self._pending.get(sequence)
        if entry is None or entry.future.done():
            raise UnknownInteractionSequenceError(sequence)

        kind = entry.request.kind
        model = RESPONSE_MODELS[kind]
        try:
            payload = response.model_dump() if isinstance(response, BaseModel) else response
            validated = model.model_validate(payload)
        except ValidationError as e:
            raise InvalidHumanResponseError(sequence, kind, str(e)) from e

        self._check_selection(entry.request, validated, sequence)

        del self._pending[sequence]
        entry.future.set_result(validated)
        self.bus.emit(EventType.HUMAN_RESPONSE, {
            'sequence': sequence,
            'kind': kind,
            'response': validated.model_dump(mode='json')
        })
        return validated

    def reject_all(self, error: BaseException) -> int:
        """Fail every outstanding request with error. Returns how many were pending."""
        pending, self._pending = self._pending, {}
        for entry in pending.values():
            if not entry.future.done():
                entry.future.set_exception(error)
        if pending:
            logger.info(f"Rejected {len(pending)} pending human requests: {error}")
        return len(pending)

    def _check_selection(self, request: HumanRequestBase, response: BaseModel, sequence: int):
        if isinstance(request, (SelectOneRequest, SelectManyRequest)):
            allowed = {option.value for option in request.options}
        elif isinstance(request, (TreeSelectOneRequest, TreeSelectManyRequest)):
            allowed = set(request.tree.leaf_values())
        else:
            return

        selected = response.selected
        chosen = [selected] if isinstance(selected, str) else (selected or [])
        unknown = [value for value in chosen if value not in allowed]
        if unknown:
            raise InvalidHumanResponseError(sequence, request.kind, f"unknown selection {unknown}")

        if isinstance(request, SelectManyRequest):
            if len(chosen) < request.min_selections:
                raise InvalidHumanResponseError(
                    sequence, request.kind, f"at least {request.min_selections} selections required")
            if request.max_selections is not None and len(chosen) > request.max_selections:
                raise InvalidHumanResponseError(
                    sequence, request.kind, f"at most {request.max_selections} selections allowed")
