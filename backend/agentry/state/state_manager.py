"""
State Manager for agentry agents

Owns a keyed collection of state slices. Slices are looked up by their
declared name, mutated only through mutate_state, and observed through
synchronous subscriptions, one-shot waits, or async snapshot streams.
"""

import asyncio
import logging
from collections import defaultdict
from typing import (
    Any, AsyncIterator, Callable, Dict, Iterable, List, Optional, Set, Type, TypeVar, Union
)

from ..core.cancellation import AbortSignal
from ..core.errors import (
    DuplicateSliceError,
    OperationAbortedError,
    SliceNotInitializedError,
    StateRestoreError,
    StateWaitTimeoutError,
)
from .slice import ResetScope, StateSlice

logger = logging.getLogger(__name__)

S = TypeVar('S', bound=StateSlice)
R = TypeVar('R')

SliceKey = Union[Type[StateSlice], str]


def slice_name(slice_type: SliceKey) -> str:
    """Resolve a slice class or name to its registry key"""
    if isinstance(slice_type, str):
        return slice_type
    name = getattr(slice_type, 'name', '')
    if not name:
        raise ValueError(f"State slice {slice_type!r} does not declare a name")
    return name


class StateManager:
    """Keyed container of an agent's state slices"""

    def __init__(self):
        self._slices: Dict[str, StateSlice] = {}
        self._subscribers: Dict[str, List[Callable[[StateSlice], None]]] = defaultdict(list)

    def initialize_state(self, slice_type: Type[S], initial_props: Optional[Dict[str, Any]] = None) -> S:
        """Construct a slice from initial_props and store it under its declared name"""
        name = slice_name(slice_type)
        if name in self._slices:
            raise DuplicateSliceError(name)

        state = slice_type(**(initial_props or {}))
        self._slices[name] = state
        logger.debug(f"Initialized state slice '{name}'")
        return state

    def has_state(self, slice_type: SliceKey) -> bool:
        return slice_name(slice_type) in self._slices

    def get_state(self, slice_type: Type[S]) -> S:
        """Return the live slice; do not hold it across turns"""
        name = slice_name(slice_type)
        try:
            return self._slices[name]  # type: ignore[return-value]
        except KeyError:
            raise SliceNotInitializedError(name) from None

    def mutate_state(self, slice_type: Type[S], fn: Callable[[S], R]) -> R:
        """Apply fn to the live slice, then notify that slice's subscribers"""
        state = self.get_state(slice_type)
        result = fn(state)
        self._notify(slice_name(slice_type), state)
        return result

    def slice_names(self) -> List[str]:
        return list(self._slices)

    def slices(self) -> List[StateSlice]:
        return list(self._slices.values())

    def serialize(self, names: Optional[Iterable[str]] = None) -> Dict[str, Any]:
        """Serialize every slice (or only the named ones)"""
        selected = self._slices if names is None else {n: self._slices[n] for n in names if n in self._slices}
        return {name: state.serialize() for name, state in selected.items()}

    def deserialize(self, data: Dict[str, Any], on_missing: Optional[Callable[[str], None]] = None):
        """
        Restore slices from serialized data. Entries without a matching slice
        are reported through on_missing and otherwise skipped.

        Every entry is loaded into a fresh slice before any live slice is
        replaced, so a failure raises StateRestoreError and leaves the
        manager untouched.
        """
        staged: Dict[str, StateSlice] = {}
        missing: List[str] = []
        for name, serialized in data.items():
            current = self._slices.get(name)
            if current is None:
                missing.append(name)
                continue
            try:
                fresh = type(current)()
                fresh.deserialize(serialized)
            except Exception as e:
                raise StateRestoreError(name, e) from e
            staged[name] = fresh

        for name in missing:
            if on_missing is not None:
                on_missing(name)
            else:
                logger.warning(f"No state slice named '{name}' to restore into")

        self._slices.update(staged)
        for name, state in staged.items():
            self._notify(name, state)

    def reset(self, scopes: Set[ResetScope]):
        """Let every slice reset the fields governed by scopes"""
        for name, state in self._slices.items():
            state.reset(scopes)
            if scopes:
                self._notify(name, state)

    def subscribe(self, slice_type: SliceKey, fn: Callable[[StateSlice], None]) -> Callable[[], None]:
        """
        Call fn synchronously after every mutation of the slice.
        Returns a function that removes the subscription.
        """
        name = slice_name(slice_type)
        self._subscribers[name].append(fn)

        def unsubscribe():
            subscribers = self._subscribers.get(name)
            if subscribers and fn in subscribers:
                subscribers.remove(fn)
                if not subscribers:
                    del self._subscribers[name]

        return unsubscribe

    async def wait_for_state(self, slice_type: Type[S], predicate: Callable[[S], bool],
                             signal: Optional[AbortSignal] = None) -> S:
        """Resolve with the slice the first time predicate holds, including right now"""
        state = self.get_state(slice_type)
        if predicate(state):
            return state
        if signal is not None:
            signal.raise_if_aborted()

        future = asyncio.get_running_loop().create_future()

        def check(current: StateSlice):
            if future.done():
                return
            try:
                matched = predicate(current)
            except Exception as e:
                future.set_exception(e)
                return
            if matched:
                future.set_result(current)

        unsubscribe = self.subscribe(slice_type, check)
        remove_listener = signal.add_listener(future.cancel) if signal else None
        try:
            return await future
        except asyncio.CancelledError:
            if signal is not None and signal.aborted:
                raise OperationAbortedError(signal.reason) from None
            raise
        finally:
            unsubscribe()
            if remove_listener:
                remove_listener()

    async def timed_wait_for_state(self, slice_type: Type[S], predicate: Callable[[S], bool],
                                   timeout: float, signal: Optional[AbortSignal] = None) -> S:
        """wait_for_state bounded by timeout seconds"""
        try:
            return await asyncio.wait_for(self.wait_for_state(slice_type, predicate, signal), timeout=timeout)
        except asyncio.TimeoutError:
            raise StateWaitTimeoutError(slice_name(slice_type), timeout) from None

    async def subscribe_async(self, slice_type: Type[S], signal: Optional[AbortSignal] = None) -> AsyncIterator[S]:
        """
        Yield the slice now and again after each mutation until signal fires.
        Mutations made while the consumer is busy coalesce into one snapshot.
        """
        changed = asyncio.Event()
        unsubscribe = self.subscribe(slice_type, lambda _state: changed.set())
        remove_listener = signal.add_listener(changed.set) if signal else None
        try:
            if signal is not None and signal.aborted:
                return
            yield self.get_state(slice_type)
            while True:
                await changed.wait()
                changed.clear()
                if signal is not None and signal.aborted:
                    return
                yield self.get_state(slice_type)
        finally:
            unsubscribe()
            if remove_listener:
                remove_listener()

    def _notify(self, name: str, state: StateSlice):
        for subscriber in list(self._subscribers.get(name, ())):
            try:
                subscriber(state)
            except Exception as e:
                logger.error(f"Error in state subscriber for '{name}': {e}")
