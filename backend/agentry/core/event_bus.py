"""
Event Bus for agentry agents

A single append-only log of envelopes with one cursor per subscriber.
Producers append synchronously and never wait for delivery; each cursor
suspends until the log grows past its position, the bus closes, or its
abort signal fires.
"""

import asyncio
import logging
import weakref
from typing import Any, Dict, List, Optional

from .cancellation import AbortSignal
from .events import AgentEventEnvelope, EventType

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 1000


class EventCursor:
    """
    Async iterator over the envelopes appended after the cursor was opened.

    Not restartable: iterating a second time continues from the current
    position. Release it with aclose(), by aborting the signal, or by using
    it as an async context manager. A cursor that is simply dropped is
    released when it is garbage collected.
    """

    def __init__(self, bus: 'AgentEventBus', position: int, signal: Optional[AbortSignal] = None):
        self._bus = bus
        self.position = position
        self._signal = signal
        self._wakeup = asyncio.Event()
        self._closed = False
        self._remove_listener = signal.add_listener(self._wakeup.set) if signal else None

    @property
    def closed(self) -> bool:
        return self._closed

    def notify(self):
        self._wakeup.set()

    def __aiter__(self) -> 'EventCursor':
        return self

    async def __aenter__(self) -> 'EventCursor':
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()

    async def __anext__(self) -> AgentEventEnvelope:
        while True:
            if self._closed or (self._signal is not None and self._signal.aborted):
                await self.aclose()
                raise StopAsyncIteration

            if self.position < self._bus.next_sequence:
                envelope = self._bus._get(self.position)
                self.position += 1
                return envelope

            if self._bus.closed:
                await self.aclose()
                raise StopAsyncIteration

            self._wakeup.clear()
            await self._wakeup.wait()

    async def aclose(self):
        self.close()

    def close(self):
        """Detach the cursor from its bus and signal"""
        if self._closed:
            return
        self._closed = True
        if self._remove_listener:
            self._remove_listener()
            self._remove_listener = None
        self._bus._release(self)


class AgentEventBus:
    """
    Append-only, in-memory envelope log with multi-subscriber fan-out

    Envelopes not yet read by an open cursor are always retained; beyond
    that at most history_limit envelopes are kept for history().
    """

    def __init__(self, agent_id: Optional[str] = None, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.agent_id = agent_id
        self.history_limit = history_limit
        self._log: List[AgentEventEnvelope] = []
        self._next_sequence = 1
        # Weak so a cursor dropped without aclose() stops holding back trimming
        self._cursors: "weakref.WeakSet[EventCursor]" = weakref.WeakSet()
        self._closed = False

        self.stats = {
            'events_emitted': 0,
            'subscribers_opened': 0
        }

    @property
    def next_sequence(self) -> int:
        """Sequence number the next appended envelope will carry"""
        return self._next_sequence

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._cursors)

    def emit(self, event_type: EventType, data: Optional[Dict[str, Any]] = None) -> AgentEventEnvelope:
        """Append an envelope and wake every cursor. Never suspends."""
        if self._closed:
            raise RuntimeError("Event bus is closed")

        envelope = AgentEventEnvelope(
            sequence=self._next_sequence,
            type=event_type,
            data=data or {},
            agent_id=self.agent_id
        )
        self._log.append(envelope)
        self._next_sequence += 1
        self.stats['events_emitted'] += 1

        for cursor in list(self._cursors):
            cursor.notify()

        self._trim()
        logger.debug(f"Agent {self.agent_id} emitted #{envelope.sequence} {event_type.value}")
        return envelope

    def events(self, signal: Optional[AbortSignal] = None) -> EventCursor:
        """
        Open a subscriber positioned at the end of the log.

        The cursor sees every envelope appended from this call onward, in
        sequence order, until the signal fires or the bus closes.
        """
        cursor = EventCursor(self, self._next_sequence, signal)
        if not self._closed:
            self._cursors.add(cursor)
            self.stats['subscribers_opened'] += 1
        return cursor

    def history(self, since: Optional[int] = None) -> List[AgentEventEnvelope]:
        """Return retained envelopes, optionally only those with sequence >= since"""
        if since is None:
            return list(self._log)
        return [envelope for envelope in self._log if envelope.sequence >= since]

    def close(self):
        """Stop accepting envelopes; open cursors drain what remains and end"""
        if self._closed:
            return
        self._closed = True
        for cursor in list(self._cursors):
            cursor.notify()
        logger.debug(f"Event bus for agent {self.agent_id} closed")

    def _get(self, sequence: int) -> AgentEventEnvelope:
        base = self._log[0].sequence
        return self._log[sequence - base]

    def _release(self, cursor: EventCursor):
        self._cursors.discard(cursor)
        self._trim()

    def _trim(self):
        if not self._log:
            return
        drop_until = self._next_sequence - self.history_limit
        positions = [cursor.position for cursor in list(self._cursors)]
        if positions:
            drop_until = min(drop_until, min(positions))
        excess = drop_until - self._log[0].sequence
        if excess > 0:
            del self._log[:excess]
