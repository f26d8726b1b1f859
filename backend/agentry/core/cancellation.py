"""
Cooperative cancellation for suspending agent operations
"""

import asyncio
import logging
from typing import Callable, List, Optional

from .errors import OperationAbortedError

logger = logging.getLogger(__name__)


class AbortSignal:
    """
    One-shot abort flag shared between the caller and a suspending operation.

    Listeners are plain callables run synchronously when the signal fires, so
    abort() never suspends and can be called from any synchronous code path.
    """

    def __init__(self):
        self._aborted = False
        self._reason: Optional[str] = None
        self._listeners: List[Callable[[], None]] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def abort(self, reason: Optional[str] = None) -> bool:
        """Fire the signal. Returns False if it had already fired."""
        if self._aborted:
            return False

        self._aborted = True
        self._reason = reason
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            try:
                listener()
            except Exception as e:
                logger.error(f"Error in abort listener: {e}")
        return True

    def add_listener(self, listener: Callable[[], None]) -> Callable[[], None]:
        """
        Register a listener and return a function that removes it.
        A listener added to an already aborted signal runs immediately.
        """
        if self._aborted:
            listener()
            return lambda: None

        self._listeners.append(listener)

        def remove():
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return remove

    def raise_if_aborted(self):
        if self._aborted:
            raise OperationAbortedError(self._reason)

    async def wait(self):
        """Suspend until the signal fires"""
        if self._aborted:
            return
        event = asyncio.Event()
        remove = self.add_listener(event.set)
        try:
            await event.wait()
        finally:
            remove()

    def __repr__(self) -> str:
        state = f"aborted, reason={self._reason!r}" if self._aborted else "pending"
        return f"<AbortSignal {state}>"
