"""
Quote Session Manager.

A shopper editing their cart fires quote after quote for the same checkout
session. Only the newest matters: starting a quote cancels the still-running
quote for that session, and the cancelled caller gets QuoteSupersededError.
"""
import asyncio
import logging
from typing import Awaitable, Dict, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class QuoteSupersededError(Exception):
    """A newer quote for the same session replaced this one."""

    def __init__(self, session_key: str):
        self.session_key = session_key
        super().__init__(f"Quote for session {session_key} was superseded by a newer request")


class QuoteSessionManager:
    """Tracks the in-flight quote task per session key."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}
        self._lock = asyncio.Lock()

    def in_flight(self, session_key: str) -> Optional[asyncio.Task]:
        task = self._tasks.get(session_key)
        if task is not None and not task.done():
            return task
        return None

    async def run(self, session_key: Optional[str], coro: Awaitable[T]) -> T:
        """
        Run coro as the current quote for session_key.

        Without a session key the coroutine is simply awaited.
        """
        if not session_key:
            return await coro

        async with self._lock:
            previous = self.in_flight(session_key)
            if previous is not None:
                logger.info(f"Cancelling superseded quote for session {session_key}")
                previous.cancel()
            task = asyncio.ensure_future(coro)
            self._tasks[session_key] = task

        try:
            return await task
        except asyncio.CancelledError:
            if task.cancelled() and self._tasks.get(session_key) is not task:
                raise QuoteSupersededError(session_key) from None
            raise
        finally:
            if self._tasks.get(session_key) is task:
                del self._tasks[session_key]


_manager: Optional[QuoteSessionManager] = None


def get_quote_session_manager() -> QuoteSessionManager:
    """Process-wide manager singleton."""
    global _manager
    if _manager is None:
        _manager = QuoteSessionManager()
    return _manager


