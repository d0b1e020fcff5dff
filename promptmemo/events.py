"""Change notification and single-writer helpers shared by the stores."""

from __future__ import annotations

import asyncio
import functools
import logging
from typing import Any, Awaitable, Callable, List, Optional, TypeVar

logger = logging.getLogger("promptmemo.events")

Listener = Callable[[], None]
T = TypeVar("T")


class ChangeEmitter:
    """Minimal observer channel: listeners are called with no arguments."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._listeners: List[Listener] = []

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener and return a callable that removes it."""
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def fire(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                logger.exception("Listener for '%s' failed", self.name or "change")

    def __len__(self) -> int:
        return len(self._listeners)


class SerialQueue:
    """Runs coroutines one at a time for a single store instance.

    The underlying lock is created lazily for whichever event loop is running,
    so a store can be driven by successive ``asyncio.run`` calls.
    """

    def __init__(self) -> None:
        self._lock: Optional[asyncio.Lock] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    def _current_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._loop is not loop:
            self._lock = asyncio.Lock()
            self._loop = loop
        return self._lock

    async def run(self, func: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async with self._current_lock():
            return await func(*args, **kwargs)


def serialized(method: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Route an async method through its owner's ``_queue``."""

    @functools.wraps(method)
    async def wrapper(self, *args: Any, **kwargs: Any) -> T:
        return await self._queue.run(method, self, *args, **kwargs)

    return wrapper


__all__ = ["ChangeEmitter", "SerialQueue", "serialized"]
