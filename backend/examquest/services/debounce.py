from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Trailing-edge debounce for an async callback.

    Every `schedule()` restarts the wait window; the callback runs once the
    window passes without another call. The callback takes no arguments, so
    whatever it reads is read when it fires.
    """

    def __init__(self, callback: Callable[[], Awaitable[None]], wait_seconds: float) -> None:
        self._callback = callback
        self._wait_seconds = wait_seconds
        self._handle: asyncio.TimerHandle | None = None
        self._inflight: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> bool:
        return self._handle is not None

    @property
    def running(self) -> bool:
        return bool(self._inflight)

    def schedule(self) -> None:
        self.cancel()
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(self._wait_seconds, self._fire, loop)

    def _fire(self, loop: asyncio.AbstractEventLoop) -> None:
        self._handle = None
        task = loop.create_task(self._invoke())
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _invoke(self) -> None:
        try:
            await self._callback()
        except Exception:
            logger.exception("Debounced callback failed")

    def cancel(self) -> None:
        handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()

    async def flush(self) -> None:
        """Run a pending callback now instead of waiting for the window."""
        if self._handle is not None:
            self.cancel()
            await self._invoke()
        await self.wait()

    async def wait(self) -> None:
        """Wait for callbacks that already started."""
        while self._inflight:
            await asyncio.gather(*list(self._inflight))
