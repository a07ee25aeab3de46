"""
Event loop thread.

Runs the asyncio core on its own thread so blocking callers (Flask
handlers) can submit coroutines to it.
"""

import asyncio
import threading
from typing import Any, Callable, Coroutine, Optional, TypeVar

from ..logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class EventLoopThread:
    """A dedicated thread running one asyncio event loop forever."""

    def __init__(self, name: str = 'recognition-loop'):
        self.loop = asyncio.new_event_loop()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    def start(self) -> None:
        if self._thread.is_alive():
            return
        self._thread.start()
        logger.debug(f'Event loop thread {self._thread.name} started')

    def run(self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = None) -> T:
        """
        Run a coroutine on the loop and wait for its result.

        Raises:
            concurrent.futures.TimeoutError: If timeout elapses first
        """
        future = asyncio.run_coroutine_threadsafe(coro, self.loop)
        return future.result(timeout)

    def call(self, func: Callable[..., T], *args: Any, timeout: Optional[float] = None) -> T:
        """Run a plain function on the loop thread and wait for its result."""
        async def _invoke() -> T:
            return func(*args)

        return self.run(_invoke(), timeout)

    def stop(self) -> None:
        if not self._thread.is_alive():
            return
        self.loop.call_soon_threadsafe(self.loop.stop)
        self._thread.join(timeout=5)
        self.loop.close()
        logger.debug('Event loop thread stopped')
