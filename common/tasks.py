"""Background asyncio loop used to isolate long-running work."""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Any, Coroutine, TypeVar


T = TypeVar("T")


class BackgroundLoop:
    """Run an asyncio event loop on a dedicated daemon thread.

    Coroutines submitted from any thread are scheduled on the private loop
    and may interleave at their await points.
    """

    def __init__(self, name: str = "superres-worker") -> None:
        self.name = name
        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            loop = asyncio.new_event_loop()
            ready = threading.Event()

            def _run() -> None:
                asyncio.set_event_loop(loop)
                loop.call_soon(ready.set)
                loop.run_forever()
                loop.close()

            thread = threading.Thread(target=_run, name=self.name, daemon=True)
            thread.start()
            ready.wait()
            self._loop = loop
            self._thread = thread

    def submit(self, coro: Coroutine[Any, Any, T]) -> Future[T]:
        if not self.running:
            self.start()
        assert self._loop is not None
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self, timeout: float | None = 5.0) -> None:
        with self._lock:
            loop, thread = self._loop, self._thread
            self._loop = None
            self._thread = None
        if loop is None or thread is None:
            return
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout)


__all__ = ["BackgroundLoop"]
