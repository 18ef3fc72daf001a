"""Debounce and throttle for the asyncio event loop."""

import asyncio
import inspect
import logging
import time
from typing import Any, Callable

logger = logging.getLogger(__name__)


class Debouncer:
    """Run ``func`` once, ``wait`` seconds after the last call."""

    def __init__(self, func: Callable[..., Any], wait: float):
        self.func = func
        self.wait = wait
        self._task: asyncio.Task | None = None

    def __call__(self, *args, **kwargs) -> None:
        self.cancel()
        self._task = asyncio.get_running_loop().create_task(self._run(args, kwargs))

    async def _run(self, args, kwargs) -> None:
        await asyncio.sleep(self.wait)
        try:
            result = self.func(*args, **kwargs)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error(f"Debounced call {getattr(self.func, '__name__', self.func)} failed: {e}")

    @property
    def pending(self) -> bool:
        return self._task is not None and not self._task.done()

    def cancel(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None


class Throttle:
    """Allow at most one call per ``limit`` seconds; extra calls are dropped."""

    def __init__(self, limit: float, clock: Callable[[], float] = time.monotonic):
        self.limit = limit
        self.clock = clock
        self._last: dict[Any, float] = {}

    def __len__(self) -> int:
        return len(self._last)

    def allow(self, key: Any = None) -> bool:
        now = self.clock()
        self._last = {k: t for k, t in self._last.items() if now - t < self.limit}
        last = self._last.get(key)
        if last is not None and now - last < self.limit:
            return False
        self._last[key] = now
        return True
