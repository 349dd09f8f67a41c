from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable


class PeriodicWorker:
    """
    Runs an async job on a fixed cadence in a background task.

    - The cadence is measured start-to-start; a slow run shortens the next wait.
    - A failing run is logged and the loop keeps going.
    - stop() returns once the current run has finished.
    """

    def __init__(
        self,
        *,
        name: str,
        interval_s: float,
        job: Callable[[], Awaitable[Any]],
        logger: logging.Logger | None = None,
    ) -> None:
        self._name = name
        self._interval_s = float(interval_s)
        self._job = job
        self._logger = logger or logging.getLogger(self.__class__.__name__)

        self._task: asyncio.Task | None = None
        self._stop = asyncio.Event()

    @property
    def name(self) -> str:
        return self._name

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start the loop in background."""
        if self._task is None:
            self._stop.clear()
            self._task = asyncio.create_task(self._run(), name=self._name)
            self._logger.info("Worker %s started (every %.2fs)", self._name, self._interval_s)

    async def stop(self) -> None:
        """Stop the loop gracefully."""
        self._stop.set()
        if self._task is not None:
            await self._task
            self._task = None
            self._logger.info("Worker %s stopped", self._name)

    async def _run(self) -> None:
        while not self._stop.is_set():
            started = time.monotonic()
            try:
                await self._job()
            except Exception as exc:
                self._logger.exception("Worker %s iteration error: %s", self._name, exc)

            wait_s = max(self._interval_s - (time.monotonic() - started), 0.0)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._stop.wait(), timeout=wait_s)
