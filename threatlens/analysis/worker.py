"""
In-process background worker for analysis runs.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, List, Set, Tuple


logger = logging.getLogger(__name__)


Job = Tuple[str, Callable[..., Awaitable[Any]], tuple]


class AnalysisWorker:
    """
    Runs submitted coroutines detached from the caller.

    Submitting returns immediately; the outcome is only observable
    through whatever state the job persists. A key that is already
    queued or running is ignored, so one upload never has two runs
    in this process.
    """

    def __init__(self, concurrency: int = 2):
        self.concurrency = max(1, concurrency)
        self._queue: "asyncio.Queue[Job]" = asyncio.Queue()
        self._active: Set[str] = set()
        self._tasks: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def is_active(self, key: str) -> bool:
        return key in self._active

    def submit(self, key: str, func: Callable[..., Awaitable[Any]], *args: Any) -> bool:
        """
        Enqueue ``func(*args)`` under ``key``.

        Returns:
            False when a job with the same key is already pending
        """
        if key in self._active:
            logger.info("Job %s already queued or running, ignoring submit", key)
            return False
        self._active.add(key)
        self._queue.put_nowait((key, func, args))
        return True

    async def start(self):
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._run(index), name=f"analysis-worker-{index}")
            for index in range(self.concurrency)
        ]
        logger.info("Analysis worker started with %d tasks", self.concurrency)

    async def stop(self):
        """Cancel the worker tasks. Interrupted runs stay ANALYZING for recovery."""
        if not self._tasks:
            return
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Analysis worker stopped")

    async def join(self):
        """Wait until every submitted job has finished."""
        await self._queue.join()

    async def _run(self, index: int):
        while True:
            key, func, args = await self._queue.get()
            try:
                await func(*args)
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Background job %s failed", key)
            finally:
                self._active.discard(key)
                self._queue.task_done()
