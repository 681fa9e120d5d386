"""
Recovery scheduler - picks up analysis runs interrupted by a restart or crash.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional

from threatlens.database import UploadRepository
from threatlens.models.finding import utcnow
from threatlens.models.upload import Upload, UploadStatus


logger = logging.getLogger(__name__)


ResumeFunc = Callable[[str], Awaitable[object]]


async def list_analyzing() -> List[Upload]:
    return await UploadRepository.list_by_status(UploadStatus.ANALYZING)


async def list_stalled(older_than: datetime) -> List[Upload]:
    return await UploadRepository.list_stalled(older_than)


class RecoveryScheduler:
    """
    Two schedules over ANALYZING uploads.

    On ``start`` every ANALYZING upload is resumed once, since nothing
    in a fresh process can be running it. Afterwards, every
    ``interval_seconds`` the uploads whose ``updated_at`` is older than
    ``stall_threshold_seconds`` are resumed.
    """

    def __init__(
        self,
        resume: ResumeFunc,
        interval_seconds: float = 300.0,
        stall_threshold_seconds: float = 900.0,
        analyzing_source: Callable[[], Awaitable[List[Upload]]] = list_analyzing,
        stalled_source: Callable[[datetime], Awaitable[List[Upload]]] = list_stalled,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._resume = resume
        self.interval_seconds = interval_seconds
        self.stall_threshold_seconds = stall_threshold_seconds
        self._analyzing_source = analyzing_source
        self._stalled_source = stalled_source
        self._clock = clock
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self):
        """Run the startup sweep, then schedule periodic stall sweeps."""
        if self.running:
            return
        await self.sweep_startup()
        self._task = asyncio.create_task(self._loop(), name="recovery-scheduler")
        logger.info(
            "[Recovery] Scheduler started (every %ss, stall threshold %ss)",
            self.interval_seconds, self.stall_threshold_seconds,
        )

    async def stop(self):
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("[Recovery] Scheduler stopped")

    async def sweep_startup(self) -> int:
        """Resume every ANALYZING upload. Returns how many were resumed."""
        uploads = await self._analyzing_source()
        if uploads:
            logger.info("[Recovery] Startup sweep found %d interrupted analyses", len(uploads))
        return await self._resume_all(uploads)

    async def sweep_stalled(self) -> int:
        """Resume ANALYZING uploads with no progress within the threshold."""
        cutoff = self._clock() - timedelta(seconds=self.stall_threshold_seconds)
        uploads = await self._stalled_source(cutoff)
        if uploads:
            logger.info("[Recovery] Stall sweep found %d stalled analyses", len(uploads))
        return await self._resume_all(uploads)

    async def _resume_all(self, uploads: List[Upload]) -> int:
        resumed = 0
        for upload in uploads:
            try:
                await self._resume(upload.id)
                resumed += 1
            except Exception:
                logger.exception("[Recovery] Failed to resume upload %s", upload.id)
        return resumed

    async def _loop(self):
        while True:
            await asyncio.sleep(self.interval_seconds)
            try:
                await self.sweep_stalled()
            except Exception:
                logger.exception("[Recovery] Stall sweep failed")
