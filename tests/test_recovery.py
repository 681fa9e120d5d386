"""
Tests for the recovery scheduler.
"""

from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from threatlens.analysis import RecoveryScheduler
from threatlens.analysis.recovery import list_analyzing, list_stalled
from threatlens.models.finding import utcnow
from threatlens.models.upload import Upload, UploadStatus


NOW = datetime(2024, 1, 15, 12, 0, 0, tzinfo=timezone.utc)


def upload(upload_id: str) -> Upload:
    return Upload(
        id=upload_id,
        user_id="alice",
        file_name="access.log",
        file_size=1,
        storage_path="/tmp/none",
        status=UploadStatus.ANALYZING,
    )


class Recorder:
    def __init__(self, fail_on=()):
        self.resumed: List[str] = []
        self.fail_on = set(fail_on)

    async def __call__(self, upload_id: str):
        if upload_id in self.fail_on:
            raise RuntimeError(f"cannot resume {upload_id}")
        self.resumed.append(upload_id)


class TestRecoveryScheduler:
    """Sweeps with injected sources and clock."""

    @pytest.mark.asyncio
    async def test_startup_sweep_resumes_every_analyzing_upload(self):
        recorder = Recorder()

        async def analyzing():
            return [upload("u1"), upload("u2")]

        scheduler = RecoveryScheduler(recorder, analyzing_source=analyzing)

        assert await scheduler.sweep_startup() == 2
        assert recorder.resumed == ["u1", "u2"]

    @pytest.mark.asyncio
    async def test_stall_sweep_uses_threshold_cutoff(self):
        recorder = Recorder()
        cutoffs = []

        async def stalled(older_than):
            cutoffs.append(older_than)
            return [upload("u3")]

        scheduler = RecoveryScheduler(
            recorder, stall_threshold_seconds=900, stalled_source=stalled, clock=lambda: NOW,
        )

        assert await scheduler.sweep_stalled() == 1
        assert cutoffs == [NOW - timedelta(minutes=15)]
        assert recorder.resumed == ["u3"]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_the_sweep(self):
        recorder = Recorder(fail_on={"u1"})

        async def analyzing():
            return [upload("u1"), upload("u2")]

        scheduler = RecoveryScheduler(recorder, analyzing_source=analyzing)

        assert await scheduler.sweep_startup() == 1
        assert recorder.resumed == ["u2"]

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        recorder = Recorder()

        async def analyzing():
            return [upload("u1")]

        scheduler = RecoveryScheduler(recorder, interval_seconds=3600, analyzing_source=analyzing)

        await scheduler.start()
        assert scheduler.running is True
        assert recorder.resumed == ["u1"]

        await scheduler.stop()
        assert scheduler.running is False


class TestRecoverySources:
    """The default sources read ANALYZING uploads from the database."""

    @pytest.mark.asyncio
    async def test_list_analyzing_and_stalled(self, database, make_upload):
        analyzing = await make_upload(["a"], status=UploadStatus.ANALYZING)
        await make_upload(["b"], status=UploadStatus.COMPLETED)

        assert [u.id for u in await list_analyzing()] == [analyzing.id]
        assert [u.id for u in await list_stalled(utcnow() + timedelta(minutes=1))] == [analyzing.id]
        assert await list_stalled(utcnow() - timedelta(hours=1)) == []
