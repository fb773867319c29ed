import asyncio
import pytest
from datetime import date
from sqlalchemy import select
from core.exceptions import NetworkError
from ingestion.state import SyncStateStore
from models.base import (
    SyncStatus,
    SyncType,
    INITIAL_SYNC_COMPLETED_KEY,
    INITIAL_SYNC_LAST_CHUNK_KEY,
)
from models.sync_log import SyncLog
from tests.conftest import FakeEleringClient


async def get_setting(session_factory, key):
    async with session_factory() as session:
        return await SyncStateStore(session).get_setting(key)


async def set_setting(session_factory, key, value):
    async with session_factory() as session:
        await SyncStateStore(session).set_setting(key, value)


async def logs_of(session_factory, sync_type: SyncType):
    async with session_factory() as session:
        result = await session.execute(
            select(SyncLog).where(SyncLog.sync_type == sync_type.value).order_by(SyncLog.id)
        )
        return list(result.scalars().all())


class TestInitialBackfill:

    @pytest.mark.asyncio
    async def test_fresh_backfill_starts_at_earliest_date(self, sync_engine, fake_client, session_factory):
        fake_client.available_from = date(2024, 1, 15)

        result = await sync_engine.run_initial_sync()

        assert result.status == SyncStatus.SUCCESS
        assert fake_client.calls[0] == ("all", date(2012, 7, 1), date(2012, 12, 31))
        assert len(fake_client.calls) == 24
        assert await get_setting(session_factory, INITIAL_SYNC_COMPLETED_KEY) is not None
        assert await get_setting(session_factory, INITIAL_SYNC_LAST_CHUNK_KEY) == "2024-01-17"

    @pytest.mark.asyncio
    async def test_resume_after_last_completed_chunk(self, sync_engine, fake_client, session_factory):
        fake_client.available_from = date(2024, 1, 15)
        await set_setting(session_factory, INITIAL_SYNC_LAST_CHUNK_KEY, "2015-06-30")

        await sync_engine.run_initial_sync()

        assert fake_client.calls[0] == ("all", date(2015, 7, 1), date(2015, 12, 31))
        assert len(fake_client.calls) == 18

        chunk_logs = await logs_of(session_factory, SyncType.INITIAL_SYNC_CHUNK)
        assert len(chunk_logs) == 18
        assert all(log.status == SyncStatus.SUCCESS.value for log in chunk_logs)
        assert chunk_logs[0].error_message == "Chunk completed: 2015-12-31"

        run_logs = await logs_of(session_factory, SyncType.INITIAL_SYNC)
        assert [log.status for log in run_logs] == [SyncStatus.SUCCESS.value]

    @pytest.mark.asyncio
    async def test_interrupted_backfill_keeps_progress(self, sync_engine, fake_client, session_factory):
        fake_client.available_from = date(2024, 1, 15)
        # Chunk 9 is 2016-07-01..2016-12-31
        fake_client.fail_on_call(9, NetworkError("provider timeout"))

        with pytest.raises(NetworkError):
            await sync_engine.run_initial_sync()

        assert await get_setting(session_factory, INITIAL_SYNC_LAST_CHUNK_KEY) == "2016-06-30"
        assert await get_setting(session_factory, INITIAL_SYNC_COMPLETED_KEY) is None

        status = await sync_engine.get_initial_sync_status()
        assert status.is_complete is False
        assert status.last_chunk == "2016-06-30"
        assert "provider timeout" in status.last_error

        fake_client.calls.clear()
        fake_client.failures.clear()
        await sync_engine.run_initial_sync()

        assert fake_client.calls[0] == ("all", date(2016, 7, 1), date(2016, 12, 31))
        assert (await sync_engine.get_initial_sync_status()).is_complete is True

    @pytest.mark.asyncio
    async def test_unparseable_checkpoint_restarts(self, sync_engine, fake_client, session_factory):
        await set_setting(session_factory, INITIAL_SYNC_LAST_CHUNK_KEY, "not-a-date")

        chunks = await sync_engine.plan_initial_sync()

        assert chunks[0].start == date(2012, 7, 1)

    @pytest.mark.asyncio
    async def test_reset_clears_markers(self, sync_engine, fake_client, session_factory):
        fake_client.available_from = date(2024, 1, 15)
        await sync_engine.run_initial_sync()

        removed = await sync_engine.reset_initial_sync()

        assert removed == 2
        status = await sync_engine.get_initial_sync_status()
        assert status.is_complete is False
        assert status.last_chunk is None
        assert status.records_count > 0


class BlockingClient(FakeEleringClient):
    """Holds the first fetch open until released"""

    def __init__(self):
        super().__init__()
        self.entered = asyncio.Event()
        self.release = asyncio.Event()

    async def fetch_all_countries(self, start, end):
        result = await super().fetch_all_countries(start, end)
        if len(self.calls) == 1:
            self.entered.set()
            await self.release.wait()
        return result


class TestMutualExclusion:

    @pytest.mark.asyncio
    async def test_second_sync_skipped_while_first_runs(self, sync_engine, session_factory):
        client = BlockingClient()
        sync_engine.client = client

        first = asyncio.create_task(sync_engine.sync_all_countries_days(1))
        await asyncio.wait_for(client.entered.wait(), timeout=5)

        assert sync_engine.is_running is True
        assert sync_engine.current_sync == SyncType.ALL_COUNTRIES_DAYS

        second = await sync_engine.sync_efficient()
        client.release.set()
        first_result = await asyncio.wait_for(first, timeout=5)

        assert second.status == SyncStatus.SKIPPED
        assert "all_countries_days" in second.message
        assert first_result.status == SyncStatus.SUCCESS
        assert len(client.calls) == 1

        skipped = await logs_of(session_factory, SyncType.EFFICIENT)
        assert [log.status for log in skipped] == [SyncStatus.SKIPPED.value]
        assert sync_engine.is_running is False
