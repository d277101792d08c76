"""
Unit tests for scheduler jobs.

Tests for the periodic background jobs:
- Cleanup and stale task reconciliation
- Channel health check with outbound flush
"""
import pytest
from unittest.mock import AsyncMock, Mock, patch

from taskbridge.scheduler.jobs import SchedulerManager


@pytest.fixture
def cleanup_job():
    job = Mock()
    job.run = AsyncMock()
    return job


@pytest.fixture
def outbound():
    adapter = Mock()
    adapter.queue_depth = 0
    adapter.flush = AsyncMock(return_value=0)
    return adapter


@pytest.fixture
def gateway():
    channel = Mock()
    channel.check_connection = AsyncMock(return_value=True)
    return channel


@pytest.fixture
def scheduler_manager(cleanup_job, gateway, outbound):
    return SchedulerManager(cleanup_job, gateway, outbound)


class TestSchedulerLifecycle:
    """Tests for starting and stopping the scheduler."""

    @pytest.mark.asyncio
    async def test_start_registers_jobs(self, scheduler_manager):
        scheduler_manager.start()
        try:
            status = scheduler_manager.get_job_status()
            assert set(status) == {"cleanup", "channel_health"}
            assert scheduler_manager.running
        finally:
            scheduler_manager.stop()

        assert not scheduler_manager.running
        assert scheduler_manager.get_job_status() == {}

    @pytest.mark.asyncio
    async def test_start_without_gateway_only_schedules_cleanup(self, cleanup_job):
        manager = SchedulerManager(cleanup_job)
        manager.start()
        try:
            assert set(manager.get_job_status()) == {"cleanup"}
        finally:
            manager.stop()

    @pytest.mark.asyncio
    async def test_start_is_idempotent(self, scheduler_manager):
        scheduler_manager.start()
        first = scheduler_manager.scheduler
        try:
            scheduler_manager.start()
            assert scheduler_manager.scheduler is first
        finally:
            scheduler_manager.stop()

    def test_trigger_job_without_scheduler(self, scheduler_manager):
        assert scheduler_manager.trigger_job("cleanup") is False

    @pytest.mark.asyncio
    async def test_trigger_job_by_id(self, scheduler_manager):
        scheduler_manager.start()
        try:
            assert scheduler_manager.trigger_job("cleanup") is True
            assert scheduler_manager.trigger_job("daily_standup") is False
        finally:
            scheduler_manager.stop()


class TestCleanupJob:
    """Tests for the cleanup job wrapper."""

    @pytest.mark.asyncio
    async def test_runs_cleanup(self, scheduler_manager, cleanup_job):
        await scheduler_manager._cleanup_job()

        cleanup_job.run.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cleanup_errors_are_logged(self, scheduler_manager, cleanup_job):
        cleanup_job.run.side_effect = Exception("Database error")

        with patch("taskbridge.scheduler.jobs.logger") as mock_logger:
            await scheduler_manager._cleanup_job()

        mock_logger.error.assert_called_once()


class TestChannelHealthJob:
    """Tests for the channel health check."""

    @pytest.mark.asyncio
    async def test_flushes_when_connected_with_backlog(self, scheduler_manager, outbound):
        outbound.queue_depth = 3

        await scheduler_manager._channel_health_job()

        outbound.flush.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_no_flush_with_empty_queue(self, scheduler_manager, outbound):
        await scheduler_manager._channel_health_job()

        outbound.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_no_flush_while_disconnected(self, scheduler_manager, gateway, outbound):
        gateway.check_connection.return_value = False
        outbound.queue_depth = 3

        await scheduler_manager._channel_health_job()

        outbound.flush.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_health_errors_are_logged(self, scheduler_manager, gateway):
        gateway.check_connection.side_effect = ConnectionError("network down")

        with patch("taskbridge.scheduler.jobs.logger") as mock_logger:
            await scheduler_manager._channel_health_job()

        mock_logger.error.assert_called_once()
