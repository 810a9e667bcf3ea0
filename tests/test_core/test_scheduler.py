"""Tests for AutomationScheduler job registration."""
import pytest

from gridlines.core.scheduler import AutomationScheduler


class TestAutomationScheduler:
    """Jobs are registered on start and removed on stop."""

    @pytest.mark.asyncio
    async def test_start_registers_all_jobs(self):
        scheduler = AutomationScheduler(timezone="America/New_York")
        await scheduler.start()
        try:
            jobs = {job.id: job for job in scheduler.scheduler.get_jobs()}

            assert set(jobs) == {
                'lines_sweep_morning',
                'lines_sweep_midday',
                'lines_sweep_evening',
                'lines_sweep_game_day',
                'pregame_check',
                'provider_links',
            }
            assert jobs['lines_sweep_morning'].args == ('morning',)
            assert all(job.next_run_time is not None for job in jobs.values())
        finally:
            await scheduler.stop()

        assert scheduler.running is False

    @pytest.mark.asyncio
    async def test_start_twice_is_harmless(self):
        scheduler = AutomationScheduler(timezone="America/New_York")
        await scheduler.start()
        try:
            first = scheduler.scheduler
            await scheduler.start()

            assert scheduler.scheduler is first
            assert len(first.get_jobs()) == 6
        finally:
            await scheduler.stop()

    @pytest.mark.asyncio
    async def test_stop_before_start(self):
        scheduler = AutomationScheduler()

        await scheduler.stop()

        assert scheduler.running is False
