"""
Automated task scheduler for gridlines.

This module provides scheduled background jobs for:
- Betting lines sweeps (daily at 6AM, 12PM, 6PM and every 30 min Thu-Mon)
- Pre-game freeze checks (every 15 minutes)
- Weekly provider linking (odds events and prediction markets)

Scheduler: APScheduler (AsyncIOScheduler)
"""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from gridlines.core.config import settings
from gridlines.core.database import SessionLocal
from gridlines.core.logging import sweep_context
from gridlines.services.betting.lines_scheduler import BettingLinesScheduler
from gridlines.services.betting.slate_planner import NFLCalendar
from gridlines.services.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)


async def run_lines_sweep(label: str) -> None:
    """One automatic betting lines update with its own session and sweep context."""
    with sweep_context(f"lines_sweep_{label}"):
        db = SessionLocal()
        orchestrator = SyncOrchestrator(db)
        try:
            result = await BettingLinesScheduler(orchestrator).run_automatic_update()
            logger.info(
                f"✅ Lines sweep ({label}): {result.games_processed} games, "
                f"weeks {result.weeks_processed} ({result.duration_ms}ms)"
            )
        except Exception as e:
            logger.error(f"❌ Lines sweep ({label}) failed: {e}")
        finally:
            await orchestrator.cleanup()
            db.close()


async def run_pregame_sweep() -> None:
    """Freeze check for games near kickoff."""
    with sweep_context("pregame_check"):
        db = SessionLocal()
        orchestrator = SyncOrchestrator(db)
        try:
            await BettingLinesScheduler(orchestrator).run_pregame_check()
        except Exception as e:
            logger.error(f"❌ Pre-game check failed: {e}")
        finally:
            await orchestrator.cleanup()
            db.close()


async def run_provider_links() -> None:
    """Link odds events and Kalshi markets for the weeks being processed."""
    with sweep_context("provider_links"):
        db = SessionLocal()
        orchestrator = SyncOrchestrator(db)
        try:
            for week in orchestrator.calendar.weeks_to_process():
                result = await orchestrator.link_providers(week)
                logger.info(
                    f"✅ Provider links week {week}: odds {result['odds'].get('matched', 0)}, "
                    f"markets {result['markets'].get('matched', 0)}",
                    extra={'week': week},
                )
        except Exception as e:
            logger.error(f"❌ Provider linking failed: {e}")
        finally:
            await orchestrator.cleanup()
            db.close()


class AutomationScheduler:
    """
    Main scheduler for automated background tasks.

    All scheduled jobs are defined here with their cron schedules.
    """

    def __init__(self, timezone: Optional[str] = None):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self.running = False
        self.timezone = timezone or settings.SCHEDULER_TIMEZONE
        self.schedule = NFLCalendar.optimal_schedule()

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        logger.info("Starting automation scheduler...")

        self.scheduler = AsyncIOScheduler(
            timezone=self.timezone,
            job_defaults={
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance of each job
                'misfire_grace_time': 300  # 5 minutes grace for misfires
            }
        )

        self._schedule_daily_sweeps()
        self._schedule_game_day_sweeps()
        self._schedule_pregame_checks()
        self._schedule_provider_links()

        self.scheduler.start()
        self.running = True

        logger.info("✅ Scheduler started with %d jobs", len(self.scheduler.get_jobs()))
        self._log_scheduled_jobs()

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping scheduler...")
        self.scheduler.shutdown(wait=True)
        self.running = False
        logger.info("✅ Scheduler stopped")

    def _trigger(self, name: str) -> CronTrigger:
        return CronTrigger.from_crontab(self.schedule[name], timezone=self.timezone)

    def _schedule_daily_sweeps(self):
        """
        Schedule: Betting lines sweep.

        Frequency: Daily at 6AM, 12PM and 6PM
        Purpose: Daily refresh of lines for the current (and next) week
        """
        if self.scheduler is None:
            return

        for name in ('morning', 'midday', 'evening'):
            self.scheduler.add_job(
                run_lines_sweep,
                trigger=self._trigger(name),
                args=[name],
                id=f'lines_sweep_{name}',
                name=f'Betting Lines Sweep ({name.title()})',
                misfire_grace_time=600,
            )

        logger.info("📅 Scheduled: Betting lines sweeps (6AM, 12PM, 6PM)")

    def _schedule_game_day_sweeps(self):
        """
        Schedule: Betting lines sweep on game days.

        Frequency: Every 30 minutes, Thursday through Monday
        Purpose: Near-kickoff refreshes and freezes for the whole slate
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=self._trigger('game_day'),
            id='lines_sweep_game_day',
            name='Betting Lines Sweep (Game Day)',
        )
        async def game_day_sweep():
            await run_lines_sweep('game_day')

        logger.info("🏈 Scheduled: Game-day sweeps (every 30 min Thu-Mon)")

    def _schedule_pregame_checks(self):
        """
        Schedule: Pre-game freeze check.

        Frequency: Every 15 minutes
        Purpose: Freeze lines on time for games close to kickoff
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=self._trigger('pre_game'),
            id='pregame_check',
            name='Pre-game Freeze Check',
            misfire_grace_time=120,
        )
        async def pregame_check():
            await run_pregame_sweep()

        logger.info("⏰ Scheduled: Pre-game freeze checks (every 15 min)")

    def _schedule_provider_links(self):
        """
        Schedule: Link odds events and prediction markets.

        Frequency: Weekly, Tuesdays at midnight
        Purpose: Coverage report for the coming week
        """
        if self.scheduler is None:
            return

        @self.scheduler.scheduled_job(
            trigger=self._trigger('weekly'),
            id='provider_links',
            name='Weekly Provider Linking',
            misfire_grace_time=3600,
        )
        async def provider_links():
            await run_provider_links()

        logger.info("🔗 Scheduled: Provider linking (Tuesdays at midnight)")

    def _log_scheduled_jobs(self):
        """Log all scheduled jobs for visibility."""
        jobs = self.scheduler.get_jobs()

        logger.info("=" * 60)
        logger.info("SCHEDULED AUTOMATION JOBS")
        logger.info("=" * 60)

        for job in jobs:
            next_run = getattr(job, 'next_run_time', None)
            next_run_str = next_run.strftime('%Y-%m-%d %I:%M %p %Z') if next_run else 'Pending'
            logger.info(f"  • {job.name}")
            logger.info(f"    ID: {job.id}")
            logger.info(f"    Next run: {next_run_str}")

        logger.info("=" * 60)
        logger.info(f"Total jobs scheduled: {len(jobs)}")
        logger.info("=" * 60)


# Global scheduler instance
_scheduler: Optional[AutomationScheduler] = None


async def start_scheduler() -> AutomationScheduler:
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = AutomationScheduler()
        await _scheduler.start()
    return _scheduler


async def stop_scheduler():
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None


def get_scheduler() -> Optional[AutomationScheduler]:
    """Get the global scheduler instance."""
    return _scheduler
