#!/usr/bin/env python3
"""
Background runner for the gridlines automation scheduler.

This script runs the automation scheduler as a standalone background service.
It can be run via systemd, supervisor, or directly.

Usage:
    python run_scheduler.py              # Run in foreground
    python run_scheduler.py --once       # Run one lines sweep and exit
    python run_scheduler.py --week 6     # Emergency sweep of one week
    python run_scheduler.py --status     # Print calendar status and exit
    python run_scheduler.py --list-jobs  # Print the cron schedule and exit
"""
import argparse
import asyncio
import json
import signal
import sys

from gridlines.core.config import settings
from gridlines.core.database import SessionLocal, init_db
from gridlines.core.logging import configure_logging, get_logger, sweep_context
from gridlines.core.scheduler import AutomationScheduler
from gridlines.services.betting.lines_scheduler import BettingLinesScheduler
from gridlines.services.betting.slate_planner import NFLCalendar
from gridlines.services.sync.orchestrator import SyncOrchestrator

configure_logging(level=settings.LOG_LEVEL, json_output=settings.LOG_JSON)
logger = get_logger(__name__)


class SchedulerRunner:
    """Runner for the automation scheduler."""

    def __init__(self):
        self.scheduler: AutomationScheduler = None
        self.shutdown = False

    async def start(self):
        """Start the scheduler and run until shutdown."""
        logger.info("🚀 Starting scheduler runner...")

        self.scheduler = AutomationScheduler()
        await self.scheduler.start()

        logger.info("✅ Scheduler is now running")
        logger.info("Press Ctrl+C to stop")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        while not self.shutdown:
            await asyncio.sleep(1)

        await self.scheduler.stop()
        logger.info("✅ Scheduler runner stopped")

    def _set_shutdown(self):
        logger.info("⏹️  Shutdown signal received")
        self.shutdown = True


async def run_once(week: int = None) -> bool:
    """Run a single sweep (or one week's emergency fetch) and print the result."""
    with sweep_context(f"emergency_week_{week}" if week else "lines_sweep_manual"):
        db = SessionLocal()
        orchestrator = SyncOrchestrator(db)
        try:
            lines_scheduler = BettingLinesScheduler(orchestrator)
            if week:
                result = await lines_scheduler.run_emergency_fetch(week)
            else:
                result = await lines_scheduler.run_automatic_update()
            print(json.dumps(result.to_dict(), indent=2))
            return result.success
        finally:
            await orchestrator.cleanup()
            db.close()


def run_status_check() -> bool:
    """Print the calendar and snapshot status."""
    db = SessionLocal()
    try:
        status = BettingLinesScheduler(SyncOrchestrator(db)).get_scheduler_status()
        print(json.dumps(status, indent=2, default=str))
        return True
    finally:
        db.close()


def list_jobs():
    """Print the cron expressions the scheduler registers."""
    print("=" * 60)
    print("SCHEDULED AUTOMATION JOBS")
    print("=" * 60)
    print()
    for name, expression in NFLCalendar.optimal_schedule().items():
        print(f"📋 {name}")
        print(f"   Schedule: {expression} ({settings.SCHEDULER_TIMEZONE})")
        print()
    print("=" * 60)


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run the gridlines automation scheduler'
    )

    parser.add_argument(
        '--once',
        action='store_true',
        help='Run one automatic betting lines update and exit'
    )

    parser.add_argument(
        '--week',
        type=int,
        metavar='N',
        help='Run an emergency fetch for week N and exit'
    )

    parser.add_argument(
        '--status',
        action='store_true',
        help='Print scheduler status and exit'
    )

    parser.add_argument(
        '--list-jobs',
        action='store_true',
        help='List all scheduled jobs and exit'
    )

    args = parser.parse_args()

    missing = settings.validate_required_secrets()
    if missing:
        if settings.is_production():
            logger.error(f"❌ Missing required secrets: {', '.join(missing)}")
            return 1
        logger.warning(f"⚠️ Missing secrets: {', '.join(missing)}; default lines will be served")

    init_db()

    if args.list_jobs:
        list_jobs()
        return 0

    if args.status:
        return 0 if run_status_check() else 1

    if args.once or args.week:
        return 0 if asyncio.run(run_once(args.week)) else 1

    runner = SchedulerRunner()

    try:
        asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("🛑 Received interrupt, shutting down...")
        return 0
    except Exception as e:
        logger.error(f"❌ Scheduler error: {e}")
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
