"""
Automatic betting-lines scheduler.

Decides which weeks a sweep covers and runs the per-game refresh/freeze
logic for them. Called by the APScheduler jobs in gridlines.core.scheduler
and by run_scheduler.py.
"""
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from gridlines.core.logging import get_logger
from gridlines.services.betting.slate_planner import NFLCalendar
from gridlines.services.sync.orchestrator import SyncOrchestrator
from gridlines.utils.timezone import utc_now

logger = get_logger(__name__)

# Games that kicked off this long ago are still swept, so a missed freeze is caught up
PREGAME_LOOKBACK = timedelta(hours=6)


@dataclass
class SchedulerRunResult:
    success: bool = False
    weeks_processed: List[int] = field(default_factory=list)
    games_processed: int = 0
    errors: List[str] = field(default_factory=list)
    duration_ms: int = 0
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'success': self.success,
            'weeks_processed': list(self.weeks_processed),
            'games_processed': self.games_processed,
            'errors': list(self.errors),
            'duration_ms': self.duration_ms,
            'timestamp': self.timestamp.isoformat(),
        }


class BettingLinesScheduler:
    """Slate-level driver for BettingLinesCacheService."""

    def __init__(self, orchestrator: SyncOrchestrator, calendar: Optional[NFLCalendar] = None):
        self.orchestrator = orchestrator
        self.calendar = calendar or orchestrator.calendar

    async def run_automatic_update(self, now: Optional[datetime] = None) -> SchedulerRunResult:
        """
        Run automatic betting lines management for the current week, plus
        the next one from Tuesday evening onward.
        """
        now = now or utc_now()
        started = time.monotonic()
        result = SchedulerRunResult(timestamp=now)

        logger.info("🤖 Starting automatic betting lines update...")
        weeks = self.calendar.weeks_to_process(now)
        logger.info(f"📅 Processing weeks: {', '.join(str(w) for w in weeks)}")

        for week in weeks:
            try:
                summary = await self.orchestrator.ensure_lines_for_week(week, now)
                result.weeks_processed.append(week)
                result.games_processed += summary['total']
                result.errors.extend(summary['errors'])
            except Exception as e:
                error = f"Error processing Week {week}: {e}"
                logger.error(f"❌ {error}")
                result.errors.append(error)

        result.success = not result.errors
        result.duration_ms = int((time.monotonic() - started) * 1000)

        if result.success:
            logger.info(
                f"✅ Automatic betting lines update completed in {result.duration_ms}ms: "
                f"{result.games_processed} games across {len(result.weeks_processed)} weeks"
            )
        else:
            logger.warning(f"⚠️ Automatic betting lines update completed with {len(result.errors)} errors")
        return result

    async def run_emergency_fetch(
        self,
        week: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> SchedulerRunResult:
        """Manual sweep of one week (defaults to the current week)."""
        now = now or utc_now()
        week = week or self.calendar.current_week(now)
        started = time.monotonic()
        result = SchedulerRunResult(timestamp=now)

        logger.info(f"🚨 Running emergency betting lines fetch for Week {week}...")
        try:
            summary = await self.orchestrator.ensure_lines_for_week(week, now)
            result.weeks_processed = [week]
            result.games_processed = summary['total']
            result.errors.extend(summary['errors'])
            result.success = not result.errors
        except Exception as e:
            error = f"Emergency fetch failed for Week {week}: {e}"
            logger.error(f"❌ {error}")
            result.errors.append(error)

        result.duration_ms = int((time.monotonic() - started) * 1000)
        if result.success:
            logger.info(f"✅ Emergency fetch completed for Week {week} in {result.duration_ms}ms")
        return result

    async def run_pregame_check(self, now: Optional[datetime] = None) -> SchedulerRunResult:
        """
        Sweep only stored games close to kickoff.

        Covers games kicking off within the near-kickoff window and games
        that started recently, so freezes happen on time without touching
        the rest of the slate.
        """
        now = now or utc_now()
        started = time.monotonic()
        result = SchedulerRunResult(timestamp=now)

        service = self.orchestrator.lines_service
        games = self.orchestrator.games_near_kickoff(
            now, ahead=service.policy.near_kickoff_window, behind=PREGAME_LOOKBACK
        )
        if games:
            try:
                summary = await service.ensure_lines_for_games(games, now=now)
                result.games_processed = summary['total']
                result.errors.extend(summary['errors'])
            except Exception as e:
                result.errors.append(f"Pre-game check failed: {e}")
                logger.error(f"❌ Pre-game check failed: {e}")

        result.success = not result.errors
        result.duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(f"⏰ Pre-game check: {result.games_processed} games near kickoff")
        return result

    def get_scheduler_status(self, now: Optional[datetime] = None) -> Dict[str, Any]:
        """Current week, schedule type and time to the next sweep."""
        now = now or utc_now()
        return {
            'current_week': self.calendar.current_week(now),
            'weeks_to_process': self.calendar.weeks_to_process(now),
            'schedule_type': self.calendar.schedule_type(now),
            'next_run_in': self.calendar.next_run_in(now),
            'current_time': now.isoformat(),
            'archivable_snapshots': self.orchestrator.lines_service.count_archivable(now),
        }
