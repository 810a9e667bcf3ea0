"""
NFL calendar for slate-level scheduling.

Weeks run Thursday 00:00 to Wednesday 23:59:59 in the scheduler timezone,
counted from the Thursday the season opens. Before the opener the current
week is 1; after the regular season it stays at the last week.

From Wednesday (or Tuesday evening) onward the next week's games are
processed as well, so lines exist well before Thursday night.
"""
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple, Union

from gridlines.core.config import settings
from gridlines.utils.timezone import UTC, get_zone, to_local, utc_now

# datetime.weekday(): Monday == 0
MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY, SUNDAY = range(7)

GAME_DAYS = (THURSDAY, FRIDAY, SATURDAY, SUNDAY, MONDAY)
NEXT_WEEK_DAYS = (WEDNESDAY, THURSDAY, FRIDAY, SATURDAY)
TUESDAY_EVENING_HOUR = 18

OPTIMAL_SCHEDULE = {
    # Daily checks at strategic times
    'morning': '0 6 * * *',
    'midday': '0 12 * * *',
    'evening': '0 18 * * *',
    # Every 30 minutes Thu-Mon (day names; APScheduler numbers weekdays from Monday)
    'game_day': '*/30 * * * thu,fri,sat,sun,mon',
    # Pre-game freeze checks
    'pre_game': '*/15 * * * *',
    # Tuesdays at midnight - weekly planning
    'weekly': '0 0 * * tue',
}


class NFLCalendar:
    """Week arithmetic for one regular season."""

    def __init__(
        self,
        season_start: Optional[Union[str, date]] = None,
        weeks: Optional[int] = None,
        tz: Optional[str] = None
    ):
        start = season_start or settings.NFL_SEASON_START
        self.season_start = date.fromisoformat(start) if isinstance(start, str) else start
        self.weeks = weeks or settings.NFL_REGULAR_SEASON_WEEKS
        self.tz = tz or settings.SCHEDULER_TIMEZONE

    def week_bounds(self, week: int) -> Tuple[datetime, datetime]:
        """
        UTC start and end of a week.

        Returns:
            (Thursday 00:00, Wednesday 23:59:59) in the scheduler timezone, as UTC
        """
        if not 1 <= week <= self.weeks:
            raise ValueError(f"Week must be between 1 and {self.weeks}, got {week}")
        first_day = self.season_start + timedelta(weeks=week - 1)
        start = datetime.combine(first_day, time(0, 0), tzinfo=get_zone(self.tz))
        end = start + timedelta(days=7) - timedelta(seconds=1)
        return start.astimezone(UTC), end.astimezone(UTC)

    def current_week(self, now: Optional[datetime] = None) -> int:
        """Week containing now, clamped to 1..weeks."""
        local_day = to_local(now or utc_now(), self.tz).date()
        days = (local_day - self.season_start).days
        if days < 0:
            return 1
        return min(days // 7 + 1, self.weeks)

    def should_process_next_week(self, now: Optional[datetime] = None) -> bool:
        """Wednesday through Saturday, or Tuesday from 18:00."""
        local = to_local(now or utc_now(), self.tz)
        if local.weekday() in NEXT_WEEK_DAYS:
            return True
        return local.weekday() == TUESDAY and local.hour >= TUESDAY_EVENING_HOUR

    def weeks_to_process(self, now: Optional[datetime] = None) -> List[int]:
        now = now or utc_now()
        current = self.current_week(now)
        weeks = [current]
        if self.should_process_next_week(now) and current + 1 <= self.weeks:
            weeks.append(current + 1)
        return weeks

    def schedule_type(self, now: Optional[datetime] = None) -> str:
        """'game_day' Thursday through Monday, 'daily' otherwise."""
        local = to_local(now or utc_now(), self.tz)
        return 'game_day' if local.weekday() in GAME_DAYS else 'daily'

    def next_run_in(self, now: Optional[datetime] = None) -> str:
        """Rough time until the next sweep for the current schedule type."""
        local = to_local(now or utc_now(), self.tz)
        if self.schedule_type(now) == 'game_day':
            return f"{30 - local.minute % 30} minutes"
        return f"{6 - local.hour % 6} hours"

    @staticmethod
    def optimal_schedule() -> Dict[str, str]:
        """Cron expressions for each sweep frequency."""
        return dict(OPTIMAL_SCHEDULE)


def time_slot(
    kickoff_time: datetime,
    day_tz: str = "America/New_York",
    hour_tz: str = "America/Los_Angeles"
) -> str:
    """
    Broadcast window of a game.

    The weekday is read in Eastern time and Sunday games are split by the
    Pacific kickoff hour: before noon is early, noon to 3 PM is afternoon,
    later is the night game. Saturday and midweek games group with the
    Sunday early window.

    Returns:
        'thursday', 'sunday_early', 'sunday_afternoon', 'sunday_night' or 'monday'
    """
    weekday = to_local(kickoff_time, day_tz).weekday()
    if weekday == THURSDAY:
        return 'thursday'
    if weekday == MONDAY:
        return 'monday'
    if weekday != SUNDAY:
        return 'sunday_early'
    hour = to_local(kickoff_time, hour_tz).hour
    if hour < 12:
        return 'sunday_early'
    if hour < 15:
        return 'sunday_afternoon'
    return 'sunday_night'
