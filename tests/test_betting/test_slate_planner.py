"""Unit tests for NFLCalendar and the sweep cron schedule.

Test Strategy:
1. Test week bounds and current-week clamping
2. Test next-week processing from Tuesday evening
3. Test schedule types and time to the next sweep
4. Test the cron expressions fire on the intended weekdays
5. Test broadcast windows read Eastern weekdays and Pacific hours
"""
from datetime import datetime

import pytest
from apscheduler.triggers.cron import CronTrigger

from gridlines.services.betting.slate_planner import OPTIMAL_SCHEDULE, NFLCalendar, time_slot
from gridlines.utils.timezone import UTC


@pytest.fixture
def calendar() -> NFLCalendar:
    return NFLCalendar(season_start="2025-09-04", weeks=18, tz="America/New_York")


class TestWeeks:
    """Tests for week arithmetic."""

    def test_week_bounds(self, calendar):
        """Week 1 runs Thursday 00:00 to Wednesday 23:59:59 Eastern."""
        start, end = calendar.week_bounds(1)

        assert start == datetime(2025, 9, 4, 4, 0, tzinfo=UTC)
        assert end == datetime(2025, 9, 11, 3, 59, 59, tzinfo=UTC)

    def test_week_bounds_rejects_out_of_range(self, calendar):
        with pytest.raises(ValueError):
            calendar.week_bounds(0)
        with pytest.raises(ValueError):
            calendar.week_bounds(19)

    def test_current_week(self, calendar):
        # Sunday 2025-09-14 1:00 PM ET
        assert calendar.current_week(datetime(2025, 9, 14, 17, 0, tzinfo=UTC)) == 2

    def test_monday_night_belongs_to_its_week(self, calendar):
        """Monday 8:15 PM ET is after midnight UTC but still week 2."""
        assert calendar.current_week(datetime(2025, 9, 16, 0, 15, tzinfo=UTC)) == 2

    def test_current_week_is_clamped(self, calendar):
        assert calendar.current_week(datetime(2025, 8, 1, tzinfo=UTC)) == 1
        assert calendar.current_week(datetime(2026, 2, 8, tzinfo=UTC)) == 18


class TestNextWeekProcessing:
    """Tests for weeks_to_process()."""

    def test_tuesday_afternoon_processes_current_week(self, calendar):
        # Tuesday 2025-09-16 5:00 PM ET
        now = datetime(2025, 9, 16, 21, 0, tzinfo=UTC)

        assert calendar.should_process_next_week(now) is False
        assert calendar.weeks_to_process(now) == [2]

    def test_tuesday_evening_adds_next_week(self, calendar):
        # Tuesday 2025-09-16 6:00 PM ET
        now = datetime(2025, 9, 16, 22, 0, tzinfo=UTC)

        assert calendar.should_process_next_week(now) is True
        assert calendar.weeks_to_process(now) == [2, 3]

    def test_sunday_processes_current_week_only(self, calendar):
        assert calendar.weeks_to_process(datetime(2025, 9, 14, 17, 0, tzinfo=UTC)) == [2]

    def test_last_week_has_no_next_week(self):
        calendar = NFLCalendar(season_start="2025-09-04", weeks=2, tz="America/New_York")

        # Wednesday 2025-09-17 noon ET, inside the last week
        assert calendar.weeks_to_process(datetime(2025, 9, 17, 16, 0, tzinfo=UTC)) == [2]


class TestSchedule:
    """Tests for schedule type and cron expressions."""

    def test_schedule_type(self, calendar):
        assert calendar.schedule_type(datetime(2025, 9, 14, 17, 0, tzinfo=UTC)) == 'game_day'
        assert calendar.schedule_type(datetime(2025, 9, 16, 17, 0, tzinfo=UTC)) == 'daily'

    def test_next_run_in(self, calendar):
        # Sunday 1:10 PM ET and Tuesday 1:00 PM ET
        assert calendar.next_run_in(datetime(2025, 9, 14, 17, 10, tzinfo=UTC)) == "20 minutes"
        assert calendar.next_run_in(datetime(2025, 9, 16, 17, 0, tzinfo=UTC)) == "5 hours"

    def test_optimal_schedule_is_a_copy(self):
        schedule = NFLCalendar.optimal_schedule()
        schedule['weekly'] = 'changed'

        assert OPTIMAL_SCHEDULE['weekly'] == '0 0 * * tue'

    @pytest.mark.parametrize("name", sorted(OPTIMAL_SCHEDULE))
    def test_cron_expressions_parse(self, name):
        CronTrigger.from_crontab(OPTIMAL_SCHEDULE[name], timezone="America/New_York")

    def test_game_day_sweep_skips_tuesday_and_wednesday(self):
        trigger = CronTrigger.from_crontab(OPTIMAL_SCHEDULE['game_day'], timezone="America/New_York")

        # From Tuesday noon ET the next sweep is Thursday 00:00 ET
        next_fire = trigger.get_next_fire_time(None, datetime(2025, 9, 16, 16, 0, tzinfo=UTC))

        assert next_fire == datetime(2025, 9, 18, 4, 0, tzinfo=UTC)

    def test_weekly_linking_runs_on_tuesday(self):
        trigger = CronTrigger.from_crontab(OPTIMAL_SCHEDULE['weekly'], timezone="America/New_York")

        # From Wednesday the next run is the following Tuesday 00:00 ET
        next_fire = trigger.get_next_fire_time(None, datetime(2025, 9, 17, 16, 0, tzinfo=UTC))

        assert next_fire == datetime(2025, 9, 23, 4, 0, tzinfo=UTC)


class TestTimeSlot:
    """Tests for broadcast windows."""

    @pytest.mark.parametrize("kickoff,expected", [
        # Thursday 8:15 PM ET is already Friday in UTC
        (datetime(2025, 9, 12, 0, 15, tzinfo=UTC), 'thursday'),
        (datetime(2025, 9, 14, 17, 0, tzinfo=UTC), 'sunday_early'),
        # London kickoff, 9:30 AM ET
        (datetime(2025, 10, 5, 13, 30, tzinfo=UTC), 'sunday_early'),
        (datetime(2025, 9, 14, 19, 0, tzinfo=UTC), 'sunday_afternoon'),
        (datetime(2025, 9, 14, 20, 25, tzinfo=UTC), 'sunday_afternoon'),
        (datetime(2025, 9, 14, 22, 0, tzinfo=UTC), 'sunday_night'),
        # SNF 8:20 PM ET is Monday in UTC
        (datetime(2025, 9, 15, 0, 20, tzinfo=UTC), 'sunday_night'),
        (datetime(2025, 9, 16, 0, 15, tzinfo=UTC), 'monday'),
        (datetime(2025, 12, 20, 21, 30, tzinfo=UTC), 'sunday_early'),
        (datetime(2025, 11, 28, 20, 0, tzinfo=UTC), 'sunday_early'),
    ])
    def test_time_slot(self, kickoff, expected):
        assert time_slot(kickoff) == expected

    def test_naive_kickoff_is_utc(self):
        assert time_slot(datetime(2025, 9, 15, 0, 20)) == 'sunday_night'

    def test_standard_time(self):
        """After the November switch 4:25 PM ET is still 1:25 PM PT."""
        assert time_slot(datetime(2025, 11, 9, 21, 25, tzinfo=UTC)) == 'sunday_afternoon'
