"""Unit tests for challenge windows and week boundary computation."""

from datetime import date, datetime, timezone

from shamba.challenges.windows import (
    ONCE,
    get_monday,
    get_week_iso,
    is_open,
    window_ends_on,
    window_key,
)
from shamba.db.models import ChallengeTemplate


def _template(weekly: bool = True, start: date = date(2026, 1, 1), end: date | None = None) -> ChallengeTemplate:
    return ChallengeTemplate(
        slug="t",
        name="T",
        scope="individual",
        target_action="photo_upload",
        target_count=3,
        is_recurring=weekly,
        recurrence="weekly" if weekly else None,
        start_date=start,
        end_date=end,
        is_active=True,
    )


class TestWeekIso:
    """A weekly window runs Monday to Sunday."""

    def test_friday_belongs_to_current_week(self):
        mon = datetime(2026, 2, 23, 10, 0, 0, tzinfo=timezone.utc)
        fri = datetime(2026, 2, 27, 10, 0, 0, tzinfo=timezone.utc)
        assert get_week_iso(mon) == get_week_iso(fri)

    def test_sunday_belongs_to_current_week(self):
        mon = datetime(2026, 2, 23, 10, 0, 0, tzinfo=timezone.utc)
        sun = datetime(2026, 3, 1, 10, 0, 0, tzinfo=timezone.utc)
        assert get_week_iso(mon) == get_week_iso(sun)

    def test_next_monday_is_new_week(self):
        sun = datetime(2026, 3, 1, 23, 59, 59, tzinfo=timezone.utc)
        next_mon = datetime(2026, 3, 2, 0, 0, 0, tzinfo=timezone.utc)
        assert get_week_iso(sun) != get_week_iso(next_mon)

    def test_format(self):
        assert get_week_iso(date(2026, 2, 25)) == "2026-W09"

    def test_iso_year_at_new_year(self):
        """1 Jan 2027 is a Friday and belongs to the last ISO week of 2026."""
        assert get_week_iso(date(2027, 1, 1)) == "2026-W53"


class TestGetMonday:
    def test_monday_returns_itself(self):
        mon = datetime(2026, 2, 23, 15, 30, 0, tzinfo=timezone.utc)
        assert get_monday(mon) == date(2026, 2, 23)

    def test_sunday_returns_monday(self):
        sun = datetime(2026, 3, 1, 23, 0, 0, tzinfo=timezone.utc)
        assert get_monday(sun) == date(2026, 2, 23)

    def test_date_input(self):
        assert get_monday(date(2026, 2, 27)) == date(2026, 2, 23)


class TestWindowKey:
    def test_weekly_template_keys_by_week(self):
        template = _template(weekly=True)
        assert window_key(template, date(2026, 2, 25)) == "2026-W09"
        assert window_key(template, date(2026, 3, 2)) == "2026-W10"

    def test_one_off_template_has_single_window(self):
        template = _template(weekly=False)
        assert window_key(template, date(2026, 2, 25)) == ONCE
        assert window_key(template, date(2026, 9, 1)) == ONCE


class TestWindowEnds:
    def test_weekly_ends_sunday(self):
        assert window_ends_on(_template(), date(2026, 2, 25)) == date(2026, 3, 1)

    def test_weekly_clipped_by_end_date(self):
        template = _template(end=date(2026, 2, 27))
        assert window_ends_on(template, date(2026, 2, 25)) == date(2026, 2, 26)

    def test_open_ended_one_off(self):
        assert window_ends_on(_template(weekly=False), date(2026, 2, 25)) is None

    def test_one_off_with_end_date(self):
        template = _template(weekly=False, end=date(2026, 6, 1))
        assert window_ends_on(template, date(2026, 2, 25)) == date(2026, 5, 31)


class TestIsOpen:
    def test_before_start(self):
        assert is_open(_template(start=date(2026, 3, 1)), date(2026, 2, 28)) is False

    def test_on_start(self):
        assert is_open(_template(start=date(2026, 3, 1)), date(2026, 3, 1)) is True

    def test_end_date_is_exclusive(self):
        template = _template(end=date(2026, 3, 10))
        assert is_open(template, date(2026, 3, 9)) is True
        assert is_open(template, date(2026, 3, 10)) is False

    def test_inactive_template_closed(self):
        template = _template()
        template.is_active = False
        assert is_open(template, date(2026, 3, 9)) is False
