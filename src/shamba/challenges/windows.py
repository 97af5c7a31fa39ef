"""Challenge window keys and week boundary helpers.

A recurring weekly template gets one progress row per ISO week; a one-off
template has a single window keyed ``once``.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from shamba.db.models import ChallengeTemplate

ONCE = "once"


def get_week_iso(dt: datetime | date) -> str:
    """Get ISO week string e.g. '2026-W09'. Uses %G-W%V (ISO year + ISO week)."""
    return dt.strftime("%G-W%V")


def get_monday(dt: datetime | date) -> date:
    """Get the Monday of the ISO week containing dt."""
    d = dt.date() if isinstance(dt, datetime) else dt
    return d - timedelta(days=d.weekday())


def is_weekly(template: ChallengeTemplate) -> bool:
    return bool(template.is_recurring) and template.recurrence == "weekly"


def window_key(template: ChallengeTemplate, day: date) -> str:
    """Key of the window of ``template`` that contains ``day``."""
    if is_weekly(template):
        return get_week_iso(day)
    return ONCE


def window_ends_on(template: ChallengeTemplate, day: date) -> date | None:
    """Last day of the window containing ``day`` (None for an open-ended one-off)."""
    if is_weekly(template):
        sunday = get_monday(day) + timedelta(days=6)
        if template.end_date is not None:
            return min(sunday, template.end_date - timedelta(days=1))
        return sunday
    if template.end_date is not None:
        return template.end_date - timedelta(days=1)
    return None


def is_open(template: ChallengeTemplate, day: date) -> bool:
    """Whether ``day`` falls in the template's [start_date, end_date) range."""
    if not template.is_active or day < template.start_date:
        return False
    return template.end_date is None or day < template.end_date
