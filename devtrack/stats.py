"""Weekly statistics derived from the stored sessions.

Read-only: nothing here mutates the collection. Sessions are bucketed into
days by their start date in the user's timezone.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import date, datetime, timedelta
from typing import Iterable
from zoneinfo import ZoneInfo

from devtrack.journal import display_project
from devtrack.models import WEEKDAYS, DailyStats, ProjectTime, Session, WeeklyStats


def week_bounds(today: date, week_start: str = "mon") -> tuple[date, date]:
    """Return (first, last) day of the week containing *today*."""
    start_idx = WEEKDAYS.index(week_start) if week_start in WEEKDAYS else 0
    days_since = (today.weekday() - start_idx) % 7
    first = today - timedelta(days=days_since)
    return first, first + timedelta(days=6)


def weekly_stats(
    sessions: Iterable[Session],
    today: date | None = None,
    tz: ZoneInfo | None = None,
    week_start: str = "mon",
) -> WeeklyStats:
    """Aggregate the current week's sessions per day and per project."""
    tz = tz or ZoneInfo("UTC")
    if today is None:
        today = datetime.now(tz).date()
    first, last = week_bounds(today, week_start)

    seconds_by_day: dict[date, float] = defaultdict(float)
    projects_by_day: dict[date, set[str]] = defaultdict(set)
    seconds_by_project: dict[str, float] = defaultdict(float)
    count = 0

    for s in sessions:
        day = s.start_date.astimezone(tz).date()
        if not first <= day <= last:
            continue
        count += 1
        name = display_project(s)
        seconds_by_day[day] += s.seconds
        projects_by_day[day].add(name)
        seconds_by_project[name] += s.seconds

    days = []
    for offset in range(7):
        day = first + timedelta(days=offset)
        days.append(DailyStats(
            day=day.strftime("%a"),
            hours=seconds_by_day[day] / 3600,
            projects=len(projects_by_day[day]),
        ))

    projects = [ProjectTime(name=n, hours=secs / 3600) for n, secs in seconds_by_project.items()]
    projects.sort(key=lambda p: p.hours, reverse=True)

    total_hours = sum(d.hours for d in days)
    busiest = max(days, key=lambda d: d.hours)

    return WeeklyStats(
        week_start=first.isoformat(),
        week_end=last.isoformat(),
        days=days,
        projects=projects,
        total_hours=total_hours,
        average_daily_hours=total_hours / 7,
        most_productive_day=busiest.day if busiest.hours > 0 else None,
        average_session_hours=total_hours / count if count else 0.0,
        session_count=count,
    )
