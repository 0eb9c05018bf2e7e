"""Journal search and display helpers."""

from __future__ import annotations

from typing import Iterable

from devtrack.models import Session

UNTITLED = "Untitled"
NO_DETAILS = "(No details)"


def display_project(session: Session) -> str:
    return session.project_name or UNTITLED


def display_note(session: Session) -> str:
    return session.note or NO_DETAILS


def filter_sessions(sessions: Iterable[Session], query: str = "") -> list[Session]:
    """Sessions whose project name or note contains *query* (case-insensitive)."""
    needle = (query or "").strip().casefold()
    if not needle:
        return list(sessions)
    return [
        s for s in sessions
        if needle in s.project_name.casefold() or needle in s.note.casefold()
    ]


def format_duration(seconds: float) -> str:
    """'1h 05m', '12m 03s' or '45s'."""
    total = max(0, int(seconds))
    hours, rem = divmod(total, 3600)
    minutes, secs = divmod(rem, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"
