"""Typed dataclasses for the DevTrack data model.

Sessions use from_dict/to_dict for the JSON wire format.
camelCase in JSON is mapped to snake_case in Python.
Settings are lenient: unknown keys are ignored, missing keys use defaults.
"""

from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from devtrack.errors import SessionDecodeError


# Numeric startDate values (Apple's default date encoding) count seconds from here.
REFERENCE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


# ── Timestamps ────────────────────────────────────────────────


def to_utc(dt: datetime) -> datetime:
    """Return *dt* as an aware UTC datetime. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def format_timestamp(dt: datetime, timespec: str = "milliseconds") -> str:
    """'2024-01-01T00:00:00.000Z' style ISO-8601 in UTC."""
    return to_utc(dt).isoformat(timespec=timespec).replace("+00:00", "Z")


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO-8601 string or a reference-date number into aware UTC."""
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return REFERENCE_EPOCH + timedelta(seconds=value)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"Invalid timestamp: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    return to_utc(datetime.fromisoformat(text))


def now_utc() -> datetime:
    return datetime.now(timezone.utc)


# ── Session ───────────────────────────────────────────────────


def _require(d: dict[str, Any], key: str) -> Any:
    if key not in d:
        raise SessionDecodeError(f"Missing required field: {key}")
    return d[key]


@dataclass
class Session:
    """One completed interval of tracked work."""

    project_name: str = ""
    seconds: float = 0.0
    start_date: datetime = field(default_factory=now_utc)
    note: str = ""
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Session:
        """Strict decode: every field except ``note`` must be present and well-formed."""
        if not isinstance(d, dict):
            raise SessionDecodeError(f"Session must be an object, got {type(d).__name__}")

        raw_id = _require(d, "id")
        try:
            session_id = uuid.UUID(raw_id) if isinstance(raw_id, str) else None
        except ValueError:
            session_id = None
        if session_id is None:
            raise SessionDecodeError(f"Invalid id: {raw_id!r}")

        project_name = _require(d, "projectName")
        if not isinstance(project_name, str):
            raise SessionDecodeError(f"projectName must be a string: {project_name!r}")

        seconds = _require(d, "seconds")
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            raise SessionDecodeError(f"seconds must be numeric: {seconds!r}")
        try:
            seconds = float(seconds)
        except OverflowError as e:
            raise SessionDecodeError(f"seconds out of range: {e}") from e
        if not math.isfinite(seconds):
            raise SessionDecodeError(f"seconds must be finite: {seconds!r}")

        try:
            start_date = parse_timestamp(_require(d, "startDate"))
        except (ValueError, OverflowError) as e:
            raise SessionDecodeError(f"Invalid startDate: {e}") from e

        note = d.get("note")
        if note is None:
            note = ""
        elif not isinstance(note, str):
            raise SessionDecodeError(f"note must be a string: {note!r}")

        return cls(
            id=session_id,
            project_name=project_name,
            seconds=seconds,
            start_date=start_date,
            note=note,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "projectName": self.project_name,
            "seconds": self.seconds,
            "startDate": format_timestamp(self.start_date),
            "note": self.note,
        }


# ── Settings ──────────────────────────────────────────────────


WEEKDAYS = ["mon", "tue", "wed", "thu", "fri", "sat", "sun"]


@dataclass
class Settings:
    timezone: str = "UTC"
    week_start: str = "mon"
    export_dir: str | None = None
    strict_saves: bool = False

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Settings:
        if not d or not isinstance(d, dict):
            return cls()
        week_start = str(d.get("week_start", "mon")).strip().lower()[:3]
        if week_start not in WEEKDAYS:
            week_start = "mon"
        export_dir = d.get("export_dir")
        return cls(
            timezone=str(d.get("timezone", "UTC")),
            week_start=week_start,
            export_dir=str(export_dir) if export_dir else None,
            strict_saves=bool(d.get("strict_saves", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "timezone": self.timezone,
            "week_start": self.week_start,
        }
        if self.export_dir:
            d["export_dir"] = self.export_dir
        if self.strict_saves:
            d["strict_saves"] = True
        return d


# ── Statistics ────────────────────────────────────────────────


@dataclass
class DailyStats:
    day: str = ""  # Mon, Tue, ...
    hours: float = 0.0
    projects: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"day": self.day, "hours": round(self.hours, 2), "projects": self.projects}


@dataclass
class ProjectTime:
    name: str = ""
    hours: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "hours": round(self.hours, 2)}


@dataclass
class WeeklyStats:
    week_start: str = ""  # ISO date
    week_end: str = ""
    days: list[DailyStats] = field(default_factory=list)
    projects: list[ProjectTime] = field(default_factory=list)
    total_hours: float = 0.0
    average_daily_hours: float = 0.0
    most_productive_day: str | None = None
    average_session_hours: float = 0.0
    session_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "weekStart": self.week_start,
            "weekEnd": self.week_end,
            "days": [d.to_dict() for d in self.days],
            "projects": [p.to_dict() for p in self.projects],
            "totalHours": round(self.total_hours, 2),
            "averageDailyHours": round(self.average_daily_hours, 2),
            "mostProductiveDay": self.most_productive_day,
            "averageSessionHours": round(self.average_session_hours, 2),
            "sessionCount": self.session_count,
        }
