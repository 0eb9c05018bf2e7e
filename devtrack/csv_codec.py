"""CSV encoding/decoding for session exchange.

Every field is quoted, embedded quotes are doubled and embedded newlines
collapse to a single space, so a row never spans more than one line. The
parser works on one already-split line at a time.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import datetime
from typing import Iterable

from devtrack.models import Session, format_timestamp, now_utc, to_utc

logger = logging.getLogger(__name__)

HEADER = ["id", "projectName", "seconds", "startDate", "note"]
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


def escape_field(value: str) -> str:
    """Quote one field: double quotes, newlines become spaces."""
    text = value.replace('"', '""').replace("\n", " ")
    return f'"{text}"'


def encode_row(session: Session) -> str:
    fields = [
        str(session.id),
        session.project_name,
        str(float(session.seconds)),
        format_timestamp(session.start_date, timespec="seconds"),
        session.note,
    ]
    return ",".join(escape_field(f) for f in fields)


def encode_sessions(sessions: Iterable[Session]) -> str:
    """Header row first, then one row per session, joined with newlines."""
    lines = [",".join(HEADER)]
    lines.extend(encode_row(s) for s in sessions)
    return "\n".join(lines)


def parse_line(line: str) -> list[str]:
    """Split one already-isolated line into fields, honouring quotes.

    A quote toggles the in-quotes flag, except a doubled quote inside quotes,
    which yields a literal quote. Commas outside quotes end a field.
    """
    fields: list[str] = []
    current: list[str] = []
    in_quotes = False
    i = 0
    n = len(line)
    while i < n:
        c = line[i]
        if c == '"':
            if in_quotes and i + 1 < n and line[i + 1] == '"':
                current.append('"')
                i += 1
            else:
                in_quotes = not in_quotes
        elif c == "," and not in_quotes:
            fields.append("".join(current))
            current = []
        else:
            current.append(c)
        i += 1
    fields.append("".join(current))
    return fields


def _parse_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value.strip())
    except ValueError:
        return uuid.uuid4()


def _parse_seconds(value: str) -> float:
    try:
        seconds = float(value.strip())
    except ValueError:
        return 0.0
    return seconds if math.isfinite(seconds) else 0.0


def _parse_start_date(value: str) -> datetime:
    try:
        return to_utc(datetime.strptime(value.strip(), TIMESTAMP_FORMAT))
    except ValueError:
        return now_utc()


def split_lines(text: str) -> list[str]:
    """Non-empty lines, tolerating CRLF line endings."""
    lines = (line.rstrip("\r") for line in text.split("\n"))
    return [line for line in lines if line]


def decode_row(fields: list[str]) -> Session | None:
    """Build a session from parsed fields, or None if the row is too short."""
    if len(fields) < len(HEADER):
        return None
    return Session(
        id=_parse_id(fields[0]),
        project_name=fields[1],
        seconds=_parse_seconds(fields[2]),
        start_date=_parse_start_date(fields[3]),
        note=fields[4],
    )


def decode_sessions(text: str) -> list[Session]:
    """Decode a CSV document. The first line is a header; short rows are skipped."""
    lines = split_lines(text)
    sessions = []
    for lineno, line in enumerate(lines[1:], start=2):
        session = decode_row(parse_line(line))
        if session is None:
            logger.debug("Skipping malformed CSV row %d", lineno)
            continue
        sessions.append(session)
    return sessions
