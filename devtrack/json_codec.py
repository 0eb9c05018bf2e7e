"""JSON encoding/decoding for the session collection."""

from __future__ import annotations

import json
from typing import Iterable

from devtrack.errors import SessionDecodeError
from devtrack.models import Session


def encode_sessions(sessions: Iterable[Session], pretty: bool = False) -> str:
    """Serialize sessions as a JSON array. Compact unless *pretty*."""
    data = [s.to_dict() for s in sessions]
    if pretty:
        return json.dumps(data, indent=2, ensure_ascii=False) + "\n"
    return json.dumps(data, ensure_ascii=False, separators=(",", ":"))


def decode_sessions(text: str) -> list[Session]:
    """Parse a JSON array of sessions. Any malformed record rejects the whole document."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SessionDecodeError(f"Invalid JSON: {e}") from e
    if not isinstance(data, list):
        raise SessionDecodeError(f"Expected a JSON array of sessions, got {type(data).__name__}")
    sessions = []
    for i, item in enumerate(data):
        try:
            sessions.append(Session.from_dict(item))
        except SessionDecodeError as e:
            raise SessionDecodeError(f"Session {i}: {e}") from e
    return sessions
