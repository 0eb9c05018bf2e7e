"""Session repository: the canonical in-memory collection and its backing file.

Every mutation rewrites the whole collection to ``sessions.json`` atomically
before returning. Imports merge external data into the collection:
imported records are placed first, de-duplicated by id (first occurrence
wins, so imported records replace local ones) and the result is sorted by
start date, newest first.

All public methods hold one re-entrant lock, so a store instance may be
shared between a UI thread and background workers. Change listeners run
after the lock is released.
"""

from __future__ import annotations

import logging
import threading
import uuid
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator

from devtrack import csv_codec, json_codec
from devtrack.errors import PersistenceError, SessionDecodeError, SessionImportError
from devtrack.fileio import read_text, write_text_atomic
from devtrack.models import Session, now_utc, to_utc
from devtrack.workspace import (
    EXPORT_CSV_NAME,
    EXPORT_JSON_NAME,
    export_dir as _export_dir,
    load_settings,
    sessions_path,
)

logger = logging.getLogger(__name__)

Listener = Callable[["SessionStore"], None]


def _coerce_id(session_id: uuid.UUID | str) -> uuid.UUID | None:
    if isinstance(session_id, uuid.UUID):
        return session_id
    try:
        return uuid.UUID(str(session_id))
    except ValueError:
        return None


def merge_sessions(imported: list[Session], existing: list[Session]) -> list[Session]:
    """Imported-first concatenation, de-duplicated by id, sorted newest first."""
    seen: set[uuid.UUID] = set()
    unique = []
    for s in imported + existing:
        if s.id in seen:
            continue
        seen.add(s.id)
        unique.append(s)
    unique.sort(key=lambda s: to_utc(s.start_date), reverse=True)
    return unique


class SessionStore:
    """Owns the ordered session list and mediates all reads/writes to disk."""

    def __init__(
        self,
        path: Path,
        export_dir: Path,
        strict_saves: bool = False,
        autoload: bool = True,
    ) -> None:
        self.path = Path(path)
        self.export_dir = Path(export_dir)
        self.strict_saves = strict_saves
        self.last_error: Exception | None = None
        self._sessions: list[Session] = []
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()
        if autoload:
            self.load()

    @classmethod
    def open(cls, root: Path | None = None) -> SessionStore:
        """Open the store for a workspace, honouring settings.yaml."""
        settings = load_settings(root)
        return cls(
            path=sessions_path(root),
            export_dir=_export_dir(root),
            strict_saves=settings.strict_saves,
        )

    # ── Read access ───────────────────────────────────────────

    @property
    def sessions(self) -> tuple[Session, ...]:
        with self._lock:
            return tuple(self._sessions)

    def get(self, session_id: uuid.UUID | str) -> Session | None:
        sid = _coerce_id(session_id)
        with self._lock:
            for s in self._sessions:
                if s.id == sid:
                    return s
        return None

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __iter__(self) -> Iterator[Session]:
        return iter(self.sessions)

    # ── Change notification ───────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a "collection changed" callback. Returns an unsubscribe function."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        # Called with the lock released: listeners may hand off to other
        # threads that read the store.
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener %r failed", listener)

    # ── Persistence ───────────────────────────────────────────

    def load(self) -> None:
        """Replace the in-memory collection with the backing file's contents.

        A missing file is an empty collection. An unreadable or corrupt file
        is logged, recorded in ``last_error`` and also loads as empty.
        """
        with self._lock:
            self._sessions = []
            if not self.path.exists():
                return
            try:
                self._sessions = json_codec.decode_sessions(read_text(self.path))
            except (OSError, UnicodeDecodeError, SessionDecodeError) as e:
                logger.error("Could not load sessions from %s: %s", self.path, e)
                self.last_error = e

    def save(self) -> bool:
        """Rewrite the backing file. Returns False (and logs) on failure."""
        with self._lock:
            try:
                write_text_atomic(self.path, json_codec.encode_sessions(self._sessions))
            except OSError as e:
                logger.error("Could not save sessions to %s: %s", self.path, e)
                self.last_error = e
                return False
            return True

    def _changed(self, saved: bool) -> None:
        """Run after a mutation, outside the lock.

        The in-memory change stands even if the save failed.
        """
        self._notify()
        if not saved and self.strict_saves:
            raise PersistenceError(f"Could not save sessions to {self.path}") from self.last_error

    # ── CRUD ──────────────────────────────────────────────────

    def create(
        self,
        project_name: str,
        seconds: float,
        start_date: datetime | None = None,
        note: str = "",
    ) -> Session:
        """Record a new session at the front of the collection."""
        session = Session(
            project_name=project_name,
            seconds=seconds,
            start_date=to_utc(start_date) if start_date is not None else now_utc(),
            note=note,
        )
        with self._lock:
            self._sessions.insert(0, session)
            saved = self.save()
        self._changed(saved)
        return session

    def update(
        self,
        session_id: uuid.UUID | str,
        *,
        project_name: str | None = None,
        seconds: float | None = None,
        start_date: datetime | None = None,
        note: str | None = None,
    ) -> Session | None:
        """Overwrite only the supplied fields. Unknown ids are ignored."""
        with self._lock:
            session = self.get(session_id)
            if session is None:
                return None
            if project_name is not None:
                session.project_name = project_name
            if seconds is not None:
                session.seconds = seconds
            if start_date is not None:
                session.start_date = to_utc(start_date)
            if note is not None:
                session.note = note
            saved = self.save()
        self._changed(saved)
        return session

    def delete(self, session_id: uuid.UUID | str) -> bool:
        """Remove a session if present. Returns whether anything was removed."""
        sid = _coerce_id(session_id)
        with self._lock:
            index = next((i for i, s in enumerate(self._sessions) if s.id == sid), None)
            if index is None:
                return False
            del self._sessions[index]
            saved = self.save()
        self._changed(saved)
        return True

    def clear_all(self) -> None:
        with self._lock:
            self._sessions = []
            saved = self.save()
        self._changed(saved)

    # ── Export ────────────────────────────────────────────────

    def _export(self, name: str, content: str) -> Path | None:
        path = self.export_dir / name
        try:
            write_text_atomic(path, content)
        except OSError as e:
            logger.error("Export to %s failed: %s", path, e)
            return None
        logger.info("Exported %d sessions to %s", len(self._sessions), path)
        return path

    def export_json(self) -> Path | None:
        """Write a pretty-printed JSON export. Returns its path, or None on failure."""
        with self._lock:
            return self._export(EXPORT_JSON_NAME, json_codec.encode_sessions(self._sessions, pretty=True))

    def export_csv(self) -> Path | None:
        """Write a CSV export. Returns its path, or None on failure."""
        with self._lock:
            return self._export(EXPORT_CSV_NAME, csv_codec.encode_sessions(self._sessions))

    # ── Import ────────────────────────────────────────────────

    @staticmethod
    def _read_import(path: Path) -> str:
        try:
            return path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SessionImportError(f"Could not read {path.name}: {e}") from e

    def _merge(self, imported: list[Session]) -> bool:
        self._sessions = merge_sessions(imported, self._sessions)
        return self.save()

    def import_json(self, path: Path | str) -> int:
        """Merge a JSON export. Returns the number of records in the file.

        Any read or parse failure raises SessionImportError and changes nothing.
        """
        path = Path(path)
        with self._lock:
            text = self._read_import(path)
            try:
                imported = json_codec.decode_sessions(text)
            except SessionDecodeError as e:
                raise SessionImportError(f"{path.name} is not a valid session export: {e}") from e
            saved = self._merge(imported)
        self._changed(saved)
        logger.info("Imported %d sessions from %s", len(imported), path)
        return len(imported)

    def import_csv(self, path: Path | str) -> int:
        """Merge a CSV export. Returns the number of well-formed rows parsed."""
        path = Path(path)
        with self._lock:
            text = self._read_import(path)
            if not csv_codec.split_lines(text):
                return 0
            imported = csv_codec.decode_sessions(text)
            saved = self._merge(imported)
        self._changed(saved)
        logger.info("Imported %d sessions from %s", len(imported), path)
        return len(imported)

    def import_file(self, path: Path | str) -> int:
        """Import by file extension (.json or .csv)."""
        path = Path(path)
        ext = path.suffix.lower()
        if ext == ".json":
            return self.import_json(path)
        if ext == ".csv":
            return self.import_csv(path)
        raise SessionImportError("Please select a JSON or CSV file.")
