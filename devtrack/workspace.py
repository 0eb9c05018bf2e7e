"""Workspace root, settings, timezone, path helpers for DevTrack."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from devtrack.fileio import read_yaml, write_yaml_atomic
from devtrack.models import Settings

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

EXPORT_JSON_NAME = "DevTrack-Sessions.json"
EXPORT_CSV_NAME = "DevTrack-Sessions.csv"

_package_logger = logging.getLogger("devtrack")


def setup_logging(level: str | int | None = None, file: Path | None = None) -> None:
    """Configure the ``devtrack`` logger.

    Level defaults to $DEVTRACK_LOG_LEVEL or INFO. Logs go to stderr unless
    *file* is given (the TUI owns the terminal).
    """
    if level is None:
        level = os.environ.get("DEVTRACK_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    _package_logger.setLevel(level)
    _package_logger.handlers.clear()
    handler: logging.Handler
    if file is not None:
        handler = logging.FileHandler(file, encoding="utf-8")
    else:
        handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    _package_logger.addHandler(handler)
    _package_logger.propagate = False


def workspace_root() -> Path:
    """Get the data directory holding sessions.json and settings.yaml."""
    return Path(
        os.environ.get("DEVTRACK_ROOT", str(Path.home() / "devtrack"))
    ).expanduser().resolve()


def load_settings(root: Path | None = None) -> Settings:
    """Load settings.yaml; missing or malformed files yield defaults."""
    try:
        return Settings.from_dict(read_yaml(settings_path(root)))
    except Exception:
        _package_logger.warning("Ignoring unreadable settings file %s", settings_path(root))
        return Settings()


def save_settings(settings: Settings, root: Path | None = None) -> None:
    write_yaml_atomic(settings_path(root), settings.to_dict())


def get_user_timezone(root: Path | None = None) -> ZoneInfo:
    """Get user's timezone from settings.yaml, defaulting to UTC."""
    try:
        return ZoneInfo(load_settings(root).timezone)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


# ── Path helpers ──────────────────────────────────────────────

def settings_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "settings.yaml"


def sessions_path(root: Path | None = None) -> Path:
    if root is None:
        root = workspace_root()
    return root / "sessions.json"


def export_dir(root: Path | None = None) -> Path:
    """Scratch directory for exports, distinct from the backing store."""
    configured = load_settings(root).export_dir
    if configured:
        return Path(configured).expanduser()
    return Path(tempfile.gettempdir())
