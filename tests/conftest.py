"""Shared test fixtures for DevTrack tests."""

from __future__ import annotations

import os
import uuid
from datetime import datetime, timezone
from pathlib import Path

import pytest
import yaml

from devtrack.models import Session
from devtrack.store import SessionStore


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """Create a temporary workspace with a settings file and export dir."""
    root = tmp_path / "workspace"
    root.mkdir()
    exports = tmp_path / "exports"

    settings = {
        "timezone": "UTC",
        "week_start": "mon",
        "export_dir": str(exports),
    }
    (root / "settings.yaml").write_text(
        yaml.dump(settings, default_flow_style=False), encoding="utf-8"
    )

    os.environ["DEVTRACK_ROOT"] = str(root)
    yield root
    if "DEVTRACK_ROOT" in os.environ:
        del os.environ["DEVTRACK_ROOT"]


@pytest.fixture
def store(workspace: Path) -> SessionStore:
    return SessionStore.open(workspace)


@pytest.fixture
def sample_sessions() -> list[Session]:
    """Three sessions, newest first."""
    return [
        Session(
            id=uuid.UUID("3f2b8c1e-0000-4000-8000-000000000003"),
            project_name="DevTrack App",
            seconds=5400.0,
            start_date=utc(2024, 3, 6, 14, 0, 0),
            note='Wired up "export"\nand import',
        ),
        Session(
            id=uuid.UUID("3f2b8c1e-0000-4000-8000-000000000002"),
            project_name="",
            seconds=0.0,
            start_date=utc(2024, 3, 5, 9, 30, 0),
            note="",
        ),
        Session(
            id=uuid.UUID("3f2b8c1e-0000-4000-8000-000000000001"),
            project_name="API, v2",
            seconds=1234.5,
            start_date=utc(2024, 3, 4, 8, 0, 0),
            note="refactor",
        ),
    ]
