"""Exception types raised by the DevTrack core."""

from __future__ import annotations


class DevTrackError(Exception):
    """Base class for DevTrack errors."""


class SessionDecodeError(DevTrackError, ValueError):
    """A serialized session document could not be decoded."""


class SessionImportError(DevTrackError):
    """An import was aborted; nothing was merged."""


class PersistenceError(DevTrackError):
    """The backing store could not be written (strict saves only)."""
