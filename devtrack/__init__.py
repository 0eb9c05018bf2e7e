"""DevTrack core library — session store, exchange codecs and statistics.

Public API re-exports for convenient imports:
    from devtrack import SessionStore, weekly_stats, workspace_root, ...
"""

# Workspace, settings & paths
from devtrack.workspace import (
    workspace_root,
    setup_logging,
    load_settings,
    save_settings,
    get_user_timezone,
    settings_path,
    sessions_path,
    export_dir,
)

# File I/O
from devtrack.fileio import (
    read_text,
    read_yaml,
    write_text_atomic,
    write_yaml_atomic,
)

# Errors
from devtrack.errors import (
    DevTrackError,
    SessionDecodeError,
    SessionImportError,
    PersistenceError,
)

# Repository
from devtrack.store import SessionStore, merge_sessions

# Journal
from devtrack.journal import (
    filter_sessions,
    display_project,
    display_note,
    format_duration,
)

# Statistics
from devtrack.stats import week_bounds, weekly_stats

# Models
from devtrack.models import (
    Session,
    Settings,
    DailyStats,
    ProjectTime,
    WeeklyStats,
)
