#!/usr/bin/env python3
"""DevTrack TUI — timer, journal and data exchange powered by Textual."""

from __future__ import annotations

import threading
import time
from datetime import datetime
from pathlib import Path

from textual import on, work
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.containers import Horizontal, Vertical
from textual.widgets import DataTable, Footer, Header, Input, Label, Static, TextArea

from devtrack import (
    SessionImportError,
    SessionStore,
    display_note,
    display_project,
    filter_sessions,
    format_duration,
    get_user_timezone,
    setup_logging,
    workspace_root,
)


# ── Timer ──────────────────────────────────────────────────────


class Stopwatch:
    """Elapsed-time counter that can be paused and resumed."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        self.started_at: datetime | None = None
        self._accumulated = 0.0
        self._resumed: float | None = None

    @property
    def running(self) -> bool:
        return self._resumed is not None

    def start(self) -> None:
        if self.running:
            return
        if self.started_at is None:
            self.started_at = datetime.now().astimezone()
        self._resumed = time.monotonic()

    def pause(self) -> None:
        if self._resumed is not None:
            self._accumulated += time.monotonic() - self._resumed
            self._resumed = None

    @property
    def elapsed(self) -> float:
        if self._resumed is None:
            return self._accumulated
        return self._accumulated + time.monotonic() - self._resumed


def _clock(seconds: float) -> str:
    total = int(seconds)
    return f"{total // 3600:02d}:{total % 3600 // 60:02d}:{total % 60:02d}"


# ── Stylesheet ─────────────────────────────────────────────────

APP_CSS = """
#main-layout { height: 1fr; }

#timer-pane {
    width: 40;
    padding: 0 1;
    border-right: tall $primary-background-darken-2;
}

#journal-pane { width: 1fr; padding: 0 1; }

#timer-display {
    height: 3;
    content-align: center middle;
    text-style: bold;
    color: $warning;
}

#note-area { height: 8; }

#journal-table { height: 1fr; }

.section-title { text-style: bold; margin: 1 0 0 0; }

#status-bar {
    dock: bottom;
    height: 1;
    background: $primary-background;
    color: $text-muted;
    padding: 0 2;
}
"""


# ── App ────────────────────────────────────────────────────────


class DevTrackApp(App):
    TITLE = "DevTrack"
    CSS = APP_CSS

    BINDINGS = [
        Binding("f2", "toggle_timer", "Start/Pause"),
        Binding("f3", "reset_timer", "Reset"),
        Binding("f4", "save_session", "Save"),
        Binding("f5", "export('json')", "Export JSON"),
        Binding("f6", "export('csv')", "Export CSV"),
        Binding("f7", "import_file", "Import"),
        Binding("f8", "delete_selected", "Delete"),
        Binding("f9", "reset_all", "Reset all"),
        Binding("ctrl+q", "quit", "Quit"),
    ]

    def __init__(self, store: SessionStore) -> None:
        super().__init__()
        self.store = store
        self.stopwatch = Stopwatch()
        self._row_ids: list[str] = []
        self._reset_armed = False

    def compose(self) -> ComposeResult:
        yield Header()
        with Horizontal(id="main-layout"):
            with Vertical(id="timer-pane"):
                yield Static(_clock(0), id="timer-display")
                yield Label("Project", classes="section-title")
                yield Input(placeholder="No Project", id="project-input")
                yield Label("Journal note", classes="section-title")
                yield TextArea(id="note-area")
                yield Label("Import file", classes="section-title")
                yield Input(placeholder="path/to/sessions.json or .csv", id="import-input")
            with Vertical(id="journal-pane"):
                yield Input(placeholder="Search journal…", id="search-input")
                yield DataTable(id="journal-table", cursor_type="row")
        yield Static("", id="status-bar")
        yield Footer()

    def on_mount(self) -> None:
        table = self.query_one("#journal-table", DataTable)
        table.add_columns("Project", "Note", "Started", "Duration")
        self._ui_thread = threading.get_ident()
        self.store.subscribe(self._on_store_changed)
        self._refresh_journal()
        self.set_interval(1, self._tick)

    # ── Rendering ──────────────────────────────────────────────

    def _tick(self) -> None:
        self.query_one("#timer-display", Static).update(_clock(self.stopwatch.elapsed))

    def _refresh_journal(self) -> None:
        tz = get_user_timezone()
        query = self.query_one("#search-input", Input).value
        table = self.query_one("#journal-table", DataTable)
        table.clear()
        self._row_ids = []
        for s in filter_sessions(self.store.sessions, query):
            note = display_note(s)
            table.add_row(
                display_project(s),
                note if len(note) <= 60 else note[:57] + "…",
                s.start_date.astimezone(tz).strftime("%Y-%m-%d %H:%M"),
                format_duration(s.seconds),
            )
            self._row_ids.append(str(s.id))
        self.query_one("#status-bar", Static).update(
            f"{len(self.store)} sessions · data: {self.store.path}"
        )

    def _on_store_changed(self, _store: SessionStore) -> None:
        if threading.get_ident() == self._ui_thread:
            self._refresh_journal()
        else:
            self.call_from_thread(self._refresh_journal)

    @on(Input.Changed, "#search-input")
    def _on_search(self, event: Input.Changed) -> None:
        self._refresh_journal()

    # ── Timer actions ──────────────────────────────────────────

    def action_toggle_timer(self) -> None:
        if self.stopwatch.running:
            self.stopwatch.pause()
        else:
            self.stopwatch.start()
        self._tick()

    def action_reset_timer(self) -> None:
        self.stopwatch.reset()
        self._tick()

    def action_save_session(self) -> None:
        self.stopwatch.pause()
        if self.stopwatch.started_at is None or self.stopwatch.elapsed <= 0:
            self.notify("Start the timer before saving a session.", severity="warning")
            return
        project = self.query_one("#project-input", Input).value.strip()
        note_area = self.query_one("#note-area", TextArea)
        session = self.store.create(
            project, self.stopwatch.elapsed, self.stopwatch.started_at, note_area.text
        )
        note_area.load_text("")
        self.stopwatch.reset()
        self._tick()
        self.notify(
            f"{display_project(session)}: {format_duration(session.seconds)}",
            title="Session saved",
        )

    # ── Journal actions ────────────────────────────────────────

    def action_delete_selected(self) -> None:
        table = self.query_one("#journal-table", DataTable)
        if not self._row_ids or table.cursor_row is None:
            return
        row = table.cursor_row
        if 0 <= row < len(self._row_ids):
            self.store.delete(self._row_ids[row])

    def action_reset_all(self) -> None:
        if not self._reset_armed:
            self._reset_armed = True
            self.notify(
                "This deletes every session. Press F9 again to confirm.",
                title="Reset all data", severity="warning",
            )
            self.set_timer(5, self._disarm_reset)
            return
        self._reset_armed = False
        self.store.clear_all()
        self.notify("All sessions deleted.", title="Reset complete")

    def _disarm_reset(self) -> None:
        self._reset_armed = False

    # ── Export / import (worker threads) ───────────────────────

    def action_export(self, fmt: str) -> None:
        self._do_export(fmt)

    @work(thread=True)
    def _do_export(self, fmt: str) -> None:
        path = self.store.export_json() if fmt == "json" else self.store.export_csv()
        if path is None:
            self.call_from_thread(self.notify,
                "Could not write the export file.", title="Export Failed", severity="error")
        else:
            self.call_from_thread(self.notify,
                str(path), title=f"Exported {fmt.upper()}", severity="information")

    def action_import_file(self) -> None:
        raw = self.query_one("#import-input", Input).value.strip()
        if not raw:
            self.notify("Enter a file path to import.", severity="warning")
            return
        self._do_import(Path(raw).expanduser())

    @work(thread=True)
    def _do_import(self, path: Path) -> None:
        try:
            count = self.store.import_file(path)
        except SessionImportError as e:
            self.call_from_thread(self.notify,
                str(e), title="Import Failed", severity="error")
            return
        self.call_from_thread(self.notify,
            f"Imported {count} sessions.", title="Import Complete", severity="information")


# ── Entry point ────────────────────────────────────────────────


def main() -> None:
    root = workspace_root()
    root.mkdir(parents=True, exist_ok=True)
    setup_logging(file=root / "devtrack.log")
    app = DevTrackApp(SessionStore.open(root))
    app.run()


if __name__ == "__main__":
    main()
