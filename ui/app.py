from __future__ import annotations

import logging
import math
import os
import secrets
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Any

from fastapi import Body, Depends, FastAPI, File, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, HTMLResponse
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from devtrack import (
    Session,
    SessionImportError,
    SessionStore,
    display_note,
    display_project,
    filter_sessions,
    format_duration,
    get_user_timezone,
    load_settings,
    setup_logging,
    weekly_stats,
    workspace_root,
)
from devtrack.models import parse_timestamp

logger = logging.getLogger(__name__)

setup_logging()


# ── HTML helpers ──────────────────────────────────────────────

def _escape(s: str) -> str:
    return (
        s.replace("&", "&amp;")
        .replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
    )


# ── Store ─────────────────────────────────────────────────────

_stores: dict[Path, SessionStore] = {}
_stores_lock = threading.Lock()


def get_store() -> SessionStore:
    """One store per workspace root, opened on first use."""
    root = workspace_root()
    with _stores_lock:
        store = _stores.get(root)
        if store is None:
            store = SessionStore.open(root)
            _stores[root] = store
        return store


def _session_out(s: Session) -> dict[str, Any]:
    d = s.to_dict()
    d["duration"] = format_duration(s.seconds)
    return d


def _parse_fields(payload: dict[str, Any]) -> dict[str, Any]:
    """Map a camelCase request body onto SessionStore keyword arguments."""
    fields: dict[str, Any] = {}
    if "projectName" in payload:
        fields["project_name"] = str(payload["projectName"] or "")
    if "seconds" in payload:
        try:
            seconds = float(payload["seconds"])
        except (TypeError, ValueError, OverflowError):
            raise HTTPException(status_code=400, detail="seconds must be numeric")
        if not math.isfinite(seconds):
            raise HTTPException(status_code=400, detail="seconds must be finite")
        fields["seconds"] = seconds
    if payload.get("startDate") is not None:
        try:
            fields["start_date"] = parse_timestamp(payload["startDate"])
        except (ValueError, OverflowError):
            raise HTTPException(status_code=400, detail="startDate must be an ISO-8601 timestamp")
    if "note" in payload:
        fields["note"] = str(payload["note"] or "")
    return fields


def _session_id(value: str) -> uuid.UUID:
    try:
        return uuid.UUID(value)
    except ValueError:
        raise HTTPException(status_code=404, detail=f"No session with id {value!r}")


# ── Auth ──────────────────────────────────────────────────────

app = FastAPI(title="DevTrack UI", version="0.1.0")

security = HTTPBasic(auto_error=False)


def get_current_user(credentials: HTTPBasicCredentials | None = Depends(security)) -> str:
    expected_username = os.environ.get("DEVTRACK_USERNAME", "")
    expected_password = os.environ.get("DEVTRACK_PASSWORD", "")

    if not expected_username or not expected_password:
        return "guest"

    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Basic"},
        )

    correct_username = secrets.compare_digest(credentials.username.encode("utf-8"), expected_username.encode("utf-8"))
    correct_password = secrets.compare_digest(credentials.password.encode("utf-8"), expected_password.encode("utf-8"))

    if not (correct_username and correct_password):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Basic"},
        )

    return credentials.username


# ── Pages ─────────────────────────────────────────────────────

@app.get("/healthz")
def healthz() -> dict[str, str]:
    return {"ok": "true"}


@app.get("/", response_class=HTMLResponse)
def index(
    q: str = "",
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> HTMLResponse:
    tz = get_user_timezone()
    sessions = filter_sessions(store.sessions, q)

    rows = []
    for s in sessions:
        started = s.start_date.astimezone(tz).strftime("%Y-%m-%d %H:%M")
        rows.append(
            "<tr>"
            f"<td>{_escape(display_project(s))}</td>"
            f'<td class="note">{_escape(display_note(s))}</td>'
            f"<td>{started}</td>"
            f"<td>{format_duration(s.seconds)}</td>"
            "</tr>"
        )
    if not store.sessions:
        body = (
            "<p class=\"muted\">No Journal Entries Yet</p>"
            "<p class=\"muted\">Start a timer, then save with a journal entry to see it here.</p>"
        )
    else:
        body = (
            "<table><thead><tr><th>Project</th><th>Note</th><th>Started</th><th>Duration</th></tr></thead>"
            f"<tbody>{''.join(rows)}</tbody></table>"
        )

    html = f"""<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>DevTrack — Journal</title>
  <style>
    body {{ font-family: system-ui, sans-serif; margin: 2rem; }}
    table {{ border-collapse: collapse; width: 100%; }}
    td, th {{ border-bottom: 1px solid #ddd; padding: .4rem; text-align: left; }}
    .note {{ white-space: pre-wrap; color: #555; }}
    .muted {{ color: #888; }}
  </style>
</head>
<body>
  <h1>Journal</h1>
  <form method="get" action="/"><input name="q" value="{_escape(q)}" placeholder="Search" /></form>
  <p class="muted">{len(store)} sessions · export as <a href="/api/export/json">JSON</a> or <a href="/api/export/csv">CSV</a></p>
  {body}
</body>
</html>"""
    return HTMLResponse(html)


# ── Sessions API ──────────────────────────────────────────────

@app.get("/api/sessions")
def api_list_sessions(
    q: str = "",
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    sessions = filter_sessions(store.sessions, q)
    return {"ok": True, "sessions": [_session_out(s) for s in sessions]}


@app.post("/api/sessions")
def api_create_session(
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    fields = _parse_fields(payload)
    session = store.create(
        fields.get("project_name", ""),
        fields.get("seconds", 0.0),
        fields.get("start_date"),
        fields.get("note", ""),
    )
    return {"ok": True, "session": _session_out(session)}


@app.put("/api/sessions/{session_id}")
def api_update_session(
    session_id: str,
    payload: dict[str, Any] = Body(...),
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    session = store.update(_session_id(session_id), **_parse_fields(payload))
    if session is None:
        return {"ok": True, "updated": False}
    return {"ok": True, "updated": True, "session": _session_out(session)}


@app.delete("/api/sessions/{session_id}")
def api_delete_session(
    session_id: str,
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    return {"ok": True, "deleted": store.delete(_session_id(session_id))}


@app.post("/api/reset")
def api_reset(
    payload: dict[str, Any] = Body(default={}),
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    if payload.get("confirm") is not True:
        raise HTTPException(status_code=400, detail="Resetting deletes every session; send {\"confirm\": true}")
    store.clear_all()
    logger.info("All sessions cleared by %s", username)
    return {"ok": True}


# ── Export / import ───────────────────────────────────────────

@app.get("/api/export/{fmt}")
def api_export(
    fmt: str,
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> FileResponse:
    fmt = fmt.lower()
    if fmt == "json":
        path, media_type = store.export_json(), "application/json"
    elif fmt == "csv":
        path, media_type = store.export_csv(), "text/csv"
    else:
        raise HTTPException(status_code=404, detail=f"Unknown export format: {fmt}")
    if path is None:
        raise HTTPException(status_code=500, detail="Export failed: no file was produced")
    return FileResponse(path, media_type=media_type, filename=path.name)


@app.post("/api/import")
def api_import(
    file: UploadFile = File(...),
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    name = Path(file.filename or "upload").name
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / name
        path.write_bytes(file.file.read())
        try:
            count = store.import_file(path)
        except SessionImportError as e:
            raise HTTPException(status_code=400, detail=f"Import Failed: {e}")
    return {"ok": True, "imported": count, "message": f"Imported {count} sessions."}


# ── Statistics ────────────────────────────────────────────────

@app.get("/api/stats/weekly")
def api_weekly_stats(
    username: str = Depends(get_current_user),
    store: SessionStore = Depends(get_store),
) -> dict[str, Any]:
    settings = load_settings()
    stats = weekly_stats(store.sessions, tz=get_user_timezone(), week_start=settings.week_start)
    return {"ok": True, "stats": stats.to_dict()}
