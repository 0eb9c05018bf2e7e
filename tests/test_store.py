"""Tests for devtrack/store.py — CRUD, persistence, export and import merge."""

import json
import threading
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from devtrack import csv_codec, json_codec
from devtrack.errors import PersistenceError, SessionDecodeError, SessionImportError
from devtrack.models import Session
from devtrack.fileio import write_text_atomic
from devtrack.store import SessionStore, merge_sessions


def utc(*args):
    return datetime(*args, tzinfo=timezone.utc)


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


# ── CRUD ──────────────────────────────────────────────────────


def test_create_inserts_at_front(store):
    now = datetime.now(timezone.utc)
    first = store.create("Proj", 0, now, "hello")
    second = store.create("Proj2", 5, now, "world")
    assert [s.id for s in store.sessions] == [second.id, first.id]
    assert first.id != second.id
    assert store.sessions[1].note == "hello"


def test_create_defaults_start_date_to_now(store):
    before = datetime.now(timezone.utc)
    s = store.create("P", 1)
    assert s.start_date >= before
    assert s.note == ""


def test_create_persists(store, workspace):
    s = store.create("P", 12.5, utc(2024, 1, 1), "n")
    reopened = SessionStore.open(workspace)
    assert reopened.sessions == (s,)


def test_backing_file_is_compact_json(store):
    store.create("P", 1, utc(2024, 1, 1))
    text = store.path.read_text(encoding="utf-8")
    assert "\n" not in text
    assert json.loads(text)[0]["projectName"] == "P"


def test_update_partial(store):
    s = store.create("P", 100, utc(2024, 1, 1), "old")
    updated = store.update(s.id, note="new")
    assert updated is not None
    assert updated.note == "new"
    assert updated.project_name == "P"
    assert updated.seconds == 100
    assert updated.start_date == utc(2024, 1, 1)


def test_update_all_fields_and_string_id(store):
    s = store.create("P", 1, utc(2024, 1, 1))
    store.update(str(s.id), project_name="Q", seconds=2.5, start_date=utc(2024, 2, 1), note="x")
    got = store.get(s.id)
    assert (got.project_name, got.seconds, got.start_date, got.note) == ("Q", 2.5, utc(2024, 2, 1), "x")


def test_update_persists(store, workspace):
    s = store.create("P", 1, utc(2024, 1, 1))
    store.update(s.id, project_name="Renamed")
    assert SessionStore.open(workspace).get(s.id).project_name == "Renamed"


def test_update_missing_is_noop(store):
    store.create("P", 1, utc(2024, 1, 1))
    assert store.update(uuid.uuid4(), note="x") is None
    assert store.update("not-a-uuid", note="x") is None
    assert store.sessions[0].note == ""


def test_delete(store, workspace):
    a = store.create("A", 1, utc(2024, 1, 1))
    b = store.create("B", 1, utc(2024, 1, 2))
    assert store.delete(a.id) is True
    assert [s.id for s in store.sessions] == [b.id]
    assert [s.id for s in SessionStore.open(workspace).sessions] == [b.id]


def test_delete_missing_is_noop(store):
    store.create("A", 1, utc(2024, 1, 1))
    assert store.delete(uuid.uuid4()) is False
    assert store.delete("garbage") is False
    assert len(store) == 1


def test_clear_all(store, workspace):
    store.create("A", 1, utc(2024, 1, 1))
    store.create("B", 1, utc(2024, 1, 2))
    store.clear_all()
    assert len(store) == 0
    assert SessionStore.open(workspace).sessions == ()


def test_sessions_snapshot_is_immutable(store):
    store.create("A", 1, utc(2024, 1, 1))
    snapshot = store.sessions
    store.create("B", 1, utc(2024, 1, 2))
    assert len(snapshot) == 1
    assert [s.project_name for s in store] == ["B", "A"]


# ── Load / save failures ──────────────────────────────────────


def test_load_missing_file_is_empty(tmp_path):
    store = SessionStore(tmp_path / "none.json", tmp_path / "exports")
    assert store.sessions == ()
    assert store.last_error is None


def test_load_corrupt_file_is_empty_and_recorded(tmp_path):
    path = _write(tmp_path / "sessions.json", "{not json")
    store = SessionStore(path, tmp_path / "exports")
    assert store.sessions == ()
    assert store.last_error is not None


def test_load_out_of_range_seconds_is_empty_and_recorded(tmp_path):
    path = _write(tmp_path / "sessions.json", json.dumps([
        {"id": str(uuid.uuid4()), "projectName": "P", "seconds": 10**400, "startDate": 0},
    ]))
    store = SessionStore(path, tmp_path / "exports")
    assert store.sessions == ()
    assert isinstance(store.last_error, SessionDecodeError)


def test_load_legacy_file_without_notes(tmp_path):
    sid = uuid.uuid4()
    path = _write(tmp_path / "sessions.json", json.dumps([
        {"id": str(sid), "projectName": "Old", "seconds": 30, "startDate": 700000000},
    ]))
    store = SessionStore(path, tmp_path / "exports")
    assert store.get(sid).note == ""


def test_save_failure_keeps_memory_state(store):
    with patch("devtrack.store.write_text_atomic", side_effect=OSError("disk full")):
        s = store.create("P", 1, utc(2024, 1, 1))
    assert store.sessions == (s,)
    assert isinstance(store.last_error, OSError)
    assert store.save() is True


def test_strict_saves_raise_after_mutation(tmp_path):
    store = SessionStore(tmp_path / "s.json", tmp_path / "exports", strict_saves=True)
    with patch("devtrack.store.write_text_atomic", side_effect=OSError("read-only")):
        with pytest.raises(PersistenceError):
            store.create("P", 1, utc(2024, 1, 1))
    assert len(store) == 1


def test_strict_saves_from_settings(workspace):
    (workspace / "settings.yaml").write_text("strict_saves: true\n", encoding="utf-8")
    assert SessionStore.open(workspace).strict_saves is True


# ── Change notification ───────────────────────────────────────


def test_subscribe_and_unsubscribe(store):
    calls = []
    unsubscribe = store.subscribe(lambda st: calls.append(len(st)))
    store.create("A", 1, utc(2024, 1, 1))
    store.clear_all()
    unsubscribe()
    store.create("B", 1, utc(2024, 1, 1))
    assert calls == [1, 0]


def test_failing_listener_does_not_break_mutation(store):
    store.subscribe(lambda st: 1 / 0)
    s = store.create("A", 1, utc(2024, 1, 1))
    assert store.get(s.id) is s


# ── Export ────────────────────────────────────────────────────


def test_export_json(store, sample_sessions, workspace):
    for s in reversed(sample_sessions):
        store.create(s.project_name, s.seconds, s.start_date, s.note)
    path = store.export_json()
    assert path is not None
    assert path.name == "DevTrack-Sessions.json"
    assert path.parent == workspace.parent / "exports"
    text = path.read_text(encoding="utf-8")
    assert text.startswith("[\n  {")
    decoded = json_codec.decode_sessions(text)
    assert [s.id for s in decoded] == [s.id for s in store.sessions]


def test_export_csv(store):
    s = store.create("X", 100, utc(2024, 1, 1), "n")
    path = store.export_csv()
    assert path.name == "DevTrack-Sessions.csv"
    assert path.read_text(encoding="utf-8") == (
        "id,projectName,seconds,startDate,note\n"
        f'"{s.id}","X","100.0","2024-01-01T00:00:00Z","n"'
    )


def test_export_overwrites_previous(store):
    store.create("A", 1, utc(2024, 1, 1))
    first = store.export_csv()
    store.create("B", 1, utc(2024, 1, 2))
    second = store.export_csv()
    assert first == second
    assert len(second.read_text(encoding="utf-8").splitlines()) == 3


def test_export_failure_returns_none(store):
    store.create("A", 1, utc(2024, 1, 1))
    with patch("devtrack.store.write_text_atomic", side_effect=PermissionError("denied")):
        assert store.export_json() is None
        assert store.export_csv() is None


# ── Import / merge ────────────────────────────────────────────


def test_merge_sessions_imported_wins_and_sorted():
    sid = uuid.uuid4()
    local = Session(id=sid, project_name="local", start_date=utc(2024, 1, 1))
    other = Session(project_name="other", start_date=utc(2024, 1, 3))
    incoming = Session(id=sid, project_name="imported", start_date=utc(2024, 1, 2))
    merged = merge_sessions([incoming], [other, local])
    assert [s.project_name for s in merged] == ["other", "imported"]


def test_import_json_into_empty(store, sample_sessions, tmp_path):
    path = _write(tmp_path / "in.json", json_codec.encode_sessions(sample_sessions, pretty=True))
    assert store.import_json(path) == 3
    assert list(store.sessions) == sample_sessions


def test_import_json_twice_is_idempotent(store, sample_sessions, tmp_path):
    store.create("Local", 10, utc(2024, 3, 5, 12, 0, 0))
    path = _write(tmp_path / "in.json", json_codec.encode_sessions(sample_sessions))
    store.import_json(path)
    after_first = [s.id for s in store.sessions]
    assert store.import_json(path) == 3
    assert [s.id for s in store.sessions] == after_first
    assert len(store) == 4


def test_import_sorts_descending_by_start_date(store, sample_sessions, tmp_path):
    late = store.create("Late", 1, utc(2025, 1, 1))
    early = store.create("Early", 1, utc(2020, 1, 1))
    path = _write(tmp_path / "in.json", json_codec.encode_sessions(sample_sessions))
    store.import_json(path)
    ids = [s.id for s in store.sessions]
    assert ids[0] == late.id
    assert ids[-1] == early.id
    dates = [s.start_date for s in store.sessions]
    assert dates == sorted(dates, reverse=True)


def test_import_precedence_imported_wins(store, tmp_path):
    local = store.create("P", 100, utc(2024, 1, 1), "V1")
    incoming = Session(id=local.id, project_name="P", seconds=100, start_date=utc(2024, 1, 1), note="V2")
    path = _write(tmp_path / "in.json", json_codec.encode_sessions([incoming]))
    store.import_json(path)
    assert len(store) == 1
    assert store.get(local.id).note == "V2"


def test_import_count_is_parsed_rows_not_new_rows(store, sample_sessions, tmp_path):
    path = _write(tmp_path / "in.json", json_codec.encode_sessions(sample_sessions))
    store.import_json(path)
    assert store.import_json(path) == 3
    assert len(store) == 3


def test_import_json_malformed_changes_nothing(store, tmp_path):
    s = store.create("P", 1, utc(2024, 1, 1))
    before = store.path.read_text(encoding="utf-8")
    path = _write(tmp_path / "bad.json", '[{"id": "x"}]')
    with pytest.raises(SessionImportError, match="bad.json"):
        store.import_json(path)
    assert store.sessions == (s,)
    assert store.path.read_text(encoding="utf-8") == before


def test_import_json_out_of_range_seconds(store, tmp_path):
    path = _write(tmp_path / "huge.json", json.dumps([
        {"id": str(uuid.uuid4()), "projectName": "P", "seconds": 10**400,
         "startDate": "2024-01-01T00:00:00Z"},
    ]))
    with pytest.raises(SessionImportError, match="huge.json"):
        store.import_json(path)
    assert store.sessions == ()


def test_import_json_missing_file(store, tmp_path):
    with pytest.raises(SessionImportError, match="Could not read"):
        store.import_json(tmp_path / "nope.json")


def test_import_json_persists(store, sample_sessions, tmp_path, workspace):
    path = _write(tmp_path / "in.json", json_codec.encode_sessions(sample_sessions))
    store.import_json(path)
    assert list(SessionStore.open(workspace).sessions) == sample_sessions


def test_csv_export_then_import_into_empty(store, tmp_path):
    original = store.create("X", 100, utc(2024, 1, 1), "n")
    exported = store.export_csv()
    fresh = SessionStore(tmp_path / "fresh.json", tmp_path / "exports")
    assert fresh.import_csv(exported) == 1
    assert fresh.sessions == (original,)
    assert fresh.sessions[0].seconds == 100


def test_import_csv_skips_malformed_row(store, tmp_path):
    good = [Session(project_name=f"P{i}", seconds=i, start_date=utc(2024, 1, i + 1)) for i in range(3)]
    lines = csv_codec.encode_sessions(good).split("\n")
    lines.insert(2, '"a","b","c"')
    path = _write(tmp_path / "in.csv", "\n".join(lines))
    assert store.import_csv(path) == 3
    assert sorted(s.project_name for s in store.sessions) == ["P0", "P1", "P2"]


def test_import_csv_empty_file_imports_nothing(store, tmp_path):
    store.create("Only", 1, utc(2024, 1, 1))
    path = _write(tmp_path / "empty.csv", "")
    assert store.import_csv(path) == 0
    assert len(store) == 1


def test_import_csv_missing_file(store, tmp_path):
    with pytest.raises(SessionImportError):
        store.import_csv(tmp_path / "missing.csv")


def test_import_csv_precedence(store, tmp_path):
    local = store.create("Old name", 5, utc(2024, 1, 1))
    incoming = Session(id=local.id, project_name="New name", seconds=5, start_date=utc(2024, 1, 1))
    path = _write(tmp_path / "in.csv", csv_codec.encode_sessions([incoming]))
    store.import_csv(path)
    assert [s.project_name for s in store.sessions] == ["New name"]


def test_import_file_dispatches_by_extension(store, sample_sessions, tmp_path):
    json_path = _write(tmp_path / "in.JSON", json_codec.encode_sessions(sample_sessions[:1]))
    csv_path = _write(tmp_path / "in.csv", csv_codec.encode_sessions(sample_sessions[1:]))
    assert store.import_file(json_path) == 1
    assert store.import_file(csv_path) == 2
    assert len(store) == 3


def test_import_file_rejects_other_extensions(store, tmp_path):
    path = _write(tmp_path / "in.txt", "")
    with pytest.raises(SessionImportError, match="JSON or CSV"):
        store.import_file(path)


def test_import_tolerates_naive_local_start_dates(store, tmp_path):
    store.create("Naive", 1, datetime(2024, 1, 2, 12, 0))
    path = _write(tmp_path / "in.json", json_codec.encode_sessions(
        [Session(project_name="Aware", start_date=utc(2024, 1, 1) + timedelta(hours=1))]
    ))
    store.import_json(path)
    assert [s.project_name for s in store.sessions] == ["Naive", "Aware"]


# ── Concurrency ───────────────────────────────────────────────


def test_listeners_run_after_lock_is_released(store, sample_sessions, tmp_path):
    seen = []

    def listener(st):
        # Another thread must be able to read while the listener runs.
        reader = threading.Thread(target=lambda: seen.append(len(st.sessions)))
        reader.start()
        reader.join(timeout=5)
        assert not reader.is_alive()

    store.subscribe(listener)
    store.create("A", 1, utc(2024, 1, 1))
    store.import_json(_write(tmp_path / "in.json", json_codec.encode_sessions(sample_sessions)))
    assert seen == [1, 4]
    assert store.last_error is None


@pytest.mark.parametrize("second_op", ["create", "import_json"])
def test_mutation_waits_for_save_in_flight(store, tmp_path, second_op):
    saving = threading.Event()
    release = threading.Event()

    def slow_write(path, content):
        if not saving.is_set():
            saving.set()
            assert release.wait(timeout=5)
        write_text_atomic(path, content)

    incoming = Session(project_name="Second", seconds=2, start_date=utc(2024, 1, 2))
    import_path = _write(tmp_path / "in.json", json_codec.encode_sessions([incoming]))
    if second_op == "create":
        second = lambda: store.create("Second", 2, utc(2024, 1, 2))
    else:
        second = lambda: store.import_json(import_path)

    with patch("devtrack.store.write_text_atomic", side_effect=slow_write):
        first_thread = threading.Thread(target=store.create, args=("First", 1, utc(2024, 1, 1)))
        first_thread.start()
        assert saving.wait(timeout=5)

        second_thread = threading.Thread(target=second)
        second_thread.start()
        second_thread.join(timeout=0.2)
        assert second_thread.is_alive()
        assert [s.project_name for s in store._sessions] == ["First"]

        release.set()
        first_thread.join(timeout=5)
        second_thread.join(timeout=5)

    assert not first_thread.is_alive() and not second_thread.is_alive()
    assert [s.project_name for s in store.sessions] == ["Second", "First"]
    on_disk = json_codec.decode_sessions(store.path.read_text(encoding="utf-8"))
    assert [s.project_name for s in on_disk] == ["Second", "First"]
