"""Tests for the SQLite application store."""

from __future__ import annotations

import json
from datetime import timedelta

import pytest

from conftest import NOW, make_app
from trackpilot.exceptions import PersistenceError
from trackpilot.models import Application, Interview, ProposedUpdate, RunMetrics
from trackpilot.reporting.transitions import write_transitions
from trackpilot.storage.base import ApplicationRepository
from trackpilot.storage.store import ApplicationStore


@pytest.fixture()
def store(tmp_path):
    s = ApplicationStore(tmp_path / "state" / "tracker.db")
    try:
        yield s
    finally:
        s.close()


def test_store_satisfies_repository_protocol(store):
    assert isinstance(store, ApplicationRepository)


def test_upsert_and_load_roundtrip(store):
    app = make_app(history=[("wishlist", 20), ("applied", 10)], interviews=["scheduled"], created=20)
    store.upsert_application(app)

    loaded = store.load_applications()
    assert len(loaded) == 1
    got = loaded[0]
    assert got.id == app.id
    assert got.status == "applied"
    assert [h.status for h in got.status_history] == ["wishlist", "applied"]
    assert [i.status for i in got.interviews] == ["scheduled"]
    assert got.created_at == app.created_at
    assert got.updated_at is None


def test_upsert_replaces_children(store):
    store.upsert_application(make_app(interviews=["scheduled", "completed"]))
    store.upsert_application(make_app(interviews=["completed"]))
    got = store.get_application("app-1")
    assert got is not None
    assert [i.status for i in got.interviews] == ["completed"]


def test_apply_update_sets_status_and_appends_history(store):
    store.upsert_application(make_app(history=[("applied", 40)]))
    update = ProposedUpdate("app-1", "rejected", "Auto-rejected: 40 days in applied status")

    assert store.apply_update(update, NOW) is True

    got = store.get_application("app-1")
    assert got.status == "rejected"
    assert got.updated_at == NOW.isoformat()
    last = got.status_history[-1]
    assert (last.status, last.notes, last.date) == ("rejected", update.reason, NOW.isoformat())


def test_apply_update_is_idempotent(store):
    store.upsert_application(make_app(history=[("applied", 40)]))
    update = ProposedUpdate("app-1", "rejected", "why")
    assert store.apply_update(update, NOW) is True
    assert store.apply_update(update, NOW) is False
    assert len(store.get_status_history("app-1")) == 2


def test_apply_update_unknown_application(store):
    with pytest.raises(PersistenceError):
        store.apply_update(ProposedUpdate("missing", "rejected", "why"))


def test_unparsable_timestamps_are_kept_verbatim(store):
    store.upsert_application(Application(id="x", status="applied", updated_at="soon-ish"))
    assert store.get_application("x").updated_at == "soon-ish"


def test_import_json_camel_case(store, tmp_path):
    path = tmp_path / "export.json"
    path.write_text(
        json.dumps(
            {
                "applications": [
                    {
                        "id": "j1",
                        "companyName": "Globex",
                        "position": "Analyst",
                        "status": "contacted",
                        "createdAt": {"seconds": 1_700_000_000, "nanoseconds": 0},
                        "meetings": [{"status": "scheduled", "type": "call"}],
                        "statusHistory": [{"status": "contacted", "date": "2024-01-02"}],
                    },
                    {"companyName": "no id"},
                ]
            }
        )
    )
    assert store.import_json(path) == 1
    got = store.get_application("j1")
    assert got.company_name == "Globex"
    assert got.created_at.startswith("2023-11-14")
    assert got.interviews == ()
    assert [(m.status, m.type) for m in got.meetings] == [("scheduled", "call")]


def test_runs_are_recorded(store):
    metrics = RunMetrics(run_id="run-1")
    store.start_run(metrics)
    metrics.total_evaluated = 4
    metrics.total_applied = 2
    metrics.finalize()
    store.end_run(metrics)

    summary = store.get_run_summary("run-1")
    assert summary["total_evaluated"] == 4
    assert summary["total_applied"] == 2
    assert summary["ended_at"]


def test_import_skips_records_with_malformed_entries(store, tmp_path):
    path = tmp_path / "export.json"
    path.write_text(
        json.dumps(
            [
                {"id": "bad-history", "status": "applied", "statusHistory": ["applied"]},
                {"id": "bad-interview", "status": "applied", "interviews": [42]},
                {"id": "ok", "status": "applied"},
            ]
        )
    )
    assert store.import_json(path) == 1
    assert [a.id for a in store.load_applications()] == ["ok"]


def test_meetings_roundtrip_separately_from_interviews(store):
    app = Application(
        id="o1",
        status="contacted",
        interviews=(Interview("completed"),),
        meetings=(Interview("rescheduled", type="call"),),
    )
    store.upsert_application(app)
    got = store.load_applications()[0]
    assert [i.status for i in got.interviews] == ["completed"]
    assert [m.status for m in got.meetings] == ["rescheduled"]


def test_transitions_only_include_rule_written_entries(store):
    store.upsert_application(make_app(history=[("applied", 40)]))
    reason = "Auto-rejected: 40 days in applied status"
    store.apply_update(ProposedUpdate("app-1", "rejected", reason, "autoRejectDays"), NOW)
    rows = store.get_transitions()
    assert len(rows) == 1
    assert rows[0]["rule"] == "autoRejectDays"
    assert rows[0]["company_name"] == "Acme"
    assert store.get_transitions(since=NOW + timedelta(seconds=1)) == []
    assert len(store.get_transitions(since=NOW)) == 1


def test_write_transitions_json_and_csv(store, tmp_path):
    store.upsert_application(make_app(history=[("applied", 40)]))
    store.apply_update(ProposedUpdate("app-1", "rejected", "stale", "autoRejectDays"), NOW)
    rows = store.get_transitions()

    json_path = write_transitions(rows, tmp_path / "out" / "log.json")
    assert json.loads(json_path.read_text())[0]["reason"] == "stale"

    csv_path = write_transitions(rows, tmp_path / "out" / "log.csv")
    lines = csv_path.read_text().splitlines()
    assert lines[0] == "changed_at,application_id,company_name,position,new_status,rule,reason"
    assert lines[1].endswith("rejected,autoRejectDays,stale")
