"""SQLite-backed application store: snapshot source and update sink for automation."""

from __future__ import annotations

import json
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Any

from trackpilot.automation.clock import parse_date, resolve_now
from trackpilot.exceptions import DateParseError, PersistenceError
from trackpilot.models import (
    ALL_STATUSES,
    Application,
    Interview,
    ProposedUpdate,
    RunMetrics,
    StatusChange,
)

logger = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS applications (
    id              TEXT PRIMARY KEY,
    status          TEXT NOT NULL,
    company_name    TEXT DEFAULT '',
    position        TEXT DEFAULT '',
    created_at      TEXT,
    applied_date    TEXT,
    updated_at      TEXT
);

CREATE TABLE IF NOT EXISTS status_history (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    application_id  TEXT NOT NULL REFERENCES applications(id),
    status          TEXT NOT NULL,
    notes           TEXT DEFAULT '',
    rule            TEXT DEFAULT '',
    changed_at      TEXT
);

CREATE TABLE IF NOT EXISTS interviews (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    application_id  TEXT NOT NULL REFERENCES applications(id),
    kind            TEXT NOT NULL DEFAULT 'interview',
    status          TEXT NOT NULL,
    type            TEXT DEFAULT 'other',
    date            TEXT,
    time            TEXT DEFAULT '',
    notes           TEXT DEFAULT '',
    location        TEXT DEFAULT ''
);

CREATE TABLE IF NOT EXISTS automation_runs (
    id              TEXT PRIMARY KEY,
    started_at      TEXT NOT NULL,
    ended_at        TEXT,
    total_evaluated INTEGER DEFAULT 0,
    total_proposed  INTEGER DEFAULT 0,
    total_applied   INTEGER DEFAULT 0,
    total_failed    INTEGER DEFAULT 0,
    total_skipped   INTEGER DEFAULT 0
);
"""

_MEETING = "meeting"


def _to_text(raw: Any) -> str | None:
    """Normalise a timestamp for storage; unparsable values are kept verbatim."""
    if raw is None:
        return None
    try:
        return parse_date(raw).isoformat()
    except DateParseError:
        return str(raw)


class ApplicationStore:
    """Persistent application records stored in SQLite."""

    def __init__(self, db_path: str | Path) -> None:
        db_path = Path(db_path)
        db_path.parent.mkdir(parents=True, exist_ok=True)
        # Writes are issued from worker threads, one run at a time.
        self._conn = sqlite3.connect(str(db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        logger.info("Application store ready at %s.", db_path)

    # ---- applications ----

    def upsert_application(self, app: Application) -> None:
        """Insert or fully replace one application with its history, interviews and meetings."""
        if app.status not in ALL_STATUSES:
            logger.warning("Application %s has unknown status %r.", app.id, app.status)
        self._conn.execute(
            "INSERT OR REPLACE INTO applications (id, status, company_name, position, "
            "created_at, applied_date, updated_at) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (
                app.id,
                app.status,
                app.company_name,
                app.position,
                _to_text(app.created_at),
                _to_text(app.applied_date),
                _to_text(app.updated_at),
            ),
        )
        self._conn.execute("DELETE FROM status_history WHERE application_id=?", (app.id,))
        self._conn.execute("DELETE FROM interviews WHERE application_id=?", (app.id,))
        self._conn.executemany(
            "INSERT INTO status_history (application_id, status, notes, changed_at) "
            "VALUES (?, ?, ?, ?)",
            [(app.id, h.status, h.notes, _to_text(h.date)) for h in app.status_history],
        )
        self._conn.executemany(
            "INSERT INTO interviews (application_id, kind, status, type, date, time, notes, "
            "location) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (app.id, kind, i.status, i.type, _to_text(i.date), i.time, i.notes, i.location)
                for kind, entries in (("interview", app.interviews), (_MEETING, app.meetings))
                for i in entries
            ],
        )
        self._conn.commit()

    def import_json(self, path: str | Path) -> int:
        """Load applications from a JSON export and return how many were stored.

        Accepts a top-level list or an object with an ``applications`` list.
        """
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        if isinstance(data, dict):
            data = data.get("applications", [])
        count = 0
        for raw in data:
            try:
                app = Application.from_dict(raw)
            except (KeyError, TypeError, AttributeError) as exc:
                logger.warning("Skipping malformed record in %s: %s", path, exc)
                continue
            self.upsert_application(app)
            count += 1
        logger.info("Imported %d application(s) from %s.", count, path)
        return count

    def get_application(self, application_id: str) -> Application | None:
        cur = self._conn.execute("SELECT * FROM applications WHERE id=?", (application_id,))
        row = cur.fetchone()
        if row is None:
            return None
        cur = self._conn.execute(
            "SELECT * FROM interviews WHERE application_id=? ORDER BY id", (application_id,)
        )
        return self._build(row, self.get_status_history(application_id), cur.fetchall())

    def load_applications(self) -> list[Application]:
        """Return an immutable snapshot of every stored application."""
        history: dict[str, list[StatusChange]] = {}
        for r in self._conn.execute("SELECT * FROM status_history ORDER BY id"):
            history.setdefault(r["application_id"], []).append(
                StatusChange(status=r["status"], date=r["changed_at"], notes=r["notes"] or "")
            )
        attached: dict[str, list[sqlite3.Row]] = {}
        for r in self._conn.execute("SELECT * FROM interviews ORDER BY id"):
            attached.setdefault(r["application_id"], []).append(r)

        cur = self._conn.execute("SELECT * FROM applications ORDER BY rowid")
        return [
            self._build(row, history.get(row["id"], []), attached.get(row["id"], []))
            for row in cur.fetchall()
        ]

    def get_status_history(self, application_id: str) -> list[StatusChange]:
        cur = self._conn.execute(
            "SELECT status, notes, changed_at FROM status_history "
            "WHERE application_id=? ORDER BY id",
            (application_id,),
        )
        return [
            StatusChange(status=r["status"], date=r["changed_at"], notes=r["notes"] or "")
            for r in cur.fetchall()
        ]

    # ---- mutation ----

    def apply_update(self, update: ProposedUpdate, now: datetime | None = None) -> bool:
        """Persist one proposed transition.

        Sets the new status, bumps ``updated_at`` and appends a history entry
        whose notes carry the rule's reason. Returns ``False`` without writing
        when the application already has the target status.
        """
        cur = self._conn.execute(
            "SELECT status FROM applications WHERE id=?", (update.application_id,)
        )
        row = cur.fetchone()
        if row is None:
            raise PersistenceError(f"Unknown application {update.application_id}.")
        if row["status"] == update.new_status:
            logger.info(
                "Application %s already %s; nothing to apply.",
                update.application_id,
                update.new_status,
            )
            return False

        stamp = resolve_now(now).isoformat()
        try:
            self._conn.execute(
                "UPDATE applications SET status=?, updated_at=? WHERE id=?",
                (update.new_status, stamp, update.application_id),
            )
            self._conn.execute(
                "INSERT INTO status_history (application_id, status, notes, rule, changed_at) "
                "VALUES (?, ?, ?, ?, ?)",
                (update.application_id, update.new_status, update.reason, update.rule, stamp),
            )
            self._conn.commit()
        except sqlite3.Error as exc:
            self._conn.rollback()
            raise PersistenceError(
                f"Could not update application {update.application_id}: {exc}"
            ) from exc
        logger.info(
            "Application %s: %s -> %s (%s)",
            update.application_id,
            row["status"],
            update.new_status,
            update.reason,
        )
        return True

    # ---- run lifecycle ----

    def start_run(self, metrics: RunMetrics) -> None:
        self._conn.execute(
            "INSERT INTO automation_runs (id, started_at) VALUES (?, ?)",
            (metrics.run_id, metrics.started_at),
        )
        self._conn.commit()

    def end_run(self, metrics: RunMetrics) -> None:
        self._conn.execute(
            "UPDATE automation_runs SET ended_at=?, total_evaluated=?, total_proposed=?, "
            "total_applied=?, total_failed=?, total_skipped=? WHERE id=?",
            (
                metrics.ended_at,
                metrics.total_evaluated,
                metrics.total_proposed,
                metrics.total_applied,
                metrics.total_failed,
                metrics.total_skipped,
                metrics.run_id,
            ),
        )
        self._conn.commit()

    def get_run_summary(self, run_id: str) -> dict | None:
        cur = self._conn.execute("SELECT * FROM automation_runs WHERE id=?", (run_id,))
        row = cur.fetchone()
        return dict(row) if row else None

    def get_transitions(self, since: datetime | None = None) -> list[dict[str, Any]]:
        """Return the history entries written by automation rules, oldest first.

        Entries recorded by hand or by an import carry no rule and are left
        out. *since* keeps only transitions at or after that instant.
        """
        query = (
            "SELECT h.changed_at, h.application_id, a.company_name, a.position, "
            "h.status AS new_status, h.rule, h.notes AS reason "
            "FROM status_history h JOIN applications a ON a.id = h.application_id "
            "WHERE h.rule != ''"
        )
        params: tuple = ()
        if since is not None:
            query += " AND h.changed_at >= ?"
            params = (resolve_now(since).isoformat(),)
        cur = self._conn.execute(query + " ORDER BY h.id", params)
        return [dict(r) for r in cur.fetchall()]

    def close(self) -> None:
        self._conn.close()

    # ---- helpers ----

    @staticmethod
    def _interview(row: sqlite3.Row) -> Interview:
        return Interview(
            status=row["status"],
            type=row["type"] or "other",
            date=row["date"],
            time=row["time"] or "",
            notes=row["notes"] or "",
            location=row["location"] or "",
        )

    @classmethod
    def _build(
        cls,
        row: sqlite3.Row,
        history: list[StatusChange],
        attached: list[sqlite3.Row],
    ) -> Application:
        return Application(
            id=row["id"],
            status=row["status"],
            company_name=row["company_name"] or "",
            position=row["position"] or "",
            status_history=tuple(history),
            interviews=tuple(cls._interview(r) for r in attached if r["kind"] != _MEETING),
            meetings=tuple(cls._interview(r) for r in attached if r["kind"] == _MEETING),
            created_at=row["created_at"],
            applied_date=row["applied_date"],
            updated_at=row["updated_at"],
        )
