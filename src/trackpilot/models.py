"""Domain models for TrackPilot."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Literal

# Job pipeline followed by the outreach (campaign) pipeline.
Status = Literal[
    "wishlist",
    "applied",
    "interview",
    "pending_decision",
    "offer",
    "rejected",
    "archived",
    "targets",
    "contacted",
    "follow_up",
    "replied",
    "meeting",
    "opportunity",
    "no_response",
    "closed",
]

JOB_STATUSES: tuple[str, ...] = (
    "wishlist",
    "applied",
    "interview",
    "pending_decision",
    "offer",
    "rejected",
    "archived",
)
OUTREACH_STATUSES: tuple[str, ...] = (
    "targets",
    "contacted",
    "follow_up",
    "replied",
    "meeting",
    "opportunity",
    "no_response",
    "closed",
)
ALL_STATUSES: frozenset[str] = frozenset(JOB_STATUSES + OUTREACH_STATUSES)


def _pick(raw: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in *raw* (camelCase or snake_case)."""
    for key in keys:
        if key in raw:
            return raw[key]
    return default


@dataclass(frozen=True)
class StatusChange:
    """One entry of an application's append-only status history."""

    status: str
    date: Any = None  # raw timestamp; parsed lazily by the clock resolver
    notes: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "StatusChange":
        return cls(
            status=str(raw.get("status", "")),
            date=raw.get("date"),
            notes=str(raw.get("notes") or ""),
        )


@dataclass(frozen=True)
class Interview:
    """An interview or outreach meeting attached to an application."""

    status: str
    type: str = "other"
    date: Any = None
    time: str = ""
    notes: str = ""
    location: str = ""

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Interview":
        return cls(
            status=str(raw.get("status", "")),
            type=str(raw.get("type") or "other"),
            date=raw.get("date"),
            time=str(raw.get("time") or ""),
            notes=str(raw.get("notes") or ""),
            location=str(raw.get("location") or ""),
        )


@dataclass(frozen=True)
class Application:
    """Immutable snapshot of one tracked application or outreach contact."""

    id: str
    status: str
    company_name: str = ""
    position: str = ""
    status_history: tuple[StatusChange, ...] = ()
    interviews: tuple[Interview, ...] = ()
    meetings: tuple[Interview, ...] = ()  # outreach only; no rule reads these
    created_at: Any = None
    applied_date: Any = None
    updated_at: Any = None

    @property
    def label(self) -> str:
        if self.position and self.company_name:
            return f"{self.position} @ {self.company_name}"
        return self.position or self.company_name or self.id

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "Application":
        """Build an application from an exported record.

        Accepts the hosting app's camelCase keys as well as snake_case.
        """
        history = _pick(raw, "statusHistory", "status_history", default=None) or []
        interviews = _pick(raw, "interviews", default=None) or []
        meetings = _pick(raw, "meetings", default=None) or []
        return cls(
            id=str(raw["id"]),
            status=str(raw.get("status", "")),
            company_name=str(_pick(raw, "companyName", "company_name", default="") or ""),
            position=str(raw.get("position") or ""),
            status_history=tuple(StatusChange.from_dict(h) for h in history),
            interviews=tuple(Interview.from_dict(i) for i in interviews),
            meetings=tuple(Interview.from_dict(m) for m in meetings),
            created_at=_pick(raw, "createdAt", "created_at"),
            applied_date=_pick(raw, "appliedDate", "applied_date"),
            updated_at=_pick(raw, "updatedAt", "updated_at"),
        )


@dataclass(frozen=True)
class ProposedUpdate:
    """A candidate status transition produced by the rule engine."""

    application_id: str
    new_status: str
    reason: str
    rule: str = ""


@dataclass
class RunMetrics:
    """Aggregated counters for one automation run."""

    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    started_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat()
    )
    ended_at: str = ""
    total_evaluated: int = 0
    total_proposed: int = 0
    total_applied: int = 0
    total_failed: int = 0
    total_skipped: int = 0
    failures: list[tuple[str, str]] = field(default_factory=list)

    def record_failure(self, application_id: str, message: str) -> None:
        self.total_failed += 1
        self.failures.append((application_id, message))

    def finalize(self) -> None:
        self.ended_at = datetime.now(timezone.utc).isoformat()
