"""Shared test fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from trackpilot.models import Application, Interview, StatusChange
from trackpilot.settings import RuleConfig

NOW = datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc)


def days_ago(days: float) -> str:
    return (NOW - timedelta(days=days)).isoformat()


def make_app(
    app_id: str = "app-1",
    status: str = "applied",
    *,
    history: list[tuple[str, float]] | None = None,
    interviews: list[str] | None = None,
    created: float | None = None,
    updated: float | None = None,
    applied: float | None = None,
) -> Application:
    """Build an application whose timestamps are given in days before ``NOW``."""
    return Application(
        id=app_id,
        status=status,
        company_name="Acme",
        position="Engineer",
        status_history=tuple(
            StatusChange(status=s, date=days_ago(d)) for s, d in (history or [])
        ),
        interviews=tuple(Interview(status=s) for s in (interviews or [])),
        created_at=days_ago(created) if created is not None else None,
        updated_at=days_ago(updated) if updated is not None else None,
        applied_date=days_ago(applied) if applied is not None else None,
    )


@pytest.fixture()
def now() -> datetime:
    return NOW


@pytest.fixture()
def all_disabled() -> RuleConfig:
    """A config with every rule switched off."""
    return RuleConfig.model_validate(
        {
            "autoRejectDays": {"enabled": False},
            "autoArchiveRejected": {"enabled": False},
            "autoMoveToInterview": {"enabled": False},
            "autoMoveToPendingDecision": {"enabled": False},
            "autoRejectNoResponse": {"enabled": False},
            "inactiveReminder": {"enabled": False},
        }
    )


@pytest.fixture()
def tmp_settings_yaml(tmp_path):
    """Write a minimal settings.yaml and return its path."""
    content = """\
interval_seconds: 60
initial_delay_seconds: 1
log_level: "debug"
state_dir: "{state}"
automation:
  autoRejectDays:
    enabled: true
    days: 21
    applyTo:
      - "applied"
  autoMoveToPendingDecision:
    enabled: true
    interviewCount: 3
  inactiveReminder:
    enabled: true
    days: 7
""".format(state=str(tmp_path / ".state"))
    p = tmp_path / "settings.yaml"
    p.write_text(content)
    return p
