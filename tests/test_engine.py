"""Tests for rule priority, batch evaluation and preview counts."""

from __future__ import annotations

import dataclasses
from unittest.mock import patch

from conftest import NOW, make_app
from trackpilot.automation.engine import evaluate_all, preview
from trackpilot.automation.evaluator import build_rule_chain, evaluate_application
from trackpilot.automation.rules import RULE_NAMES, AutoRejectDaysRule
from trackpilot.models import Application, StatusChange
from trackpilot.settings import RuleConfig


def _config(**rules) -> RuleConfig:
    return RuleConfig.model_validate(rules)


def _apply(apps, updates):
    """Mimic the mutator: set status and append a history entry dated NOW."""
    by_id = {u.application_id: u for u in updates}
    result = []
    for app in apps:
        update = by_id.get(app.id)
        if update is None:
            result.append(app)
            continue
        result.append(
            dataclasses.replace(
                app,
                status=update.new_status,
                updated_at=NOW.isoformat(),
                status_history=app.status_history
                + (StatusChange(update.new_status, NOW.isoformat(), update.reason),),
            )
        )
    return result


def test_no_chain_when_everything_disabled(all_disabled):
    assert build_rule_chain(all_disabled, NOW) is None
    assert evaluate_all([make_app(interviews=["scheduled"])], all_disabled, NOW) == []


def test_scenario_reject_after_forty_days():
    config = _config(autoRejectDays={"enabled": True, "days": 30, "applyTo": ["applied"]})
    updates = evaluate_all([make_app(history=[("applied", 40)])], config, NOW)
    assert len(updates) == 1
    assert updates[0].new_status == "rejected"
    assert "40" in updates[0].reason


def test_scenario_pending_decision():
    config = _config(autoMoveToPendingDecision={"enabled": True, "interviewCount": 2})
    app = make_app(status="interview", interviews=["completed", "completed"])
    updates = evaluate_all([app], config, NOW)
    assert [u.new_status for u in updates] == ["pending_decision"]


def test_scenario_archive_rejected():
    config = _config(autoArchiveRejected={"enabled": True, "days": 180})
    updates = evaluate_all([make_app(status="rejected", updated=200)], config, NOW)
    assert [u.new_status for u in updates] == ["archived"]


def test_rejection_preempts_interview_move():
    config = _config(
        autoRejectDays={"enabled": True, "days": 30, "applyTo": ["applied"]},
        autoMoveToInterview={"enabled": True},
    )
    app = make_app(history=[("applied", 35)], interviews=["scheduled"])
    update = evaluate_application(app, config, NOW)
    assert update is not None
    assert update.new_status == "rejected"
    assert update.rule == "autoRejectDays"


def test_interview_move_preempts_no_response():
    config = _config(
        autoMoveToInterview={"enabled": True},
        autoRejectNoResponse={"enabled": True, "days": 7, "applyTo": ["applied"]},
    )
    app = make_app(updated=20, interviews=["scheduled"])
    assert evaluate_application(app, config, NOW).new_status == "interview"


def test_pending_decision_preempts_no_response():
    config = _config(
        autoMoveToPendingDecision={"enabled": True, "interviewCount": 1},
        autoRejectNoResponse={"enabled": True, "days": 7, "applyTo": ["interview"]},
    )
    app = make_app(status="interview", updated=20, interviews=["completed"])
    assert evaluate_application(app, config, NOW).new_status == "pending_decision"


def test_at_most_one_update_per_application():
    config = _config(
        autoRejectDays={"enabled": True, "days": 1, "applyTo": ["applied", "interview"]},
        autoArchiveRejected={"enabled": True, "days": 1},
        autoMoveToInterview={"enabled": True},
        autoMoveToPendingDecision={"enabled": True, "interviewCount": 1},
        autoRejectNoResponse={"enabled": True, "days": 1, "applyTo": ["applied", "interview"]},
    )
    apps = [
        make_app("a", history=[("applied", 10)], interviews=["scheduled"], updated=10),
        make_app("b", status="interview", interviews=["completed"], updated=10),
        make_app("c", status="rejected", updated=10),
        make_app("a", status="wishlist"),  # duplicate id
    ]
    updates = evaluate_all(apps, config, NOW)
    ids = [u.application_id for u in updates]
    assert ids == ["a", "b", "c"]
    assert len(ids) == len(set(ids))


def test_reevaluation_does_not_repeat_transitions():
    config = _config(
        autoRejectDays={"enabled": True, "days": 30, "applyTo": ["applied"]},
        autoArchiveRejected={"enabled": True, "days": 30},
        autoMoveToInterview={"enabled": True},
        autoMoveToPendingDecision={"enabled": True, "interviewCount": 2},
    )
    apps = [
        make_app("old", history=[("applied", 40)]),
        make_app("sched", status="wishlist", interviews=["scheduled"]),
        make_app("done", status="interview", interviews=["completed", "completed"]),
        make_app("quiet", status="offer", updated=3),
    ]
    first = evaluate_all(apps, config, NOW)
    assert {u.application_id for u in first} == {"old", "sched", "done"}

    second = evaluate_all(_apply(apps, first), config, NOW)
    repeated = {(u.application_id, u.new_status) for u in second} & {
        (u.application_id, u.new_status) for u in first
    }
    assert repeated == set()


def test_inputs_are_not_mutated():
    config = _config(autoRejectDays={"enabled": True, "days": 1, "applyTo": ["applied"]})
    apps = [make_app(history=[("applied", 5)])]
    snapshot = list(apps)
    evaluate_all(apps, config, NOW)
    preview(apps, config, NOW)
    assert apps == snapshot
    assert apps[0].status == "applied"


def test_one_bad_application_does_not_abort_batch():
    config = _config(autoRejectDays={"enabled": True, "days": 1, "applyTo": ["applied"]})
    apps = [make_app("bad", history=[("applied", 5)]), make_app("good", history=[("applied", 5)])]
    original = AutoRejectDaysRule.propose

    def flaky(self, app):
        if app.id == "bad":
            raise RuntimeError("boom")
        return original(self, app)

    with patch.object(AutoRejectDaysRule, "propose", flaky):
        updates = evaluate_all(apps, config, NOW)
        counts = preview(apps, config, NOW)
    assert [u.application_id for u in updates] == ["good"]
    assert counts["autoRejectDays"] == 1


def test_evaluation_is_deterministic():
    config = _config(autoRejectNoResponse={"enabled": True, "days": 7, "applyTo": ["applied"]})
    apps = [make_app(str(i), created=i * 3) for i in range(10)]
    assert evaluate_all(apps, config, NOW) == evaluate_all(apps, config, NOW)


# ---- preview ----


def test_preview_has_every_rule_key(all_disabled):
    counts = preview([make_app(updated=500)], all_disabled, NOW)
    assert set(counts) == set(RULE_NAMES)
    assert all(v == 0 for v in counts.values())


def test_preview_counts_ignore_short_circuit():
    config = _config(
        autoRejectDays={"enabled": True, "days": 30, "applyTo": ["applied"]},
        autoMoveToInterview={"enabled": True},
        autoRejectNoResponse={"enabled": True, "days": 30, "applyTo": ["applied"]},
        inactiveReminder={"enabled": True, "days": 14},
    )
    app = make_app(history=[("applied", 40)], interviews=["scheduled"], updated=40)
    counts = preview([app], config, NOW)
    assert counts["autoRejectDays"] == 1
    assert counts["autoMoveToInterview"] == 1
    assert counts["autoRejectNoResponse"] == 1
    assert counts["inactiveReminder"] == 1
    assert len(evaluate_all([app], config, NOW)) == 1


def test_preview_counts_reject_and_archive_for_same_app():
    config = _config(
        autoRejectDays={"enabled": True, "days": 30, "applyTo": ["applied", "rejected"]},
        autoArchiveRejected={"enabled": True, "days": 30},
    )
    app = make_app(status="rejected", history=[("rejected", 60)])
    counts = preview([app], config, NOW)
    assert counts["autoRejectDays"] == 1
    assert counts["autoArchiveRejected"] == 1
    assert [u.new_status for u in evaluate_all([app], config, NOW)] == ["rejected"]


def test_preview_disabled_rule_counts_zero():
    config = _config(
        autoMoveToInterview={"enabled": False},
        autoMoveToPendingDecision={"enabled": True, "interviewCount": 1},
    )
    apps = [
        make_app("a", interviews=["scheduled"]),
        make_app("b", status="interview", interviews=["completed"]),
        make_app("c", status="interview", interviews=["completed", "completed"]),
    ]
    counts = preview(apps, config, NOW)
    assert counts["autoMoveToInterview"] == 0
    assert counts["autoMoveToPendingDecision"] == 2


def test_outreach_meetings_do_not_move_to_interview():
    contact = Application.from_dict(
        {"id": "o1", "status": "contacted", "meetings": [{"status": "scheduled"}]}
    )
    assert contact.interviews == ()
    assert evaluate_all([contact], RuleConfig(), NOW) == []
    assert preview([contact], RuleConfig(), NOW)["autoMoveToInterview"] == 0
