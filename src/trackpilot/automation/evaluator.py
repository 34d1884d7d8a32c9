"""Per-application rule resolution: fixed priority, first match wins."""

from __future__ import annotations

from datetime import datetime

from trackpilot.automation.clock import resolve_now
from trackpilot.automation.rules import (
    AutoArchiveRejectedRule,
    AutomationRule,
    AutoMoveToInterviewRule,
    AutoMoveToPendingDecisionRule,
    AutoRejectDaysRule,
    AutoRejectNoResponseRule,
)
from trackpilot.models import Application, ProposedUpdate
from trackpilot.settings import RuleConfig


def build_rules(config: RuleConfig, now: datetime | None = None) -> list[AutomationRule]:
    """Instantiate every status-changing rule in priority order.

    Terminal-leaning rules (reject, archive) come first so they preempt
    forward progress; the forward rules follow in pipeline order.
    """
    now = resolve_now(now)
    return [
        AutoRejectDaysRule(config.auto_reject_days, now),
        AutoArchiveRejectedRule(config.auto_archive_rejected, now),
        AutoMoveToInterviewRule(config.auto_move_to_interview, now),
        AutoMoveToPendingDecisionRule(config.auto_move_to_pending_decision, now),
        AutoRejectNoResponseRule(config.auto_reject_no_response, now),
    ]


def build_rule_chain(
    config: RuleConfig, now: datetime | None = None
) -> AutomationRule | None:
    """Assemble and return the head of the rule chain (or ``None`` if all disabled)."""
    rules = [rule for rule in build_rules(config, now) if rule.enabled]

    if not rules:
        return None

    for i in range(len(rules) - 1):
        rules[i].set_next(rules[i + 1])

    return rules[0]


def evaluate_application(
    app: Application, config: RuleConfig, now: datetime | None = None
) -> ProposedUpdate | None:
    """Return the single transition proposed for *app*, if any."""
    chain = build_rule_chain(config, now)
    if chain is None:
        return None
    return chain.evaluate(app)
