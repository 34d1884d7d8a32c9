"""Batch entry points: evaluate every application, or preview rule matches."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import datetime

from trackpilot.automation.clock import resolve_now
from trackpilot.automation.evaluator import build_rule_chain, build_rules
from trackpilot.automation.rules import INACTIVE_REMINDER, RULE_NAMES, is_inactive
from trackpilot.models import Application, ProposedUpdate
from trackpilot.settings import RuleConfig

logger = logging.getLogger(__name__)


def evaluate_all(
    applications: Iterable[Application],
    config: RuleConfig,
    now: datetime | None = None,
) -> list[ProposedUpdate]:
    """Return at most one proposed transition per application, in input order.

    A failure while evaluating one application is logged and that application
    is left out; the rest of the batch still runs. Repeated ids are evaluated
    once (first occurrence).
    """
    now = resolve_now(now)
    chain = build_rule_chain(config, now)
    if chain is None:
        return []

    updates: list[ProposedUpdate] = []
    seen: set[str] = set()
    for app in applications:
        if app.id in seen:
            logger.warning("Duplicate application id %s in snapshot; skipping.", app.id)
            continue
        seen.add(app.id)
        try:
            update = chain.evaluate(app)
        except Exception:
            logger.exception("Rule evaluation failed for application %s.", app.id)
            continue
        if update is not None:
            updates.append(update)

    logger.info("Evaluated %d application(s), %d update(s) proposed.", len(seen), len(updates))
    return updates


def preview(
    applications: Iterable[Application],
    config: RuleConfig,
    now: datetime | None = None,
) -> dict[str, int]:
    """Count, per rule, the applications that satisfy that rule's own criteria.

    Counts ignore cross-rule precedence: one application may be counted under
    several rules although a real run moves it at most once. Disabled rules
    count zero.
    """
    now = resolve_now(now)
    rules = [rule for rule in build_rules(config, now) if rule.enabled]
    counts = dict.fromkeys(RULE_NAMES, 0)

    for app in applications:
        try:
            matched = [rule.name for rule in rules if rule.matches(app)]
            if is_inactive(app, config.inactive_reminder, now):
                matched.append(INACTIVE_REMINDER)
        except Exception:
            logger.exception("Preview failed for application %s.", app.id)
            continue
        for name in matched:
            counts[name] += 1

    return counts
