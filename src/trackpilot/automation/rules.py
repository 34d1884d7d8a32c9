"""Automation rules as a Chain of Responsibility.

Each rule is bound to its own sub-config and to a fixed ``now``. A rule
exposes :meth:`AutomationRule.propose` (its own predicate plus transition)
and :meth:`AutomationRule.evaluate`, which walks the chain and returns the
first proposal.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime

from trackpilot.automation.clock import (
    days_since_last_activity,
    days_since_last_status_change,
    resolve_now,
)
from trackpilot.models import Application, ProposedUpdate
from trackpilot.settings import (
    AutoArchiveRejectedConfig,
    AutoMoveToInterviewConfig,
    AutoMoveToPendingDecisionConfig,
    AutoRejectDaysConfig,
    AutoRejectNoResponseConfig,
    InactiveReminderConfig,
    RuleSettings,
)

logger = logging.getLogger(__name__)

AUTO_REJECT_DAYS = "autoRejectDays"
AUTO_ARCHIVE_REJECTED = "autoArchiveRejected"
AUTO_MOVE_TO_INTERVIEW = "autoMoveToInterview"
INACTIVE_REMINDER = "inactiveReminder"
AUTO_MOVE_TO_PENDING_DECISION = "autoMoveToPendingDecision"
AUTO_REJECT_NO_RESPONSE = "autoRejectNoResponse"

RULE_NAMES: tuple[str, ...] = (
    AUTO_REJECT_DAYS,
    AUTO_ARCHIVE_REJECTED,
    AUTO_MOVE_TO_INTERVIEW,
    INACTIVE_REMINDER,
    AUTO_MOVE_TO_PENDING_DECISION,
    AUTO_REJECT_NO_RESPONSE,
)

# Statuses past the point where a scheduled interview should move the card.
_INTERVIEW_EXCLUDED = frozenset({"interview", "offer", "rejected"})


class AutomationRule(ABC):
    """Abstract base for a single status-changing rule in the chain."""

    name: str = ""

    def __init__(self, settings: RuleSettings, now: datetime | None = None) -> None:
        self._settings = settings
        self._now = resolve_now(now)
        self._next: AutomationRule | None = None

    @property
    def enabled(self) -> bool:
        return self._settings.enabled

    def set_next(self, handler: AutomationRule) -> AutomationRule:
        self._next = handler
        return handler

    def evaluate(self, app: Application) -> ProposedUpdate | None:
        """Return the first proposal along the chain, or ``None``.

        If this rule does not fire, delegates to the next rule in the chain.
        """
        if self.applies_to(app):
            update = self.propose(app)
            if update is not None:
                logger.debug("%s fired for %s.", self.name, app.id)
                return update
        if self._next:
            return self._next.evaluate(app)
        return None

    def applies_to(self, app: Application) -> bool:
        """Chain-level guard checked before :meth:`propose`."""
        return True

    def matches(self, app: Application) -> bool:
        """Whether *app* satisfies this rule's own firing condition."""
        return self.propose(app) is not None

    @abstractmethod
    def propose(self, app: Application) -> ProposedUpdate | None:
        ...

    def _update(self, app: Application, new_status: str, reason: str) -> ProposedUpdate:
        return ProposedUpdate(
            application_id=app.id,
            new_status=new_status,
            reason=reason,
            rule=self.name,
        )


class AutoRejectDaysRule(AutomationRule):
    """Reject applications that sat in one column for too long."""

    name = AUTO_REJECT_DAYS
    _settings: AutoRejectDaysConfig

    def propose(self, app: Application) -> ProposedUpdate | None:
        if not self._settings.enabled or app.status not in self._settings.apply_to:
            return None
        days = days_since_last_status_change(app, self._now)
        if days >= self._settings.days:
            return self._update(
                app, "rejected", f"Auto-rejected: {days} days in {app.status} status"
            )
        return None


class AutoArchiveRejectedRule(AutomationRule):
    """Archive rejected applications once they are old enough."""

    name = AUTO_ARCHIVE_REJECTED
    _settings: AutoArchiveRejectedConfig

    def propose(self, app: Application) -> ProposedUpdate | None:
        if not self._settings.enabled or app.status != "rejected":
            return None
        days = days_since_last_status_change(app, self._now)
        if days >= self._settings.days:
            return self._update(
                app, "archived", f"Auto-archived: {days} days in rejected status"
            )
        return None


class AutoMoveToInterviewRule(AutomationRule):
    """Move an application to ``interview`` once an interview is scheduled."""

    name = AUTO_MOVE_TO_INTERVIEW
    _settings: AutoMoveToInterviewConfig

    def applies_to(self, app: Application) -> bool:
        return app.status not in _INTERVIEW_EXCLUDED

    def propose(self, app: Application) -> ProposedUpdate | None:
        if not self._settings.enabled or app.status in _INTERVIEW_EXCLUDED:
            return None
        if any(i.status == "scheduled" for i in app.interviews):
            return self._update(app, "interview", "Auto-moved: Interview scheduled")
        return None


class AutoMoveToPendingDecisionRule(AutomationRule):
    """Move to ``pending_decision`` after enough completed interviews."""

    name = AUTO_MOVE_TO_PENDING_DECISION
    _settings: AutoMoveToPendingDecisionConfig

    def propose(self, app: Application) -> ProposedUpdate | None:
        if not self._settings.enabled or app.status != "interview":
            return None
        completed = sum(1 for i in app.interviews if i.status == "completed")
        if completed >= self._settings.interview_count:
            return self._update(
                app, "pending_decision", f"Auto-moved: {completed} completed interviews"
            )
        return None


class AutoRejectNoResponseRule(AutomationRule):
    """Reject applications with no recorded activity for too long."""

    name = AUTO_REJECT_NO_RESPONSE
    _settings: AutoRejectNoResponseConfig

    def propose(self, app: Application) -> ProposedUpdate | None:
        if not self._settings.enabled or app.status not in self._settings.apply_to:
            return None
        days = days_since_last_activity(app, self._now)
        if days >= self._settings.days:
            return self._update(
                app, "rejected", f"Auto-rejected: No activity for {days} days"
            )
        return None


# ---- advisory ----


def inactive_days(app: Application, now: datetime | None = None) -> int:
    """Days since the application's last recorded activity."""
    return days_since_last_activity(app, now)


def is_inactive(
    app: Application, settings: InactiveReminderConfig, now: datetime | None = None
) -> bool:
    """Whether *app* should carry an "inactive" badge. Never changes status."""
    if not settings.enabled:
        return False
    return inactive_days(app, now) >= settings.days
