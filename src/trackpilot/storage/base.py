"""Protocol definition for application repositories."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable

from trackpilot.models import Application, ProposedUpdate, RunMetrics


@runtime_checkable
class ApplicationRepository(Protocol):
    """Where the scheduler reads snapshots from and writes transitions to.

    Methods are synchronous; the scheduler runs them off the event loop.
    """

    def load_applications(self) -> list[Application]:
        """Return a fresh, immutable snapshot of every application."""
        ...

    def apply_update(self, update: ProposedUpdate, now: datetime | None = None) -> bool:
        """Persist one transition; ``False`` if the application already has that status."""
        ...

    def start_run(self, metrics: RunMetrics) -> None:
        """Record that an automation run began."""
        ...

    def end_run(self, metrics: RunMetrics) -> None:
        """Record the final counters of an automation run."""
        ...
