"""Automation harness: snapshot, evaluate, persist and report on a timer."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone

from trackpilot.automation.engine import evaluate_all
from trackpilot.exceptions import PersistenceError, RunInProgressError
from trackpilot.models import Application, ProposedUpdate, RunMetrics
from trackpilot.settings import RuleConfig
from trackpilot.storage.base import ApplicationRepository

logger = logging.getLogger(__name__)

TransitionCallback = Callable[["Application | None", ProposedUpdate], None]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AutomationScheduler:
    """Runs the rule engine against a repository once soon after start, then on an interval.

    Only one run may be in flight per *lock*; share the lock between
    schedulers that act on the same user's data. A tick that finds the lock
    held is skipped, not queued.
    """

    def __init__(
        self,
        repository: ApplicationRepository,
        config: RuleConfig,
        *,
        interval_seconds: float = 300.0,
        initial_delay_seconds: float = 5.0,
        lock: asyncio.Lock | None = None,
        on_transition: TransitionCallback | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._repository = repository
        self._config = config
        self._interval = interval_seconds
        self._initial_delay = initial_delay_seconds
        self._lock = lock or asyncio.Lock()
        self._on_transition = on_transition
        self._clock = clock
        self._stopping = asyncio.Event()
        self._loop_task: asyncio.Task | None = None
        self._ticks: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def busy(self) -> bool:
        return self._lock.locked()

    # ---- lifecycle ----

    def start(self) -> asyncio.Task:
        """Start the timer loop; must be called from a running event loop."""
        if self.running:
            assert self._loop_task is not None
            return self._loop_task
        self._stopping.clear()
        self._loop_task = asyncio.create_task(self._timer_loop(), name="trackpilot-automation")
        logger.info(
            "Automation scheduler started (first run in %.0fs, then every %.0fs).",
            self._initial_delay,
            self._interval,
        )
        return self._loop_task

    async def stop(self) -> None:
        """Stop scheduling runs.

        A persistence call already in flight finishes; the rest of that run's
        updates are left for the next run. Once stopped, the scheduler can be
        started again or driven with :meth:`run_once`.
        """
        self._stopping.set()
        if self._loop_task is not None:
            await self._loop_task
            self._loop_task = None
        if self._ticks:
            await asyncio.gather(*self._ticks, return_exceptions=True)
        self._stopping.clear()
        logger.info("Automation scheduler stopped.")

    async def _timer_loop(self) -> None:
        if await self._sleep_or_stop(self._initial_delay):
            return
        while True:
            tick = asyncio.create_task(self._tick())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            if await self._sleep_or_stop(self._interval):
                return

    async def _sleep_or_stop(self, seconds: float) -> bool:
        """Wait *seconds*; return ``True`` if a stop was requested meanwhile."""
        try:
            await asyncio.wait_for(self._stopping.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return self._stopping.is_set()
        return True

    async def _tick(self) -> None:
        try:
            await self.run_once()
        except RunInProgressError:
            logger.info("Previous automation run still in flight; skipping this tick.")
        except Exception:
            logger.exception("Automation run failed.")

    # ---- one run ----

    async def run_once(self) -> RunMetrics:
        """Evaluate a fresh snapshot and persist the proposed updates one by one.

        Raises :class:`RunInProgressError` if another run holds the lock.
        """
        if self._lock.locked():
            raise RunInProgressError("An automation run is already in flight.")
        async with self._lock:
            return await self._run()

    async def _run(self) -> RunMetrics:
        metrics = RunMetrics()
        now = self._clock()
        await asyncio.to_thread(self._repository.start_run, metrics)

        applications = await asyncio.to_thread(self._repository.load_applications)
        metrics.total_evaluated = len(applications)
        updates = evaluate_all(applications, self._config, now)
        metrics.total_proposed = len(updates)
        by_id = {app.id: app for app in applications}

        for index, update in enumerate(updates):
            if self._stopping.is_set():
                remaining = len(updates) - index
                metrics.total_skipped += remaining
                logger.info("Stop requested; leaving %d update(s) for the next run.", remaining)
                break
            try:
                applied = await asyncio.to_thread(self._repository.apply_update, update, now)
            except PersistenceError as exc:
                logger.warning("Could not persist %s: %s", update.application_id, exc)
                metrics.record_failure(update.application_id, str(exc))
                continue
            except Exception as exc:
                logger.exception("Unexpected error persisting %s.", update.application_id)
                metrics.record_failure(update.application_id, str(exc))
                continue
            if not applied:
                metrics.total_skipped += 1
                continue
            metrics.total_applied += 1
            self._notify(by_id.get(update.application_id), update)

        metrics.finalize()
        await asyncio.to_thread(self._repository.end_run, metrics)
        logger.info(
            "Automation run %s: %d evaluated, %d proposed, %d applied, %d failed, %d skipped.",
            metrics.run_id,
            metrics.total_evaluated,
            metrics.total_proposed,
            metrics.total_applied,
            metrics.total_failed,
            metrics.total_skipped,
        )
        return metrics

    def _notify(self, app: Application | None, update: ProposedUpdate) -> None:
        if self._on_transition is None:
            return
        try:
            self._on_transition(app, update)
        except Exception:
            logger.exception("Transition callback failed for %s.", update.application_id)
