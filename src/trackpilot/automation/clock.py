"""Elapsed-time queries over an application's timestamps.

Two clocks are tracked independently:

* the **status-change clock**: days since the last ``status_history`` entry,
  falling back to the activity clock;
* the **activity clock**: days since ``updated_at``, then ``created_at``,
  then ``applied_date``.

Each fallback chain is a tuple of accessors tried in order by
:func:`first_present`. When no timestamp in a chain parses, the age is
:data:`UNKNOWN_AGE_DAYS`; rule thresholds are at least one day, so such a
record never trips a time-based rule.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable
from datetime import date, datetime, timedelta, timezone
from typing import Any

from trackpilot.exceptions import DateParseError
from trackpilot.models import Application

logger = logging.getLogger(__name__)

UNKNOWN_AGE_DAYS = 0

_ONE_DAY = timedelta(days=1)

Accessor = Callable[[Application], "datetime | None"]


def parse_date(raw: Any) -> datetime:
    """Parse a stored timestamp into an aware UTC ``datetime``.

    Supported inputs: ``datetime`` (naive values are taken as UTC), ``date``,
    ISO-8601 strings (``Z`` suffix allowed), epoch milliseconds, and
    Firestore-style ``{"seconds": ..., "nanoseconds": ...}`` mappings.

    Raises :class:`DateParseError` for anything else.
    """
    if raw is None or raw == "":
        raise DateParseError("Missing timestamp.")
    if isinstance(raw, datetime):
        return _as_utc(raw)
    if isinstance(raw, date):
        return datetime(raw.year, raw.month, raw.day, tzinfo=timezone.utc)
    if isinstance(raw, bool):
        raise DateParseError(f"Not a timestamp: {raw!r}")
    if isinstance(raw, (int, float)):
        return _from_epoch(raw / 1000, raw)
    if isinstance(raw, dict):
        seconds = raw.get("seconds", raw.get("_seconds"))
        nanos = raw.get("nanoseconds", raw.get("_nanoseconds", 0)) or 0
        if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
            raise DateParseError(f"Timestamp mapping without seconds: {raw!r}")
        return _from_epoch(seconds + nanos / 1e9, raw)
    if isinstance(raw, str):
        text = raw.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            return _as_utc(datetime.fromisoformat(text))
        except (ValueError, OverflowError) as exc:
            raise DateParseError(f"Unparsable timestamp: {raw!r}") from exc
    raise DateParseError(f"Unsupported timestamp type: {type(raw).__name__}")


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    try:
        return value.astimezone(timezone.utc)
    except OverflowError as exc:
        raise DateParseError(f"Timestamp out of range: {value!r}") from exc


def _from_epoch(seconds: float, raw: Any) -> datetime:
    if math.isnan(seconds) or math.isinf(seconds):
        raise DateParseError(f"Unparsable timestamp: {raw!r}")
    try:
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        raise DateParseError(f"Timestamp out of range: {raw!r}") from exc


def resolve_now(now: datetime | None = None) -> datetime:
    """Return *now* as aware UTC, defaulting to the wall clock."""
    if now is None:
        return datetime.now(timezone.utc)
    return _as_utc(now)


def days_between(reference: datetime, now: datetime) -> int:
    """Whole days from *reference* to *now*, floored; negative when in the future."""
    return (now - reference) // _ONE_DAY


# ---- accessors ----


def _parse_or_none(raw: Any) -> datetime | None:
    try:
        return parse_date(raw)
    except DateParseError:
        return None


def last_status_change_at(app: Application) -> datetime | None:
    if not app.status_history:
        return None
    return _parse_or_none(app.status_history[-1].date)


def updated_at(app: Application) -> datetime | None:
    return _parse_or_none(app.updated_at)


def created_at(app: Application) -> datetime | None:
    return _parse_or_none(app.created_at)


def applied_at(app: Application) -> datetime | None:
    return _parse_or_none(app.applied_date)


ACTIVITY_CHAIN: tuple[Accessor, ...] = (updated_at, created_at, applied_at)
STATUS_CHANGE_CHAIN: tuple[Accessor, ...] = (last_status_change_at, *ACTIVITY_CHAIN)


def first_present(app: Application, accessors: Iterable[Accessor]) -> datetime | None:
    """Return the first timestamp any accessor yields, or ``None``."""
    for accessor in accessors:
        value = accessor(app)
        if value is not None:
            return value
    return None


def _age_in_days(app: Application, chain: Iterable[Accessor], now: datetime | None) -> int:
    reference = first_present(app, chain)
    if reference is None:
        logger.debug("No parsable timestamp on application %s.", app.id)
        return UNKNOWN_AGE_DAYS
    return days_between(reference, resolve_now(now))


def days_since_last_status_change(app: Application, now: datetime | None = None) -> int:
    return _age_in_days(app, STATUS_CHANGE_CHAIN, now)


def days_since_last_activity(app: Application, now: datetime | None = None) -> int:
    return _age_in_days(app, ACTIVITY_CHAIN, now)
