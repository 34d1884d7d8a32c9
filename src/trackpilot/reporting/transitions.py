"""Transition log: every status change the automation rules applied, with its reason."""

from __future__ import annotations

import csv
import json
import logging
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

TRANSITION_FIELDS = (
    "changed_at",
    "application_id",
    "company_name",
    "position",
    "new_status",
    "rule",
    "reason",
)


def write_transitions(rows: list[dict[str, Any]], dest: str | Path) -> Path:
    """Write *rows* to *dest*; a ``.csv`` suffix selects CSV, anything else JSON."""
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    with open(dest, "w", encoding="utf-8", newline="") as fh:
        if dest.suffix.lower() == ".csv":
            writer = csv.DictWriter(fh, fieldnames=TRANSITION_FIELDS, lineterminator="\n")
            writer.writeheader()
            writer.writerows(rows)
        else:
            json.dump(rows, fh, indent=2)
    logger.info("Wrote %d transition(s) to %s.", len(rows), dest)
    return dest
