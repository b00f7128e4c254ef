"""Late-submission penalty calculation."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from labmarks.grading.base import clamp, round1
from labmarks.grading.policy import DEFAULT_LATE_PENALTY_PER_DAY, SECONDS_PER_DAY


@dataclass(frozen=True)
class Lateness:
    due_at: datetime | None
    days_late: int
    late_penalty: float


def as_utc(value: Any) -> datetime | None:
    """Coerce a datetime or ISO-8601 string to an aware UTC datetime; invalid input yields None."""
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            value = datetime.fromisoformat(text)
        except ValueError:
            return None
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def penalty_rate(value: Any) -> float:
    if isinstance(value, bool):
        return DEFAULT_LATE_PENALTY_PER_DAY
    try:
        rate = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LATE_PENALTY_PER_DAY
    if not math.isfinite(rate) or rate < 0:
        return DEFAULT_LATE_PENALTY_PER_DAY
    return rate


def compute_late_penalty(due_at: Any, submitted_at: Any, per_day: Any = DEFAULT_LATE_PENALTY_PER_DAY) -> Lateness:
    due = as_utc(due_at)
    if due is None:
        return Lateness(due_at=None, days_late=0, late_penalty=0.0)

    submitted = as_utc(submitted_at) or datetime.now(timezone.utc)
    if submitted <= due:
        return Lateness(due_at=due, days_late=0, late_penalty=0.0)

    days_late = math.ceil((submitted - due).total_seconds() / SECONDS_PER_DAY)
    return Lateness(
        due_at=due,
        days_late=days_late,
        late_penalty=round1(clamp(days_late * penalty_rate(per_day))),
    )
