"""
Remaining-time arithmetic.

Remaining time is always wall-clock from the persisted anchor:
    remaining = max(0, floor((started_at + duration - now) / 1s))
Nothing here keeps a running countdown, so a relaunched process computes the
same value as the one that started the attempt.
"""

import math
from datetime import datetime, timedelta

from django.conf import settings
from django.utils import timezone


def now() -> datetime:
    # server clock; the client device never supplies the anchor
    return timezone.now()


def anchor_end(started_at: datetime, duration: timedelta) -> datetime:
    return started_at + duration


def remaining_seconds(started_at: datetime, duration: timedelta, at: datetime | None = None) -> int:
    at = at or now()
    return max(0, math.floor((anchor_end(started_at, duration) - at).total_seconds()))


def is_time_up(started_at: datetime, duration: timedelta, at: datetime | None = None) -> bool:
    return remaining_seconds(started_at, duration, at) <= 0


def accepts_answers(started_at: datetime, duration: timedelta, at: datetime | None = None) -> bool:
    """Answers are accepted until the deadline plus the configured grace."""
    at = at or now()
    grace = timedelta(seconds=int(getattr(settings, "EXAM_LATE_ANSWER_GRACE_SECONDS", 0) or 0))
    return at < anchor_end(started_at, duration) + grace
