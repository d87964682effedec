"""
Date Proximity Scoring

Scores how close a document's creation time is to a target date.
The score decays exponentially with the distance in days:

    same instant -> 1.0
    1 day        -> ~0.905
    7 days       -> ~0.497
    30 days      -> ~0.0498
"""

import math
from datetime import datetime

MS_PER_DAY = 86_400_000
DECAY_DAYS = 10.0


def ensure_aware(value: datetime) -> datetime:
    """Attach the local timezone to naive datetimes"""
    if value.tzinfo is None or value.tzinfo.utcoffset(value) is None:
        return value.astimezone()
    return value


def days_between(a: datetime, b: datetime) -> float:
    """Absolute distance in fractional days (millisecond resolution)"""
    delta = ensure_aware(a) - ensure_aware(b)
    ms = abs(delta.total_seconds()) * 1000.0
    return ms / MS_PER_DAY


class DateProximityScorer:
    """Exponential-decay proximity between two points in time."""

    DECAY_DAYS = DECAY_DAYS

    def score(self, created_at: datetime, target_date: datetime) -> float:
        days = days_between(created_at, target_date)
        return max(0.0, min(1.0, math.exp(-days / self.DECAY_DAYS)))
