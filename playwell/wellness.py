"""
Daily wellness scoring.

Everything here is a pure function of a user's age, the sessions that overlap
one calendar day and that day's mood ratings. Persistence lives in
``health_service``.
"""
import logging
import math
from datetime import date, datetime, time, timedelta
from typing import Iterable, List, NamedTuple, Optional, Sequence, Tuple

from pydantic import BaseModel

from .config import config

logger = logging.getLogger(__name__)

LONG_SESSION_SECONDS = 3000  # 50 minutes

WEIGHT_HOURS = 0.20
WEIGHT_SESSIONS = 0.15
WEIGHT_BREAKS = 0.15
WEIGHT_MOOD = 0.25
WEIGHT_LATE_NIGHT = 0.25

ONE_MINUTE = timedelta(minutes=1)


class AgeLimits(NamedTuple):
    max_hours_per_day: float
    # not used by the score
    max_hours_per_week: float


def age_limits(age: Optional[int]) -> AgeLimits:
    if age is None:
        age = config.DEFAULT_AGE

    if age <= 2:
        return AgeLimits(0.0, 0.0)
    if age <= 5:
        return AgeLimits(1.0, 7.0)
    if age <= 12:
        return AgeLimits(2.0, 14.0)
    if age <= 17:
        return AgeLimits(2.0, 14.0)
    return AgeLimits(3.0, 21.0)


def day_window(day: date) -> Tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


def overlaps_day(started_at: datetime, ended_at: datetime, day: date) -> bool:
    start, end = day_window(day)
    return ended_at >= start and started_at < end


def days_touched(started_at: datetime, ended_at: datetime) -> List[date]:
    """Every calendar date a session overlaps, using the same rule as ``overlaps_day``."""
    days = []
    current = started_at.date()
    while overlaps_day(started_at, ended_at, current):
        days.append(current)
        current += timedelta(days=1)
    return days


def is_late_hour(hour: int) -> bool:
    return hour >= 22 or hour < 6


def time_of_day_bucket(started_at: datetime) -> str:
    hour = started_at.hour
    if 6 <= hour < 12:
        return "morning"
    if 12 <= hour < 18:
        return "afternoon"
    if 18 <= hour < 22:
        return "evening"
    if 22 <= hour < 24:
        return "night"
    return "late_night"


def late_night_minutes(started_at: datetime, ended_at: datetime) -> int:
    """
    Whole minutes between the two instants whose local hour falls in
    22:00-06:00. Walks one minute at a time; a trailing partial minute
    never counts.
    """
    minutes = 0
    current = started_at
    while current < ended_at:
        following = current + ONE_MINUTE
        if following > ended_at:
            break
        if is_late_hour(current.hour):
            minutes += 1
        current = following
    return minutes


def _clamp01(value: float) -> float:
    return max(0.0, min(1.0, value))


def health_score(
    age: Optional[int],
    total_hours: float,
    session_count: int,
    average_mood: Optional[float],
    late_minutes: int,
    break_compliance_ratio: float,
) -> int:
    limits = age_limits(age)
    daily_limit = limits.max_hours_per_day

    if daily_limit > 0:
        norm_hours = _clamp01((total_hours - 0.8 * daily_limit) / (0.2 * daily_limit))
    else:
        # toddlers: any play at all is over the limit
        norm_hours = 1.0 if total_hours > 0 else 0.0

    norm_sessions = _clamp01((session_count - 2) / 3.0) if session_count > 2 else 0.0
    break_penalty = 1.0 - break_compliance_ratio
    mood_penalty = (5.0 - average_mood) / 4.0 if average_mood is not None else 0.5

    total_minutes = total_hours * 60
    late_penalty = _clamp01(late_minutes / total_minutes) if total_minutes > 0 else 0.0

    weighted_penalty = (
        WEIGHT_HOURS * norm_hours
        + WEIGHT_SESSIONS * norm_sessions
        + WEIGHT_BREAKS * break_penalty
        + WEIGHT_MOOD * mood_penalty
        + WEIGHT_LATE_NIGHT * late_penalty
    )
    # half-up, ignoring float noise (47.49999999999999 -> 48)
    score = int(math.floor(round(100 * (1.0 - weighted_penalty), 9) + 0.5))

    logger.debug(
        "Score terms: hours=%.3f sessions=%.3f breaks=%.3f mood=%.3f late=%.3f -> %s",
        norm_hours, norm_sessions, break_penalty, mood_penalty, late_penalty, score,
    )
    return max(0, min(100, score))


class DailyReport(BaseModel):
    health_score: int
    total_hours: float
    session_count: int
    average_mood: Optional[float] = None
    late_night_minutes: int
    break_compliance_ratio: float
    sessions_with_breaks: int
    morning_sessions: int = 0
    afternoon_sessions: int = 0
    evening_sessions: int = 0
    night_sessions: int = 0
    late_night_sessions: int = 0


def compute_daily_report(
    age: Optional[int],
    sessions: Sequence,
    mood_ratings: Iterable[int],
) -> DailyReport:
    """
    ``sessions`` are objects with ``started_at``, ``ended_at``,
    ``duration_seconds`` and ``pause_count`` (SessionHistory rows in practice).
    """
    ratings = list(mood_ratings)
    average_mood = sum(ratings) / len(ratings) if ratings else None

    total_hours = sum(s.duration_seconds for s in sessions) / 3600.0
    session_count = len(sessions)

    buckets = {"morning": 0, "afternoon": 0, "evening": 0, "night": 0, "late_night": 0}
    late_minutes = 0
    for s in sessions:
        buckets[time_of_day_bucket(s.started_at)] += 1
        late_minutes += late_night_minutes(s.started_at, s.ended_at)

    long_sessions = [s for s in sessions if s.duration_seconds > LONG_SESSION_SECONDS]
    long_with_breaks = sum(1 for s in long_sessions if s.pause_count > 0)
    break_ratio = long_with_breaks / len(long_sessions) if long_sessions else 1.0

    score = health_score(age, total_hours, session_count, average_mood, late_minutes, break_ratio)

    return DailyReport(
        health_score=score,
        total_hours=total_hours,
        session_count=session_count,
        average_mood=average_mood,
        late_night_minutes=late_minutes,
        break_compliance_ratio=break_ratio,
        sessions_with_breaks=sum(1 for s in sessions if s.pause_count > 0),
        morning_sessions=buckets["morning"],
        afternoon_sessions=buckets["afternoon"],
        evening_sessions=buckets["evening"],
        night_sessions=buckets["night"],
        late_night_sessions=buckets["late_night"],
    )
