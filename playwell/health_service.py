# playwell/health_service.py
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from . import models, schemas
from .config import config
from .errors import ValidationError
from .locks import aggregate_locks
from .user_service import get_user, get_user_age
from .wellness import compute_daily_report, day_window, days_touched

logger = logging.getLogger(__name__)


def sessions_overlapping(
    db: Session, user_id: int, start: datetime, end: datetime
) -> List[models.SessionHistory]:
    """Sessions of ``user_id`` with ``ended_at >= start`` and ``started_at < end``."""
    return (
        db.query(models.SessionHistory)
        .join(models.Playthrough, models.SessionHistory.playthrough_id == models.Playthrough.id)
        .filter(
            models.Playthrough.user_id == user_id,
            models.SessionHistory.ended_at >= start,
            models.SessionHistory.started_at < end,
        )
        .order_by(models.SessionHistory.ended_at.desc())
        .all()
    )


def moods_between(
    db: Session, user_id: int, start: datetime, end: datetime
) -> List[models.MoodEntry]:
    return (
        db.query(models.MoodEntry)
        .filter(
            models.MoodEntry.user_id == user_id,
            models.MoodEntry.recorded_at >= start,
            models.MoodEntry.recorded_at < end,
        )
        .order_by(models.MoodEntry.recorded_at.desc())
        .all()
    )


def get_daily_metrics(db: Session, user_id: int, day: date) -> Optional[models.DailyMetrics]:
    return (
        db.query(models.DailyMetrics)
        .filter(
            models.DailyMetrics.user_id == user_id,
            models.DailyMetrics.metric_date == day,
        )
        .first()
    )


def recompute_metrics(db: Session, user_id: int, day: date) -> Optional[models.DailyMetrics]:
    """
    Rebuild the metrics row for (user, day) from scratch.

    Returns None without touching storage when no session overlaps the day.
    """
    with aggregate_locks.hold(("metrics", user_id, day)):
        logger.info("Recalculating health metrics for user %s on %s", user_id, day)

        start, end = day_window(day)
        sessions = sessions_overlapping(db, user_id, start, end)
        if not sessions:
            logger.debug("No sessions found for user %s on %s", user_id, day)
            return None

        ratings = [m.mood_rating for m in moods_between(db, user_id, start, end)]
        report = compute_daily_report(get_user_age(db, user_id), sessions, ratings)

        metrics = get_daily_metrics(db, user_id, day)
        if metrics is None:
            metrics = models.DailyMetrics(user_id=user_id, metric_date=day)
            db.add(metrics)

        for field, value in report.model_dump().items():
            setattr(metrics, field, value)

        db.commit()
        db.refresh(metrics)

        logger.info(
            "Saved health metrics for user %s on %s: score=%s, hours=%.2f, sessions=%s",
            user_id, day, metrics.health_score, metrics.total_hours, metrics.session_count,
        )
        return metrics


def backfill_metrics(db: Session, user_id: int, start_date: date, end_date: date) -> List[date]:
    """Compute metrics for every date in the range that has sessions but no row yet."""
    if end_date < start_date:
        raise ValidationError("Backfill range end must not precede its start")

    range_start, _ = day_window(start_date)
    _, range_end = day_window(end_date)
    sessions = sessions_overlapping(db, user_id, range_start, range_end)

    candidates = set()
    for s in sessions:
        for day in days_touched(s.started_at, s.ended_at):
            if start_date <= day <= end_date:
                candidates.add(day)

    filled = []
    for day in sorted(candidates):
        if get_daily_metrics(db, user_id, day) is None:
            logger.info("Backfilling missing health metrics for user %s on %s", user_id, day)
            recompute_metrics(db, user_id, day)
            filled.append(day)
    return filled


def submit_mood(
    db: Session,
    user_id: int,
    mood_rating: int,
    note: Optional[str] = None,
    session_history_id: Optional[int] = None,
    now: Optional[datetime] = None,
) -> models.MoodEntry:
    if mood_rating < 1 or mood_rating > 5:
        raise ValidationError("Mood rating must be between 1 and 5")
    get_user(db, user_id)

    now = now or datetime.now()

    if session_history_id is not None and db.get(models.SessionHistory, session_history_id) is None:
        session_history_id = None

    entry = models.MoodEntry(
        user_id=user_id,
        session_history_id=session_history_id,
        mood_rating=mood_rating,
        note=note,
        recorded_at=now,
    )
    db.add(entry)
    db.commit()
    db.refresh(entry)
    logger.info("Saved mood entry for user %s: rating=%s", user_id, mood_rating)

    recompute_metrics(db, user_id, now.date())
    return entry


def find_health_settings(db: Session, user_id: int) -> Optional[models.HealthSettings]:
    return db.query(models.HealthSettings).filter(models.HealthSettings.user_id == user_id).first()


def get_health_settings(db: Session, user_id: int) -> models.HealthSettings:
    """Return the user's settings, creating the default row on first access."""
    get_user(db, user_id)
    settings = find_health_settings(db, user_id)
    if settings is None:
        settings = models.HealthSettings(user_id=user_id, **schemas.HealthSettingsIn().model_dump())
        db.add(settings)
        db.commit()
        db.refresh(settings)
        logger.info("Created default health settings for user %s", user_id)
    return settings


def update_health_settings(
    db: Session, user_id: int, payload: schemas.HealthSettingsIn
) -> models.HealthSettings:
    """Replace every setting with the values in ``payload``."""
    get_user(db, user_id)
    settings = find_health_settings(db, user_id)
    if settings is None:
        settings = models.HealthSettings(user_id=user_id)
        db.add(settings)

    for field, value in payload.model_dump().items():
        setattr(settings, field, value)

    db.commit()
    db.refresh(settings)
    logger.info("Updated health settings for user %s", user_id)
    return settings


def _metrics_between(db: Session, user_id: int, start: date, end: date) -> List[models.DailyMetrics]:
    return (
        db.query(models.DailyMetrics)
        .filter(
            models.DailyMetrics.user_id == user_id,
            models.DailyMetrics.metric_date >= start,
            models.DailyMetrics.metric_date <= end,
        )
        .order_by(models.DailyMetrics.metric_date.asc())
        .all()
    )


def _weekly_summary(week: List[models.DailyMetrics]) -> schemas.WeeklyMetricsOut:
    moods = [m.average_mood for m in week if m.average_mood is not None]
    compliance = [m.break_compliance_ratio for m in week]
    return schemas.WeeklyMetricsOut(
        total_hours=sum(m.total_hours for m in week),
        total_sessions=sum(m.session_count for m in week),
        average_mood=sum(moods) / len(moods) if moods else None,
        break_compliance=sum(compliance) / len(compliance) if compliance else 0.0,
        late_night_minutes=sum(m.late_night_minutes for m in week),
    )


def _recent_sessions(
    db: Session, user_id: int, week_start: date, today: date
) -> List[schemas.SessionWithMoodOut]:
    start, _ = day_window(week_start)
    _, end = day_window(today)
    sessions = sessions_overlapping(db, user_id, start, end)[: config.DASHBOARD_RECENT_LIMIT]

    rows = []
    for s in sessions:
        mood = (
            db.query(models.MoodEntry.mood_rating)
            .filter(models.MoodEntry.session_history_id == s.id)
            .order_by(models.MoodEntry.recorded_at.desc())
            .first()
        )
        rows.append(
            schemas.SessionWithMoodOut(
                session_id=s.id,
                playthrough_id=s.playthrough_id,
                duration_seconds=s.duration_seconds,
                mood_rating=mood[0] if mood else None,
                ended_at=s.ended_at,
            )
        )
    return rows


def _goal_progress(
    settings: Optional[models.HealthSettings],
    today_metrics: Optional[models.DailyMetrics],
    week: List[models.DailyMetrics],
) -> schemas.GoalProgressOut:
    return schemas.GoalProgressOut(
        goals_enabled=bool(settings and settings.goals_enabled),
        hours_today=today_metrics.total_hours if today_metrics else 0.0,
        max_hours_per_day=settings.max_hours_per_day if settings else None,
        max_hours_per_day_enabled=bool(settings and settings.max_hours_per_day_enabled),
        sessions_today=today_metrics.session_count if today_metrics else 0,
        max_sessions_per_day=settings.max_sessions_per_day if settings else None,
        max_sessions_per_day_enabled=bool(settings and settings.max_sessions_per_day_enabled),
        hours_this_week=sum(m.total_hours for m in week),
        max_hours_per_week=settings.max_hours_per_week if settings else None,
        max_hours_per_week_enabled=bool(settings and settings.max_hours_per_week_enabled),
    )


def build_dashboard(db: Session, user_id: int, today: Optional[date] = None) -> schemas.HealthDashboardOut:
    get_user(db, user_id)
    today = today or date.today()
    week_start = today - timedelta(days=today.weekday())
    year_start = date(today.year, 1, 1)

    backfill_metrics(db, user_id, week_start, today)

    today_metrics = get_daily_metrics(db, user_id, today)
    week = _metrics_between(db, user_id, week_start, today)
    year = _metrics_between(db, user_id, year_start, today)

    weekly_average = (
        db.query(func.avg(models.DailyMetrics.health_score))
        .filter(
            models.DailyMetrics.user_id == user_id,
            models.DailyMetrics.metric_date >= week_start,
            models.DailyMetrics.metric_date <= today,
        )
        .scalar()
    )

    week_start_dt, _ = day_window(week_start)
    _, today_end = day_window(today)
    recent_moods = moods_between(db, user_id, week_start_dt, today_end)[: config.DASHBOARD_RECENT_LIMIT]

    return schemas.HealthDashboardOut(
        current_date=today,
        current_health_score=today_metrics.health_score if today_metrics else None,
        weekly_average_score=float(weekly_average) if weekly_average is not None else None,
        week_scores=[m.health_score for m in week],
        yearly_heatmap={m.metric_date: m.health_score for m in year},
        today_metrics=schemas.DailyMetricsOut.model_validate(today_metrics) if today_metrics else None,
        week_metrics=_weekly_summary(week),
        recent_moods=[schemas.MoodEntryOut.model_validate(m) for m in recent_moods],
        recent_sessions=_recent_sessions(db, user_id, week_start, today),
        goal_progress=_goal_progress(find_health_settings(db, user_id), today_metrics, week),
    )
