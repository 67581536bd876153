import enum
from datetime import datetime

from sqlalchemy import (
    Column,
    Integer,
    String,
    Boolean,
    DateTime,
    Date,
    Float,
    Enum,
    ForeignKey,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from .database import Base


class PlaythroughState(str, enum.Enum):
    NOT_STARTED = "NOT_STARTED"
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    DROPPED = "DROPPED"


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    age = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class Playthrough(Base):
    __tablename__ = "playthroughs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    game_id = Column(Integer, nullable=False, index=True)

    playthrough_type = Column(String(50), nullable=False, default="story")
    title = Column(String(255), nullable=True)
    platform = Column(String(100), nullable=True)

    state = Column(Enum(PlaythroughState), nullable=False, default=PlaythroughState.NOT_STARTED)

    duration_seconds = Column(Integer, nullable=False, default=0)
    session_count = Column(Integer, nullable=False, default=0)
    pause_count = Column(Integer, nullable=False, default=0)

    # only meaningful while ACTIVE or PAUSED
    current_started_at = Column(DateTime, nullable=True)
    session_anchor_time = Column(DateTime, nullable=True)
    session_anchor_duration = Column(Integer, nullable=False, default=0)
    manual_time_set = Column(Boolean, nullable=False, default=False)

    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)
    stopped_at = Column(DateTime, nullable=True)
    last_played_at = Column(DateTime, nullable=True)
    dropped_at = Column(DateTime, nullable=True)
    picked_up_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now)

    # plain id, not a foreign key: the import is a one-time copy
    imported_from_playthrough_id = Column(Integer, nullable=True)
    imported_duration_seconds = Column(Integer, nullable=False, default=0)

    sessions = relationship(
        "SessionHistory",
        back_populates="playthrough",
        cascade="all, delete-orphan",
        order_by="SessionHistory.session_number",
    )


class SessionHistory(Base):
    __tablename__ = "session_history"

    id = Column(Integer, primary_key=True, index=True)
    playthrough_id = Column(Integer, ForeignKey("playthroughs.id"), nullable=False, index=True)
    session_number = Column(Integer, nullable=False)
    duration_seconds = Column(Integer, nullable=False)
    pause_count = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime, nullable=False)
    ended_at = Column(DateTime, nullable=False)

    playthrough = relationship("Playthrough", back_populates="sessions")

    __table_args__ = (
        UniqueConstraint("playthrough_id", "session_number", name="uq_session_number"),
    )


class MoodEntry(Base):
    __tablename__ = "mood_entries"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    session_history_id = Column(
        Integer, ForeignKey("session_history.id", ondelete="SET NULL"), nullable=True
    )
    mood_rating = Column(Integer, nullable=False)  # 1-5
    note = Column(String(500), nullable=True)
    recorded_at = Column(DateTime, nullable=False, index=True)


class DailyMetrics(Base):
    __tablename__ = "daily_metrics"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    metric_date = Column(Date, nullable=False)

    health_score = Column(Integer, nullable=False)
    total_hours = Column(Float, nullable=False, default=0.0)
    session_count = Column(Integer, nullable=False, default=0)
    average_mood = Column(Float, nullable=True)
    late_night_minutes = Column(Integer, nullable=False, default=0)
    break_compliance_ratio = Column(Float, nullable=False, default=1.0)
    sessions_with_breaks = Column(Integer, nullable=False, default=0)

    morning_sessions = Column(Integer, nullable=False, default=0)
    afternoon_sessions = Column(Integer, nullable=False, default=0)
    evening_sessions = Column(Integer, nullable=False, default=0)
    night_sessions = Column(Integer, nullable=False, default=0)
    late_night_sessions = Column(Integer, nullable=False, default=0)

    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    __table_args__ = (
        UniqueConstraint("user_id", "metric_date", name="uq_metrics_user_date"),
    )


class HealthSettings(Base):
    __tablename__ = "health_settings"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    notifications_enabled = Column(Boolean, nullable=False, default=False)
    sounds_enabled = Column(Boolean, nullable=False, default=False)
    hydration_reminder_enabled = Column(Boolean, nullable=False, default=False)
    hydration_interval_minutes = Column(Integer, nullable=False, default=30)
    stand_reminder_enabled = Column(Boolean, nullable=False, default=False)
    stand_interval_minutes = Column(Integer, nullable=False, default=60)
    break_reminder_enabled = Column(Boolean, nullable=False, default=False)
    break_interval_minutes = Column(Integer, nullable=False, default=50)
    break_duration_minutes = Column(Integer, nullable=False, default=10)

    goals_enabled = Column(Boolean, nullable=False, default=False)
    max_hours_per_day_enabled = Column(Boolean, nullable=False, default=False)
    max_hours_per_day = Column(Float, nullable=True)
    max_sessions_per_day_enabled = Column(Boolean, nullable=False, default=False)
    max_sessions_per_day = Column(Integer, nullable=True)
    max_hours_per_week_enabled = Column(Boolean, nullable=False, default=False)
    max_hours_per_week = Column(Float, nullable=True)
    goal_notifications_enabled = Column(Boolean, nullable=False, default=False)

    mood_prompt_enabled = Column(Boolean, nullable=False, default=True)
    mood_prompt_required = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)
