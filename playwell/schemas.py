from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .models import PlaythroughState


def local_naive(value: datetime) -> datetime:
    """Stored timestamps are naive local time; convert offset-carrying input to match."""
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


class UserCreate(BaseModel):
    name: str
    age: Optional[int] = Field(default=None, ge=0)


class UserAgeUpdate(BaseModel):
    age: Optional[int] = Field(default=None, ge=0)


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    age: Optional[int] = None


class PlaythroughCreate(BaseModel):
    user_id: int
    game_id: int
    playthrough_type: str = "story"
    title: Optional[str] = None
    platform: Optional[str] = None
    start_date: Optional[date] = None


class PlaythroughOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    game_id: int
    playthrough_type: str
    title: Optional[str] = None
    platform: Optional[str] = None
    state: PlaythroughState
    duration_seconds: int
    session_count: int
    pause_count: int
    current_started_at: Optional[datetime] = None
    session_anchor_time: Optional[datetime] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    stopped_at: Optional[datetime] = None
    last_played_at: Optional[datetime] = None
    dropped_at: Optional[datetime] = None
    picked_up_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    imported_from_playthrough_id: Optional[int] = None
    imported_duration_seconds: int = 0
    last_session_history_id: Optional[int] = None


class UpdateDurationRequest(BaseModel):
    duration_seconds: int


class UpdatePlatformRequest(BaseModel):
    platform: Optional[str] = None


class UpdateTitleRequest(BaseModel):
    title: Optional[str] = None


class LogManualSessionRequest(BaseModel):
    started_at: datetime
    ended_at: datetime

    @field_validator("started_at", "ended_at")
    @classmethod
    def to_local_naive(cls, value: datetime) -> datetime:
        return local_naive(value)


class ImportSessionsRequest(BaseModel):
    source_playthrough_id: int


class SessionOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    playthrough_id: int
    session_number: int
    duration_seconds: int
    pause_count: int
    started_at: datetime
    ended_at: datetime


class SubmitMoodRequest(BaseModel):
    mood_rating: int = Field(ge=1, le=5)
    note: Optional[str] = Field(default=None, max_length=500)
    session_history_id: Optional[int] = None


class MoodEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    session_history_id: Optional[int] = None
    mood_rating: int
    note: Optional[str] = None
    recorded_at: datetime


class DailyMetricsOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    metric_date: date
    health_score: int
    total_hours: float
    session_count: int
    average_mood: Optional[float] = None
    late_night_minutes: int
    break_compliance_ratio: float
    sessions_with_breaks: int
    morning_sessions: int
    afternoon_sessions: int
    evening_sessions: int
    night_sessions: int
    late_night_sessions: int


class BackfillRequest(BaseModel):
    start_date: date
    end_date: date


class BackfillOut(BaseModel):
    filled_dates: List[date]


class WeeklyMetricsOut(BaseModel):
    total_hours: float
    total_sessions: int
    average_mood: Optional[float] = None
    break_compliance: float
    late_night_minutes: int


class SessionWithMoodOut(BaseModel):
    session_id: int
    playthrough_id: int
    duration_seconds: int
    mood_rating: Optional[int] = None
    ended_at: datetime


class HealthSettingsIn(BaseModel):
    notifications_enabled: bool = False
    sounds_enabled: bool = False
    hydration_reminder_enabled: bool = False
    hydration_interval_minutes: int = Field(default=30, gt=0)
    stand_reminder_enabled: bool = False
    stand_interval_minutes: int = Field(default=60, gt=0)
    break_reminder_enabled: bool = False
    break_interval_minutes: int = Field(default=50, gt=0)
    break_duration_minutes: int = Field(default=10, gt=0)

    goals_enabled: bool = False
    max_hours_per_day_enabled: bool = False
    max_hours_per_day: Optional[float] = Field(default=None, ge=0)
    max_sessions_per_day_enabled: bool = False
    max_sessions_per_day: Optional[int] = Field(default=None, ge=0)
    max_hours_per_week_enabled: bool = False
    max_hours_per_week: Optional[float] = Field(default=None, ge=0)
    goal_notifications_enabled: bool = False

    mood_prompt_enabled: bool = True
    mood_prompt_required: bool = False


class HealthSettingsOut(HealthSettingsIn):
    model_config = ConfigDict(from_attributes=True)


class GoalProgressOut(BaseModel):
    goals_enabled: bool
    hours_today: float
    max_hours_per_day: Optional[float] = None
    max_hours_per_day_enabled: bool
    sessions_today: int
    max_sessions_per_day: Optional[int] = None
    max_sessions_per_day_enabled: bool
    hours_this_week: float
    max_hours_per_week: Optional[float] = None
    max_hours_per_week_enabled: bool


class HealthDashboardOut(BaseModel):
    current_date: date
    current_health_score: Optional[int] = None
    weekly_average_score: Optional[float] = None
    week_scores: List[int]
    yearly_heatmap: Dict[date, int]
    today_metrics: Optional[DailyMetricsOut] = None
    week_metrics: WeeklyMetricsOut
    recent_moods: List[MoodEntryOut]
    recent_sessions: List[SessionWithMoodOut]
    goal_progress: GoalProgressOut
