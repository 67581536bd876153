import logging
from datetime import date
from typing import List

from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from .config import config
from .database import Base, engine, get_db
from . import health_service, models, user_service
from . import playthrough_service as service
from .errors import InvalidTransition, NotFound, PlaywellError, ValidationError
from .schemas import (
    BackfillOut,
    BackfillRequest,
    DailyMetricsOut,
    HealthDashboardOut,
    HealthSettingsIn,
    HealthSettingsOut,
    ImportSessionsRequest,
    LogManualSessionRequest,
    MoodEntryOut,
    PlaythroughCreate,
    PlaythroughOut,
    SessionOut,
    SubmitMoodRequest,
    UpdateDurationRequest,
    UpdatePlatformRequest,
    UpdateTitleRequest,
    UserAgeUpdate,
    UserCreate,
    UserOut,
)

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

Base.metadata.create_all(bind=engine)

app = FastAPI(title=f"{config.APP_NAME} API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

STATUS_CODES = {
    NotFound: 404,
    ValidationError: 400,
    InvalidTransition: 409,
}


@app.exception_handler(PlaywellError)
def playwell_error_handler(request: Request, exc: PlaywellError):
    status_code = STATUS_CODES.get(type(exc), 400)
    return JSONResponse(status_code=status_code, content={"detail": exc.message})


def _view(playthrough: models.Playthrough, **extra) -> PlaythroughOut:
    return PlaythroughOut.model_validate(playthrough).model_copy(update=extra)


@app.post("/users", response_model=UserOut, status_code=201)
def create_user(payload: UserCreate, db: Session = Depends(get_db)):
    return user_service.create_user(db, payload.name, payload.age)


@app.put("/users/{user_id}/age", response_model=UserOut)
def update_user_age(user_id: int, payload: UserAgeUpdate, db: Session = Depends(get_db)):
    return user_service.update_user_age(db, user_id, payload.age)


@app.post("/playthroughs", response_model=PlaythroughOut, status_code=201)
def create_playthrough(payload: PlaythroughCreate, db: Session = Depends(get_db)):
    return _view(service.create_playthrough(db, **payload.model_dump()))


@app.get("/users/{user_id}/playthroughs", response_model=List[PlaythroughOut])
def list_playthroughs(user_id: int, db: Session = Depends(get_db)):
    return [_view(p) for p in service.list_playthroughs(db, user_id)]


@app.get("/playthroughs/{playthrough_id}", response_model=PlaythroughOut)
def get_playthrough(playthrough_id: int, db: Session = Depends(get_db)):
    return _view(service.get_playthrough(db, playthrough_id))


@app.delete("/playthroughs/{playthrough_id}", status_code=204)
def delete_playthrough(playthrough_id: int, db: Session = Depends(get_db)):
    service.delete_playthrough(db, playthrough_id)


@app.post("/playthroughs/{playthrough_id}/start", response_model=PlaythroughOut)
def start(playthrough_id: int, db: Session = Depends(get_db)):
    return _view(service.start_playthrough(db, playthrough_id))


@app.post("/playthroughs/{playthrough_id}/pause", response_model=PlaythroughOut)
def pause(playthrough_id: int, db: Session = Depends(get_db)):
    return _view(service.pause_playthrough(db, playthrough_id))


@app.post("/playthroughs/{playthrough_id}/stop", response_model=PlaythroughOut)
def stop(playthrough_id: int, db: Session = Depends(get_db)):
    return _view(service.stop_playthrough(db, playthrough_id))


@app.post("/playthroughs/{playthrough_id}/drop", response_model=PlaythroughOut)
def drop(playthrough_id: int, db: Session = Depends(get_db)):
    return _view(service.drop_playthrough(db, playthrough_id))


@app.post("/playthroughs/{playthrough_id}/pickup", response_model=PlaythroughOut)
def pickup(playthrough_id: int, db: Session = Depends(get_db)):
    return _view(service.pickup_playthrough(db, playthrough_id))


@app.post("/playthroughs/{playthrough_id}/end-session", response_model=PlaythroughOut)
def end_session(playthrough_id: int, db: Session = Depends(get_db)):
    playthrough, session_id = service.end_session(db, playthrough_id)
    return _view(playthrough, last_session_history_id=session_id)


@app.put("/playthroughs/{playthrough_id}/duration", response_model=PlaythroughOut)
def update_duration(playthrough_id: int, payload: UpdateDurationRequest, db: Session = Depends(get_db)):
    return _view(service.update_duration(db, playthrough_id, payload.duration_seconds))


@app.put("/playthroughs/{playthrough_id}/platform", response_model=PlaythroughOut)
def update_platform(playthrough_id: int, payload: UpdatePlatformRequest, db: Session = Depends(get_db)):
    return _view(service.update_platform(db, playthrough_id, payload.platform))


@app.put("/playthroughs/{playthrough_id}/title", response_model=PlaythroughOut)
def update_title(playthrough_id: int, payload: UpdateTitleRequest, db: Session = Depends(get_db)):
    return _view(service.update_title(db, playthrough_id, payload.title))


@app.get("/playthroughs/{playthrough_id}/sessions", response_model=List[SessionOut])
def list_sessions(playthrough_id: int, db: Session = Depends(get_db)):
    return service.list_sessions(db, playthrough_id)


@app.post("/playthroughs/{playthrough_id}/sessions", response_model=PlaythroughOut)
def log_manual_session(playthrough_id: int, payload: LogManualSessionRequest, db: Session = Depends(get_db)):
    return _view(service.log_manual_session(db, playthrough_id, payload.started_at, payload.ended_at))


@app.delete("/playthroughs/{playthrough_id}/sessions/{session_id}", response_model=PlaythroughOut)
def delete_session(playthrough_id: int, session_id: int, db: Session = Depends(get_db)):
    return _view(service.delete_session(db, playthrough_id, session_id))


@app.post("/playthroughs/{playthrough_id}/import", response_model=PlaythroughOut)
def import_sessions(playthrough_id: int, payload: ImportSessionsRequest, db: Session = Depends(get_db)):
    return _view(service.import_sessions(db, playthrough_id, payload.source_playthrough_id))


@app.post("/users/{user_id}/moods", response_model=MoodEntryOut, status_code=201)
def submit_mood(user_id: int, payload: SubmitMoodRequest, db: Session = Depends(get_db)):
    return health_service.submit_mood(
        db,
        user_id,
        payload.mood_rating,
        note=payload.note,
        session_history_id=payload.session_history_id,
    )


@app.post("/users/{user_id}/metrics/{metric_date}/recompute", response_model=DailyMetricsOut)
def recompute_metrics(user_id: int, metric_date: date, db: Session = Depends(get_db)):
    metrics = health_service.recompute_metrics(db, user_id, metric_date)
    if metrics is None:
        raise NotFound(f"No sessions for user {user_id} on {metric_date}")
    return metrics


@app.get("/users/{user_id}/metrics/{metric_date}", response_model=DailyMetricsOut)
def get_daily_metrics(user_id: int, metric_date: date, db: Session = Depends(get_db)):
    metrics = health_service.get_daily_metrics(db, user_id, metric_date)
    if metrics is None:
        raise NotFound(f"No metrics for user {user_id} on {metric_date}")
    return metrics


@app.post("/users/{user_id}/metrics/backfill", response_model=BackfillOut)
def backfill_metrics(user_id: int, payload: BackfillRequest, db: Session = Depends(get_db)):
    filled = health_service.backfill_metrics(db, user_id, payload.start_date, payload.end_date)
    return BackfillOut(filled_dates=filled)


@app.get("/users/{user_id}/health-settings", response_model=HealthSettingsOut)
def get_health_settings(user_id: int, db: Session = Depends(get_db)):
    return health_service.get_health_settings(db, user_id)


@app.put("/users/{user_id}/health-settings", response_model=HealthSettingsOut)
def update_health_settings(user_id: int, payload: HealthSettingsIn, db: Session = Depends(get_db)):
    return health_service.update_health_settings(db, user_id, payload)


@app.get("/users/{user_id}/dashboard", response_model=HealthDashboardOut)
def dashboard(user_id: int, db: Session = Depends(get_db)):
    return health_service.build_dashboard(db, user_id)


@app.get("/")
def root():
    return {"message": f"{config.APP_NAME} API is up. See /docs for the endpoints."}
