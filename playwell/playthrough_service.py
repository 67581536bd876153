# playwell/playthrough_service.py
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from . import ledger, models
from .config import config
from .errors import InvalidTransition, NotFound, ValidationError
from .health_service import recompute_metrics
from .locks import aggregate_locks
from .models import PlaythroughState
from .user_service import get_user

logger = logging.getLogger(__name__)

OPEN_STATES = (PlaythroughState.ACTIVE, PlaythroughState.PAUSED)
TERMINAL_STATES = (PlaythroughState.COMPLETED, PlaythroughState.DROPPED)


def _lock(playthrough_id: int):
    return aggregate_locks.hold(("playthrough", playthrough_id))


def _load(db: Session, playthrough_id: int) -> models.Playthrough:
    playthrough = db.get(models.Playthrough, playthrough_id)
    if not playthrough:
        raise NotFound(f"Playthrough {playthrough_id} not found")
    return playthrough


def _save(db: Session, playthrough: models.Playthrough) -> models.Playthrough:
    db.commit()
    db.refresh(playthrough)
    return playthrough


def _commit_elapsed(playthrough: models.Playthrough, now: datetime) -> None:
    """Fold the running stretch into ``duration_seconds`` if the timer is running."""
    if playthrough.state == PlaythroughState.ACTIVE and playthrough.current_started_at is not None:
        elapsed = int((now - playthrough.current_started_at).total_seconds())
        playthrough.duration_seconds += max(0, elapsed)


def create_playthrough(
    db: Session,
    user_id: int,
    game_id: int,
    playthrough_type: str = "story",
    title: Optional[str] = None,
    platform: Optional[str] = None,
    start_date: Optional[date] = None,
) -> models.Playthrough:
    get_user(db, user_id)

    playthrough = models.Playthrough(
        user_id=user_id,
        game_id=game_id,
        playthrough_type=playthrough_type,
        title=title,
        platform=platform,
        start_date=start_date,
        state=PlaythroughState.NOT_STARTED,
        duration_seconds=0,
        session_count=0,
        pause_count=0,
        session_anchor_duration=0,
        manual_time_set=False,
        imported_duration_seconds=0,
    )
    db.add(playthrough)
    _save(db, playthrough)
    logger.info("Created playthrough %s for user %s and game %s", playthrough.id, user_id, game_id)
    return playthrough


def get_playthrough(db: Session, playthrough_id: int) -> models.Playthrough:
    return _load(db, playthrough_id)


def list_playthroughs(db: Session, user_id: int) -> List[models.Playthrough]:
    return (
        db.query(models.Playthrough)
        .filter(models.Playthrough.user_id == user_id)
        .order_by(models.Playthrough.created_at.desc(), models.Playthrough.id.desc())
        .all()
    )


def list_sessions(db: Session, playthrough_id: int) -> List[models.SessionHistory]:
    _load(db, playthrough_id)
    return ledger.list_sessions(db, playthrough_id)


def delete_playthrough(db: Session, playthrough_id: int) -> None:
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)
        session_ids = [s.id for s in ledger.list_sessions(db, playthrough_id)]
        if session_ids:
            db.query(models.MoodEntry).filter(
                models.MoodEntry.session_history_id.in_(session_ids)
            ).update({models.MoodEntry.session_history_id: None}, synchronize_session=False)
        db.delete(playthrough)
        db.commit()
    logger.info("Deleted playthrough %s", playthrough_id)


def start_playthrough(db: Session, playthrough_id: int, now: Optional[datetime] = None) -> models.Playthrough:
    now = now or datetime.now()
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        if playthrough.state == PlaythroughState.ACTIVE:
            raise InvalidTransition("Playthrough is already active")
        if playthrough.state == PlaythroughState.DROPPED:
            raise InvalidTransition("Cannot start a session on a dropped playthrough")
        if playthrough.state == PlaythroughState.COMPLETED:
            raise InvalidTransition("Cannot start a session on a completed playthrough")

        if playthrough.state == PlaythroughState.NOT_STARTED:
            playthrough.pause_count = 0
            playthrough.session_anchor_duration = playthrough.duration_seconds
            playthrough.session_anchor_time = now
            playthrough.manual_time_set = False

        playthrough.state = PlaythroughState.ACTIVE
        playthrough.current_started_at = now
        playthrough.stopped_at = None
        _save(db, playthrough)

    logger.info("Started playthrough %s", playthrough_id)
    return playthrough


def pause_playthrough(db: Session, playthrough_id: int, now: Optional[datetime] = None) -> models.Playthrough:
    now = now or datetime.now()
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        if playthrough.state != PlaythroughState.ACTIVE:
            raise InvalidTransition("Playthrough is not active")

        _commit_elapsed(playthrough, now)
        playthrough.state = PlaythroughState.PAUSED
        playthrough.current_started_at = None
        playthrough.last_played_at = now
        playthrough.pause_count += 1
        _save(db, playthrough)

    logger.info(
        "Paused playthrough %s with duration %s seconds", playthrough_id, playthrough.duration_seconds
    )
    return playthrough


def _finish(playthrough: models.Playthrough, now: datetime, action: str) -> None:
    if playthrough.state in TERMINAL_STATES:
        raise InvalidTransition(f"Cannot {action} a playthrough that is already {playthrough.state.value.lower()}")
    if playthrough.state not in OPEN_STATES and playthrough.duration_seconds == 0:
        raise InvalidTransition("Playthrough has no recorded time")

    _commit_elapsed(playthrough, now)
    playthrough.current_started_at = None
    playthrough.stopped_at = now
    playthrough.end_date = now.date()
    playthrough.last_played_at = now


def stop_playthrough(db: Session, playthrough_id: int, now: Optional[datetime] = None) -> models.Playthrough:
    now = now or datetime.now()
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)
        _finish(playthrough, now, "stop")
        playthrough.state = PlaythroughState.COMPLETED
        _save(db, playthrough)

    logger.info(
        "Stopped playthrough %s with duration %s seconds", playthrough_id, playthrough.duration_seconds
    )
    return playthrough


def drop_playthrough(db: Session, playthrough_id: int, now: Optional[datetime] = None) -> models.Playthrough:
    now = now or datetime.now()
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)
        _finish(playthrough, now, "drop")
        playthrough.state = PlaythroughState.DROPPED
        playthrough.dropped_at = now
        _save(db, playthrough)

    logger.info(
        "Dropped playthrough %s with duration %s seconds", playthrough_id, playthrough.duration_seconds
    )
    return playthrough


def pickup_playthrough(db: Session, playthrough_id: int, now: Optional[datetime] = None) -> models.Playthrough:
    now = now or datetime.now()
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        if playthrough.state != PlaythroughState.DROPPED:
            raise InvalidTransition("Only dropped playthroughs can be picked up")

        playthrough.state = PlaythroughState.NOT_STARTED
        playthrough.picked_up_at = now
        playthrough.end_date = None
        playthrough.stopped_at = None
        _save(db, playthrough)

    logger.info("Picked up dropped playthrough %s", playthrough_id)
    return playthrough


def end_session(
    db: Session, playthrough_id: int, now: Optional[datetime] = None
) -> Tuple[models.Playthrough, Optional[int]]:
    """
    Close the open session, record it in the ledger and return the playthrough
    together with the new session's id (None when there was no anchor to
    record from).

    The day's metrics are recomputed afterwards on a best-effort basis.
    """
    now = now or datetime.now()
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        if playthrough.state not in OPEN_STATES:
            raise InvalidTransition("Playthrough is not active or paused")

        anchor_time = playthrough.session_anchor_time
        _commit_elapsed(playthrough, now)

        if playthrough.manual_time_set and anchor_time is not None:
            # synthesized from the anchor, not wall-clock
            ended_at = anchor_time + timedelta(seconds=playthrough.duration_seconds)
            logger.info(
                "Using calculated end time for playthrough %s (manual time set): %s",
                playthrough_id, ended_at,
            )
        else:
            ended_at = now

        session_duration = playthrough.duration_seconds - playthrough.session_anchor_duration

        session_id = None
        if anchor_time is not None:
            entry = ledger.append_session(
                db,
                playthrough,
                duration_seconds=session_duration,
                pause_count=playthrough.pause_count,
                started_at=anchor_time,
                ended_at=ended_at,
            )
            session_id = entry.id
            playthrough.session_count += 1
            logger.info(
                "Saved session history for playthrough %s, session %s: duration=%s sec, pauses=%s",
                playthrough_id, entry.session_number, session_duration, playthrough.pause_count,
            )

        playthrough.state = PlaythroughState.NOT_STARTED
        playthrough.current_started_at = None
        playthrough.session_anchor_time = None
        playthrough.pause_count = 0
        playthrough.manual_time_set = False
        playthrough.last_played_at = ended_at
        _save(db, playthrough)
        user_id = playthrough.user_id

    logger.info(
        "Ended session for playthrough %s, session count: %s", playthrough_id, playthrough.session_count
    )

    try:
        recompute_metrics(db, user_id, now.date())
    except Exception:
        db.rollback()
        logger.exception("Failed to recalculate health metrics for user %s", user_id)

    return playthrough, session_id


def update_duration(db: Session, playthrough_id: int, duration_seconds: int) -> models.Playthrough:
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        if playthrough.state == PlaythroughState.ACTIVE:
            raise InvalidTransition("Cannot manually update duration while playthrough is active")
        if duration_seconds < 0:
            raise ValidationError("Duration cannot be negative")
        if duration_seconds > playthrough.duration_seconds:
            raise ValidationError(
                "Cannot set duration greater than current duration. "
                f"Current: {playthrough.duration_seconds}s, Requested: {duration_seconds}s"
            )

        playthrough.duration_seconds = duration_seconds
        playthrough.session_anchor_duration = min(playthrough.session_anchor_duration, duration_seconds)
        playthrough.manual_time_set = True
        _save(db, playthrough)

    logger.info("Updated duration for playthrough %s to %s seconds (manual)", playthrough_id, duration_seconds)
    return playthrough


def update_platform(db: Session, playthrough_id: int, platform: Optional[str]) -> models.Playthrough:
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)
        playthrough.platform = platform
        _save(db, playthrough)
    logger.info("Updated platform for playthrough %s to %s", playthrough_id, platform)
    return playthrough


def update_title(db: Session, playthrough_id: int, title: Optional[str]) -> models.Playthrough:
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)
        playthrough.title = title
        _save(db, playthrough)
    logger.info("Updated title for playthrough %s to '%s'", playthrough_id, title)
    return playthrough


def log_manual_session(
    db: Session, playthrough_id: int, started_at: datetime, ended_at: datetime
) -> models.Playthrough:
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        if started_at >= ended_at:
            raise ValidationError("Start time must be before end time")
        if playthrough.state == PlaythroughState.ACTIVE:
            raise InvalidTransition(
                "Cannot log manual session while a session is active. Please end the current session first."
            )
        if playthrough.state == PlaythroughState.COMPLETED:
            raise InvalidTransition("Cannot log manual session for a completed playthrough")
        if playthrough.state == PlaythroughState.DROPPED:
            raise InvalidTransition("Cannot log manual session for a dropped playthrough")
        if playthrough.start_date is not None and started_at.date() < playthrough.start_date:
            raise ValidationError(
                f"Cannot log session before playthrough start date: {playthrough.start_date}"
            )

        duration = int((ended_at - started_at).total_seconds())
        entry = ledger.insert_session(db, playthrough_id, started_at, ended_at, duration)

        playthrough.session_count += 1
        playthrough.duration_seconds += duration
        if playthrough.last_played_at is None or ended_at > playthrough.last_played_at:
            playthrough.last_played_at = ended_at
        _save(db, playthrough)

    logger.info(
        "Logged manual session for playthrough %s: session #%s, duration=%s sec",
        playthrough_id, entry.session_number, duration,
    )
    return playthrough


def delete_session(db: Session, playthrough_id: int, session_id: int) -> models.Playthrough:
    with _lock(playthrough_id):
        playthrough = _load(db, playthrough_id)

        entry = db.get(models.SessionHistory, session_id)
        if entry is None or entry.playthrough_id != playthrough_id:
            raise NotFound(f"Session {session_id} not found in playthrough {playthrough_id}")

        removed_duration = entry.duration_seconds
        ledger.remove_session(db, entry)

        playthrough.session_count = max(0, playthrough.session_count - 1)
        playthrough.duration_seconds = max(0, playthrough.duration_seconds - removed_duration)
        playthrough.session_anchor_duration = min(
            playthrough.session_anchor_duration, playthrough.duration_seconds
        )
        _save(db, playthrough)

    logger.info(
        "Updated playthrough %s after session deletion: sessions=%s, duration=%s",
        playthrough_id, playthrough.session_count, playthrough.duration_seconds,
    )
    return playthrough


def import_sessions(db: Session, target_id: int, source_id: int) -> models.Playthrough:
    """
    Copy the source playthrough's total time into a completionist target,
    once. The source is left as it is.
    """
    if target_id == source_id:
        raise ValidationError("A playthrough cannot import from itself")

    with _lock(target_id):
        target = _load(db, target_id)

        if target.playthrough_type not in config.COMPLETIONIST_TYPES:
            raise InvalidTransition("Can only import sessions to a 100% playthrough")
        if target.imported_from_playthrough_id is not None:
            raise InvalidTransition(
                "This 100% playthrough has already imported from another playthrough. You can only import once."
            )

        source = db.get(models.Playthrough, source_id)
        if not source:
            raise NotFound(f"Source playthrough {source_id} not found")

        if source.game_id != target.game_id:
            raise InvalidTransition("Cannot import sessions from a different game")
        if target.state == PlaythroughState.ACTIVE:
            raise InvalidTransition("Cannot import sessions while target playthrough is active")
        if not source.duration_seconds:
            raise InvalidTransition("Source playthrough has no playtime to import")

        imported = source.duration_seconds
        target.duration_seconds += imported
        target.imported_from_playthrough_id = source_id
        target.imported_duration_seconds = imported
        if source.last_played_at is not None and (
            target.last_played_at is None or source.last_played_at > target.last_played_at
        ):
            target.last_played_at = source.last_played_at
        _save(db, target)

    logger.info(
        "Imported timer value (%s seconds) from playthrough %s to playthrough %s (one-time import)",
        imported, source_id, target_id,
    )
    return target
