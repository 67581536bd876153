# playwell/ledger.py
"""
Session ledger: the ordered, densely numbered list of completed sessions
that belongs to one playthrough.

Numbers start at 1 and follow ``started_at`` order. Every insert or delete
renumbers the neighbours so the sequence never has gaps. Rows are flushed
one at a time while renumbering so the (playthrough, number) unique
constraint is never violated mid-way.
"""
import logging
from datetime import datetime
from typing import List

from sqlalchemy.orm import Session

from . import models

logger = logging.getLogger(__name__)


def list_sessions(db: Session, playthrough_id: int) -> List[models.SessionHistory]:
    return (
        db.query(models.SessionHistory)
        .filter(models.SessionHistory.playthrough_id == playthrough_id)
        .order_by(models.SessionHistory.session_number.asc())
        .all()
    )


def append_session(
    db: Session,
    playthrough: models.Playthrough,
    duration_seconds: int,
    pause_count: int,
    started_at: datetime,
    ended_at: datetime,
) -> models.SessionHistory:
    """Add a session after the last one. Numbering follows ``playthrough.session_count``."""
    entry = models.SessionHistory(
        playthrough_id=playthrough.id,
        session_number=playthrough.session_count + 1,
        duration_seconds=duration_seconds,
        pause_count=pause_count,
        started_at=started_at,
        ended_at=ended_at,
    )
    db.add(entry)
    db.flush()
    return entry


def insertion_number(sessions: List[models.SessionHistory], started_at: datetime) -> int:
    """
    Number a new session starting at ``started_at`` would take.

    ``sessions`` must be in session_number order. The new row goes before the
    first existing session that starts strictly later.
    """
    number = 1
    for existing in sessions:
        if started_at < existing.started_at:
            break
        number += 1
    return number


def insert_session(
    db: Session,
    playthrough_id: int,
    started_at: datetime,
    ended_at: datetime,
    duration_seconds: int,
    pause_count: int = 0,
) -> models.SessionHistory:
    sessions = list_sessions(db, playthrough_id)
    number = insertion_number(sessions, started_at)

    to_shift = sorted(
        (s for s in sessions if s.session_number >= number),
        key=lambda s: s.session_number,
        reverse=True,
    )
    for existing in to_shift:
        existing.session_number += 1
        db.flush()

    entry = models.SessionHistory(
        playthrough_id=playthrough_id,
        session_number=number,
        duration_seconds=duration_seconds,
        pause_count=pause_count,
        started_at=started_at,
        ended_at=ended_at,
    )
    db.add(entry)
    db.flush()

    logger.debug(
        "Inserted session #%s into playthrough %s, shifted %s later session(s)",
        number, playthrough_id, len(to_shift),
    )
    return entry


def remove_session(db: Session, entry: models.SessionHistory) -> None:
    """Delete ``entry`` and close the gap it leaves in the numbering."""
    playthrough_id = entry.playthrough_id
    removed_number = entry.session_number

    db.query(models.MoodEntry).filter(
        models.MoodEntry.session_history_id == entry.id
    ).update({models.MoodEntry.session_history_id: None}, synchronize_session=False)

    db.delete(entry)
    db.flush()

    later = [s for s in list_sessions(db, playthrough_id) if s.session_number > removed_number]
    for existing in later:
        existing.session_number -= 1
        db.flush()

    logger.debug(
        "Removed session #%s from playthrough %s, renumbered %s later session(s)",
        removed_number, playthrough_id, len(later),
    )
