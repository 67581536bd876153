# playwell/user_service.py
import logging
from typing import Optional

from sqlalchemy.orm import Session

from . import models
from .errors import NotFound

logger = logging.getLogger(__name__)


def get_user(db: Session, user_id: int) -> models.User:
    user = db.get(models.User, user_id)
    if not user:
        raise NotFound(f"User {user_id} not found")
    return user


def get_user_age(db: Session, user_id: int) -> Optional[int]:
    """Age for scoring; None when the user or their age is unknown."""
    user = db.get(models.User, user_id)
    return user.age if user else None


def create_user(db: Session, name: str, age: Optional[int] = None) -> models.User:
    user = models.User(name=name, age=age)
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Created user %s", user.id)
    return user


def update_user_age(db: Session, user_id: int, age: Optional[int]) -> models.User:
    user = get_user(db, user_id)
    user.age = age
    db.commit()
    db.refresh(user)
    logger.info("Updated age for user %s to %s", user_id, age)
    return user
