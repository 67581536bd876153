import pytest

from playwell import user_service
from playwell.errors import NotFound


def test_create_and_update_age(db):
    user = user_service.create_user(db, "Jo", 12)
    assert user.id is not None
    assert user_service.get_user_age(db, user.id) == 12

    updated = user_service.update_user_age(db, user.id, None)
    assert updated.age is None
    assert user_service.get_user_age(db, user.id) is None


def test_unknown_user(db):
    with pytest.raises(NotFound):
        user_service.get_user(db, 77)
    with pytest.raises(NotFound):
        user_service.update_user_age(db, 77, 30)
    assert user_service.get_user_age(db, 77) is None
