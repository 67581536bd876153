from datetime import date, datetime, timedelta

import pytest

from playwell import models
from playwell import playthrough_service as service
from playwell.errors import InvalidTransition, NotFound, ValidationError
from playwell.health_service import get_daily_metrics
from playwell.models import PlaythroughState

T0 = datetime(2025, 3, 10, 20, 0, 0)


def minutes(n):
    return timedelta(minutes=n)


def numbers_and_starts(db, playthrough_id):
    return [(s.session_number, s.started_at) for s in service.list_sessions(db, playthrough_id)]


def test_new_playthrough_is_not_started(playthrough):
    assert playthrough.state == PlaythroughState.NOT_STARTED
    assert playthrough.duration_seconds == 0
    assert playthrough.session_count == 0


def test_create_playthrough_requires_user(db):
    with pytest.raises(NotFound):
        service.create_playthrough(db, user_id=999, game_id=1)


def test_pause_adds_elapsed_wall_time(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    pt = service.pause_playthrough(db, playthrough.id, now=T0 + timedelta(minutes=90, seconds=5))

    assert pt.duration_seconds == 5405
    assert pt.state == PlaythroughState.PAUSED
    assert pt.current_started_at is None
    assert pt.pause_count == 1
    assert pt.last_played_at == T0 + timedelta(minutes=90, seconds=5)


def test_resume_keeps_session_anchor(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(10))
    service.start_playthrough(db, playthrough.id, now=T0 + minutes(15))
    pt = service.pause_playthrough(db, playthrough.id, now=T0 + minutes(25))

    assert pt.duration_seconds == 1200
    assert pt.pause_count == 2
    assert pt.session_anchor_time == T0
    assert pt.session_anchor_duration == 0


def test_start_rejects_active_dropped_and_completed(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    with pytest.raises(InvalidTransition):
        service.start_playthrough(db, playthrough.id, now=T0 + minutes(1))

    service.drop_playthrough(db, playthrough.id, now=T0 + minutes(5))
    with pytest.raises(InvalidTransition):
        service.start_playthrough(db, playthrough.id, now=T0 + minutes(6))

    service.pickup_playthrough(db, playthrough.id, now=T0 + minutes(7))
    service.stop_playthrough(db, playthrough.id, now=T0 + minutes(8))
    with pytest.raises(InvalidTransition):
        service.start_playthrough(db, playthrough.id, now=T0 + minutes(9))


def test_pause_requires_active(db, playthrough):
    with pytest.raises(InvalidTransition):
        service.pause_playthrough(db, playthrough.id, now=T0)


def test_end_session_records_ledger_entry(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(10))
    service.start_playthrough(db, playthrough.id, now=T0 + minutes(15))
    pt, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(40))

    assert pt.duration_seconds == 2100
    assert pt.session_count == 1
    assert pt.state == PlaythroughState.NOT_STARTED
    assert pt.pause_count == 0
    assert pt.session_anchor_time is None
    assert pt.last_played_at == T0 + minutes(40)

    entry = db.get(models.SessionHistory, session_id)
    assert entry.session_number == 1
    assert entry.duration_seconds == 2100
    assert entry.pause_count == 1
    assert entry.started_at == T0
    assert entry.ended_at == T0 + minutes(40)


def test_second_session_duration_is_relative_to_its_anchor(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.end_session(db, playthrough.id, now=T0 + minutes(20))
    service.start_playthrough(db, playthrough.id, now=T0 + minutes(60))
    pt, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(90))

    entry = db.get(models.SessionHistory, session_id)
    assert pt.session_count == 2
    assert pt.duration_seconds == 3000
    assert entry.session_number == 2
    assert entry.duration_seconds == 1800


def test_end_session_from_paused_does_not_add_time(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(30))
    pt, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(45))

    assert pt.duration_seconds == 1800
    assert db.get(models.SessionHistory, session_id).duration_seconds == 1800


def test_end_session_requires_open_session(db, playthrough):
    with pytest.raises(InvalidTransition):
        service.end_session(db, playthrough.id, now=T0)

    service.start_playthrough(db, playthrough.id, now=T0)
    service.stop_playthrough(db, playthrough.id, now=T0 + minutes(5))
    with pytest.raises(InvalidTransition):
        service.end_session(db, playthrough.id, now=T0 + minutes(6))


def test_end_session_rejected_on_dropped(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.drop_playthrough(db, playthrough.id, now=T0 + minutes(5))
    with pytest.raises(InvalidTransition):
        service.end_session(db, playthrough.id, now=T0 + minutes(6))


def test_end_session_after_manual_correction_uses_synthesized_end(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(60))
    service.update_duration(db, playthrough.id, 1800)
    pt, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(180))

    entry = db.get(models.SessionHistory, session_id)
    assert entry.ended_at == T0 + minutes(30)
    assert entry.duration_seconds == 1800
    assert pt.last_played_at == T0 + minutes(30)
    assert pt.manual_time_set is False


def test_correction_between_sessions_does_not_carry_into_next_session(db, playthrough):
    earlier = T0 - timedelta(days=1)
    service.log_manual_session(db, playthrough.id, earlier, earlier + timedelta(hours=10))
    pt = service.update_duration(db, playthrough.id, 9 * 3600)
    assert pt.manual_time_set is True

    pt = service.start_playthrough(db, playthrough.id, now=T0)
    assert pt.manual_time_set is False

    pt, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(30))

    entry = db.get(models.SessionHistory, session_id)
    assert entry.started_at == T0
    assert entry.ended_at == T0 + minutes(30)
    assert entry.duration_seconds == 1800
    assert pt.last_played_at == T0 + minutes(30)
    assert pt.duration_seconds == 9 * 3600 + 1800


def test_end_session_recomputes_todays_metrics(db, playthrough, user):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.end_session(db, playthrough.id, now=T0 + minutes(60))

    metrics = get_daily_metrics(db, user.id, T0.date())
    assert metrics is not None
    assert metrics.session_count == 1
    assert metrics.total_hours == pytest.approx(1.0)


def test_end_session_survives_metrics_failure(db, playthrough, user, monkeypatch):
    def boom(*args, **kwargs):
        raise RuntimeError("metrics store unavailable")

    monkeypatch.setattr(service, "recompute_metrics", boom)

    service.start_playthrough(db, playthrough.id, now=T0)
    pt, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(10))

    assert session_id is not None
    assert pt.session_count == 1
    assert pt.state == PlaythroughState.NOT_STARTED
    assert get_daily_metrics(db, user.id, T0.date()) is None


def test_stop_commits_running_time(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    pt = service.stop_playthrough(db, playthrough.id, now=T0 + minutes(45))

    assert pt.state == PlaythroughState.COMPLETED
    assert pt.duration_seconds == 2700
    assert pt.end_date == T0.date()
    assert pt.current_started_at is None
    assert pt.stopped_at == T0 + minutes(45)


def test_stop_without_any_time_fails(db, playthrough):
    with pytest.raises(InvalidTransition):
        service.stop_playthrough(db, playthrough.id, now=T0)


def test_stop_from_not_started_with_time_is_allowed(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.end_session(db, playthrough.id, now=T0 + minutes(10))
    pt = service.stop_playthrough(db, playthrough.id, now=T0 + minutes(20))

    assert pt.state == PlaythroughState.COMPLETED
    assert pt.duration_seconds == 600


def test_drop_then_pickup_preserves_duration(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    dropped = service.drop_playthrough(db, playthrough.id, now=T0 + minutes(30))
    assert dropped.state == PlaythroughState.DROPPED
    assert dropped.dropped_at == T0 + minutes(30)
    assert dropped.end_date == T0.date()

    pt = service.pickup_playthrough(db, playthrough.id, now=T0 + timedelta(days=3))
    assert pt.state == PlaythroughState.NOT_STARTED
    assert pt.duration_seconds == 1800
    assert pt.end_date is None
    assert pt.stopped_at is None
    assert pt.picked_up_at == T0 + timedelta(days=3)


def test_pickup_requires_dropped(db, playthrough):
    with pytest.raises(InvalidTransition):
        service.pickup_playthrough(db, playthrough.id, now=T0)


def test_update_duration_only_moves_down(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(10))

    with pytest.raises(ValidationError):
        service.update_duration(db, playthrough.id, 601)

    pt = service.update_duration(db, playthrough.id, 300)
    assert pt.duration_seconds == 300
    assert pt.manual_time_set is True


def test_update_duration_rejected_while_active(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    with pytest.raises(InvalidTransition):
        service.update_duration(db, playthrough.id, 0)


def test_update_platform_and_title(db, playthrough):
    service.update_platform(db, playthrough.id, "Switch")
    pt = service.update_title(db, playthrough.id, "Second try")
    assert pt.platform == "Switch"
    assert pt.title == "Second try"


def test_log_manual_session_between_existing_renumbers_later_only(db, playthrough):
    day1 = datetime(2025, 3, 1, 10, 0)
    day2 = datetime(2025, 3, 2, 10, 0)
    day3 = datetime(2025, 3, 3, 10, 0)
    service.log_manual_session(db, playthrough.id, day1, day1 + minutes(60))
    service.log_manual_session(db, playthrough.id, day3, day3 + minutes(60))
    first, last = service.list_sessions(db, playthrough.id)
    first_id, last_id = first.id, last.id

    pt = service.log_manual_session(db, playthrough.id, day2, day2 + minutes(30))

    assert numbers_and_starts(db, playthrough.id) == [(1, day1), (2, day2), (3, day3)]
    assert db.get(models.SessionHistory, first_id).session_number == 1
    assert db.get(models.SessionHistory, last_id).session_number == 3
    assert pt.session_count == 3
    assert pt.duration_seconds == 3600 + 3600 + 1800
    assert pt.last_played_at == day3 + minutes(60)


def test_log_manual_session_before_everything_takes_number_one(db, playthrough):
    later = datetime(2025, 3, 5, 18, 0)
    earlier = datetime(2025, 3, 4, 18, 0)
    service.log_manual_session(db, playthrough.id, later, later + minutes(15))
    service.log_manual_session(db, playthrough.id, earlier, earlier + minutes(15))

    assert numbers_and_starts(db, playthrough.id) == [(1, earlier), (2, later)]


def test_log_manual_session_validation(db, user):
    pt = service.create_playthrough(db, user.id, game_id=3, start_date=date(2025, 3, 5))

    with pytest.raises(ValidationError):
        service.log_manual_session(db, pt.id, T0, T0)
    with pytest.raises(ValidationError):
        service.log_manual_session(db, pt.id, datetime(2025, 3, 4, 23, 0), datetime(2025, 3, 5, 1, 0))


def test_log_manual_session_rejected_in_active_completed_or_dropped(db, playthrough):
    past = datetime(2025, 3, 1, 10, 0)

    service.start_playthrough(db, playthrough.id, now=T0)
    with pytest.raises(InvalidTransition):
        service.log_manual_session(db, playthrough.id, past, past + minutes(10))

    service.drop_playthrough(db, playthrough.id, now=T0 + minutes(1))
    with pytest.raises(InvalidTransition):
        service.log_manual_session(db, playthrough.id, past, past + minutes(10))

    service.pickup_playthrough(db, playthrough.id, now=T0 + minutes(2))
    service.stop_playthrough(db, playthrough.id, now=T0 + minutes(3))
    with pytest.raises(InvalidTransition):
        service.log_manual_session(db, playthrough.id, past, past + minutes(10))


def test_log_manual_session_allowed_while_paused(db, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(10))
    past = datetime(2025, 3, 1, 10, 0)

    pt = service.log_manual_session(db, playthrough.id, past, past + minutes(20))
    assert pt.duration_seconds == 600 + 1200
    assert pt.state == PlaythroughState.PAUSED


def test_delete_session_keeps_numbers_dense(db, playthrough):
    starts = [datetime(2025, 3, d, 10, 0) for d in (1, 2, 3, 4)]
    for start in starts:
        service.log_manual_session(db, playthrough.id, start, start + minutes(30))
    second = service.list_sessions(db, playthrough.id)[1]

    pt = service.delete_session(db, playthrough.id, second.id)

    remaining = numbers_and_starts(db, playthrough.id)
    assert remaining == [(1, starts[0]), (2, starts[2]), (3, starts[3])]
    assert pt.session_count == 3
    assert pt.duration_seconds == 3 * 1800


def test_delete_session_clamps_duration_and_anchor(db, playthrough):
    past = datetime(2025, 3, 1, 10, 0)
    service.log_manual_session(db, playthrough.id, past, past + minutes(60))
    service.start_playthrough(db, playthrough.id, now=T0)
    service.pause_playthrough(db, playthrough.id, now=T0 + minutes(10))
    service.update_duration(db, playthrough.id, 1000)
    logged = service.list_sessions(db, playthrough.id)[0]

    pt = service.delete_session(db, playthrough.id, logged.id)

    assert pt.duration_seconds == 0
    assert pt.session_anchor_duration == 0
    assert pt.session_count == 0


def test_delete_session_of_another_playthrough_is_not_found(db, user, playthrough):
    other = service.create_playthrough(db, user.id, game_id=8)
    past = datetime(2025, 3, 1, 10, 0)
    service.log_manual_session(db, other.id, past, past + minutes(5))
    foreign = service.list_sessions(db, other.id)[0]

    with pytest.raises(NotFound):
        service.delete_session(db, playthrough.id, foreign.id)


def test_import_sessions_is_one_time_copy(db, user, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.stop_playthrough(db, playthrough.id, now=T0 + minutes(50))
    target = service.create_playthrough(db, user.id, game_id=playthrough.game_id, playthrough_type="100%")

    pt = service.import_sessions(db, target.id, playthrough.id)
    assert pt.duration_seconds == 3000
    assert pt.imported_from_playthrough_id == playthrough.id
    assert pt.imported_duration_seconds == 3000
    assert pt.last_played_at == T0 + minutes(50)

    with pytest.raises(InvalidTransition):
        service.import_sessions(db, target.id, playthrough.id)

    source = service.get_playthrough(db, playthrough.id)
    assert source.duration_seconds == 3000


def test_import_sessions_preconditions(db, user, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    service.stop_playthrough(db, playthrough.id, now=T0 + minutes(50))

    story = service.create_playthrough(db, user.id, game_id=playthrough.game_id)
    with pytest.raises(InvalidTransition):
        service.import_sessions(db, story.id, playthrough.id)

    other_game = service.create_playthrough(db, user.id, game_id=99, playthrough_type="100_percent")
    with pytest.raises(InvalidTransition):
        service.import_sessions(db, other_game.id, playthrough.id)

    empty = service.create_playthrough(db, user.id, game_id=playthrough.game_id)
    target = service.create_playthrough(db, user.id, game_id=playthrough.game_id, playthrough_type="100%")
    with pytest.raises(InvalidTransition):
        service.import_sessions(db, target.id, empty.id)

    service.start_playthrough(db, target.id, now=T0 + minutes(60))
    with pytest.raises(InvalidTransition):
        service.import_sessions(db, target.id, playthrough.id)

    with pytest.raises(NotFound):
        service.import_sessions(db, target.id, 12345)


def test_delete_playthrough_removes_sessions_and_unlinks_moods(db, user, playthrough):
    service.start_playthrough(db, playthrough.id, now=T0)
    _, session_id = service.end_session(db, playthrough.id, now=T0 + minutes(10))
    mood = models.MoodEntry(user_id=user.id, session_history_id=session_id, mood_rating=4, recorded_at=T0)
    db.add(mood)
    db.commit()
    mood_id = mood.id

    service.delete_playthrough(db, playthrough.id)

    assert db.get(models.Playthrough, playthrough.id) is None
    assert db.query(models.SessionHistory).count() == 0
    assert db.get(models.MoodEntry, mood_id).session_history_id is None


def test_list_playthroughs_is_per_user(db, user, playthrough):
    stranger = models.User(name="Alex", age=30)
    db.add(stranger)
    db.commit()
    service.create_playthrough(db, stranger.id, game_id=1)

    assert [p.id for p in service.list_playthroughs(db, user.id)] == [playthrough.id]


def test_unknown_playthrough_is_not_found(db):
    with pytest.raises(NotFound):
        service.start_playthrough(db, 404, now=T0)
