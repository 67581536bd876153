from datetime import datetime, timedelta
from types import SimpleNamespace

from playwell import ledger


def _sessions(*starts):
    return [SimpleNamespace(session_number=i + 1, started_at=s) for i, s in enumerate(starts)]


def test_insertion_number_empty_ledger():
    assert ledger.insertion_number([], datetime(2025, 1, 1)) == 1


def test_insertion_number_goes_before_first_later_start():
    base = datetime(2025, 1, 1, 12, 0)
    sessions = _sessions(base, base + timedelta(days=2), base + timedelta(days=4))

    assert ledger.insertion_number(sessions, base - timedelta(hours=1)) == 1
    assert ledger.insertion_number(sessions, base + timedelta(days=3)) == 3
    assert ledger.insertion_number(sessions, base + timedelta(days=5)) == 4


def test_insertion_number_equal_start_goes_after():
    base = datetime(2025, 1, 1, 12, 0)
    sessions = _sessions(base, base + timedelta(days=1))

    assert ledger.insertion_number(sessions, base) == 2


def test_append_then_insert_then_remove(db, playthrough):
    base = datetime(2025, 2, 1, 9, 0)
    first = ledger.append_session(db, playthrough, 600, 0, base, base + timedelta(minutes=10))
    playthrough.session_count = 1
    db.commit()

    day_before = base - timedelta(days=1)
    earlier = ledger.insert_session(db, playthrough.id, day_before, day_before + timedelta(minutes=5), 300)
    db.commit()

    assert [(s.id, s.session_number) for s in ledger.list_sessions(db, playthrough.id)] == [
        (earlier.id, 1),
        (first.id, 2),
    ]

    ledger.remove_session(db, earlier)
    db.commit()

    assert [(s.id, s.session_number) for s in ledger.list_sessions(db, playthrough.id)] == [(first.id, 1)]
