"""
Write failures injected at flush time: version conflicts are retried, then
surface as StorageFailure with the committed row left as it was.
"""
import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from models import Choice, MatchEvent
from core.exceptions import StorageFailure
from core.match_manager import MatchManager
from core.move_engine import MoveEngine
from database import get_settings


def _failing_flush(monkeypatch, db, error, failures=None):
    """Make db.flush raise `error` (every time, or only the first `failures` calls)."""
    real_flush = db.flush
    calls = []

    def flush(*args, **kwargs):
        calls.append(1)
        if failures is None or len(calls) <= failures:
            raise error
        return real_flush(*args, **kwargs)

    monkeypatch.setattr(db, "flush", flush)
    return calls


def _event_count(session_factory, match_id):
    db = session_factory()
    try:
        return db.query(MatchEvent).filter(MatchEvent.match_id == match_id).count()
    finally:
        db.close()


def test_exhausted_conflicts_raise_storage_failure(monkeypatch, session_factory, db, playing_match):
    before = _event_count(session_factory, playing_match.id)
    calls = _failing_flush(monkeypatch, db, StaleDataError("version mismatch"))

    with pytest.raises(StorageFailure) as excinfo:
        MoveEngine.submit_move(db, playing_match.id, "u1", Choice.ROCK)

    assert excinfo.value.code == "STORAGE_FAILURE"
    assert len(calls) == get_settings().max_write_retries

    reader = session_factory()
    try:
        state = MatchManager.get_match(reader, playing_match.id)
    finally:
        reader.close()
    assert state.version == playing_match.version
    assert state.choice_a is None and state.choice_b is None
    assert _event_count(session_factory, playing_match.id) == before


def test_driver_error_is_not_retried(monkeypatch, session_factory, db, playing_match):
    calls = _failing_flush(
        monkeypatch, db, OperationalError("UPDATE matches", {}, Exception("disk I/O error"))
    )

    with pytest.raises(StorageFailure):
        MatchManager.reset_match(db, playing_match.id)

    assert len(calls) == 1
    reader = session_factory()
    try:
        assert MatchManager.get_match(reader, playing_match.id).version == playing_match.version
    finally:
        reader.close()


def test_single_conflict_is_retried_transparently(monkeypatch, db, playing_match):
    calls = _failing_flush(monkeypatch, db, StaleDataError("version mismatch"), failures=1)

    state = MoveEngine.submit_move(db, playing_match.id, "u1", Choice.PAPER)

    assert len(calls) >= 2
    assert state.choice_a == Choice.PAPER
    assert state.version == playing_match.version + 1
