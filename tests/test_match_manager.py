import uuid
from datetime import timedelta

import pytest

from models import Choice, EventType, MatchEvent, MatchStatus
from core.exceptions import InvalidStateTransition, MatchFull, MatchNotFound
from core.match_manager import MatchManager
from core.move_engine import MoveEngine


# ------------------------------------------------------------
# create
# ------------------------------------------------------------

def test_create_match_starts_waiting_with_zero_scores(db):
    state = MatchManager.create_match(db, "u1")

    assert state.participant_a == "u1"
    assert state.participant_b is None
    assert state.status == MatchStatus.WAITING
    assert (state.score_a, state.score_b) == (0, 0)
    assert state.choice_a is None and state.choice_b is None
    assert state.last_result is None
    assert state.version == 1


def test_create_match_records_event(db):
    state = MatchManager.create_match(db, "u1")

    events = db.query(MatchEvent).filter(MatchEvent.match_id == state.id).all()
    assert [e.event_type for e in events] == [EventType.MATCH_CREATED]


# ------------------------------------------------------------
# admit
# ------------------------------------------------------------

def test_join_binds_slot_b_and_starts_playing(db):
    created = MatchManager.create_match(db, "u1")

    state, slot = MatchManager.join_match(db, created.id, "u2")

    assert slot == 2
    assert state.participant_b == "u2"
    assert state.status == MatchStatus.PLAYING
    assert state.version == created.version + 1


def test_join_unknown_match_raises_not_found(db):
    with pytest.raises(MatchNotFound):
        MatchManager.join_match(db, uuid.uuid4(), "u2")


def test_join_is_idempotent_for_seated_participants(db):
    created = MatchManager.create_match(db, "u1")
    first, first_slot = MatchManager.join_match(db, created.id, "u2")

    again, again_slot = MatchManager.join_match(db, created.id, "u2")
    creator, creator_slot = MatchManager.join_match(db, created.id, "u1")

    assert first_slot == again_slot == 2
    assert creator_slot == 1
    assert again.version == first.version
    assert creator.participant_a == "u1" and creator.participant_b == "u2"


def test_join_full_match_raises(db, playing_match):
    with pytest.raises(MatchFull):
        MatchManager.join_match(db, playing_match.id, "u3")

    state = MatchManager.get_match(db, playing_match.id)
    assert state.participant_b == "u2"


def test_finish_waiting_match_raises(db):
    created = MatchManager.create_match(db, "u1")

    with pytest.raises(InvalidStateTransition):
        MatchManager.finish_match(db, created.id)

    state = MatchManager.get_match(db, created.id)
    assert state.status == MatchStatus.WAITING
    assert state.participant_b is None
    assert state.version == created.version

    joined, slot = MatchManager.join_match(db, created.id, "u2")
    assert slot == 2
    assert joined.status == MatchStatus.PLAYING


# ------------------------------------------------------------
# list open
# ------------------------------------------------------------

def test_open_matches_newest_first_and_waiting_only(db):
    older = MatchManager.create_match(db, "a")
    newer = MatchManager.create_match(db, "b")
    taken = MatchManager.create_match(db, "c")
    MatchManager.join_match(db, taken.id, "d")

    open_ids = [summary.match_id for summary in MatchManager.iter_open_matches(db)]

    assert open_ids == [newer.id, older.id]


def test_open_matches_is_lazy_and_restartable(db):
    for i in range(3):
        MatchManager.create_match(db, f"p{i}")

    iterator = MatchManager.iter_open_matches(db, limit=2)
    first = next(iterator)

    assert first.participant_a == "p2"
    assert len(list(MatchManager.iter_open_matches(db, limit=2))) == 2
    assert len(list(MatchManager.iter_open_matches(db))) == 3


def test_open_matches_pages_reach_every_match(db):
    created = [MatchManager.create_match(db, f"p{i}").id for i in range(7)]

    everything = [s.match_id for s in MatchManager.iter_open_matches(db)]
    pages = [
        [s.match_id for s in MatchManager.iter_open_matches(db, limit=3, offset=offset)]
        for offset in (0, 3, 6)
    ]

    assert sorted(everything) == sorted(created)
    assert [len(page) for page in pages] == [3, 3, 1]
    assert [match_id for page in pages for match_id in page] == everything
    assert list(MatchManager.iter_open_matches(db, offset=7)) == []


# ------------------------------------------------------------
# reset / finish / get
# ------------------------------------------------------------

def test_reset_clears_round_fields_and_keeps_participants(db, playing_match):
    MoveEngine.submit_move(db, playing_match.id, "u1", Choice.ROCK)
    MoveEngine.submit_move(db, playing_match.id, "u2", Choice.SCISSORS)
    MoveEngine.submit_move(db, playing_match.id, "u2", Choice.PAPER)

    state = MatchManager.reset_match(db, playing_match.id)

    assert (state.score_a, state.score_b) == (0, 0)
    assert state.choice_a is None and state.choice_b is None
    assert state.last_result is None
    assert state.status == MatchStatus.PLAYING
    assert (state.participant_a, state.participant_b) == ("u1", "u2")


def test_reset_waiting_match_stays_waiting(db):
    created = MatchManager.create_match(db, "u1")
    MoveEngine.submit_move(db, created.id, "u1", Choice.ROCK)

    state = MatchManager.reset_match(db, created.id)

    assert state.status == MatchStatus.WAITING
    assert state.choice_a is None


def test_reset_reopens_finished_match(db, playing_match):
    MatchManager.finish_match(db, playing_match.id)

    state = MatchManager.reset_match(db, playing_match.id)

    assert state.status == MatchStatus.PLAYING


def test_reset_unknown_match_raises(db):
    with pytest.raises(MatchNotFound):
        MatchManager.reset_match(db, uuid.uuid4())


def test_finish_is_idempotent(db, playing_match):
    first = MatchManager.finish_match(db, playing_match.id)
    second = MatchManager.finish_match(db, playing_match.id)

    assert first.status == second.status == MatchStatus.FINISHED
    assert first.version == second.version


def test_get_unknown_match_raises(db):
    with pytest.raises(MatchNotFound):
        MatchManager.get_match(db, uuid.uuid4())


def test_timestamps_read_back_as_utc(db):
    created = MatchManager.create_match(db, "u1")

    stored = MatchManager.get_match(db, created.id)
    summary = next(MatchManager.iter_open_matches(db))

    assert stored.created_at.utcoffset() == timedelta(0)
    assert summary.created_at.utcoffset() == timedelta(0)
    assert stored.created_at == created.created_at
