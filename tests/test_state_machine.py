import pytest

from models import Match, MatchStatus
from core.exceptions import InvalidStateTransition
from core.state_machine import MatchStateMachine


def _match(status, participant_b=None):
    return Match(participant_a="u1", participant_b=participant_b, status=status)


def test_waiting_to_playing():
    match = _match(MatchStatus.WAITING, participant_b="u2")
    MatchStateMachine.transition(match, MatchStatus.PLAYING)
    assert match.status == MatchStatus.PLAYING


def test_playing_match_can_finish():
    match = _match(MatchStatus.PLAYING, participant_b="u2")
    MatchStateMachine.transition(match, MatchStatus.FINISHED)
    assert match.status == MatchStatus.FINISHED


@pytest.mark.parametrize(
    "start, target",
    [
        (MatchStatus.WAITING, MatchStatus.FINISHED),
        (MatchStatus.PLAYING, MatchStatus.WAITING),
        (MatchStatus.FINISHED, MatchStatus.PLAYING),
        (MatchStatus.FINISHED, MatchStatus.WAITING),
    ],
)
def test_illegal_transitions_raise(start, target):
    match = _match(start)
    with pytest.raises(InvalidStateTransition):
        MatchStateMachine.transition(match, target)
    assert match.status == start


def test_membership_status():
    assert MatchStateMachine.membership_status(_match(MatchStatus.FINISHED)) == MatchStatus.WAITING
    assert MatchStateMachine.membership_status(_match(MatchStatus.FINISHED, "u2")) == MatchStatus.PLAYING
