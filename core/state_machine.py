"""
Match state machine

Every status change goes through MatchStateMachine so the legal transitions
live in one table:

    WAITING  -> PLAYING   (second participant admitted)
    PLAYING  -> FINISHED  (explicit finish)
    *        -> membership status (reset recomputes from participant_b)
"""
import logging

from models import Match, MatchStatus
from core.exceptions import InvalidStateTransition

logger = logging.getLogger(__name__)


class MatchStateMachine:
    TRANSITIONS = {
        MatchStatus.WAITING: {MatchStatus.PLAYING},
        MatchStatus.PLAYING: {MatchStatus.FINISHED},
        MatchStatus.FINISHED: set(),
    }

    @staticmethod
    def can_transition(current: MatchStatus, target: MatchStatus) -> bool:
        return target in MatchStateMachine.TRANSITIONS[current]

    @staticmethod
    def transition(match: Match, target: MatchStatus) -> Match:
        """
        Move a locked Match to `target`.

        The caller must already hold the row (with_match_lock) and commit.

        Raises:
            InvalidStateTransition: target is not reachable from the current status
        """
        current = match.status
        if not MatchStateMachine.can_transition(current, target):
            raise InvalidStateTransition(
                f"Match {match.id}: cannot go from {current.value} to {target.value}"
            )

        match.status = target
        logger.info(f"Match {match.id}: {current.value} -> {target.value}")
        return match

    @staticmethod
    def membership_status(match: Match) -> MatchStatus:
        """Status implied by the bound participants alone (used by reset)."""
        return MatchStatus.PLAYING if match.participant_b else MatchStatus.WAITING
