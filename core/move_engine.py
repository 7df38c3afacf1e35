"""
Move Engine: move submission and round resolution

The whole protocol hinges on one rule: a move is applied as a single
read-modify-write of the Match row. Writing the choice, resolving the
round, bumping the score and clearing both choices happen in the same
versioned UPDATE, so:

- two opponents moving at the same instant cannot both see "round
  incomplete" (the loser of the race is retried against the fresh row and
  resolves the round itself)
- no reader ever sees both choices set, or a score that disagrees with
  last_result
"""
from sqlalchemy.orm import Session
from uuid import UUID
import logging

from models import Choice, EventType, MatchStatus
from schemas import MatchState
from services.outcome_service import Outcome, resolve, result_tag
from core.locks import with_match_lock, retry_on_conflict
from core.event_log import record_event
from core.notifier import notifier
from core.exceptions import (
    MatchNotFound,
    MatchNotActive,
    InvalidParticipant
)
from database import transactional

logger = logging.getLogger(__name__)


class MoveEngine:
    """Applies moves and resolves rounds"""

    @staticmethod
    def submit_move(db: Session, match_id: UUID, participant_id: str, choice: Choice) -> MatchState:
        """
        Submit a participant's choice for the current round.

        Resubmitting before the opponent moves overwrites the pending choice
        (only the owner ever writes its own slot, so last write wins).

        Parameters:
            db: SQLAlchemy Session
            match_id: Match UUID
            participant_id: caller's opaque identifier
            choice: ROCK / PAPER / SCISSORS

        Returns:
            committed MatchState after the move

        Raises:
            MatchNotFound: no such match
            InvalidParticipant: participant_id holds neither slot
            MatchNotActive: the match is FINISHED
            StorageFailure: write conflicts exhausted the retries
        """
        state = MoveEngine._apply_move(db, match_id, participant_id, choice)
        notifier.publish(state)
        return state

    @staticmethod
    @retry_on_conflict
    @transactional
    def _apply_move(db: Session, match_id: UUID, participant_id: str, choice: Choice) -> MatchState:
        # 1. read under lock
        match = with_match_lock(match_id, db).first()
        if not match:
            raise MatchNotFound(match_id)

        # 2. which slot
        slot = match.slot_of(participant_id)
        if slot is None:
            raise InvalidParticipant(match_id, participant_id)

        if match.status == MatchStatus.FINISHED:
            raise MatchNotActive(match_id)

        # 3. resulting pair
        choice_a = choice if slot == 1 else match.choice_a
        choice_b = choice if slot == 2 else match.choice_b

        outcome = resolve(choice_a, choice_b)

        if outcome == Outcome.UNDETERMINED:
            # 5. round still open, hide the previous result
            if slot == 1:
                match.choice_a = choice
            else:
                match.choice_b = choice
            match.last_result = None
            db.flush()

            record_event(db, match.id, EventType.MOVE_SUBMITTED, {"slot": slot})

            logger.info(f"Match {match_id}: slot {slot} moved, waiting for opponent")
            return MatchState.model_validate(match)

        # 4. round complete: score, tag and clear in the same write
        if outcome == Outcome.A:
            match.score_a += 1
        elif outcome == Outcome.B:
            match.score_b += 1
        match.last_result = result_tag(outcome)
        match.choice_a = None
        match.choice_b = None
        db.flush()

        record_event(
            db,
            match.id,
            EventType.ROUND_RESOLVED,
            {
                "choice_a": choice_a.value,
                "choice_b": choice_b.value,
                "outcome": outcome.value,
                "last_result": match.last_result,
                "score_a": match.score_a,
                "score_b": match.score_b,
            }
        )

        logger.info(
            f"Match {match_id} round resolved: {choice_a.value} vs {choice_b.value} -> "
            f"{match.last_result} ({match.score_a}:{match.score_b})"
        )
        return MatchState.model_validate(match)
