"""
Match Manager: lifecycle of a Match

Responsibilities:
1. Create a match (participant A, WAITING)
2. Admit the second participant (slot B, PLAYING)
3. List matches still waiting for an opponent
4. Reset and finish a match
5. Read a match

Membership and status fields only; live-round fields belong to the
MoveEngine (reset is the one exception, it clears them).

Every public mutator commits first and publishes the committed snapshot
afterwards, so subscribers never see a state that was rolled back.
"""
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from uuid import UUID
from typing import Iterator, Optional, Tuple
import logging

from models import Match, MatchStatus, EventType
from schemas import MatchState, OpenMatchSummary
from core.state_machine import MatchStateMachine
from core.locks import with_match_lock, retry_on_conflict
from core.event_log import record_event
from core.notifier import notifier
from core.exceptions import (
    MatchNotFound,
    MatchFull,
    StorageFailure
)
from database import transactional

logger = logging.getLogger(__name__)


class MatchManager:
    """Match lifecycle manager"""

    # ============ create ============

    @staticmethod
    def create_match(db: Session, requester_id: str) -> MatchState:
        """
        Create a new match with the requester in slot A.

        Returns:
            committed MatchState (status WAITING, scores 0, no choices)

        Raises:
            StorageFailure: the record store rejected the insert
        """
        state = MatchManager._create(db, requester_id)
        notifier.publish(state)
        return state

    @staticmethod
    @retry_on_conflict
    @transactional
    def _create(db: Session, requester_id: str) -> MatchState:
        match = Match(
            participant_a=requester_id,
            status=MatchStatus.WAITING,
            score_a=0,
            score_b=0
        )
        db.add(match)
        db.flush()  # assigns match.id and version

        record_event(db, match.id, EventType.MATCH_CREATED, {"participant_a": requester_id})

        logger.info(f"Created match {match.id} for participant {requester_id}")
        return MatchState.model_validate(match)

    # ============ admit ============

    @staticmethod
    def join_match(db: Session, match_id: UUID, requester_id: str) -> Tuple[MatchState, int]:
        """
        Admit requester_id into the match.

        Flow:
        1. Lock the match row
        2. Requester already seated -> return its slot, write nothing
        3. Slot B taken by someone else -> MatchFull
        4. Otherwise bind slot B and move WAITING -> PLAYING

        Two late callers racing for the same empty slot: the versioned
        UPDATE lets exactly one commit; the other is retried against the
        fresh row and lands in step 2 (same id) or step 3 (different id).

        Returns:
            (MatchState, slot) where slot is 1 or 2

        Raises:
            MatchNotFound, MatchFull
        """
        state, slot, changed = MatchManager._admit(db, match_id, requester_id)
        if changed:
            notifier.publish(state)
        return state, slot

    @staticmethod
    @retry_on_conflict
    @transactional
    def _admit(db: Session, match_id: UUID, requester_id: str) -> Tuple[MatchState, int, bool]:
        match = with_match_lock(match_id, db).first()
        if not match:
            raise MatchNotFound(match_id)

        slot = match.slot_of(requester_id)
        if slot is not None:
            logger.info(f"Participant {requester_id} already seated in match {match_id} (slot {slot})")
            return MatchState.model_validate(match), slot, False

        if match.participant_b is not None:
            raise MatchFull(match_id)

        match.participant_b = requester_id
        MatchStateMachine.transition(match, MatchStatus.PLAYING)
        db.flush()

        record_event(db, match.id, EventType.PLAYER_JOINED, {"participant_b": requester_id})

        logger.info(f"Participant {requester_id} joined match {match_id}")
        return MatchState.model_validate(match), 2, True

    # ============ list ============

    @staticmethod
    def iter_open_matches(
        db: Session,
        limit: Optional[int] = None,
        offset: int = 0
    ) -> Iterator[OpenMatchSummary]:
        """
        Lazily yield matches still waiting for an opponent, newest first.

        Each call starts a fresh query, so the iterator is restartable by
        calling again. Ties on created_at are broken by id so one snapshot
        always has a stable order. Without a limit every open match is
        yielded; limit/offset page through the same order.

        Raises:
            StorageFailure: the query failed
        """
        query = db.query(
            Match.id,
            Match.participant_a,
            Match.created_at
        ).filter(
            Match.status == MatchStatus.WAITING,
            Match.participant_b.is_(None)
        ).order_by(
            Match.created_at.desc(),
            Match.id
        )
        if offset:
            query = query.offset(offset)
        if limit is not None:
            query = query.limit(limit)

        try:
            for match_id, participant_a, created_at in query.yield_per(100):
                yield OpenMatchSummary(
                    match_id=match_id,
                    participant_a=participant_a,
                    created_at=created_at
                )
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to list open matches: {e}") from e

    # ============ reset ============

    @staticmethod
    def reset_match(db: Session, match_id: UUID) -> MatchState:
        """
        Start the score over.

        Clears both choices, both scores and last_result, then recomputes
        status from membership (PLAYING if slot B is bound, else WAITING).
        A FINISHED match is re-opened the same way. Participant bindings
        are never touched.

        Raises:
            MatchNotFound
        """
        state = MatchManager._reset(db, match_id)
        notifier.publish(state)
        return state

    @staticmethod
    @retry_on_conflict
    @transactional
    def _reset(db: Session, match_id: UUID) -> MatchState:
        match = with_match_lock(match_id, db).first()
        if not match:
            raise MatchNotFound(match_id)

        previous = {"score_a": match.score_a, "score_b": match.score_b}

        match.choice_a = None
        match.choice_b = None
        match.score_a = 0
        match.score_b = 0
        match.last_result = None
        match.status = MatchStateMachine.membership_status(match)
        db.flush()

        record_event(db, match.id, EventType.MATCH_RESET, previous)

        logger.info(f"Match {match_id} reset (status {match.status.value})")
        return MatchState.model_validate(match)

    # ============ finish ============

    @staticmethod
    def finish_match(db: Session, match_id: UUID) -> MatchState:
        """
        End the match (PLAYING -> FINISHED).

        Finishing an already finished match is a no-op. A match nobody has
        joined cannot be finished: WAITING means slot B is empty and only
        an admission may leave that status.

        Raises:
            MatchNotFound
            InvalidStateTransition: the match is still WAITING
        """
        state, changed = MatchManager._finish(db, match_id)
        if changed:
            notifier.publish(state)
        return state

    @staticmethod
    @retry_on_conflict
    @transactional
    def _finish(db: Session, match_id: UUID) -> Tuple[MatchState, bool]:
        match = with_match_lock(match_id, db).first()
        if not match:
            raise MatchNotFound(match_id)

        if match.status == MatchStatus.FINISHED:
            return MatchState.model_validate(match), False

        MatchStateMachine.transition(match, MatchStatus.FINISHED)
        db.flush()

        record_event(
            db,
            match.id,
            EventType.MATCH_FINISHED,
            {"score_a": match.score_a, "score_b": match.score_b}
        )

        return MatchState.model_validate(match), True

    # ============ read ============

    @staticmethod
    def get_match(db: Session, match_id: UUID) -> MatchState:
        """
        Read the committed state of a match.

        Raises:
            MatchNotFound
            StorageFailure
        """
        try:
            match = db.query(Match).filter(Match.id == match_id).populate_existing().first()
        except SQLAlchemyError as e:
            raise StorageFailure(f"Failed to read match {match_id}: {e}") from e
        if not match:
            raise MatchNotFound(match_id)
        return MatchState.model_validate(match)
