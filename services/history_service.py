"""
Round history service.

Builds the list of resolved rounds of a match from the event log so the
frontend can show a round-by-round record without client-side storage.
"""
from typing import List
from uuid import UUID

from sqlalchemy.orm import Session

from models import EventType, Match, MatchEvent
from schemas import RoundRecord
from core.exceptions import MatchNotFound


def get_round_history(match_id: UUID, db: Session) -> List[RoundRecord]:
    """
    Return the rounds resolved since the last reset, oldest first.

    Rounds are numbered from 1 after every MATCH_RESET, matching the
    scoreline the players currently see.
    """
    if not db.query(Match.id).filter(Match.id == match_id).first():
        raise MatchNotFound(match_id)

    events = (
        db.query(MatchEvent)
        .filter(
            MatchEvent.match_id == match_id,
            MatchEvent.event_type.in_([EventType.ROUND_RESOLVED, EventType.MATCH_RESET])
        )
        .order_by(MatchEvent.id)
        .all()
    )

    history: List[RoundRecord] = []

    for event in events:
        if event.event_type == EventType.MATCH_RESET:
            history = []
            continue

        data = event.data
        history.append(
            RoundRecord(
                round_number=len(history) + 1,
                choice_a=data["choice_a"],
                choice_b=data["choice_b"],
                outcome=data["outcome"],
                last_result=data["last_result"],
                score_a=data["score_a"],
                score_b=data["score_b"],
                resolved_at=event.created_at
            )
        )

    return history
