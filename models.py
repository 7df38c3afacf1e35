"""
ORM models

matches:      one row per match, the only shared state between two participants
match_events: append-only audit log written in the same transaction as the change
"""
from datetime import datetime, timezone
import enum
import uuid

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    Uuid,
)

from database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Choice(str, enum.Enum):
    ROCK = "ROCK"
    PAPER = "PAPER"
    SCISSORS = "SCISSORS"


class MatchStatus(str, enum.Enum):
    WAITING = "WAITING"
    PLAYING = "PLAYING"
    FINISHED = "FINISHED"


class EventType(str, enum.Enum):
    MATCH_CREATED = "MATCH_CREATED"
    PLAYER_JOINED = "PLAYER_JOINED"
    MOVE_SUBMITTED = "MOVE_SUBMITTED"
    ROUND_RESOLVED = "ROUND_RESOLVED"
    MATCH_RESET = "MATCH_RESET"
    MATCH_FINISHED = "MATCH_FINISHED"


class Match(Base):
    """
    A two-participant match and its running score.

    version is the optimistic concurrency counter: SQLAlchemy adds
    "AND version = :seen" to every UPDATE and raises StaleDataError when
    another writer committed first.
    """
    __tablename__ = "matches"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    participant_a = Column(String(128), nullable=False)
    participant_b = Column(String(128), nullable=True)
    choice_a = Column(Enum(Choice), nullable=True)
    choice_b = Column(Enum(Choice), nullable=True)
    score_a = Column(Integer, nullable=False, default=0)
    score_b = Column(Integer, nullable=False, default=0)
    last_result = Column(String(32), nullable=True)
    status = Column(Enum(MatchStatus), nullable=False, default=MatchStatus.WAITING)
    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("participant_b IS NULL OR participant_b <> participant_a", name="ck_distinct_participants"),
        CheckConstraint("score_a >= 0 AND score_b >= 0", name="ck_scores_non_negative"),
        CheckConstraint("choice_a IS NULL OR choice_b IS NULL", name="ck_no_pending_pair"),
        Index("ix_matches_status_created_at", "status", "created_at"),
    )

    def slot_of(self, participant_id: str) -> int | None:
        """Return 1 or 2 for the slot bound to participant_id, None if unbound."""
        if participant_id == self.participant_a:
            return 1
        if self.participant_b is not None and participant_id == self.participant_b:
            return 2
        return None


class MatchEvent(Base):
    __tablename__ = "match_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Uuid, ForeignKey("matches.id"), nullable=False, index=True)
    event_type = Column(Enum(EventType), nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
