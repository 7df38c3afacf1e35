"""
Pydantic schemas

MatchState is also the snapshot type the core returns and the notifier
publishes, so every consumer sees the same committed field set.
"""
from datetime import datetime, timezone
from typing import Annotated, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from models import Choice, MatchStatus


def as_utc(value):
    # SQLite hands DateTime(timezone=True) back without an offset
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


class MatchState(BaseModel):
    model_config = ConfigDict(from_attributes=True, frozen=True)

    id: UUID
    participant_a: str
    participant_b: Optional[str] = None
    choice_a: Optional[Choice] = None
    choice_b: Optional[Choice] = None
    score_a: int = 0
    score_b: int = 0
    last_result: Optional[str] = None
    status: MatchStatus
    version: int
    created_at: UtcDatetime


class OpenMatchSummary(BaseModel):
    match_id: UUID
    participant_a: str
    created_at: UtcDatetime


class MatchCreate(BaseModel):
    requester_id: str = Field(..., min_length=1, max_length=128)


class MatchJoin(BaseModel):
    requester_id: str = Field(..., min_length=1, max_length=128)


class MatchSeat(BaseModel):
    """Where a caller sits: returned by create and join."""
    match_id: UUID
    participant_id: str
    slot: int


class MoveSubmit(BaseModel):
    participant_id: str = Field(..., min_length=1, max_length=128)
    choice: Choice

    @field_validator("choice", mode="before")
    @classmethod
    def normalize_choice(cls, value):
        # clients historically send "rock" / "paper" / "scissors"
        if isinstance(value, str):
            return value.strip().upper()
        return value


class ActionResponse(BaseModel):
    status: str


class RoundRecord(BaseModel):
    round_number: int
    choice_a: Choice
    choice_b: Choice
    outcome: str
    last_result: str
    score_a: int
    score_b: int
    resolved_at: UtcDatetime
