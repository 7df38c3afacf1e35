"""
Match API Endpoints

Responsibilities:
1. Create / join matches
2. Submit moves
3. Read, reset and finish a match
4. List open matches and round history

All business logic lives in MatchManager / MoveEngine; this layer only
translates exceptions into HTTP responses. Clients get live updates from
the WebSocket in api/websocket.py.
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session
import logging

from database import get_db
from schemas import (
    MatchCreate,
    MatchJoin,
    MatchSeat,
    MatchState,
    MoveSubmit,
    ActionResponse,
    OpenMatchSummary,
    RoundRecord
)
from core.match_manager import MatchManager
from core.move_engine import MoveEngine
from core.exceptions import (
    MatchServiceException,
    MatchNotFound,
    MatchFull,
    MatchNotActive,
    InvalidParticipant,
    InvalidStateTransition,
    StorageFailure
)
from services.history_service import get_round_history

router = APIRouter(prefix="/api/matches", tags=["matches"])
logger = logging.getLogger(__name__)


def error_detail(e: MatchServiceException) -> dict:
    return {"code": e.code, "message": str(e)}


@router.post("", response_model=MatchSeat)
def create_match(match_data: MatchCreate, db: Session = Depends(get_db)):
    """
    Create a match; the requester takes slot 1 and waits for an opponent.
    """
    try:
        state = MatchManager.create_match(db, match_data.requester_id)
        return MatchSeat(match_id=state.id, participant_id=match_data.requester_id, slot=1)

    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to create match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/open", response_model=List[OpenMatchSummary])
def list_open_matches(
    limit: Optional[int] = Query(None, ge=1),
    offset: int = Query(0, ge=0),
    db: Session = Depends(get_db)
):
    """
    Matches still waiting for a second participant, newest first.

    Without `limit` every open match is returned; `limit` + `offset` page
    through the same ordering.
    """
    try:
        return list(MatchManager.iter_open_matches(db, limit, offset))

    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        logger.error(f"Failed to list open matches: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{match_id}/join", response_model=MatchSeat)
def join_match(match_id: UUID, join_data: MatchJoin, db: Session = Depends(get_db)):
    """
    Join a match as the second participant.

    Idempotent: a caller already seated gets its existing slot back, so a
    join that timed out can simply be retried.

    流程：
    1. 鎖定 Match（FOR UPDATE）
    2. 已入座的參與者直接取回原本的 slot
    3. slot B 已被他人占用 → MATCH_FULL
    4. 寫入 participant_b，狀態 WAITING → PLAYING
    """
    try:
        state, slot = MatchManager.join_match(db, match_id, join_data.requester_id)
        return MatchSeat(match_id=state.id, participant_id=join_data.requester_id, slot=slot)

    except MatchNotFound as e:
        raise HTTPException(status_code=404, detail=error_detail(e))
    except MatchFull as e:
        raise HTTPException(status_code=409, detail=error_detail(e))
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to join match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{match_id}/moves", response_model=ActionResponse)
def submit_move(match_id: UUID, move_data: MoveSubmit, db: Session = Depends(get_db)):
    """
    Submit a move for the current round.

    The response is only an acknowledgement; both participants learn the
    round outcome from the pushed snapshot (or GET /api/matches/{id}).

    流程：
    1. 鎖定 Match，確認請求者已入座且比賽未結束
    2. 寫入自己的 choice
    3. 雙方都出招 → 判定勝負、計分、清空 choice
    4. commit 後推播新的 snapshot
    """
    try:
        logger.info(f"Move from {move_data.participant_id} in match {match_id}")
        MoveEngine.submit_move(db, match_id, move_data.participant_id, move_data.choice)
        return ActionResponse(status="ok")

    except MatchNotFound as e:
        raise HTTPException(status_code=404, detail=error_detail(e))
    except InvalidParticipant as e:
        raise HTTPException(status_code=403, detail=error_detail(e))
    except MatchNotActive as e:
        raise HTTPException(status_code=409, detail=error_detail(e))
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to submit move: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{match_id}", response_model=MatchState)
def get_match(match_id: UUID, db: Session = Depends(get_db)):
    """
    Full snapshot of the match. Subscribers call this after (re)connecting
    to fill the gap before their subscription started.
    """
    try:
        return MatchManager.get_match(db, match_id)

    except MatchNotFound as e:
        raise HTTPException(status_code=404, detail=error_detail(e))
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        logger.error(f"Failed to get match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{match_id}/reset", response_model=ActionResponse)
def reset_match(match_id: UUID, db: Session = Depends(get_db)):
    """
    Zero the scores and clear the current round; participants stay seated.
    """
    try:
        MatchManager.reset_match(db, match_id)
        return ActionResponse(status="ok")

    except MatchNotFound as e:
        raise HTTPException(status_code=404, detail=error_detail(e))
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to reset match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.post("/{match_id}/finish", response_model=ActionResponse)
def finish_match(match_id: UUID, db: Session = Depends(get_db)):
    """
    End a PLAYING match; further moves are rejected until a reset.

    前置條件：
    - 比賽必須是 PLAYING（WAITING 的比賽沒有對手可結束 → 409）
    - 已經 FINISHED 則直接回傳 ok
    """
    try:
        MatchManager.finish_match(db, match_id)
        return ActionResponse(status="ok")

    except MatchNotFound as e:
        raise HTTPException(status_code=404, detail=error_detail(e))
    except InvalidStateTransition as e:
        raise HTTPException(status_code=409, detail=error_detail(e))
    except StorageFailure as e:
        raise HTTPException(status_code=503, detail=error_detail(e))
    except Exception as e:
        db.rollback()
        logger.error(f"Failed to finish match: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")


@router.get("/{match_id}/rounds", response_model=List[RoundRecord])
def get_rounds(match_id: UUID, db: Session = Depends(get_db)):
    """
    Rounds resolved since the last reset, oldest first.
    """
    try:
        return get_round_history(match_id, db)

    except MatchNotFound as e:
        raise HTTPException(status_code=404, detail=error_detail(e))
    except Exception as e:
        logger.error(f"Failed to get round history: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Internal error")
