"""
WebSocket endpoint: push match snapshots to subscribers

Protocol (server -> client, JSON MatchState):
1. the current snapshot right after connecting
2. one snapshot per committed change, versions strictly increasing

The subscription is registered before the current state is fetched, so no
change can fall between the two; snapshots not newer than the one already
sent are skipped.

Close codes:
- 4404: match not found
- 1011: notification channel dropped this subscriber, reconnect to resync
"""
import asyncio
from uuid import UUID

from fastapi import APIRouter, Depends, WebSocket
from starlette.concurrency import run_in_threadpool
from starlette.websockets import WebSocketDisconnect, WebSocketState
import logging

from database import get_session_factory
from core.match_manager import MatchManager
from core.notifier import notifier, Subscription
from core.exceptions import MatchNotFound, ConnectionFailure

router = APIRouter(tags=["websocket"])
logger = logging.getLogger(__name__)


def _fetch_state(session_factory, match_id: UUID):
    db = session_factory()
    try:
        return MatchManager.get_match(db, match_id)
    finally:
        db.close()


async def _forward(websocket: WebSocket, subscription: Subscription, last_version: int) -> None:
    async for state in subscription:
        if state.version <= last_version:
            continue
        last_version = state.version
        try:
            await websocket.send_json(state.model_dump(mode="json"))
        except WebSocketDisconnect:
            # client left between two snapshots
            return


async def _close(websocket: WebSocket, code: int, reason: str = "") -> None:
    # a failed send already marks the application side DISCONNECTED
    if (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    ):
        await websocket.close(code=code, reason=reason)


async def _listen(websocket: WebSocket) -> None:
    # inbound messages are ignored; this only detects the client leaving
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return


@router.websocket("/ws/matches/{match_id}")
async def match_updates(
    websocket: WebSocket,
    match_id: UUID,
    session_factory=Depends(get_session_factory)
):
    await websocket.accept()

    subscription = notifier.subscribe(match_id)
    try:
        try:
            current = await run_in_threadpool(_fetch_state, session_factory, match_id)
        except MatchNotFound as e:
            await websocket.close(code=4404, reason=str(e))
            return

        await websocket.send_json(current.model_dump(mode="json"))

        forward = asyncio.create_task(_forward(websocket, subscription, current.version))
        listen = asyncio.create_task(_listen(websocket))
        done, pending = await asyncio.wait({forward, listen}, return_when=asyncio.FIRST_COMPLETED)

        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if forward in done:
            error = forward.exception()
            if isinstance(error, ConnectionFailure):
                logger.warning(f"Subscriber of match {match_id} dropped: {error}")
                await _close(websocket, 1011, error.code)
            elif error is not None:
                logger.error(f"WebSocket for match {match_id} failed: {error}", exc_info=error)
                await _close(websocket, 1011)
        else:
            logger.info(f"Subscriber of match {match_id} disconnected")

    finally:
        subscription.close()
