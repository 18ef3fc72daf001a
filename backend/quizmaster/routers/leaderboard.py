"""Leaderboard endpoints and live updates."""

import asyncio
import logging
from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException, Query, WebSocket, WebSocketDisconnect

from quizmaster.dependencies import AppServices, get_services
from quizmaster.models.leaderboard import (
    LeaderboardEntry,
    LeaderboardPage,
    LeaderboardState,
    LeaderboardStatistics,
    UserRankResult,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leaderboard", tags=["leaderboard"])


@router.get("", response_model=LeaderboardPage)
async def get_leaderboard(
    services: Annotated[AppServices, Depends(get_services)],
    limit: int = Query(default=10, ge=1, le=100),
    category: str | None = None,
):
    """Top users, globally or for one category."""
    return await services.leaderboard.get_top_users(limit, category)


@router.get("/rank/{user_id}", response_model=UserRankResult)
async def get_user_rank(
    user_id: str,
    services: Annotated[AppServices, Depends(get_services)],
    category: str | None = None,
):
    result = await services.leaderboard.get_user_rank(user_id, category)
    if not result.success:
        raise HTTPException(status_code=404, detail=result.message)
    return result


@router.get("/statistics", response_model=LeaderboardStatistics)
async def get_statistics(services: Annotated[AppServices, Depends(get_services)]):
    return services.leaderboard.get_statistics()


@router.get("/search", response_model=list[LeaderboardEntry])
async def search_users(
    services: Annotated[AppServices, Depends(get_services)],
    q: str = Query(default="", max_length=50),
):
    return services.leaderboard.search_users(q)


@router.get("/state", response_model=LeaderboardState)
async def get_state(services: Annotated[AppServices, Depends(get_services)]):
    return services.leaderboard.get_current_state()


def _payload(users: list[LeaderboardEntry]) -> dict:
    return {"type": "leaderboard", "users": [user.model_dump(mode="json") for user in users]}


async def _drain(websocket: WebSocket) -> None:
    while True:
        await websocket.receive_text()


@router.websocket("/ws")
async def leaderboard_updates(websocket: WebSocket, services: Annotated[AppServices, Depends(get_services)]):
    """Send the ranked snapshot now and after every leaderboard change."""
    await websocket.accept()
    updates: asyncio.Queue = asyncio.Queue()
    unsubscribe = services.leaderboard.subscribe(updates.put_nowait)
    receiver = asyncio.create_task(_drain(websocket))
    try:
        await websocket.send_json(_payload(services.leaderboard.snapshot))
        while True:
            getter = asyncio.create_task(updates.get())
            done, _ = await asyncio.wait({getter, receiver}, return_when=asyncio.FIRST_COMPLETED)
            if receiver in done:
                getter.cancel()
                break
            await websocket.send_json(_payload(getter.result()))
    except WebSocketDisconnect:
        pass
    finally:
        unsubscribe()
        receiver.cancel()
        if receiver.done() and not receiver.cancelled():
            error = receiver.exception()
            if error is not None and not isinstance(error, WebSocketDisconnect):
                logger.error(f"Leaderboard socket failed: {error}")
        logger.debug("Leaderboard client disconnected")
