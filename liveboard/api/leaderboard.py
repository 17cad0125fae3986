"""
Leaderboard endpoints
"""
from typing import Optional

from fastapi import APIRouter, HTTPException

from liveboard import state
from liveboard.errors import InvalidInput, StoreUnavailable
from liveboard.services.leaderboard import get_leaderboard_data


router = APIRouter(tags=["leaderboard"])


@router.get("/leaderboard")
async def leaderboard(limit: Optional[int] = None):
    """
    Current ranking, score descending (ties by participant id)

    Query:
        limit: number of top entries, all when omitted
    """
    try:
        return await get_leaderboard_data(state.STORE, limit)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="ranking store unavailable") from exc
