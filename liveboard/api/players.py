"""Participant registration and score endpoints"""
from fastapi import APIRouter, HTTPException

from liveboard import state
from liveboard.errors import InvalidInput, StoreUnavailable
from liveboard.services.leaderboard import get_player_rank


router = APIRouter(prefix="/player", tags=["players"])


@router.post("", status_code=201)
async def register(payload: dict):
    """
    Register a participant (idempotent, existing score is kept)

    Request:
        {"participantId": "alice", "initialScore": 10}
    """
    participant_id = payload.get("participantId") or payload.get("playerId")
    initial_score = payload.get("initialScore", 0)
    try:
        created = await state.GATEWAY.register_participant(participant_id, initial_score)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="ranking store unavailable") from exc
    return {
        "participantId": participant_id,
        "created": created,
        "message": "Player added successfully" if created else "Player already registered",
    }


@router.post("/{participant_id}/score")
async def apply_delta(participant_id: str, payload: dict):
    """
    Apply a score delta; observers are updated in the background

    Request:
        {"delta": 10}
    """
    delta = payload.get("delta", payload.get("scoreIncrement"))
    try:
        score = await state.GATEWAY.apply_score_delta(participant_id, delta)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="ranking store unavailable") from exc
    return {"participantId": participant_id, "score": score}


@router.get("/{participant_id}/rank")
async def rank(participant_id: str):
    try:
        result = await get_player_rank(state.STORE, participant_id)
    except InvalidInput as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StoreUnavailable as exc:
        raise HTTPException(status_code=503, detail="ranking store unavailable") from exc
    if result is None:
        raise HTTPException(status_code=404, detail=f"Player {participant_id} not found")
    return result
