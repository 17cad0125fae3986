"""
Health check and system status endpoints
"""
from fastapi import APIRouter
from fastapi.responses import JSONResponse

from liveboard import state
from liveboard.errors import StoreUnavailable
from liveboard.version import VERSION


router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    peer_channel = state.NOTIFIER.peer_channel_status
    try:
        await state.STORE.ping()
        participants = await state.STORE.count()
    except StoreUnavailable:
        return JSONResponse(status_code=503, content={
            "status": "degraded",
            "message": "ranking store unreachable",
            "version": VERSION,
            "observers": state.HUB.connection_count,
            "peerChannel": peer_channel,
        })

    body = {
        "status": "ok",
        "message": "server healthy",
        "version": VERSION,
        "participants": participants,
        "observers": state.HUB.connection_count,
        "peerChannel": peer_channel,
    }
    if peer_channel == "down":
        body.update(status="degraded", message="change channel listener stopped")
        return JSONResponse(status_code=503, content=body)
    return body
