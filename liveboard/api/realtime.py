"""
Real-time observer endpoint

Outbound:  {"type": "ranking:update", "data": [{"participantId", "score"}, ...]}
Inbound:   {"type": "score:delta", "data": {"participantId", "delta"}}
"""
from fastapi import APIRouter, WebSocket

from liveboard import state
from liveboard.core.hub import WebSocketConnection


router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def observe(websocket: WebSocket):
    await state.HUB.serve(WebSocketConnection(websocket), state.GATEWAY)
