"""
Realtime channel.

  WS /ws?token=<jwt>

Inbound events: ATTENDANCE_MARKED, TODAY_SUMMARY, MY_ATTENDANCE, DONE.
Outbound: the same names plus ERROR.
"""
from fastapi import APIRouter, WebSocket

router = APIRouter(tags=["realtime"])


@router.websocket("/ws")
async def attendance_socket(websocket: WebSocket) -> None:
    await websocket.app.state.container.hub.serve(websocket)
