import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from services.relay import ChatRelay
from .auth import websocket_participant

router = APIRouter(tags=["chat"])
log = logging.getLogger("handoff.chat")


@router.websocket("/ws/chat")
async def chat_socket(websocket: WebSocket):
    """
    One chat connection. Events are JSON objects with an ``event`` key:
    joinRoom / sendMessage / leaveRoom. Closing the socket leaves every
    room the connection joined.
    """
    participant_id = websocket_participant(websocket)
    if participant_id is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    relay: ChatRelay = websocket.app.state.relay
    await websocket.accept()
    log.info("user %s connected", participant_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000))
            # text and binary frames both carry JSON events
            raw = message.get("text") or message.get("bytes") or ""
            await relay.handle(websocket, participant_id, raw)
    except WebSocketDisconnect:
        log.info("user %s disconnected", participant_id)
    finally:
        await relay.disconnect(websocket)
