from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from domain.errors import ValidationError
from runtime.context import RuntimeContext

router = APIRouter()


@router.websocket("/ws")
async def relay_socket(websocket: WebSocket):
    """
    Relay channel: one connection per peer.

    The peer is greeted with ``welcome {peerId, version}``; every inbound
    text frame is a v1 protocol message. On disconnect the peer leaves all
    of its rooms and the remaining members get ``user-left``.
    """
    ctx: RuntimeContext = websocket.app.state.ctx
    await websocket.accept()
    peer_id = ctx.connections.register(websocket)
    ctx.protocol.welcome(peer_id)

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                ctx.protocol.transport.send(
                    peer_id,
                    "error",
                    {"code": ValidationError.code, "message": "Binary frames are not supported"},
                )
                continue
            ctx.protocol.handle_text(peer_id, text)
    except WebSocketDisconnect:
        logging.info(f"WebSocket disconnected for peer {peer_id}")
    finally:
        ctx.signaling.leave(peer_id)
        await ctx.connections.unregister(peer_id)
