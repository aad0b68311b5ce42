"""
Peer transport: delivers relay events to connected peers.

Relays only depend on the ``PeerTransport`` protocol. ``PeerConnections`` is
the WebSocket implementation: each peer gets a bounded FIFO outbox drained by
a single writer task, so enqueueing never blocks the relay loop and messages
reach each recipient in the order they were queued.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Any, Dict, Iterable, Optional, Protocol

from fastapi import WebSocket

PROTOCOL_VERSION = 1


def envelope(event: str, data: Any) -> Dict[str, Any]:
    """Wire envelope for every server-to-peer message."""
    return {"v": PROTOCOL_VERSION, "event": event, "data": data}


class PeerTransport(Protocol):
    def send(self, peer_id: str, event: str, data: Any) -> bool:
        """Queue one event for a peer. Returns False if it was not queued."""
        ...


def send_to_many(transport: PeerTransport, peer_ids: Iterable[str], event: str, data: Any) -> int:
    """Queue the same event for several peers; returns how many accepted it."""
    sent = 0
    for peer_id in sorted(peer_ids):
        if transport.send(peer_id, event, data):
            sent += 1
    return sent


class _Peer:
    def __init__(self, websocket: WebSocket, outbox_size: int):
        self.websocket = websocket
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=outbox_size)
        self.writer: Optional[asyncio.Task] = None


class PeerConnections(PeerTransport):
    """
    Registry of live WebSocket connections keyed by peer id.

    Delivery is at-most-once: messages for unknown peers, full outboxes, or
    sockets that fail mid-send are dropped with a log line and never retried.
    """

    def __init__(self, outbox_size: int = 256):
        self._outbox_size = outbox_size
        self._peers: Dict[str, _Peer] = {}

    def register(self, websocket: WebSocket, peer_id: Optional[str] = None) -> str:
        peer_id = peer_id or uuid.uuid4().hex
        peer = _Peer(websocket, self._outbox_size)
        peer.writer = asyncio.get_running_loop().create_task(self._drain(peer_id, peer))
        self._peers[peer_id] = peer
        logging.info(f"Peer connected: {peer_id} (total: {len(self._peers)})")
        return peer_id

    async def unregister(self, peer_id: str) -> None:
        peer = self._peers.pop(peer_id, None)
        if peer is None:
            return
        if peer.writer is not None:
            peer.writer.cancel()
            try:
                await peer.writer
            except asyncio.CancelledError:
                pass
        logging.info(f"Peer disconnected: {peer_id} (total: {len(self._peers)})")

    def send(self, peer_id: str, event: str, data: Any) -> bool:
        peer = self._peers.get(peer_id)
        if peer is None:
            logging.debug(f"Dropping {event} for unknown peer {peer_id}")
            return False
        try:
            peer.outbox.put_nowait(envelope(event, data))
        except asyncio.QueueFull:
            logging.warning(f"Outbox full for peer {peer_id}, dropping {event}")
            return False
        return True

    def __len__(self) -> int:
        return len(self._peers)

    async def _drain(self, peer_id: str, peer: _Peer) -> None:
        while True:
            message = await peer.outbox.get()
            try:
                await peer.websocket.send_json(message)
            except Exception as e:
                # The receive loop notices the disconnect and unregisters the peer.
                logging.warning(f"Send to {peer_id} failed, stopping writer: {e}")
                return
