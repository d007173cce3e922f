from __future__ import annotations
from typing import Dict, Set
from fastapi import WebSocket
from loguru import logger
import json
import asyncio

class NotificationConnectionManager:
    """Manager of WebSocket connections per account.
    We keep a set of active WebSockets for each account id.
    """
    def __init__(self) -> None:
        self._sockets: Dict[int, Set[WebSocket]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, account_id: int, websocket: WebSocket):
        await websocket.accept()
        async with self._lock:
            self._sockets.setdefault(account_id, set()).add(websocket)

    async def disconnect(self, account_id: int, websocket: WebSocket):
        async with self._lock:
            conns = self._sockets.get(account_id)
            if conns and websocket in conns:
                conns.remove(websocket)
                if not conns:
                    self._sockets.pop(account_id, None)

    async def send_to_account(self, account_id: int, payload: dict):
        # Send to every open tab/session of the account
        message = json.dumps(payload, ensure_ascii=False, default=str)
        async with self._lock:
            conns = list(self._sockets.get(account_id, []))
        for ws in conns:
            try:
                await ws.send_text(message)
            except Exception as exc:
                # A dead socket only loses its own push; the inbox row is already stored
                logger.debug(f"Dropping websocket for account {account_id}: {exc!r}")
                await self.disconnect(account_id, ws)

manager = NotificationConnectionManager()
