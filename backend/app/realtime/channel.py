from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import AsyncIterator, Optional, Protocol

import websockets

from core.config import REALTIME_MODEL, REALTIME_URL

from .token import TokenMintError, extract_client_secret, mint_client_secret

logging.basicConfig(
    format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger("realtime_channel")


class ChannelNotOpenError(RuntimeError):
    """A client event was sent while the realtime channel was not open."""


class RealtimeChannel(Protocol):
    @property
    def is_open(self) -> bool:
        ...

    def send(self, payload: dict) -> None:
        ...

    def close(self) -> None:
        ...


class WebSocketRealtimeChannel:
    """
    Bidirectional realtime event channel over a websocket.

    `send()` is synchronous and only enqueues; a writer task drains the
    queue in order so the controller never awaits the network.
    """

    def __init__(self, secret: str, model: str = REALTIME_MODEL, url: str = REALTIME_URL):
        self._secret = secret
        self._url = f"{url}?model={model}"
        self._ws = None
        self._outbox: asyncio.Queue[Optional[str]] = asyncio.Queue()
        self._writer_task: asyncio.Task | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self) -> None:
        self._ws = await websockets.connect(
            self._url,
            additional_headers={"Authorization": f"Bearer {self._secret}"},
            ping_interval=5,
            ping_timeout=20,
            max_size=None,
        )
        self._open = True
        self._writer_task = asyncio.create_task(self._writer())
        logger.info("Realtime channel connected")

    def send(self, payload: dict) -> None:
        if not self._open:
            raise ChannelNotOpenError(f"channel not open; dropped {payload.get('type')}")
        message = dict(payload)
        message.setdefault("event_id", uuid.uuid4().hex)
        self._outbox.put_nowait(json.dumps(message))

    async def _writer(self) -> None:
        try:
            while True:
                raw = await self._outbox.get()
                if raw is None:
                    break
                await self._ws.send(raw)
        except websockets.ConnectionClosed:
            logger.info("Realtime channel closed during send")
        finally:
            self._open = False

    async def messages(self) -> AsyncIterator[dict]:
        try:
            async for raw in self._ws:
                try:
                    event = json.loads(raw)
                except (TypeError, ValueError):
                    logger.warning("Non-JSON realtime frame ignored")
                    continue
                if isinstance(event, dict):
                    yield event
        except websockets.ConnectionClosed as exc:
            logger.info("Realtime channel closed | code=%s", getattr(exc, "code", None))
        finally:
            self._open = False

    def close(self) -> None:
        if self._ws is None:
            return
        self._open = False
        self._outbox.put_nowait(None)
        asyncio.get_running_loop().create_task(self._ws.close())

    async def aclose(self) -> None:
        self.close()
        if self._writer_task is not None:
            await asyncio.gather(self._writer_task, return_exceptions=True)
        if self._ws is not None:
            await self._ws.close()


async def open_realtime_channel() -> WebSocketRealtimeChannel:
    """Mint an ephemeral secret and connect a channel with it."""
    token = await mint_client_secret()
    secret = extract_client_secret(token)
    if not secret:
        raise TokenMintError(500, {"error": "Token response missing client secret"})

    channel = WebSocketRealtimeChannel(secret)
    await channel.connect()
    return channel
