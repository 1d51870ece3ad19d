"""WebSocket link to a board on the local network.

Each text message is one chunk. Binary messages are decoded as UTF-8 with
replacement. The connect attempt, including the opening handshake, is
bounded by ``SocketConfig.connect_timeout``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from ..config import SocketConfig
from ..errors import TransportConnectError
from .base import TransportSession

logger = logging.getLogger(__name__)


class SocketSession(TransportSession):
    kind = "socket"

    def __init__(self, config: SocketConfig) -> None:
        super().__init__()
        self._config = config
        self._ws: Optional[ClientConnection] = None
        self._receiver: Optional[asyncio.Task[None]] = None

    @property
    def config(self) -> SocketConfig:
        return self._config

    def describe(self) -> str:
        return self._config.url

    async def _open(self) -> None:
        url = self._config.url
        timeout = self._config.connect_timeout
        try:
            self._ws = await connect(url, open_timeout=timeout, ping_interval=None)
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise TransportConnectError(
                f"WebSocket connection timeout after {timeout:g}s: {url}"
            ) from e
        except (OSError, InvalidHandshake, InvalidURI) as e:
            raise TransportConnectError(f"WebSocket connection to {url} failed: {e}") from e

        self._receiver = asyncio.create_task(
            self._receive_loop(self._ws), name=f"ws-receiver-{self._config.host}"
        )

    async def _receive_loop(self, ws: ClientConnection) -> None:
        try:
            async for message in ws:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", errors="replace")
                self._deliver(message)
        except ConnectionClosed as e:
            self._end_of_stream(f"WebSocket closed: {e}")
            return
        self._end_of_stream("WebSocket closed by peer")

    async def _release(self) -> None:
        receiver, self._receiver = self._receiver, None
        ws, self._ws = self._ws, None
        if receiver is not None and not receiver.done():
            receiver.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await receiver
        if ws is not None:
            await ws.close()
