"""Common session lifecycle for all telemetry transports.

Every link, whether it pulls bytes (serial) or gets them pushed (BLE
notifications, WebSocket messages), is presented as the same suspending
``read()``: the link side drops decoded text into an ``asyncio.Queue`` and
``read()`` takes it out. A ``None`` in the queue marks end of stream.
"""

from __future__ import annotations

import asyncio
import enum
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, ClassVar, Optional

from ..errors import TransportClosed, TransportConnectError

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    STREAMING = "streaming"
    CLOSING = "closing"


class TransportSession(ABC):
    """One connection to a telemetry source.

    Subclasses implement ``_open`` and ``_release`` and feed received text
    through ``_deliver`` (from the event loop) or ``_deliver_threadsafe``
    (from any other thread). A session is single use: once it has been
    closed, create a new one to reconnect.

    Attributes:
        kind: Short transport name used in logs and status displays.
    """

    kind: ClassVar[str] = "transport"

    def __init__(self) -> None:
        self._state = SessionState.DISCONNECTED
        self._queue: Optional[asyncio.Queue[Optional[str]]] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._eof = False
        self._released = False
        self._close_reason: Optional[str] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state in (SessionState.CONNECTED, SessionState.STREAMING)

    @property
    def close_reason(self) -> Optional[str]:
        return self._close_reason

    @abstractmethod
    def describe(self) -> str:
        """Human readable target, e.g. ``/dev/ttyUSB0 @ 115200``."""

    @abstractmethod
    async def _open(self) -> None:
        """Establish the link and start delivering chunks."""

    @abstractmethod
    async def _release(self) -> None:
        """Tear the link down. Must tolerate a half-open link."""

    async def connect(self) -> None:
        """Open the link.

        Raises:
            TransportConnectError: Discovery, connection or handshake failed,
                or the session was already used.
        """
        if self._state is not SessionState.DISCONNECTED or self._loop is not None:
            raise TransportConnectError(
                f"{self.kind} session already used (state={self._state.value})"
            )

        self._loop = asyncio.get_running_loop()
        self._queue = asyncio.Queue()
        self._state = SessionState.CONNECTING
        logger.info("Connecting %s link: %s", self.kind, self.describe())

        try:
            await self._open()
        except TransportConnectError:
            await self._abort_open()
            raise
        except Exception as e:
            await self._abort_open()
            raise TransportConnectError(
                f"{self.kind} connection to {self.describe()} failed: {e}"
            ) from e

        if self._eof:
            # The link dropped during the handshake
            self._state = SessionState.DISCONNECTED
            raise TransportConnectError(
                f"{self.kind} link lost while connecting: {self._close_reason}"
            )

        self._state = SessionState.CONNECTED
        logger.info("%s link established: %s", self.kind, self.describe())

    async def read(self) -> str:
        """Wait for the next chunk of text.

        Raises:
            TransportClosed: The session was closed or the link ended. Every
                later call raises as well.
        """
        if self._queue is None:
            raise TransportClosed(f"{self.kind} session not connected")

        chunk = await self._queue.get()
        if chunk is None:
            # Leave the sentinel for any other reader
            self._queue.put_nowait(None)
            raise TransportClosed(self._close_reason or "end of stream")

        if self._state is SessionState.CONNECTED:
            self._state = SessionState.STREAMING
        return chunk

    async def chunks(self) -> AsyncIterator[str]:
        """Yield chunks until the session ends."""
        while True:
            try:
                chunk = await self.read()
            except TransportClosed as e:
                logger.info("%s stream ended: %s", self.kind, e)
                return
            yield chunk

    async def close(self) -> None:
        """Close the link. Safe to call repeatedly and after a remote close.

        Pending ``read()`` calls wake up with ``TransportClosed``; chunks
        still queued are discarded.
        """
        if self._released:
            return
        self._released = True
        was_state = self._state
        self._state = SessionState.CLOSING

        if self._queue is not None:
            while not self._queue.empty():
                self._queue.get_nowait()
            self._signal_eof("closed locally")

        if was_state is not SessionState.DISCONNECTED or not self._eof:
            logger.info("Closing %s link: %s", self.kind, self.describe())
        try:
            await self._release()
        except Exception as e:
            logger.warning("Error while closing %s link: %s", self.kind, e)
        finally:
            self._state = SessionState.DISCONNECTED

    def _deliver(self, chunk: str) -> None:
        if self._eof or self._queue is None or not chunk:
            return
        self._queue.put_nowait(chunk)

    def _deliver_threadsafe(self, chunk: str) -> None:
        self._call_in_loop(self._deliver, chunk)

    def _end_of_stream(self, reason: str) -> None:
        """Mark the link as ended by the remote side or an I/O failure."""
        if self._eof:
            return
        logger.warning("%s link lost: %s", self.kind, reason)
        self._signal_eof(reason)
        if self._state is not SessionState.CLOSING:
            self._state = SessionState.DISCONNECTED

    def _end_of_stream_threadsafe(self, reason: str) -> None:
        self._call_in_loop(self._end_of_stream, reason)

    def _signal_eof(self, reason: str) -> None:
        if self._eof:
            return
        self._eof = True
        self._close_reason = reason
        if self._queue is not None:
            self._queue.put_nowait(None)

    def _call_in_loop(self, func, *args) -> None:  # type: ignore[no-untyped-def]
        loop = self._loop
        if loop is None or loop.is_closed():
            return
        try:
            loop.call_soon_threadsafe(func, *args)
        except RuntimeError:
            # Loop shut down between the check and the call
            logger.debug("Event loop closed; dropping %s callback", self.kind)

    async def _abort_open(self) -> None:
        self._released = True
        self._eof = True
        try:
            await self._release()
        except Exception as e:
            logger.debug("Cleanup after failed %s connect: %s", self.kind, e)
        self._state = SessionState.DISCONNECTED
