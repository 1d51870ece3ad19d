"""Telemetry service: owns the pipeline and runs all I/O on a private event loop.

UI code (Dash callbacks, the CLI) runs in ordinary threads. All transport and
generator work happens on one asyncio loop in a background thread; the
synchronous methods here hand coroutines to that loop and wait for them.
"""

from __future__ import annotations

import asyncio
import logging
import random
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Coroutine, Optional, TypeVar, Union

from .aggregator import PacketAggregator
from .audit_log import AuditLog
from .config import GENERATOR_INTERVAL_S
from .errors import TransportConnectError
from .generator import SyntheticGenerator
from .pipeline import TelemetryPipeline
from .sinks import ChartSink, NumericDisplaySink, OrientationSink, SinkHub
from .state import TelemetryState
from .transports import SessionState, TransportConfig, TransportSession, open_session

logger = logging.getLogger(__name__)

T = TypeVar("T")

CALL_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class ServiceStatus:
    """Point-in-time view of the service for status displays.

    Attributes:
        transport: Kind of the current session (``serial``, ``ble``,
            ``socket``), or None when no session exists.
        target: Human readable session target.
        session_state: Lifecycle state of the current session.
        stream_active: Operator has started the stream.
        generator_running: Synthetic packets are being produced.
        packet_count: Packets applied since the last clear.
        data_rate: Latest inter-arrival rate in Hz.
        last_error: Message of the most recent connection failure or loss.
    """

    transport: Optional[str]
    target: Optional[str]
    session_state: SessionState
    stream_active: bool
    generator_running: bool
    packet_count: int
    data_rate: float
    last_error: Optional[str]

    @property
    def connected(self) -> bool:
        return self.session_state in (SessionState.CONNECTED, SessionState.STREAMING)


class TelemetryService:
    """Wire state, aggregator, sinks, pipeline and generator together.

    The ``*_async`` coroutines must run on the service loop (or, in tests,
    on any single loop used consistently). The plain methods are thread-safe
    and require :meth:`start` to have been called.

    Args:
        clock: Monotonic clock used for data rate computation.
        generator_interval: Seconds between synthetic packets.
        rng: Random source for the synthetic generator.
    """

    def __init__(
        self,
        *,
        clock: Callable[[], float] = time.monotonic,
        generator_interval: float = GENERATOR_INTERVAL_S,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.state = TelemetryState()
        self.hub = SinkHub()
        self.audit_log = AuditLog()
        self.numeric = NumericDisplaySink()
        self.charts = ChartSink()
        self.orientation = OrientationSink()
        for sink in (self.numeric, self.charts, self.orientation, self.audit_log):
            self.hub.subscribe(sink)

        self.aggregator = PacketAggregator(self.state, self.hub, clock)
        self.pipeline = TelemetryPipeline(self.aggregator, self.hub)
        self.generator = SyntheticGenerator(
            self.pipeline, interval=generator_interval, rng=rng
        )

        self._session: Optional[TransportSession] = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._stream_active = False
        self._last_error: Optional[str] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._ready = threading.Event()

    # Lifecycle -------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background event loop thread. No-op when already running."""
        if self.running:
            return
        self._ready.clear()
        self._thread = threading.Thread(
            target=self._loop_worker, name="TelemetryLoop", daemon=True
        )
        self._thread.start()
        if not self._ready.wait(timeout=5.0):
            raise RuntimeError("Telemetry event loop failed to start")
        logger.info("Telemetry service started")

    def _loop_worker(self) -> None:
        # Dedicated loop for this thread, separate from anything the UI runs
        self._loop = asyncio.new_event_loop()
        asyncio.set_event_loop(self._loop)
        self._loop.call_soon(self._ready.set)
        try:
            self._loop.run_forever()
        finally:
            pending = asyncio.all_tasks(self._loop)
            for task in pending:
                task.cancel()
            if pending:
                self._loop.run_until_complete(
                    asyncio.gather(*pending, return_exceptions=True)
                )
            self._loop.close()
            logger.debug("Telemetry event loop closed")

    def shutdown(self, timeout: float = 5.0) -> None:
        """Stop the stream, close the session and stop the loop thread."""
        if not self.running or self._loop is None:
            return
        try:
            self._call(self._shutdown_async(), timeout)
        except Exception as e:
            logger.warning("Error during telemetry shutdown: %s", e)
        self._loop.call_soon_threadsafe(self._loop.stop)
        thread, self._thread = self._thread, None
        if thread is None:
            return
        thread.join(timeout)
        if thread.is_alive():
            logger.warning("Telemetry loop thread did not stop gracefully")
        else:
            logger.info("Telemetry service stopped")

    async def _shutdown_async(self) -> None:
        await self.stop_stream_async()
        await self.disconnect_async()

    def _call(
        self, coro: Coroutine[Any, Any, T], timeout: Optional[float] = CALL_TIMEOUT_S
    ) -> T:
        if not self.running or self._loop is None:
            coro.close()
            raise RuntimeError("Telemetry service is not running; call start() first")
        future: Future[T] = asyncio.run_coroutine_threadsafe(coro, self._loop)
        return future.result(timeout)

    # Thread-safe operations ------------------------------------------------

    def connect(self, target: Union[TransportConfig, TransportSession]) -> None:
        """Connect a transport, replacing any current session.

        Raises:
            TransportConnectError: The link could not be established.
        """
        self._call(self.connect_async(target))

    def disconnect(self) -> None:
        self._call(self.disconnect_async())

    def start_stream(self) -> None:
        self._call(self.start_stream_async())

    def stop_stream(self) -> None:
        self._call(self.stop_stream_async())

    def clear_data(self) -> None:
        """Reset packet counter, rate and audit log. Field values are kept."""
        self.aggregator.reset()
        self.audit_log.clear()
        logger.info("🧹 Telemetry data cleared")

    def status(self) -> ServiceStatus:
        session = self._session
        return ServiceStatus(
            transport=session.kind if session else None,
            target=session.describe() if session else None,
            session_state=session.state if session else SessionState.DISCONNECTED,
            stream_active=self._stream_active,
            generator_running=self.generator.running,
            packet_count=self.state.packet_count,
            data_rate=self.state.data_rate,
            last_error=self._last_error,
        )

    # Loop-side operations --------------------------------------------------

    @property
    def session(self) -> Optional[TransportSession]:
        return self._session

    async def connect_async(
        self, target: Union[TransportConfig, TransportSession]
    ) -> None:
        await self.disconnect_async()

        session = target if isinstance(target, TransportSession) else open_session(target)
        self._session = session
        try:
            await session.connect()
        except TransportConnectError as e:
            self._last_error = str(e)
            self._session = None
            logger.error("❌ Connection failed: %s", e)
            raise

        self._last_error = None
        self._reader_task = asyncio.get_running_loop().create_task(
            self._read_loop(session), name=f"{session.kind}-reader"
        )
        logger.info("✅ Connected via %s: %s", session.kind, session.describe())

    async def _read_loop(self, session: TransportSession) -> None:
        failure: Optional[str] = None
        try:
            count = await self.pipeline.pump(session)
            logger.info("%s session finished after %d records", session.kind, count)
        except Exception as e:
            logger.exception("❌ %s reader failed", session.kind)
            failure = f"reader failed: {e}"
        finally:
            reason = failure or session.close_reason
            if session is self._session and reason != "closed locally":
                # Remote close or I/O failure; no automatic reconnect
                self._last_error = reason
                self._stream_active = False
                logger.warning("⚠️ %s link lost: %s", session.kind, reason)
            await session.close()

    async def disconnect_async(self) -> None:
        session, task = self._session, self._reader_task
        self._session = None
        self._reader_task = None
        if session is None:
            return
        await session.close()
        if task is not None:
            try:
                await asyncio.wait_for(task, timeout=5.0)
            except asyncio.TimeoutError:
                logger.warning("Reader task did not finish; cancelling")
                task.cancel()
        self._stream_active = False
        logger.info("🔌 Disconnected from %s", session.describe())

    async def start_stream_async(self) -> None:
        self._stream_active = True
        session = self._session
        if session is None or not session.is_active:
            self.generator.start()
        logger.info("▶️ Data stream started")

    async def stop_stream_async(self) -> None:
        self._stream_active = False
        self.generator.stop()
        logger.info("⏸️ Data stream stopped")
