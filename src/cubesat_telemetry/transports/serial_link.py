"""USB serial link via pyserial.

pyserial reads block, so a daemon thread owns the port and hands decoded
text to the event loop. A UTF-8 sequence split across reads is held by an
incremental decoder until it completes; undecodable bytes become U+FFFD.
"""

from __future__ import annotations

import asyncio
import codecs
import functools
import logging
import threading
from typing import Callable, List, Optional, Tuple

import serial
from serial.tools import list_ports

from ..config import SerialConfig
from ..errors import TransportConnectError
from .base import TransportSession

logger = logging.getLogger(__name__)


def list_serial_ports() -> List[Tuple[str, str]]:
    """Return ``(device, description)`` for every serial port the OS reports."""
    ports = [(p.device, p.description or "") for p in list_ports.comports()]
    logger.debug("Serial ports found: %d", len(ports))
    return sorted(ports)


class SerialSession(TransportSession):
    """Telemetry over a serial port at one of the supported baud rates.

    Args:
        config: Port and baud rate.
        serial_factory: Callable returning an open ``serial.Serial``-like
            object; tests pass a fake.
    """

    kind = "serial"

    def __init__(
        self,
        config: SerialConfig,
        serial_factory: Callable[..., serial.Serial] = serial.Serial,
    ) -> None:
        super().__init__()
        self._config = config
        self._factory = serial_factory
        self._serial: Optional[serial.Serial] = None
        self._thread: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def config(self) -> SerialConfig:
        return self._config

    def describe(self) -> str:
        return f"{self._config.port} @ {self._config.baudrate}"

    async def _open(self) -> None:
        loop = asyncio.get_running_loop()
        open_port = functools.partial(
            self._factory,
            port=self._config.port,
            baudrate=self._config.baudrate,
            timeout=self._config.read_timeout,
            exclusive=True,
        )
        try:
            port = await loop.run_in_executor(None, open_port)
        except (serial.SerialException, OSError, ValueError) as e:
            raise TransportConnectError(
                f"Cannot open serial port {self._config.port}: {e}"
            ) from e

        self._serial = port
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._reader_loop,
            args=(port,),
            name=f"SerialReader-{self._config.port}",
            daemon=True,
        )
        self._thread.start()

    def _reader_loop(self, port: serial.Serial) -> None:
        try:
            while not self._stop.is_set():
                data = port.read(port.in_waiting or 1)
                if not data:
                    continue
                logger.debug("Serial read: %d bytes", len(data))
                text = self._decoder.decode(data)
                if text:
                    self._deliver_threadsafe(text)
        except (serial.SerialException, OSError, TypeError) as e:
            # TypeError: pyserial on POSIX when the port is closed under a read
            if not self._stop.is_set():
                logger.error("Serial read failed on %s: %s", self._config.port, e)
                self._end_of_stream_threadsafe(f"serial I/O error: {e}")
            return

        logger.debug("Serial reader stopped: %s", self._config.port)

    async def _release(self) -> None:
        self._stop.set()
        loop = asyncio.get_running_loop()
        if self._serial is not None:
            port, self._serial = self._serial, None
            await loop.run_in_executor(None, port.close)
        if self._thread is not None:
            thread, self._thread = self._thread, None
            await loop.run_in_executor(None, thread.join, 2.0)
            if thread.is_alive():
                logger.warning("Serial reader thread did not stop in time")
        self._decoder.reset()
