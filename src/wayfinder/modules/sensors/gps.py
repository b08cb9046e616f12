from __future__ import annotations

import asyncio
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import pynmea2
import serial

from ...errors import SensorError
from ...models import Coordinate

logger = logging.getLogger(__name__)

# Largest estimated error (m) a fix may carry per requested accuracy; None accepts all
ACCURACY_LIMITS_M: dict[str, Optional[float]] = {"high": 25.0, "balanced": 100.0, "low": None}

FixCallback = Callable[[Coordinate, Optional[float]], None]
ErrorCallback = Callable[[Exception], None]


@dataclass(frozen=True)
class WatchOptions:
    # Key into ACCURACY_LIMITS_M
    accuracy: str = "high"
    min_interval_ms: int = 10_000
    min_distance_m: float = 50.0


def parse_fix(line: str) -> tuple[Coordinate, Optional[float]] | None:
    """Return (coordinate, accuracy_m) for a valid GGA/RMC sentence, else None.

    Accuracy is approximated from HDOP when the sentence carries it.
    """
    try:
        msg = pynmea2.parse(line.strip(), check=True)
    except (pynmea2.ParseError, AttributeError, ValueError):
        return None
    if isinstance(msg, pynmea2.types.talker.GGA):
        if not msg.gps_qual:
            return None
    elif isinstance(msg, pynmea2.types.talker.RMC):
        if msg.status != "A":
            return None
    else:
        return None
    try:
        coordinate = Coordinate(float(msg.latitude), float(msg.longitude))
    except (TypeError, ValueError):
        return None
    accuracy_m: Optional[float] = None
    hdop = getattr(msg, "horizontal_dil", None)
    if hdop:
        try:
            # ~5 m UERE per unit of HDOP
            accuracy_m = float(hdop) * 5.0
        except ValueError:
            accuracy_m = None
    return coordinate, accuracy_m


class FixFilter:
    """Pass a fix when it moved far enough or the last one is too old.

    Fixes whose estimated error exceeds ``max_error_m`` never pass.
    """

    def __init__(
        self,
        min_distance_m: float,
        max_interval_s: float,
        max_error_m: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_error_m = max_error_m
        self._min_distance_m = min_distance_m
        self._max_interval_s = max_interval_s
        self._clock = clock
        self._last: Optional[Coordinate] = None
        self._last_ts = 0.0

    def accept(self, coordinate: Coordinate, accuracy_m: Optional[float] = None) -> bool:
        if self._max_error_m is not None and accuracy_m is not None and accuracy_m > self._max_error_m:
            return False
        now = self._clock()
        if (
            self._last is None
            or coordinate.distance_to(self._last) >= self._min_distance_m
            or now - self._last_ts >= self._max_interval_s
        ):
            self._last = coordinate
            self._last_ts = now
            return True
        return False


class _Watch:
    def __init__(self) -> None:
        self.stop_event = threading.Event()
        self.task: asyncio.Task | None = None


class NmeaSensor:
    """Location sensor backed by an NMEA GPS receiver on a serial port."""

    def __init__(self, serial_port: str, baud: int, first_fix_timeout_s: float = 30.0) -> None:
        self._port = serial_port
        self._baud = baud
        self._first_fix_timeout_s = first_fix_timeout_s

    async def request_permission(self) -> bool:
        granted = os.path.exists(self._port) and os.access(self._port, os.R_OK)
        if not granted:
            logger.warning("GPS port %s is not readable", self._port)
        return granted

    def _read_first_fix(self, deadline: float, stop_event: threading.Event) -> tuple[Coordinate, Optional[float]] | None:
        with serial.Serial(self._port, self._baud, timeout=1) as ser:
            while not stop_event.is_set() and time.monotonic() < deadline:
                line = ser.readline().decode(errors="ignore")
                fix = parse_fix(line) if line else None
                if fix is not None:
                    return fix
        return None

    async def get_current_fix(self) -> tuple[Coordinate, Optional[float]] | None:
        """One-shot fix, or None when the receiver has no lock before the timeout."""
        deadline = time.monotonic() + self._first_fix_timeout_s
        stop_event = threading.Event()
        try:
            fix = await asyncio.to_thread(self._read_first_fix, deadline, stop_event)
        except asyncio.CancelledError:
            # The reader thread outlives the await; release the port
            stop_event.set()
            raise
        except serial.SerialException as exc:
            raise SensorError(str(exc)) from exc
        if fix is None:
            logger.info("No GPS fix within %.0fs, waiting for the watch", self._first_fix_timeout_s)
        return fix

    def _read_loop(self, watch: _Watch, fix_filter: FixFilter, loop: asyncio.AbstractEventLoop, on_fix: FixCallback) -> None:
        with serial.Serial(self._port, self._baud, timeout=1) as ser:
            logger.info("GPS opened on %s @ %s", self._port, self._baud)
            while not watch.stop_event.is_set():
                line = ser.readline().decode(errors="ignore")
                if not line:
                    continue
                fix = parse_fix(line)
                if fix is None or not fix_filter.accept(*fix):
                    continue
                loop.call_soon_threadsafe(on_fix, *fix)

    async def _run(self, watch: _Watch, options: WatchOptions, on_fix: FixCallback, on_error: ErrorCallback) -> None:
        loop = asyncio.get_running_loop()
        fix_filter = FixFilter(
            options.min_distance_m,
            options.min_interval_ms / 1000.0,
            max_error_m=ACCURACY_LIMITS_M.get(options.accuracy),
        )
        while not watch.stop_event.is_set():
            try:
                await asyncio.to_thread(self._read_loop, watch, fix_filter, loop, on_fix)
            except serial.SerialException as exc:
                logger.warning("GPS reader error: %s", exc)
                on_error(SensorError(str(exc)))
            await asyncio.sleep(1)

    def watch(self, options: WatchOptions, on_fix: FixCallback, on_error: ErrorCallback) -> _Watch:
        watch = _Watch()
        watch.task = asyncio.create_task(self._run(watch, options, on_fix, on_error), name="gps-watch")
        return watch

    async def unwatch(self, handle: _Watch) -> None:
        handle.stop_event.set()
        if handle.task is not None:
            handle.task.cancel()
            try:
                await handle.task
            except asyncio.CancelledError:
                pass
            handle.task = None
