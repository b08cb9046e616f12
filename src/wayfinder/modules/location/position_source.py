from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Awaitable, Callable, Optional, Protocol

from ...errors import ErrorInfo, NavigationError, PermissionDenied, SensorError
from ...models import Coordinate, Position
from ..sensors.gps import WatchOptions

logger = logging.getLogger(__name__)


class Sensor(Protocol):
    async def request_permission(self) -> bool: ...

    async def get_current_fix(self) -> tuple[Coordinate, Optional[float]] | None: ...

    def watch(
        self,
        options: WatchOptions,
        on_fix: Callable[[Coordinate, Optional[float]], None],
        on_error: Callable[[Exception], None],
    ) -> Any: ...

    def unwatch(self, handle: Any) -> Awaitable[None] | None: ...


class Subscription:
    def __init__(self, on_fix: Callable[[Position], None], on_error: Callable[[ErrorInfo], None]) -> None:
        self.on_fix = on_fix
        self.on_error = on_error
        self.active = True
        self.watch_handle: Any = None
        self.first_fix_task: asyncio.Task | None = None


class PositionSource:
    """Turns raw sensor callbacks into sequence-stamped positions on the loop.

    Permission is requested once per source. A denial is reported exactly
    once and no fix is delivered afterwards. The one-shot fix is read before
    the watch is opened, never alongside it. ``stop`` is final for its
    subscription: callbacks queued by a sensor thread before the stop are
    dropped on arrival.
    """

    def __init__(self, sensor: Sensor, options: Optional[WatchOptions] = None) -> None:
        self._sensor = sensor
        self._options = options or WatchOptions()
        self._permission: Optional[bool] = None
        self._denial_reported = False
        self._seq = itertools.count(1)

    @property
    def permission(self) -> Optional[bool]:
        return self._permission

    async def request_permission(self) -> bool:
        if self._permission is None:
            self._permission = bool(await self._sensor.request_permission())
            logger.info("Location permission %s", "granted" if self._permission else "denied")
        return self._permission

    async def start(self, on_fix: Callable[[Position], None], on_error: Callable[[ErrorInfo], None]) -> Subscription:
        sub = Subscription(on_fix, on_error)
        if not await self.request_permission():
            sub.active = False
            if not self._denial_reported:
                self._denial_reported = True
                on_error(PermissionDenied("location permission denied").info("position_source"))
            return sub

        sub.first_fix_task = asyncio.create_task(self._first_fix_then_watch(sub), name="gps-first-fix")
        return sub

    async def stop(self, sub: Subscription) -> None:
        if not sub.active:
            return
        sub.active = False
        if sub.first_fix_task is not None:
            sub.first_fix_task.cancel()
            try:
                await sub.first_fix_task
            except asyncio.CancelledError:
                pass
        if sub.watch_handle is not None:
            result = self._sensor.unwatch(sub.watch_handle)
            if result is not None:
                await result
            sub.watch_handle = None
        logger.info("Position subscription stopped")

    async def _first_fix_then_watch(self, sub: Subscription) -> None:
        # One reader at a time: the watch opens the device only after the
        # one-shot read has released it
        try:
            fix = await self._sensor.get_current_fix()
        except NavigationError as exc:
            self._fail(sub, exc)
            fix = None
        if fix is not None:
            self._deliver(sub, *fix)
        if not sub.active:
            return
        sub.watch_handle = self._sensor.watch(
            self._options,
            lambda coordinate, accuracy=None: self._deliver(sub, coordinate, accuracy),
            lambda exc: self._fail(sub, exc),
        )

    def _deliver(self, sub: Subscription, coordinate: Coordinate, accuracy: Optional[float]) -> None:
        if not sub.active:
            return
        sub.on_fix(Position(coordinate=coordinate, seq=next(self._seq), accuracy_m=accuracy))

    def _fail(self, sub: Subscription, exc: Exception) -> None:
        if not sub.active:
            return
        if not isinstance(exc, NavigationError):
            exc = SensorError(str(exc))
        sub.on_error(exc.info("position_source"))
