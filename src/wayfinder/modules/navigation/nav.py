from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Coroutine, Optional, Protocol, Set

from ...errors import ErrorInfo, NavigationError, NotFound, PermissionDenied
from ...event_bus import EventBus
from ...models import (
    Coordinate,
    Destination,
    NavigationSnapshot,
    Position,
    RouteGeometry,
    SessionState,
    Suggestion,
    SuggestionList,
)
from ..location.position_source import PositionSource, Subscription

logger = logging.getLogger(__name__)

MIN_QUERY_LENGTH = 3

REVERSE_GEOCODE = "reverse_geocode"
SEARCH = "search"
ROUTE = "route"


class Geocoder(Protocol):
    async def reverse_geocode(self, coordinate: Coordinate) -> str: ...

    async def search_by_text(self, query: str) -> SuggestionList: ...


class Router(Protocol):
    async def compute_route(self, origin: Coordinate, destination: Coordinate) -> RouteGeometry: ...


class NavigationState:
    """Single owner of position, destination, address, route and suggestions.

    All mutation happens on the event loop. Network calls run as independent
    tasks; each carries a tag captured when it was issued, and its result is
    applied only if that tag is still current when it completes. Nothing in
    flight is ever aborted, superseded answers are dropped instead.

    Address answers are tagged with the fix's sequence number and applied
    only when newer than the last answered fix, failures included. Search
    and route answers must match ``pending_search_request_id`` /
    ``pending_route_request_id``.
    """

    def __init__(
        self,
        geocoder: Geocoder,
        router: Router,
        position_source: Optional[PositionSource] = None,
        events: Optional[EventBus] = None,
        search_debounce_s: float = 0.0,
    ) -> None:
        self._geocoder = geocoder
        self._router = router
        self._source = position_source
        self._events = events
        self._debounce_s = max(0.0, search_debounce_s)
        self._state = NavigationSnapshot()
        self._subscription: Optional[Subscription] = None
        self._debounce: Optional[asyncio.TimerHandle] = None
        self._tasks: Set[asyncio.Task] = set()
        self._closed = False

    # --- read side ---

    @property
    def snapshot(self) -> NavigationSnapshot:
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    def find_suggestion(self, suggestion_id: str) -> Optional[Suggestion]:
        for suggestion in self._state.suggestions:
            if suggestion.id == suggestion_id:
                return suggestion
        return None

    # --- lifecycle ---

    async def start(self) -> None:
        if self._source is None or self._state.session is not SessionState.UNINITIALIZED:
            return
        self._commit(session=SessionState.PERMISSION_PENDING)
        if not await self._source.request_permission():
            self.on_permission_denied()
            return
        self.on_permission_granted()
        if self._closed:
            return
        subscription = await self._source.start(self.on_position_fix, self._on_source_error)
        if self._closed:
            # Torn down while the sensor was starting
            await self._source.stop(subscription)
            return
        self._subscription = subscription

    async def close(self) -> None:
        """Tear down: no further writes, sensor stopped, pending debounce dropped."""
        if self._closed:
            return
        self._closed = True
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        if self._source is not None and self._subscription is not None:
            await self._source.stop(self._subscription)
            self._subscription = None
        logger.info("Navigation session closed (%d request(s) still in flight)", len(self._tasks))

    async def wait_idle(self) -> None:
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def on_permission_granted(self) -> None:
        if self._closed or self._state.session is SessionState.DENIED:
            return
        self._commit(session=SessionState.TRACKING)
        logger.info("Tracking started")

    def on_permission_denied(self) -> None:
        if self._closed:
            return
        error = PermissionDenied("location permission denied").info("position_source")
        # Without a position there is no route; retire any route call in flight
        self._commit(
            session=SessionState.DENIED,
            position=None,
            route=(),
            pending_route_request_id=self._state.pending_route_request_id + 1,
            last_error=error,
        )
        logger.warning("Location permission denied; position tracking disabled for this session")

    # --- position ---

    def on_position_fix(self, position: Position) -> None:
        if self._closed or self._state.session is SessionState.DENIED:
            return
        self._commit(position=position)
        if self._events is not None:
            self._events.publish_nowait("sensor.gps", position.to_dict())
        self._spawn(self._reverse_geocode(position), "reverse-geocode")
        if self._state.destination is not None:
            self._recompute_route()

    async def _reverse_geocode(self, position: Position) -> None:
        try:
            address: Optional[str] = await self._geocoder.reverse_geocode(position.coordinate)
            error: Optional[ErrorInfo] = None
        except NotFound as exc:
            address, error = None, exc.info(REVERSE_GEOCODE)
        except NavigationError as exc:
            if not self._closed and position.seq > self._state.address_seq:
                logger.warning("Reverse geocode failed for fix #%d: %s", position.seq, exc)
                # Answered, even if unsuccessfully: older answers are stale from here on
                self._commit(address_seq=position.seq, last_error=exc.info(REVERSE_GEOCODE))
            return
        if self._closed:
            return
        if position.seq <= self._state.address_seq:
            logger.debug("Dropping stale address for fix #%d (newest answered #%d)", position.seq, self._state.address_seq)
            return
        self._commit(address=address, address_seq=position.seq, last_error=self._settle_error(REVERSE_GEOCODE, error))

    # --- search ---

    def on_destination_text_changed(self, text: str) -> None:
        if self._closed:
            return
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        if len(text) < MIN_QUERY_LENGTH:
            # Bumping the tag also retires any search still in flight
            self._commit(
                query=text,
                suggestions=(),
                pending_search_request_id=self._state.pending_search_request_id + 1,
            )
            return
        tag = self._state.pending_search_request_id + 1
        self._commit(query=text, pending_search_request_id=tag)
        if self._debounce_s > 0:
            loop = asyncio.get_running_loop()
            self._debounce = loop.call_later(self._debounce_s, self._issue_search, tag, text)
        else:
            self._issue_search(tag, text)

    def _issue_search(self, tag: int, text: str) -> None:
        self._debounce = None
        if self._closed or tag != self._state.pending_search_request_id:
            return
        self._spawn(self._search(tag, text), "search")

    async def _search(self, tag: int, text: str) -> None:
        try:
            suggestions = await self._geocoder.search_by_text(text)
        except NavigationError as exc:
            if not self._closed and tag == self._state.pending_search_request_id:
                logger.warning("Search for %r failed: %s", text, exc)
                self._commit(last_error=exc.info(SEARCH))
            return
        if self._closed:
            return
        if tag != self._state.pending_search_request_id:
            logger.debug("Dropping stale suggestions for %r (tag %d, current %d)", text, tag, self._state.pending_search_request_id)
            return
        self._commit(suggestions=tuple(suggestions), last_error=self._settle_error(SEARCH))

    # --- destination & route ---

    def on_suggestion_selected(self, suggestion: Suggestion) -> None:
        if self._closed:
            return
        if self._debounce is not None:
            self._debounce.cancel()
            self._debounce = None
        self._replace_destination(
            Destination(coordinate=suggestion.coordinate, label=suggestion.label),
            suggestions=(),
            pending_search_request_id=self._state.pending_search_request_id + 1,
        )

    def set_destination(self, coordinate: Coordinate, label: Optional[str] = None) -> None:
        if self._closed:
            return
        self._replace_destination(Destination(coordinate=coordinate, label=label))

    def _replace_destination(self, destination: Destination, **changes: Any) -> None:
        # The old route belongs to the old pair, so it goes with it
        self._commit(destination=destination, route=(), **changes)
        logger.info("Destination set to %s", destination.label or destination.coordinate)
        self._recompute_route()

    def _recompute_route(self) -> None:
        tag = self._state.pending_route_request_id + 1
        self._commit(pending_route_request_id=tag)
        origin, destination = self._state.position, self._state.destination
        if origin is None or destination is None:
            return
        self._spawn(self._route(tag, origin.coordinate, destination.coordinate), "route")

    async def _route(self, tag: int, origin: Coordinate, destination: Coordinate) -> None:
        try:
            route = await self._router.compute_route(origin, destination)
        except NavigationError as exc:
            if not self._closed and tag == self._state.pending_route_request_id:
                logger.warning("Route refresh failed, keeping previous route: %s", exc)
                self._commit(last_error=exc.info(ROUTE))
            return
        if self._closed:
            return
        if tag != self._state.pending_route_request_id:
            logger.debug("Dropping stale route (tag %d, current %d)", tag, self._state.pending_route_request_id)
            return
        self._commit(route=tuple(route), last_error=self._settle_error(ROUTE))

    # --- plumbing ---

    def _on_source_error(self, error: ErrorInfo) -> None:
        if error.kind is PermissionDenied.kind:
            self.on_permission_denied()
        elif not self._closed:
            logger.warning("Position source error: %s", error.message)
            self._commit(last_error=error)

    def _settle_error(self, operation: str, error: Optional[ErrorInfo] = None) -> Optional[ErrorInfo]:
        """Error to keep after ``operation`` completed: its own failures are replaced."""
        current = self._state.last_error
        if error is not None:
            return error
        if current is not None and current.operation == operation:
            return None
        return current

    def _commit(self, **changes: Any) -> None:
        self._state = dataclasses.replace(self._state, **changes)
        if self._events is not None:
            self._events.publish_nowait("nav.state", self._state.to_dict())

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Navigation task %s crashed", task.get_name(), exc_info=task.exception())
