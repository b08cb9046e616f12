from __future__ import annotations

import asyncio
from typing import Any, Callable, List, Optional, Tuple

from wayfinder.models import Coordinate, RouteGeometry, Suggestion, SuggestionList


async def settle(rounds: int = 10) -> None:
    """Let every ready task on the loop run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeGeocoder:
    """Geocoder whose answers are released by the test, in any order."""

    def __init__(self) -> None:
        self.reverse_calls: List[Tuple[Coordinate, asyncio.Future]] = []
        self.search_calls: List[Tuple[str, asyncio.Future]] = []

    async def reverse_geocode(self, coordinate: Coordinate) -> str:
        fut = asyncio.get_running_loop().create_future()
        self.reverse_calls.append((coordinate, fut))
        return await fut

    async def search_by_text(self, query: str) -> SuggestionList:
        fut = asyncio.get_running_loop().create_future()
        self.search_calls.append((query, fut))
        return await fut


class FakeRouter:
    def __init__(self) -> None:
        self.calls: List[Tuple[Coordinate, Coordinate, asyncio.Future]] = []

    async def compute_route(self, origin: Coordinate, destination: Coordinate) -> RouteGeometry:
        fut = asyncio.get_running_loop().create_future()
        self.calls.append((origin, destination, fut))
        return await fut


class InstantGeocoder:
    def __init__(self, address: str = "Somewhere", suggestions: SuggestionList = ()) -> None:
        self.address = address
        self.suggestions = suggestions
        self.queries: List[str] = []

    async def reverse_geocode(self, coordinate: Coordinate) -> str:
        return self.address

    async def search_by_text(self, query: str) -> SuggestionList:
        self.queries.append(query)
        return self.suggestions


class InstantRouter:
    async def compute_route(self, origin: Coordinate, destination: Coordinate) -> RouteGeometry:
        return (origin, destination)


class FakeSensor:
    def __init__(
        self,
        granted: bool = True,
        first_fix: Optional[Coordinate] = None,
        first_fix_gate: Optional[asyncio.Event] = None,
    ) -> None:
        self.granted = granted
        self.first_fix = first_fix
        self.first_fix_gate = first_fix_gate
        self.permission_requests = 0
        self.watch_count = 0
        self.watching = False
        self.options: Any = None
        self.on_fix: Optional[Callable[..., None]] = None
        self.on_error: Optional[Callable[[Exception], None]] = None

    async def request_permission(self) -> bool:
        self.permission_requests += 1
        return self.granted

    async def get_current_fix(self) -> Optional[Tuple[Coordinate, Optional[float]]]:
        if self.first_fix_gate is not None:
            await self.first_fix_gate.wait()
        if self.first_fix is None:
            return None
        return self.first_fix, 5.0

    def watch(self, options: Any, on_fix: Callable[..., None], on_error: Callable[[Exception], None]) -> str:
        self.watch_count += 1
        self.watching = True
        self.options = options
        self.on_fix = on_fix
        self.on_error = on_error
        return f"watch-{self.watch_count}"

    def unwatch(self, handle: Any) -> None:
        self.watching = False


def suggestion(id: str, label: str, lat: float, lon: float) -> Suggestion:
    return Suggestion(id=id, label=label, coordinate=Coordinate(lat, lon))
