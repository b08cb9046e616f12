from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from ...errors import NetworkError, NoRouteFound
from ...models import Coordinate, RouteGeometry

logger = logging.getLogger(__name__)


def format_coordinates(*coordinates: Coordinate) -> str:
    """OSRM path segment: 'lon,lat;lon,lat'."""
    return ";".join(f"{c.longitude},{c.latitude}" for c in coordinates)


def parse_geometry(data: Any) -> RouteGeometry:
    """First route's GeoJSON line, swapped from [lon, lat] to Coordinate."""
    routes = data.get("routes") if isinstance(data, dict) else None
    if not routes:
        raise NoRouteFound(data.get("message", "no route returned") if isinstance(data, dict) else "no route returned")
    try:
        points = routes[0]["geometry"]["coordinates"]
        return tuple(Coordinate(float(lat), float(lon)) for lon, lat in points)
    except (KeyError, TypeError, ValueError) as exc:
        raise NetworkError(f"malformed route geometry: {exc}") from exc


class RouteClient:
    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        profile: str = "driving",
        timeout_s: float = 12.0,
        user_agent: Optional[str] = None,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._profile = profile
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._headers = {"User-Agent": user_agent} if user_agent else {}

    async def compute_route(self, origin: Coordinate, destination: Coordinate) -> RouteGeometry:
        url = f"{self._base_url}/route/v1/{self._profile}/{format_coordinates(origin, destination)}"
        params = {"overview": "full", "geometries": "geojson"}
        try:
            async with self._session.get(url, params=params, headers=self._headers, timeout=self._timeout) as resp:
                if resp.status >= 500:
                    raise NetworkError(f"router HTTP {resp.status}")
                try:
                    data = await resp.json(content_type=None)
                except ValueError as exc:
                    raise NetworkError(f"router HTTP {resp.status}: undecodable body") from exc
        except asyncio.TimeoutError as exc:
            raise NetworkError("router request timed out") from exc
        except aiohttp.ClientError as exc:
            raise NetworkError(f"router request failed: {exc}") from exc

        # OSRM answers 400 {"code": "NoRoute"} when the points cannot be joined
        if isinstance(data, dict) and data.get("code") not in (None, "Ok") and data.get("code") != "NoRoute":
            raise NetworkError(f"router error {data.get('code')}: {data.get('message', '')}".strip())
        return parse_geometry(data)
