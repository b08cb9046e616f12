from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

import aiohttp

from ...errors import NetworkError, NotFound
from ...models import Coordinate, Suggestion, SuggestionList

logger = logging.getLogger(__name__)


class GeocodeClient:
    """Nominatim-compatible reverse geocoding and free-text search.

    Holds no per-request state: overlapping calls are independent and it is
    up to the caller to drop answers it no longer wants.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        base_url: str,
        timeout_s: float = 12.0,
        suggestion_limit: int = 5,
        user_agent: Optional[str] = None,
    ) -> None:
        self._session = session
        self._base_url = base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=timeout_s)
        self._limit = suggestion_limit
        self._headers = {"User-Agent": user_agent} if user_agent else {}

    async def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        url = f"{self._base_url}{path}"
        try:
            async with self._session.get(url, params=params, headers=self._headers, timeout=self._timeout) as resp:
                if resp.status >= 400:
                    raise NetworkError(f"geocoder HTTP {resp.status}")
                return await resp.json(content_type=None)
        except asyncio.TimeoutError as exc:
            raise NetworkError("geocoder request timed out") from exc
        except (aiohttp.ClientError, ValueError) as exc:
            raise NetworkError(f"geocoder request failed: {exc}") from exc

    async def reverse_geocode(self, coordinate: Coordinate) -> str:
        data = await self._get_json(
            "/reverse",
            {"lat": coordinate.latitude, "lon": coordinate.longitude, "format": "jsonv2"},
        )
        label = data.get("display_name") if isinstance(data, dict) else None
        if not label:
            raise NotFound(f"no address for {coordinate.latitude:.5f},{coordinate.longitude:.5f}")
        return str(label)

    async def search_by_text(self, query: str) -> SuggestionList:
        data = await self._get_json("/search", {"q": query, "limit": self._limit, "format": "jsonv2"})
        if not isinstance(data, list):
            raise NetworkError("geocoder returned an unexpected search payload")
        suggestions: List[Suggestion] = []
        for item in data:
            try:
                suggestions.append(
                    Suggestion(
                        id=str(item["place_id"]),
                        label=str(item["display_name"]),
                        coordinate=Coordinate(float(item["lat"]), float(item["lon"])),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                logger.debug("Skipping malformed search result %r: %s", item, exc)
        return tuple(suggestions)
