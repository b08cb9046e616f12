from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .errors import ErrorInfo

EARTH_RADIUS_M = 6_371_000.0


@dataclass(frozen=True)
class Coordinate:
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")

    def distance_to(self, other: "Coordinate") -> float:
        """Great-circle (haversine) distance in meters."""
        lat1, lat2 = math.radians(self.latitude), math.radians(other.latitude)
        dlat = lat2 - lat1
        dlon = math.radians(other.longitude - self.longitude)
        a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
        return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


@dataclass(frozen=True)
class Position:
    coordinate: Coordinate
    # Arrival order, assigned by the position source; never wall-clock time
    seq: int
    accuracy_m: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {**self.coordinate.to_dict(), "seq": self.seq, "accuracy_m": self.accuracy_m}


@dataclass(frozen=True)
class Destination:
    coordinate: Coordinate
    label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {**self.coordinate.to_dict(), "label": self.label}


@dataclass(frozen=True)
class Suggestion:
    id: str
    label: str
    coordinate: Coordinate

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "label": self.label, **self.coordinate.to_dict()}


RouteGeometry = Tuple[Coordinate, ...]
SuggestionList = Tuple[Suggestion, ...]


class SessionState(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    PERMISSION_PENDING = "permission_pending"
    DENIED = "denied"
    TRACKING = "tracking"


@dataclass(frozen=True)
class NavigationSnapshot:
    session: SessionState = SessionState.UNINITIALIZED
    position: Optional[Position] = None
    destination: Optional[Destination] = None
    address: Optional[str] = None
    route: RouteGeometry = ()
    suggestions: SuggestionList = ()
    query: str = ""
    pending_route_request_id: int = 0
    pending_search_request_id: int = 0
    last_error: Optional[ErrorInfo] = None
    # Newest fix whose reverse geocode has been answered, success or not
    address_seq: int = field(default=-1, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session": self.session.value,
            "position": self.position.to_dict() if self.position else None,
            "destination": self.destination.to_dict() if self.destination else None,
            "address": self.address,
            "route": [c.to_dict() for c in self.route],
            "suggestions": [s.to_dict() for s in self.suggestions],
            "query": self.query,
            "pending_route_request_id": self.pending_route_request_id,
            "pending_search_request_id": self.pending_search_request_id,
            "last_error": self.last_error.to_dict() if self.last_error else None,
        }
