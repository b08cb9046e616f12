from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, Optional


class ErrorKind(str, enum.Enum):
    PERMISSION_DENIED = "permission_denied"
    NETWORK = "network_error"
    NOT_FOUND = "not_found"
    NO_ROUTE = "no_route_found"
    SENSOR = "sensor_error"


@dataclass(frozen=True)
class ErrorInfo:
    """The most recent failure, as surfaced to the presentation layer."""

    kind: ErrorKind
    message: str
    operation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind.value, "message": self.message, "operation": self.operation}


class NavigationError(Exception):
    kind: ErrorKind = ErrorKind.NETWORK

    def info(self, operation: Optional[str] = None) -> ErrorInfo:
        return ErrorInfo(kind=self.kind, message=str(self) or self.kind.value, operation=operation)


class PermissionDenied(NavigationError):
    kind = ErrorKind.PERMISSION_DENIED


class NetworkError(NavigationError):
    kind = ErrorKind.NETWORK


class NotFound(NavigationError):
    kind = ErrorKind.NOT_FOUND


class NoRouteFound(NavigationError):
    kind = ErrorKind.NO_ROUTE


class SensorError(NavigationError):
    kind = ErrorKind.SENSOR
