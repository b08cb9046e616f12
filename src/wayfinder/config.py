from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv


@dataclass
class AppConfig:
    log_dir: str
    geocoder_url: str
    router_url: str
    route_profile: str
    http_timeout_s: float
    http_user_agent: str
    suggestion_limit: int
    search_debounce_s: float
    gps_serial_port: str
    gps_baud: int
    gps_min_distance_m: float
    gps_max_interval_s: float
    web_host: str
    web_port: int
    default_dest_lat: Optional[float] = None
    default_dest_lon: Optional[float] = None
    default_dest_label: Optional[str] = None


def _optional_float(name: str) -> Optional[float]:
    raw = os.getenv(name, "").strip()
    return float(raw) if raw else None


def load_config() -> AppConfig:
    load_dotenv(os.getenv("ENV_FILE", "/opt/wayfinder/.env"), override=False)

    log_dir = os.getenv("WAYFINDER_LOG_DIR", "/var/log/wayfinder")
    geocoder_url = os.getenv("GEOCODER_URL", "https://nominatim.openstreetmap.org")
    router_url = os.getenv("ROUTER_URL", "https://router.project-osrm.org")
    route_profile = os.getenv("ROUTE_PROFILE", "driving")
    http_timeout_s = float(os.getenv("HTTP_TIMEOUT", "12.0"))
    http_user_agent = os.getenv("HTTP_USER_AGENT", "wayfinder/0.1")
    suggestion_limit = int(os.getenv("SUGGESTION_LIMIT", "5"))
    search_debounce_s = float(os.getenv("SEARCH_DEBOUNCE", "0.3"))
    gps_serial_port = os.getenv("GPS_SERIAL_PORT", "/dev/ttyS0")
    gps_baud = int(os.getenv("GPS_BAUD", "9600"))
    gps_min_distance_m = float(os.getenv("GPS_MIN_DISTANCE_M", "50"))
    gps_max_interval_s = float(os.getenv("GPS_MAX_INTERVAL_S", "10"))
    web_host = os.getenv("WEB_HOST", "0.0.0.0")
    web_port = int(os.getenv("WEB_PORT", "8080"))

    return AppConfig(
        log_dir=log_dir,
        geocoder_url=geocoder_url,
        router_url=router_url,
        route_profile=route_profile,
        http_timeout_s=http_timeout_s,
        http_user_agent=http_user_agent,
        suggestion_limit=suggestion_limit,
        search_debounce_s=search_debounce_s,
        gps_serial_port=gps_serial_port,
        gps_baud=gps_baud,
        gps_min_distance_m=gps_min_distance_m,
        gps_max_interval_s=gps_max_interval_s,
        web_host=web_host,
        web_port=web_port,
        default_dest_lat=_optional_float("DEFAULT_DEST_LAT"),
        default_dest_lon=_optional_float("DEFAULT_DEST_LON"),
        default_dest_label=os.getenv("DEFAULT_DEST_LABEL") or None,
    )
