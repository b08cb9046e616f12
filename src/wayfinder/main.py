from __future__ import annotations

import asyncio
import logging
import signal

import aiohttp

from wayfinder.config import load_config
from wayfinder.logging_setup import setup_logging
from wayfinder.event_bus import EventBus
from wayfinder.models import Coordinate

from wayfinder.modules.sensors.gps import NmeaSensor, WatchOptions
from wayfinder.modules.location.position_source import PositionSource
from wayfinder.modules.geocoding.geocoder import GeocodeClient
from wayfinder.modules.routing.router import RouteClient
from wayfinder.modules.navigation.nav import NavigationState
from wayfinder.modules.web.server import WebServer


async def main_async() -> None:
    cfg = load_config()
    setup_logging(cfg.log_dir)
    logger = logging.getLogger("wayfinder")
    logger.info("Wayfinder starting up")

    events = EventBus()
    session = aiohttp.ClientSession()

    geocoder = GeocodeClient(
        session,
        cfg.geocoder_url,
        timeout_s=cfg.http_timeout_s,
        suggestion_limit=cfg.suggestion_limit,
        user_agent=cfg.http_user_agent,
    )
    router = RouteClient(
        session,
        cfg.router_url,
        profile=cfg.route_profile,
        timeout_s=cfg.http_timeout_s,
        user_agent=cfg.http_user_agent,
    )

    sensor = NmeaSensor(cfg.gps_serial_port, cfg.gps_baud)
    source = PositionSource(
        sensor,
        WatchOptions(
            min_interval_ms=int(cfg.gps_max_interval_s * 1000),
            min_distance_m=cfg.gps_min_distance_m,
        ),
    )

    nav = NavigationState(geocoder, router, position_source=source, events=events, search_debounce_s=cfg.search_debounce_s)
    if cfg.default_dest_lat is not None and cfg.default_dest_lon is not None:
        nav.set_destination(Coordinate(cfg.default_dest_lat, cfg.default_dest_lon), cfg.default_dest_label)
    await nav.start()

    webserver = WebServer(events, nav, host=cfg.web_host, port=cfg.web_port)
    webserver.start()

    stop_event = asyncio.Event()

    def _signal_handler() -> None:
        logger.info("Shutdown signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _signal_handler)
        except NotImplementedError:
            # Windows fallback
            pass

    await stop_event.wait()

    # Graceful shutdown
    await webserver.stop()
    await nav.close()
    await nav.wait_idle()
    await session.close()
    logger.info("Wayfinder shut down")


if __name__ == "__main__":
    try:
        asyncio.run(main_async())
    except KeyboardInterrupt:
        pass
