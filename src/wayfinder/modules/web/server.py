from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

from aiohttp import web

from ...event_bus import EventBus
from ..navigation.nav import NavigationState

logger = logging.getLogger(__name__)


class WebServer:
    """JSON/SSE boundary for the presentation layer.

    Reads are snapshots of the navigation state; the only writes are the
    query text and a suggestion pick.
    """

    def __init__(self, events: EventBus, nav: NavigationState, host: str = "0.0.0.0", port: int = 8080) -> None:
        self._events = events
        self._nav = nav
        self._host = host
        self._port = port
        self._task: asyncio.Task | None = None
        self._runner: Optional[web.AppRunner] = None
        self._site: Optional[web.TCPSite] = None

    def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._run(), name="web-server")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def build_app(self) -> web.Application:
        app = web.Application()
        app.add_routes([
            web.get('/api/state', self._handle_state),
            web.post('/api/destination/text', self._handle_text),
            web.post('/api/destination/select', self._handle_select),
            web.get('/api/sse', self._handle_sse),
        ])
        return app

    async def _run(self) -> None:
        self._runner = web.AppRunner(self.build_app())
        await self._runner.setup()
        self._site = web.TCPSite(self._runner, self._host, self._port)
        await self._site.start()
        logger.info("Web server listening on http://%s:%d", self._host, self._port)

        try:
            while True:
                await asyncio.sleep(60)
        finally:
            await self._runner.cleanup()
            self._runner = None

    @staticmethod
    async def _read_body(request: web.Request) -> Dict[str, Any]:
        try:
            body = await request.json()
        except json.JSONDecodeError:
            raise web.HTTPBadRequest(text="body must be JSON")
        if not isinstance(body, dict):
            raise web.HTTPBadRequest(text="body must be a JSON object")
        return body

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self._nav.snapshot.to_dict())

    async def _handle_text(self, request: web.Request) -> web.Response:
        body = await self._read_body(request)
        text = body.get("text")
        if not isinstance(text, str):
            raise web.HTTPBadRequest(text="'text' must be a string")
        self._nav.on_destination_text_changed(text)
        return web.json_response(self._nav.snapshot.to_dict())

    async def _handle_select(self, request: web.Request) -> web.Response:
        body = await self._read_body(request)
        suggestion = self._nav.find_suggestion(str(body.get("id", "")))
        if suggestion is None:
            raise web.HTTPNotFound(text="unknown suggestion")
        self._nav.on_suggestion_selected(suggestion)
        return web.json_response(self._nav.snapshot.to_dict())

    async def _handle_sse(self, request: web.Request) -> web.StreamResponse:
        resp = web.StreamResponse(status=200, reason='OK', headers={'Content-Type': 'text/event-stream', 'Cache-Control': 'no-cache'})
        await resp.prepare(request)
        # Current state first so a client never waits for the next change
        await resp.write(f"data: {json.dumps(self._nav.snapshot.to_dict())}\n\n".encode())
        try:
            async for event in self._events.subscribe("nav.state"):
                await resp.write(f"data: {json.dumps(event)}\n\n".encode())
        except ConnectionResetError:
            logger.debug("SSE client went away")
        return resp
