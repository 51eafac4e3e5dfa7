#!/usr/bin/env python3
# ShowStore Controller
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
ShowStore Controller service (showstore-controller)

Runs one Player Control Session against an ELC ShowStore and exposes it to
the browser UI.  The UI never talks to the device directly: it posts user
actions here and renders whatever state snapshot is pushed back over the
WebSocket.

Port: 8780

  GET  /ws             — WebSocket, pushes {"type": "state"|"confirm", "data": ...}
  GET  /state          — current snapshot
  POST /control        — {"player": 1, "verb": "play", "recorder": false}
  POST /show           — {"player": 1, "show": "03", "recorder": false}
  POST /mode           — {"mode": "1"}
  POST /mode/confirm   — accept a pending destructive mode change
  POST /mode/cancel    — reject it (selector rolls back)
"""

import asyncio
import json
import logging
import os
import sys

import aiohttp
from aiohttp import web

# Ensure services/ is on the path for sibling imports
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))
from showstore.config import cfg
from showstore.controls import PLAYER_VERBS, RECORDER_VERBS
from showstore.device import DEFAULT_TIMEOUT, ShowStoreDevice
from showstore.poller import POLL_INTERVAL
from showstore.preferences import PreferenceStore
from showstore.protocol import MODE_NAMES, MODES
from showstore.session import SETTLE_DELAY, Session
from showstore.watchdog import watchdog_loop

logging.basicConfig(
    level=logging.INFO,
    format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)
logger = logging.getLogger("showstore-controller")

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
CONTROLLER_PORT = 8780
DEFAULT_DEVICE_URL = "http://showstore.local"
DEFAULT_PREFERENCES_PATH = "/var/lib/showstore/preferences.json"


# ---------------------------------------------------------------------------
# Controller
# ---------------------------------------------------------------------------
class ShowStoreController:
    """Owns the device client and the session, and fans state out to UI clients."""

    def __init__(self, device=None, preferences=None, session=None):
        self.device = device or ShowStoreDevice(
            cfg("showstore", "url", default=DEFAULT_DEVICE_URL),
            timeout=float(cfg("showstore", "timeout", default=DEFAULT_TIMEOUT)),
        )
        self.preferences = preferences or PreferenceStore(
            cfg("preferences", "path", default=DEFAULT_PREFERENCES_PATH))
        self.session = session or Session(
            self.device,
            self.preferences,
            poll_interval=float(cfg("polling", "interval", default=POLL_INTERVAL)),
            settle_delay=float(cfg("polling", "settle_delay", default=SETTLE_DELAY)),
        )
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._watchdog_task: asyncio.Task | None = None
        self._broadcasts: set[asyncio.Task] = set()

    async def start(self, watchdog: bool = True):
        if hasattr(self.device, "start"):
            await self.device.start()
        self.session.subscribe(self._on_session_change)
        await self.session.start()
        if watchdog:
            self._watchdog_task = asyncio.create_task(
                watchdog_loop(status=self.status_line))
        logger.info("Controller started (mode: %s)", self.session.mode)

    async def stop(self):
        if self._watchdog_task:
            self._watchdog_task.cancel()
            try:
                await self._watchdog_task
            except asyncio.CancelledError:
                pass
            self._watchdog_task = None
        self.session.unsubscribe(self._on_session_change)
        await self.session.stop()
        for task in list(self._broadcasts):
            task.cancel()
        if self._broadcasts:
            await asyncio.gather(*self._broadcasts, return_exceptions=True)
        self._broadcasts.clear()
        if hasattr(self.device, "close"):
            await self.device.close()
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
        logger.info("Controller stopped")

    def status_line(self) -> str:
        mode = MODE_NAMES.get(self.session.mode, "no mode")
        polling = "polling" if self.session.polling_active else "paused"
        return f"{mode}, {polling}, {len(self._ws_clients)} clients"

    # ── WebSocket fan-out ──

    def _on_session_change(self, session):
        if self._ws_clients:
            task = asyncio.ensure_future(self.broadcast("state", session.snapshot()))
            self._broadcasts.add(task)
            task.add_done_callback(self._broadcasts.discard)

    async def broadcast(self, event_type: str, data: dict):
        """Push one message to every connected UI client."""
        if not self._ws_clients:
            return
        message = json.dumps({"type": event_type, "data": data})
        disconnected = set()
        for ws in list(self._ws_clients):
            try:
                await ws.send_str(message)
            except (ConnectionResetError, RuntimeError, aiohttp.ClientError):
                disconnected.add(ws)
        self._ws_clients.difference_update(disconnected)

    async def handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self._ws_clients.add(ws)
        logger.info("WebSocket client connected (%d total)", len(self._ws_clients))
        try:
            await ws.send_json({"type": "state", "data": self.session.snapshot()})
            async for msg in ws:
                pass  # push-only; actions arrive over HTTP
        finally:
            self._ws_clients.discard(ws)
            logger.info("WebSocket client disconnected (%d remaining)",
                        len(self._ws_clients))
        return ws


CONTROLLER_KEY = web.AppKey("controller", ShowStoreController)


# ---------------------------------------------------------------------------
# HTTP handlers
# ---------------------------------------------------------------------------
def _controller(request: web.Request) -> ShowStoreController:
    return request.app[CONTROLLER_KEY]


async def _json_body(request: web.Request):
    try:
        data = await request.json()
    except (json.JSONDecodeError, Exception):
        return None
    return data if isinstance(data, dict) else None


def _bad_request(message: str) -> web.Response:
    return web.json_response({"error": message}, status=400)


async def handle_state(request: web.Request) -> web.Response:
    """GET /state — current session snapshot."""
    return web.json_response(_controller(request).session.snapshot())


async def handle_control(request: web.Request) -> web.Response:
    """POST /control — a button was clicked."""
    data = await _json_body(request)
    if data is None:
        return _bad_request("invalid json")
    recorder = bool(data.get("recorder", False))
    verb = data.get("verb")
    allowed = RECORDER_VERBS if recorder else PLAYER_VERBS
    if verb not in allowed:
        return _bad_request(f"invalid verb {verb!r}")
    session = _controller(request).session
    if session.panel(data.get("player"), recorder) is None:
        return _bad_request("invalid player")

    sent = await session.click(data.get("player"), verb, recorder=recorder)
    return web.json_response({"status": "ok" if sent else "ignored"})


async def handle_show(request: web.Request) -> web.Response:
    """POST /show — a show was picked in a player's selector."""
    data = await _json_body(request)
    if data is None:
        return _bad_request("invalid json")
    show = data.get("show")
    if show is None or not str(show).isdigit() or len(str(show)) > 2:
        return _bad_request("invalid show")
    recorder = bool(data.get("recorder", False))
    session = _controller(request).session
    if session.panel(data.get("player"), recorder) is None:
        return _bad_request("invalid player")

    sent = await session.select_show(data.get("player"), str(show), recorder=recorder)
    return web.json_response({"status": "ok" if sent else "ignored"})


async def handle_mode(request: web.Request) -> web.Response:
    """POST /mode — the mode selector changed."""
    data = await _json_body(request)
    if data is None:
        return _bad_request("invalid json")
    mode = str(data.get("mode", ""))
    if mode not in MODES:
        return _bad_request(f"invalid mode {mode!r}")

    controller = _controller(request)
    decision = await controller.session.change_mode(mode)
    if decision.requires_confirmation:
        await controller.broadcast("confirm", decision.prompt)
        return web.json_response({"status": "confirm", "confirm": decision.prompt})
    return web.json_response({"status": "ok", "mode": controller.session.mode})


async def handle_mode_confirm(request: web.Request) -> web.Response:
    """POST /mode/confirm — user accepted the pending mode change."""
    session = _controller(request).session
    if not await session.confirm_mode_change():
        return web.json_response({"status": "ignored", "reason": "nothing pending"})
    return web.json_response({"status": "ok", "mode": session.mode})


async def handle_mode_cancel(request: web.Request) -> web.Response:
    """POST /mode/cancel — user declined; the selector reverts."""
    session = _controller(request).session
    if not session.cancel_mode_change():
        return web.json_response({"status": "ignored", "reason": "nothing pending"})
    return web.json_response({"status": "ok", "mode": session.mode})


async def handle_ws(request: web.Request) -> web.WebSocketResponse:
    return await _controller(request).handle_ws(request)


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------
@web.middleware
async def cors_middleware(request, handler):
    if request.method == "OPTIONS":
        resp = web.Response()
    else:
        resp = await handler(request)
    resp.headers["Access-Control-Allow-Origin"] = "*"
    resp.headers["Access-Control-Allow-Methods"] = "GET, POST, OPTIONS"
    resp.headers["Access-Control-Allow-Headers"] = "Content-Type"
    return resp


def create_app(controller: ShowStoreController | None = None,
               watchdog: bool = True) -> web.Application:
    app = web.Application(middlewares=[cors_middleware])
    app[CONTROLLER_KEY] = controller or ShowStoreController()

    async def on_startup(app: web.Application):
        await app[CONTROLLER_KEY].start(watchdog=watchdog)

    async def on_cleanup(app: web.Application):
        await app[CONTROLLER_KEY].stop()

    app.router.add_get("/ws", handle_ws)
    app.router.add_get("/state", handle_state)
    app.router.add_post("/control", handle_control)
    app.router.add_post("/show", handle_show)
    app.router.add_post("/mode", handle_mode)
    app.router.add_post("/mode/confirm", handle_mode_confirm)
    app.router.add_post("/mode/cancel", handle_mode_cancel)
    app.on_startup.append(on_startup)
    app.on_cleanup.append(on_cleanup)
    return app


if __name__ == "__main__":
    port = int(cfg("controller", "port", default=CONTROLLER_PORT))
    web.run_app(create_app(), host="0.0.0.0", port=port,
                print=lambda msg: logger.info(msg))
