"""REST API for the deskhand agent.

Endpoints:
  POST /chat        - Run an instruction to completion, get the run result
  POST /cancel      - Cancel the run in flight
  GET  /windows     - List capturable screens and windows
  POST /screenshot  - Capture a screen or window as base64 PNG
  GET  /settings    - Credential status and default vision mode
  POST /settings    - Update API key and/or default vision mode
  GET  /events      - Server-sent stream of tool progress notifications
  GET  /health      - Health check
"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
from collections.abc import AsyncIterator
from typing import Any

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from deskhand.api.runner import AgentRunner
from deskhand.config import Settings
from deskhand.errors import SurfaceError
from deskhand.events import TOOL_USED, Event, EventBus
from deskhand.process import CancelToken
from deskhand.surfaces import SurfaceProvider

logger = logging.getLogger(__name__)

# Per-subscriber buffer for /events; slow clients lose events, never the run
SSE_QUEUE_SIZE = 100


async def _json_body(request: Request) -> dict[str, Any] | None:
    """Parse a JSON object body. Empty body reads as {}; anything else invalid is None."""
    raw = await request.body()
    if not raw.strip():
        return {}
    try:
        body = json.loads(raw)
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


async def event_stream(bus: EventBus) -> AsyncIterator[str]:
    """Yield SSE frames for tool_used events until the consumer goes away."""
    queue: asyncio.Queue[Event] = asyncio.Queue(maxsize=SSE_QUEUE_SIZE)

    async def forward(event: Event) -> None:
        try:
            queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.debug("SSE subscriber queue full, dropping %s", event.type)

    bus.on(TOOL_USED, forward)
    try:
        while True:
            event = await queue.get()
            data = json.dumps(event.to_dict(), default=str)
            yield f"data: {data}\n\n"
    finally:
        bus.off(TOOL_USED, forward)


def create_app(
    runner: AgentRunner,
    surfaces: SurfaceProvider,
    bus: EventBus,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    active: dict[str, CancelToken] = {}

    async def chat(request: Request) -> JSONResponse:
        """POST /chat - Run one instruction."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not isinstance(message, str) or not message.strip():
            return JSONResponse(
                {"success": False, "error": "Missing required field: message"}, status_code=400
            )
        window_id = body.get("window_id")
        if window_id is not None and not isinstance(window_id, str):
            return JSONResponse({"success": False, "error": "window_id must be a string"}, status_code=400)
        if runner.busy:
            return JSONResponse(
                {"success": False, "error": "A run is already in progress"}, status_code=409
            )

        include_screenshot = body.get("include_screenshot")
        if include_screenshot is None:
            include_screenshot = settings.attach_screenshot

        token = CancelToken()
        active["run"] = token
        try:
            result = await runner.run(
                message,
                attach_screenshot=bool(include_screenshot),
                surface_id=window_id,
                cancel=token,
            )
        finally:
            if active.get("run") is token:
                del active["run"]
        return JSONResponse(result.to_dict())

    async def cancel(request: Request) -> JSONResponse:
        """POST /cancel - Cancel the run in flight, if any."""
        token = active.get("run")
        if token is None:
            return JSONResponse({"success": False, "error": "No run in progress"}, status_code=404)
        token.cancel()
        logger.info("Cancellation requested for active run")
        return JSONResponse({"success": True})

    async def windows(request: Request) -> JSONResponse:
        """GET /windows - Enumerate capture surfaces."""
        try:
            found = await asyncio.to_thread(surfaces.list_surfaces)
        except SurfaceError as e:
            logger.error("Error getting windows: %s", e)
            return JSONResponse({"success": False, "error": str(e)})
        return JSONResponse({"success": True, "windows": [s.to_dict() for s in found]})

    async def screenshot(request: Request) -> JSONResponse:
        """POST /screenshot - Capture one surface."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)
        window_id = body.get("window_id")
        if window_id is not None and not isinstance(window_id, str):
            return JSONResponse({"success": False, "error": "window_id must be a string"}, status_code=400)
        try:
            capture = await asyncio.to_thread(surfaces.capture, window_id)
        except SurfaceError as e:
            logger.error("Error taking screenshot: %s", e)
            return JSONResponse({"success": False, "error": str(e)})
        return JSONResponse({
            "success": True,
            "data": base64.b64encode(capture.data).decode("ascii"),
            "media_type": capture.media_type,
        })

    def _settings_view() -> dict[str, Any]:
        return {
            "api_key_configured": settings.has_credentials,
            "attach_screenshot": settings.attach_screenshot,
        }

    async def get_settings(request: Request) -> JSONResponse:
        """GET /settings"""
        return JSONResponse(_settings_view())

    async def save_settings(request: Request) -> JSONResponse:
        """POST /settings - Persist for this process; a new key rebuilds the client."""
        body = await _json_body(request)
        if body is None:
            return JSONResponse({"success": False, "error": "Invalid JSON body"}, status_code=400)

        api_key = body.get("api_key")
        if api_key is not None and not isinstance(api_key, str):
            return JSONResponse({"success": False, "error": "api_key must be a string"}, status_code=400)
        if "attach_screenshot" in body:
            settings.attach_screenshot = bool(body["attach_screenshot"])
        if api_key and api_key != settings.anthropic_api_key:
            await runner.reinitialize(api_key)
            logger.info("API key updated; model client reinitialized")
        return JSONResponse({"success": True, **_settings_view()})

    async def events(request: Request) -> StreamingResponse:
        """GET /events - SSE stream of tool_used notifications."""
        return StreamingResponse(
            event_stream(bus),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    async def health(request: Request) -> JSONResponse:
        """GET /health"""
        return JSONResponse({
            "status": "healthy",
            "client_initialized": runner.initialized,
            "busy": runner.busy,
        })

    routes = [
        Route("/chat", chat, methods=["POST"]),
        Route("/cancel", cancel, methods=["POST"]),
        Route("/windows", windows),
        Route("/screenshot", screenshot, methods=["POST"]),
        Route("/settings", get_settings, methods=["GET"]),
        Route("/settings", save_settings, methods=["POST"]),
        Route("/events", events),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
