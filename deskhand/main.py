"""deskhand entry point.

Initializes all components and starts the server:
  Settings -> EventBus -> Backend -> Executors -> Surfaces -> Dispatcher -> Runner -> App -> Uvicorn

Uses Starlette lifespan to manage component lifecycle on the same
event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from deskhand.api.builtin_tools import advertised_geometry, register_builtin_tools
from deskhand.api.runner import AgentRunner
from deskhand.api.tools import ToolDispatcher
from deskhand.automation import AutomationExecutor, create_backend
from deskhand.config import Settings
from deskhand.events import EventBus
from deskhand.shell import ShellExecutor, ShellPolicy
from deskhand.surfaces import SurfaceProvider

logger = logging.getLogger(__name__)


async def create_components(settings: Settings) -> dict:
    """Initialize all components in dependency order.

    Returns dict with all components for lifespan storage.
    """
    bus = EventBus()
    await bus.start()

    executor = AutomationExecutor(create_backend(settings))
    shell = ShellExecutor(ShellPolicy.from_settings(settings))
    surfaces = SurfaceProvider()

    dispatcher = ToolDispatcher(progress=bus)
    geometry = advertised_geometry(surfaces, settings)
    register_builtin_tools(dispatcher, executor, shell, surfaces, geometry)
    logger.info("Tools registered: %s (display %dx%d)", ", ".join(dispatcher.tool_names), *geometry)

    runner = AgentRunner(settings, dispatcher, surfaces)
    await runner.start()

    return {
        "bus": bus,
        "executor": executor,
        "shell": shell,
        "surfaces": surfaces,
        "dispatcher": dispatcher,
        "runner": runner,
    }


async def shutdown_components(components: dict) -> None:
    """Graceful shutdown in reverse order."""
    logger.info("Shutting down deskhand...")

    runner = components.get("runner")
    if runner:
        await runner.close()

    bus = components.get("bus")
    if bus:
        await bus.stop()

    logger.info("deskhand shutdown complete.")


def build_app(settings: Settings) -> Starlette:
    """Build the Starlette app.

    Uses Starlette lifespan for component lifecycle management.
    """
    # Closure to share components between lifespan and app
    components: dict = {}

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        components.update(await create_components(settings))

        # Store on app.state for access in tests
        app.state.components = components

        logger.info("deskhand started: model=%s, max_iterations=%d", settings.model, settings.max_iterations)
        yield

        await shutdown_components(components)

    # Import here to avoid circular imports at module level
    from deskhand.api.rest import create_app

    return create_app(
        runner=_lazy_component(components, "runner"),
        surfaces=_lazy_component(components, "surfaces"),
        bus=_lazy_component(components, "bus"),
        settings=settings,
        lifespan=lifespan,
    )


class _LazyProxy:
    """Proxy that defers attribute access to a dict-backed component.

    Allows create_app() to receive component references before lifespan
    has initialized them. All attribute access is forwarded to the actual
    component once it's available.
    """

    def __init__(self, components: dict, key: str) -> None:
        object.__setattr__(self, "_components", components)
        object.__setattr__(self, "_key", key)

    def _resolve(self):
        components = object.__getattribute__(self, "_components")
        key = object.__getattribute__(self, "_key")
        obj = components.get(key)
        if obj is None:
            raise RuntimeError(f"Component '{key}' not yet initialized -- lifespan hasn't started")
        return obj

    def __getattr__(self, name):
        return getattr(self._resolve(), name)


def _lazy_component(components: dict, key: str) -> _LazyProxy:
    """Create a lazy proxy for a component that will be initialized in lifespan."""
    return _LazyProxy(components, key)


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting deskhand on %s:%d", settings.host, settings.port)
    logger.info("Model: %s", settings.model)

    if not settings.has_credentials:
        logger.warning(
            "Neither ANTHROPIC_API_KEY nor ANTHROPIC_AUTH_TOKEN is set -- "
            "configure a key via POST /settings before running instructions"
        )

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
