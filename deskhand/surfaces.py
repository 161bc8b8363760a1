"""Surface provider: enumerates and captures screens and windows.

Screens come from mss; windows from pygetwindow where the platform
supports it (Windows). Surfaces are snapshots valid only for the call
that produced them -- ids are re-resolved on every capture.

Captures are returned at native resolution. Very large displays are
not down-scaled; instead display_geometry() advertises a capped
logical size to the model.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal

import mss
import mss.tools
from mss.exception import ScreenShotError

from deskhand.errors import SurfaceError

logger = logging.getLogger(__name__)

# Window titles that belong to capture plumbing, not to user windows
_UNRELIABLE_TITLE_MARKERS = ("WGC",)

SurfaceKind = Literal["screen", "window"]


@dataclass(frozen=True)
class Surface:
    id: str
    kind: SurfaceKind
    label: str
    owner_app: str

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "kind": self.kind, "name": self.label, "app_name": self.owner_app}


@dataclass(frozen=True)
class Capture:
    data: bytes
    media_type: str = "image/png"
    width: int = 0
    height: int = 0


def _list_windows() -> list[Any]:
    """Top-level windows via pygetwindow, or [] where it is unsupported."""
    try:
        import pygetwindow
    except (ImportError, NotImplementedError):
        logger.debug("pygetwindow unavailable; window capture disabled")
        return []
    return list(pygetwindow.getAllWindows())


def _window_id(window: Any, index: int) -> str:
    handle = getattr(window, "_hWnd", None)
    return f"window:{handle if handle is not None else index}"


def _usable(window: Any) -> bool:
    title = (window.title or "").strip()
    if not title or any(marker in title for marker in _UNRELIABLE_TITLE_MARKERS):
        return False
    return window.width > 0 and window.height > 0


class SurfaceProvider:
    """Enumerates capture targets and grabs PNG bitmaps of them."""

    def __init__(self, screen_factory=mss.mss, window_lister=_list_windows) -> None:
        self._screen_factory = screen_factory
        self._window_lister = window_lister

    def list_surfaces(self) -> list[Surface]:
        surfaces: list[Surface] = []
        for n, monitor in enumerate(self._monitors(), start=1):
            surfaces.append(Surface(
                id=f"screen:{n}",
                kind="screen",
                label=f"Screen {n} ({monitor['width']}x{monitor['height']})",
                owner_app="Screen",
            ))
        for i, window in enumerate(self._window_lister()):
            if not _usable(window):
                continue
            surfaces.append(Surface(
                id=_window_id(window, i),
                kind="window",
                label=window.title.strip(),
                owner_app=getattr(window, "app_name", None) or "Unknown",
            ))
        logger.info("Found %d capturable windows/screens", len(surfaces))
        return surfaces

    def capture(self, surface_id: str | None = None) -> Capture:
        """Capture a surface by id, or the primary screen when no id is given."""
        if surface_id is None:
            monitors = self._monitors()
            if not monitors:
                raise SurfaceError("No screen sources available")
            region = monitors[0]
        elif surface_id.startswith("screen:"):
            region = self._screen_region(surface_id)
        elif surface_id.startswith("window:"):
            region = self._window_region(surface_id)
        else:
            raise SurfaceError(f"Window with id {surface_id} not found")

        try:
            with self._screen_factory() as sct:
                shot = sct.grab(region)
                data = mss.tools.to_png(shot.rgb, shot.size)
        except ScreenShotError as e:
            raise SurfaceError(f"Screen capture failed: {e}") from e
        return Capture(data=data, width=shot.size[0], height=shot.size[1])

    def display_geometry(self, max_width: int, max_height: int) -> tuple[int, int]:
        """Primary screen size, capped to the advertised maximum."""
        monitors = self._monitors()
        if not monitors:
            raise SurfaceError("No screen sources available")
        width, height = monitors[0]["width"], monitors[0]["height"]
        if width > max_width or height > max_height:
            logger.info(
                "Display %dx%d exceeds %dx%d; advertising capped geometry",
                width, height, max_width, max_height,
            )
        return min(width, max_width), min(height, max_height)

    def _monitors(self) -> list[dict[str, int]]:
        """Physical screens; mss puts the union of all screens at index 0."""
        try:
            with self._screen_factory() as sct:
                return list(sct.monitors[1:])
        except ScreenShotError as e:
            raise SurfaceError(f"Screen enumeration failed: {e}") from e

    def _screen_region(self, surface_id: str) -> dict[str, int]:
        monitors = self._monitors()
        try:
            n = int(surface_id.split(":", 1)[1])
        except ValueError:
            raise SurfaceError(f"Window with id {surface_id} not found") from None
        if not 1 <= n <= len(monitors):
            raise SurfaceError(f"Window with id {surface_id} not found")
        return monitors[n - 1]

    def _window_region(self, surface_id: str) -> dict[str, int]:
        for i, window in enumerate(self._window_lister()):
            if _window_id(window, i) == surface_id and _usable(window):
                return {
                    "left": window.left,
                    "top": window.top,
                    "width": window.width,
                    "height": window.height,
                }
        raise SurfaceError(f"Window with id {surface_id} not found")
