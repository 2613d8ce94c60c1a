"""Animated viewport: eases a scene-space rectangle toward the latest camera."""

from __future__ import annotations

import logging
import math
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Any, Protocol

from drawcast.scene.elements import Rect

logger = logging.getLogger(__name__)

LERP_SPEED = 0.03  # fraction of the remaining distance covered per tick
SETTLE_THRESHOLD = 0.5
FRAME_INTERVAL = 1 / 60
EXPORT_PADDING = 20


class Cancellable(Protocol):
    def cancel(self) -> None: ...


class FrameScheduler(Protocol):
    """Anything with ``call_later``, e.g. an asyncio loop or TimerScheduler."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> Cancellable: ...


class TimerScheduler:
    """Runs each frame callback on a daemon ``threading.Timer``."""

    def call_later(self, delay: float, callback: Callable[[], Any]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.daemon = True
        timer.start()
        return timer


@dataclass
class ViewBox:
    """Render-surface viewBox (SVG ``x y w h``)."""

    x: float
    y: float
    w: float
    h: float

    def to_attr(self) -> str:
        return f"{self.x} {self.y} {self.w} {self.h}"


def delta(a: Rect, b: Rect) -> float:
    """Sum of absolute component differences."""
    return abs(a.x - b.x) + abs(a.y - b.y) + abs(a.width - b.width) + abs(a.height - b.height)


class ViewportAnimator:
    """Owns the animated rectangle for one diagram view.

    The first target snaps; later targets are approached by a fixed fraction
    per tick until the remaining delta is under SETTLE_THRESHOLD. With a
    scheduler, ticks schedule themselves and at most one is pending at a
    time; without one the host calls ``tick()`` itself.
    """

    def __init__(
        self,
        on_frame: Callable[[Rect], None] | None = None,
        scheduler: FrameScheduler | None = None,
        speed: float = LERP_SPEED,
        threshold: float = SETTLE_THRESHOLD,
        interval: float = FRAME_INTERVAL,
    ) -> None:
        self._on_frame = on_frame
        self._scheduler = scheduler
        self._speed = speed
        self._threshold = threshold
        self._interval = interval
        self._current: Rect | None = None
        self._target: Rect | None = None
        self._pending: Cancellable | None = None
        self._closed = False
        self._lock = threading.RLock()

    @property
    def current(self) -> Rect | None:
        with self._lock:
            return self._current.copy() if self._current else None

    @property
    def target(self) -> Rect | None:
        with self._lock:
            return self._target.copy() if self._target else None

    @property
    def is_animating(self) -> bool:
        with self._lock:
            return self._remaining() > self._threshold

    def _remaining(self) -> float:
        if self._current is None or self._target is None:
            return 0.0
        return delta(self._current, self._target)

    def set_target(self, rect: Rect) -> None:
        """Re-target the animation, snapping only on the first target ever."""
        with self._lock:
            if self._closed:
                return
            self._target = rect.copy()
            if self._current is None:
                self._current = rect.copy()
            self._emit()
            self._cancel_pending()
            self._schedule()

    def tick(self) -> bool:
        """Advance one frame. Returns True while more ticks are needed."""
        with self._lock:
            self._pending = None
            if self._closed or self._current is None or self._target is None:
                return False
            a, t, k = self._current, self._target, self._speed
            a.x += (t.x - a.x) * k
            a.y += (t.y - a.y) * k
            a.width += (t.width - a.width) * k
            a.height += (t.height - a.height) * k
            self._emit()
            if self._remaining() > self._threshold:
                self._schedule()
                return True
            return False

    def run_to_rest(self, max_ticks: int = 10_000) -> int:
        """Tick synchronously until settled; returns the number of ticks."""
        for n in range(1, max_ticks + 1):
            if not self.tick():
                return n
        return max_ticks

    def close(self) -> None:
        """Cancel any pending tick; the animator ignores later calls."""
        with self._lock:
            self._closed = True
            self._cancel_pending()

    def _emit(self) -> None:
        if self._on_frame is not None and self._current is not None:
            self._on_frame(self._current.copy())

    def _schedule(self) -> None:
        if self._scheduler is None or self._pending is not None:
            return
        self._pending = self._scheduler.call_later(self._interval, self.tick)

    def _cancel_pending(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


def compute_scene_bounds(elements: Iterable[dict[str, Any]]) -> tuple[float, float]:
    """Minimum x/y over all drawable geometry, including relative points.

    Matches the origin the renderer re-bases its export onto. Returns
    ``(0, 0)`` when no element has coordinates.
    """
    min_x = math.inf
    min_y = math.inf
    for el in elements:
        x, y = el.get("x"), el.get("y")
        if not isinstance(x, (int, float)) or not isinstance(y, (int, float)):
            continue
        min_x = min(min_x, x)
        min_y = min(min_y, y)
        points = el.get("points")
        if isinstance(points, list):
            for pt in points:
                if isinstance(pt, (list, tuple)) and len(pt) >= 2:
                    try:
                        min_x = min(min_x, x + pt[0])
                        min_y = min(min_y, y + pt[1])
                    except TypeError:
                        continue
    return (
        min_x if math.isfinite(min_x) else 0.0,
        min_y if math.isfinite(min_y) else 0.0,
    )


def scene_to_viewbox(
    rect: Rect, scene_min_x: float, scene_min_y: float, padding: float = EXPORT_PADDING
) -> ViewBox:
    """Convert a scene-space rectangle into the render surface's viewBox."""
    return ViewBox(
        x=rect.x - scene_min_x + padding,
        y=rect.y - scene_min_y + padding,
        w=rect.width,
        h=rect.height,
    )
