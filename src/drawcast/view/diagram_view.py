"""Diagram view: the per-view pipeline behind the transport's entry points.

Raw update strings go through the stream decoder and the reconciler; the
resolved scene is handed to a render surface and the camera drives the
viewport animator.
"""

from __future__ import annotations

import logging
import random
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

from drawcast.scene.decoder import DecodeStatus, decode, parse_elements
from drawcast.scene.elements import DEFAULT_VIEWPORT, Rect
from drawcast.scene.reconciler import Reconciler, ReconcileResult
from drawcast.storage.checkpoint_store import CheckpointStore
from drawcast.view.viewport import (
    FrameScheduler,
    ViewBox,
    ViewportAnimator,
    compute_scene_bounds,
    scene_to_viewbox,
)

logger = logging.getLogger(__name__)


class InvalidInputError(ValueError):
    """Raised when a finalized update cannot be read as an element array."""


class ViewClosedError(RuntimeError):
    """Raised when input arrives for a view that was torn down."""


class RenderSurface(Protocol):
    def render(self, elements: list[dict[str, Any]]) -> None: ...

    def apply_viewbox(self, viewbox: ViewBox) -> None: ...


class SnapshotSurface:
    """Keeps the latest scene and viewBox for clients that poll for them."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._elements: list[dict[str, Any]] = []
        self._viewbox: ViewBox | None = None

    def render(self, elements: list[dict[str, Any]]) -> None:
        with self._lock:
            self._elements = list(elements)

    def apply_viewbox(self, viewbox: ViewBox) -> None:
        with self._lock:
            self._viewbox = viewbox

    @property
    def elements(self) -> list[dict[str, Any]]:
        with self._lock:
            return list(self._elements)

    @property
    def viewbox(self) -> ViewBox | None:
        with self._lock:
            return self._viewbox


@dataclass
class Frame:
    elements: list[dict[str, Any]]
    viewbox: ViewBox | None
    is_final: bool = False
    checkpoint_id: str | None = None
    strokes: list[str] = field(default_factory=list)


class DiagramView:
    """One live diagram: decoder, reconciler, animator, and render surface.

    Batches for a view are processed one at a time. Closing the view
    cancels its animation and refuses further input, so no store writes
    happen after teardown.
    """

    def __init__(
        self,
        store: CheckpointStore,
        surface: RenderSurface | None = None,
        scheduler: FrameScheduler | None = None,
        on_stroke: Callable[[str], None] | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.surface = surface if surface is not None else SnapshotSurface()
        self._on_stroke = on_stroke
        self._reconciler = Reconciler(store, on_stroke=self._record_stroke, rng=rng)
        self._animator = ViewportAnimator(on_frame=self._apply_viewport, scheduler=scheduler)
        self._lock = threading.Lock()
        self._elements: list[dict[str, Any]] = []
        self._suppressed: frozenset[int] = frozenset()
        self._bounds: tuple[float, float] = (0.0, 0.0)
        self._strokes: list[str] = []
        self._checkpoint_id: str | None = None
        self._is_final = False
        self._closed = False

    @property
    def animator(self) -> ViewportAnimator:
        return self._animator

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def checkpoint_id(self) -> str | None:
        return self._checkpoint_id

    def on_partial_input(self, raw: str) -> Frame | None:
        """Handle an in-progress update. Returns None when nothing changed."""
        with self._lock:
            self._check_open()
            self._strokes = []
            result = self._reconciler.reconcile(decode(raw, is_final=False), is_final=False)
            camera_changed = result.camera is not None and result.camera != self._animator.target
            suppression_changed = result.suppressed != self._suppressed
            if not result.new_elements and not camera_changed and not suppression_changed:
                return None
            self._is_final = False
            self._present(result)
            return self._frame()

    def on_final_input(self, raw: str) -> Frame:
        """Handle the completed update, persisting a new checkpoint.

        Raises:
            InvalidInputError: If the update is not a readable element array.
            CheckpointNotFoundError: If it restores a checkpoint that is gone.
        """
        with self._lock:
            self._check_open()
            self._strokes = []
            decoded = parse_elements(raw)
            if decoded.status is DecodeStatus.EMPTY:
                raise InvalidInputError(
                    "Invalid input: elements must be a JSON array of element objects"
                )
            if decoded.status is DecodeStatus.BEST_EFFORT:
                logger.info("Final input was truncated; using %d recovered elements", len(decoded.elements))
            result = self._reconciler.reconcile(decoded.elements, is_final=True)
            self._checkpoint_id = result.checkpoint_id
            self._is_final = True
            self._present(result)
            return self._frame()

    def current_frame(self) -> Frame:
        with self._lock:
            return self._frame(include_strokes=False)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._animator.close()
        logger.debug("Diagram view closed")

    def _check_open(self) -> None:
        if self._closed:
            raise ViewClosedError("Diagram view has been closed")

    def _record_stroke(self, element_type: str) -> None:
        self._strokes.append(element_type)
        if self._on_stroke is None:
            return
        try:
            self._on_stroke(element_type)
        except Exception:
            logger.debug("Stroke feedback failed for %s", element_type, exc_info=True)

    def _present(self, result: ReconcileResult) -> None:
        self._elements = result.scene
        self._suppressed = result.suppressed
        self._bounds = compute_scene_bounds(result.scene)
        try:
            self.surface.render(result.scene)
        except Exception:
            logger.debug("Render surface rejected scene of %d elements", len(result.scene), exc_info=True)

        if result.camera is not None:
            if result.camera != self._animator.target:
                self._animator.set_target(result.camera)
        elif self._animator.target is None:
            self._animator.set_target(DEFAULT_VIEWPORT)
        # Bounds may have moved even when the camera did not
        current = self._animator.current
        if current is not None:
            self._apply_viewport(current)

    def _apply_viewport(self, rect: Rect) -> None:
        viewbox = scene_to_viewbox(rect, *self._bounds)
        try:
            self.surface.apply_viewbox(viewbox)
        except Exception:
            logger.debug("Render surface rejected viewBox %s", viewbox.to_attr(), exc_info=True)

    def _frame(self, include_strokes: bool = True) -> Frame:
        current = self._animator.current
        return Frame(
            elements=list(self._elements),
            viewbox=scene_to_viewbox(current, *self._bounds) if current else None,
            is_final=self._is_final,
            checkpoint_id=self._checkpoint_id if self._is_final else None,
            strokes=list(self._strokes) if include_strokes else [],
        )
