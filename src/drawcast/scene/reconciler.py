"""Reconciler: merges a decoded batch with its restore base into one scene.

Render order is z-order, so the resolved scene keeps the restored base
first and the batch's drawables after it in their streamed order. Elements
drawn and then deleted within the same batch stay in the array with a
near-zero opacity; position-indexed diffing downstream relies on array
positions that do not shift when something is deleted.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from drawcast.scene.elements import (
    DEFAULT_VIEWPORT,
    Partition,
    Rect,
    matches_any,
    partition,
)
from drawcast.storage.checkpoint_store import Checkpoint, CheckpointError, CheckpointStore

logger = logging.getLogger(__name__)

# On Excalidraw's 0-100 opacity scale; must stay nonzero
SUPPRESSED_OPACITY = 1
DEFAULT_STROKE_TYPE = "rectangle"
MAX_SEED = 2**31 - 1


class CheckpointNotFoundError(LookupError):
    """Raised when a finalized batch restores a checkpoint that is gone."""

    def __init__(self, checkpoint_id: str) -> None:
        self.checkpoint_id = checkpoint_id
        super().__init__(
            f'Checkpoint "{checkpoint_id}" expired or never existed. '
            "Start a new diagram from scratch without restoreCheckpoint."
        )


@dataclass
class ReconcileResult:
    """Resolved scene for one batch.

    ``scene`` is the render array; ``suppressed`` holds the positions in it
    that were deleted in this batch. ``camera`` is the batch's camera, or
    the restored checkpoint's saved viewport; finalized results always
    carry one.
    """

    scene: list[dict[str, Any]]
    camera: Rect | None = None
    checkpoint_id: str | None = None
    new_elements: list[dict[str, Any]] = field(default_factory=list)
    suppressed: frozenset[int] = frozenset()

    @property
    def visible(self) -> list[dict[str, Any]]:
        return [el for i, el in enumerate(self.scene) if i not in self.suppressed]


def new_checkpoint_id() -> str:
    return uuid.uuid4().hex


class Reconciler:
    """Per-view reconciliation state across partial frames of one stream."""

    def __init__(
        self,
        store: CheckpointStore,
        on_stroke: Callable[[str], None] | None = None,
        rng: random.Random | None = None,
        id_factory: Callable[[], str] = new_checkpoint_id,
    ) -> None:
        self._store = store
        self._on_stroke = on_stroke
        self._rng = rng or random.Random()
        self._id_factory = id_factory
        self._seen = 0
        self._seeds: dict[int, int] = {}
        # (checkpoint id, loaded checkpoint or None when missing)
        self._restore_cache: tuple[str, Checkpoint | None] | None = None

    def reset(self) -> None:
        """Forget partial-stream state; the next batch starts a new stream."""
        self._seen = 0
        self._seeds.clear()
        self._restore_cache = None

    def reconcile(self, elements: list[dict[str, Any]], is_final: bool) -> ReconcileResult:
        if not is_final:
            return self._reconcile(elements, is_final=False)
        # A finalized batch ends the stream whether or not it succeeds
        try:
            return self._reconcile(elements, is_final=True)
        finally:
            self.reset()

    def _reconcile(self, elements: list[dict[str, Any]], is_final: bool) -> ReconcileResult:
        parts = partition(elements)
        base = self._load_base(parts.restore_id, is_final)
        scene, batch_entries, suppressed = self._resolve(base, parts)

        camera = parts.camera
        if camera is None and base is not None:
            camera = Rect.from_mapping(base.viewport)

        if is_final:
            return self._finalize(scene, suppressed, camera)
        return self._advance_partial(scene, batch_entries, suppressed, camera)

    def _load_base(self, restore_id: str | None, is_final: bool) -> Checkpoint | None:
        if restore_id is None:
            return None

        if is_final:
            # Store validation errors propagate as-is
            checkpoint = self._store.load(restore_id)
            if checkpoint is None:
                raise CheckpointNotFoundError(restore_id)
            return checkpoint

        if self._restore_cache is not None and self._restore_cache[0] == restore_id:
            return self._restore_cache[1]
        try:
            checkpoint = self._store.load(restore_id)
        except (CheckpointError, ValueError) as e:
            logger.warning("Restore of %s failed during partial frame: %s", restore_id, e)
            checkpoint = None
        if checkpoint is None:
            logger.info("Checkpoint %s not found; partial frames render without it", restore_id)
        self._restore_cache = (restore_id, checkpoint)
        return checkpoint

    def _resolve(
        self, base: Checkpoint | None, parts: Partition
    ) -> tuple[list[dict[str, Any]], list[dict[str, Any] | None], frozenset[int]]:
        """Build the scene.

        Returns the compacted scene, the batch drawables' scene entries by
        ordinal (None where a later duplicate id replaced one), and the
        suppressed scene positions.
        """
        entries: list[dict[str, Any] | None] = []
        positions: dict[str, int] = {}
        suppressed_slots: set[int] = set()

        def place(el: dict[str, Any]) -> int:
            el_id = el.get("id")
            if isinstance(el_id, str):
                prior = positions.get(el_id)
                if prior is not None:
                    logger.warning("Duplicate element id %r; keeping the later one", el_id)
                    entries[prior] = None
                    suppressed_slots.discard(prior)
                positions[el_id] = len(entries)
            entries.append(el)
            return len(entries) - 1

        deleted = parts.deleted_ids
        if base is not None:
            for el in base.elements:
                if isinstance(el, dict) and not matches_any(el, deleted):
                    place(dict(el))

        batch_slots: list[int] = []
        for position, el in parts.drawables:
            entry = dict(el)
            hidden = any(
                d.position > position and matches_any(el, d.ids) for d in parts.deletes
            )
            if hidden:
                entry["opacity"] = SUPPRESSED_OPACITY
            slot = place(entry)
            if hidden:
                suppressed_slots.add(slot)
            batch_slots.append(slot)

        batch_entries = [entries[slot] for slot in batch_slots]
        scene: list[dict[str, Any]] = []
        suppressed: set[int] = set()
        for slot, entry in enumerate(entries):
            if entry is None:
                continue
            if slot in suppressed_slots:
                suppressed.add(len(scene))
            scene.append(entry)
        return scene, batch_entries, frozenset(suppressed)

    def _finalize(
        self, scene: list[dict[str, Any]], suppressed: frozenset[int], camera: Rect | None
    ) -> ReconcileResult:
        viewport = camera or DEFAULT_VIEWPORT.copy()
        result = ReconcileResult(
            scene=scene,
            camera=viewport,
            checkpoint_id=self._id_factory(),
            suppressed=suppressed,
        )
        persisted = result.visible
        self._store.save(
            result.checkpoint_id,
            Checkpoint(id=result.checkpoint_id, elements=persisted, viewport=viewport.to_dict()),
        )
        logger.info(
            "Saved checkpoint %s (%d elements, %d suppressed)",
            result.checkpoint_id, len(persisted), len(suppressed),
        )
        return result

    def _advance_partial(
        self,
        scene: list[dict[str, Any]],
        batch_entries: list[dict[str, Any] | None],
        suppressed: frozenset[int],
        camera: Rect | None,
    ) -> ReconcileResult:
        if len(batch_entries) < self._seen:
            logger.debug("Partial frame shrank (%d < %d); new stream", len(batch_entries), self._seen)
            self._seen = 0
            self._seeds.clear()

        new_elements: list[dict[str, Any]] = []
        for ordinal, entry in enumerate(batch_entries):
            if ordinal not in self._seeds:
                self._seeds[ordinal] = self._rng.randint(1, MAX_SEED)
            if entry is None:
                continue
            entry["seed"] = self._seeds[ordinal]
            if ordinal >= self._seen:
                new_elements.append(entry)
                if self._on_stroke is not None:
                    el_type = entry.get("type")
                    self._on_stroke(el_type if isinstance(el_type, str) and el_type else DEFAULT_STROKE_TYPE)
        self._seen = len(batch_entries)

        return ReconcileResult(
            scene=scene,
            camera=camera,
            new_elements=new_elements,
            suppressed=suppressed,
        )
