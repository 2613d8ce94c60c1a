"""Element model: drawable elements vs. control directives."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any

logger = logging.getLogger(__name__)

CAMERA_TYPES = frozenset({"cameraUpdate", "viewportUpdate"})
DELETE_TYPE = "delete"
RESTORE_TYPE = "restoreCheckpoint"
DIRECTIVE_TYPES = CAMERA_TYPES | {DELETE_TYPE, RESTORE_TYPE}


@dataclass
class Rect:
    """Axis-aligned rectangle in scene coordinates."""

    x: float
    y: float
    width: float
    height: float

    def copy(self) -> Rect:
        return Rect(self.x, self.y, self.width, self.height)

    def to_dict(self) -> dict[str, float]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, data: Any) -> Rect | None:
        """Build a Rect from ``{x, y, width, height}``; None if any is not a number."""
        if not isinstance(data, dict):
            return None
        values = []
        for key in ("x", "y", "width", "height"):
            val = data.get(key)
            if isinstance(val, bool) or not isinstance(val, (int, float)):
                return None
            values.append(float(val))
        return cls(*values)


DEFAULT_VIEWPORT = Rect(0.0, 0.0, 1024.0, 768.0)


@dataclass
class DeleteDirective:
    ids: frozenset[str]
    position: int  # index in the batch


@dataclass
class Partition:
    """A batch split into directives and drawables, original order preserved."""

    restore_id: str | None = None
    camera: Rect | None = None
    deletes: list[DeleteDirective] = field(default_factory=list)
    # (batch index, element) pairs
    drawables: list[tuple[int, dict[str, Any]]] = field(default_factory=list)

    @property
    def deleted_ids(self) -> frozenset[str]:
        ids: set[str] = set()
        for d in self.deletes:
            ids |= d.ids
        return frozenset(ids)


def parse_delete_ids(value: Any) -> frozenset[str]:
    """Accept ``"a,b"`` or ``["a", "b"]``; anything else yields no ids."""
    if isinstance(value, str):
        parts = value.split(",")
    elif isinstance(value, list):
        parts = [v for v in value if isinstance(v, str)]
    else:
        return frozenset()
    return frozenset(p.strip() for p in parts if p.strip())


def matches_any(element: dict[str, Any], ids: frozenset[str]) -> bool:
    """True if the element's id or its containerId back-reference is in ids."""
    return any(
        isinstance(element.get(key), str) and element[key] in ids
        for key in ("id", "containerId")
    )


def partition(elements: list[dict[str, Any]]) -> Partition:
    """Split a decoded batch. Malformed directives are skipped."""
    result = Partition()
    for i, el in enumerate(elements):
        el_type = el.get("type")
        if not isinstance(el_type, str):
            result.drawables.append((i, el))
        elif el_type in CAMERA_TYPES:
            rect = Rect.from_mapping(el)
            if rect is None:
                logger.debug("Skipping malformed camera directive at %d", i)
                continue
            result.camera = rect
        elif el_type == DELETE_TYPE:
            ids = parse_delete_ids(el.get("ids"))
            if not ids:
                logger.debug("Skipping delete directive without ids at %d", i)
                continue
            result.deletes.append(DeleteDirective(ids=ids, position=i))
        elif el_type == RESTORE_TYPE:
            target = el.get("id") or el.get("checkpointId")
            if result.restore_id is None and isinstance(target, str) and target:
                result.restore_id = target
        else:
            result.drawables.append((i, el))
    return result
