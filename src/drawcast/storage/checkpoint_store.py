"""Checkpoint persistence: shared contract, validation, and the in-process backend."""

from __future__ import annotations

import json
import logging
import re
import threading
from collections import OrderedDict
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

MAX_CHECKPOINT_BYTES = 5 * 1024 * 1024
MAX_CHECKPOINTS = 100
MAX_CHECKPOINT_ID_LENGTH = 64

_CHECKPOINT_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


class CheckpointError(Exception):
    """Base class for checkpoint store failures."""


class InvalidCheckpointIdError(CheckpointError, ValueError):
    """Raised when a checkpoint id is not safe to use as a storage key."""


class CheckpointTooLargeError(CheckpointError, ValueError):
    """Raised when a serialized checkpoint exceeds MAX_CHECKPOINT_BYTES."""

    def __init__(self, size: int, limit: int = MAX_CHECKPOINT_BYTES) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"Checkpoint data is {size} bytes, exceeding the {limit} byte limit"
        )


class CheckpointStoreError(CheckpointError):
    """Raised when a backend fails to read or write a checkpoint."""


class StoreConfigError(CheckpointError):
    """Raised at startup when a selected backend is missing configuration."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Checkpoint:
    """A persisted snapshot of a resolved scene plus its viewport."""

    id: str
    elements: list[dict[str, Any]] = field(default_factory=list)
    viewport: dict[str, float] | None = None
    saved_at: datetime = field(default_factory=_utcnow)


@runtime_checkable
class CheckpointStore(Protocol):
    """Two-operation capability shared by every backend."""

    def save(self, checkpoint_id: str, data: Checkpoint) -> None: ...

    def load(self, checkpoint_id: str) -> Checkpoint | None: ...


def validate_checkpoint_id(checkpoint_id: str) -> None:
    """Reject ids that could escape a directory or inject into a key.

    Raises:
        InvalidCheckpointIdError: If the id has characters outside
            ``[A-Za-z0-9_-]`` or is longer than 64 characters.
    """
    if not isinstance(checkpoint_id, str) or not _CHECKPOINT_ID_RE.fullmatch(checkpoint_id):
        raise InvalidCheckpointIdError(
            "Invalid checkpoint id: must be alphanumeric, hyphens, or underscores"
        )
    if len(checkpoint_id) > MAX_CHECKPOINT_ID_LENGTH:
        raise InvalidCheckpointIdError(
            f"Invalid checkpoint id: exceeds {MAX_CHECKPOINT_ID_LENGTH} character limit"
        )


def serialize_checkpoint(data: Checkpoint, limit: int = MAX_CHECKPOINT_BYTES) -> str:
    """Encode a checkpoint as JSON, enforcing the size limit before any write."""
    serialized = json.dumps(
        {
            "elements": data.elements,
            "viewport": data.viewport,
            "savedAt": data.saved_at.isoformat(),
        },
        separators=(",", ":"),
        ensure_ascii=False,
    )
    size = len(serialized.encode("utf-8"))
    if size > limit:
        raise CheckpointTooLargeError(size, limit)
    return serialized


def deserialize_checkpoint(checkpoint_id: str, raw: str | bytes) -> Checkpoint | None:
    """Decode a stored payload; returns None for corrupt data.

    Accepts the current ``{elements, viewport}`` document as well as the
    legacy shape, a bare array of elements.
    """
    try:
        payload = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Checkpoint %s is not valid JSON; treating as missing", checkpoint_id)
        return None

    if isinstance(payload, list):
        return Checkpoint(id=checkpoint_id, elements=payload)
    if not isinstance(payload, dict) or not isinstance(payload.get("elements"), list):
        logger.warning("Checkpoint %s has an unrecognized shape", checkpoint_id)
        return None

    saved_at = _utcnow()
    if payload.get("savedAt"):
        try:
            saved_at = datetime.fromisoformat(payload["savedAt"])
        except (TypeError, ValueError):
            pass
    viewport = payload.get("viewport")
    return Checkpoint(
        id=checkpoint_id,
        elements=payload["elements"],
        viewport=viewport if isinstance(viewport, dict) else None,
        saved_at=saved_at,
    )


class MemoryCheckpointStore:
    """Ephemeral in-process store; contents are lost on restart.

    Entries are kept in write order, so eviction always drops the entry
    written longest ago.
    """

    def __init__(self, max_entries: int = MAX_CHECKPOINTS) -> None:
        self._max_entries = max_entries
        self._entries: OrderedDict[str, str] = OrderedDict()
        self._lock = threading.Lock()

    def save(self, checkpoint_id: str, data: Checkpoint) -> None:
        validate_checkpoint_id(checkpoint_id)
        serialized = serialize_checkpoint(data)
        with self._lock:
            self._entries[checkpoint_id] = serialized
            self._entries.move_to_end(checkpoint_id)
            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug("Evicted checkpoint %s from memory store", evicted)

    def load(self, checkpoint_id: str) -> Checkpoint | None:
        validate_checkpoint_id(checkpoint_id)
        with self._lock:
            raw = self._entries.get(checkpoint_id)
        if raw is None:
            return None
        return deserialize_checkpoint(checkpoint_id, raw)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
