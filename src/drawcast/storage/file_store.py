"""Filesystem checkpoint backend: one JSON document per checkpoint."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from drawcast.storage.checkpoint_store import (
    MAX_CHECKPOINTS,
    Checkpoint,
    CheckpointStoreError,
    deserialize_checkpoint,
    serialize_checkpoint,
    validate_checkpoint_id,
)

logger = logging.getLogger(__name__)

DEFAULT_CHECKPOINT_DIR = Path(tempfile.gettempdir()) / "drawcast-checkpoints"


class FileCheckpointStore:
    """Stores checkpoints as ``<directory>/<id>.json`` files."""

    def __init__(self, directory: Path | None = None, max_entries: int = MAX_CHECKPOINTS) -> None:
        self._dir = (directory or DEFAULT_CHECKPOINT_DIR).resolve()
        self._max_entries = max_entries
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def directory(self) -> Path:
        return self._dir

    def _path_for(self, checkpoint_id: str) -> Path:
        """Resolve the file for an id, refusing anything outside the directory."""
        validate_checkpoint_id(checkpoint_id)
        path = (self._dir / f"{checkpoint_id}.json").resolve()
        if path.parent != self._dir:
            raise CheckpointStoreError(f"Invalid checkpoint path for id {checkpoint_id!r}")
        return path

    def save(self, checkpoint_id: str, data: Checkpoint) -> None:
        path = self._path_for(checkpoint_id)
        serialized = serialize_checkpoint(data)
        # Unique temp file per write; concurrent saves of one id race only on os.replace
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self._dir, prefix=f".{checkpoint_id}.", suffix=".tmp")
        except OSError as e:
            raise CheckpointStoreError(f"Failed to write checkpoint {checkpoint_id}: {e}") from e
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(serialized)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise CheckpointStoreError(f"Failed to write checkpoint {checkpoint_id}: {e}") from e
        logger.debug("Saved checkpoint %s (%d bytes)", checkpoint_id, len(serialized))
        self._prune()

    def load(self, checkpoint_id: str) -> Checkpoint | None:
        path = self._path_for(checkpoint_id)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CheckpointStoreError(f"Failed to read checkpoint {checkpoint_id}: {e}") from e
        return deserialize_checkpoint(checkpoint_id, raw)

    def _prune(self) -> None:
        """Remove the oldest checkpoint files beyond the retention ceiling."""
        try:
            files = [p for p in self._dir.iterdir() if p.suffix == ".json" and not p.name.startswith(".")]
            surplus = len(files) - self._max_entries
            if surplus <= 0:
                return
            by_age: list[tuple[float, Path]] = []
            for p in files:
                try:
                    by_age.append((p.stat().st_mtime, p))
                except FileNotFoundError:
                    continue
            by_age.sort(key=lambda item: item[0])
            for _, p in by_age[:surplus]:
                try:
                    p.unlink()
                    logger.debug("Pruned checkpoint file %s", p.name)
                except OSError as e:
                    logger.warning("Could not prune checkpoint file %s: %s", p.name, e)
        except OSError as e:
            logger.warning("Checkpoint pruning failed in %s: %s", self._dir, e)
