"""Backend selection, evaluated once at startup."""

from __future__ import annotations

import logging

from drawcast import config
from drawcast.storage.checkpoint_store import CheckpointStore, MemoryCheckpointStore
from drawcast.storage.file_store import FileCheckpointStore
from drawcast.storage.kv_store import KVCheckpointStore

logger = logging.getLogger(__name__)


def create_checkpoint_store() -> CheckpointStore:
    """Pick the checkpoint backend from configuration.

    A KV URL selects the remote store (a URL without a token is a
    StoreConfigError right here). Otherwise CHECKPOINT_DIR selects the
    filesystem store, and with neither set checkpoints live in memory.
    """
    if config.KV_REST_API_URL:
        logger.info("Checkpoint backend: KV store")
        return KVCheckpointStore(config.KV_REST_API_URL, config.KV_REST_API_TOKEN)
    if config.CHECKPOINT_DIR is not None:
        logger.info("Checkpoint backend: files under %s", config.CHECKPOINT_DIR)
        return FileCheckpointStore(config.CHECKPOINT_DIR)
    logger.info("Checkpoint backend: in-process memory (not durable)")
    return MemoryCheckpointStore()
