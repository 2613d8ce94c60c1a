"""Remote checkpoint backend over an Upstash-compatible Redis REST API."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import httpx

from drawcast import config
from drawcast.storage.checkpoint_store import (
    MAX_CHECKPOINTS,
    Checkpoint,
    CheckpointStoreError,
    StoreConfigError,
    deserialize_checkpoint,
    serialize_checkpoint,
    validate_checkpoint_id,
)

logger = logging.getLogger(__name__)

CHECKPOINT_TTL_SECONDS = 30 * 24 * 60 * 60
KEY_PREFIX = "cp:"
INDEX_KEY = "cp:index"


class KVCheckpointStore:
    """Checkpoints as Redis strings with a fixed 30-day expiry.

    A sorted set (``cp:index``) scored by write time tracks live ids so the
    oldest entries can be evicted once the retention ceiling is exceeded.
    The HTTP client is created on first use.
    """

    def __init__(
        self,
        url: str | None = None,
        token: str | None = None,
        max_entries: int = MAX_CHECKPOINTS,
        timeout: float | None = None,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = (url if url is not None else config.KV_REST_API_URL).rstrip("/")
        self._token = token if token is not None else config.KV_REST_API_TOKEN
        if not self._url or not self._token:
            raise StoreConfigError(
                "Missing KV store configuration: set KV_REST_API_URL and KV_REST_API_TOKEN "
                "(or UPSTASH_REDIS_REST_URL and UPSTASH_REDIS_REST_TOKEN)"
            )
        self._max_entries = max_entries
        self._timeout = timeout if timeout is not None else config.KV_TIMEOUT_SECS
        self._client = client
        self._client_lock = threading.Lock()

    def _get_client(self) -> httpx.Client:
        with self._client_lock:
            if self._client is None:
                logger.info("Connecting to KV store at %s", self._url)
                self._client = httpx.Client(
                    base_url=self._url,
                    headers={"Authorization": f"Bearer {self._token}"},
                    timeout=self._timeout,
                )
            return self._client

    def _command(self, *args: Any) -> Any:
        """Run one Redis command and return its ``result`` field."""
        try:
            resp = self._get_client().post("/", json=[str(a) for a in args])
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CheckpointStoreError(f"KV request {args[0]} failed: {e}") from e
        if not isinstance(body, dict):
            raise CheckpointStoreError(f"KV request {args[0]} returned an unexpected body")
        if resp.status_code >= 400 or "error" in body:
            raise CheckpointStoreError(
                f"KV request {args[0]} failed ({resp.status_code}): {body.get('error', 'unknown error')}"
            )
        return body.get("result")

    def _pipeline(self, commands: list[list[Any]]) -> list[Any]:
        """Run several commands in one round trip; raises on any failure."""
        payload = [[str(a) for a in cmd] for cmd in commands]
        try:
            resp = self._get_client().post("/pipeline", json=payload)
            resp.raise_for_status()
            body = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            raise CheckpointStoreError(f"KV pipeline failed: {e}") from e
        if (
            not isinstance(body, list)
            or len(body) != len(commands)
            or not all(isinstance(item, dict) for item in body)
        ):
            raise CheckpointStoreError("KV pipeline returned an unexpected body")
        results = []
        for item in body:
            if "error" in item:
                raise CheckpointStoreError(f"KV pipeline command failed: {item['error']}")
            results.append(item.get("result"))
        return results

    def save(self, checkpoint_id: str, data: Checkpoint) -> None:
        validate_checkpoint_id(checkpoint_id)
        serialized = serialize_checkpoint(data)
        self._command("SET", KEY_PREFIX + checkpoint_id, serialized, "EX", CHECKPOINT_TTL_SECONDS)
        self._evict_oldest(checkpoint_id)

    def load(self, checkpoint_id: str) -> Checkpoint | None:
        validate_checkpoint_id(checkpoint_id)
        raw = self._command("GET", KEY_PREFIX + checkpoint_id)
        if raw is None:
            return None
        return deserialize_checkpoint(checkpoint_id, raw)

    def _evict_oldest(self, checkpoint_id: str) -> None:
        """Index the new id and drop the oldest ids beyond the ceiling."""
        try:
            _, _, count = self._pipeline([
                ["ZADD", INDEX_KEY, time.time_ns(), checkpoint_id],
                ["EXPIRE", INDEX_KEY, CHECKPOINT_TTL_SECONDS],
                ["ZCARD", INDEX_KEY],
            ])
            try:
                surplus = int(count) - self._max_entries
            except (TypeError, ValueError) as e:
                raise CheckpointStoreError(f"KV ZCARD returned {count!r}") from e
            if surplus <= 0:
                return
            oldest = self._command("ZRANGE", INDEX_KEY, 0, surplus - 1) or []
            if not isinstance(oldest, list) or not all(isinstance(m, str) for m in oldest):
                raise CheckpointStoreError(f"KV ZRANGE returned {oldest!r}")
            if not oldest:
                return
            self._pipeline([
                ["DEL", *[KEY_PREFIX + old for old in oldest]],
                ["ZREM", INDEX_KEY, *oldest],
            ])
            logger.debug("Evicted %d checkpoint(s) from KV store", len(oldest))
        except CheckpointStoreError as e:
            logger.warning("KV checkpoint eviction failed: %s", e)

    def close(self) -> None:
        with self._client_lock:
            if self._client is not None:
                self._client.close()
                self._client = None
