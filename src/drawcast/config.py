"""Configuration loaded from environment variables."""

from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _first_env(*names: str) -> str:
    """Return the first non-empty value among several variable names."""
    for name in names:
        val = os.getenv(name)
        if val:
            return val
    return ""


# Remote key-value store (Upstash-compatible Redis REST API)
KV_REST_API_URL: str = _first_env("KV_REST_API_URL", "UPSTASH_REDIS_REST_URL")
KV_REST_API_TOKEN: str = _first_env("KV_REST_API_TOKEN", "UPSTASH_REDIS_REST_TOKEN")
KV_TIMEOUT_SECS: float = float(os.getenv("KV_TIMEOUT_SECS", "10"))

# Local checkpoint directory; unset means no filesystem backend
CHECKPOINT_DIR: Path | None = (
    Path(os.environ["CHECKPOINT_DIR"]) if os.getenv("CHECKPOINT_DIR") else None
)

# Server
HOST: str = os.getenv("HOST", "0.0.0.0")
PORT: int = int(os.getenv("PORT", "3001"))
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
