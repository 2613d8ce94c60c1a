"""Best-effort decoding of a streamed JSON array of elements."""

from __future__ import annotations

import enum
import json
import logging
from dataclasses import dataclass, field
from typing import Any

logger = logging.getLogger(__name__)


class DecodeStatus(enum.Enum):
    COMPLETE = "complete"
    BEST_EFFORT = "best_effort"
    EMPTY = "empty"


@dataclass
class DecodeResult:
    status: DecodeStatus
    elements: list[dict[str, Any]] = field(default_factory=list)


def _as_elements(value: Any) -> list[dict[str, Any]] | None:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, dict)]


def parse_elements(raw: str | None) -> DecodeResult:
    """Recover as many elements as possible from a possibly truncated array.

    Stage one is a strict parse. Stage two truncates after the last closing
    brace and closes the array. Input that is not an array, or that neither
    stage can read, yields an EMPTY result.
    """
    if not raw or not raw.strip().startswith("["):
        return DecodeResult(DecodeStatus.EMPTY)

    try:
        elements = _as_elements(json.loads(raw))
    except (ValueError, RecursionError):
        elements = None
    if elements is not None:
        return DecodeResult(DecodeStatus.COMPLETE, elements)

    last = raw.rfind("}")
    if last < 0:
        return DecodeResult(DecodeStatus.EMPTY)
    try:
        elements = _as_elements(json.loads(raw[: last + 1] + "]"))
    except (ValueError, RecursionError):
        elements = None
    if elements is None:
        logger.debug("Undecodable element stream (%d chars)", len(raw))
        return DecodeResult(DecodeStatus.EMPTY)
    return DecodeResult(DecodeStatus.BEST_EFFORT, elements)


def drop_unsettled(elements: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop the element still being written at the tail of a partial stream.

    A lone element is never known to be complete, so it is dropped too.
    """
    if len(elements) <= 1:
        return []
    return elements[:-1]


def decode(raw: str | None, is_final: bool) -> list[dict[str, Any]]:
    """Decode an update string; partial updates lose their last element."""
    elements = parse_elements(raw).elements
    if is_final:
        return elements
    return drop_unsettled(elements)
