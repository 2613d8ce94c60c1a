"""create_view tool: finalize a streamed diagram and report its checkpoint."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from drawcast.scene.reconciler import CheckpointNotFoundError
from drawcast.storage.checkpoint_store import CheckpointError
from drawcast.view.diagram_view import DiagramView, InvalidInputError

logger = logging.getLogger(__name__)


@dataclass
class ToolResult:
    text: str
    is_error: bool = False
    structured: dict[str, Any] = field(default_factory=dict)


def _success_text(checkpoint_id: str) -> str:
    return (
        f'Diagram displayed! Checkpoint id: "{checkpoint_id}".\n'
        "If the user asks for a new diagram, simply create a new one from scratch.\n"
        f'To edit this diagram instead, start the elements array with '
        f'{{"type":"restoreCheckpoint","id":"{checkpoint_id}"}} and append your new elements '
        "on top of the saved state.\n"
        'To remove elements, add {"type":"delete","ids":"<id1>,<id2>"}.'
    )


def create_view(view: DiagramView, elements: str) -> ToolResult:
    """Validate and finalize ``elements`` on ``view``.

    Failures come back as error results with a short explanation; the
    hosting process never sees an exception for bad input.
    """
    try:
        json.loads(elements)
    except (ValueError, RecursionError) as e:
        return ToolResult(
            text=(
                f"Invalid JSON in elements: {e}. "
                "Ensure no comments, no trailing commas, and proper quoting."
            ),
            is_error=True,
        )

    try:
        frame = view.on_final_input(elements)
    except (InvalidInputError, CheckpointNotFoundError, CheckpointError) as e:
        logger.info("create_view rejected: %s", e)
        return ToolResult(text=str(e), is_error=True)

    checkpoint_id = frame.checkpoint_id or ""
    return ToolResult(
        text=_success_text(checkpoint_id),
        structured={"checkpointId": checkpoint_id},
    )
