"""FastAPI server exposing diagram views, agent tools, and checkpoints."""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from drawcast import config
from drawcast.api.view_manager import ViewManager
from drawcast.scene.reconciler import CheckpointNotFoundError
from drawcast.storage.checkpoint_store import (
    CheckpointStoreError,
    CheckpointTooLargeError,
    InvalidCheckpointIdError,
)
from drawcast.storage.factory import create_checkpoint_store
from drawcast.tools.create_view import create_view
from drawcast.tools.read_me import read_me
from drawcast.view.diagram_view import DiagramView, Frame, InvalidInputError, ViewClosedError

# Configure logging on import, before anything else logs
logging.basicConfig(
    level=getattr(logging, config.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)-5s [%(name)s] %(message)s",
    datefmt="%H:%M:%S",
)

logger = logging.getLogger(__name__)

# Lazy-initialized on first request; backend selection happens exactly once
_view_manager: ViewManager | None = None


def _get_view_manager() -> ViewManager:
    global _view_manager
    if _view_manager is None:
        logger.info("Initializing checkpoint store...")
        t0 = time.perf_counter()
        _view_manager = ViewManager(create_checkpoint_store())
        logger.info("Checkpoint store ready (%.2fs)", time.perf_counter() - t0)
    return _view_manager


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    if _view_manager is not None:
        _view_manager.close_all()
        # Only remote backends hold connections
        close_store = getattr(_view_manager.store, "close", None)
        if close_store is not None:
            close_store()
            logger.info("Checkpoint store closed")


app = FastAPI(title="drawcast", description="Streaming diagram views with checkpoints", lifespan=lifespan)


class InputRequest(BaseModel):
    elements: str
    final: bool = False


class CreateViewRequest(BaseModel):
    elements: str


class ViewBoxResponse(BaseModel):
    x: float
    y: float
    w: float
    h: float


class FrameResponse(BaseModel):
    elements: list[dict[str, Any]]
    viewbox: ViewBoxResponse | None = None
    is_final: bool = False
    checkpoint_id: str | None = None
    strokes: list[str] = []


class ToolResponse(BaseModel):
    text: str
    is_error: bool = False
    structured: dict[str, Any] = {}


class CheckpointResponse(BaseModel):
    id: str
    elements: list[dict[str, Any]]
    viewport: dict[str, float] | None = None
    saved_at: datetime


def _frame_response(frame: Frame) -> FrameResponse:
    vb = frame.viewbox
    return FrameResponse(
        elements=frame.elements,
        viewbox=ViewBoxResponse(x=vb.x, y=vb.y, w=vb.w, h=vb.h) if vb else None,
        is_final=frame.is_final,
        checkpoint_id=frame.checkpoint_id,
        strokes=frame.strokes,
    )


def _require_view(view_id: str) -> DiagramView:
    view = _get_view_manager().get(view_id)
    if view is None:
        raise HTTPException(status_code=404, detail=f"Unknown view {view_id}")
    return view


def _http_error(e: Exception) -> HTTPException:
    """Map subsystem errors onto short, actionable HTTP errors."""
    if isinstance(e, (InvalidInputError, InvalidCheckpointIdError)):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, CheckpointTooLargeError):
        return HTTPException(status_code=413, detail=str(e))
    if isinstance(e, CheckpointNotFoundError):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ViewClosedError):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, CheckpointStoreError):
        return HTTPException(status_code=502, detail=f"Checkpoint storage failed: {e}")
    return HTTPException(status_code=500, detail=str(e))


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/read_me")
def get_read_me():
    return {"text": read_me()}


@app.post("/views")
def open_view():
    return {"view_id": _get_view_manager().create()}


@app.delete("/views/{view_id}")
def close_view(view_id: str):
    if not _get_view_manager().close(view_id):
        raise HTTPException(status_code=404, detail=f"Unknown view {view_id}")
    return {"closed": True}


@app.post("/views/{view_id}/input", response_model=FrameResponse)
def push_input(view_id: str, req: InputRequest):
    """Feed one streamed update (partial or final) into a view."""
    view = _require_view(view_id)
    logger.debug("POST /views/%s/input final=%s (%d chars)", view_id, req.final, len(req.elements))
    try:
        if req.final:
            frame = view.on_final_input(req.elements)
        else:
            frame = view.on_partial_input(req.elements) or view.current_frame()
    except (
        InvalidInputError,
        CheckpointNotFoundError,
        InvalidCheckpointIdError,
        CheckpointTooLargeError,
        CheckpointStoreError,
        ViewClosedError,
    ) as e:
        raise _http_error(e) from e
    return _frame_response(frame)


@app.post("/views/{view_id}/create_view", response_model=ToolResponse)
def create_view_tool(view_id: str, req: CreateViewRequest):
    """Tool-call form of a final update: errors come back as tool text."""
    view = _require_view(view_id)
    try:
        result = create_view(view, req.elements)
    except ViewClosedError as e:
        raise _http_error(e) from e
    return ToolResponse(text=result.text, is_error=result.is_error, structured=result.structured)


@app.get("/views/{view_id}/frame", response_model=FrameResponse)
def get_frame(view_id: str):
    return _frame_response(_require_view(view_id).current_frame())


@app.get("/checkpoints/{checkpoint_id}", response_model=CheckpointResponse)
def get_checkpoint(checkpoint_id: str):
    try:
        checkpoint = _get_view_manager().store.load(checkpoint_id)
    except (InvalidCheckpointIdError, CheckpointStoreError) as e:
        raise _http_error(e) from e
    if checkpoint is None:
        raise _http_error(CheckpointNotFoundError(checkpoint_id))
    return CheckpointResponse(
        id=checkpoint.id,
        elements=checkpoint.elements,
        viewport=checkpoint.viewport,
        saved_at=checkpoint.saved_at,
    )
