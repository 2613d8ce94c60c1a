"""Registry of live diagram views sharing one checkpoint store."""

from __future__ import annotations

import logging
import threading
import uuid

from drawcast.storage.checkpoint_store import CheckpointStore
from drawcast.view.diagram_view import DiagramView
from drawcast.view.viewport import FrameScheduler, TimerScheduler

logger = logging.getLogger(__name__)


class ViewManager:
    """Creates, looks up, and tears down diagram views.

    The store is owned by the caller and shared by every view; each view
    keeps its own reconciliation and animation state.
    """

    def __init__(self, store: CheckpointStore, scheduler: FrameScheduler | None = None) -> None:
        self._store = store
        self._scheduler = scheduler if scheduler is not None else TimerScheduler()
        self._views: dict[str, DiagramView] = {}
        self._lock = threading.Lock()

    @property
    def store(self) -> CheckpointStore:
        return self._store

    def create(self) -> str:
        """Open a new view and return its id."""
        view_id = uuid.uuid4().hex
        view = DiagramView(self._store, scheduler=self._scheduler)
        with self._lock:
            self._views[view_id] = view
        logger.info("Opened view %s", view_id)
        return view_id

    def get(self, view_id: str) -> DiagramView | None:
        with self._lock:
            return self._views.get(view_id)

    def close(self, view_id: str) -> bool:
        """Tear down a view. Returns False if it does not exist."""
        with self._lock:
            view = self._views.pop(view_id, None)
        if view is None:
            return False
        view.close()
        logger.info("Closed view %s", view_id)
        return True

    def close_all(self) -> None:
        with self._lock:
            views = list(self._views.values())
            self._views.clear()
        for view in views:
            view.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._views)
