"""Shared test helpers: element factories and fake collaborators."""

import json


def rect(el_id: str, x: float = 0, y: float = 0, **extra) -> dict:
    """A rectangle element."""
    return {"type": "rectangle", "id": el_id, "x": x, "y": y, "width": 100, "height": 50, **extra}


def camera(x: float, y: float, width: float, height: float) -> dict:
    return {"type": "cameraUpdate", "x": x, "y": y, "width": width, "height": height}


def delete(*ids: str) -> dict:
    return {"type": "delete", "ids": ",".join(ids)}


def restore(checkpoint_id: str) -> dict:
    return {"type": "restoreCheckpoint", "id": checkpoint_id}


def dumps(elements: list[dict]) -> str:
    return json.dumps(elements)


class _Handle:
    def __init__(self, scheduler: "FakeScheduler", callback) -> None:
        self._scheduler = scheduler
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class FakeScheduler:
    """Collects scheduled frame callbacks so tests can fire them by hand."""

    def __init__(self) -> None:
        self.handles: list[_Handle] = []

    def call_later(self, delay, callback):
        handle = _Handle(self, callback)
        self.handles.append(handle)
        return handle

    @property
    def pending(self) -> list[_Handle]:
        return [h for h in self.handles if not h.cancelled]

    def fire(self) -> None:
        """Run every pending callback once."""
        for handle in self.pending:
            handle.cancelled = True
            handle.callback()


class RecordingSurface:
    def __init__(self) -> None:
        self.renders: list[list[dict]] = []
        self.viewboxes: list = []

    def render(self, elements):
        self.renders.append(list(elements))

    def apply_viewbox(self, viewbox):
        self.viewboxes.append(viewbox)


class FailingSurface:
    def render(self, elements):
        raise RuntimeError("malformed geometry")

    def apply_viewbox(self, viewbox):
        raise RuntimeError("no svg yet")
