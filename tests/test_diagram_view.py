"""Tests for DiagramView: the partial/final entry points and render wiring."""

from __future__ import annotations

import pytest

from drawcast.scene.elements import DEFAULT_VIEWPORT
from drawcast.scene.reconciler import CheckpointNotFoundError
from drawcast.view.diagram_view import (
    DiagramView,
    InvalidInputError,
    SnapshotSurface,
    ViewClosedError,
)
from drawcast.view.viewport import ViewBox
from tests.helpers import FailingSurface, RecordingSurface, camera, delete, dumps, rect, restore


@pytest.fixture
def surface():
    return RecordingSurface()


@pytest.fixture
def view(memory_store, surface, scheduler):
    return DiagramView(memory_store, surface=surface, scheduler=scheduler)


class TestPartialInput:
    def test_unsettled_element_not_drawn(self, view, surface):
        assert view.on_partial_input(dumps([rect("a")])) is None
        assert surface.renders == []

    def test_settled_elements_rendered(self, view, surface):
        frame = view.on_partial_input(dumps([rect("a"), rect("b")]))
        assert [el["id"] for el in frame.elements] == ["a"]
        assert frame.strokes == ["rectangle"]
        assert frame.is_final is False
        assert frame.checkpoint_id is None
        assert surface.renders[-1][0]["id"] == "a"

    def test_truncated_stream(self, view):
        raw = dumps([rect("a"), rect("b")])[:-20]
        assert view.on_partial_input(raw) is None
        frame = view.on_partial_input(dumps([rect("a"), rect("b"), rect("c")])[:-5])
        assert [el["id"] for el in frame.elements] == ["a"]

    def test_repeat_without_changes(self, view):
        raw = dumps([camera(0, 0, 400, 300), rect("a"), rect("b")])
        assert view.on_partial_input(raw) is not None
        assert view.on_partial_input(raw) is None

    def test_settled_delete_alone_produces_frame(self, view, surface):
        view.on_partial_input(dumps([rect("a"), rect("b"), delete("a")]))
        frame = view.on_partial_input(dumps([rect("a"), rect("b"), delete("a"), delete("zzz")]))
        assert frame is not None
        assert frame.strokes == []
        assert frame.elements[0]["opacity"] == 1
        assert surface.renders[-1][0]["opacity"] == 1
        # Same suppression again is not a change
        assert view.on_partial_input(dumps([rect("a"), rect("b"), delete("a"), delete("zzz")])) is None

    def test_camera_change_alone_produces_frame(self, view):
        view.on_partial_input(dumps([rect("a"), camera(0, 0, 400, 300)]))
        frame = view.on_partial_input(dumps([rect("a"), camera(0, 0, 800, 600), {"id": "tail"}]))
        assert frame is not None
        assert view.animator.target.width == 800

    def test_default_viewport_when_no_camera(self, view):
        view.on_partial_input(dumps([rect("a"), rect("b")]))
        assert view.animator.target == DEFAULT_VIEWPORT

    def test_stroke_callback_errors_swallowed(self, memory_store, surface):
        def bad(_):
            raise RuntimeError("no audio")

        view = DiagramView(memory_store, surface=surface, on_stroke=bad)
        frame = view.on_partial_input(dumps([rect("a"), rect("b")]))
        assert frame.strokes == ["rectangle"]


class TestFinalInput:
    def test_persists_checkpoint(self, view, memory_store):
        frame = view.on_final_input(dumps([rect("a"), rect("b")]))
        assert frame.is_final
        assert frame.checkpoint_id == view.checkpoint_id
        assert [el["id"] for el in memory_store.load(frame.checkpoint_id).elements] == ["a", "b"]

    def test_viewbox_follows_camera_and_bounds(self, view, surface):
        frame = view.on_final_input(dumps([camera(100, 100, 400, 300), rect("a", 0, 0)]))
        assert frame.viewbox == ViewBox(120, 120, 400, 300)
        assert surface.viewboxes[-1] == ViewBox(120, 120, 400, 300)

    def test_truncated_final_uses_recovered_elements(self, view):
        raw = dumps([rect("a"), rect("b")])[:-15]
        frame = view.on_final_input(raw)
        assert [el["id"] for el in frame.elements] == ["a"]

    def test_invalid_input(self, view, memory_store):
        with pytest.raises(InvalidInputError):
            view.on_final_input("not json")
        with pytest.raises(InvalidInputError):
            view.on_final_input('{"type": "rectangle"}')
        assert len(memory_store) == 0

    def test_empty_array_still_checkpoints(self, view, memory_store):
        frame = view.on_final_input("[]")
        assert frame.elements == []
        assert memory_store.load(frame.checkpoint_id).elements == []

    def test_restore_chain(self, view, memory_store):
        first = view.on_final_input(dumps([rect("a"), rect("b")]))
        second = view.on_final_input(dumps([restore(first.checkpoint_id), delete("a"), rect("c")]))
        assert [el["id"] for el in second.elements] == ["b", "c"]
        assert first.checkpoint_id != second.checkpoint_id

    def test_missing_checkpoint(self, view):
        with pytest.raises(CheckpointNotFoundError):
            view.on_final_input(dumps([restore("gone"), rect("a")]))

    def test_render_failure_does_not_abort(self, memory_store):
        view = DiagramView(memory_store, surface=FailingSurface())
        frame = view.on_final_input(dumps([rect("a")]))
        assert frame.checkpoint_id is not None

    def test_partial_after_final_starts_new_stream(self, view):
        view.on_final_input(dumps([rect("a")]))
        frame = view.on_partial_input(dumps([rect("x"), rect("y")]))
        assert frame.strokes == ["rectangle"]
        assert frame.checkpoint_id is None


class TestLifecycle:
    def test_closed_view_refuses_input(self, view, memory_store, scheduler):
        view.on_partial_input(dumps([camera(0, 0, 10, 10), rect("a"), rect("b")]))
        view.close()
        assert view.closed
        assert scheduler.pending == []
        with pytest.raises(ViewClosedError):
            view.on_final_input(dumps([rect("a")]))
        with pytest.raises(ViewClosedError):
            view.on_partial_input(dumps([rect("a"), rect("b")]))
        assert len(memory_store) == 0

    def test_current_frame(self, view):
        view.on_final_input(dumps([rect("a")]))
        frame = view.current_frame()
        assert [el["id"] for el in frame.elements] == ["a"]
        assert frame.strokes == []

    def test_snapshot_surface_default(self, memory_store):
        view = DiagramView(memory_store)
        view.on_final_input(dumps([camera(0, 0, 100, 100), rect("a")]))
        assert isinstance(view.surface, SnapshotSurface)
        assert view.surface.elements[0]["id"] == "a"
        assert view.surface.viewbox == ViewBox(20, 20, 100, 100)
