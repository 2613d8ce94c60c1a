"""read_me tool: element format reference for the drawing agent."""

from __future__ import annotations

ELEMENT_REFERENCE = """\
# Diagram element format

Call this once per conversation, then draw with create_view.

## Elements
`elements` is a JSON array string. Each item is an object with a `type` and
a unique `id`. Elements render in array order: later items are drawn on top.

| type | required fields | notes |
|------|-----------------|-------|
| rectangle, ellipse, diamond | x, y, width, height | optional `label: {"text": "..."}` |
| text | x, y, text | optional fontSize |
| arrow, line | x, y, points | points are [dx, dy] offsets from x/y |

Common style fields: strokeColor, backgroundColor, fillStyle ("solid",
"hachure"), strokeWidth, roundness, opacity (0-100). Bind a text element to a
shape with `containerId`.

## Palette
| Name | Stroke | Fill |
|------|--------|------|
| Blue | #4a9eed | #a5d8ff |
| Green | #22c55e | #b2f2bb |
| Amber | #f59e0b | #ffd8a8 |
| Purple | #8b5cf6 | #d0bfff |
| Red | #ef4444 | #ffc9c9 |

## Directives (never drawn)
- Camera: `{"type":"cameraUpdate","x":0,"y":0,"width":800,"height":600}`.
  Emit one before each region you draw to pan the view there; keep a 4:3
  aspect ratio. The last camera in the array is the saved viewport.
- Delete: `{"type":"delete","ids":"a,b"}` removes earlier elements with those
  ids, and anything whose containerId points at them. Drawing an element and
  deleting it later in the same array fades it out in place.
- Restore: `{"type":"restoreCheckpoint","id":"<checkpoint id>"}` as the FIRST
  element continues from a diagram saved by an earlier create_view call.

## Tips
- Emit elements in reading order: background shapes, then labels, then arrows.
- Keep the JSON compact and valid: no comments, no trailing commas.
"""


def read_me() -> str:
    """Return the element format reference."""
    return ELEMENT_REFERENCE
