#!/usr/bin/env python3
"""CLI: Replay an element array through a diagram view as if it were streamed."""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# Ensure the package is importable when running as a script
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

from drawcast import config
from drawcast.scene.reconciler import CheckpointNotFoundError
from drawcast.storage.checkpoint_store import CheckpointError
from drawcast.storage.factory import create_checkpoint_store
from drawcast.view.diagram_view import DiagramView, InvalidInputError


def _read_elements(args: argparse.Namespace) -> str:
    if args.elements is not None:
        return args.elements
    if args.file is None or str(args.file) == "-":
        return sys.stdin.read()
    if not args.file.is_file():
        print(f"Error: {args.file} is not a file.", file=sys.stderr)
        sys.exit(1)
    return args.file.read_text(encoding="utf-8")


def main() -> None:
    parser = argparse.ArgumentParser(description="Replay a diagram element stream")
    parser.add_argument(
        "file",
        type=Path,
        nargs="?",
        default=None,
        help="JSON file with the elements array (default: stdin)",
    )
    parser.add_argument(
        "--elements",
        type=str,
        default=None,
        help="Elements array as a literal JSON string instead of a file",
    )
    parser.add_argument(
        "--chunk",
        type=int,
        default=64,
        help="Characters delivered per partial update (default: 64)",
    )
    parser.add_argument(
        "--partial-only",
        action="store_true",
        help="Stop after the partial updates; nothing is persisted",
    )
    args = parser.parse_args()

    if args.chunk <= 0:
        print("Error: --chunk must be positive.", file=sys.stderr)
        sys.exit(1)

    raw = _read_elements(args)
    if not config.KV_REST_API_URL and config.CHECKPOINT_DIR is None:
        print("Note: no KV store or CHECKPOINT_DIR configured; checkpoints live only for this run.")

    view = DiagramView(create_checkpoint_store())
    start = time.time()
    frames = 0
    strokes = 0
    for end in range(args.chunk, len(raw) + args.chunk, args.chunk):
        frame = view.on_partial_input(raw[:end])
        if frame is None:
            continue
        frames += 1
        strokes += len(frame.strokes)
        print(f"  partial frame {frames}: {len(frame.elements)} elements (+{len(frame.strokes)})")

    if args.partial_only:
        print(f"\n{frames} partial frames, {strokes} strokes in {time.time() - start:.2f}s")
        view.close()
        return

    try:
        frame = view.on_final_input(raw)
    except (InvalidInputError, CheckpointNotFoundError, CheckpointError) as e:
        print(f"Error: {e}", file=sys.stderr)
        view.close()
        sys.exit(1)

    ticks = view.animator.run_to_rest()
    settled = view.current_frame().viewbox
    view.close()

    print(f"\nFinal scene: {len(frame.elements)} elements")
    if settled is not None:
        print(f"  viewBox: {settled.to_attr()} (settled after {ticks} ticks)")
    print(f"  Partial frames: {frames}, strokes: {strokes}")
    print(f"  Checkpoint id: {frame.checkpoint_id}")
    print(f"\nDone in {time.time() - start:.2f}s")


if __name__ == "__main__":
    main()
