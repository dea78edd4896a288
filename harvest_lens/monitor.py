"""Desktop entry point: OpenCV window with live fruit counts."""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

import cv2
import numpy as np
from loguru import logger

from harvest_lens.cli import parse_args
from harvest_lens.logging import configure_logging
from harvest_lens.pipeline.errors import AcquireError, InferenceError, StateError
from harvest_lens.pipeline.types import ClassTally, LoopState
from harvest_lens.runtime import build_controller


if TYPE_CHECKING:
    from harvest_lens.pipeline.controller import LoopController


WINDOW_NAME = "Harvest-Lens"


def draw_counts_panel(frame: np.ndarray, counts: ClassTally, state: LoopState) -> None:
    """Draw the state and per-class counts in the top-left corner."""
    lines = [f"--- {state.value.replace('_', ' ')} ---"]
    lines.extend(f"{name}: {count}" for name, count in sorted(counts.items()))

    line_height = 22
    panel_height = 15 + line_height * len(lines)
    cv2.rectangle(frame, (5, 5), (240, panel_height), (0, 0, 0), -1)
    cv2.rectangle(frame, (5, 5), (240, panel_height), (100, 100, 100), 1)

    y_offset = 25
    for line in lines:
        cv2.putText(
            frame,
            line,
            (10, y_offset),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            (255, 255, 255),
            1,
        )
        y_offset += line_height


def _handle_key(controller: LoopController, key: int) -> bool:
    if key == ord("q"):
        logger.info("Quit requested by user")
        return False
    try:
        if key == ord("d"):
            if controller.state is LoopState.DETECTING:
                controller.stop_detection()
            else:
                controller.start_detection()
        elif key == ord("c"):
            if controller.state is LoopState.IDLE:
                controller.open_camera()
            else:
                controller.close_camera()
    except (AcquireError, InferenceError, StateError) as exc:
        logger.error("Cannot change state: {}", exc)
    return True


def _display_loop(controller: LoopController) -> None:
    blank = np.zeros((480, 640, 3), dtype=np.uint8)
    while True:
        view = controller.current_view()
        frame = blank.copy() if view is None else view.copy()
        draw_counts_panel(frame, controller.latest_tally, controller.state)
        cv2.imshow(WINDOW_NAME, frame)
        key = cv2.waitKey(15) & 0xFF
        if key != 0xFF and not _handle_key(controller, key):
            return


def run_monitor(argv: list[str] | None = None) -> int:
    """Run detection with a preview window (or headless with ``--no-display``)."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_dir, json_logs=args.json_logs)
    controller = build_controller(args, publish_frames=not args.no_display)

    try:
        controller.open_camera()
        controller.start_detection()
    except AcquireError:
        controller.shutdown()
        return 1
    except InferenceError as exc:
        logger.error("Cannot start detection: {}", exc)
        controller.shutdown()
        return 1

    logger.info("Keys: 'd' toggle detection | 'c' toggle camera | 'q' quit")
    try:
        if args.no_display:
            while controller.state is LoopState.DETECTING:
                time.sleep(0.5)
        else:
            _display_loop(controller)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        controller.shutdown()
        if not args.no_display:
            cv2.destroyAllWindows()
        logger.success("Cleanup complete. Goodbye!")

    return 0


if __name__ == "__main__":
    raise SystemExit(run_monitor())
