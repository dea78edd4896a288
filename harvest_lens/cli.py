from __future__ import annotations

import argparse

from harvest_lens.constants import DEFAULT_THRESHOLD


def _source(value: str) -> int | str:
    return int(value) if value.isdigit() else value


def _size(value: str) -> tuple[int, int]:
    try:
        width, height = (int(part) for part in value.lower().split("x", 1))
    except ValueError as exc:
        message = f"expected WIDTHxHEIGHT, got {value!r}"
        raise argparse.ArgumentTypeError(message) from exc
    return width, height


def _failures(value: str) -> int | None:
    count = int(value)
    return None if count <= 0 else count


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Real-time fruit detection with live class counts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  harvest-lens --model resources/models/fruits.onnx
  harvest-lens --source 1 --facing user --conf 0.6
  harvest-lens --source orchard.mp4 --tally-mode session
  harvest-lens-stream --host 0.0.0.0 --port 5000
		""",
    )

    parser.add_argument(
        "--source",
        type=_source,
        default=0,
        help="Camera index, video file or stream URL",
    )
    parser.add_argument(
        "--facing",
        type=str,
        choices=["user", "environment"],
        default="environment",
        help="Preferred camera orientation (best effort)",
    )
    parser.add_argument("--width", type=int, default=1280)
    parser.add_argument("--height", type=int, default=720)
    parser.add_argument("--fps", type=int, default=30)
    parser.add_argument("--model", type=str, default="resources/models/fruits.onnx")
    parser.add_argument(
        "--classes",
        type=str,
        default=None,
        help="JSON or text file listing class names in model order",
    )
    parser.add_argument("--conf", type=float, default=DEFAULT_THRESHOLD)
    parser.add_argument(
        "--layout",
        type=str,
        choices=["nhwc", "nchw"],
        default="nhwc",
        help="Tensor layout the model expects",
    )
    parser.add_argument(
        "--input-size",
        type=_size,
        default=None,
        help="Model input as WIDTHxHEIGHT (default: read from the model)",
    )
    parser.add_argument(
        "--surface",
        type=_size,
        default=(640, 640),
        help="Overlay surface size as WIDTHxHEIGHT",
    )
    parser.add_argument(
        "--tally-mode",
        type=str,
        choices=["per_tick", "session"],
        default="per_tick",
        help="Reset counts every frame or also keep session totals",
    )
    parser.add_argument(
        "--max-failures",
        type=_failures,
        default=30,
        help="Stop detection after this many failed frames in a row (0 disables)",
    )
    parser.add_argument(
        "--slow-ms",
        type=float,
        default=None,
        help="Warn when inference exceeds this many ms (default: one frame)",
    )
    parser.add_argument(
        "--probe-devices",
        type=int,
        default=0,
        help="Try this many following camera indices if --source fails",
    )
    parser.add_argument(
        "--debug-boxes",
        action="store_true",
        help="Log the first decoded boxes of every frame at DEBUG level",
    )
    parser.add_argument("--no-display", action="store_true")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--log-dir", type=str, default="logs")
    parser.add_argument("--json-logs", action="store_true")
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )
    return parser


def parse_args(argv: list | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    return build_parser().parse_args(argv)
