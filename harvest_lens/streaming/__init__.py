"""HTTP control surface and MJPEG streaming."""

from __future__ import annotations

from harvest_lens.streaming.app import create_app, run
from harvest_lens.streaming.generator import encode_chunk, gen_frames


__all__ = [
    "create_app",
    "encode_chunk",
    "gen_frames",
    "run",
]
