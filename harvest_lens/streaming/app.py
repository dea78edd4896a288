"""Flask app exposing camera/detection controls, counts and the overlay stream."""

from __future__ import annotations

import os
from typing import TYPE_CHECKING

from flask import Flask, Response, jsonify, render_template, stream_with_context
from loguru import logger

from harvest_lens.cli import parse_args
from harvest_lens.logging import configure_logging
from harvest_lens.pipeline.errors import (
    BackendUnavailableError,
    InferenceError,
    NoDeviceError,
    PermissionDeniedError,
    PipelineError,
    StateError,
)
from harvest_lens.runtime import build_controller
from harvest_lens.streaming.generator import gen_frames


if TYPE_CHECKING:
    from harvest_lens.pipeline.controller import LoopController


def _status_code(exc: PipelineError) -> int:
    if isinstance(exc, PermissionDeniedError):
        return 403
    if isinstance(exc, StateError):
        return 409
    if isinstance(exc, (NoDeviceError, BackendUnavailableError)):
        return 503
    if isinstance(exc, InferenceError):
        return 422
    return 500


def create_app(controller: LoopController) -> Flask:
    """Create the control and streaming app around ``controller``."""
    app = Flask(__name__)
    app.config["SEND_FILE_MAX_AGE_DEFAULT"] = 0  # Disable caching for static files

    @app.errorhandler(PipelineError)
    def pipeline_error(exc: PipelineError) -> tuple[Response, int]:
        logger.warning("Request failed: {}", exc)
        body = jsonify(
            {
                "error": type(exc).__name__,
                "message": str(exc),
                "state": controller.state.value,
            }
        )
        return body, _status_code(exc)

    @app.route("/video_feed")
    def video_feed() -> Response:
        """Return multipart MJPEG stream of annotated frames."""
        response = Response(
            stream_with_context(gen_frames(controller)),
            mimetype="multipart/x-mixed-replace; boundary=frame",
        )
        # Disable caching so the browser always loads the newest frame
        response.headers["Cache-Control"] = "no-cache, no-store, must-revalidate"
        response.headers["Pragma"] = "no-cache"
        response.headers["Expires"] = "0"
        return response

    @app.get("/api/status")
    def status() -> Response:
        return jsonify(controller.status())

    @app.post("/api/camera/start")
    def camera_start() -> Response:
        controller.open_camera()
        return jsonify(controller.status())

    @app.post("/api/camera/stop")
    def camera_stop() -> Response:
        controller.close_camera()
        return jsonify(controller.status())

    @app.post("/api/detection/start")
    def detection_start() -> Response:
        controller.start_detection()
        return jsonify(controller.status())

    @app.post("/api/detection/stop")
    def detection_stop() -> Response:
        controller.stop_detection()
        return jsonify(controller.status())

    @app.route("/")
    def index() -> str:
        """Render the control page."""
        return render_template("index.html")

    app.extensions["controller"] = controller
    return app


def run(argv: list[str] | None = None) -> None:
    """Run the streaming Flask app."""
    args = parse_args(argv)
    configure_logging(args.log_level, args.log_dir, json_logs=args.json_logs)
    controller = build_controller(args, publish_frames=True)
    app = create_app(controller)
    try:
        host = args.host or os.getenv("HARVEST_LENS_STREAM_HOST", "127.0.0.1")
        port = args.port or int(os.getenv("HARVEST_LENS_STREAM_PORT", "5000"))
        debug = os.getenv("HARVEST_LENS_STREAM_DEBUG", "").strip().lower() in {
            "1",
            "true",
            "yes",
        }
        app.run(
            host=host,
            port=port,
            debug=debug,
            threaded=True,
            use_reloader=False,
        )
    except KeyboardInterrupt:
        logger.info("Shutting down video stream")
    finally:
        controller.shutdown()


if __name__ == "__main__":
    run()
