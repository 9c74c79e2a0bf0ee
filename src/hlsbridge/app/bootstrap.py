"""Bootstrap helpers for the bridge Flask application."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Mapping, Optional

from flask import Flask, Response, abort, send_from_directory

from ..config import build_default_config
from ..logging_config import configure_logging
from ..utils import to_bool

NO_CACHE_EXTENSIONS = {"m3u8", "sdp"}


def init_logging() -> None:
    """Configure logging for the bridge service."""

    configure_logging("hls-bridge")


def load_configuration(app: Flask, overrides: Optional[Mapping[str, Any]] = None) -> None:
    """Populate the default configuration values on the Flask app."""

    app.config.from_mapping(build_default_config())
    if overrides:
        app.config.update(dict(overrides))


def configure_media_routes(app: Flask) -> None:
    """Serve the HLS output root read-only under ``/hls/``."""

    if not to_bool(app.config.get("BRIDGE_MEDIA_ENDPOINT_ENABLED")):
        return

    output_root = Path(app.config["BRIDGE_OUTPUT_ROOT"]).expanduser().resolve()
    output_root.mkdir(parents=True, exist_ok=True)

    def _resolve_media_path(fragment: str) -> Path:
        target = (output_root / fragment).expanduser().resolve()
        try:
            target.relative_to(output_root)
        except ValueError:
            abort(400, description="Invalid media path")
        return target

    @app.route("/hls/", defaults={"requested_path": ""}, methods=["GET", "HEAD"])
    @app.route("/hls/<path:requested_path>", methods=["GET", "HEAD"])
    def hls_media(requested_path: str) -> Response:
        target = _resolve_media_path(requested_path)
        if target.is_dir():
            abort(403, description="Directories are not browsable")
        if not target.is_file():
            abort(404)
        relative_path = target.relative_to(output_root).as_posix()
        response = send_from_directory(str(output_root), relative_path, conditional=True)
        extension = target.suffix.lstrip(".").lower()
        if extension in NO_CACHE_EXTENSIONS:
            response.headers["Cache-Control"] = "no-cache, no-store"
        if extension == "m3u8":
            response.mimetype = "application/vnd.apple.mpegurl"
        elif extension == "ts":
            response.mimetype = "video/mp2t"
        return response


__all__ = ["configure_media_routes", "init_logging", "load_configuration"]
