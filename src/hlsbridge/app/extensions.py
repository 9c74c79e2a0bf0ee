"""Extension wiring for the bridge Flask application."""
from __future__ import annotations

import atexit
import logging
from typing import Optional

from flask import Flask, Response, request

from ..engine.router import MediaRouter
from ..engine.status import StatusBroadcaster
from ..routes import api_bp
from ..settings import BridgeSettings, build_settings
from .runtime import BridgeRuntime

LOGGER = logging.getLogger(__name__)


def init_settings(app: Flask) -> BridgeSettings:
    settings = build_settings(app.config)
    app.extensions["bridge_settings"] = settings
    return settings


def init_status_broadcaster(app: Flask, settings: BridgeSettings) -> Optional[StatusBroadcaster]:
    status = settings.status
    if not status.redis_url:
        LOGGER.info("No Redis URL configured; status broadcasting disabled")
        return None
    broadcaster = StatusBroadcaster(
        redis_url=status.redis_url,
        prefix=status.prefix,
        namespace=status.namespace,
        key=status.key,
        channel=status.channel,
        ttl_seconds=status.ttl_seconds,
    )
    if not broadcaster.available:
        LOGGER.warning("Status broadcasting unavailable: %s", broadcaster.last_error)
    app.extensions["bridge_status_broadcaster"] = broadcaster
    return broadcaster


def init_bridge_runtime(
    app: Flask,
    router: MediaRouter,
    settings: BridgeSettings,
    *,
    broadcaster: Optional[StatusBroadcaster] = None,
) -> BridgeRuntime:
    runtime = BridgeRuntime(router, settings, broadcaster=broadcaster)
    runtime.start()
    app.extensions["bridge_runtime"] = runtime
    return runtime


def register_blueprints(app: Flask) -> None:
    app.register_blueprint(api_bp)


def register_shutdown(runtime: BridgeRuntime) -> None:
    atexit.register(runtime.stop)


def configure_cors(app: Flask, cors_origin: str | None) -> None:
    allowed_default = cors_origin or "*"

    @app.after_request
    def add_cors_headers(response: Response) -> Response:
        origin = request.headers.get("Origin")
        allowed_origin = allowed_default
        if allowed_default == "*" and origin:
            allowed_origin = origin
        response.headers["Access-Control-Allow-Origin"] = allowed_origin
        response.headers.setdefault("Access-Control-Allow-Headers", "Content-Type, Range")
        response.headers.setdefault("Access-Control-Allow-Methods", "GET,HEAD,OPTIONS")
        if origin:
            response.headers.add("Vary", "Origin")
        return response


__all__ = [
    "configure_cors",
    "init_bridge_runtime",
    "init_settings",
    "init_status_broadcaster",
    "register_blueprints",
    "register_shutdown",
]
