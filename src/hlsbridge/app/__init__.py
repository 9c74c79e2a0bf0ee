"""Bridge application factory."""
from __future__ import annotations

from typing import Any, Mapping, Optional

from flask import Flask

from ..engine.router import MediaRouter
from .bootstrap import configure_media_routes, init_logging, load_configuration
from .extensions import (
    configure_cors,
    init_bridge_runtime,
    init_settings,
    init_status_broadcaster,
    register_blueprints,
    register_shutdown,
)
from .runtime import BridgeRuntime


def create_app(router: MediaRouter, config_overrides: Optional[Mapping[str, Any]] = None) -> Flask:
    """Create the status/media Flask app and start the bridge runtime for ``router``."""

    init_logging()
    app = Flask(__name__)
    load_configuration(app, config_overrides)

    settings = init_settings(app)
    status_broadcaster = init_status_broadcaster(app, settings)
    runtime = init_bridge_runtime(app, router, settings, broadcaster=status_broadcaster)

    register_blueprints(app)
    configure_media_routes(app)

    configure_cors(app, app.config.get("BRIDGE_CORS_ORIGIN", "*"))
    register_shutdown(runtime)

    return app


__all__ = ["BridgeRuntime", "create_app"]
