"""Read-only HTTP routes describing the bridge state."""
from __future__ import annotations

import concurrent.futures
from datetime import datetime, timezone
from http import HTTPStatus
from pathlib import Path
from stat import S_ISREG
from typing import TYPE_CHECKING, Any, Dict, Optional

from flask import Blueprint, abort, current_app, jsonify

from ..logging_config import current_log_file
from ..settings import BridgeSettings

if TYPE_CHECKING:
    from ..app.runtime import BridgeRuntime

api_bp = Blueprint("bridge_api", __name__)


def _runtime() -> "BridgeRuntime":
    runtime = current_app.extensions.get("bridge_runtime")
    if runtime is None or not runtime.running():
        abort(HTTPStatus.SERVICE_UNAVAILABLE, description="Bridge runtime is not running")
    return runtime


def _settings() -> BridgeSettings:
    return current_app.extensions["bridge_settings"]


@api_bp.route("/health", methods=["GET"])
def health_endpoint():
    runtime = current_app.extensions.get("bridge_runtime")
    payload = {
        "status": "ok",
        "service": "hls-bridge",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "runtime": bool(runtime and runtime.running()),
    }
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/status", methods=["GET"])
def status_endpoint():
    runtime = _runtime()
    try:
        status = runtime.snapshot()
    except concurrent.futures.TimeoutError:
        return jsonify({"error": "Timed out collecting bridge status"}), HTTPStatus.GATEWAY_TIMEOUT
    payload = status.to_payload(updated_at=datetime.now(timezone.utc).isoformat())
    payload["config"] = runtime.context.describe()
    log_file = current_log_file()
    if log_file is not None:
        payload["log_file"] = str(log_file)
    return jsonify(payload), HTTPStatus.OK


@api_bp.route("/sessions/<string:key>/files", methods=["GET"])
def session_files_endpoint(key: str):
    runtime = _runtime()
    try:
        session = runtime.call(_lookup_session, runtime, key)
    except concurrent.futures.TimeoutError:
        return jsonify({"error": f"Timed out looking up session {key}"}), HTTPStatus.GATEWAY_TIMEOUT
    if session is None:
        abort(HTTPStatus.NOT_FOUND, description=f"Unknown session {key}")

    root = _settings().output_root.expanduser().resolve()
    directory = Path(session["directory"]).expanduser().resolve()
    try:
        directory.relative_to(root)
    except ValueError:
        abort(HTTPStatus.BAD_REQUEST, description="Session directory outside output root")

    files = []
    if directory.is_dir():
        for entry in sorted(directory.iterdir()):
            described = _describe_file(entry)
            if described is not None:
                files.append(described)
    return jsonify({"key": key, "directory": str(directory), "files": files}), HTTPStatus.OK


def _describe_file(entry: Path) -> Optional[Dict[str, Any]]:
    # Segments can be deleted by FFmpeg between listing and stat.
    try:
        stat = entry.stat()
    except FileNotFoundError:
        return None
    if not S_ISREG(stat.st_mode):
        return None
    return {
        "name": entry.name,
        "size": stat.st_size,
        "modified": datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
    }


async def _lookup_session(runtime: "BridgeRuntime", key: str):
    session = runtime.context.registry.lookup(key)
    return session.to_dict() if session is not None else None


__all__ = ["api_bp"]
