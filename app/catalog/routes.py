import mimetypes

from flask import Blueprint, current_app, jsonify, send_file

from app.catalog.errors import NotFoundError
from app.catalog.storage import StorageError, storage_from_config

bp = Blueprint("routes", __name__)


@bp.get("/")
def index():
    return jsonify({"name": "material-catalog", "api": "/api"})


@bp.get("/health")
def health():
    """Health check endpoint. Returns JSON."""
    return {"ok": True}


@bp.get("/healthz")
def healthz():
    """
    Fast health check for container probes. No DB access, minimal overhead.
    """
    return "ok", 200


@bp.get("/uploads/<path:key>")
def uploads(key: str):
    """Stored material images; public so <img> tags can load them without the session cookie."""
    storage = storage_from_config(current_app.config)
    try:
        found = storage.exists(key)
    except StorageError:
        # Keys outside the storage root are treated as missing.
        found = False
    if not found:
        raise NotFoundError("File not found")
    mimetype = mimetypes.guess_type(key)[0] or "application/octet-stream"
    return send_file(storage.open(key), mimetype=mimetype, max_age=3600)
