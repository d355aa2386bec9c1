import logging
from datetime import timedelta

from dotenv import load_dotenv
from flask import Flask, g, jsonify, request
from flask_cors import CORS

from app.catalog.config import load_config
from app.catalog.db import init_db, teardown_db_session
from app.catalog.errors import CatalogError
from app.catalog.routes import bp as routes_bp
from app.catalog.auth import bp as auth_bp, load_current_user
from app.catalog.admin import bp as admin_bp
from app.catalog.modules.dropdowns.admin import bp as dropdowns_bp
from app.catalog.modules.materials.admin import bp as materials_bp
from app.catalog.modules.dashboard.admin import bp as dashboard_bp


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__)
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=24)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True

    logging.basicConfig(level=app.config["LOG_LEVEL"])
    app.logger.setLevel(app.config["LOG_LEVEL"])

    # CSRF protection (minimal, opt-in outside production)
    from app.catalog.security import ensure_csrf_token, validate_csrf

    @app.before_request
    def _csrf_guard():
        if not app.config.get("CSRF_ENABLED"):
            return None
        if request.path.startswith(("/uploads/", "/health", "/healthz")):
            return None
        ensure_csrf_token()
        if request.method in ("POST", "PUT", "PATCH", "DELETE"):
            # Allow auth endpoints to pass through (login/logout/register)
            if (request.endpoint or "").startswith("auth."):
                return None
            if not validate_csrf(request):
                return jsonify({"error": "CSRF token missing or invalid.", "code": "csrf_failed"}), 400
        return None

    # Production guardrails (fail fast with clear logs)
    env = (app.config.get("ENV") or "").strip().lower()
    if env in ("prod", "production"):
        if not app.config.get("DATABASE_URL") or str(app.config["DATABASE_URL"]).strip() == "":
            raise RuntimeError("DATABASE_URL is required in production.")
        if str(app.config["DATABASE_URL"]).startswith("sqlite"):
            raise RuntimeError("DATABASE_URL must be Postgres in production (not sqlite).")
        if not app.config.get("SECRET_KEY") or str(app.config["SECRET_KEY"]) in ("", "change-me"):
            raise RuntimeError("SECRET_KEY must be set to a strong value in production (not default).")

    init_db(app)

    def _dispose_engine_on_fork() -> None:
        import os

        if hasattr(os, "register_at_fork"):
            def _after_fork_child():
                engine = app.extensions.get("sqlalchemy_engine")
                if engine:
                    engine.dispose()
                    app.logger.info("Disposed DB engine after fork (pid=%s)", os.getpid())

            os.register_at_fork(after_in_child=_after_fork_child)

    _dispose_engine_on_fork()

    # Storage health check (fail loudly on misconfiguration)
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing_s3 = [
            key
            for key in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY")
            if not app.config.get(key)
        ]
        if missing_s3:
            app.logger.error("STORAGE CONFIG ERROR: Missing required S3 env vars: %s", ", ".join(missing_s3))
        else:
            from botocore.exceptions import BotoCoreError, ClientError

            from app.catalog.storage import S3Storage, storage_from_config

            try:
                storage = storage_from_config(app.config)
                if isinstance(storage, S3Storage):
                    storage._client().head_bucket(Bucket=storage.bucket)
                    app.logger.info("Storage health check PASSED: S3 bucket '%s' accessible", storage.bucket)
            except (BotoCoreError, ClientError) as e:
                app.logger.error("STORAGE CONFIG ERROR: Cannot access S3 bucket: %s", e)

    # Browser frontend on another origin; credentials carry the session cookie.
    CORS(app, resources={r"/api/*": {"origins": app.config["CORS_ORIGINS"]}}, supports_credentials=True)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/api/auth")
    app.register_blueprint(admin_bp, url_prefix="/api/admin")
    app.register_blueprint(dropdowns_bp, url_prefix="/api/dropdowns")
    app.register_blueprint(materials_bp, url_prefix="/api/materials")
    app.register_blueprint(dashboard_bp, url_prefix="/api/dashboard")

    app.before_request(load_current_user)
    app.teardown_appcontext(teardown_db_session)

    def _rollback_request_session() -> None:
        s = getattr(g, "db_session", None)
        if s is not None:
            s.rollback()

    @app.errorhandler(CatalogError)
    def _err_catalog(e: CatalogError):  # type: ignore[no-redef]
        _rollback_request_session()
        if e.status_code >= 500:
            app.logger.error("%s (request_id=%s): %s", type(e).__name__, getattr(g, "request_id", None), e.message)
        elif e.status_code == 403:
            app.logger.warning(
                "Forbidden: missing_role=%s request_id=%s", getattr(g, "missing_role", None), getattr(g, "request_id", None)
            )
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(404)
    def _err_404(e):  # type: ignore[no-redef]
        return jsonify({"error": "Not found", "code": "not_found"}), 404

    @app.errorhandler(405)
    def _err_405(e):  # type: ignore[no-redef]
        return jsonify({"error": "Method not allowed", "code": "method_not_allowed"}), 405

    @app.errorhandler(413)
    def _err_413(e):  # type: ignore[no-redef]
        max_mb = app.config["MAX_IMAGE_BYTES"] // (1024 * 1024)
        return jsonify({"error": f"File too large. Maximum size is {max_mb}MB.", "code": "too_large"}), 413

    @app.errorhandler(500)
    def _err_500(e):  # type: ignore[no-redef]
        # Ensure stack trace shows in the logs.
        _rollback_request_session()
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return jsonify({"error": "Internal server error", "code": "internal_error"}), 500

    # Startup logging
    logging.getLogger(__name__).info("create_app() complete; app ready to serve")

    return app
