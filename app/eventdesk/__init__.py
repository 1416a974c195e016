import logging
import os
from datetime import timedelta

from flask import Flask, flash, g, redirect, render_template, request, session, url_for
from dotenv import load_dotenv

from app.eventdesk.config import load_config
from app.eventdesk.db import init_db
from app.eventdesk.routes import bp as routes_bp
from app.eventdesk.auth import bp as auth_bp, load_current_user
from app.eventdesk.admin import bp as admin_bp
from app.eventdesk.line_auth import LineLoginClient
from app.eventdesk.modules.drafts.admin import bp as drafts_bp
from app.eventdesk.modules.drafts.service import DraftRegistry
from app.eventdesk.modules.events.admin import bp as organizer_events_bp
from app.eventdesk.modules.exhibitors.admin import bp as store_bp
from app.eventdesk.modules.organizers.admin import bp as organizer_bp
from app.eventdesk.postal import ZipcloudClient
from app.eventdesk.rbac import user_has_permission
from app.eventdesk.security import ensure_csrf_token, validate_csrf
from app.eventdesk.storage import storage_from_config

logger = logging.getLogger(__name__)

# Paths that never touch the session (probes, static assets, public files).
_SESSIONLESS_PREFIXES = ("/static/", "/health", "/healthz", "/files/")


def _configure_logging(level_name: str) -> None:
    level = getattr(logging, (level_name or "INFO").upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger().setLevel(level)


def _check_production_config(config) -> None:
    """Refuse to boot a production instance with missing secrets or a sqlite store."""
    if (config.get("ENV") or "").strip().lower() not in ("prod", "production"):
        return
    problems: list[str] = []
    if config.get("DATA_BACKEND") == "postgrest":
        if not config.get("SUPABASE_URL") or not config.get("SUPABASE_KEY"):
            problems.append("SUPABASE_URL and SUPABASE_KEY are required for the postgrest backend")
    else:
        db_url = str(config.get("DATABASE_URL") or "").strip()
        if not db_url:
            problems.append("DATABASE_URL is required")
        elif db_url.startswith("sqlite"):
            problems.append("DATABASE_URL must point at Postgres, not sqlite")
    if str(config.get("SECRET_KEY") or "") in ("", "change-me"):
        problems.append("SECRET_KEY must be set to a strong value")
    if not config.get("LINE_CHANNEL_ID"):
        problems.append("LINE_CHANNEL_ID is required to verify LINE access tokens")
    if problems:
        raise RuntimeError("Production configuration error: " + "; ".join(problems) + ".")


def _init_collaborators(app: Flask) -> None:
    """External services live in app.extensions so tests can swap them."""
    app.extensions["storage"] = storage_from_config(app.config)
    app.extensions["line_client"] = LineLoginClient(channel_id=app.config.get("LINE_CHANNEL_ID") or "")
    app.extensions["postal_client"] = ZipcloudClient(base_url=app.config["POSTAL_API_URL"])
    app.extensions["draft_registry"] = DraftRegistry(
        app.extensions["data_client"], delay=float(app.config["DRAFT_DEBOUNCE_SECONDS"])
    )
    if app.config.get("STORAGE_BACKEND") == "s3":
        missing = [k for k in ("S3_ENDPOINT", "S3_BUCKET", "S3_ACCESS_KEY_ID", "S3_SECRET_ACCESS_KEY") if not app.config.get(k)]
        if missing:
            app.logger.error("S3 storage selected but %s not set; uploads will fail", ", ".join(missing))


def _dispose_engine_after_fork(app: Flask) -> None:
    # gunicorn --preload forks workers after the engine exists
    if not hasattr(os, "register_at_fork"):
        return

    def _after_fork_child() -> None:
        engine = app.extensions.get("sqlalchemy_engine")
        if engine is not None:
            engine.dispose()
            app.logger.info("Disposed DB engine in worker pid=%s", os.getpid())

    os.register_at_fork(after_in_child=_after_fork_child)


def _install_template_helpers(app: Flask) -> None:
    @app.context_processor
    def _inject_globals() -> dict:
        def has_perm(key: str) -> bool:
            return user_has_permission(getattr(g, "current_user", None), key)

        return {"csrf_token": ensure_csrf_token(), "has_perm": has_perm}

    @app.template_filter("dateformat")
    def _dateformat(value, format: str = "%Y-%m-%d") -> str:
        if value is None or value == "":
            return "-"
        if hasattr(value, "strftime"):
            return value.strftime(format)
        # store rows carry ISO strings
        return str(value)[:10]


def _install_csrf_guard(app: Flask) -> None:
    @app.before_request
    def _csrf_guard():
        if request.path.startswith(_SESSIONLESS_PREFIXES):
            return None
        ensure_csrf_token()
        session.permanent = True
        if not app.config.get("CSRF_ENABLED", True):
            return None
        if request.method not in ("POST", "PUT", "PATCH", "DELETE"):
            return None
        # admin login/logout carry no session token yet
        if (request.endpoint or "").startswith("auth."):
            return None
        if not validate_csrf(request):
            app.logger.warning("CSRF rejected %s %s (request_id=%s)", request.method, request.path, getattr(g, "request_id", None))
            return render_template("errors/400.html", message="CSRF token missing or invalid."), 400
        return None


def _register_error_handlers(app: Flask) -> None:
    @app.errorhandler(403)
    def _forbidden(e):
        missing = getattr(g, "missing_permission", None)
        if missing:
            app.logger.warning("Forbidden: missing_permission=%s request_id=%s", missing, getattr(g, "request_id", None))
        return render_template("errors/403.html", missing_permission=missing), 403

    @app.errorhandler(404)
    def _not_found(e):
        return render_template("errors/404.html"), 404

    @app.errorhandler(413)
    def _too_large(e):
        limit_mb = int(app.config["MAX_UPLOAD_BYTES"]) // (1024 * 1024)
        flash(f"File too large. Maximum size is {limit_mb}MB per file.", "danger")
        referrer = request.referrer
        if referrer and referrer.startswith(request.host_url):
            return redirect(referrer), 302
        return redirect(url_for("routes.index")), 302

    @app.errorhandler(500)
    def _server_error(e):
        app.logger.exception("Unhandled 500 (request_id=%s)", getattr(g, "request_id", None))
        return render_template("errors/500.html"), 500


def create_app() -> Flask:
    load_dotenv()
    app = Flask(__name__, template_folder="templates", static_folder="static")
    app.config.from_mapping(load_config())
    app.config["PERMANENT_SESSION_LIFETIME"] = timedelta(hours=8)
    app.config["SESSION_REFRESH_EACH_REQUEST"] = True
    _configure_logging(app.config.get("LOG_LEVEL") or "INFO")
    app.logger.setLevel(logging.getLogger().level)

    _check_production_config(app.config)

    init_db(app)
    _dispose_engine_after_fork(app)
    _init_collaborators(app)

    _install_template_helpers(app)
    # request_id is assigned here, before the CSRF guard logs with it
    app.before_request(load_current_user)
    _install_csrf_guard(app)

    app.register_blueprint(routes_bp)
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(organizer_bp, url_prefix="/organizer")
    app.register_blueprint(organizer_events_bp, url_prefix="/organizer")
    app.register_blueprint(store_bp, url_prefix="/store")
    app.register_blueprint(drafts_bp, url_prefix="/drafts")

    _register_error_handlers(app)

    logger.info("eventdesk app ready (env=%s, data_backend=%s)", app.config.get("ENV"), app.config.get("DATA_BACKEND"))
    return app
