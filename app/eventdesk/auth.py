from __future__ import annotations

import uuid
from collections import defaultdict, deque
from datetime import datetime, timedelta

from flask import Blueprint, current_app, flash, g, redirect, render_template, request, session, url_for
from werkzeug.security import check_password_hash

from app.eventdesk.audit import record_event
from app.eventdesk.db import data_client
from app.eventdesk.results import Err

bp = Blueprint("auth", __name__)

_SESSION_KEY = "admin_user_id"


class LoginRateLimiter:
    """Sliding window of login attempts per client address (per process)."""

    def __init__(self, limit: int = 5, window: timedelta = timedelta(minutes=5)):
        self.limit = limit
        self.window = window
        self._attempts: dict[str, deque[datetime]] = defaultdict(deque)

    def blocked(self, key: str, *, now: datetime | None = None) -> bool:
        now = now or datetime.utcnow()
        attempts = self._attempts[key]
        while attempts and attempts[0] <= now - self.window:
            attempts.popleft()
        return len(attempts) >= self.limit

    def record(self, key: str, *, now: datetime | None = None) -> None:
        self._attempts[key].append(now or datetime.utcnow())

    def reset(self, key: str) -> None:
        self._attempts.pop(key, None)


login_limiter = LoginRateLimiter()


def _safe_next(nxt: str) -> str | None:
    # local paths only, no open redirects
    if nxt.startswith("/") and not nxt.startswith("//"):
        return nxt
    return None


def load_current_user() -> None:
    """
    Put the logged-in admin_users row on g.current_user.

    Also assigns the per-request request_id used to correlate logs and audit rows.
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/static/", "/health", "/healthz")):
        return

    user_id = session.get(_SESSION_KEY)
    if not user_id:
        return

    res = data_client().table("admin_users").select("id, email, role, is_active").eq("id", user_id).maybe_single().execute()
    if isinstance(res, Err):
        current_app.logger.error("Admin session lookup failed, logging out (request_id=%s): %s", g.request_id, res.error.message)
        session.pop(_SESSION_KEY, None)
        return
    if not res.data or not res.data.get("is_active"):
        session.pop(_SESSION_KEY, None)
        return
    g.current_user = res.data


@bp.get("/login")
def login_get():
    return render_template("auth/login.html", next=(request.args.get("next") or "").strip())


@bp.post("/login")
def login_post():
    email = (request.form.get("email") or "").strip().lower()
    password = request.form.get("password") or ""
    nxt = (request.form.get("next") or "").strip()
    client_key = request.remote_addr or "unknown"

    if login_limiter.blocked(client_key):
        flash("Too many login attempts. Please wait 5 minutes.", "danger")
        return redirect(url_for("auth.login_get"))
    login_limiter.record(client_key)

    client = data_client()
    res = client.table("admin_users").select("*").eq("email", email).maybe_single().execute()
    if isinstance(res, Err):
        current_app.logger.error("Admin lookup for %s failed (request_id=%s): %s", email, g.request_id, res.error.message)
        flash("Login is temporarily unavailable.", "danger")
        return redirect(url_for("auth.login_get"))

    admin = res.data
    if not admin or not admin.get("is_active") or not check_password_hash(admin["password_hash"], password):
        record_event(
            client,
            actor_type="admin",
            actor_id=None,
            action="auth.login_failed",
            entity_type="AdminUser",
            entity_id=email,
            reason="Invalid credentials",
        )
        flash("Invalid credentials.", "danger")
        return redirect(url_for("auth.login_get"))

    session[_SESSION_KEY] = admin["id"]
    login_limiter.reset(client_key)
    record_event(client, actor_type="admin", actor_id=str(admin["id"]), action="auth.login", entity_type="AdminUser", entity_id=str(admin["id"]))
    return redirect(_safe_next(nxt) or url_for("admin.index"))


@bp.get("/logout")
def logout():
    admin = getattr(g, "current_user", None)
    if admin:
        record_event(data_client(), actor_type="admin", actor_id=str(admin["id"]), action="auth.logout", entity_type="AdminUser", entity_id=str(admin["id"]))
    session.pop(_SESSION_KEY, None)
    return redirect(url_for("routes.index"))
