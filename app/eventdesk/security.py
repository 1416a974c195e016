import secrets

from flask import Request, session


def ensure_csrf_token() -> str:
    """Return the session's CSRF token, creating one on first use."""
    token = session.get("csrf_token")
    if not token:
        token = secrets.token_urlsafe(32)
        session["csrf_token"] = token
    return token


def validate_csrf(req: Request) -> bool:
    """Token may arrive as a form field, the X-CSRF-Token header (draft autosave, LIFF login), or JSON."""
    token = req.headers.get("X-CSRF-Token") or req.form.get("csrf_token")
    if not token and req.is_json:
        body = req.get_json(silent=True) or {}
        if isinstance(body, dict):
            token = body.get("csrf_token")
    expected = session.get("csrf_token")
    return bool(token and expected and secrets.compare_digest(str(token), str(expected)))
