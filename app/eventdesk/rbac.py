from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import abort, g, redirect, request, url_for

ROLE_PERMISSIONS: dict[str, frozenset[str]] = {
    "admin": frozenset(
        {
            "admin.view",
            "organizers.approve",
            "events.approve",
            "applications.approve",
        }
    ),
    "viewer": frozenset({"admin.view"}),
}


def user_has_permission(user: dict | None, permission_key: str) -> bool:
    if not user or not user.get("is_active"):
        return False
    return permission_key in ROLE_PERMISSIONS.get(user.get("role") or "", frozenset())


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: dict | None = getattr(g, "current_user", None)
            # Unauthenticated → redirect to login
            if not user or not user.get("is_active"):
                nxt = request.full_path or request.path
                # Avoid trailing '?' from full_path when there is no query string.
                if nxt.endswith("?"):
                    nxt = nxt[:-1]
                return redirect(url_for("auth.login_get", next=nxt))
            # Authenticated but unauthorized → 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                abort(403)
            return fn(*args, **kwargs)

        return wrapped

    return decorator
