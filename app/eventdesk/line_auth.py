"""
LINE Login session handling for the organizer and store consoles.

The browser runs the LIFF SDK (``liff.init`` / ``liff.login``) and posts the
resulting access token to the console's ``/session`` endpoint. The server
verifies the token with LINE, fetches the profile, and keeps it in the
signed Flask session.
"""
from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from functools import wraps
from typing import Any, Union

from flask import current_app, g, jsonify, redirect, request, session, url_for

_SESSION_KEY = "line_profile"


class LineAuthError(RuntimeError):
    pass


@dataclass(frozen=True)
class LineProfile:
    user_id: str
    display_name: str
    picture_url: str | None = None

    def to_session(self) -> dict[str, Any]:
        return {"user_id": self.user_id, "display_name": self.display_name, "picture_url": self.picture_url}

    @classmethod
    def from_session(cls, raw: Any) -> "LineProfile | None":
        if not isinstance(raw, dict) or not raw.get("user_id"):
            return None
        return cls(
            user_id=str(raw["user_id"]),
            display_name=str(raw.get("display_name") or ""),
            picture_url=raw.get("picture_url") or None,
        )


@dataclass(frozen=True)
class Anonymous:
    pass


@dataclass(frozen=True)
class LoggedIn:
    profile: LineProfile


LineSession = Union[Anonymous, LoggedIn]


@dataclass(frozen=True)
class LineLoginClient:
    channel_id: str
    base_url: str = "https://api.line.me"
    timeout_seconds: int = 10

    def _get_json(self, path: str, *, params: dict[str, str] | None = None, token: str | None = None) -> dict:
        url = self.base_url.rstrip("/") + path
        if params:
            url += "?" + urllib.parse.urlencode(params)
        req = urllib.request.Request(url, method="GET")
        req.add_header("Accept", "application/json")
        if token:
            req.add_header("Authorization", f"Bearer {token}")
        try:
            with urllib.request.urlopen(req, timeout=self.timeout_seconds) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except urllib.error.HTTPError as e:
            try:
                body = e.read().decode("utf-8", errors="ignore")
            except OSError:
                body = ""
            raise LineAuthError(f"HTTP {e.code} from LINE: {body[:300]}") from e
        except (urllib.error.URLError, OSError, ValueError) as e:
            raise LineAuthError(f"LINE request failed: {e}") from e

    def verify_access_token(self, access_token: str) -> dict:
        data = self._get_json("/oauth2/v2.1/verify", params={"access_token": access_token})
        if self.channel_id and str(data.get("client_id")) != self.channel_id:
            raise LineAuthError("Access token was issued for a different channel.")
        if int(data.get("expires_in") or 0) <= 0:
            raise LineAuthError("Access token has expired.")
        return data

    def get_profile(self, access_token: str) -> LineProfile:
        data = self._get_json("/v2/profile", token=access_token)
        user_id = data.get("userId")
        if not user_id:
            raise LineAuthError("LINE profile response has no userId.")
        return LineProfile(
            user_id=str(user_id),
            display_name=str(data.get("displayName") or ""),
            picture_url=data.get("pictureUrl") or None,
        )

    def profile_from_access_token(self, access_token: str) -> LineProfile:
        if not (access_token or "").strip():
            raise LineAuthError("Missing access token.")
        self.verify_access_token(access_token)
        return self.get_profile(access_token)


def current_line_session() -> LineSession:
    profile = LineProfile.from_session(session.get(_SESSION_KEY))
    if profile is None:
        return Anonymous()
    return LoggedIn(profile=profile)


def start_line_session(profile: LineProfile) -> None:
    session[_SESSION_KEY] = profile.to_session()


def end_line_session() -> None:
    session.pop(_SESSION_KEY, None)


def require_line_login(welcome_endpoint: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Redirect anonymous visitors to the console's welcome screen; pass the profile on."""

    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            state = current_line_session()
            if isinstance(state, Anonymous):
                return redirect(url_for(welcome_endpoint))
            return fn(state.profile, *args, **kwargs)

        return wrapped

    return decorator


def line_client() -> LineLoginClient:
    return current_app.extensions["line_client"]


def session_login_response(next_endpoint: str):
    """JSON handler body for ``POST <console>/session``: exchange a LIFF access token for a session."""
    body = request.get_json(silent=True)
    token = body.get("access_token") if isinstance(body, dict) else None
    try:
        profile = line_client().profile_from_access_token(token or "")
    except LineAuthError as e:
        current_app.logger.warning("LINE login rejected (request_id=%s): %s", getattr(g, "request_id", None), e)
        return jsonify({"ok": False, "error": str(e)}), 401
    start_line_session(profile)
    current_app.logger.info("LINE session started for %s", profile.user_id)
    return jsonify({"ok": True, "redirect": url_for(next_endpoint)})
