"""Tests for LINE token verification and the console session endpoints."""
import pytest

from app.eventdesk import create_app
from app.eventdesk.line_auth import LineAuthError, LineLoginClient, LineProfile
from app.eventdesk.models import Base


class StubLineClient(LineLoginClient):
    """Canned LINE API responses keyed by path."""

    def __init__(self, responses, channel_id="1234567890"):
        super().__init__(channel_id=channel_id)
        object.__setattr__(self, "responses", responses)

    def _get_json(self, path, *, params=None, token=None):
        value = self.responses[path]
        if isinstance(value, Exception):
            raise value
        return value


class FakeLineClient:
    def profile_from_access_token(self, access_token):
        if access_token != "good-token":
            raise LineAuthError("Access token has expired.")
        return LineProfile(user_id="U-good", display_name="Hanako")


def test_profile_from_valid_token():
    client = StubLineClient(
        {
            "/oauth2/v2.1/verify": {"client_id": "1234567890", "expires_in": 3600},
            "/v2/profile": {"userId": "U1", "displayName": "Taro", "pictureUrl": "https://example.com/p.png"},
        }
    )
    assert client.profile_from_access_token("tok") == LineProfile("U1", "Taro", "https://example.com/p.png")


def test_token_for_other_channel_rejected():
    client = StubLineClient({"/oauth2/v2.1/verify": {"client_id": "999", "expires_in": 3600}})
    with pytest.raises(LineAuthError):
        client.profile_from_access_token("tok")


def test_expired_or_missing_token_rejected():
    client = StubLineClient({"/oauth2/v2.1/verify": {"client_id": "1234567890", "expires_in": 0}})
    with pytest.raises(LineAuthError):
        client.profile_from_access_token("tok")
    with pytest.raises(LineAuthError):
        client.profile_from_access_token("  ")


def test_profile_without_user_id_rejected():
    client = StubLineClient(
        {"/oauth2/v2.1/verify": {"client_id": "1234567890", "expires_in": 10}, "/v2/profile": {"displayName": "x"}}
    )
    with pytest.raises(LineAuthError):
        client.profile_from_access_token("tok")


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    app.extensions["line_client"] = FakeLineClient()
    return app


def test_session_login_sets_profile(app):
    client = app.test_client()
    r = client.post("/organizer/session", json={"access_token": "good-token"})
    assert r.status_code == 200
    assert r.json == {"ok": True, "redirect": "/organizer/"}
    with client.session_transaction() as sess:
        assert sess["line_profile"]["user_id"] == "U-good"


def test_session_login_rejects_bad_token(app):
    client = app.test_client()
    r = client.post("/store/session", json={"access_token": "stale"})
    assert r.status_code == 401
    assert r.json["ok"] is False
    with client.session_transaction() as sess:
        assert "line_profile" not in sess


def test_logout_clears_session(app):
    client = app.test_client()
    client.post("/store/session", json={"access_token": "good-token"})
    r = client.post("/store/session/logout")
    assert r.status_code == 302
    with client.session_transaction() as sess:
        assert "line_profile" not in sess


def test_session_endpoint_requires_csrf_when_enabled(app):
    app.config["CSRF_ENABLED"] = True
    client = app.test_client()
    r = client.post("/organizer/session", json={"access_token": "good-token"})
    assert r.status_code == 400

    client.get("/organizer/")
    with client.session_transaction() as sess:
        token = sess["csrf_token"]
    r = client.post("/organizer/session", json={"access_token": "good-token"}, headers={"X-CSRF-Token": token})
    assert r.status_code == 200
