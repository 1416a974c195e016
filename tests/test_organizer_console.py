"""End-to-end tests for the organizer console (LINE session set directly)."""
import pytest

from app.eventdesk import create_app
from app.eventdesk.datastore import Query
from app.eventdesk.db import data_client
from app.eventdesk.models import Base
from app.eventdesk.modules.drafts.service import DraftRegistry
from app.eventdesk.modules.organizers.service import (
    create_invitation,
    find_membership,
    redeem_invitation,
    register_organizer,
    set_organizer_approval,
)
from app.eventdesk.postal import PostalAddress, PostalCodeNotFound
from app.eventdesk.results import Err, StoreError

OWNER_FIELDS = {
    "company_name": "Suruga Festival Committee",
    "name": "山田太郎",
    "gender": "男",
    "age": "45",
    "phone_number": "054-000-1111",
    "email": "owner@example.com",
}

EVENT = {
    "event_name": "清水みなと祭り",
    "event_name_furigana": "しみずみなとまつり",
    "genre": "祭り・花火大会",
    "event_start_date": "2026-08-07",
    "event_end_date": "2026-08-09",
    "event_display_period": "8/7〜8/9",
    "lead_text": "港の夏祭り",
    "event_description": "清水港一帯で開催",
    "venue_name": "清水港",
    "contact_name": "山田",
    "contact_phone": "054-000-1111",
    "event_time": "",
    "action": "save",
}


class IdleTimer:
    """Never fires on its own; drafts are written when the form is hydrated."""

    def __init__(self, delay, fn, args=()):
        self.fn = fn
        self.args = args

    def start(self):
        pass

    def cancel(self):
        pass


class FakePostal:
    def lookup(self, postal_code):
        if postal_code == "4208601":
            return PostalAddress(prefecture="静岡県", city="静岡市葵区", town="追手町")
        raise PostalCodeNotFound("Postal code not found.")


class FailingEvents:
    """Delegates to the real store but fails every query on events."""

    def __init__(self, inner):
        self.inner = inner

    def table(self, name):
        return Query(self, name)

    def execute(self, query):
        if query.table == "events":
            return Err(StoreError(message="network down"))
        return self.inner.execute(query)


@pytest.fixture()
def app(tmp_path, monkeypatch):
    monkeypatch.setenv("SECRET_KEY", "test-secret")
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{tmp_path/'test.db'}")
    monkeypatch.setenv("ENV", "test")
    monkeypatch.setenv("STORAGE_BACKEND", "local")
    monkeypatch.setenv("STORAGE_ROOT", str(tmp_path / "storage"))
    app = create_app()
    Base.metadata.create_all(bind=app.extensions["sqlalchemy_engine"])
    app.extensions["draft_registry"] = DraftRegistry(data_client(app), timer_factory=IdleTimer)
    app.extensions["postal_client"] = FakePostal()
    return app


@pytest.fixture()
def store(app):
    return data_client(app)


def _login(client, user_id="U-owner", name="Taro"):
    with client.session_transaction() as sess:
        sess["line_profile"] = {"user_id": user_id, "display_name": name}


def _owner(store, *, approved=True):
    membership = register_organizer(store, "U-owner", dict(OWNER_FIELDS, is_terms_agreed=True))
    if approved:
        set_organizer_approval(store, membership.profile["id"], True)
    return find_membership(store, "U-owner")


def _events(store):
    return store.table("events").select("*").execute().data


# ---------- Entry ----------
def test_anonymous_sees_line_login(app):
    r = app.test_client().get("/organizer/")
    assert r.status_code == 200
    assert b"Log in with LINE" in r.data


def test_new_user_sees_selector(app):
    client = app.test_client()
    _login(client)
    r = client.get("/organizer/")
    assert r.status_code == 200
    assert b'name="choice" value="invite"' in r.data


def test_member_goes_to_event_list(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    r = client.get("/organizer/")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/organizer/events")


# ---------- New registration wizard ----------
def test_registration_wizard(app, store):
    client = app.test_client()
    _login(client)
    client.post("/organizer/entry", data={"choice": "new"})
    r = client.get("/organizer/")
    assert r.headers["Location"].endswith("/organizer/register")

    r = client.post("/organizer/register", data=dict(OWNER_FIELDS, action="next"))
    assert r.status_code == 400
    assert b"Please accept the terms of use." in r.data

    r = client.post("/organizer/register", data=dict(OWNER_FIELDS, action="next", is_terms_agreed="1"))
    assert r.status_code == 302
    r = client.get("/organizer/register")
    assert b"Confirm registration" in r.data
    assert "Suruga Festival Committee".encode() in r.data

    client.post("/organizer/register", data={"action": "back"})
    r = client.get("/organizer/register")
    assert b'value="next"' in r.data
    assert "Suruga Festival Committee".encode() in r.data

    client.post("/organizer/register", data=dict(OWNER_FIELDS, action="next", is_terms_agreed="1"))
    client.post("/organizer/register", data={"action": "submit"})
    r = client.get("/organizer/register")
    assert b"Registration complete" in r.data
    assert b"Registration complete. Please wait for approval." in r.data

    membership = find_membership(store, "U-owner")
    assert membership.role == "owner"
    assert membership.member["is_primary"] is True
    assert membership.member["phone_number"] == "0540001111"
    assert membership.profile["is_approved"] is False

    r = client.post("/organizer/register", data={"action": "finish"})
    assert r.headers["Location"].endswith("/organizer/")
    with client.session_transaction() as sess:
        assert "organizer_registration" not in sess


def test_confirm_cannot_be_skipped(app, store):
    client = app.test_client()
    _login(client)
    client.post("/organizer/entry", data={"choice": "new"})
    client.post("/organizer/register", data={"action": "submit"})
    assert find_membership(store, "U-owner") is None


# ---------- Invitations ----------
def test_invite_redemption(app, store):
    owner = _owner(store)
    invitation = create_invitation(store, owner, role="editor")
    client = app.test_client()
    _login(client, "U-new", "Hanako")
    client.post("/organizer/entry", data={"choice": "invite"})
    r = client.post(
        "/organizer/invite",
        data={"invite_code": invitation["code"].lower(), "name": "Hanako", "email": "hanako@example.com"},
        follow_redirects=True,
    )
    assert b"Registered with the invitation code." in r.data
    member = find_membership(store, "U-new")
    assert member.role == "editor"
    assert member.profile["id"] == owner.profile["id"]
    row = store.table("organizer_invitations").select("status, used_at").eq("id", invitation["id"]).single().execute().data
    assert row["status"] == "used"
    assert row["used_at"] is not None


def test_invite_unknown_code(app, store):
    client = app.test_client()
    _login(client, "U-new")
    r = client.post("/organizer/invite", data={"invite_code": "ZZZZ2222", "name": "Hanako", "email": "hanako@example.com"})
    assert b"Invitation code not found. Please check the code." in r.data
    assert find_membership(store, "U-new") is None


def test_settings_issue_and_revoke(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    r = client.post("/organizer/settings/invitations", data={"role": "viewer"}, follow_redirects=True)
    assert b"Invitation code issued:" in r.data
    invitation = store.table("organizer_invitations").select("*").single().execute().data
    assert invitation["role"] == "viewer"
    assert invitation["code"].encode() in r.data

    r = client.post(f"/organizer/settings/invitations/{invitation['id']}/revoke", follow_redirects=True)
    assert b"Invitation code revoked." in r.data
    r = client.post(f"/organizer/settings/invitations/{invitation['id']}/revoke", follow_redirects=True)
    assert b"Only active invitations can be revoked." in r.data


def test_editor_cannot_issue_invitations(app, store):
    owner = _owner(store)
    code = create_invitation(store, owner, role="editor")["code"]
    redeem_invitation(store, "U-editor", {"invite_code": code, "name": "Ed", "email": "ed@example.com"})
    client = app.test_client()
    _login(client, "U-editor")
    r = client.post("/organizer/settings/invitations", data={"role": "editor"}, follow_redirects=True)
    assert b"Only the owner can issue invitation codes." in r.data


# ---------- Events ----------
def test_create_event_stores_nulls(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    r = client.post("/organizer/events/new", data=EVENT, follow_redirects=True)
    assert b"Event registered. It will be published after review." in r.data
    (event,) = _events(store)
    assert event["event_time"] is None
    assert event["homepage_url"] is None
    assert event["approval_status"] == "pending"
    assert event["contact_phone"] == "0540001111"


def test_create_event_reports_first_missing_field(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    r = client.post("/organizer/events/new", data=dict(EVENT, event_name="", lead_text=""))
    assert r.status_code == 400
    assert b"Please enter the event name." in r.data
    assert b'id="f-event_name"' in r.data
    assert _events(store) == []


def test_unapproved_organizer_cannot_publish(app, store):
    _owner(store, approved=False)
    client = app.test_client()
    _login(client)
    r = client.post("/organizer/events/new", data=EVENT)
    assert b"Events can be published after your organizer account is approved." in r.data
    assert _events(store) == []


def test_update_keeps_values_left_blank(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    client.post("/organizer/events/new", data=EVENT)
    (event,) = _events(store)

    r = client.post(
        f"/organizer/events/{event['id']}/edit",
        data={"event_name": "清水みなと祭り2026", "lead_text": "", "venue_name": "", "action": "save"},
        follow_redirects=True,
    )
    assert b"Event updated." in r.data
    (updated,) = _events(store)
    assert updated["event_name"] == "清水みなと祭り2026"
    assert updated["lead_text"] == "港の夏祭り"
    assert updated["venue_name"] == "清水港"


def test_update_rejects_malformed_date(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    client.post("/organizer/events/new", data=EVENT)
    (event,) = _events(store)
    r = client.post(f"/organizer/events/{event['id']}/edit", data={"event_end_date": "9/9", "action": "save"})
    assert r.status_code == 400
    assert b"Please enter a date as YYYY-MM-DD." in r.data


def test_postal_lookup_not_found_keeps_fields(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    r = client.post(
        "/organizer/events/new",
        data=dict(EVENT, action="lookup_postal", venue_postal_code="4300000", venue_city="浜松", venue_town="中区"),
    )
    assert r.status_code == 200
    assert b"Postal code not found." in r.data
    assert "浜松".encode() in r.data
    assert "中区".encode() in r.data
    assert _events(store) == []


def test_postal_lookup_fills_address(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    r = client.post("/organizer/events/new", data=dict(EVENT, action="lookup_postal", venue_postal_code="4208601"))
    assert "静岡県".encode() in r.data
    assert "追手町".encode() in r.data


def test_viewer_cannot_change_events(app, store):
    owner = _owner(store)
    code = create_invitation(store, owner, role="viewer")["code"]
    redeem_invitation(store, "U-viewer", {"invite_code": code, "name": "Vi", "email": "vi@example.com"})
    client = app.test_client()
    _login(client, "U-viewer")
    r = client.post("/organizer/events/new", data=EVENT)
    assert b"Viewer members cannot change events." in r.data
    assert _events(store) == []


def test_other_organizers_event_is_404(app, store):
    _owner(store)
    other = register_organizer(store, "U-other", dict(OWNER_FIELDS, company_name="Other"))
    set_organizer_approval(store, other.profile["id"], True)
    client = app.test_client()
    _login(client, "U-other")
    client.post("/organizer/events/new", data=EVENT)
    (event,) = _events(store)

    _login(client, "U-owner")
    assert client.get(f"/organizer/events/{event['id']}/edit").status_code == 404


def test_update_checks_end_date_against_stored_start(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    client.post("/organizer/events/new", data=EVENT)
    (event,) = _events(store)
    r = client.post(f"/organizer/events/{event['id']}/edit", data={"event_end_date": "2026-08-01", "action": "save"})
    assert r.status_code == 400
    assert b"The end date must not be before the start date." in r.data
    (unchanged,) = _events(store)
    assert str(unchanged["event_end_date"])[:10] == "2026-08-09"

    r = client.post(f"/organizer/events/{event['id']}/edit", data={"event_start_date": "2026-08-10", "action": "save"})
    assert r.status_code == 400


def test_event_pages_report_store_failures(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    client.post("/organizer/events/new", data=EVENT)
    (event,) = _events(store)
    app.extensions["data_client"] = FailingEvents(store)

    for method, path in (
        ("get", f"/organizer/events/{event['id']}/edit"),
        ("post", f"/organizer/events/{event['id']}/edit"),
        ("get", f"/organizer/events/{event['id']}/applications"),
    ):
        r = getattr(client, method)(path, data={"event_name": "x", "action": "save"})
        assert r.status_code == 302
        assert r.headers["Location"].endswith("/organizer/events")
    r = client.get(f"/organizer/events/{event['id']}/edit", follow_redirects=True)
    assert r.status_code == 200
    assert b"Loading the event failed." in r.data


# ---------- Drafts ----------
def test_draft_endpoints(app):
    client = app.test_client()
    assert client.post("/drafts/event_form", json={"fields": {"event_name": "x"}}).status_code == 401
    _login(client)
    assert client.post("/drafts/unknown_form", json={"fields": {}}).status_code == 404
    assert client.post("/drafts/event_form", json={"event_name": "x"}).status_code == 400
    r = client.post("/drafts/event_form", json={"fields": {"event_name": "下書きの祭り"}})
    assert r.status_code == 202
    r = client.get("/drafts/event_form")
    assert r.json == {"ok": True, "fields": {"event_name": "下書きの祭り"}}


def test_drafts_keep_only_the_forms_fields(app):
    client = app.test_client()
    _login(client)
    r = client.post(
        "/drafts/invite_registration",
        json={"fields": {"invite_code": "ABCD2345", "not_a_field": "x", "csrf_token": "t", "name": {"nested": 1}}},
    )
    assert r.status_code == 202
    assert client.get("/drafts/invite_registration").json["fields"] == {"invite_code": "ABCD2345"}

    client.post("/drafts/organizer_registration", json={"fields": {"company_name": "Suruga", "is_terms_agreed": True}})
    assert client.get("/drafts/organizer_registration").json["fields"] == {"company_name": "Suruga", "is_terms_agreed": True}


def test_oversized_draft_is_rejected(app):
    client = app.test_client()
    _login(client)
    r = client.post("/drafts/invite_registration", json={"fields": {"name": "x" * 2_000_000}})
    assert r.status_code == 413
    assert client.get("/drafts/invite_registration").json["fields"] is None


def test_event_form_restores_draft_and_discards_on_submit(app, store):
    _owner(store)
    client = app.test_client()
    _login(client)
    client.post("/drafts/event_form", json={"fields": {"event_name": "下書きの祭り"}})
    r = client.get("/organizer/events/new")
    assert "下書きの祭り".encode() in r.data

    client.post("/organizer/events/new", data=EVENT)
    assert store.table("form_drafts").select("id").execute().data == []
