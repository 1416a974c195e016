"""End-to-end tests for the exhibitor (store) console."""
import io

import pytest

from app.eventdesk import create_app
from app.eventdesk.datastore import Query
from app.eventdesk.db import data_client
from app.eventdesk.models import Base
from app.eventdesk.modules.drafts.service import DraftRegistry
from app.eventdesk.modules.events.service import create_event, form_fields, set_event_approval
from app.eventdesk.modules.exhibitors.service import find_exhibitor
from app.eventdesk.modules.organizers.service import find_membership, register_organizer, set_organizer_approval
from app.eventdesk.results import Err, StoreError

PNG = b"\x89PNG\r\n\x1a\n" + b"\x00" * 32

EXHIBITOR = {
    "name": "鈴木花子",
    "gender": "女",
    "age": "31",
    "phone_number": "090-1111-2222",
    "email": "hanako@example.com",
    "genre_category": "飲食",
    "genre_free_text": "静岡おでん",
}


class IdleTimer:
    def __init__(self, delay, fn, args=()):
        pass

    def start(self):
        pass

    def cancel(self):
        pass


class FailingEvents:
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
    return app


@pytest.fixture()
def store(app):
    return data_client(app)


@pytest.fixture()
def client(app):
    c = app.test_client()
    with c.session_transaction() as sess:
        sess["line_profile"] = {"user_id": "U-shop", "display_name": "Hanako"}
    return c


@pytest.fixture()
def events(store):
    registered = register_organizer(
        store,
        "U-org",
        {"company_name": "Org", "name": "Taro", "gender": "男", "age": "50", "phone_number": "0540000000", "email": "o@example.com"},
    )
    set_organizer_approval(store, registered.profile["id"], True)
    membership = find_membership(store, "U-org")
    base = {
        "event_name_furigana": "よみ",
        "genre": "グルメ・マルシェ",
        "event_display_period": "-",
        "lead_text": "lead",
        "event_description": "desc",
        "contact_name": "Taro",
        "contact_phone": "0540000000",
    }
    rows = {}
    for name, start, end, venue in (
        ("浜名湖マルシェ", "2026-06-06", "2026-06-07", "浜名湖ガーデンパーク"),
        ("熱海花火大会", "2026-07-25", "2026-07-25", "熱海サンビーチ"),
        ("審査中イベント", "2026-06-06", "2026-06-06", "静岡"),
    ):
        rows[name] = create_event(
            store,
            membership,
            form_fields(dict(base, event_name=name, event_start_date=start, event_end_date=end, venue_name=venue)),
        )
    set_event_approval(store, rows["浜名湖マルシェ"]["id"], "approved")
    set_event_approval(store, rows["熱海花火大会"]["id"], "approved")
    return rows


def _register(client, **extra):
    data = dict(EXHIBITOR, **extra)
    return client.post("/store/register", data=data, content_type="multipart/form-data")


def test_anonymous_sees_line_login(app):
    r = app.test_client().get("/store/")
    assert r.status_code == 200
    assert b"liff_login.js" in r.data


def test_unregistered_user_is_sent_to_registration(client):
    assert client.get("/store/").headers["Location"].endswith("/store/register")
    r = client.get("/store/events")
    assert r.headers["Location"].endswith("/store/register")


def test_register_with_document(client, store):
    r = _register(client, business_license=(io.BytesIO(PNG), "license.png", "image/png"))
    assert r.status_code == 302
    exhibitor = find_exhibitor(store, "U-shop")
    assert exhibitor["age"] == 31
    assert exhibitor["phone_number"] == "09011112222"
    url = exhibitor["business_license_image_url"]
    assert url.startswith("/files/exhibitor-documents/U-shop/business_license_")
    assert url.endswith(".png")
    assert exhibitor["pl_insurance_image_url"] is None
    assert client.get(url).data == PNG


def test_register_rejects_non_image_before_upload(client, store, tmp_path):
    r = _register(client, pl_insurance=(io.BytesIO(b"%PDF-1.4"), "policy.pdf", "application/pdf"))
    assert r.status_code == 400
    assert b"Please choose an image file" in r.data
    assert find_exhibitor(store, "U-shop") is None
    assert not (tmp_path / "storage" / "exhibitor-documents").exists()


def test_register_validation_errors(client):
    r = _register(client, age="120", email="not-an-email")
    assert r.status_code == 400
    assert b"Age must be between 0 and 99." in r.data
    assert b"Please enter a valid email address." in r.data


def test_search_and_apply(client, store, events):
    _register(client)
    r = client.get("/store/events")
    assert "浜名湖マルシェ".encode() in r.data
    assert "熱海花火大会".encode() in r.data
    assert "審査中イベント".encode() not in r.data

    r = client.get("/store/events", query_string={"q": "熱海"})
    assert "浜名湖マルシェ".encode() not in r.data
    assert "熱海花火大会".encode() in r.data

    r = client.get("/store/events", query_string={"from": "2026-07-01", "to": "2026-07-31"})
    assert "浜名湖マルシェ".encode() not in r.data
    assert "熱海花火大会".encode() in r.data

    event_id = events["熱海花火大会"]["id"]
    r = client.post(f"/store/events/{event_id}/apply", follow_redirects=True)
    assert b"Your application was submitted." in r.data
    assert "熱海花火大会".encode() in r.data

    r = client.post(f"/store/events/{event_id}/apply", follow_redirects=True)
    assert b"You have already applied to this event." in r.data
    assert len(store.table("event_applications").select("id").execute().data) == 1


def test_pending_event_is_hidden(client, events):
    _register(client)
    assert client.get(f"/store/events/{events['審査中イベント']['id']}").status_code == 404


def test_event_detail_reports_store_failure(app, client, store, events):
    _register(client)
    app.extensions["data_client"] = FailingEvents(store)
    r = client.get(f"/store/events/{events['浜名湖マルシェ']['id']}")
    assert r.status_code == 302
    assert r.headers["Location"].endswith("/store/events")
    r = client.get("/store/events")
    assert b"Loading the event failed." in r.data


def test_bad_date_filter_is_ignored(client, events):
    _register(client)
    r = client.get("/store/events", query_string={"from": "June"})
    assert r.status_code == 200
    assert b"Dates must be YYYY-MM-DD." in r.data
    assert "浜名湖マルシェ".encode() in r.data


def test_profile_edit_replaces_and_clears_documents(client, store):
    _register(
        client,
        business_license=(io.BytesIO(PNG), "a.png", "image/png"),
        pl_insurance=(io.BytesIO(PNG), "b.png", "image/png"),
    )
    before = find_exhibitor(store, "U-shop")

    r = client.post(
        "/store/profile/edit",
        data=dict(
            EXHIBITOR,
            name="鈴木はなこ",
            genre_free_text="",
            clear_pl_insurance="1",
            vehicle_inspection=(io.BytesIO(PNG), "car.jpg", "image/jpeg"),
        ),
        content_type="multipart/form-data",
        follow_redirects=True,
    )
    assert b"Profile updated." in r.data
    after = find_exhibitor(store, "U-shop")
    assert after["name"] == "鈴木はなこ"
    assert after["genre_free_text"] is None
    assert after["business_license_image_url"] == before["business_license_image_url"]
    assert after["pl_insurance_image_url"] is None
    assert after["vehicle_inspection_image_url"].endswith(".jpg")


def test_registration_draft_is_restored(client):
    client.post("/drafts/exhibitor_registration", json={"fields": {"name": "下書き太郎"}})
    r = client.get("/store/register")
    assert "下書き太郎".encode() in r.data
