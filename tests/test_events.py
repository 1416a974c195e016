"""Tests for event payloads, organizer CRUD and the exhibitor-facing search."""
from datetime import date

import pytest

from app.eventdesk.datastore import SqlDataClient
from app.eventdesk.db import build_engine
from app.eventdesk.models import Base
from app.eventdesk.modules.events.service import (
    ApplicationError,
    EventError,
    apply_to_event,
    build_event_insert_payload,
    build_event_update_payload,
    create_event,
    form_fields,
    get_organizer_event,
    list_approved_events,
    list_exhibitor_applications,
    review_application,
    set_event_approval,
    update_event,
    validate_event_form,
)
from app.eventdesk.modules.organizers.service import Membership, PermissionDenied, register_organizer, set_organizer_approval

EVENT = {
    "event_name": "静岡まつり",
    "event_name_furigana": "しずおかまつり",
    "genre": "祭り・花火大会",
    "event_start_date": "2026-04-03",
    "event_end_date": "2026-04-05",
    "event_display_period": "4/3(金)〜4/5(日)",
    "lead_text": "春の大祭",
    "event_description": "駿府城公園で開催",
    "venue_name": "駿府城公園",
    "contact_name": "山田",
    "contact_phone": "054-123-4567",
}


@pytest.fixture()
def client(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path/'events.db'}")
    Base.metadata.create_all(bind=engine)
    return SqlDataClient(engine, Base.metadata)


@pytest.fixture()
def owner(client):
    m = register_organizer(
        client,
        "U-owner",
        {"company_name": "Org", "name": "Taro", "gender": "男", "age": "40", "phone_number": "0541234567", "email": "t@example.com"},
    )
    profile = set_organizer_approval(client, m.profile["id"], True)
    return Membership(member=m.member, profile=profile)


def _exhibitor(client, line_user_id="U-ex"):
    return (
        client.table("exhibitors")
        .insert(
            {"line_user_id": line_user_id, "name": "Shop", "gender": "女", "age": 30, "phone_number": "09011112222", "email": "s@example.com"}
        )
        .single()
        .execute()
        .data
    )


class TestValidation:
    def test_required_fields_reported_in_order(self):
        errors = validate_event_form(form_fields({}))
        assert next(iter(errors)) == "event_name"
        assert errors["event_name"] == "Please enter the event name."
        assert "contact_phone" in errors

    def test_valid_event(self):
        assert validate_event_form(form_fields(EVENT)) == {}

    def test_end_before_start(self):
        errors = validate_event_form(form_fields(dict(EVENT, event_end_date="2026-04-01")))
        assert list(errors) == ["event_end_date"]

    def test_bad_date_and_coordinates(self):
        errors = validate_event_form(form_fields(dict(EVENT, application_start_date="4/1", venue_latitude="north")))
        assert set(errors) == {"application_start_date", "venue_latitude"}


def test_insert_payload_converts_empty_strings_to_null():
    fields = form_fields(dict(EVENT, event_time="", venue_latitude="34.98", homepage_url="  "))
    payload = build_event_insert_payload(fields, "p1")
    assert payload["event_time"] is None
    assert payload["homepage_url"] is None
    assert payload["event_period_notes"] is None
    assert payload["venue_latitude"] == 34.98
    assert payload["venue_longitude"] is None
    assert payload["contact_phone"] == "0541234567"
    assert payload["is_shizuoka_vocational_assoc_related"] is False
    assert payload["approval_status"] == "pending"
    assert payload["organizer_profile_id"] == "p1"


def test_update_payload_omits_empty_strings():
    fields = form_fields({"event_name": "新しい名前", "lead_text": "", "venue_name": "   ", "opt_out_newspaper_publication": "1"})
    payload = build_event_update_payload(fields)
    assert payload["event_name"] == "新しい名前"
    assert "lead_text" not in payload
    assert "venue_name" not in payload
    assert payload["opt_out_newspaper_publication"] is True
    assert payload["is_shizuoka_vocational_assoc_related"] is False
    assert "updated_at" in payload


def test_update_does_not_overwrite_with_blank(client, owner):
    event = create_event(client, owner, form_fields(EVENT))
    update_event(client, owner, event["id"], form_fields({"event_name": "改名", "lead_text": ""}))
    stored = get_organizer_event(client, owner.profile["id"], event["id"])
    assert stored["event_name"] == "改名"
    assert stored["lead_text"] == "春の大祭"


def test_create_requires_approved_organizer_and_editor(client, owner):
    unapproved = Membership(member=owner.member, profile=dict(owner.profile, is_approved=False))
    with pytest.raises(EventError, match="approved"):
        create_event(client, unapproved, form_fields(EVENT))
    viewer = Membership(member=dict(owner.member, role="viewer"), profile=owner.profile)
    with pytest.raises(PermissionDenied):
        create_event(client, viewer, form_fields(EVENT))


def test_store_search_shows_only_approved_events_in_window(client, owner):
    spring = create_event(client, owner, form_fields(EVENT))
    summer = create_event(
        client,
        owner,
        form_fields(dict(EVENT, event_name="花火大会", event_start_date="2026-08-01", event_end_date="2026-08-01", venue_name="安倍川")),
    )
    create_event(client, owner, form_fields(dict(EVENT, event_name="未承認")))
    set_event_approval(client, spring["id"], "approved")
    set_event_approval(client, summer["id"], "approved")

    def names(rows):
        return [r["event_name"] for r in rows]

    assert names(list_approved_events(client)) == ["静岡まつり", "花火大会"]
    assert names(list_approved_events(client, keyword="安倍")) == ["花火大会"]
    assert names(list_approved_events(client, keyword="まつり,(")) == ["静岡まつり"]
    # events overlapping the window are included
    assert names(list_approved_events(client, date_from=date(2026, 4, 5), date_to=date(2026, 7, 31))) == ["静岡まつり"]
    assert names(list_approved_events(client, date_from=date(2026, 4, 6))) == ["花火大会"]


def test_apply_once_and_review(client, owner):
    event = create_event(client, owner, form_fields(EVENT))
    exhibitor = _exhibitor(client)
    with pytest.raises(ApplicationError, match="not open"):
        apply_to_event(client, exhibitor, event["id"])

    set_event_approval(client, event["id"], "approved")
    application = apply_to_event(client, exhibitor, event["id"])
    assert application["application_status"] == "pending"
    with pytest.raises(ApplicationError, match="already applied"):
        apply_to_event(client, exhibitor, event["id"])

    review_application(client, owner, event["id"], application["id"], "approved")
    rows = list_exhibitor_applications(client, exhibitor["id"])
    assert rows[0]["application_status"] == "approved"
    assert rows[0]["event"]["event_name"] == "静岡まつり"

    viewer = Membership(member=dict(owner.member, role="viewer"), profile=owner.profile)
    with pytest.raises(PermissionDenied):
        review_application(client, viewer, event["id"], application["id"], "rejected")
