from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any

from app.eventdesk.audit import record_event
from app.eventdesk.datastore import DataClient
from app.eventdesk.modules.events.models import ADDITIONAL_IMAGE_SLOTS, APPLICATION_STATUSES, APPROVAL_STATUSES
from app.eventdesk.modules.organizers.service import Membership, PermissionDenied
from app.eventdesk.postal import PostalAddress, ZipcloudClient
from app.eventdesk.results import unwrap
from app.eventdesk.storage import EVENT_IMAGES_BUCKET, DEFAULT_MAX_UPLOAD_BYTES, Storage, file_extension, upload_public_file
from app.eventdesk.utils import parse_date, utcnow
from app.eventdesk.validation import FieldErrors, clean_text, normalize_phone

logger = logging.getLogger(__name__)


class EventError(RuntimeError):
    pass


class ApplicationError(RuntimeError):
    pass


# Free-text and date inputs of the event form, in form order.
EVENT_TEXT_FIELDS = (
    "event_name",
    "event_name_furigana",
    "genre",
    "event_start_date",
    "event_end_date",
    "event_display_period",
    "event_period_notes",
    "event_time",
    "application_start_date",
    "application_end_date",
    "application_display_period",
    "application_notes",
    "ticket_release_start_date",
    "ticket_sales_location",
    "lead_text",
    "event_description",
    "event_introduction_text",
    "main_image_caption",
    "additional_image1_caption",
    "additional_image2_caption",
    "additional_image3_caption",
    "additional_image4_caption",
    "venue_name",
    "venue_postal_code",
    "venue_city",
    "venue_town",
    "venue_address",
    "venue_latitude",
    "venue_longitude",
    "homepage_url",
    "related_page_url",
    "contact_name",
    "contact_phone",
    "contact_email",
    "parking_info",
    "fee_info",
    "organizer_info",
)
EVENT_BOOLEAN_FIELDS = ("is_shizuoka_vocational_assoc_related", "opt_out_newspaper_publication")
EVENT_DATE_FIELDS = (
    "event_start_date",
    "event_end_date",
    "application_start_date",
    "application_end_date",
    "ticket_release_start_date",
)
EVENT_FLOAT_FIELDS = ("venue_latitude", "venue_longitude")

# Checked in this order; the first missing one is reported to the user.
REQUIRED_EVENT_FIELDS = (
    ("event_name", "Please enter the event name."),
    ("event_name_furigana", "Please enter the event name reading (furigana)."),
    ("genre", "Please choose a genre."),
    ("event_start_date", "Please enter the event start date."),
    ("event_end_date", "Please enter the event end date."),
    ("event_display_period", "Please enter the event period as displayed."),
    ("lead_text", "Please enter the lead text."),
    ("event_description", "Please enter the event description."),
    ("venue_name", "Please enter the venue name."),
    ("contact_name", "Please enter the contact name."),
    ("contact_phone", "Please enter the contact phone number."),
)

EVENT_GENRES = (
    "祭り・花火大会",
    "音楽・ライブ",
    "スポーツ",
    "グルメ・マルシェ",
    "アート・展示",
    "体験・ワークショップ",
    "その他",
)


def form_fields(source: Any) -> dict[str, Any]:
    """Pick the event form's fields out of a request form (or any mapping)."""
    fields: dict[str, Any] = {k: (source.get(k) or "") for k in EVENT_TEXT_FIELDS}
    for k in EVENT_BOOLEAN_FIELDS:
        fields[k] = str(source.get(k) or "").lower() in ("1", "true", "on", "yes")
    return fields


def event_range_error(start: Any, end: Any) -> str | None:
    """Both dates must parse; a missing or malformed one is not a range error."""
    start, end = clean_text(start), clean_text(end)
    if not start or not end:
        return None
    try:
        if parse_date(end) < parse_date(start):
            return "The end date must not be before the start date."
    except ValueError:
        return None
    return None


def validate_event_form(fields: dict[str, Any]) -> FieldErrors:
    errors: FieldErrors = {}
    for name, message in REQUIRED_EVENT_FIELDS:
        if not clean_text(fields.get(name)):
            errors[name] = message
    for name in EVENT_DATE_FIELDS:
        raw = clean_text(fields.get(name))
        if raw and name not in errors:
            try:
                parse_date(raw)
            except ValueError:
                errors[name] = "Please enter a date as YYYY-MM-DD."
    if not errors.get("event_start_date") and not errors.get("event_end_date"):
        range_error = event_range_error(fields.get("event_start_date"), fields.get("event_end_date"))
        if range_error:
            errors["event_end_date"] = range_error
    for name in EVENT_FLOAT_FIELDS:
        raw = clean_text(fields.get(name))
        if raw:
            try:
                float(raw)
            except ValueError:
                errors[name] = "Please enter a number."
    return errors


def _float_or_none(value: Any) -> float | None:
    raw = clean_text(value)
    return float(raw) if raw else None


def build_event_insert_payload(fields: dict[str, Any], organizer_profile_id: str) -> dict[str, Any]:
    """Every form field, with empty strings stored as null."""
    payload: dict[str, Any] = {}
    for k in EVENT_TEXT_FIELDS:
        value = fields.get(k)
        if isinstance(value, str):
            value = value.strip()
        payload[k] = None if value == "" else value
    for k in EVENT_FLOAT_FIELDS:
        payload[k] = _float_or_none(fields.get(k))
    for k in EVENT_BOOLEAN_FIELDS:
        payload[k] = bool(fields.get(k))
    if payload.get("contact_phone"):
        payload["contact_phone"] = normalize_phone(payload["contact_phone"])
    payload["organizer_profile_id"] = organizer_profile_id
    payload["approval_status"] = "pending"
    return payload


def build_event_update_payload(fields: dict[str, Any]) -> dict[str, Any]:
    """Only non-empty fields are sent so blank inputs keep the stored value; booleans always."""
    payload: dict[str, Any] = {}
    for k in EVENT_TEXT_FIELDS:
        value = fields.get(k)
        if value is None:
            continue
        if isinstance(value, str):
            value = value.strip()
            if value == "":
                continue
        payload[k] = value
    for k in EVENT_FLOAT_FIELDS:
        if k in payload:
            payload[k] = _float_or_none(payload[k])
    for k in EVENT_BOOLEAN_FIELDS:
        payload[k] = bool(fields.get(k))
    if payload.get("contact_phone"):
        payload["contact_phone"] = normalize_phone(payload["contact_phone"])
    payload["updated_at"] = utcnow()
    return payload


def apply_postal_address(fields: dict[str, Any], address: PostalAddress) -> dict[str, Any]:
    """Prefecture, city and town go to venue_city, venue_town and venue_address."""
    updated = dict(fields)
    updated["venue_city"] = address.prefecture
    updated["venue_town"] = address.city
    updated["venue_address"] = address.town
    return updated


def lookup_venue_address(postal_client: ZipcloudClient, fields: dict[str, Any]) -> dict[str, Any]:
    """Raises PostalLookupError and leaves ``fields`` untouched when nothing is found."""
    address = postal_client.lookup(fields.get("venue_postal_code") or "")
    return apply_postal_address(fields, address)


# ---------- Organizer CRUD ----------
def _require_editor(membership: Membership) -> None:
    if not membership.can_edit:
        raise PermissionDenied("Viewer members cannot change events.")


def list_organizer_events(client: DataClient, organizer_profile_id: str) -> list[dict[str, Any]]:
    return unwrap(
        client.table("events")
        .select("*")
        .eq("organizer_profile_id", organizer_profile_id)
        .order("event_start_date", ascending=True)
        .execute(),
        action="list events",
    )


def get_organizer_event(client: DataClient, organizer_profile_id: str, event_id: str) -> dict[str, Any] | None:
    return unwrap(
        client.table("events")
        .select("*")
        .eq("id", event_id)
        .eq("organizer_profile_id", organizer_profile_id)
        .maybe_single()
        .execute(),
        action="load event",
    )


def create_event(client: DataClient, membership: Membership, fields: dict[str, Any]) -> dict[str, Any]:
    _require_editor(membership)
    if not membership.is_approved:
        raise EventError("Events can be published after your organizer account is approved.")
    event = unwrap(
        client.table("events")
        .insert(build_event_insert_payload(fields, membership.profile["id"]))
        .single()
        .execute(),
        action="create event",
    )
    record_event(
        client,
        actor_type="line",
        actor_id=membership.member.get("line_user_id"),
        action="event.create",
        entity_type="Event",
        entity_id=event["id"],
        metadata={"event_name": event.get("event_name")},
    )
    return event


def update_event(client: DataClient, membership: Membership, event_id: str, fields: dict[str, Any]) -> dict[str, Any]:
    _require_editor(membership)
    rows = unwrap(
        client.table("events")
        .update(build_event_update_payload(fields))
        .eq("id", event_id)
        .eq("organizer_profile_id", membership.profile["id"])
        .execute(),
        action="update event",
    )
    if not rows:
        raise EventError("Event not found.")
    return rows[0]


def delete_event(client: DataClient, membership: Membership, event_id: str) -> None:
    _require_editor(membership)
    rows = unwrap(
        client.table("events")
        .delete()
        .eq("id", event_id)
        .eq("organizer_profile_id", membership.profile["id"])
        .execute(),
        action="delete event",
    )
    if not rows:
        raise EventError("Event not found.")
    record_event(
        client,
        actor_type="line",
        actor_id=membership.member.get("line_user_id"),
        action="event.delete",
        entity_type="Event",
        entity_id=event_id,
    )


def event_image_path(event_id: str, slot: str, filename: str, *, now_ms: int | None = None) -> str:
    ms = now_ms if now_ms is not None else int(time.time() * 1000)
    ext = file_extension(filename)
    if slot == "main":
        return f"{event_id}/main_{ms}.{ext}"
    return f"{event_id}/additional_{slot}_{ms}.{ext}"


def image_column(slot: str) -> str:
    if slot == "main":
        return "main_image_url"
    if slot not in {str(n) for n in ADDITIONAL_IMAGE_SLOTS}:
        raise EventError(f"Unknown image slot: {slot}")
    return f"additional_image{slot}_url"


def upload_event_image(
    client: DataClient,
    storage: Storage,
    membership: Membership,
    event_id: str,
    slot: str,
    *,
    filename: str,
    data: bytes,
    content_type: str | None,
    max_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
) -> str:
    _require_editor(membership)
    column = image_column(slot)
    if get_organizer_event(client, membership.profile["id"], event_id) is None:
        raise EventError("Event not found.")
    url = upload_public_file(
        storage,
        EVENT_IMAGES_BUCKET,
        event_image_path(event_id, slot, filename),
        data,
        content_type=content_type,
        max_bytes=max_bytes,
    )
    unwrap(
        client.table("events").update({column: url, "updated_at": utcnow()}).eq("id", event_id).execute(),
        action="save image URL",
    )
    return url


# ---------- Applications ----------
def list_event_applications(client: DataClient, event_id: str) -> list[dict[str, Any]]:
    return unwrap(
        client.table("event_applications")
        .select("*, exhibitor:exhibitors(*)")
        .eq("event_id", event_id)
        .order("applied_at", ascending=False)
        .execute(),
        action="list applications",
    )


def set_application_status(client: DataClient, application_id: str, status: str, *, event_id: str | None = None) -> dict:
    if status not in APPLICATION_STATUSES:
        raise ApplicationError(f"Invalid application status: {status}")
    q = client.table("event_applications").update({"application_status": status, "updated_at": utcnow()}).eq(
        "id", application_id
    )
    if event_id is not None:
        q = q.eq("event_id", event_id)
    rows = unwrap(q.execute(), action="update application")
    if not rows:
        raise ApplicationError("Application not found.")
    return rows[0]


def review_application(
    client: DataClient, membership: Membership, event_id: str, application_id: str, status: str
) -> dict[str, Any]:
    """Organizer approve/reject for an application to one of their own events."""
    if not membership.can_edit:
        raise PermissionDenied("Viewer members cannot review applications.")
    if get_organizer_event(client, membership.profile["id"], event_id) is None:
        raise EventError("Event not found.")
    application = set_application_status(client, application_id, status, event_id=event_id)
    record_event(
        client,
        actor_type="line",
        actor_id=membership.member.get("line_user_id"),
        action=f"application.{status}",
        entity_type="EventApplication",
        entity_id=application_id,
        metadata={"event_id": event_id},
    )
    return application


# ---------- Store side ----------
def _keyword(value: str | None) -> str:
    # or() terms are comma separated and may be grouped with parentheses
    return "".join(ch for ch in clean_text(value) if ch not in ",()")


def list_approved_events(
    client: DataClient,
    *,
    keyword: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
) -> list[dict[str, Any]]:
    q = client.table("events").select("*").eq("approval_status", "approved")
    kw = _keyword(keyword)
    if kw:
        q = q.or_(f"event_name.ilike.%{kw}%,venue_name.ilike.%{kw}%")
    if date_from is not None:
        q = q.gte("event_end_date", date_from.isoformat())
    if date_to is not None:
        q = q.lte("event_start_date", date_to.isoformat())
    return unwrap(q.order("event_start_date", ascending=True).execute(), action="list events")


def get_approved_event(client: DataClient, event_id: str) -> dict[str, Any] | None:
    return unwrap(
        client.table("events").select("*").eq("id", event_id).eq("approval_status", "approved").maybe_single().execute(),
        action="load event",
    )


def apply_to_event(client: DataClient, exhibitor: dict[str, Any], event_id: str) -> dict[str, Any]:
    if get_approved_event(client, event_id) is None:
        raise ApplicationError("This event is not open for applications.")
    existing = unwrap(
        client.table("event_applications")
        .select("id")
        .eq("exhibitor_id", exhibitor["id"])
        .eq("event_id", event_id)
        .maybe_single()
        .execute(),
        action="check application",
    )
    if existing:
        raise ApplicationError("You have already applied to this event.")
    application = unwrap(
        client.table("event_applications")
        .insert({"exhibitor_id": exhibitor["id"], "event_id": event_id, "application_status": "pending"})
        .single()
        .execute(),
        action="apply",
    )
    record_event(
        client,
        actor_type="line",
        actor_id=exhibitor.get("line_user_id"),
        action="application.create",
        entity_type="EventApplication",
        entity_id=application["id"],
        metadata={"event_id": event_id},
    )
    return application


def list_exhibitor_applications(client: DataClient, exhibitor_id: str) -> list[dict[str, Any]]:
    return unwrap(
        client.table("event_applications")
        .select(
            "id, application_status, applied_at, "
            "event:events(id, event_name, event_start_date, event_end_date, venue_name, main_image_url)"
        )
        .eq("exhibitor_id", exhibitor_id)
        .order("applied_at", ascending=False)
        .execute(),
        action="list applications",
    )


# ---------- Admin ----------
def list_all_events(client: DataClient) -> list[dict[str, Any]]:
    return unwrap(
        client.table("events")
        .select("*, organizer:organizer_profiles(organization_name, is_approved)")
        .order("created_at", ascending=False)
        .execute(),
        action="list events",
    )


def list_all_applications(client: DataClient) -> list[dict[str, Any]]:
    return unwrap(
        client.table("event_applications")
        .select("*, event:events(id, event_name, event_start_date), exhibitor:exhibitors(id, name, email, phone_number)")
        .order("applied_at", ascending=False)
        .execute(),
        action="list applications",
    )


def set_event_approval(client: DataClient, event_id: str, status: str) -> dict[str, Any]:
    if status not in APPROVAL_STATUSES:
        raise EventError(f"Invalid approval status: {status}")
    return unwrap(
        client.table("events")
        .update({"approval_status": status, "updated_at": utcnow()})
        .eq("id", event_id)
        .single()
        .execute(),
        action="update event approval",
    )
