from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from app.eventdesk.alerts import report_failure
from app.eventdesk.db import data_client
from app.eventdesk.modules.drafts.admin import draft_registry
from app.eventdesk.modules.events.models import ADDITIONAL_IMAGE_SLOTS
from app.eventdesk.modules.events.service import (
    EVENT_GENRES,
    ApplicationError,
    EventError,
    create_event,
    delete_event,
    event_range_error,
    form_fields,
    get_organizer_event,
    list_event_applications,
    list_organizer_events,
    lookup_venue_address,
    review_application,
    update_event,
    upload_event_image,
    validate_event_form,
)
from app.eventdesk.modules.organizers.admin import require_membership
from app.eventdesk.modules.organizers.service import Membership, PermissionDenied
from app.eventdesk.postal import PostalCodeNotFound, PostalLookupError
from app.eventdesk.results import StoreRequestError
from app.eventdesk.storage import StorageError, UploadRejected
from app.eventdesk.validation import first_error_field

bp = Blueprint("organizer_events", __name__)


def _render_form(
    membership: Membership,
    fields: dict[str, Any],
    *,
    event: dict[str, Any] | None = None,
    errors: dict[str, str] | None = None,
    status: int = 200,
):
    errors = errors or {}
    return (
        render_template(
            "organizer/event_form.html",
            membership=membership,
            event=event,
            fields=fields,
            errors=errors,
            focus_field=first_error_field(errors),
            genres=EVENT_GENRES,
            image_slots=ADDITIONAL_IMAGE_SLOTS,
        ),
        status,
    )


def _postal_lookup(fields: dict[str, Any]) -> dict[str, Any]:
    """Fill venue address fields; on failure keep them as typed and alert."""
    try:
        return lookup_venue_address(current_app.extensions["postal_client"], fields)
    except PostalCodeNotFound:
        flash("Postal code not found.", "danger")
    except PostalLookupError as e:
        current_app.logger.warning("Postal lookup failed: %s", e)
        flash(f"Could not fetch the address. {e}", "danger")
    return fields


# ---------- List ----------
@bp.get("/events")
@require_membership
def events_list(membership: Membership):
    try:
        events = list_organizer_events(data_client(), membership.profile["id"])
    except StoreRequestError as e:
        report_failure("Loading events", e)
        events = []
    return render_template("organizer/events.html", membership=membership, events=events)


# ---------- New ----------
@bp.get("/events/new")
@require_membership
def event_new_get(membership: Membership):
    user_id = membership.member["line_user_id"]
    fields = draft_registry().get(user_id, "event_form").hydrate() or form_fields({})
    return _render_form(membership, fields)


@bp.post("/events/new")
@require_membership
def event_new_post(membership: Membership):
    fields = form_fields(request.form)
    if request.form.get("action") == "lookup_postal":
        return _render_form(membership, _postal_lookup(fields))

    errors = validate_event_form(fields)
    if errors:
        flash(next(iter(errors.values())), "danger")
        return _render_form(membership, fields, errors=errors, status=400)
    try:
        event = create_event(data_client(), membership, fields)
    except (EventError, PermissionDenied, StoreRequestError) as e:
        report_failure("Event registration", e)
        return _render_form(membership, fields)
    draft_registry().discard(membership.member["line_user_id"], "event_form")
    flash("Event registered. It will be published after review.", "success")
    return redirect(url_for("organizer_events.event_edit_get", event_id=event["id"]))


# ---------- Edit ----------
def _load_event(membership: Membership, event_id: str) -> dict[str, Any] | None:
    """The organizer's own event; None after reporting a store failure. Other organizers' events are 404."""
    try:
        event = get_organizer_event(data_client(), membership.profile["id"], event_id)
    except StoreRequestError as e:
        report_failure("Loading the event", e)
        return None
    if not event:
        abort(404)
    return event


@bp.get("/events/<event_id>/edit")
@require_membership
def event_edit_get(membership: Membership, event_id: str):
    event = _load_event(membership, event_id)
    if event is None:
        return redirect(url_for("organizer_events.events_list"))
    fields = form_fields({k: ("" if v is None else v) for k, v in event.items()})
    for k in ("is_shizuoka_vocational_assoc_related", "opt_out_newspaper_publication"):
        fields[k] = bool(event.get(k))
    return _render_form(membership, fields, event=event)


@bp.post("/events/<event_id>/edit")
@require_membership
def event_edit_post(membership: Membership, event_id: str):
    event = _load_event(membership, event_id)
    if event is None:
        return redirect(url_for("organizer_events.events_list"))
    fields = form_fields(request.form)
    if request.form.get("action") == "lookup_postal":
        return _render_form(membership, _postal_lookup(fields), event=event)

    # blank inputs keep the stored value, so only malformed values are errors here
    errors = {k: msg for k, msg in validate_event_form(fields).items() if str(fields.get(k) or "").strip()}
    if not errors:
        range_error = event_range_error(
            fields["event_start_date"].strip() or event.get("event_start_date"),
            fields["event_end_date"].strip() or event.get("event_end_date"),
        )
        if range_error:
            errors["event_end_date"] = range_error
    if errors:
        flash(next(iter(errors.values())), "danger")
        return _render_form(membership, fields, event=event, errors=errors, status=400)
    try:
        update_event(data_client(), membership, event_id, fields)
    except (EventError, PermissionDenied, StoreRequestError) as e:
        report_failure("Event update", e)
        return _render_form(membership, fields, event=event)
    flash("Event updated.", "success")
    return redirect(url_for("organizer_events.events_list"))


@bp.post("/events/<event_id>/delete")
@require_membership
def event_delete(membership: Membership, event_id: str):
    try:
        delete_event(data_client(), membership, event_id)
    except (EventError, PermissionDenied, StoreRequestError) as e:
        report_failure("Deleting the event", e)
        return redirect(url_for("organizer_events.events_list"))
    flash("Event deleted.", "success")
    return redirect(url_for("organizer_events.events_list"))


@bp.post("/events/<event_id>/images/<slot>")
@require_membership
def event_image_upload(membership: Membership, event_id: str, slot: str):
    f = request.files.get("file")
    if not f or not f.filename:
        flash("Please choose a file to upload.", "danger")
        return redirect(url_for("organizer_events.event_edit_get", event_id=event_id))
    try:
        upload_event_image(
            data_client(),
            current_app.extensions["storage"],
            membership,
            event_id,
            slot,
            filename=f.filename,
            data=f.read(),
            content_type=f.mimetype,
            max_bytes=int(current_app.config["MAX_UPLOAD_BYTES"]),
        )
    except (UploadRejected, StorageError, EventError, PermissionDenied, StoreRequestError) as e:
        report_failure("Image upload", e)
        return redirect(url_for("organizer_events.event_edit_get", event_id=event_id))
    flash("Image uploaded.", "success")
    return redirect(url_for("organizer_events.event_edit_get", event_id=event_id))


# ---------- Applications ----------
@bp.get("/events/<event_id>/applications")
@require_membership
def event_applications(membership: Membership, event_id: str):
    event = _load_event(membership, event_id)
    if event is None:
        return redirect(url_for("organizer_events.events_list"))
    try:
        applications = list_event_applications(data_client(), event_id)
    except StoreRequestError as e:
        report_failure("Loading applications", e)
        applications = []
    return render_template(
        "organizer/applications.html", membership=membership, event=event, applications=applications
    )


@bp.post("/events/<event_id>/applications/<application_id>/<status>")
@require_membership
def application_review(membership: Membership, event_id: str, application_id: str, status: str):
    if status not in ("approved", "rejected"):
        abort(404)
    try:
        review_application(data_client(), membership, event_id, application_id, status)
    except (ApplicationError, EventError, PermissionDenied, StoreRequestError) as e:
        report_failure("Updating the application", e)
        return redirect(url_for("organizer_events.event_applications", event_id=event_id))
    flash("Application approved." if status == "approved" else "Application rejected.", "success")
    return redirect(url_for("organizer_events.event_applications", event_id=event_id))
