from datetime import date, datetime, time, timedelta

from flask import Blueprint, abort, flash, g, redirect, render_template, request, url_for

from app.eventdesk.alerts import report_failure
from app.eventdesk.audit import record_event
from app.eventdesk.db import data_client
from app.eventdesk.modules.events.service import (
    ApplicationError,
    EventError,
    list_all_applications,
    list_all_events,
    set_application_status,
    set_event_approval,
)
from app.eventdesk.modules.organizers.service import list_organizers, set_organizer_approval
from app.eventdesk.rbac import require_permission
from app.eventdesk.results import StoreRequestError, unwrap

bp = Blueprint("admin", __name__)

TABS = ("organizers", "events", "applications")


def _parse_date(s: str) -> date | None:
    s = (s or "").strip()
    if not s:
        return None
    try:
        return date.fromisoformat(s)
    except ValueError:
        return None


def _actor_id() -> str | None:
    user = getattr(g, "current_user", None)
    return str(user["id"]) if user else None


def _back_to(tab: str):
    return redirect(url_for("admin.index", tab=tab))


@bp.get("/")
@require_permission("admin.view")
def index():
    """Approval dashboard; every list is re-fetched on each visit."""
    tab = (request.args.get("tab") or "organizers").strip()
    if tab not in TABS:
        tab = "organizers"
    client = data_client()
    organizers: list[dict] = []
    events: list[dict] = []
    applications: list[dict] = []
    try:
        organizers = list_organizers(client)
        events = list_all_events(client)
        applications = list_all_applications(client)
    except StoreRequestError as e:
        report_failure("Loading the dashboard", e)
    return render_template(
        "admin/index.html",
        tab=tab,
        organizers=organizers,
        events=events,
        applications=applications,
        pending_organizers=sum(1 for o in organizers if not o.get("is_approved")),
        pending_events=sum(1 for e in events if e.get("approval_status") == "pending"),
        pending_applications=sum(1 for a in applications if a.get("application_status") == "pending"),
    )


@bp.post("/organizers/<profile_id>/approval")
@require_permission("organizers.approve")
def organizer_approval(profile_id: str):
    approved = (request.form.get("approved") or "").strip() == "1"
    client = data_client()
    try:
        set_organizer_approval(client, profile_id, approved)
    except StoreRequestError as e:
        report_failure("Updating organizer approval", e)
        return _back_to("organizers")
    record_event(
        client,
        actor_type="admin",
        actor_id=_actor_id(),
        action="organizer.approve" if approved else "organizer.revoke",
        entity_type="OrganizerProfile",
        entity_id=profile_id,
    )
    flash("Organizer approved." if approved else "Organizer approval revoked.", "success")
    return _back_to("organizers")


@bp.post("/events/<event_id>/approval")
@require_permission("events.approve")
def event_approval(event_id: str):
    status = (request.form.get("status") or "").strip()
    client = data_client()
    try:
        set_event_approval(client, event_id, status)
    except (EventError, StoreRequestError) as e:
        report_failure("Updating event approval", e)
        return _back_to("events")
    record_event(
        client,
        actor_type="admin",
        actor_id=_actor_id(),
        action=f"event.{status}",
        entity_type="Event",
        entity_id=event_id,
    )
    flash(f"Event marked {status}.", "success")
    return _back_to("events")


@bp.post("/applications/<application_id>/<status>")
@require_permission("applications.approve")
def application_approval(application_id: str, status: str):
    if status not in ("approved", "rejected"):
        abort(404)
    client = data_client()
    try:
        set_application_status(client, application_id, status)
    except (ApplicationError, StoreRequestError) as e:
        report_failure("Updating the application", e)
        return _back_to("applications")
    record_event(
        client,
        actor_type="admin",
        actor_id=_actor_id(),
        action=f"application.{status}",
        entity_type="EventApplication",
        entity_id=application_id,
    )
    flash("Application approved." if status == "approved" else "Application rejected.", "success")
    return _back_to("applications")


@bp.get("/audit")
@require_permission("admin.view")
def audit_list():
    """
    Audit trail (last 200 events) with simple filters:
    - action (contains)
    - date range (YYYY-MM-DD)
    """
    action = (request.args.get("action") or "").strip()
    date_from = _parse_date(request.args.get("date_from") or "")
    date_to = _parse_date(request.args.get("date_to") or "")

    if (request.args.get("date_from") or "").strip() and not date_from:
        flash("date_from must be YYYY-MM-DD", "danger")
    if (request.args.get("date_to") or "").strip() and not date_to:
        flash("date_to must be YYYY-MM-DD", "danger")

    q = data_client().table("audit_events").select("*")
    if action:
        q = q.ilike("action", f"%{action}%")
    if date_from:
        q = q.gte("created_at", datetime.combine(date_from, time.min))
    if date_to:
        # inclusive end-date (treat as whole day)
        q = q.lt("created_at", datetime.combine(date_to + timedelta(days=1), time.min))
    try:
        events = unwrap(q.order("created_at", ascending=False).order("id", ascending=False).limit(200).execute())
    except StoreRequestError as e:
        report_failure("Loading the audit trail", e)
        events = []
    return render_template(
        "admin/audit.html",
        events=events,
        action=action,
        date_from=(request.args.get("date_from") or "").strip(),
        date_to=(request.args.get("date_to") or "").strip(),
    )
