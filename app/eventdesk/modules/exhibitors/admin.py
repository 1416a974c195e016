from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Blueprint, abort, current_app, flash, redirect, render_template, request, url_for

from app.eventdesk.alerts import report_failure
from app.eventdesk.db import data_client
from app.eventdesk.line_auth import (
    LineProfile,
    LoggedIn,
    current_line_session,
    end_line_session,
    require_line_login,
    session_login_response,
)
from app.eventdesk.modules.drafts.admin import draft_registry
from app.eventdesk.modules.events.service import (
    ApplicationError,
    apply_to_event,
    get_approved_event,
    list_approved_events,
    list_exhibitor_applications,
)
from app.eventdesk.modules.exhibitors.models import DOCUMENT_TYPES, EXHIBITOR_FIELDS, document_column
from app.eventdesk.modules.exhibitors.service import (
    GENRE_CATEGORIES,
    DocumentUpload,
    ExhibitorError,
    find_exhibitor,
    precheck_documents,
    register_exhibitor,
    update_exhibitor,
    validate_exhibitor,
)
from app.eventdesk.modules.organizers.models import GENDERS
from app.eventdesk.results import StoreRequestError
from app.eventdesk.storage import StorageError, UploadRejected
from app.eventdesk.utils import parse_date
from app.eventdesk.validation import first_error_field

bp = Blueprint("store", __name__)


def _form_values() -> dict[str, Any]:
    return {k: (request.form.get(k) or "").strip() for k in EXHIBITOR_FIELDS}


def _document_uploads() -> dict[str, DocumentUpload]:
    uploads: dict[str, DocumentUpload] = {}
    for doc_type, _label in DOCUMENT_TYPES:
        f = request.files.get(doc_type)
        if f and f.filename:
            uploads[doc_type] = DocumentUpload(filename=f.filename, data=f.read(), content_type=f.mimetype)
    return uploads


def _max_bytes() -> int:
    return int(current_app.config["MAX_UPLOAD_BYTES"])


def require_exhibitor(fn: Callable[..., Any]) -> Callable[..., Any]:
    """LINE login plus a registered exhibitor row; the view receives the row."""

    @wraps(fn)
    @require_line_login("store.index")
    def wrapped(profile: LineProfile, *args: Any, **kwargs: Any):
        try:
            exhibitor = find_exhibitor(data_client(), profile.user_id)
        except StoreRequestError as e:
            report_failure("Loading your exhibitor profile", e)
            return redirect(url_for("store.index"))
        if not exhibitor:
            flash("Please complete exhibitor registration first.", "warning")
            return redirect(url_for("store.register_get"))
        return fn(exhibitor, *args, **kwargs)

    return wrapped


# ---------- Entry ----------
@bp.get("/")
def index():
    state = current_line_session()
    if not isinstance(state, LoggedIn):
        return render_template(
            "store/welcome.html", liff_id=current_app.config.get("LIFF_ID_STORE"), session_url=url_for("store.session_login")
        )
    try:
        exhibitor = find_exhibitor(data_client(), state.profile.user_id)
    except StoreRequestError as e:
        report_failure("Loading your exhibitor profile", e)
        return render_template("store/welcome.html", liff_id=current_app.config.get("LIFF_ID_STORE"), session_url=url_for("store.session_login"))
    if not exhibitor:
        return redirect(url_for("store.register_get"))
    return redirect(url_for("store.events_list"))


@bp.post("/session")
def session_login():
    return session_login_response("store.index")


@bp.post("/session/logout")
def session_logout():
    end_line_session()
    return redirect(url_for("store.index"))


# ---------- Registration ----------
def _render_register(fields: dict[str, Any], errors: dict[str, str] | None = None, status: int = 200):
    errors = errors or {}
    return (
        render_template(
            "store/register.html",
            fields=fields,
            errors=errors,
            focus_field=first_error_field(errors),
            genders=GENDERS,
            genres=GENRE_CATEGORIES,
            document_types=DOCUMENT_TYPES,
        ),
        status,
    )


@bp.get("/register")
@require_line_login("store.index")
def register_get(profile: LineProfile):
    fields = draft_registry().get(profile.user_id, "exhibitor_registration").hydrate() or {}
    return _render_register(fields)


@bp.post("/register")
@require_line_login("store.index")
def register_post(profile: LineProfile):
    fields = _form_values()
    uploads = _document_uploads()
    errors = validate_exhibitor(fields)
    errors.update(precheck_documents(uploads, max_bytes=_max_bytes()))
    if errors:
        return _render_register(fields, errors, 400)
    try:
        register_exhibitor(data_client(), current_app.extensions["storage"], profile.user_id, fields, uploads, max_bytes=_max_bytes())
    except (ExhibitorError, UploadRejected, StorageError, StoreRequestError) as e:
        report_failure("Registration", e)
        return _render_register(fields)
    draft_registry().discard(profile.user_id, "exhibitor_registration")
    flash("Registration complete.", "success")
    return redirect(url_for("store.events_list"))


# ---------- Events ----------
def _date_arg(name: str):
    try:
        return parse_date(request.args.get(name))
    except ValueError:
        flash("Dates must be YYYY-MM-DD.", "warning")
        return None


@bp.get("/events")
@require_exhibitor
def events_list(exhibitor: dict[str, Any]):
    keyword = (request.args.get("q") or "").strip()
    date_from = _date_arg("from")
    date_to = _date_arg("to")
    try:
        events = list_approved_events(data_client(), keyword=keyword, date_from=date_from, date_to=date_to)
    except StoreRequestError as e:
        report_failure("Loading events", e)
        events = []
    return render_template(
        "store/events.html",
        exhibitor=exhibitor,
        events=events,
        keyword=keyword,
        date_from=date_from,
        date_to=date_to,
    )


@bp.get("/events/<event_id>")
@require_exhibitor
def event_detail(exhibitor: dict[str, Any], event_id: str):
    try:
        event = get_approved_event(data_client(), event_id)
    except StoreRequestError as e:
        report_failure("Loading the event", e)
        return redirect(url_for("store.events_list"))
    if not event:
        abort(404)
    return render_template("store/event_detail.html", exhibitor=exhibitor, event=event)


@bp.post("/events/<event_id>/apply")
@require_exhibitor
def event_apply(exhibitor: dict[str, Any], event_id: str):
    try:
        apply_to_event(data_client(), exhibitor, event_id)
    except (ApplicationError, StoreRequestError) as e:
        report_failure("Application", e)
        return redirect(url_for("store.event_detail", event_id=event_id))
    flash("Your application was submitted.", "success")
    return redirect(url_for("store.applications"))


@bp.get("/applications")
@require_exhibitor
def applications(exhibitor: dict[str, Any]):
    try:
        rows = list_exhibitor_applications(data_client(), exhibitor["id"])
    except StoreRequestError as e:
        report_failure("Loading applications", e)
        rows = []
    return render_template("store/applications.html", exhibitor=exhibitor, applications=rows)


# ---------- Profile ----------
@bp.get("/profile")
@require_exhibitor
def profile(exhibitor: dict[str, Any]):
    return render_template(
        "store/profile.html", exhibitor=exhibitor, document_types=DOCUMENT_TYPES, document_column=document_column
    )


def _render_profile_edit(exhibitor: dict[str, Any], fields: dict[str, Any], errors: dict[str, str] | None = None, status: int = 200):
    errors = errors or {}
    return (
        render_template(
            "store/profile_edit.html",
            exhibitor=exhibitor,
            fields=fields,
            errors=errors,
            focus_field=first_error_field(errors),
            genders=GENDERS,
            genres=GENRE_CATEGORIES,
            document_types=DOCUMENT_TYPES,
            document_column=document_column,
        ),
        status,
    )


@bp.get("/profile/edit")
@require_exhibitor
def profile_edit_get(exhibitor: dict[str, Any]):
    return _render_profile_edit(exhibitor, {k: exhibitor.get(k) or "" for k in EXHIBITOR_FIELDS})


@bp.post("/profile/edit")
@require_exhibitor
def profile_edit_post(exhibitor: dict[str, Any]):
    fields = _form_values()
    uploads = _document_uploads()
    cleared = {doc_type for doc_type, _label in DOCUMENT_TYPES if request.form.get(f"clear_{doc_type}")}
    errors = validate_exhibitor(fields)
    errors.update(precheck_documents(uploads, max_bytes=_max_bytes()))
    if errors:
        return _render_profile_edit(exhibitor, fields, errors, 400)
    try:
        update_exhibitor(
            data_client(), current_app.extensions["storage"], exhibitor, fields, uploads, cleared, max_bytes=_max_bytes()
        )
    except (UploadRejected, StorageError, StoreRequestError) as e:
        report_failure("Profile update", e)
        return _render_profile_edit(exhibitor, fields)
    flash("Profile updated.", "success")
    return redirect(url_for("store.profile"))
