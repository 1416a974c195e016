from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Blueprint, current_app, flash, redirect, render_template, request, url_for

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
from app.eventdesk.modules.organizers.models import GENDERS, INVITE_FIELDS, REGISTRATION_FIELDS
from app.eventdesk.modules.organizers.registration import (
    EntryState,
    RegistrationStep,
    advance,
    choose_entry,
    chosen_entry,
    clear_registration,
    resolve_entry_state,
    save_wizard,
    wizard_state,
)
from app.eventdesk.modules.organizers.service import (
    InvitationError,
    Membership,
    PermissionDenied,
    RegistrationError,
    create_invitation,
    find_membership,
    list_invitations,
    list_members,
    redeem_invitation,
    register_organizer,
    revoke_invitation,
    update_member,
    update_profile,
    validate_invite_registration,
    validate_member_update,
    validate_profile_update,
    validate_registration,
)
from app.eventdesk.results import StoreRequestError
from app.eventdesk.validation import first_error_field

bp = Blueprint("organizer", __name__)


def _form_values(names: tuple[str, ...]) -> dict[str, Any]:
    return {k: (request.form.get(k) or "").strip() for k in names}


def require_membership(fn: Callable[..., Any]) -> Callable[..., Any]:
    """LINE login plus an organizer membership; the view receives the Membership."""

    @wraps(fn)
    @require_line_login("organizer.index")
    def wrapped(profile: LineProfile, *args: Any, **kwargs: Any):
        try:
            membership = find_membership(data_client(), profile.user_id)
        except StoreRequestError as e:
            report_failure("Loading your organizer account", e)
            return redirect(url_for("organizer.index"))
        if membership is None:
            return redirect(url_for("organizer.index"))
        return fn(membership, *args, **kwargs)

    return wrapped


# ---------- Entry ----------
@bp.get("/")
def index():
    state = current_line_session()
    membership = None
    if isinstance(state, LoggedIn):
        try:
            membership = find_membership(data_client(), state.profile.user_id)
        except StoreRequestError as e:
            report_failure("Loading your organizer account", e)
    entry = resolve_entry_state(state, membership, chosen_entry())
    if entry is EntryState.LOADING:
        return render_template(
            "organizer/welcome.html", liff_id=current_app.config.get("LIFF_ID_ORGANIZER"), session_url=url_for("organizer.session_login")
        )
    if entry is EntryState.MAIN:
        clear_registration()
        return redirect(url_for("organizer_events.events_list"))
    if entry is EntryState.NEW:
        return redirect(url_for("organizer.register_get"))
    if entry is EntryState.INVITE:
        return redirect(url_for("organizer.invite_get"))
    return render_template("organizer/selector.html", profile=state.profile)


@bp.post("/session")
def session_login():
    return session_login_response("organizer.index")


@bp.post("/session/logout")
def session_logout():
    clear_registration()
    end_line_session()
    return redirect(url_for("organizer.index"))


@bp.post("/entry")
@require_line_login("organizer.index")
def entry_post(profile: LineProfile):
    choice = (request.form.get("choice") or "").strip()
    if choice == EntryState.NEW.value:
        choose_entry(EntryState.NEW)
        save_wizard(RegistrationStep.COLLECT, {})
    elif choice == EntryState.INVITE.value:
        choose_entry(EntryState.INVITE)
    else:
        clear_registration()
    return redirect(url_for("organizer.index"))


@bp.get("/terms")
def terms():
    return render_template("organizer/terms.html")


# ---------- New registration ----------
def _render_collect(profile: LineProfile, fields: dict[str, Any], errors: dict[str, str] | None = None, status: int = 200):
    errors = errors or {}
    return (
        render_template(
            "organizer/register_collect.html",
            profile=profile,
            fields=fields,
            errors=errors,
            focus_field=first_error_field(errors),
            genders=GENDERS,
        ),
        status,
    )


@bp.get("/register")
@require_line_login("organizer.index")
def register_get(profile: LineProfile):
    step, fields = wizard_state()
    if step is RegistrationStep.COMPLETE:
        return render_template("organizer/register_complete.html", fields=fields)
    if step is RegistrationStep.CONFIRM:
        return render_template("organizer/register_confirm.html", fields=fields)
    if not fields:
        fields = draft_registry().get(profile.user_id, "organizer_registration").hydrate() or {}
    return _render_collect(profile, fields)


@bp.post("/register")
@require_line_login("organizer.index")
def register_post(profile: LineProfile):
    step, fields = wizard_state()
    action = (request.form.get("action") or "").strip()

    if step is RegistrationStep.COLLECT and action == "next":
        fields = _form_values(REGISTRATION_FIELDS)
        fields["is_terms_agreed"] = bool(request.form.get("is_terms_agreed"))
        errors = validate_registration(fields)
        if errors:
            save_wizard(RegistrationStep.COLLECT, fields)
            return _render_collect(profile, fields, errors, 400)
        save_wizard(advance(step, action), fields)
        return redirect(url_for("organizer.register_get"))

    if step is RegistrationStep.CONFIRM and action == "back":
        save_wizard(advance(step, action), fields)
        return redirect(url_for("organizer.register_get"))

    if step is RegistrationStep.CONFIRM and action == "submit":
        errors = validate_registration(fields)
        if errors:
            save_wizard(RegistrationStep.COLLECT, fields)
            return _render_collect(profile, fields, errors, 400)
        try:
            register_organizer(data_client(), profile.user_id, fields)
        except (RegistrationError, StoreRequestError) as e:
            report_failure("Registration", e)
            return redirect(url_for("organizer.register_get"))
        draft_registry().discard(profile.user_id, "organizer_registration")
        save_wizard(advance(step, action), fields)
        flash("Registration complete. Please wait for approval.", "success")
        return redirect(url_for("organizer.register_get"))

    if step is RegistrationStep.COMPLETE and action == "finish":
        clear_registration()
        return redirect(url_for("organizer.index"))

    return redirect(url_for("organizer.register_get"))


# ---------- Invite redemption ----------
def _render_invite(profile: LineProfile, fields: dict[str, Any], errors: dict[str, str] | None = None, status: int = 200):
    errors = errors or {}
    return (
        render_template(
            "organizer/invite.html",
            profile=profile,
            fields=fields,
            errors=errors,
            focus_field=first_error_field(errors),
            genders=GENDERS,
        ),
        status,
    )


@bp.get("/invite")
@require_line_login("organizer.index")
def invite_get(profile: LineProfile):
    fields = draft_registry().get(profile.user_id, "invite_registration").hydrate() or {}
    return _render_invite(profile, fields)


@bp.post("/invite")
@require_line_login("organizer.index")
def invite_post(profile: LineProfile):
    fields = _form_values(INVITE_FIELDS)
    errors = validate_invite_registration(fields)
    if errors:
        return _render_invite(profile, fields, errors, 400)
    try:
        result = redeem_invitation(data_client(), profile.user_id, fields)
    except (InvitationError, StoreRequestError) as e:
        report_failure("Registration", e)
        return _render_invite(profile, fields)
    draft_registry().discard(profile.user_id, "invite_registration")
    clear_registration()
    flash("Registered with the invitation code.", "success")
    if not result.invitation_marked_used:
        current_app.logger.error("Invitation %s could not be marked used after redemption", result.invitation_id)
    return redirect(url_for("organizer.index"))


# ---------- Settings ----------
@bp.get("/settings")
@require_membership
def settings(membership: Membership):
    client = data_client()
    try:
        members = list_members(client, membership.profile["id"])
        invitations = list_invitations(client, membership.profile["id"]) if membership.is_owner else []
    except StoreRequestError as e:
        report_failure("Loading members and invitations", e)
        members, invitations = [], []
    return render_template(
        "organizer/settings.html",
        membership=membership,
        members=members,
        invitations=invitations,
    )


@bp.post("/settings/invitations")
@require_membership
def invitation_create(membership: Membership):
    role = (request.form.get("role") or "editor").strip()
    try:
        invitation = create_invitation(
            data_client(), membership, role=role, ttl_days=int(current_app.config.get("INVITATION_TTL_DAYS") or 0)
        )
    except (InvitationError, PermissionDenied, StoreRequestError) as e:
        report_failure("Issuing the invitation code", e)
        return redirect(url_for("organizer.settings"))
    flash(f"Invitation code issued: {invitation['code']}", "success")
    return redirect(url_for("organizer.settings"))


@bp.post("/settings/invitations/<invitation_id>/revoke")
@require_membership
def invitation_revoke(membership: Membership, invitation_id: str):
    try:
        revoke_invitation(data_client(), membership, invitation_id)
    except (InvitationError, PermissionDenied, StoreRequestError) as e:
        report_failure("Revoking the invitation code", e)
        return redirect(url_for("organizer.settings"))
    flash("Invitation code revoked.", "success")
    return redirect(url_for("organizer.settings"))


@bp.get("/settings/member")
@require_membership
def member_edit_get(membership: Membership):
    return render_template(
        "organizer/member_edit.html", fields=membership.member, errors={}, focus_field=None, genders=GENDERS
    )


@bp.post("/settings/member")
@require_membership
def member_edit_post(membership: Membership):
    fields = _form_values(("name", "gender", "age", "phone_number", "email"))
    errors = validate_member_update(fields)
    if errors:
        return (
            render_template(
                "organizer/member_edit.html",
                fields=fields,
                errors=errors,
                focus_field=first_error_field(errors),
                genders=GENDERS,
            ),
            400,
        )
    try:
        update_member(data_client(), membership, fields)
    except StoreRequestError as e:
        report_failure("Updating your details", e)
        return redirect(url_for("organizer.member_edit_get"))
    flash("Your details were updated.", "success")
    return redirect(url_for("organizer.settings"))


@bp.get("/settings/profile")
@require_membership
def profile_edit_get(membership: Membership):
    if not membership.is_owner:
        flash("Only the owner can edit organization details.", "danger")
        return redirect(url_for("organizer.settings"))
    return render_template("organizer/profile_edit.html", fields=membership.profile, errors={}, focus_field=None)


@bp.post("/settings/profile")
@require_membership
def profile_edit_post(membership: Membership):
    fields = _form_values(("organization_name", "contact_phone", "contact_email", "website_url"))
    errors = validate_profile_update(fields)
    if errors:
        return (
            render_template(
                "organizer/profile_edit.html", fields=fields, errors=errors, focus_field=first_error_field(errors)
            ),
            400,
        )
    try:
        update_profile(data_client(), membership, fields)
    except (PermissionDenied, StoreRequestError) as e:
        report_failure("Updating organization details", e)
        return redirect(url_for("organizer.settings"))
    flash("Organization details updated.", "success")
    return redirect(url_for("organizer.settings"))
