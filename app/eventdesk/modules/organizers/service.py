from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from app.eventdesk.audit import record_event
from app.eventdesk.datastore import DataClient
from app.eventdesk.modules.organizers.models import GENDERS, MEMBER_ROLES
from app.eventdesk.results import Err, unwrap
from app.eventdesk.utils import parse_timestamp, utcnow
from app.eventdesk.validation import (
    FieldErrors,
    clean_text,
    is_valid_age,
    is_valid_email,
    is_valid_phone,
    normalize_phone,
    parse_age,
)

logger = logging.getLogger(__name__)

INVITATION_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
INVITATION_CODE_LENGTH = 8


class RegistrationError(RuntimeError):
    pass


class InvitationError(RuntimeError):
    pass


class PermissionDenied(RuntimeError):
    pass


@dataclass(frozen=True)
class Membership:
    member: dict[str, Any]
    profile: dict[str, Any]

    @property
    def role(self) -> str:
        return self.member.get("role") or "viewer"

    @property
    def is_owner(self) -> bool:
        return self.role == "owner"

    @property
    def can_edit(self) -> bool:
        return self.role in ("owner", "editor")

    @property
    def is_approved(self) -> bool:
        return bool(self.profile.get("is_approved"))


@dataclass(frozen=True)
class RedemptionResult:
    membership: Membership
    invitation_id: str
    # False when the member row was written but marking the code used failed.
    invitation_marked_used: bool


# ---------- Membership ----------
def find_membership(client: DataClient, line_user_id: str) -> Membership | None:
    row = unwrap(
        client.table("organizer_members")
        .select("*, organizer_profiles(*)")
        .eq("line_user_id", line_user_id)
        .maybe_single()
        .execute(),
        action="load membership",
    )
    if not row:
        return None
    profile = row.pop("organizer_profiles", None)
    if not profile:
        logger.error("Member %s points at a missing organizer profile", row.get("id"))
        return None
    return Membership(member=row, profile=profile)


def _member_exists(client: DataClient, line_user_id: str) -> bool:
    row = unwrap(
        client.table("organizer_members").select("id").eq("line_user_id", line_user_id).maybe_single().execute(),
        action="check membership",
    )
    return bool(row)


# ---------- Validation ----------
def _validate_person(fields: dict[str, Any], errors: FieldErrors, *, require_all: bool) -> None:
    if not clean_text(fields.get("name")):
        errors["name"] = "Name is required."
    gender = clean_text(fields.get("gender"))
    if require_all and not gender:
        errors["gender"] = "Gender is required."
    elif gender and gender not in GENDERS:
        errors["gender"] = "Please choose a valid gender."
    age = clean_text(fields.get("age"))
    if require_all and not age:
        errors["age"] = "Age is required."
    elif age and not is_valid_age(age, max_age=100):
        errors["age"] = "Age must be between 0 and 100."
    phone = clean_text(fields.get("phone_number"))
    if require_all and not phone:
        errors["phone_number"] = "Phone number is required."
    elif phone and not is_valid_phone(phone):
        errors["phone_number"] = "Phone number must be 10 to 15 digits."
    email = clean_text(fields.get("email"))
    if not email:
        errors["email"] = "Email is required."
    elif not is_valid_email(email):
        errors["email"] = "Please enter a valid email address."


def validate_registration(fields: dict[str, Any]) -> FieldErrors:
    """New organizer registration: every field required, terms accepted."""
    errors: FieldErrors = {}
    if not clean_text(fields.get("company_name")):
        errors["company_name"] = "Company name is required."
    _validate_person(fields, errors, require_all=True)
    if not fields.get("is_terms_agreed"):
        errors["is_terms_agreed"] = "Please accept the terms of use."
    return errors


def validate_invite_registration(fields: dict[str, Any]) -> FieldErrors:
    """Invite redemption: code, name and email required; age and phone checked when given."""
    errors: FieldErrors = {}
    if not clean_text(fields.get("invite_code")):
        errors["invite_code"] = "Invitation code is required."
    _validate_person(fields, errors, require_all=False)
    return errors


def validate_member_update(fields: dict[str, Any]) -> FieldErrors:
    errors: FieldErrors = {}
    _validate_person(fields, errors, require_all=False)
    return errors


def validate_profile_update(fields: dict[str, Any]) -> FieldErrors:
    errors: FieldErrors = {}
    if not clean_text(fields.get("organization_name")):
        errors["organization_name"] = "Organization name is required."
    phone = clean_text(fields.get("contact_phone"))
    if phone and not is_valid_phone(phone):
        errors["contact_phone"] = "Phone number must be 10 to 15 digits."
    email = clean_text(fields.get("contact_email"))
    if email and not is_valid_email(email):
        errors["contact_email"] = "Please enter a valid email address."
    return errors


def _member_payload(fields: dict[str, Any]) -> dict[str, Any]:
    phone = clean_text(fields.get("phone_number"))
    return {
        "name": clean_text(fields.get("name")),
        "gender": clean_text(fields.get("gender")) or None,
        "age": parse_age(fields.get("age")),
        "phone_number": normalize_phone(phone) if phone else None,
        "email": clean_text(fields.get("email")),
    }


# ---------- New registration ----------
def register_organizer(client: DataClient, line_user_id: str, fields: dict[str, Any]) -> Membership:
    """
    Create an organizer profile (awaiting approval) and its owner member.

    Two separate writes: if the member insert fails the profile row remains.
    """
    if _member_exists(client, line_user_id):
        raise RegistrationError("You are already registered.")

    profile = unwrap(
        client.table("organizer_profiles")
        .insert(
            {
                "organization_name": clean_text(fields.get("company_name")),
                "contact_phone": normalize_phone(fields.get("phone_number")) or None,
                "contact_email": clean_text(fields.get("email")) or None,
                "is_approved": False,
            }
        )
        .single()
        .execute(),
        action="create organizer profile",
    )
    member_res = (
        client.table("organizer_members")
        .insert(
            dict(
                _member_payload(fields),
                organizer_profile_id=profile["id"],
                line_user_id=line_user_id,
                role="owner",
                is_primary=True,
            )
        )
        .single()
        .execute()
    )
    if isinstance(member_res, Err):
        logger.error(
            "Organizer profile %s created but owner member insert failed: %s", profile["id"], member_res.error.message
        )
    member = unwrap(member_res, action="create owner member")
    record_event(
        client,
        actor_type="line",
        actor_id=line_user_id,
        action="organizer.register",
        entity_type="OrganizerProfile",
        entity_id=profile["id"],
        metadata={"organization_name": profile["organization_name"]},
    )
    return Membership(member=member, profile=profile)


# ---------- Invitations ----------
def normalize_invitation_code(code: str | None) -> str:
    return (code or "").strip().upper()


def generate_invitation_code(length: int = INVITATION_CODE_LENGTH) -> str:
    return "".join(secrets.choice(INVITATION_CODE_ALPHABET) for _ in range(length))


def invitation_problem(invitation: dict[str, Any] | None, *, now=None) -> str | None:
    """Why this invitation cannot be redeemed, or None when it can."""
    if not invitation:
        return "Invitation code not found. Please check the code."
    if invitation.get("used_at"):
        return "This invitation code has already been used."
    if invitation.get("status") == "revoked":
        return "This invitation code has been revoked."
    expires_at = parse_timestamp(invitation.get("expires_at"))
    if expires_at is not None and expires_at < (now or utcnow()):
        return "This invitation code has expired."
    return None


def redeem_invitation(client: DataClient, line_user_id: str, fields: dict[str, Any]) -> RedemptionResult:
    """
    Join an organizer with an invitation code.

    Inserts the member, then marks the code used. The writes are not atomic:
    when the second fails the member stays and the code stays active; the
    result reports ``invitation_marked_used=False``.
    """
    if _member_exists(client, line_user_id):
        raise InvitationError("You are already registered as an organizer.")

    code = normalize_invitation_code(fields.get("invite_code"))
    invitation = unwrap(
        client.table("organizer_invitations")
        .select("*, organizer_profiles(*)")
        .eq("code", code)
        .limit(1)
        .maybe_single()
        .execute(),
        action="look up invitation",
    )
    problem = invitation_problem(invitation)
    if problem:
        raise InvitationError(problem)
    profile = invitation.pop("organizer_profiles", None)
    if not profile:
        raise InvitationError("The organizer for this invitation code no longer exists.")

    role = invitation.get("role") or "editor"
    if role not in MEMBER_ROLES:
        role = "editor"
    member = unwrap(
        client.table("organizer_members")
        .insert(
            dict(
                _member_payload(fields),
                organizer_profile_id=profile["id"],
                line_user_id=line_user_id,
                role=role,
                is_primary=False,
            )
        )
        .single()
        .execute(),
        action="create member",
    )

    mark_res = (
        client.table("organizer_invitations")
        .update({"used_at": utcnow(), "status": "used"})
        .eq("id", invitation["id"])
        .execute()
    )
    marked = not isinstance(mark_res, Err)
    if not marked:
        logger.error(
            "Member %s joined with invitation %s but marking it used failed; code remains redeemable: %s",
            member["id"],
            invitation["id"],
            mark_res.error.message,
        )
    record_event(
        client,
        actor_type="line",
        actor_id=line_user_id,
        action="invitation.redeem",
        entity_type="OrganizerInvitation",
        entity_id=invitation["id"],
        metadata={"member_id": member["id"], "marked_used": marked},
    )
    return RedemptionResult(
        membership=Membership(member=member, profile=profile),
        invitation_id=invitation["id"],
        invitation_marked_used=marked,
    )


def create_invitation(
    client: DataClient, membership: Membership, *, role: str = "editor", ttl_days: int = 7
) -> dict[str, Any]:
    if not membership.is_owner:
        raise PermissionDenied("Only the owner can issue invitation codes.")
    if role not in ("editor", "viewer"):
        raise InvitationError("Invitations can grant the editor or viewer role.")
    expires_at = utcnow() + timedelta(days=ttl_days) if ttl_days > 0 else None
    invitation = unwrap(
        client.table("organizer_invitations")
        .insert(
            {
                "organizer_profile_id": membership.profile["id"],
                "code": generate_invitation_code(),
                "role": role,
                "status": "active",
                "expires_at": expires_at,
                "created_by_member_id": membership.member["id"],
            }
        )
        .single()
        .execute(),
        action="issue invitation",
    )
    record_event(
        client,
        actor_type="line",
        actor_id=membership.member.get("line_user_id"),
        action="invitation.create",
        entity_type="OrganizerInvitation",
        entity_id=invitation["id"],
        metadata={"role": role},
    )
    return invitation


def revoke_invitation(client: DataClient, membership: Membership, invitation_id: str) -> None:
    if not membership.is_owner:
        raise PermissionDenied("Only the owner can revoke invitation codes.")
    rows = unwrap(
        client.table("organizer_invitations")
        .update({"status": "revoked"})
        .eq("id", invitation_id)
        .eq("organizer_profile_id", membership.profile["id"])
        .eq("status", "active")
        .execute(),
        action="revoke invitation",
    )
    if not rows:
        raise InvitationError("Only active invitations can be revoked.")


def list_members(client: DataClient, profile_id: str) -> list[dict[str, Any]]:
    return unwrap(
        client.table("organizer_members")
        .select("*")
        .eq("organizer_profile_id", profile_id)
        .order("created_at")
        .execute(),
        action="list members",
    )


def list_invitations(client: DataClient, profile_id: str) -> list[dict[str, Any]]:
    return unwrap(
        client.table("organizer_invitations")
        .select("*")
        .eq("organizer_profile_id", profile_id)
        .order("created_at", ascending=False)
        .execute(),
        action="list invitations",
    )


# ---------- Settings ----------
def update_member(client: DataClient, membership: Membership, fields: dict[str, Any]) -> dict[str, Any]:
    """Edit the signed-in member's own contact data."""
    payload = dict(_member_payload(fields), updated_at=utcnow())
    return unwrap(
        client.table("organizer_members").update(payload).eq("id", membership.member["id"]).single().execute(),
        action="update member",
    )


def update_profile(client: DataClient, membership: Membership, fields: dict[str, Any]) -> dict[str, Any]:
    if not membership.is_owner:
        raise PermissionDenied("Only the owner can edit organization details.")
    phone = clean_text(fields.get("contact_phone"))
    payload = {
        "organization_name": clean_text(fields.get("organization_name")),
        "contact_phone": normalize_phone(phone) if phone else None,
        "contact_email": clean_text(fields.get("contact_email")) or None,
        "website_url": clean_text(fields.get("website_url")) or None,
        "updated_at": utcnow(),
    }
    return unwrap(
        client.table("organizer_profiles").update(payload).eq("id", membership.profile["id"]).single().execute(),
        action="update organization",
    )


# ---------- Admin ----------
def list_organizers(client: DataClient) -> list[dict[str, Any]]:
    return unwrap(
        client.table("organizer_profiles")
        .select("*, members:organizer_members(name, email, role, is_primary)")
        .order("created_at", ascending=False)
        .execute(),
        action="list organizers",
    )


def set_organizer_approval(client: DataClient, profile_id: str, approved: bool) -> dict[str, Any]:
    return unwrap(
        client.table("organizer_profiles")
        .update({"is_approved": approved, "updated_at": utcnow()})
        .eq("id", profile_id)
        .single()
        .execute(),
        action="update organizer approval",
    )
