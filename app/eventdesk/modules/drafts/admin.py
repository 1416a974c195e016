from __future__ import annotations

from typing import Any

from flask import Blueprint, abort, current_app, jsonify, request

from app.eventdesk.line_auth import Anonymous, current_line_session
from app.eventdesk.modules.drafts.service import DRAFT_FORM_TYPES, DraftRegistry, serialize_draft
from app.eventdesk.modules.events.service import EVENT_BOOLEAN_FIELDS, EVENT_TEXT_FIELDS
from app.eventdesk.modules.exhibitors.models import EXHIBITOR_FIELDS
from app.eventdesk.modules.organizers.models import INVITE_FIELDS, REGISTRATION_FIELDS

bp = Blueprint("drafts", __name__)

# Fields each form watches; anything else in a snapshot is dropped.
DRAFT_FIELDS: dict[str, tuple[str, ...]] = {
    "organizer_registration": REGISTRATION_FIELDS + ("is_terms_agreed",),
    "invite_registration": INVITE_FIELDS,
    "event_form": EVENT_TEXT_FIELDS + EVENT_BOOLEAN_FIELDS,
    "exhibitor_registration": EXHIBITOR_FIELDS,
}


def draft_registry() -> DraftRegistry:
    return current_app.extensions["draft_registry"]


def _line_user_id() -> str | None:
    state = current_line_session()
    if isinstance(state, Anonymous):
        return None
    return state.profile.user_id


def watched_fields(form_type: str, fields: dict[str, Any]) -> dict[str, Any]:
    allowed = DRAFT_FIELDS[form_type]
    return {k: v for k, v in fields.items() if k in allowed and (v is None or isinstance(v, (str, bool, int, float)))}


@bp.get("/<form_type>")
def draft_get(form_type: str):
    if form_type not in DRAFT_FORM_TYPES:
        abort(404)
    user_id = _line_user_id()
    if user_id is None:
        return jsonify({"ok": False, "error": "Not logged in."}), 401
    fields = draft_registry().get(user_id, form_type).hydrate()
    return jsonify({"ok": True, "fields": fields})


@bp.post("/<form_type>")
def draft_post(form_type: str):
    if form_type not in DRAFT_FORM_TYPES:
        abort(404)
    user_id = _line_user_id()
    if user_id is None:
        return jsonify({"ok": False, "error": "Not logged in."}), 401
    limit = int(current_app.config["MAX_DRAFT_BYTES"])
    if (request.content_length or 0) > limit:
        return jsonify({"ok": False, "error": "Draft is too large."}), 413
    body = request.get_json(silent=True)
    fields = body.get("fields") if isinstance(body, dict) else None
    if not isinstance(fields, dict):
        return jsonify({"ok": False, "error": "Expected a JSON object with 'fields'."}), 400
    fields = watched_fields(form_type, fields)
    # chunked bodies carry no Content-Length
    if len(serialize_draft(fields).encode("utf-8")) > limit:
        return jsonify({"ok": False, "error": "Draft is too large."}), 413
    draft_registry().get(user_id, form_type).update(fields)
    return jsonify({"ok": True}), 202
