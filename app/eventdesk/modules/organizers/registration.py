"""
Organizer console entry flow.

Which screen a LINE user sees is derived from three things: whether they are
logged in, whether a membership row exists, and which path (new or invite)
they picked on the selector. The new-registration wizard keeps its step and
collected fields in the signed session between requests.
"""
from __future__ import annotations

from enum import Enum
from typing import Any

from flask import session

from app.eventdesk.line_auth import Anonymous, LineSession
from app.eventdesk.modules.organizers.service import Membership

_ENTRY_KEY = "organizer_entry"
_WIZARD_KEY = "organizer_registration"


class EntryState(str, Enum):
    LOADING = "loading"
    SELECTOR = "selector"
    NEW = "new"
    INVITE = "invite"
    MAIN = "main"


class RegistrationStep(str, Enum):
    COLLECT = "collect"
    CONFIRM = "confirm"
    COMPLETE = "complete"


# (step, event) -> next step
_TRANSITIONS: dict[tuple[RegistrationStep, str], RegistrationStep] = {
    (RegistrationStep.COLLECT, "next"): RegistrationStep.CONFIRM,
    (RegistrationStep.CONFIRM, "back"): RegistrationStep.COLLECT,
    (RegistrationStep.CONFIRM, "submit"): RegistrationStep.COMPLETE,
}


def advance(step: RegistrationStep, event: str) -> RegistrationStep:
    try:
        return _TRANSITIONS[(step, event)]
    except KeyError:
        raise ValueError(f"Cannot {event!r} from step {step.value!r}") from None


def resolve_entry_state(line_session: LineSession, membership: Membership | None, chosen: str | None) -> EntryState:
    if isinstance(line_session, Anonymous):
        return EntryState.LOADING
    if membership is not None:
        return EntryState.MAIN
    if chosen == EntryState.NEW.value:
        return EntryState.NEW
    if chosen == EntryState.INVITE.value:
        return EntryState.INVITE
    return EntryState.SELECTOR


def chosen_entry() -> str | None:
    return session.get(_ENTRY_KEY)


def choose_entry(state: EntryState | None) -> None:
    if state is None:
        session.pop(_ENTRY_KEY, None)
    else:
        session[_ENTRY_KEY] = state.value


def wizard_state() -> tuple[RegistrationStep, dict[str, Any]]:
    raw = session.get(_WIZARD_KEY) or {}
    try:
        step = RegistrationStep(raw.get("step") or RegistrationStep.COLLECT.value)
    except ValueError:
        step = RegistrationStep.COLLECT
    fields = raw.get("fields") if isinstance(raw.get("fields"), dict) else {}
    return step, fields


def save_wizard(step: RegistrationStep, fields: dict[str, Any]) -> None:
    session[_WIZARD_KEY] = {"step": step.value, "fields": fields}


def clear_registration() -> None:
    session.pop(_WIZARD_KEY, None)
    session.pop(_ENTRY_KEY, None)
