"""
Draft autosave for long forms.

A draft is the latest snapshot of a form's watched fields, stored as one
``form_drafts`` row per (user, form type). Browsers post snapshots on every
change; the autosaver debounces them so only the last snapshot inside the
window is written.

Draft storage is best effort: store errors are logged at warning level and
never reach the user.
"""
from __future__ import annotations

import json
import logging
import threading
from collections import OrderedDict
from collections.abc import Callable
from typing import Any

from app.eventdesk.datastore import DataClient
from app.eventdesk.results import Err
from app.eventdesk.utils import utcnow

logger = logging.getLogger(__name__)

DRAFT_FORM_TYPES = (
    "organizer_registration",
    "invite_registration",
    "event_form",
    "exhibitor_registration",
)
DEFAULT_DEBOUNCE_SECONDS = 0.8

# _last_saved marker for "no row in the store"
_NO_DRAFT = ""


def serialize_draft(fields: dict[str, Any]) -> str:
    return json.dumps(fields, sort_keys=True, ensure_ascii=False, separators=(",", ":"), default=str)


def is_empty_value(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, dict)):
        return not value
    return False


def is_empty_draft(fields: dict[str, Any]) -> bool:
    return all(is_empty_value(v) for v in fields.values())


def load_draft(client: DataClient, user_id: str, form_type: str) -> dict[str, Any] | None:
    res = (
        client.table("form_drafts")
        .select("payload")
        .eq("user_id", user_id)
        .eq("form_type", form_type)
        .maybe_single()
        .execute()
    )
    if isinstance(res, Err):
        logger.warning("Draft fetch failed (user=%s form=%s): %s", user_id, form_type, res.error.message)
        return None
    if not res.data:
        return None
    try:
        fields = json.loads(res.data.get("payload") or "{}")
    except ValueError:
        logger.warning("Draft payload is not JSON (user=%s form=%s); ignoring", user_id, form_type)
        return None
    return fields if isinstance(fields, dict) else None


def save_draft(client: DataClient, user_id: str, form_type: str, payload: str) -> bool:
    res = (
        client.table("form_drafts")
        .upsert(
            {"user_id": user_id, "form_type": form_type, "payload": payload, "updated_at": utcnow()},
            on_conflict="user_id,form_type",
        )
        .execute()
    )
    if isinstance(res, Err):
        logger.warning("Draft save failed (user=%s form=%s): %s", user_id, form_type, res.error.message)
        return False
    return True


def delete_draft(client: DataClient, user_id: str, form_type: str) -> bool:
    res = client.table("form_drafts").delete().eq("user_id", user_id).eq("form_type", form_type).execute()
    if isinstance(res, Err):
        logger.warning("Draft delete failed (user=%s form=%s): %s", user_id, form_type, res.error.message)
        return False
    return True


class DraftAutosaver:
    """
    Debounced persistence for one form instance.

    Holds at most one pending timer. Each ``update`` cancels it and schedules
    a new save (or a delete when every field is empty). Snapshots equal to
    the last saved one cancel the pending write and schedule nothing.
    """

    def __init__(
        self,
        client: DataClient,
        user_id: str,
        form_type: str,
        *,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
    ):
        self.client = client
        self.user_id = user_id
        self.form_type = form_type
        self.delay = delay
        self._timer_factory = timer_factory
        self._lock = threading.Lock()
        self._timer: Any = None
        self._pending: tuple[str, str] | None = None  # (action, serialized)
        self._last_saved: str | None = None  # None until the store state is known

    @property
    def last_saved(self) -> str | None:
        return self._last_saved

    @property
    def pending(self) -> tuple[str, str] | None:
        return self._pending

    def hydrate(self) -> dict[str, Any] | None:
        """Fetch the stored draft for a freshly mounted form. No row is not an error."""
        self.flush()
        fields = load_draft(self.client, self.user_id, self.form_type)
        with self._lock:
            self._last_saved = serialize_draft(fields) if fields else _NO_DRAFT
        return fields

    def update(self, fields: dict[str, Any]) -> None:
        if is_empty_draft(fields):
            action, serialized = "delete", _NO_DRAFT
        else:
            action, serialized = "save", serialize_draft(fields)
        with self._lock:
            if serialized == self._last_saved:
                self._cancel_locked()
                return
            if self._pending == (action, serialized):
                return
            self._cancel_locked()
            self._pending = (action, serialized)
            timer = self._timer_factory(self.delay, self._fire, args=(action, serialized))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer
        timer.start()

    def flush(self) -> None:
        """Run the pending write now instead of waiting for the timer."""
        with self._lock:
            pending = self._pending
            self._cancel_locked()
            if pending is not None:
                self._pending = pending
        if pending is not None:
            self._fire(*pending)

    def cancel(self) -> None:
        with self._lock:
            self._cancel_locked()

    def discard(self) -> None:
        """Drop the draft after a successful submit."""
        self.cancel()
        if delete_draft(self.client, self.user_id, self.form_type):
            with self._lock:
                self._last_saved = _NO_DRAFT

    def _cancel_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None

    def _fire(self, action: str, serialized: str) -> None:
        with self._lock:
            if self._pending != (action, serialized):
                return  # superseded
            self._pending = None
            self._timer = None
        if action == "delete":
            ok = delete_draft(self.client, self.user_id, self.form_type)
        else:
            ok = save_draft(self.client, self.user_id, self.form_type, serialized)
        if ok:
            with self._lock:
                self._last_saved = serialized


class DraftRegistry:
    """
    One autosaver per (user, form type), shared across requests.

    Savers are kept in least-recently-used order. Past ``max_savers`` the
    oldest idle ones (no pending write) are evicted; a saver is also dropped
    once its draft is discarded.
    """

    def __init__(
        self,
        client: DataClient,
        *,
        delay: float = DEFAULT_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
        max_savers: int = 1000,
    ):
        self.client = client
        self.delay = delay
        self.timer_factory = timer_factory
        self.max_savers = max_savers
        self._lock = threading.Lock()
        self._savers: OrderedDict[tuple[str, str], DraftAutosaver] = OrderedDict()

    def __len__(self) -> int:
        return len(self._savers)

    def get(self, user_id: str, form_type: str) -> DraftAutosaver:
        if form_type not in DRAFT_FORM_TYPES:
            raise ValueError(f"Unknown draft form type: {form_type}")
        key = (user_id, form_type)
        with self._lock:
            saver = self._savers.get(key)
            if saver is None:
                saver = DraftAutosaver(
                    self.client, user_id, form_type, delay=self.delay, timer_factory=self.timer_factory
                )
                self._savers[key] = saver
                self._evict_idle_locked(keep=key)
            else:
                self._savers.move_to_end(key)
            return saver

    def discard(self, user_id: str, form_type: str) -> None:
        saver = self.get(user_id, form_type)
        saver.discard()
        with self._lock:
            if self._savers.get((user_id, form_type)) is saver and saver.pending is None:
                del self._savers[(user_id, form_type)]

    def _evict_idle_locked(self, keep: tuple[str, str]) -> None:
        excess = len(self._savers) - self.max_savers
        if excess <= 0:
            return
        # savers with a pending timer stay so writes for one key never race
        idle = [k for k, saver in self._savers.items() if k != keep and saver.pending is None]
        for k in idle[:excess]:
            del self._savers[k]
        if len(self._savers) > self.max_savers:
            logger.warning("Draft registry holds %d savers with pending writes", len(self._savers))
