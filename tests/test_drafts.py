"""Tests for debounced draft autosave."""
import logging

import pytest

from app.eventdesk.datastore import Query, SqlDataClient
from app.eventdesk.db import build_engine
from app.eventdesk.models import Base
from app.eventdesk.modules.drafts.service import (
    DraftAutosaver,
    DraftRegistry,
    is_empty_draft,
    load_draft,
    serialize_draft,
)
from app.eventdesk.results import Err, StoreError


class FakeTimer:
    """Stands in for threading.Timer; tests fire it by hand."""

    def __init__(self, delay, fn, args=()):
        self.delay = delay
        self.fn = fn
        self.args = args
        self.started = False
        self.cancelled = False

    def start(self):
        self.started = True

    def cancel(self):
        self.cancelled = True

    def fire(self):
        if not self.cancelled:
            self.fn(*self.args)


@pytest.fixture()
def timers():
    return []


@pytest.fixture()
def timer_factory(timers):
    def factory(delay, fn, args=()):
        t = FakeTimer(delay, fn, args)
        timers.append(t)
        return t

    return factory


@pytest.fixture()
def client(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path/'drafts.db'}")
    Base.metadata.create_all(bind=engine)
    return SqlDataClient(engine, Base.metadata)


def _saver(client, timer_factory, form_type="event_form"):
    saver = DraftAutosaver(client, "U1", form_type, delay=0.8, timer_factory=timer_factory)
    saver.hydrate()
    return saver


def _count(client):
    return len(client.table("form_drafts").select("id").execute().data)


class FailingClient:
    def table(self, name):
        return Query(self, name)

    def execute(self, query):
        return Err(StoreError(message="network down"))


def test_empty_draft_detection():
    assert is_empty_draft({"a": "", "b": "  ", "c": None, "d": False})
    assert not is_empty_draft({"a": "", "b": "x"})
    assert not is_empty_draft({"age": 0})


def test_serialize_is_key_order_independent():
    assert serialize_draft({"b": 1, "a": "x"}) == serialize_draft({"a": "x", "b": 1})


def test_update_schedules_one_save_after_delay(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "Fes"})
    assert len(timers) == 1
    assert timers[0].delay == 0.8
    assert timers[0].started
    assert _count(client) == 0  # nothing written before the timer fires

    timers[0].fire()
    assert load_draft(client, "U1", "event_form") == {"event_name": "Fes"}
    assert saver.pending is None


def test_rapid_updates_write_only_the_last_snapshot(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "F"})
    saver.update({"event_name": "Fe"})
    saver.update({"event_name": "Fes"})
    assert [t.cancelled for t in timers] == [True, True, False]

    # a cancelled timer that still runs is ignored
    timers[0].fn(*timers[0].args)
    assert _count(client) == 0

    timers[-1].fire()
    assert load_draft(client, "U1", "event_form") == {"event_name": "Fes"}
    assert _count(client) == 1


def test_snapshot_equal_to_last_saved_schedules_nothing(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "Fes"})
    timers[0].fire()

    saver.update({"event_name": "Fes"})
    assert len(timers) == 1

    # typing and then reverting cancels the pending write
    saver.update({"event_name": "Fest"})
    saver.update({"event_name": "Fes"})
    assert timers[1].cancelled
    assert saver.pending is None


def test_same_pending_snapshot_does_not_reschedule(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "Fes"})
    saver.update({"event_name": "Fes"})
    assert len(timers) == 1
    assert not timers[0].cancelled


def test_all_empty_fields_delete_the_row(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "Fes"})
    timers[-1].fire()
    assert _count(client) == 1

    saver.update({"event_name": "", "genre": ""})
    timers[-1].fire()
    assert _count(client) == 0
    assert load_draft(client, "U1", "event_form") is None


def test_remount_restores_identical_fields(client, timer_factory, timers):
    fields = {"event_name": "静岡まつり", "contact_phone": "0541234567", "is_shizuoka_vocational_assoc_related": True}
    saver = _saver(client, timer_factory)
    saver.update(fields)
    timers[-1].fire()

    remounted = DraftAutosaver(client, "U1", "event_form", timer_factory=timer_factory)
    assert remounted.hydrate() == fields
    assert remounted.last_saved == serialize_draft(fields)


def test_hydrate_flushes_pending_write_first(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "Fes"})
    assert saver.hydrate() == {"event_name": "Fes"}
    assert timers[0].cancelled


def test_discard_cancels_and_deletes(client, timer_factory, timers):
    saver = _saver(client, timer_factory)
    saver.update({"event_name": "Fes"})
    timers[-1].fire()
    saver.update({"event_name": "Fest"})
    saver.discard()
    assert timers[-1].cancelled
    assert _count(client) == 0


def test_drafts_are_per_user_and_form(client, timer_factory, timers):
    registry = DraftRegistry(client, timer_factory=timer_factory)
    a = registry.get("U1", "event_form")
    assert registry.get("U1", "event_form") is a
    assert registry.get("U2", "event_form") is not a
    assert registry.get("U1", "exhibitor_registration") is not a

    a.hydrate()
    a.update({"event_name": "Fes"})
    timers[-1].fire()
    assert load_draft(client, "U2", "event_form") is None
    assert load_draft(client, "U1", "exhibitor_registration") is None


def test_registry_drops_saver_after_discard(client, timer_factory, timers):
    registry = DraftRegistry(client, timer_factory=timer_factory)
    for i in range(50):
        registry.get(f"U{i}", "event_form").hydrate()
        registry.discard(f"U{i}", "event_form")
    assert len(registry) == 0


def test_registry_evicts_idle_savers_past_the_cap(client, timer_factory, timers):
    registry = DraftRegistry(client, timer_factory=timer_factory, max_savers=3)
    busy = registry.get("U-busy", "event_form")
    busy.update({"event_name": "Fes"})
    for i in range(10):
        registry.get(f"U{i}", "event_form")
    assert len(registry) == 3
    # the saver with a pending write is never evicted
    assert registry.get("U-busy", "event_form") is busy
    timers[-1].fire()
    assert load_draft(client, "U-busy", "event_form") == {"event_name": "Fes"}


def test_registry_keeps_recently_used_savers(client, timer_factory):
    registry = DraftRegistry(client, timer_factory=timer_factory, max_savers=2)
    a = registry.get("U1", "event_form")
    registry.get("U2", "event_form")
    assert registry.get("U1", "event_form") is a
    registry.get("U3", "event_form")
    assert registry.get("U1", "event_form") is a


def test_unknown_form_type_rejected(client):
    with pytest.raises(ValueError):
        DraftRegistry(client).get("U1", "tax_return")


def test_store_failures_are_logged_not_raised(timer_factory, timers, caplog):
    saver = DraftAutosaver(FailingClient(), "U1", "event_form", timer_factory=timer_factory)
    with caplog.at_level(logging.WARNING, logger="app.eventdesk.modules.drafts.service"):
        assert saver.hydrate() is None
        saver.update({"event_name": "Fes"})
        timers[-1].fire()
    assert saver.last_saved == ""  # failed save leaves the last known state
    assert any("Draft save failed" in r.message for r in caplog.records)
