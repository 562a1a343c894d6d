# tests/test_optimistic.py
from datetime import datetime
from types import SimpleNamespace

import pytest

from client.optimistic import ClientOptimisticController, SyncState
from errors import TransientNetworkFailure, Unauthorized

from .fakes import FakeApi, FakeMonotonic, TimerFactory

TASK = (1, None)
SUB_A = (1, 11)
SUB_B = (1, 12)


@pytest.fixture()
def timers():
    return TimerFactory()


@pytest.fixture()
def mono():
    return FakeMonotonic()


@pytest.fixture()
def api():
    return FakeApi()


@pytest.fixture()
def errors():
    return []


@pytest.fixture()
def ctl(api, timers, mono, errors):
    c = ClientOptimisticController(
        api,
        debounce=0.8,
        min_interval=0.3,
        timer_factory=timers,
        monotonic=mono,
        on_error=lambda key, err: errors.append((key, err)),
    )
    c.load_server_statuses(1, [])
    return c


def test_intent_is_visible_before_any_write(ctl, api, timers):
    assert ctl.intent(TASK, True) is True
    assert ctl.effective(TASK) is True
    assert ctl.server_value(TASK) is False
    assert ctl.state(TASK) is SyncState.PENDING_LOCAL
    assert api.calls == []
    assert timers.live()[0].interval == 0.8


def test_write_then_synced(ctl, api, timers):
    ctl.intent(TASK, True)
    timers.fire_all()
    assert api.calls == [("task", 1, None, True)]
    assert ctl.state(TASK) is SyncState.SYNCED
    assert ctl.server_value(TASK) is True
    assert ctl.effective(TASK) is True


def test_last_intent_wins(ctl, api, timers, mono):
    ctl.intent(SUB_A, True)
    mono.advance(0.5)
    ctl.intent(SUB_A, False)
    mono.advance(0.5)
    ctl.intent(SUB_A, True)

    assert len(timers.live()) == 1
    timers.fire_all()
    assert api.calls == [("subtask", 1, 11, True)]


def test_toggle_back_to_server_value_sends_nothing(ctl, api, timers, mono):
    ctl.toggle(SUB_A)
    mono.advance(0.4)
    ctl.toggle(SUB_A)
    timers.fire_all()

    assert api.calls == []
    assert ctl.state(SUB_A) is SyncState.SYNCED
    assert ctl.effective(SUB_A) is False


def test_failure_rolls_back_to_server_value(ctl, api, timers, errors):
    ctl.load_server_statuses(1, [{"task_id": 1, "subtask_id": 11, "is_completed": True, "updated_at": None}])
    api.fail_with = ConnectionError("offline")

    ctl.intent(SUB_A, False)
    assert ctl.effective(SUB_A) is False
    timers.fire_all()

    assert ctl.effective(SUB_A) is True
    assert ctl.state(SUB_A) is SyncState.SYNCED
    (key, err), = errors
    assert key == SUB_A
    assert isinstance(err, TransientNetworkFailure)
    assert isinstance(err.__cause__, ConnectionError)


def test_intent_during_write_rolls_back_to_confirmed_value(ctl, api, timers, mono, errors):
    def click_again():
        mono.advance(0.5)
        ctl.intent(TASK, False)

    ctl.intent(TASK, True)
    api.in_flight = click_again
    timers.fire_all()

    assert ctl.server_value(TASK) is True
    assert ctl.effective(TASK) is False
    assert ctl.state(TASK) is SyncState.PENDING_LOCAL

    api.fail_with = ConnectionError("offline")
    timers.fire_all()

    assert api.calls == [("task", 1, None, True), ("task", 1, None, False)]
    assert ctl.server_value(TASK) is True
    assert ctl.effective(TASK) is True
    assert ctl.state(TASK) is SyncState.SYNCED
    assert len(errors) == 1


def test_failed_write_keeps_newer_intent(ctl, api, timers, mono, errors):
    def click_again():
        mono.advance(0.5)
        ctl.intent(TASK, False)

    ctl.intent(TASK, True)
    api.in_flight = click_again
    api.fail_with = ConnectionError("offline")
    timers.fire_all()

    assert ctl.effective(TASK) is False
    assert ctl.state(TASK) is SyncState.PENDING_LOCAL
    assert len(errors) == 1

    api.fail_with = None
    timers.fire_all()
    assert len(api.calls) == 1
    assert ctl.state(TASK) is SyncState.SYNCED
    assert ctl.effective(TASK) is False


def test_server_refusal_is_reported_as_is(ctl, api, timers, errors):
    refusal = Unauthorized("User 1 is not a member of group task 1")
    api.fail_with = refusal
    ctl.intent(TASK, True)
    timers.fire_all()

    (key, err), = errors
    assert err is refusal
    assert not isinstance(err, TransientNetworkFailure)
    assert ctl.effective(TASK) is False


def test_failure_is_not_retried(ctl, api, timers):
    api.fail_with = ConnectionError("offline")
    ctl.intent(TASK, True)
    timers.fire_all()
    timers.fire_all()
    assert len(api.calls) == 1
    assert timers.live() == []


def test_rolling_back_state_is_visible_to_error_handler(api, timers, mono):
    seen = []
    holder = {}

    def on_error(key, err):
        seen.append(holder["ctl"].state(key))

    c = ClientOptimisticController(api, timer_factory=timers, monotonic=mono, on_error=on_error)
    holder["ctl"] = c
    api.fail_with = TimeoutError()
    c.intent(TASK, True)
    timers.fire_all()
    assert seen == [SyncState.ROLLING_BACK]
    assert c.state(TASK) is SyncState.SYNCED


def test_keys_are_independent(ctl, api, timers, mono):
    ctl.intent(SUB_A, True)
    ctl.intent(SUB_B, True)
    assert len(timers.live()) == 2

    api.fail_with = ConnectionError("offline")
    timers.live()[0].fire()
    api.fail_with = None
    timers.fire_all()

    assert ctl.effective(SUB_A) is False
    assert ctl.effective(SUB_B) is True
    assert [c[2] for c in api.calls] == [11, 12]


def test_clicks_too_fast_are_ignored(ctl, mono):
    assert ctl.intent(TASK, True) is True
    mono.advance(0.1)
    assert ctl.intent(TASK, False) is False
    assert ctl.effective(TASK) is True
    mono.advance(0.3)
    assert ctl.intent(TASK, False) is True


def test_completing_task_previews_its_subtasks(ctl, timers):
    ctl.load_server_statuses(1, [{"task_id": 1, "subtask_id": 11, "is_completed": False, "updated_at": None}])
    ctl.intent(TASK, True)
    assert ctl.effective(SUB_A) is True
    assert ctl.effective(SUB_B) is True
    assert ctl.state(SUB_A) is SyncState.SYNCED


def test_refetch_adopts_cascade_results(api, timers, mono):
    server = [
        {"task_id": 1, "subtask_id": None, "is_completed": True, "updated_at": "2025-03-10T08:00:00"},
        {"task_id": 1, "subtask_id": 11, "is_completed": True, "updated_at": "2025-03-10T08:00:00"},
        {"task_id": 1, "subtask_id": 12, "is_completed": True, "updated_at": "2025-03-10T08:00:00"},
    ]
    synced = []
    c = ClientOptimisticController(
        api, timer_factory=timers, monotonic=mono,
        refetch=lambda task_id: server, on_synced=synced.append,
    )
    c.intent(TASK, True)
    timers.fire_all()

    assert synced == [TASK]
    assert c.server_value(SUB_A) is True and c.server_value(SUB_B) is True
    assert c.server_record(TASK)["updated_at"] == datetime(2025, 3, 10, 8, 0, 0)


def test_failed_refetch_keeps_confirmed_value(api, timers, mono):
    def broken(task_id):
        raise ConnectionError("poll failed")

    c = ClientOptimisticController(api, timer_factory=timers, monotonic=mono, refetch=broken)
    c.intent(SUB_A, True)
    timers.fire_all()
    assert c.server_value(SUB_A) is True
    assert c.state(SUB_A) is SyncState.SYNCED


def test_load_replaces_only_that_task(ctl):
    ctl.load_server_statuses(1, [{"task_id": 1, "subtask_id": 11, "is_completed": True}])
    ctl.load_server_statuses(2, [{"task_id": 2, "subtask_id": None, "is_completed": True}])
    ctl.load_server_statuses(1, [])
    assert ctl.server_value(SUB_A) is False
    assert ctl.server_value((2, None)) is True


def test_flush_sends_pending_now(ctl, api):
    ctl.intent(SUB_A, True)
    ctl.flush()
    assert api.calls == [("subtask", 1, 11, True)]
    assert ctl.pending_keys() == []


def test_close_cancels_timers(ctl, api, timers):
    ctl.intent(TASK, True)
    ctl.close()
    timers.fire_all()
    assert api.calls == []


def test_from_settings():
    settings = SimpleNamespace(debounce_ms=800, min_click_interval_ms=300)
    c = ClientOptimisticController.from_settings(FakeApi(), settings)
    assert c._debounce == pytest.approx(0.8)
    assert c._min_interval == pytest.approx(0.3)


def test_against_real_service(service, make_task, timers, mono):
    task_id, (a, b) = make_task("Matematika", ("A", "B"))
    c = ClientOptimisticController(service, timer_factory=timers, monotonic=mono, refetch=service.get_statuses)
    c.load_server_statuses(task_id, service.get_statuses(task_id))

    c.intent((task_id, a), True)
    c.intent((task_id, b), True)
    timers.fire_all()

    assert c.server_value((task_id, None)) is True
    assert len(service.get_history()) == 1


def test_real_timer_debounces(api):
    import threading

    done = threading.Event()
    c = ClientOptimisticController(api, debounce=0.05, min_interval=0, on_synced=lambda key: done.set())
    c.intent(TASK, True)
    c.intent(TASK, False)
    c.intent(TASK, True)
    assert done.wait(timeout=5)
    assert api.calls == [("task", 1, None, True)]
