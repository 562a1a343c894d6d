# tests/fakes.py

from __future__ import annotations

from datetime import datetime, timedelta


class FakeClock:
    """Deterministic wall clock; every call returns the current value."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 3, 10, 8, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.t = start

    def __call__(self) -> float:
        return self.t

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FakeTimer:
    """Stand-in for threading.Timer: never runs by itself, tests call fire()."""

    def __init__(self, interval, function, args=(), kwargs=None) -> None:
        self.interval = interval
        self.function = function
        self.args = args
        self.kwargs = kwargs or {}
        self.daemon = False
        self.started = False
        self.cancelled = False
        self.finished = False

    def start(self) -> None:
        self.started = True

    def cancel(self) -> None:
        self.cancelled = True

    def fire(self) -> None:
        if self.started and not self.cancelled and not self.finished:
            self.finished = True
            self.function(*self.args, **self.kwargs)


class TimerFactory:
    def __init__(self) -> None:
        self.timers: list[FakeTimer] = []

    def __call__(self, interval, function, args=(), kwargs=None) -> FakeTimer:
        t = FakeTimer(interval, function, args, kwargs)
        self.timers.append(t)
        return t

    def live(self) -> list[FakeTimer]:
        return [t for t in self.timers if t.started and not t.cancelled and not t.finished]

    def fire_all(self) -> None:
        for t in self.live():
            t.fire()


class FakeApi:
    """Records toggles; fails while ``fail_with`` is set.

    ``in_flight`` runs once inside the next call, before it returns or raises.
    """

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.fail_with: Exception | None = None
        self.in_flight = None

    def _call(self, *call):
        self.calls.append(call)
        hook, self.in_flight = self.in_flight, None
        if hook is not None:
            hook()
        if self.fail_with is not None:
            raise self.fail_with

    def toggle_task(self, task_id, is_completed):
        self._call("task", task_id, None, is_completed)

    def toggle_subtask(self, task_id, subtask_id, is_completed):
        self._call("subtask", task_id, subtask_id, is_completed)


def by_key(records) -> dict:
    """Status dicts/records indexed by subtask id (None for the task itself)."""
    out = {}
    for r in records:
        if isinstance(r, dict):
            out[r["subtask_id"]] = r["is_completed"]
        else:
            out[r.subtask_id] = r.is_completed
    return out
