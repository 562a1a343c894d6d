# client/optimistic.py

"""Optimistic, debounced completion toggles for one client view.

Per toggle key ``(task_id, subtask_id | None)``::

    Synced --intent--> PendingLocal --timer, same as server--> Synced (no write)
                           |
                           +--timer, differs--> write --ok--> Synced (server adopts target)
                                                  |
                                                  +--error--> RollingBack --> Synced (server value shown)

A new intent on the same key restarts the debounce timer; the last intent is the
one sent. Keys never wait on each other. The server stays the source of truth:
this layer only decides what to show and which writes to send.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from dateutil import parser as date_parser

from errors import CompletionError, TransientNetworkFailure

logger = logging.getLogger(__name__)

Key = Tuple[int, Optional[int]]


class SyncState(str, Enum):
    SYNCED = "synced"
    PENDING_LOCAL = "pending_local"
    ROLLING_BACK = "rolling_back"


@dataclass
class _Entry:
    state: SyncState = SyncState.SYNCED
    target: Optional[bool] = None
    timer: Any = None
    generation: int = 0
    last_intent_at: Optional[float] = None


def _parse_ts(value) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    return date_parser.parse(str(value))


class ClientOptimisticController:
    def __init__(
        self,
        api,
        *,
        debounce: float = 0.8,
        min_interval: float = 0.3,
        refetch: Optional[Callable[[int], Iterable[dict]]] = None,
        on_error: Optional[Callable[[Key, CompletionError], None]] = None,
        on_synced: Optional[Callable[[Key], None]] = None,
        timer_factory: Callable[..., Any] = threading.Timer,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        self._api = api
        self._debounce = debounce
        self._min_interval = min_interval
        self._refetch = refetch
        self._on_error = on_error
        self._on_synced = on_synced
        self._timer_factory = timer_factory
        self._monotonic = monotonic

        self._lock = threading.RLock()
        self._entries: Dict[Key, _Entry] = {}
        self._server: Dict[Key, dict] = {}

    @classmethod
    def from_settings(cls, api, settings, **kwargs) -> "ClientOptimisticController":
        return cls(
            api,
            debounce=settings.debounce_ms / 1000.0,
            min_interval=settings.min_click_interval_ms / 1000.0,
            **kwargs,
        )

    # ---- server truth ----

    def load_server_statuses(self, task_id: int, records: Iterable[dict]) -> None:
        """Replace the server snapshot of one task with a fresh ``get_statuses`` result."""
        fresh: Dict[Key, dict] = {}
        for r in records:
            key = (int(r["task_id"]), r.get("subtask_id"))
            fresh[key] = {
                "task_id": key[0],
                "subtask_id": key[1],
                "is_completed": bool(r.get("is_completed")),
                "updated_at": _parse_ts(r.get("updated_at")),
            }
        with self._lock:
            for key in [k for k in self._server if k[0] == task_id]:
                del self._server[key]
            self._server.update(fresh)

    def server_value(self, key: Key) -> bool:
        with self._lock:
            rec = self._server.get(key)
            return bool(rec and rec["is_completed"])

    def server_record(self, key: Key) -> Optional[dict]:
        with self._lock:
            rec = self._server.get(key)
            return dict(rec) if rec else None

    # ---- what the view shows ----

    def effective(self, key: Key) -> bool:
        with self._lock:
            e = self._entries.get(key)
            if e is not None and e.target is not None:
                return e.target
            if key[1] is not None:
                parent = self._entries.get((key[0], None))
                if parent is not None and parent.target is True:
                    return True
            return self.server_value(key)

    def state(self, key: Key) -> SyncState:
        with self._lock:
            e = self._entries.get(key)
            return e.state if e else SyncState.SYNCED

    def pending_keys(self) -> List[Key]:
        with self._lock:
            return [k for k, e in self._entries.items() if e.state is SyncState.PENDING_LOCAL]

    # ---- user intent ----

    def toggle(self, key: Key) -> bool:
        return self.intent(key, not self.effective(key))

    def intent(self, key: Key, target: bool) -> bool:
        """Show ``target`` now and (re)arm the debounced write. False if the click came too fast."""
        with self._lock:
            e = self._entries.setdefault(key, _Entry())
            now = self._monotonic()
            if e.last_intent_at is not None and now - e.last_intent_at < self._min_interval:
                logger.debug("Intent on %s ignored, too fast", key)
                return False
            e.last_intent_at = now

            e.target = bool(target)
            e.state = SyncState.PENDING_LOCAL
            e.generation += 1

            if e.timer is not None:
                e.timer.cancel()
            e.timer = self._timer_factory(self._debounce, self._fire, args=(key, e.generation))
            e.timer.daemon = True
            e.timer.start()
        return True

    def flush(self, key: Optional[Key] = None) -> None:
        """Fire pending writes now instead of waiting for their timers."""
        with self._lock:
            jobs = []
            for k, e in self._entries.items():
                if (key is None or k == key) and e.state is SyncState.PENDING_LOCAL and e.timer is not None:
                    e.timer.cancel()
                    jobs.append((k, e.generation))
        for k, gen in jobs:
            self._fire(k, gen)

    def close(self) -> None:
        with self._lock:
            for e in self._entries.values():
                if e.timer is not None:
                    e.timer.cancel()
                    e.timer = None

    # ---- timer / write ----

    def _fire(self, key: Key, generation: int) -> None:
        with self._lock:
            e = self._entries.get(key)
            if e is None or e.generation != generation or e.state is not SyncState.PENDING_LOCAL:
                return
            e.timer = None
            target = e.target
            if target == self.server_value(key):
                e.target = None
                e.state = SyncState.SYNCED
                logger.debug("Intent on %s matches server, no write", key)
                return

        task_id, subtask_id = key
        try:
            if subtask_id is None:
                self._api.toggle_task(task_id, target)
            else:
                self._api.toggle_subtask(task_id, subtask_id, target)
        except Exception as exc:
            self._rollback(key, generation, exc)
            return

        self._confirm(key, generation, target)

    def _confirm(self, key: Key, generation: int, target: bool) -> None:
        with self._lock:
            prev = self._server.get(key) or {"task_id": key[0], "subtask_id": key[1], "updated_at": None}
            self._server[key] = {**prev, "is_completed": target}

        if self._refetch is not None:
            try:
                self.load_server_statuses(key[0], self._refetch(key[0]))
            except Exception:
                # The write went through; the next poll brings the cascade effects.
                logger.warning("Refetch after write on %s failed", key, exc_info=True)

        with self._lock:
            e = self._entries[key]
            if e.generation == generation:
                e.target = None
                e.state = SyncState.SYNCED
        if self._on_synced is not None:
            self._on_synced(key)

    def _rollback(self, key: Key, generation: int, exc: Exception) -> None:
        # Server-side refusals keep their type; anything else counts as the network.
        if isinstance(exc, CompletionError):
            err = exc
        else:
            err = TransientNetworkFailure(str(exc) or type(exc).__name__)
            err.__cause__ = exc

        # A failed write changed nothing on the server, so the cached server
        # value is still the last known-good one; dropping the override shows it.
        with self._lock:
            e = self._entries[key]
            superseded = e.generation != generation
            if not superseded:
                e.state = SyncState.ROLLING_BACK
                e.target = None
                e.generation += 1

        if superseded:
            logger.warning("Write on %s failed, newer intent still pending: %s", key, err)
        else:
            logger.warning("Write on %s failed, rolled back: %s", key, err)
        try:
            if self._on_error is not None:
                self._on_error(key, err)
        finally:
            if not superseded:
                with self._lock:
                    self._entries[key].state = SyncState.SYNCED
