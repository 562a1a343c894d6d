# ui/tasks_panel.py
import threading
from collections import deque
from datetime import timedelta

import streamlit as st
from sqlmodel import select

from client.optimistic import ClientOptimisticController, SyncState
from config import get_settings
from models.subtask import Subtask
from services.completion import CompletionService
from utils.ttl import TTLCalculator


def _controller(service: CompletionService) -> ClientOptimisticController:
    """One controller per signed-in user, kept across reruns."""
    key = f"completion_ctl_{service.identity.user_id}"
    if key not in st.session_state:
        errors = deque(maxlen=20)
        lock = threading.Lock()

        def on_error(k, err):
            # Runs on the timer thread; the fragment drains this on its next run.
            with lock:
                errors.append(f"Could not save: {err}")

        st.session_state[key] = ClientOptimisticController.from_settings(
            service, get_settings(), refetch=service.get_statuses, on_error=on_error,
        )
        st.session_state[key + "_errors"] = (errors, lock)
    return st.session_state[key]


def _drain_errors(service: CompletionService):
    errors, lock = st.session_state[f"completion_ctl_{service.identity.user_id}_errors"]
    with lock:
        msgs = list(errors)
        errors.clear()
    for m in msgs:
        st.toast(m, icon="⚠️")


def _checkbox(ctl: ClientOptimisticController, key, label: str):
    wkey = f"chk_{key[0]}_{key[1] if key[1] is not None else 't'}"
    st.session_state[wkey] = ctl.effective(key)

    def _changed():
        if not ctl.intent(key, st.session_state[wkey]):
            st.toast("Slow down, you're clicking too fast.")

    suffix = " …" if ctl.state(key) is SyncState.PENDING_LOCAL else ""
    st.checkbox(label + suffix, key=wkey, on_change=_changed)


def render_tasks_panel(service: CompletionService):
    settings = get_settings()
    ttl = TTLCalculator(ttl=timedelta(hours=settings.ttl_hours))
    ctl = _controller(service)

    @st.fragment(run_every=settings.poll_seconds)
    def _body():
        _drain_errors(service)
        st.subheader("Tasks")
        c1, c2 = st.columns(2)
        c1.metric("Not done yet", service.get_uncompleted_count())
        overdue = service.get_overdue_tasks()
        c2.metric("Overdue", len(overdue))
        if overdue:
            st.warning(", ".join(f"{o['title']} ({o['days_overdue']} days)" for o in overdue))

        hidden = service.hidden_task_ids()
        with service.store.session_factory() as s:
            tasks = [t for t in service.catalog.tasks_for_class(s, service.identity.class_id) if t.id not in hidden]
            subs = {
                t.id: s.exec(
                    select(Subtask).where(Subtask.task_id == t.id).order_by(Subtask.created_at, Subtask.id)
                ).all()
                for t in tasks
            }

        if not tasks:
            st.info("No tasks for your class yet.")
            return

        for t in tasks:
            ctl.load_server_statuses(t.id, service.get_statuses(t.id))
            with st.expander(f"📘 {t.title}"):
                _checkbox(ctl, (t.id, None), "Done")
                rec = ctl.server_record((t.id, None))
                label = ttl.label_for(rec) if rec else None
                if label:
                    st.caption(f"⏳ {label}")

                if t.is_group_task:
                    gp = service.get_group_progress(t.id)
                    if gp:
                        st.progress(gp["percentage"] / 100, text=f"Group: {gp['completed']}/{gp['total']}")

                for sub in subs[t.id]:
                    _checkbox(ctl, (t.id, sub.id), sub.content)

    _body()
