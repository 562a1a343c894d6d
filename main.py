# main.py

#============================================================#
#                           Tuntas                           #
#============================================================#
# Purpose     : Classroom task tracker. Each student ticks   #
#               off tasks and subtasks on their own; fully   #
#               completed tasks go to history and disappear  #
#               from the feed 24h later                      #
#============================================================#

import logging

import streamlit as st

import db
from catalog import Identity
from config import get_settings
from logging_setup import setup_logging
from services.completion import CompletionService, build_engine
from ui.history_panel import render_history_panel
from ui.tasks_panel import render_tasks_panel

logger = logging.getLogger(__name__)

st.set_page_config(
    page_title="Tuntas",
    page_icon="✅",
    layout="wide",
    initial_sidebar_state="expanded",
)


@st.cache_resource
def _init_once():
    settings = get_settings()
    setup_logging(log_dir=settings.log_dir, console_level=settings.log_level)
    db.init_db()
    logger.info("Tuntas started")
    engine = build_engine(db.SessionLocal)
    engine.store.purge_orphans()
    return engine


engine = _init_once()

# ======================  IDENTITY  ======================
# Sign-in lives outside this app; whoever embeds it puts an Identity in the session.
identity = st.session_state.get("identity")
if identity is None:
    with st.sidebar.form("dev_identity"):
        st.caption("No signed-in user. Pick one for local use.")
        uid = st.number_input("User id", min_value=1, step=1, value=1)
        cid = st.number_input("Class id", min_value=1, step=1, value=1)
        if st.form_submit_button("Use"):
            st.session_state["identity"] = Identity(user_id=int(uid), class_id=int(cid))
            st.rerun()
    st.info("Choose a user in the sidebar to continue.")
    st.stop()

service = CompletionService(identity, engine)

tab_tasks, tab_history = st.tabs(["Tasks", "History"])
with tab_tasks:
    render_tasks_panel(service)
with tab_history:
    render_history_panel(service)
