# ui/history_panel.py
import streamlit as st

from services.completion import CompletionService
from utils.timeline import history_csv, history_df_for_user


def render_history_panel(service: CompletionService):
    st.subheader("History")
    df = history_df_for_user(service.identity.user_id, service.store.session_factory)
    if df.empty:
        st.info("Nothing completed yet.")
        return
    st.dataframe(df, use_container_width=True, hide_index=True)
    st.download_button("⬇️ Export CSV", data=history_csv(df),
                       file_name=f"history_{service.identity.user_id}.csv")
