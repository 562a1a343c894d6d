# utils/timeline.py
import pandas as pd
from sqlmodel import select

from models.history_entry import HistoryEntry

HISTORY_COLUMNS = ["Task", "Title", "Completed At"]


def history_df_for_user(user_id: int, session_factory) -> pd.DataFrame:
    """The user's completion history, newest first."""
    with session_factory() as s:
        entries = s.exec(
            select(HistoryEntry)
            .where(HistoryEntry.user_id == user_id)
            .order_by(HistoryEntry.completed_at.desc(), HistoryEntry.id.desc())
        ).all()
        rows = [
            {"Task": e.task_id, "Title": e.title, "Completed At": e.completed_at}
            for e in entries
        ]
    return pd.DataFrame(rows, columns=HISTORY_COLUMNS)


def history_csv(df: pd.DataFrame) -> str:
    return df.to_csv(index=False)
