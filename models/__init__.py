# models/__init__.py
from .task import Task
from .subtask import Subtask
from .task_member import TaskMember
from .completion_record import CompletionRecord
from .history_entry import HistoryEntry
from .group_subtask_state import GroupSubtaskState
