# services/__init__.py
from .status_store import StatusStore
from .history import HistoryArchiver
from .cascade import CascadeEngine, CascadeResult, FullyCompleted, TaskState
from .completion import CompletionService, build_engine
