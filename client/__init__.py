# client/__init__.py
from .optimistic import ClientOptimisticController, SyncState
