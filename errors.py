# errors.py


class CompletionError(Exception):
    """Base class for errors raised by the completion engine."""


class NotFound(CompletionError, LookupError):
    """Task or subtask does not exist (or the subtask belongs to another task)."""


class Unauthorized(CompletionError, PermissionError):
    """Caller may not read or write this task."""


class Conflict(CompletionError):
    """A concurrent write hit a unique key. Nothing was applied; safe to retry once."""


class TransientNetworkFailure(CompletionError):
    """Client-side write failed. The optimistic state has been rolled back."""
