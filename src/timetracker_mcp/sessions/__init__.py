"""Session registry, retention policy and cleanup scheduling."""

from .cleanup import DEFAULT_CLEANUP_INTERVAL, SessionCleanupService
from .models import ErrorCode, Session, SessionResult, TaskRecord, TaskResult, TaskStatus
from .registry import DEFAULT_MAX_SESSIONS, DEFAULT_MAX_TASKS_PER_SESSION, SessionRegistry
from .retention import RetentionPolicy

__all__ = [
    "DEFAULT_CLEANUP_INTERVAL",
    "DEFAULT_MAX_SESSIONS",
    "DEFAULT_MAX_TASKS_PER_SESSION",
    "ErrorCode",
    "RetentionPolicy",
    "Session",
    "SessionCleanupService",
    "SessionRegistry",
    "SessionResult",
    "TaskRecord",
    "TaskResult",
    "TaskStatus",
]
