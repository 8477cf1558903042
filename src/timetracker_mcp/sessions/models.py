"""Session and task records tracked by the registry."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from ..timekeeping import monotonic_ticks, ticks_to_ms


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    SKIPPED = "skipped"

    def __str__(self) -> str:
        return self.value


class ErrorCode(str, Enum):
    """Stable error codes reported by registry operations."""

    MISSING_MILESTONE_ID = "MISSING_MILESTONE_ID"
    MISSING_TASK_IDS = "MISSING_TASK_IDS"
    MAX_SESSIONS_REACHED = "MAX_SESSIONS_REACHED"
    SESSION_CREATION_FAILED = "SESSION_CREATION_FAILED"
    MISSING_SESSION_ID = "MISSING_SESSION_ID"
    SESSION_NOT_FOUND = "SESSION_NOT_FOUND"
    SESSION_ENDED = "SESSION_ENDED"
    MISSING_TASK_ID = "MISSING_TASK_ID"
    MAX_TASKS_REACHED = "MAX_TASKS_REACHED"
    TASK_NOT_FOUND = "TASK_NOT_FOUND"
    TASK_NOT_STARTED = "TASK_NOT_STARTED"

    def __str__(self) -> str:
        return self.value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(slots=True)
class TaskRecord:
    """A unit of work inside a session with its own timing and status."""

    task_id: str
    task_name: str | None = None
    external_task_id: str | None = None
    work_item_id: str | None = None
    start_time: datetime | None = None
    start_ticks: int | None = None
    end_time: datetime | None = None
    end_ticks: int | None = None
    duration_ms: int | None = None
    status: TaskStatus = TaskStatus.NOT_STARTED
    metadata: dict[str, str] | None = None
    already_running: bool = False

    @property
    def is_in_progress(self) -> bool:
        return self.status == TaskStatus.IN_PROGRESS

    def calculate_duration_ms(self) -> int | None:
        if self.start_ticks is None or self.end_ticks is None:
            return None
        return ticks_to_ms(self.start_ticks, self.end_ticks)

    def elapsed_ms(self, now_ticks: int | None = None) -> int | None:
        """Milliseconds since the task started, or its final duration once ended."""

        if self.start_ticks is None:
            return None
        if self.end_ticks is not None and not self.is_in_progress:
            return ticks_to_ms(self.start_ticks, self.end_ticks)
        current = now_ticks if now_ticks is not None else monotonic_ticks()
        return ticks_to_ms(self.start_ticks, current)

    def to_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_name": self.task_name,
            "external_task_id": self.external_task_id,
            "work_item_id": self.work_item_id,
            "status": self.status.value,
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "duration_ms": self.duration_ms,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
            "already_running": self.already_running,
        }


@dataclass(slots=True)
class Session:
    """A tracked unit of work for one milestone.

    ``end_time`` and ``end_ticks`` are set together exactly once. ``tasks`` only
    grows: records are appended at creation or when an unknown task id is
    started, and are never removed.
    """

    session_id: str
    milestone_id: str
    task_ids: list[str]
    start_time: datetime
    start_ticks: int
    timezone: str
    last_activity_time: datetime
    mcp_session_id: str | None = None
    milestone_name: str | None = None
    end_time: datetime | None = None
    end_ticks: int | None = None
    metadata: dict[str, str] | None = None
    tags: list[str] | None = None
    tasks: list[TaskRecord] = field(default_factory=list)

    @property
    def is_ended(self) -> bool:
        return self.end_time is not None

    def duration_ms(self) -> int | None:
        if self.end_ticks is None:
            return None
        return ticks_to_ms(self.start_ticks, self.end_ticks)

    def elapsed_ms(self, now_ticks: int | None = None) -> int:
        """Elapsed time so far; equals :meth:`duration_ms` once the session ended."""

        if self.end_ticks is not None:
            return ticks_to_ms(self.start_ticks, self.end_ticks)
        current = now_ticks if now_ticks is not None else monotonic_ticks()
        return ticks_to_ms(self.start_ticks, current)

    def find_task(self, task_id: str) -> TaskRecord | None:
        for task in self.tasks:
            if task.task_id == task_id:
                return task
        return None

    def task_counts(self) -> dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in self.tasks:
            counts[task.status.value] += 1
        return counts

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "mcp_session_id": self.mcp_session_id,
            "milestone_id": self.milestone_id,
            "milestone_name": self.milestone_name,
            "task_ids": list(self.task_ids),
            "start_time": _iso(self.start_time),
            "end_time": _iso(self.end_time),
            "timezone": self.timezone,
            "metadata": dict(self.metadata) if self.metadata is not None else None,
            "tags": list(self.tags) if self.tags is not None else None,
            "last_activity_time": _iso(self.last_activity_time),
            "is_ended": self.is_ended,
            "duration_ms": self.duration_ms(),
            "tasks": [task.to_dict() for task in self.tasks],
        }


@dataclass(slots=True)
class SessionResult:
    success: bool
    session: Session | None = None
    error_message: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, session: Session) -> "SessionResult":
        return cls(success=True, session=session)

    @classmethod
    def error(cls, message: str, code: str) -> "SessionResult":
        return cls(success=False, error_message=message, error_code=code)


@dataclass(slots=True)
class TaskResult:
    success: bool
    task: TaskRecord | None = None
    session: Session | None = None
    error_message: str | None = None
    error_code: str | None = None

    @classmethod
    def ok(cls, task: TaskRecord, session: Session) -> "TaskResult":
        return cls(success=True, task=task, session=session)

    @classmethod
    def error(cls, message: str, code: str) -> "TaskResult":
        return cls(success=False, error_message=message, error_code=code)


__all__ = [
    "ErrorCode",
    "Session",
    "SessionResult",
    "TaskRecord",
    "TaskResult",
    "TaskStatus",
]
