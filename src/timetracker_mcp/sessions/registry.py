"""In-memory, thread-safe registry of time-tracking sessions."""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Mapping, Protocol, Sequence
from uuid import uuid4

from ..timekeeping import TimeZoneResolution, monotonic_ticks, utc_now
from .models import ErrorCode, Session, SessionResult, TaskRecord, TaskResult, TaskStatus
from .retention import RetentionPolicy

logger = logging.getLogger(__name__)

DEFAULT_MAX_SESSIONS = 100
DEFAULT_MAX_TASKS_PER_SESSION = 500


class TimeZoneResolverProtocol(Protocol):
    """Minimal resolver API used when creating sessions."""

    def resolve(self, timezone_id: str | None) -> TimeZoneResolution:
        ...


@dataclass(slots=True)
class _SessionEntry:
    session: Session
    lock: threading.Lock


def _blank(value: str | None) -> bool:
    return value is None or not value.strip()


class SessionRegistry:
    """Keyed store of sessions plus the operations that mutate them.

    Each session is guarded by its own lock; every read or write of a
    session's fields happens while holding it, so multi-field updates (an end
    timestamp together with its tick, or ending a session together with its
    running tasks) are never observed half-applied. The store lock only
    protects the mapping itself and is always taken before a session lock,
    never while holding one.

    Sessions and tasks handed back to callers are deep copies.
    """

    def __init__(
        self,
        timezone_resolver: TimeZoneResolverProtocol,
        *,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        max_tasks_per_session: int = DEFAULT_MAX_TASKS_PER_SESSION,
        retention: RetentionPolicy | None = None,
        clock: Callable[[], datetime] | None = None,
        ticker: Callable[[], int] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._resolver = timezone_resolver
        self._max_sessions = max_sessions
        self._max_tasks_per_session = max_tasks_per_session
        self._retention = retention or RetentionPolicy()
        self._clock = clock or utc_now
        self._ticker = ticker or monotonic_ticks
        self._id_factory = id_factory or (lambda: uuid4().hex)
        self._entries: dict[str, _SessionEntry] = {}
        self._store_lock = threading.RLock()

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    @property
    def max_tasks_per_session(self) -> int:
        return self._max_tasks_per_session

    @property
    def retention(self) -> RetentionPolicy:
        return self._retention

    @property
    def session_count(self) -> int:
        with self._store_lock:
            return len(self._entries)

    def _sample(self) -> tuple[datetime, int]:
        return self._clock(), self._ticker()

    def _lookup(self, session_id: str) -> _SessionEntry | None:
        with self._store_lock:
            return self._entries.get(session_id)

    @staticmethod
    def _touch(session: Session, now: datetime) -> None:
        if now > session.last_activity_time:
            session.last_activity_time = now

    @staticmethod
    def _task_index(session: Session, task_id: str) -> int | None:
        for index, task in enumerate(session.tasks):
            if task.task_id == task_id:
                return index
        return None

    def create_session(
        self,
        milestone_id: str,
        task_ids: Sequence[str],
        milestone_name: str | None = None,
        timezone: str | None = None,
        metadata: Mapping[str, str] | None = None,
        tags: Sequence[str] | None = None,
        mcp_session_id: str | None = None,
    ) -> SessionResult:
        """Start tracking a new session with one ``not_started`` record per task id.

        When the registry is full, one retention sweep runs inline before the
        request is rejected. That sweep calls :meth:`cleanup_expired_sessions`
        directly, so it is not reflected in the cleanup service's counters.
        """

        if _blank(milestone_id):
            return SessionResult.error("milestone_id is required.", ErrorCode.MISSING_MILESTONE_ID)
        if not task_ids:
            return SessionResult.error(
                "task_ids is required and must not be empty.", ErrorCode.MISSING_TASK_IDS
            )

        resolution = self._resolver.resolve(timezone)
        if not resolution.success:
            return SessionResult.error(resolution.error_message, resolution.error_code)

        with self._store_lock:
            if len(self._entries) >= self._max_sessions:
                self.cleanup_expired_sessions()
                if len(self._entries) >= self._max_sessions:
                    logger.warning(
                        "Session limit reached",
                        extra={"max_sessions": self._max_sessions, "milestone_id": milestone_id},
                    )
                    return SessionResult.error(
                        f"Maximum session limit ({self._max_sessions}) reached. "
                        "End existing sessions or wait for expiration.",
                        ErrorCode.MAX_SESSIONS_REACHED,
                    )

            session_id = self._id_factory()
            if session_id in self._entries:
                logger.error("Session id collision", extra={"session_id": session_id})
                return SessionResult.error(
                    "Failed to create session. Please try again.",
                    ErrorCode.SESSION_CREATION_FAILED,
                )

            now, ticks = self._sample()
            session = Session(
                session_id=session_id,
                milestone_id=milestone_id,
                task_ids=list(task_ids),
                start_time=now,
                start_ticks=ticks,
                timezone=resolution.zone_id or "UTC",
                last_activity_time=now,
                mcp_session_id=mcp_session_id,
                milestone_name=milestone_name,
                metadata=dict(metadata) if metadata is not None else None,
                tags=list(tags) if tags is not None else None,
                tasks=[TaskRecord(task_id=task_id) for task_id in task_ids],
            )
            snapshot = copy.deepcopy(session)
            self._entries[session_id] = _SessionEntry(session=session, lock=threading.Lock())

        logger.info(
            "Session started",
            extra={
                "session_id": session_id,
                "milestone_id": milestone_id,
                "task_count": len(snapshot.tasks),
                "timezone": snapshot.timezone,
            },
        )
        return SessionResult.ok(snapshot)

    def end_session(self, session_id: str) -> SessionResult:
        """End a session once; repeated calls return the original end state."""

        if _blank(session_id):
            return SessionResult.error("session_id is required.", ErrorCode.MISSING_SESSION_ID)
        entry = self._lookup(session_id)
        if entry is None:
            return SessionResult.error(f"Session '{session_id}' not found.", ErrorCode.SESSION_NOT_FOUND)

        with entry.lock:
            session = entry.session
            if session.is_ended:
                return SessionResult.ok(copy.deepcopy(session))

            now, ticks = self._sample()
            forced = 0
            for task in session.tasks:
                if task.is_in_progress:
                    task.end_time = now
                    task.end_ticks = ticks
                    task.duration_ms = task.calculate_duration_ms()
                    task.status = TaskStatus.COMPLETED
                    forced += 1
            session.end_time = now
            session.end_ticks = ticks
            self._touch(session, now)
            snapshot = copy.deepcopy(session)

        logger.info(
            "Session ended",
            extra={
                "session_id": session_id,
                "duration_ms": snapshot.duration_ms(),
                "force_completed_tasks": forced,
            },
        )
        return SessionResult.ok(snapshot)

    def get_session(self, session_id: str) -> Session | None:
        """Return a copy of the session without counting the read as activity."""

        if _blank(session_id):
            return None
        entry = self._lookup(session_id)
        if entry is None:
            return None
        with entry.lock:
            return copy.deepcopy(entry.session)

    def get_session_summary(self, session_id: str) -> SessionResult:
        """Return a copy of the session and mark it as recently active."""

        if _blank(session_id):
            return SessionResult.error("session_id is required.", ErrorCode.MISSING_SESSION_ID)
        entry = self._lookup(session_id)
        if entry is None:
            return SessionResult.error(f"Session '{session_id}' not found.", ErrorCode.SESSION_NOT_FOUND)

        with entry.lock:
            self._touch(entry.session, self._clock())
            return SessionResult.ok(copy.deepcopy(entry.session))

    def start_task(
        self,
        session_id: str,
        task_id: str,
        task_name: str | None = None,
        external_task_id: str | None = None,
        work_item_id: str | None = None,
        metadata: Mapping[str, str] | None = None,
    ) -> TaskResult:
        """Start (or restart) a task; unknown task ids are added to the session."""

        if _blank(session_id):
            return TaskResult.error("session_id is required.", ErrorCode.MISSING_SESSION_ID)
        if _blank(task_id):
            return TaskResult.error("task_id is required.", ErrorCode.MISSING_TASK_ID)
        entry = self._lookup(session_id)
        if entry is None:
            return TaskResult.error(f"Session '{session_id}' not found.", ErrorCode.SESSION_NOT_FOUND)

        with entry.lock:
            session = entry.session
            if session.is_ended:
                return TaskResult.error(
                    f"Session '{session_id}' has already ended.", ErrorCode.SESSION_ENDED
                )

            started = sum(1 for task in session.tasks if task.status != TaskStatus.NOT_STARTED)
            if started >= self._max_tasks_per_session:
                return TaskResult.error(
                    f"Maximum tasks per session limit ({self._max_tasks_per_session}) reached.",
                    ErrorCode.MAX_TASKS_REACHED,
                )

            index = self._task_index(session, task_id)
            if index is None:
                session.tasks.append(TaskRecord(task_id=task_id))
                index = len(session.tasks) - 1
            task = session.tasks[index]

            if task.is_in_progress:
                task.already_running = True
                snapshot = copy.deepcopy(session)
                logger.debug(
                    "Task already running", extra={"session_id": session_id, "task_id": task_id}
                )
                return TaskResult.ok(snapshot.tasks[index], snapshot)

            now, ticks = self._sample()
            task.start_time = now
            task.start_ticks = ticks
            task.end_time = None
            task.end_ticks = None
            task.duration_ms = None
            task.status = TaskStatus.IN_PROGRESS
            task.task_name = task_name
            task.external_task_id = external_task_id
            task.work_item_id = work_item_id
            task.metadata = dict(metadata) if metadata is not None else None
            task.already_running = False
            self._touch(session, now)
            snapshot = copy.deepcopy(session)

        logger.info("Task started", extra={"session_id": session_id, "task_id": task_id})
        return TaskResult.ok(snapshot.tasks[index], snapshot)

    def end_task(
        self,
        session_id: str,
        task_id: str,
        status: str = "completed",
        metadata: Mapping[str, str] | None = None,
    ) -> TaskResult:
        """Finish a running task as ``skipped`` (exactly) or ``completed`` (anything else)."""

        if _blank(session_id):
            return TaskResult.error("session_id is required.", ErrorCode.MISSING_SESSION_ID)
        if _blank(task_id):
            return TaskResult.error("task_id is required.", ErrorCode.MISSING_TASK_ID)
        entry = self._lookup(session_id)
        if entry is None:
            return TaskResult.error(f"Session '{session_id}' not found.", ErrorCode.SESSION_NOT_FOUND)

        with entry.lock:
            session = entry.session
            index = self._task_index(session, task_id)
            if index is None:
                return TaskResult.error(
                    f"Task '{task_id}' not found in session.", ErrorCode.TASK_NOT_FOUND
                )
            task = session.tasks[index]
            if not task.is_in_progress:
                return TaskResult.error(
                    f"Task '{task_id}' is not in progress (current status: {task.status.value}).",
                    ErrorCode.TASK_NOT_STARTED,
                )

            now, ticks = self._sample()
            task.end_time = now
            task.end_ticks = ticks
            task.duration_ms = task.calculate_duration_ms()
            task.status = TaskStatus.SKIPPED if status == "skipped" else TaskStatus.COMPLETED
            if metadata:
                merged = dict(task.metadata or {})
                merged.update(metadata)
                task.metadata = merged
            self._touch(session, now)
            snapshot = copy.deepcopy(session)

        ended = snapshot.tasks[index]
        logger.info(
            "Task ended",
            extra={
                "session_id": session_id,
                "task_id": task_id,
                "status": ended.status.value,
                "duration_ms": ended.duration_ms,
            },
        )
        return TaskResult.ok(ended, snapshot)

    def cleanup_expired_sessions(self) -> int:
        """Evict sessions the retention policy considers expired; returns the count."""

        now = self._clock()
        with self._store_lock:
            entries = list(self._entries.values())

        scanned: list[Session] = []
        for entry in entries:
            with entry.lock:
                scanned.append(copy.copy(entry.session))
        candidates = self._retention.select_expired(scanned, now)

        removed = 0
        with self._store_lock:
            for session_id in candidates:
                entry = self._entries.get(session_id)
                if entry is None:
                    continue
                with entry.lock:
                    # Activity may have landed since the scan.
                    if not self._retention.is_expired(entry.session, now):
                        continue
                    del self._entries[session_id]
                removed += 1

        if removed:
            logger.info("Evicted expired sessions", extra={"removed": removed})
        return removed

    def list_sessions(self) -> list[Session]:
        with self._store_lock:
            entries = list(self._entries.values())
        sessions: list[Session] = []
        for entry in entries:
            with entry.lock:
                sessions.append(copy.deepcopy(entry.session))
        return sessions


__all__ = [
    "DEFAULT_MAX_SESSIONS",
    "DEFAULT_MAX_TASKS_PER_SESSION",
    "SessionRegistry",
    "TimeZoneResolverProtocol",
]
