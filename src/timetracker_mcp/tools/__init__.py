"""Tool registration for Time Tracker MCP."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo
from typing import Any, Mapping, Sequence

from fastmcp import Context, FastMCP

from ..config import TimeTrackerSettings
from ..sessions import Session, SessionRegistry, TaskRecord
from ..timekeeping import TimeZoneResolver, format_duration, format_utc_offset, utc_now

UNKNOWN_FORMAT = "UNKNOWN_FORMAT"
INVALID_TASK_IDS = "INVALID_TASK_IDS"
INVALID_METADATA = "INVALID_METADATA"
INVALID_TAGS = "INVALID_TAGS"
TIME_FORMATS = ("iso8601", "unix", "unix_ms", "friendly")


class InvalidToolInput(ValueError):
    """Raised when a tool argument cannot be parsed."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.code = code


@dataclass(slots=True)
class ToolHandles:
    time_get_current: Any
    time_session_start: Any
    time_session_end: Any
    time_session_summary: Any
    time_task_start: Any
    time_task_end: Any


def parse_task_ids(value: str | Sequence[str] | None) -> list[str]:
    """Accept a list, a JSON array string or a comma-separated string of task ids.

    Blank entries are dropped; duplicates are kept in order.
    """

    if value is None:
        return []
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                raise InvalidToolInput(
                    f"task_ids is not a valid JSON array: {exc.msg}", INVALID_TASK_IDS
                ) from exc
            if not isinstance(decoded, list):
                raise InvalidToolInput("task_ids JSON must be an array", INVALID_TASK_IDS)
            items: list[Any] = decoded
        else:
            items = text.split(",")
    else:
        items = list(value)
    cleaned = [str(item).strip() for item in items]
    return [item for item in cleaned if item]


def parse_metadata(value: str | Mapping[str, Any] | None) -> dict[str, str] | None:
    """Accept a mapping or a JSON object string; values are stringified."""

    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            decoded = json.loads(text)
        except json.JSONDecodeError as exc:
            raise InvalidToolInput(f"metadata is not valid JSON: {exc.msg}", INVALID_METADATA) from exc
        if not isinstance(decoded, dict):
            raise InvalidToolInput("metadata JSON must be an object", INVALID_METADATA)
        value = decoded
    return {str(key): value_ if isinstance(value_, str) else json.dumps(value_) for key, value_ in value.items()}


def parse_tags(value: str | Sequence[str] | None) -> list[str] | None:
    if value is None:
        return None
    if isinstance(value, str):
        text = value.strip()
        if text.startswith("["):
            try:
                decoded = json.loads(text)
            except json.JSONDecodeError as exc:
                raise InvalidToolInput(f"tags is not a valid JSON array: {exc.msg}", INVALID_TAGS) from exc
            if not isinstance(decoded, list):
                raise InvalidToolInput("tags JSON must be an array", INVALID_TAGS)
            items: list[Any] = decoded
        else:
            items = text.split(",")
    else:
        items = list(value)
    cleaned = [str(item).strip() for item in items]
    return [item for item in cleaned if item] or None


def _friendly(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year} {value:%I:%M:%S %p}"


def _iso(value: datetime | None, zone: tzinfo) -> str | None:
    return value.astimezone(zone).isoformat() if value is not None else None


def _friendly_in(value: datetime | None, zone: tzinfo) -> str | None:
    return _friendly(value.astimezone(zone)) if value is not None else None


def _error_payload(message: str | None, code: Any) -> dict[str, Any]:
    return {
        "error": True,
        "error_code": getattr(code, "value", code),
        "error_message": message,
    }


def _progress_counts(session: Session) -> dict[str, int]:
    counts = session.task_counts()
    return {
        "task_count": len(session.tasks),
        "tasks_completed": counts["completed"],
        "tasks_skipped": counts["skipped"],
        "tasks_in_progress": counts["in_progress"],
        "tasks_not_started": counts["not_started"],
        "tasks_remaining": counts["in_progress"] + counts["not_started"],
    }


def _task_payload(task: TaskRecord, zone: tzinfo) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "task_id": task.task_id,
        "task_name": task.task_name,
        "external_task_id": task.external_task_id,
        "work_item_id": task.work_item_id,
        "status": task.status.value,
        "start_time": _iso(task.start_time, zone),
        "end_time": _iso(task.end_time, zone),
        "duration_ms": task.duration_ms,
        "duration": format_duration(task.duration_ms) if task.duration_ms is not None else None,
        "metadata": task.metadata,
    }
    if task.is_in_progress:
        payload["elapsed_ms"] = task.elapsed_ms()
    return payload


def _session_payload(session: Session, zone: tzinfo) -> dict[str, Any]:
    duration_ms = session.elapsed_ms()
    return {
        "session_id": session.session_id,
        "mcp_session_id": session.mcp_session_id,
        "milestone_id": session.milestone_id,
        "milestone_name": session.milestone_name,
        "timezone": session.timezone,
        "start_time": _iso(session.start_time, zone),
        "start_time_friendly": _friendly_in(session.start_time, zone),
        "end_time": _iso(session.end_time, zone),
        "end_time_friendly": _friendly_in(session.end_time, zone),
        "is_ended": session.is_ended,
        "duration_ms": duration_ms,
        "duration": format_duration(duration_ms),
        "metadata": session.metadata,
        "tags": session.tags,
        **_progress_counts(session),
        "tasks": [_task_payload(task, zone) for task in session.tasks],
    }


def _context_session_id(context: Context | None) -> str | None:
    if context is None:
        return None
    try:
        return context.session_id
    except (RuntimeError, ValueError):
        return None


def register_tools(
    server: FastMCP,
    *,
    registry: SessionRegistry,
    resolver: TimeZoneResolver,
    settings: TimeTrackerSettings,
) -> ToolHandles:
    """Register the time tracking tools on the server."""

    def _zone_for(zone_id: str) -> tzinfo:
        resolution = resolver.resolve(zone_id)
        if resolution.success and resolution.zone is not None:
            return resolution.zone
        local = resolver.resolve("local")
        if local.success and local.zone is not None and local.zone_id == zone_id:
            return local.zone
        return dt_timezone.utc

    def _time_get_current(
        format: str = "iso8601",
        timezone: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Return the current time in the requested format and timezone."""

        fmt = (format or "iso8601").strip().lower()
        if fmt not in TIME_FORMATS:
            return _error_payload(
                f"Unknown format '{format}'. Valid formats: {', '.join(TIME_FORMATS)}.",
                UNKNOWN_FORMAT,
            )

        resolution = resolver.resolve(timezone or settings.default_timezone)
        if not resolution.success or resolution.zone is None:
            return _error_payload(resolution.error_message, resolution.error_code)

        now = utc_now().astimezone(resolution.zone)
        if fmt == "iso8601":
            timestamp = now.isoformat()
        elif fmt == "unix":
            timestamp = str(int(now.timestamp()))
        elif fmt == "unix_ms":
            timestamp = str(int(now.timestamp() * 1000))
        else:
            timestamp = _friendly(now)

        _emit_log(context, "debug", "Current time requested", extra={"format": fmt})
        return {
            "timestamp": timestamp,
            "format": fmt,
            "timezone": resolution.zone_id,
            "utc_offset": format_utc_offset(now.utcoffset() or timedelta(0)),
        }

    def _time_session_start(
        milestone_id: str,
        task_ids: str | list[str],
        milestone_name: str | None = None,
        timezone: str | None = None,
        metadata: str | dict[str, Any] | None = None,
        tags: str | list[str] | None = None,
        mcp_session_id: str | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start a timing session for a milestone and its planned tasks."""

        try:
            parsed_task_ids = parse_task_ids(task_ids)
            parsed_metadata = parse_metadata(metadata)
            parsed_tags = parse_tags(tags)
        except InvalidToolInput as exc:
            _emit_log(context, "warning", "Rejected session start", extra={"error_code": exc.code})
            return _error_payload(str(exc), exc.code)

        result = registry.create_session(
            milestone_id,
            parsed_task_ids,
            milestone_name=milestone_name,
            timezone=timezone or settings.default_timezone,
            metadata=parsed_metadata,
            tags=parsed_tags,
            mcp_session_id=mcp_session_id or _context_session_id(context),
        )
        if not result.success or result.session is None:
            _emit_log(
                context,
                "warning",
                "Session start failed",
                extra={"error_code": getattr(result.error_code, "value", result.error_code)},
            )
            return _error_payload(result.error_message, result.error_code)

        session = result.session
        zone = _zone_for(session.timezone)
        _emit_log(
            context,
            "debug",
            "Session start tool completed",
            extra={"session_id": session.session_id},
        )
        return {
            "session_id": session.session_id,
            "mcp_session_id": session.mcp_session_id,
            "milestone_id": session.milestone_id,
            "milestone_name": session.milestone_name,
            "task_count": len(session.tasks),
            "task_ids": session.task_ids,
            "timezone": session.timezone,
            "start_time": _iso(session.start_time, zone),
            "start_time_friendly": _friendly_in(session.start_time, zone),
            "metadata": session.metadata,
            "tags": session.tags,
        }

    def _time_session_end(session_id: str, context: Context | None = None) -> dict[str, Any]:
        """End a session, completing any tasks still running."""

        result = registry.end_session(session_id)
        if not result.success or result.session is None:
            _emit_log(context, "warning", "Session end failed", extra={"session_id": session_id})
            return _error_payload(result.error_message, result.error_code)
        session = result.session
        return _session_payload(session, _zone_for(session.timezone))

    def _time_session_summary(session_id: str, context: Context | None = None) -> dict[str, Any]:
        """Report progress and elapsed time for a session without ending it."""

        result = registry.get_session_summary(session_id)
        if not result.success or result.session is None:
            _emit_log(context, "warning", "Session summary failed", extra={"session_id": session_id})
            return _error_payload(result.error_message, result.error_code)
        session = result.session
        return _session_payload(session, _zone_for(session.timezone))

    def _time_task_start(
        session_id: str,
        task_id: str,
        task_name: str | None = None,
        external_task_id: str | None = None,
        work_item_id: str | None = None,
        metadata: str | dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Start timing a task; starting a running task is reported, not repeated."""

        try:
            parsed_metadata = parse_metadata(metadata)
        except InvalidToolInput as exc:
            return _error_payload(str(exc), exc.code)

        result = registry.start_task(
            session_id,
            task_id,
            task_name=task_name,
            external_task_id=external_task_id,
            work_item_id=work_item_id,
            metadata=parsed_metadata,
        )
        if not result.success or result.task is None or result.session is None:
            _emit_log(
                context,
                "warning",
                "Task start failed",
                extra={"session_id": session_id, "task_id": task_id},
            )
            return _error_payload(result.error_message, result.error_code)

        session, task = result.session, result.task
        zone = _zone_for(session.timezone)
        counts = _progress_counts(session)
        return {
            "session_id": session.session_id,
            **_task_payload(task, zone),
            "start_time_friendly": _friendly_in(task.start_time, zone),
            "already_running": task.already_running,
            "session_elapsed_ms": session.elapsed_ms(),
            "tasks_completed": counts["tasks_completed"],
            "tasks_remaining": counts["tasks_remaining"],
        }

    def _time_task_end(
        session_id: str,
        task_id: str,
        status: str = "completed",
        metadata: str | dict[str, Any] | None = None,
        context: Context | None = None,
    ) -> dict[str, Any]:
        """Stop timing a task as completed or skipped and report its duration."""

        try:
            parsed_metadata = parse_metadata(metadata)
        except InvalidToolInput as exc:
            return _error_payload(str(exc), exc.code)

        result = registry.end_task(session_id, task_id, status=status, metadata=parsed_metadata)
        if not result.success or result.task is None or result.session is None:
            _emit_log(
                context,
                "warning",
                "Task end failed",
                extra={"session_id": session_id, "task_id": task_id},
            )
            return _error_payload(result.error_message, result.error_code)

        session, task = result.session, result.task
        zone = _zone_for(session.timezone)
        counts = _progress_counts(session)
        return {
            "session_id": session.session_id,
            **_task_payload(task, zone),
            "session_elapsed_ms": session.elapsed_ms(),
            "tasks_completed": counts["tasks_completed"],
            "tasks_remaining": counts["tasks_remaining"],
        }

    tool_get_current = server.tool(
        name="time_get_current",
        description=(
            "Get the current time. format: iso8601 (default), unix, unix_ms or friendly. "
            "timezone: 'local', 'UTC' or an IANA name such as 'America/New_York'."
        ),
    )(_time_get_current)

    tool_session_start = server.tool(
        name="time_session_start",
        description=(
            "Start timing a milestone. task_ids may be a list, a JSON array or a "
            "comma-separated string. Returns the session id used by the other tools."
        ),
    )(_time_session_start)

    tool_session_end = server.tool(
        name="time_session_end",
        description="End a timing session. Safe to call more than once; running tasks are completed.",
    )(_time_session_end)

    tool_session_summary = server.tool(
        name="time_session_summary",
        description="Summarize task progress and elapsed time for a session without ending it.",
    )(_time_session_summary)

    tool_task_start = server.tool(
        name="time_task_start",
        description=(
            "Start timing a task inside a session. Unknown task ids are added; "
            "starting a running task returns already_running=true."
        ),
    )(_time_task_start)

    tool_task_end = server.tool(
        name="time_task_end",
        description="Stop timing a task. status is 'completed' (default) or 'skipped'.",
    )(_time_task_end)

    return ToolHandles(
        time_get_current=tool_get_current,
        time_session_start=tool_session_start,
        time_session_end=tool_session_end,
        time_session_summary=tool_session_summary,
        time_task_start=tool_task_start,
        time_task_end=tool_task_end,
    )


__all__ = [
    "InvalidToolInput",
    "ToolHandles",
    "parse_metadata",
    "parse_tags",
    "parse_task_ids",
    "register_tools",
]

logger = logging.getLogger(__name__)


def _emit_log(
    context: Context | None,
    level: str,
    message: str,
    *,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log through the module logger, tagging the MCP request id when one is available."""

    payload = dict(extra or {})
    if context is not None:
        try:
            payload["request_id"] = context.request_id
        except (AttributeError, RuntimeError, ValueError):
            pass

    log_method = getattr(logger, level, logger.info)
    log_method(message, extra=payload)
