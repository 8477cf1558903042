"""FastMCP server bootstrap for Time Tracker."""

import json
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from fastmcp import FastMCP

from . import __version__
from .config import TimeTrackerSettings, get_settings
from .sessions import SessionCleanupService, SessionRegistry
from .timekeeping import TimeZoneResolver
from .tools import register_tools


def configure_logging(level: str) -> None:
    """Configure root logging for the Time Tracker server."""

    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="[%(asctime)s] [%(levelname)s] %(name)s: %(message)s",
    )


def create_server(
    settings: Optional[TimeTrackerSettings] = None,
    *,
    registry: SessionRegistry | None = None,
    resolver: TimeZoneResolver | None = None,
) -> FastMCP:
    """Instantiate the FastMCP server with its registry, tools and cleanup service."""

    settings = settings or get_settings()
    resolver = resolver or TimeZoneResolver()
    registry = registry or SessionRegistry(
        resolver,
        max_sessions=settings.max_sessions,
        max_tasks_per_session=settings.max_tasks_per_session,
        retention=settings.retention_policy(),
    )
    cleanup_service = SessionCleanupService(registry, interval=settings.cleanup_interval_seconds)

    @asynccontextmanager
    async def lifespan(_server: FastMCP) -> AsyncIterator[dict[str, Any]]:
        await cleanup_service.start()
        try:
            yield {"session_registry": registry}
        finally:
            await cleanup_service.stop()

    server = FastMCP(
        name="Time Tracker MCP",
        version=__version__,
        instructions=(
            "Time Tracker measures how long milestones and their tasks take. Start a "
            "session with time_session_start, bracket each task with time_task_start "
            "and time_task_end, and close the session with time_session_end. Durations "
            "come from a monotonic clock and are unaffected by system clock changes."
        ),
        lifespan=lifespan,
    )

    handles = register_tools(
        server,
        registry=registry,
        resolver=resolver,
        settings=settings,
    )

    def status_snapshot() -> dict[str, Any]:
        """Summarize registry occupancy, task progress and the cleanup schedule."""

        sessions = registry.list_sessions()
        task_counts: dict[str, int] = {}
        for session in sessions:
            for status, count in session.task_counts().items():
                task_counts[status] = task_counts.get(status, 0) + count

        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "server_version": __version__,
            "log_level": settings.log_level,
            "sessions": {
                "count": len(sessions),
                "active": sum(1 for session in sessions if not session.is_ended),
                "ended": sum(1 for session in sessions if session.is_ended),
                "max_sessions": registry.max_sessions,
            },
            "tasks": {
                "status_counts": task_counts,
                "max_tasks_per_session": registry.max_tasks_per_session,
            },
            "retention": {
                "max_session_age_hours": registry.retention.max_session_age.total_seconds() / 3600,
                "max_inactivity_hours": registry.retention.max_inactivity.total_seconds() / 3600,
            },
            "cleanup": {
                "running": cleanup_service.running,
                "interval_seconds": cleanup_service.interval,
                "sweeps": cleanup_service.sweep_count,
                "failures": cleanup_service.failure_count,
                "last_removed": cleanup_service.last_removed,
                "last_run_at": (
                    cleanup_service.last_run_at.isoformat() if cleanup_service.last_run_at else None
                ),
            },
        }

    @server.resource(
        "resource://timetracker/status",
        name="timetracker_status",
        description="Provides the current runtime status for the Time Tracker MCP server.",
        mime_type="application/json",
        tags={"status", "health"},
    )
    def status_resource() -> str:
        """Return a JSON string summarizing basic runtime state."""

        return json.dumps(status_snapshot())

    setattr(server, "session_registry", registry)
    setattr(server, "timezone_resolver", resolver)
    setattr(server, "cleanup_service", cleanup_service)
    setattr(server, "tool_handles", handles)
    setattr(server, "status_snapshot", status_snapshot)
    return server


def main() -> None:
    """Entry point for running the Time Tracker MCP server via CLI."""

    settings = get_settings()
    configure_logging(settings.log_level)

    server = create_server(settings)
    logging.getLogger(__name__).info(
        "Launching Time Tracker MCP server",
        extra={
            "version": __version__,
            "log_level": settings.log_level,
            "max_sessions": settings.max_sessions,
            "cleanup_interval_seconds": settings.cleanup_interval_seconds,
        },
    )
    server.run()


if __name__ == "__main__":
    main()
