"""Time Tracker MCP diagnostics CLI."""

from __future__ import annotations

import argparse
import json

from timetracker_mcp.config import TimeTrackerSettings
from timetracker_mcp.sessions import SessionRegistry
from timetracker_mcp.timekeeping import (
    TimeZoneResolver,
    format_duration,
    format_duration_compact,
    format_duration_detailed,
    format_utc_offset,
)

_DURATION_STYLES = {
    "full": format_duration,
    "detailed": format_duration_detailed,
    "compact": format_duration_compact,
}


def cmd_settings(args: argparse.Namespace) -> None:
    settings = TimeTrackerSettings()
    print(json.dumps(settings.model_dump(mode="json"), indent=2))


def cmd_timezone(args: argparse.Namespace) -> None:
    resolution = TimeZoneResolver().resolve(args.name)
    if not resolution.success:
        print(f"Timezone unavailable: [{resolution.error_code}] {resolution.error_message}")
        raise SystemExit(1)
    print(
        json.dumps(
            {
                "requested": args.name,
                "timezone": resolution.zone_id,
                "utc_offset": format_utc_offset(resolution.utc_offset),
            },
            indent=2,
        )
    )


def cmd_duration(args: argparse.Namespace) -> None:
    if args.milliseconds < 0:
        print("Duration must be non-negative")
        raise SystemExit(1)
    print(_DURATION_STYLES[args.style](args.milliseconds))


def cmd_smoke(args: argparse.Namespace) -> None:
    """Run one session through its full lifecycle on a throwaway registry."""

    settings = TimeTrackerSettings()
    registry = SessionRegistry(
        TimeZoneResolver(),
        max_sessions=settings.max_sessions,
        max_tasks_per_session=settings.max_tasks_per_session,
        retention=settings.retention_policy(),
    )
    created = registry.create_session("diagnostics", ["probe"], timezone=args.timezone)
    if not created.success or created.session is None:
        print(f"Session start failed: [{created.error_code}] {created.error_message}")
        raise SystemExit(1)

    session_id = created.session.session_id
    registry.start_task(session_id, "probe")
    registry.end_task(session_id, "probe")
    ended = registry.end_session(session_id)
    if ended.session is None:
        print(f"Session end failed: [{ended.error_code}] {ended.error_message}")
        raise SystemExit(1)
    print(json.dumps(ended.session.to_dict(), indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Time Tracker MCP diagnostics")
    sub = parser.add_subparsers(dest="cmd")

    p_settings = sub.add_parser("settings", help="Show effective settings")
    p_settings.set_defaults(func=cmd_settings)

    p_timezone = sub.add_parser("timezone", help="Resolve a timezone name")
    p_timezone.add_argument("name", nargs="?", default="local")
    p_timezone.set_defaults(func=cmd_timezone)

    p_duration = sub.add_parser("duration", help="Format a duration given in milliseconds")
    p_duration.add_argument("milliseconds", type=int)
    p_duration.add_argument("--style", choices=sorted(_DURATION_STYLES), default="full")
    p_duration.set_defaults(func=cmd_duration)

    p_smoke = sub.add_parser("smoke", help="Exercise a session lifecycle in memory")
    p_smoke.add_argument("--timezone", default=None)
    p_smoke.set_defaults(func=cmd_smoke)

    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        return
    args.func(args)


if __name__ == "__main__":
    main()
