"""Operator utilities for inspecting CTF events, participants and telemetry."""
from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List

from ..state import EventStore
from ..telemetry import TelemetryCollector


def _event_row(event) -> Dict[str, Any]:
    data = asdict(event)
    data["status"] = "active" if event.is_active else "archived"
    return data


def cmd_events(args: argparse.Namespace) -> None:
    store = EventStore(args.db)
    events = store.list_events(include_archived=not args.active_only)
    if args.json:
        print(json.dumps([_event_row(event) for event in events], default=str, indent=2))
        return

    if not events:
        print("No CTF events recorded.")
        return
    lines: List[str] = [f"Total events: {len(events)}"]
    for event in events:
        if event.is_active:
            status = "active"
        elif event.archived_at is not None:
            status = f"archived {event.archived_at:%Y-%m-%d}"
        else:
            status = "archived"
        lines.append(
            f"  - {event.slug} (external {event.external_id}) "
            f"{event.start_time:%Y-%m-%d %H:%M} UTC [{status}]"
        )
    print("\n".join(lines))


def cmd_participants(args: argparse.Namespace) -> int:
    store = EventStore(args.db)
    event = store.get_event_by_external_id(args.external_id)
    if event is None:
        print(f"No event with external id {args.external_id}.", file=sys.stderr)
        return 1
    participants = store.list_participants(event.id, include_left=True)
    if args.json:
        print(json.dumps([asdict(p) for p in participants], default=str, indent=2))
        return 0

    active = [p for p in participants if p.status.value == "active"]
    left = [p for p in participants if p.status.value == "left"]
    print(f"{event.name}: {len(active)} active, {len(left)} left")
    for participant in participants:
        print(f"  - {participant.display_name} ({participant.user_id}) {participant.status.value}")
    return 0


def cmd_telemetry(args: argparse.Namespace) -> None:
    collector = TelemetryCollector(args.telemetry_db)
    if args.cleanup is not None:
        deleted = collector.cleanup_old_data(args.cleanup)
        print(f"Deleted {deleted} metric events older than {args.cleanup} days.")
        return
    report = collector.generate_report()
    if args.json:
        print(json.dumps(report, default=str, indent=2))
        return

    print(f"Report generated at {report['generated_at']}")
    stats = report["command_stats"]
    if stats:
        print("Commands:")
        for name, data in sorted(stats.items()):
            print(
                f"  - {name}: {data['usage_count']} uses, "
                f"{data['success_rate']:.0%} success, {data['unique_users']} users"
            )
    errors = report["errors_24h"]
    if errors:
        print("Errors (24h):")
        for name, count in errors.items():
            print(f"  - {name}: {count}")
    lifecycle = report["lifecycle_7d"]
    if lifecycle:
        print("Lifecycle (7d):")
        for item in lifecycle:
            print(f"  - {item['timestamp']} {item['transition']} {item['event']}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect CTF events and bot telemetry.")
    parser.add_argument(
        "--db",
        type=Path,
        default=Path("ctf_events.db"),
        help="Path to the events SQLite database (default: ctf_events.db).",
    )
    parser.add_argument(
        "--telemetry-db",
        type=Path,
        default=Path("telemetry.db"),
        help="Path to the telemetry SQLite database (default: telemetry.db).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    events = subparsers.add_parser("events", help="List recorded CTF events.")
    events.add_argument("--active-only", action="store_true", help="Hide archived events.")
    events.add_argument("--json", action="store_true", help="Output JSON for automation.")
    events.set_defaults(func=cmd_events)

    participants = subparsers.add_parser(
        "participants", help="List participants of an event by scheduled event id."
    )
    participants.add_argument("external_id", type=int, help="Scheduled event id.")
    participants.add_argument("--json", action="store_true", help="Emit JSON output.")
    participants.set_defaults(func=cmd_participants)

    telemetry = subparsers.add_parser("telemetry", help="Summarise bot telemetry.")
    telemetry.add_argument(
        "--cleanup",
        type=int,
        metavar="DAYS",
        help="Delete metric events older than DAYS instead of reporting.",
    )
    telemetry.add_argument("--json", action="store_true", help="Emit JSON output.")
    telemetry.set_defaults(func=cmd_telemetry)

    return parser


def main(argv: List[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    return args.func(args) or 0


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    raise SystemExit(main())
