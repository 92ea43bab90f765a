#!/usr/bin/env python3
"""
Operator CLI for the progress engine.

Subcommands:
  init-db          Create every table (add --drop to recreate from scratch).
  seed-templates   Install the global default templates from templates.yaml.
  refresh          Rebuild the aggregation cache (one project or all).
  delta            Print an earned-value delta report for a window.
  schedule         Run the aggregation scheduler in the foreground.

Usage:
  python3 scripts/progress_cli.py [--log-level DEBUG] init-db
  python3 scripts/progress_cli.py seed-templates
  python3 scripts/progress_cli.py refresh [--project-id UUID]
  python3 scripts/progress_cli.py delta --project-id UUID --dimension area \\
      --start 2026-01-01T00:00:00+00:00 --end 2026-02-01T00:00:00+00:00

The database URL comes from progress_config/defaults/engine.yaml unless
PROGRESS_DATABASE_URL (or --db-url) overrides it.
"""

import argparse
import sys
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from uuid import UUID

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

SYSTEM_ACTOR_ID = UUID("00000000-0000-0000-0000-000000000001")


def _parse_time(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(
        description="Progress engine operator commands",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    p.add_argument("--db-url", default=None, help="Database URL (overrides configuration)")
    p.add_argument("--config-dir", type=Path, default=None, help="Directory holding engine/templates/identity YAML")
    p.add_argument("--actor-id", type=UUID, default=SYSTEM_ACTOR_ID, help="Actor recorded on writes")
    p.add_argument(
        "--log-level",
        default="INFO",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Level of the JSON log written to stderr",
    )
    sub = p.add_subparsers(dest="command", required=True)

    init_db = sub.add_parser("init-db", help="Create tables")
    init_db.add_argument("--drop", action="store_true", help="Drop all tables first")

    sub.add_parser("seed-templates", help="Install global default templates")

    refresh = sub.add_parser("refresh", help="Rebuild the aggregation cache")
    refresh.add_argument("--project-id", type=UUID, default=None)

    delta = sub.add_parser("delta", help="Print a delta report")
    delta.add_argument("--project-id", type=UUID, required=True)
    delta.add_argument("--dimension", required=True, choices=("area", "system", "test_package", "drawing"))
    delta.add_argument("--start", type=_parse_time, required=True)
    delta.add_argument("--end", type=_parse_time, required=True)

    schedule = sub.add_parser("schedule", help="Run the aggregation scheduler until interrupted")
    schedule.add_argument("--interval", type=float, default=None, help="Seconds between refresh cycles")

    return p.parse_args(argv)


def _format_percent(value) -> str:
    return "n/a" if value is None else f"{value}%"


def _print_delta(report) -> None:
    print(f"Delta report: {report.dimension} {report.start.isoformat()} -> {report.end.isoformat()}")
    for key, row in report.rows.items():
        print(f"\n  {key}  (components with activity: {row.components_with_activity})")
        for category, cell in row.categories.items():
            print(
                f"    {category:<8} delta {cell.delta_hours:>12}  budget {cell.budget_hours:>12}  "
                f"{_format_percent(cell.percent)}"
            )
        print(
            f"    {'total':<8} delta {row.total_delta_hours:>12}  budget {row.total_budget_hours:>12}  "
            f"{_format_percent(row.total_percent)}"
        )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from progress_config import get_settings
    from progress_kernel.db.engine import create_tables, drop_tables
    from progress_kernel.exceptions import ProgressKernelError
    from progress_kernel.logging_config import configure_logging
    from progress_services import ProgressEngine

    configure_logging(level=args.log_level)
    settings = get_settings(args.config_dir)
    if args.db_url:
        settings = replace(settings, database_url=args.db_url)
    if args.command == "schedule" and args.interval:
        settings = replace(settings, refresh_interval_seconds=args.interval)

    engine = ProgressEngine.from_settings(settings, config_dir=args.config_dir)

    try:
        if args.command == "init-db":
            if args.drop:
                drop_tables()
            create_tables()
            print("Tables created.")

        elif args.command == "seed-templates":
            created = engine.seed_default_templates(args.actor_id, config_dir=args.config_dir)
            print(f"Seeded {len(created)} default template(s).")

        elif args.command == "refresh":
            summary = engine.refresh_aggregations(args.project_id)
            print(f"Refreshed {len(summary.refreshed)} project(s), {summary.record_count} record(s).")
            for project_id, reason in summary.failed:
                print(f"  FAILED {project_id}: {reason}", file=sys.stderr)
            if not summary.ok:
                return 1

        elif args.command == "delta":
            report = engine.get_delta(args.dimension, args.project_id, args.start, args.end)
            _print_delta(report)

        elif args.command == "schedule":
            engine.start_scheduler()
            print(f"Scheduler running every {settings.refresh_interval_seconds}s; Ctrl-C to stop.")
            try:
                while engine.scheduler.is_running:
                    time.sleep(1.0)
            except KeyboardInterrupt:
                pass
            finally:
                engine.stop_scheduler()

    except ProgressKernelError as exc:
        print(f"error [{exc.code}]: {exc}", file=sys.stderr)
        return 2

    return 0


if __name__ == "__main__":
    sys.exit(main())
