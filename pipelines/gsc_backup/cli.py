#!/usr/bin/env python
"""
CLI entry point for Search Console backups.

Usage:
    gsc-backup list-websites
    gsc-backup list-sheets
    gsc-backup import --sheet "Data" --website sc-domain:example.com \\
        --start 2024-05-01 --end 2024-05-31 --dimensions query,page
    gsc-backup setup --website sc-domain:example.com --type daily --dimensions query
    gsc-backup list-schedules
    gsc-backup run-now SCHEDULE_ID
    gsc-backup pause SCHEDULE_ID
    gsc-backup resume SCHEDULE_ID
    gsc-backup delete SCHEDULE_ID
    gsc-backup cleanup-orphans
    gsc-backup diagnostics
    gsc-backup serve

Options via environment variables:
    GOOGLE_CREDENTIALS_PATH  Service account JSON (default: credentials/service_account.json)
    GOOGLE_SPREADSHEET_ID    Spreadsheet used by list-sheets / import
    BACKUP_STATE_PATH        Schedule store (default: state/backup_configs.json)
    TRIGGER_STORE_URL        Trigger job store (default: sqlite file beside the schedule store)
    NOTIFICATION_EMAIL       Recipient of backup emails
    MOCK_EMAIL=1             Log emails instead of sending them (default)
    BACKUP_SETTINGS_PATH     Optional YAML settings file
    BACKUP_LOG_LEVEL         Log level (default: INFO)

Exit codes: 0 success, 1 expected failure (message printed), 2 usage error.
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Add project root to path for direct script execution
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from core.contracts.backup import BackupType
from core.contracts.search_analytics import DIMENSIONS, SEARCH_TYPES
from core.errors import BackupError
from core.logger import get_logger, set_log_level
from pipelines.gsc_backup.config import (
    PIPELINE_NAME,
    TRIGGER_STORE_URL,
    TRIGGER_SYNC_MINUTES,
    TRIGGER_TIMEZONE,
)

logger = get_logger(__name__)
console = Console()


def _out(message: str) -> None:
    console.print(message, markup=False, highlight=False)


def _csv_list(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def _filters(values: Optional[List[str]]) -> dict:
    """--filter country=usa --filter device=MOBILE -> {"country": "usa", "device": "MOBILE"}"""
    filters = {}
    for item in values or []:
        if "=" not in item:
            raise argparse.ArgumentTypeError(f"Filter must look like dimension=value, got {item!r}")
        dimension, expression = item.split("=", 1)
        filters[dimension.strip()] = expression.strip()
    return filters


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gsc-backup",
        description="Search Console backups to Google Sheets",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list-websites", help="List verified Search Console properties")
    sub.add_parser("list-sheets", help="List sheets in the configured spreadsheet")

    imp = sub.add_parser("import", help="Import a date range into a sheet now")
    imp.add_argument("--sheet", required=True, help="Target sheet name")
    imp.add_argument("--website", required=True, help="Property URL")
    imp.add_argument("--start", required=True, help="Start date YYYY-MM-DD")
    imp.add_argument("--end", required=True, help="End date YYYY-MM-DD")
    imp.add_argument(
        "--dimensions",
        type=_csv_list,
        default=["query"],
        help=f"Comma-separated, in column order ({', '.join(DIMENSIONS)})",
    )
    imp.add_argument("--search-type", choices=SEARCH_TYPES, default="web")
    imp.add_argument("--filter", action="append", dest="filters", help="dimension=value (repeatable)")
    imp.add_argument("--mode", choices=["auto", "overwrite"], default="auto")

    setup = sub.add_parser("setup", help="Create or replace a recurring backup")
    setup.add_argument("--website", required=True, help="Property URL")
    setup.add_argument(
        "--type", dest="backup_type", choices=[t.value for t in BackupType], required=True
    )
    setup.add_argument("--dimensions", type=_csv_list, default=["query"])
    setup.add_argument("--search-type", choices=SEARCH_TYPES, default="web")
    setup.add_argument("--ungrouped", action="store_true", help="Also write an ungrouped sheet")
    setup.add_argument("--email", action="store_true", help="Email after each run")

    sub.add_parser("list-schedules", help="List recurring backups")
    for name, help_text in (
        ("run-now", "Run a scheduled backup immediately"),
        ("pause", "Pause a schedule"),
        ("resume", "Resume a paused schedule (issues a new id)"),
        ("delete", "Delete a schedule"),
    ):
        cmd = sub.add_parser(name, help=help_text)
        cmd.add_argument("schedule_id")

    sub.add_parser("cleanup-orphans", help="Remove configurations without a trigger")
    sub.add_parser("diagnostics", help="Check credentials, store and triggers")
    sub.add_parser("serve", help="Run the trigger scheduler in the foreground")
    return parser


# =============================================================================
# RENDERING
# =============================================================================

def _print_websites(sites) -> None:
    table = Table(title="Verified websites")
    table.add_column("Website")
    table.add_column("Permission")
    for site in sites:
        table.add_row(escape(site["url"]), site["permissionLevel"])
    console.print(table)


def _print_schedules(schedules) -> None:
    if not schedules:
        console.print("No backup schedules configured.")
        return
    table = Table(title="Backup schedules")
    for column in ("ID", "Website", "Type", "Dimensions", "Status", "Next run", "Last run", "Last error"):
        table.add_column(column)
    for s in schedules:
        table.add_row(
            s["scheduleId"],
            escape(s["website"]),
            s["backupType"],
            ", ".join(s["dimensions"]),
            s["status"],
            s["nextRun"],
            s["lastRunAt"] or "-",
            escape(s["lastError"] or "-"),
        )
    console.print(table)


# =============================================================================
# COMMANDS
# =============================================================================

def _serve() -> int:
    from apscheduler.schedulers.blocking import BlockingScheduler

    from pipelines.gsc_backup.scheduler import create_aps_scheduler
    from pipelines.gsc_backup.service import build_service

    scheduler = create_aps_scheduler(
        BlockingScheduler, TRIGGER_STORE_URL, timezone=TRIGGER_TIMEZONE or None
    )
    service = build_service(scheduler)
    # Also wakes the loop so triggers added by other processes are picked up
    scheduler.add_job(
        service.manager.drop_stale_triggers,
        trigger="interval",
        minutes=TRIGGER_SYNC_MINUTES,
        id="store-sync",
        name="store-sync",
        jobstore="default",
        replace_existing=True,
    )

    logger.info("=" * 60)
    logger.info(f"Running {PIPELINE_NAME} scheduler")
    logger.info(f"  Trigger store: {TRIGGER_STORE_URL}")
    logger.info(f"  Store sync every {TRIGGER_SYNC_MINUTES} minute(s)")
    logger.info("=" * 60)

    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")
    return 0


def run_command(args: argparse.Namespace, service) -> int:
    """Dispatch a parsed command to the service. Returns the exit code."""
    command = args.command

    if command == "list-websites":
        _print_websites(service.list_websites())
    elif command == "list-sheets":
        for title in service.list_sheets():
            _out(title)
    elif command == "import":
        _out(
            service.import_now(
                sheet_name=args.sheet,
                website=args.website,
                start_date=args.start,
                end_date=args.end,
                dimensions=args.dimensions,
                search_type=args.search_type,
                filters=_filters(args.filters),
                mode=args.mode,
            )
        )
    elif command == "setup":
        _out(
            service.setup_schedule(
                website=args.website,
                backup_type=args.backup_type,
                dimensions=args.dimensions,
                search_type=args.search_type,
                separate_ungrouped=args.ungrouped,
                email_notification=args.email,
            )
        )
    elif command == "list-schedules":
        _print_schedules(service.list_schedules())
    elif command == "run-now":
        _out(service.run_schedule_now(args.schedule_id))
    elif command == "pause":
        _out(service.pause_schedule(args.schedule_id))
    elif command == "resume":
        _out(service.resume_schedule(args.schedule_id))
    elif command == "delete":
        _out(service.delete_schedule(args.schedule_id))
    elif command == "cleanup-orphans":
        _out(service.cleanup_orphans())
    elif command == "diagnostics":
        _out(service.run_diagnostics())
    else:
        raise ValueError(f"Unknown command: {command}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        set_log_level(logging.DEBUG)

    if args.command == "serve":
        return _serve()

    from pipelines.gsc_backup.service import build_service

    service = None
    try:
        service = build_service()
        return run_command(args, service)
    except argparse.ArgumentTypeError as e:
        parser.error(str(e))
    except (BackupError, FileNotFoundError) as e:
        console.print(f"[red]✗[/red] {escape(str(e))}")
        return 1
    finally:
        if service is not None:
            service.close()
    return 0


if __name__ == "__main__":
    sys.exit(main() or 0)
