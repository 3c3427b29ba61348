# edutube_sync/cli.py
# Description: Command line entry point (`edutube-sync`) for one-off syncs, status checks and polling.
#
# Imports
import argparse
import asyncio
import sys
from typing import Optional, List
#
# 3rd-party Libraries
from loguru import logger
from rich.console import Console
from rich.table import Table
#
# Local Imports
from .config import get_setting, load_settings
from .courses_api.exceptions import CourseAPIError
from .DB.Local_Mirror import MirrorStorageError
from .Metrics.logger_config import setup_logger
from .Presentation.course_view import filter_views, project_all
from .Sync.Sync_Context import SyncContext, build_sync_context
#
#######################################################################################################################
#
# Functions:

console = Console()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="edutube-sync",
        description="Keep the local course mirror in step with the course store.",
    )
    parser.add_argument("-c", "--config", type=str, default=None, help="Path to a TOML config file")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Override log level from config",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync", help="Pull the course store into the local mirror once")
    subparsers.add_parser("status", help="Show the mirror slots and compare counts with the course store")

    watch_parser = subparsers.add_parser("watch", help="Keep pulling on an interval until interrupted")
    watch_parser.add_argument("--interval-ms", type=int, default=None, help="Poll interval in milliseconds")

    list_parser = subparsers.add_parser("list", help="List the mirrored courses")
    list_parser.add_argument("--search", type=str, default=None)
    list_parser.add_argument("--category", type=str, default=None)
    list_parser.add_argument("--level", type=str, choices=["beginner", "intermediate", "advanced"], default=None)
    return parser.parse_args(argv)


def _render_courses(ctx: SyncContext, search=None, category=None, level=None):
    views = filter_views(project_all(ctx.mirror.read_all()), search=search, category=category, level=level)
    table = Table(title=f"Courses ({len(views)})")
    table.add_column("ID", style="dim")
    table.add_column("Title")
    table.add_column("Category")
    table.add_column("Level")
    table.add_column("Lessons", justify="right")
    table.add_column("Students", justify="right")
    for view in views:
        table.add_row(
            view.id or "(pending)", view.title, view.category, view.level,
            str(view.lessons_count), str(view.students_count),
        )
    console.print(table)


async def _run_sync(ctx: SyncContext) -> int:
    pushed = await ctx.reconciler.push_pending()
    if pushed:
        console.print(f"Created {len(pushed)} locally added course(s) in the course store.")
    records = await ctx.reconciler.pull_and_merge()
    if ctx.reconciler.last_error is not None:
        console.print(f"[red]Sync failed:[/red] {ctx.reconciler.last_error}")
        return 1
    summary = ctx.reconciler.last_summary
    console.print(
        f"Mirror holds [bold]{len(records)}[/bold] courses "
        f"({len(summary.added)} added, {len(summary.changed)} changed, {len(summary.removed)} removed)."
    )
    return 0


async def _run_status(ctx: SyncContext) -> int:
    table = Table(title="Local mirror slots")
    table.add_column("Slot")
    table.add_column("Found")
    table.add_column("Count", justify="right")
    table.add_column("Error")
    for slot_key, entry in ctx.mirror.slot_report().items():
        table.add_row(slot_key, "yes" if entry["found"] else "no", str(entry["count"]), entry["error"] or "")
    console.print(table)
    quota = f" of {ctx.mirror.quota_bytes}" if ctx.mirror.quota_bytes is not None else ""
    console.print(f"Mirror size: {ctx.mirror.total_bytes()}{quota} bytes")

    status = await ctx.reconciler.verify_sync()
    if status.error:
        console.print(f"[yellow]Course store unavailable:[/yellow] {status.error}")
        return 1
    colour = "green" if status.in_sync else "red"
    console.print(
        f"[{colour}]Local {status.local_count} / remote {status.remote_count}"
        f" - {'in sync' if status.in_sync else 'out of sync'}[/{colour}]"
    )
    return 0 if status.in_sync else 2


async def _run_watch(ctx: SyncContext, interval_ms: Optional[int]) -> int:
    ctx.poller.start(interval_ms)
    console.print(f"Polling every {ctx.poller.interval_ms} ms. Press Ctrl+C to stop.")
    try:
        while True:
            await asyncio.sleep(3600)
    finally:
        await ctx.poller.aclose()
    return 0


async def _dispatch(args: argparse.Namespace, settings) -> int:
    async with build_sync_context(settings) as ctx:
        if args.command == "sync":
            return await _run_sync(ctx)
        if args.command == "status":
            return await _run_status(ctx)
        if args.command == "watch":
            return await _run_watch(ctx, args.interval_ms)
        _render_courses(ctx, search=args.search, category=args.category, level=args.level)
        return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = load_settings(config_path=args.config)
    setup_logger(
        log_level=args.log_level or get_setting("logging", "log_level", "INFO", settings),
        app_log_path=get_setting("logging", "log_filename", None, settings) or None,
        metrics_log_path=get_setting("logging", "metrics_log_filename", None, settings) or None,
    )
    try:
        return asyncio.run(_dispatch(args, settings))
    except KeyboardInterrupt:
        console.print("Stopped.")
        return 0
    except (CourseAPIError, MirrorStorageError) as e:
        logger.error(f"edutube-sync {args.command} failed: {e}")
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())

#
# End of cli.py
#######################################################################################################################
