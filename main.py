"""CLI entry point for the website health dashboard."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from sitewatch.app import Dashboard
from sitewatch.core.config import Settings
from sitewatch.core.errors import NotRunning, SitewatchError
from sitewatch.core.events import PROGRESS_CHANNEL
from sitewatch.core.schemas import INDUSTRIES, ScreenshotProgress, StatusFilter, WebsiteRecord
from sitewatch.engine.local import LocalEngine

DEFAULT_CONFIG = "config/settings.yaml"

logger = logging.getLogger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=DEFAULT_CONFIG,
        help=f"Path to settings YAML file (default: {DEFAULT_CONFIG})",
    )
    common.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose (DEBUG) logging",
    )

    parser = argparse.ArgumentParser(
        description="Website health dashboard - track sites, check status, capture screenshots",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", parents=[common], help="List tracked websites")

    add_parser = subparsers.add_parser("add", parents=[common], help="Track a new website")
    add_parser.add_argument("url", help="http:// or https:// URL")
    add_parser.add_argument("--industry", default="general", choices=INDUSTRIES)
    add_parser.add_argument("--name", help="Display name (default: the URL's hostname)")

    remove_parser = subparsers.add_parser("remove", parents=[common], help="Stop tracking a website")
    remove_parser.add_argument("id", type=int)

    favorite_parser = subparsers.add_parser("favorite", parents=[common], help="Toggle favorite")
    favorite_parser.add_argument("id", type=int)

    check_parser = subparsers.add_parser("check", parents=[common], help="Check HTTP status")
    check_parser.add_argument("id", type=int, nargs="?", help="Website id (default: all)")

    shot_parser = subparsers.add_parser("screenshot", parents=[common], help="Capture one website")
    shot_parser.add_argument("id", type=int)

    subparsers.add_parser(
        "screenshots",
        parents=[common],
        help="Capture every website (Ctrl-C cancels)",
    )

    search_parser = subparsers.add_parser("search", parents=[common], help="Search websites")
    search_parser.add_argument("query", nargs="?", default="")
    search_parser.add_argument(
        "--status", default="all", choices=[s.value for s in StatusFilter],
    )
    search_parser.add_argument("--project-status", default="all")
    search_parser.add_argument("--industry", default="all")
    search_parser.add_argument("--favorites", action="store_true", help="Only favorites")
    search_parser.add_argument(
        "--wordpress",
        action=argparse.BooleanOptionalAction,
        default=None,
        help="Only WordPress (or, with --no-wordpress, non-WordPress) sites",
    )
    search_parser.add_argument("--limit", type=int)

    suggest_parser = subparsers.add_parser("suggest", parents=[common], help="Autocomplete a prefix")
    suggest_parser.add_argument("prefix")

    subparsers.add_parser("stats", parents=[common], help="Show registry statistics")

    statuses_parser = subparsers.add_parser(
        "statuses", parents=[common], help="List or edit project statuses",
    )
    statuses_parser.add_argument("--add", metavar="LABEL", help="Add a custom status")
    statuses_parser.add_argument("--color", default="#A4A4A4", help="Color for --add")
    statuses_parser.add_argument("--remove", metavar="VALUE", help="Remove a custom status")

    export_parser = subparsers.add_parser("export", parents=[common], help="Write a full backup")
    export_parser.add_argument("--output", "-o", help="Output file (default: stdout)")

    import_parser = subparsers.add_parser("import", parents=[common], help="Restore a backup")
    import_parser.add_argument("path")

    return parser.parse_args(argv)


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def load_settings(path: str) -> Settings:
    """Load settings; a missing default config file means built-in defaults."""
    if path == DEFAULT_CONFIG and not Path(path).exists():
        logger.debug("No %s, using default settings", path)
        return Settings()
    return Settings.from_yaml(path)


def format_record(record: WebsiteRecord) -> str:
    status = str(record.http_status) if record.http_status is not None else "---"
    star = "*" if record.favorite else " "
    return f"{star} {record.id:>14}  {status:>3}  {record.display_name:<30}  {record.url}"


async def cmd_screenshots(dashboard: Dashboard) -> None:
    def _print_progress(progress: ScreenshotProgress) -> None:
        if progress.is_complete:
            print(f"Done: {progress.completed}/{progress.total}, {len(progress.errors)} errors")
            for error in progress.errors:
                print(f"  {error}")
        else:
            print(f"[{progress.completed + 1}/{progress.total}] {progress.current_website}")

    async def _cancel() -> None:
        try:
            await dashboard.jobs.cancel()
        except NotRunning:
            pass

    loop = asyncio.get_running_loop()
    with dashboard.engine.events.subscribe(PROGRESS_CHANNEL, _print_progress):
        if not await dashboard.jobs.start_bulk():
            return
        loop.add_signal_handler(signal.SIGINT, lambda: loop.create_task(_cancel()))
        try:
            await dashboard.jobs.wait_until_idle()
        finally:
            loop.remove_signal_handler(signal.SIGINT)


async def run(args: argparse.Namespace, settings: Settings) -> None:
    engine = LocalEngine.open(settings)
    try:
        async with Dashboard(engine, settings) as dashboard:
            await dispatch(args, dashboard)
    finally:
        engine.close()


async def dispatch(args: argparse.Namespace, dashboard: Dashboard) -> None:
    command = args.command
    if command == "list":
        records = dashboard.store.snapshot()
        for record in records:
            print(format_record(record))
        print(f"\n{len(records)} websites")

    elif command == "add":
        record = dashboard.add_website(args.url, args.industry, args.name)
        print(f"Added {record.display_name} (id {record.id})")

    elif command == "remove":
        if dashboard.remove_website(args.id):
            print(f"Removed website {args.id}")
        else:
            print(f"No website with id {args.id}")

    elif command == "favorite":
        record = await dashboard.store.toggle_favorite(args.id)
        if record is None:
            print(f"No website with id {args.id}")
        else:
            print(f"{record.display_name}: favorite={record.favorite}")

    elif command == "check":
        if args.id is None:
            ok = await dashboard.jobs.check_all()
            print(f"Checked {ok}/{len(dashboard.store)} websites")
        else:
            record = await dashboard.jobs.check_one(args.id)
            if record is not None:
                print(format_record(record))

    elif command == "screenshot":
        record = await dashboard.jobs.take_single(args.id)
        if record is not None:
            print(f"Screenshot stored for {record.display_name}")

    elif command == "screenshots":
        await cmd_screenshots(dashboard)

    elif command == "search":
        result = dashboard.search.evaluate({
            "query": args.query,
            "status": args.status,
            "project_status": args.project_status,
            "industry": args.industry,
            "favorite": True if args.favorites else None,
            "is_wordpress": args.wordpress,
            "limit": args.limit,
        })
        for record in result.matches:
            print(format_record(record))
        more = " (more available)" if result.has_more else ""
        print(f"\n{result.total_count} matches{more}")

    elif command == "suggest":
        for suggestion in dashboard.search.suggest(args.prefix):
            print(suggestion)

    elif command == "stats":
        stats = dashboard.search.stats()
        print(f"Websites:  {stats.total_websites}")
        print(f"Online:    {stats.online_count}")
        print(f"Offline:   {stats.offline_count}")
        print(f"Unknown:   {stats.unknown_count}")
        print(f"WordPress: {stats.wordpress_count}")
        print(f"Favorites: {stats.favorite_count}")
        print(f"Industries: {', '.join(stats.industries) or '-'}")
        print(f"Project statuses: {', '.join(stats.project_statuses) or '-'}")

    elif command == "statuses":
        if args.add:
            option = await dashboard.add_custom_status(args.add, args.color)
            print(f"Added project status '{option.value}'")
        if args.remove:
            if await dashboard.remove_custom_status(args.remove):
                print(f"Removed project status '{args.remove}'")
            else:
                print(f"No custom project status '{args.remove}'")
        for option in dashboard.statuses.all():
            print(f"  {option.value:<16} {option.color}  {option.label}")

    elif command == "export":
        output = dashboard.export_backup()
        if args.output:
            Path(args.output).write_text(output)
            print(f"Backup written to {args.output}")
        else:
            print(output)

    elif command == "import":
        report = await dashboard.import_backup(Path(args.path).read_text())
        print(f"Imported {len(report.websites)} websites")
        for url in report.duplicate_urls:
            print(f"  duplicate: {url}")


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)
    setup_logging(args.verbose)

    try:
        settings = load_settings(args.config)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        asyncio.run(run(args, settings))
    except (FileNotFoundError, ValueError, SitewatchError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
