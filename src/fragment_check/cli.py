#!/usr/bin/env python3
"""
fragment-check command line

    fragment-check check src/Users.hs src/Orders.hs
    fragment-check hash src/Users.hs
    fragment-check watch src/ --interval 1.0

Exit status of `check`: 0 when every fragment passes, 1 when a fragment
fails or a document is malformed, 2 when the database cannot be reached.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from fragment_check.config import Settings, load_settings
from fragment_check.documents import TextDocument
from fragment_check.errors import ConfigurationError, DatabaseConnectionError
from fragment_check.logger_config import get_logger, setup_logger
from fragment_check.result import PassState, ValidationReport
from fragment_check.session import create_session
from fragment_check.strategies import STRATEGIES
from fragment_check.validator import collect_fragments

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONNECTION = 2

console = Console()
logger = get_logger()


# =============================================================================
# Helpers
# =============================================================================


def iter_files(paths: Iterable[str], suffixes: Iterable[str] = (".hs", ".lhs")) -> List[Path]:
    """Expand directories to the host-language files they contain."""
    files: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            for suffix in suffixes:
                files.extend(sorted(path.rglob(f"*{suffix}")))
        else:
            files.append(path)
    return files


def display_report(report: ValidationReport, document: TextDocument) -> None:
    """Print the diagnostics of one pass."""
    if report.state is PassState.ABORTED_UNWELL_FORMED:
        console.print(f"[yellow]{escape(document.relative_path)}: not well formed, skipped[/yellow]")
        return
    if report.state is not PassState.REPLACED:
        console.print(f"[red]{escape(document.relative_path)}: {report.state.value}[/red]")
        return

    if report.diagnostics:
        table = Table(title=escape(document.relative_path), show_lines=True)
        table.add_column("Location", style="bold cyan", no_wrap=True)
        table.add_column("Code", style="magenta")
        table.add_column("Message", style="white")
        for diagnostic in report.diagnostics:
            table.add_row(
                f"{diagnostic.span.start.line + 1}:{diagnostic.span.start.character + 1}",
                diagnostic.code or "",
                escape(diagnostic.message),
            )
        console.print(table)

    style = "green" if report.ok else "red"
    console.print(
        f"[{style}]{escape(document.relative_path)}: "
        f"{report.passed}/{report.total} fragments correct[/{style}]"
    )


def exit_status(reports: Iterable[ValidationReport]) -> int:
    status = EXIT_OK
    for report in reports:
        if report.state is PassState.ABORTED_CONNECTION:
            return EXIT_CONNECTION
        if not report.ok:
            status = EXIT_FAILED
    return status


def build_settings(args: argparse.Namespace) -> Settings:
    return load_settings(
        env_file=args.env_file,
        workspace=args.workspace,
        strategy=args.strategy,
        overrides_file=args.overrides,
        log_file=args.log_file,
        log_level="DEBUG" if args.verbose else None,
    )


# =============================================================================
# Commands
# =============================================================================


async def run_check(settings: Settings, paths: List[str]) -> int:
    try:
        session = await create_session(settings)
    except DatabaseConnectionError as e:
        console.print(f"[red]Cannot connect to the database: {escape(str(e))}[/red]")
        return EXIT_CONNECTION

    reports = []
    try:
        for path in iter_files(paths):
            document = TextDocument.from_path(path, workspace=settings.workspace)
            report = await session.on_save(document)
            display_report(report, document)
            reports.append(report)
    finally:
        await session.close()
    return exit_status(reports)


def run_hash(settings: Settings, paths: List[str]) -> int:
    """Print every fragment's identity, for authoring override entries."""
    status = EXIT_OK
    for path in iter_files(paths):
        document = TextDocument.from_path(path, workspace=settings.workspace)
        fragments = collect_fragments(
            document, settings.start_delimiter, settings.end_delimiter
        )
        if fragments is None:
            console.print(f"[yellow]{escape(document.relative_path)}: not well formed[/yellow]")
            status = EXIT_FAILED
            continue

        table = Table(title=escape(document.relative_path))
        table.add_column("Span", style="bold cyan", no_wrap=True)
        table.add_column("Identity", style="magenta", no_wrap=True)
        table.add_column("Normalized", style="white")
        for fragment in fragments:
            table.add_row(str(fragment.span), str(fragment.identity), escape(fragment.normalized))
        console.print(table)
    return status


async def run_watch(settings: Settings, paths: List[str], interval: float) -> int:
    try:
        session = await create_session(settings)
    except DatabaseConnectionError as e:
        console.print(f"[red]Cannot connect to the database: {escape(str(e))}[/red]")
        return EXIT_CONNECTION

    seen: Dict[Path, float] = {}
    logger.info(f"Watching {', '.join(paths)} (Ctrl+C to stop)")
    try:
        while True:
            for path in iter_files(paths):
                mtime = _mtime(path)
                if mtime is None or seen.get(path) == mtime:
                    continue
                first_time = path not in seen
                seen[path] = mtime
                document = TextDocument.from_path(path, workspace=settings.workspace)
                if first_time:
                    report = await session.on_open(document)
                else:
                    report = await session.on_save(document)
                if report is not None:
                    display_report(report, document)

            for report in await session.refresh_overrides():
                console.print(f"[cyan]Overrides changed, re-validated {escape(report.uri)}[/cyan]")
            await asyncio.sleep(interval)
    except (KeyboardInterrupt, asyncio.CancelledError):
        logger.info("Stopped watching")
    finally:
        await session.close()
    return EXIT_OK


def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return None


# =============================================================================
# Entry point
# =============================================================================


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fragment-check",
        description="Validate SQL fragments embedded in source files against PostgreSQL",
    )
    parser.add_argument("--workspace", type=str, default=None, help="Workspace root (default: .)")
    parser.add_argument(
        "--strategy",
        type=str,
        default=None,
        choices=list(STRATEGIES),
        help="Check strategy. Default: prepare",
    )
    parser.add_argument("--overrides", type=str, default=None, help="Override table JSON file")
    parser.add_argument("--env-file", type=str, default=None, help=".env file to load")
    parser.add_argument("--log-file", type=str, default=None, help="Also log to this file")
    parser.add_argument("--verbose", "-v", action="store_true", help="Log check statements")

    subparsers = parser.add_subparsers(dest="command", required=True)

    check = subparsers.add_parser("check", help="Validate files once")
    check.add_argument("paths", nargs="+", help="Files or directories")

    hash_cmd = subparsers.add_parser("hash", help="Print fragment identities (offline)")
    hash_cmd.add_argument("paths", nargs="+", help="Files or directories")

    watch = subparsers.add_parser("watch", help="Re-validate files as they change")
    watch.add_argument("paths", nargs="+", help="Files or directories")
    watch.add_argument(
        "--interval", type=float, default=1.0, help="Polling interval in seconds (default: 1.0)"
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        settings = build_settings(args)
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        return EXIT_FAILED

    setup_logger(settings.log_file, level=getattr(logging, settings.log_level, logging.INFO))

    if args.command == "hash":
        return run_hash(settings, args.paths)
    if args.command == "watch":
        try:
            return asyncio.run(run_watch(settings, args.paths, args.interval))
        except KeyboardInterrupt:
            return EXIT_OK
    return asyncio.run(run_check(settings, args.paths))


if __name__ == "__main__":
    sys.exit(main())
