"""CLI module for Redis snapshot dump and restore.

Usage:
    redis-dump dump --connection localhost:6379 --output redis-backup.json
    redis-dump dump -c localhost:6379 -d 0 -d 1 -d 2 -o redis-backup.json
    redis-dump restore -c localhost:6379 -d 0 --input redis-backup.json
    redis-dump restore -c localhost:6379 --input redis-backup.json --force
    redis-dump restore -c localhost:6379 --input redis-backup.json --flush --force
    redis-dump --config redis-dump.toml dump --profile staging
    redis-dump validate redis-backup.json

Commands:
    dump      - Dump databases to a JSON snapshot file
    restore   - Restore databases from a snapshot file
    validate  - Check a snapshot file without connecting
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.progress import BarColumn, MofNCompleteColumn, Progress, TaskID, TextColumn
from rich.table import Table

from redis_dump.adapters.redis_adapter import AsyncRedisAdapter
from redis_dump.config.loader import DEFAULT_CONFIG_FILE, load_store_config
from redis_dump.config.models import DumpSettings, RestoreSettings, StoreConfig
from redis_dump.factory import connect_and_ping, get_adapter
from redis_dump.snapshot.dump import dump_snapshot
from redis_dump.snapshot.guard import RestoreBlockedError
from redis_dump.snapshot.restore import restore_snapshot, validate_snapshot

console = Console()


# ============================================================================
# Output helpers
# ============================================================================


class RichProgressObserver:
    """``ProgressObserver`` rendering one progress bar per database."""

    def __init__(self, progress: Progress, verb: str) -> None:
        self._progress = progress
        self._verb = verb
        self._tasks: dict[int, TaskID] = {}
        self._totals: dict[int, int] = {}

    def _task(self, db: int) -> TaskID:
        if db not in self._tasks:
            self._tasks[db] = self._progress.add_task(
                f"[green]DB {db}: {self._verb} keys[/green]", total=0
            )
        return self._tasks[db]

    def on_batch_start(self, db: int, batch_index: int, batch_size: int) -> None:
        self._totals[db] = self._totals.get(db, 0) + batch_size
        self._progress.update(self._task(db), total=self._totals[db])

    def on_key_processed(self, db: int, key: str) -> None:
        self._progress.advance(self._task(db))

    def on_database_done(self, db: int, key_count: int) -> None:
        task = self._task(db)
        self._progress.update(
            task, description=f"[green]DB {db}: {key_count} keys {self._verb}[/green]"
        )


def _progress() -> Progress:
    return Progress(
        TextColumn("{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        console=console,
        transient=False,
    )


def _configure_logging(verbose: bool) -> None:
    """Send log records to the console; engine DEBUG records only when verbose."""
    logging.basicConfig(
        level=logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, markup=False)],
        force=True,
    )
    logging.getLogger("redis_dump").setLevel(logging.DEBUG if verbose else logging.INFO)


def _format_validation_error(error: ValidationError) -> str:
    messages = []
    for err in error.errors():
        msg = err["msg"].removeprefix("Value error, ")
        loc = ".".join(str(p) for p in err["loc"])
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages)


def _load_config(args: argparse.Namespace) -> StoreConfig:
    """Load the TOML config given by ``--config``, or ./redis-dump.toml if present."""
    if args.config:
        return load_store_config(Path(args.config))
    default_path = Path.cwd() / DEFAULT_CONFIG_FILE
    if default_path.exists():
        return load_store_config(default_path)
    return StoreConfig()


def _target_label(args: argparse.Namespace) -> str:
    profile = getattr(args, "profile", None)
    if profile:
        return f"profile {profile}"
    # Options after the endpoint may carry a password
    return args.connection.split(",", 1)[0]


def _build_adapter(args: argparse.Namespace, config: StoreConfig, password: str | None) -> AsyncRedisAdapter:
    return get_adapter(
        connection=args.connection,
        password=password,
        profile_name=args.profile,
        config=config,
        env_prefix=args.env_prefix,
    )


# ============================================================================
# Async command implementations
# ============================================================================


async def _async_dump(args: argparse.Namespace) -> int:
    """Async implementation for dump command.

    Returns:
        0 on success, 1 on failure.
    """
    console.print("[bold blue]Redis Dump Tool[/bold blue]")

    try:
        config = _load_config(args)
        settings = DumpSettings(
            connection=args.connection,
            password=args.password,
            databases=args.databases or [],
            batch_size=config.batch_size if args.batch_size is None else args.batch_size,
            verbose=args.verbose,
            output_file=args.output,
        )
        adapter = _build_adapter(args, config, settings.password)
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(_format_validation_error(e))}")
        return 1
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return 1

    _configure_logging(settings.verbose)

    try:
        console.print(f"[yellow]Connecting to Redis at {_target_label(args)}...[/yellow]")
        await connect_and_ping(adapter)

        scope = (
            f"databases {', '.join(map(str, settings.databases))}"
            if settings.databases else "all databases"
        )
        console.print(f"[yellow]Dumping {scope}...[/yellow]")

        with _progress() as progress:
            summary = await dump_snapshot(
                adapter,
                settings.output_file,
                databases=settings.databases,
                batch_size=settings.batch_size,
                default_database_count=config.database_count,
                observer=RichProgressObserver(progress, "dumped"),
            )
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        if settings.verbose:
            console.print_exception()
        return 1
    finally:
        await adapter.close()

    console.print(
        f"[green]Successfully dumped {summary.total_keys} keys "
        f"to {summary.output_path}[/green]"
    )

    if settings.verbose:
        console.print()
        console.rule("[yellow]JSON Preview[/yellow]", style="grey50")
        console.print_json(Path(summary.output_path).read_text(encoding="utf-8"))

    return 0


async def _async_restore(args: argparse.Namespace) -> int:
    """Async implementation for restore command.

    Returns:
        0 on success, 1 on failure (including a blocked restore).
    """
    console.print("[bold blue]Redis Restore Tool[/bold blue]")

    try:
        config = _load_config(args)
        settings = RestoreSettings(
            connection=args.connection,
            password=args.password,
            databases=args.databases or [],
            batch_size=config.batch_size if args.batch_size is None else args.batch_size,
            verbose=args.verbose,
            input_file=args.input,
            flush=args.flush,
            force=args.force,
        )
    except ValidationError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(_format_validation_error(e))}")
        return 1
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return 1

    if not Path(settings.input_file).exists():
        console.print(
            f"[bold red]Error:[/bold red] File {settings.input_file} does not exist"
        )
        return 1

    try:
        adapter = _build_adapter(args, config, settings.password)
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return 1

    _configure_logging(settings.verbose)

    try:
        console.print(f"[yellow]Reading from {settings.input_file}...[/yellow]")
        console.print(f"[yellow]Connecting to Redis at {_target_label(args)}...[/yellow]")
        await connect_and_ping(adapter)

        with _progress() as progress:
            summary = await restore_snapshot(
                adapter,
                settings.input_file,
                databases=settings.databases,
                flush=settings.flush,
                force=settings.force,
                batch_size=settings.batch_size,
                observer=RichProgressObserver(progress, "restored"),
            )
    except RestoreBlockedError as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        return 1
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {escape(str(e))}")
        if settings.verbose:
            console.print_exception()
        return 1
    finally:
        await adapter.close()

    for db in summary.missing_databases:
        console.print(f"[yellow]Database {db} not found in snapshot[/yellow]")
    if summary.total_skipped:
        console.print(
            f"[yellow]Skipped {summary.total_skipped} invalid records "
            f"(use --verbose for details)[/yellow]"
        )
    if summary.total_failed:
        console.print(
            f"[yellow]{summary.total_failed} keys had rejected writes "
            f"(use --verbose for details)[/yellow]"
        )

    console.print(f"[green]Successfully restored {summary.total_restored} keys[/green]")
    return 0


# ============================================================================
# Sync command wrappers
# ============================================================================


def cmd_dump(args: argparse.Namespace) -> int:
    """Dump databases to a snapshot file.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_dump(args))


def cmd_restore(args: argparse.Namespace) -> int:
    """Restore databases from a snapshot file.

    Wraps the async implementation with ``asyncio.run()``.
    """
    return asyncio.run(_async_restore(args))


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a snapshot file.

    Reads only the local file -- no store calls.

    Returns:
        0 if the snapshot is valid, 1 otherwise.
    """
    result = validate_snapshot(args.snapshot_path)

    console.print(f"Validating: [bold]{args.snapshot_path}[/bold]")

    if result["key_counts"]:
        table = Table(title="Snapshot Contents", show_header=True, header_style="bold")
        table.add_column("Database", justify="right")
        table.add_column("Keys", justify="right")
        for db, count in result["key_counts"].items():
            table.add_row(str(db), str(count))
        console.print(table)

    if result["errors"]:
        console.print(f"\n[red]INVALID - Found {len(result['errors'])} errors:[/red]")
        for error in result["errors"]:
            console.print(f"   - {error}", markup=False)

    if result["warnings"]:
        console.print(f"\n[yellow]Found {len(result['warnings'])} warnings:[/yellow]")
        for warning in result["warnings"]:
            console.print(f"   - {warning}", markup=False)

    if result["valid"]:
        console.print("\n[bold green]v[/bold green] Snapshot is valid")
        return 0
    console.print("\n[bold red]x[/bold red] Snapshot is invalid")
    return 1


# ============================================================================
# Main entry point
# ============================================================================


def _add_shared_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--connection", "-c",
        default="localhost:6379",
        help=(
            "Redis connection: host:port, a redis:// URL, or "
            "host:port,password=...,ssl=true (default: localhost:6379)"
        ),
    )
    parser.add_argument(
        "--profile",
        help="Connection profile from the config file (overrides --connection)",
    )
    parser.add_argument(
        "--password", "-p",
        help="Redis password (if required)",
    )
    parser.add_argument(
        "--database", "-d",
        action="append",
        type=int,
        dest="databases",
        help="Database number (can be used multiple times; omit to process all databases)",
    )
    parser.add_argument(
        "--batch-size",
        type=int,
        help="Keys per round trip (default: 100, or [defaults] batch_size in the config)",
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Show verbose output",
    )


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    Parses command line arguments and dispatches to appropriate handler.

    Returns:
        Exit code (0 for success, 1 for errors).
    """
    parser = argparse.ArgumentParser(
        prog="redis-dump",
        description="Dump and restore Redis databases as JSON snapshots",
    )

    # Global options
    parser.add_argument(
        "--config",
        help=f"Path to TOML config with connection profiles (default: ./{DEFAULT_CONFIG_FILE})",
    )
    parser.add_argument(
        "--env-prefix",
        default="",
        help=(
            "Prefix for environment variable lookup "
            "(e.g., --env-prefix APP_ reads APP_REDIS_PROFILE)"
        ),
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # dump command
    p_dump = subparsers.add_parser("dump", help="Dump Redis data to a file")
    _add_shared_arguments(p_dump)
    p_dump.add_argument(
        "--output", "-o",
        default="redis-dump.json",
        help="Output file path (default: redis-dump.json)",
    )
    p_dump.set_defaults(func=cmd_dump)

    # restore command
    p_restore = subparsers.add_parser("restore", help="Restore Redis data from a file")
    _add_shared_arguments(p_restore)
    p_restore.add_argument(
        "--input", "-i",
        default="redis-dump.json",
        help="Input file path (default: redis-dump.json)",
    )
    p_restore.add_argument(
        "--flush",
        action="store_true",
        help="Flush each target database before restoring (requires --force)",
    )
    p_restore.add_argument(
        "--force",
        action="store_true",
        help="Restore into non-empty databases, overwriting conflicting keys",
    )
    p_restore.set_defaults(func=cmd_restore)

    # validate command
    p_validate = subparsers.add_parser("validate", help="Validate a snapshot file")
    p_validate.add_argument("snapshot_path", help="Path to snapshot JSON file")
    p_validate.set_defaults(func=cmd_validate)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
