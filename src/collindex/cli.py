"""Command line interface for collindex."""

from __future__ import annotations

import asyncio
import difflib
import signal
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional, TypeVar

import click
import redis.asyncio as redis
import yaml
from click.core import ParameterSource
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from collindex.config import CollindexConfig, ConfigError, ConfigManager, resolve_with_precedence
from collindex.config.resolver import assign_dotted
from collindex.index import (
    ConfigurationError,
    IndexEngine,
    InvalidCursorError,
    RebuildMode,
    RebuildOptions,
    SortDirection,
    StoreConnectivityError,
)
from collindex.keys import IndexKeys, SortField
from collindex.logging_setup import configure_logging
from collindex.memory import MemoryMonitor
from collindex.records import FilesystemAssetSource, JsonDirectoryPrimaryStore
from collindex.state import MissingStateError, StateError
from collindex.thumbnails import ThumbnailSettingsProvider

console = Console()

T = TypeVar("T")

_SORT_CHOICES = [field.value for field in SortField]
_MODE_CHOICES = [mode.value for mode in RebuildMode]


def _handle_cli_error(
    message: str,
    *,
    code: str,
    json_output: bool,
    details: Any | None = None,
    original: Exception | None = None,
) -> None:
    """Report a failed command as a JSON error payload or a Click error.

    In JSON mode the payload carries `code` and optional `details` and the
    process exits 1.
    """
    if json_output:
        payload: dict[str, Any] = {"error": {"code": code, "message": message}}
        if details is not None:
            payload["error"]["details"] = details
        console.print_json(data=payload)
        raise SystemExit(1)

    if isinstance(original, click.ClickException):
        raise original

    raise click.ClickException(message) from original


def _emit_message(message: Any, *, mode: str, quiet: bool, summary_only: bool) -> None:
    """Print `message` unless quiet or summary mode hides its `mode`."""
    if quiet and mode != "error":
        return

    important_modes = {"summary", "warning", "error"}
    if summary_only and mode not in important_modes:
        return

    console.print(message)


def _format_summary_line(command: str, target: str, metrics: dict[str, Any]) -> str:
    """Return a consistent summary line for CLI commands.

    Args:
        command: Command name to include in the summary.
        target: What the command ran against (mode, key prefix).
        metrics: Ordered mapping of metric names to values.

    Returns:
        str: Rich-formatted summary string.
    """

    parts = ", ".join(f"{key}={value}" for key, value in metrics.items())
    return f"[green]{command} summary for {target}: {parts}.[/green]"


def _emit_errors(errors: list[str], *, quiet: bool, summary_only: bool) -> None:
    """Emit per-record errors honoring quiet/summary preferences.

    Args:
        errors: ``"<id>: <reason>"`` messages.
        quiet: Whether quiet mode is active.
        summary_only: Whether only summary lines should be emitted.
    """

    if not errors:
        return
    _emit_message(
        f"[yellow]{len(errors)} record(s) failed:[/yellow]",
        mode="warning",
        quiet=quiet,
        summary_only=summary_only,
    )
    for error in errors:
        _emit_message(f"  - {error}", mode="detail", quiet=quiet, summary_only=summary_only)


def _output_modes(
    ctx: click.Context,
    config: CollindexConfig,
    *,
    json_output: bool,
    quiet: bool,
    summary_mode: bool,
) -> tuple[bool, bool]:
    """Resolve quiet/summary flags against configuration defaults.

    Raises:
        click.ClickException: If the requested modes conflict.
    """
    explicit_quiet = ctx.get_parameter_source("quiet") == ParameterSource.COMMANDLINE
    explicit_summary = ctx.get_parameter_source("summary_mode") == ParameterSource.COMMANDLINE

    quiet_enabled = quiet if explicit_quiet else config.cli.quiet_default
    summary_only = summary_mode if explicit_summary else config.cli.summary_default

    if json_output:
        if explicit_quiet and quiet_enabled:
            raise click.ClickException("--json cannot be combined with --quiet.")
        if explicit_summary and summary_only:
            raise click.ClickException("--json cannot be combined with --summary.")
        return False, False

    if quiet_enabled and summary_only:
        raise click.ClickException(
            "Quiet and summary modes cannot both be enabled. Adjust CLI defaults or flags."
        )
    return quiet_enabled, summary_only


def _load_config(ctx: click.Context) -> tuple[ConfigManager, CollindexConfig]:
    manager = ConfigManager()
    manager.ensure_exists()
    config = manager.load()
    configure_logging(config.logging, level_override=(ctx.obj or {}).get("log_level"))
    return manager, config


def _open_client(config: CollindexConfig) -> Any:
    """Return a ``redis.asyncio`` client for the configured index store."""
    return redis.Redis.from_url(
        config.redis.url,
        decode_responses=True,
        socket_timeout=config.redis.socket_timeout,
    )


def _build_engine(client: Any, config: CollindexConfig, manager: ConfigManager) -> IndexEngine:
    asset_root = Path(config.assets.root).expanduser() if config.assets.root else None
    return IndexEngine(
        client,
        JsonDirectoryPrimaryStore(Path(config.primary.records_dir)),
        FilesystemAssetSource(asset_root, fallback_by_name=config.assets.fallback_by_name),
        keys=IndexKeys(config.redis.key_prefix),
        thumbnail_settings=ThumbnailSettingsProvider(
            manager.load_thumbnail_settings,
            ttl_seconds=config.thumbnails.settings_ttl_seconds,
        ),
        batch_size=config.rebuild.batch_size,
        concurrency=config.rebuild.concurrency,
        memory=MemoryMonitor(),
    )


def _run_with_engine(
    config: CollindexConfig,
    manager: ConfigManager,
    action: Callable[[IndexEngine], Awaitable[T]],
) -> T:
    """Run ``action`` against a freshly wired engine and close the client afterwards."""

    async def runner() -> T:
        client = _open_client(config)
        try:
            return await action(_build_engine(client, config, manager))
        finally:
            await client.aclose()

    return asyncio.run(runner())


async def _with_interrupt(run: Callable[[asyncio.Event], Awaitable[T]]) -> T:
    """Run ``run`` with SIGINT mapped onto a cancellation event."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        installed = True
    except (NotImplementedError, RuntimeError, ValueError):
        installed = False
    try:
        return await run(cancel_event)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


def _summary_table(title: str, rows: list[tuple[str, Any]]) -> Table:
    table = Table(title=title, show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    for key, value in rows:
        table.add_row(key, str(value))
    return table


def _format_bytes(value: int) -> str:
    size = float(value)
    for unit in ("B", "KB", "MB", "GB"):
        if size < 1024 or unit == "GB":
            return f"{size:.0f} {unit}" if unit == "B" else f"{size:.1f} {unit}"
        size /= 1024
    return f"{value} B"


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="collindex")
@click.option("--log-level", type=str, help="Override the configured logging level.")
@click.pass_context
def cli(ctx: click.Context, log_level: str | None) -> None:
    """collindex keeps a Redis navigation index in sync with a collection store.

    Returns:
        None: This function is invoked for its side effects.
    """
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option(
    "--mode",
    type=click.Choice(_MODE_CHOICES),
    help="Rebuild strategy; defaults to rebuild.default_mode.",
)
@click.option("--dry-run", is_flag=True, help="Classify records without writing the index.")
@click.option(
    "--skip-thumbnails",
    is_flag=True,
    help="Write index entries without caching thumbnails.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON run statistics.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def rebuild(
    ctx: click.Context,
    mode: str | None,
    dry_run: bool,
    skip_thumbnails: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Rebuild the navigation index from the primary store.

    Args:
        ctx: Click context used for parameter source inspection.
        mode: Rebuild mode name.
        dry_run: If True, report what would change without writing.
        skip_thumbnails: If True, skip thumbnail caching.
        json_output: If True, emit JSON statistics.
        summary_mode: When True, limit output to summary lines and warnings.
        quiet: When True, suppress non-error CLI output entirely.
    """

    try:
        manager, config = _load_config(ctx)
        quiet_enabled, summary_only = _output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        selected = RebuildMode.parse(mode or config.rebuild.default_mode)
        options = RebuildOptions(dry_run=dry_run, skip_thumbnail_caching=skip_thumbnails)

        stats = _run_with_engine(
            config,
            manager,
            lambda engine: _with_interrupt(
                lambda cancel: engine.rebuild(selected, options, cancel_event=cancel)
            ),
        )

        if json_output:
            console.print_json(data=stats.model_dump(mode="json"))
            return

        _emit_errors(stats.errors, quiet=quiet_enabled, summary_only=summary_only)
        if stats.cancelled:
            _emit_message(
                "[yellow]Rebuild cancelled; statistics are partial.[/yellow]",
                mode="warning",
                quiet=quiet_enabled,
                summary_only=summary_only,
            )
        _emit_message(
            _format_summary_line(
                "Rebuild" if not dry_run else "Rebuild (dry run)",
                selected.value,
                {
                    "scanned": stats.scanned,
                    "rebuilt": stats.rebuilt,
                    "skipped": stats.skipped,
                    "added": stats.added,
                    "updated": stats.updated,
                    "removed": stats.removed,
                    "errors": len(stats.errors),
                    "duration_ms": stats.duration_ms,
                },
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except ConfigurationError as exc:
        _handle_cli_error(str(exc), code="invalid_arguments", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        details = exc.statistics.model_dump(mode="json") if exc.statistics is not None else None
        _handle_cli_error(
            str(exc),
            code="store_unavailable",
            json_output=json_output,
            details=details,
            original=exc,
        )
    except click.ClickException as exc:
        _handle_cli_error(str(exc), code="cli_error", json_output=json_output, original=exc)
    except Exception as exc:
        _handle_cli_error(
            f"Unexpected error while rebuilding the index: {exc}",
            code="internal_error",
            json_output=json_output,
            details={"exception": type(exc).__name__},
            original=exc,
        )


@cli.command()
@click.option("--fix", is_flag=True, help="Repair drift instead of only reporting it.")
@click.option(
    "--skip-thumbnails",
    is_flag=True,
    help="Repair entries without caching thumbnails.",
)
@click.option("--json", "json_output", is_flag=True, help="Emit JSON verification results.")
@click.option("--summary", "summary_mode", is_flag=True, help="Only emit summary lines.")
@click.option("--quiet", is_flag=True, help="Suppress non-error output.")
@click.pass_context
def verify(
    ctx: click.Context,
    fix: bool,
    skip_thumbnails: bool,
    json_output: bool,
    summary_mode: bool,
    quiet: bool,
) -> None:
    """Compare the index with the primary store in both directions."""

    try:
        manager, config = _load_config(ctx)
        quiet_enabled, summary_only = _output_modes(
            ctx, config, json_output=json_output, quiet=quiet, summary_mode=summary_mode
        )
        result = _run_with_engine(
            config,
            manager,
            lambda engine: _with_interrupt(
                lambda cancel: engine.verify(
                    dry_run=not fix, skip_thumbnails=skip_thumbnails, cancel_event=cancel
                )
            ),
        )

        if json_output:
            console.print_json(data=result.model_dump(mode="json"))
            return

        for label, ids in (
            ("Missing", result.missing_ids),
            ("Outdated", result.outdated_ids),
            ("Thumbnail stale", result.thumbnail_stale_ids),
            ("Orphaned", result.orphan_ids),
        ):
            if ids:
                _emit_message(
                    f"[yellow]{label}:[/yellow] {', '.join(ids)}",
                    mode="detail",
                    quiet=quiet_enabled,
                    summary_only=summary_only,
                )
        _emit_errors(result.errors, quiet=quiet_enabled, summary_only=summary_only)
        status = "consistent" if result.consistent else "drift detected"
        _emit_message(
            _format_summary_line(
                "Verify" if fix else "Verify (dry run)",
                status,
                {
                    "primary": result.total_primary,
                    "indexed": result.total_indexed,
                    "added": result.added,
                    "updated": result.updated,
                    "removed": result.removed,
                    "repaired": result.repaired,
                    "errors": len(result.errors),
                },
            ),
            mode="summary",
            quiet=quiet_enabled,
            summary_only=summary_only,
        )
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        details = exc.statistics.model_dump(mode="json") if exc.statistics is not None else None
        _handle_cli_error(
            str(exc),
            code="store_unavailable",
            json_output=json_output,
            details=details,
            original=exc,
        )
    except click.ClickException as exc:
        _handle_cli_error(str(exc), code="cli_error", json_output=json_output, original=exc)
    except Exception as exc:
        _handle_cli_error(
            f"Unexpected error while verifying the index: {exc}",
            code="internal_error",
            json_output=json_output,
            details={"exception": type(exc).__name__},
            original=exc,
        )


@cli.command()
@click.option("--cursor", type=str, help="Cursor returned by a previous page.")
@click.option("--size", "page_size", type=int, help="Number of ids per page.")
@click.option(
    "--direction",
    type=click.Choice(["asc", "desc"]),
    default="asc",
    show_default=True,
    help="Ordering direction.",
)
@click.option(
    "--sort",
    "sort_field",
    type=click.Choice(_SORT_CHOICES),
    default=SortField.SORT_KEY.value,
    show_default=True,
    help="Ordering to page through.",
)
@click.option("--library", "library_id", type=str, help="Restrict to one library.")
@click.option("--type", "collection_type", type=str, help="Restrict to one collection type.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON page contents.")
@click.pass_context
def page(
    ctx: click.Context,
    cursor: str | None,
    page_size: int | None,
    direction: str,
    sort_field: str,
    library_id: str | None,
    collection_type: str | None,
    json_output: bool,
) -> None:
    """Print one page of record ids from the index."""

    try:
        manager, config = _load_config(ctx)
        size = page_size if page_size is not None else config.cli.page_size

        async def action(engine: IndexEngine) -> tuple[Any, list[Any]]:
            result = await engine.reader.page(
                cursor,
                size,
                SortDirection.parse(direction),
                sort=SortField(sort_field),
                library_id=library_id,
                collection_type=collection_type,
            )
            return result, await engine.reader.summaries(result.ids)

        result, summaries = _run_with_engine(config, manager, action)

        if json_output:
            payload = result.model_dump(mode="json")
            payload["summaries"] = [
                summary.model_dump(mode="json") if summary is not None else None
                for summary in summaries
            ]
            console.print_json(data=payload)
            return

        table = Table(title=f"{len(result.ids)} of {result.total} records")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Children", justify="right")
        table.add_column("Size", justify="right")
        for record_id, summary in zip(result.ids, summaries):
            if summary is None:
                table.add_row(record_id, "[dim]no summary[/dim]", "", "")
            else:
                table.add_row(
                    record_id,
                    summary.name,
                    str(summary.child_count),
                    _format_bytes(summary.total_size),
                )
        console.print(table)
        if result.previous_cursor:
            console.print(f"previous: {result.previous_cursor}")
        if result.next_cursor:
            console.print(f"next: {result.next_cursor}")
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except InvalidCursorError as exc:
        _handle_cli_error(str(exc), code="invalid_cursor", json_output=json_output, original=exc)
    except ConfigurationError as exc:
        _handle_cli_error(str(exc), code="invalid_arguments", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        _handle_cli_error(str(exc), code="store_unavailable", json_output=json_output, original=exc)


@cli.command()
@click.argument("record_id")
@click.option(
    "--sort",
    "sort_field",
    type=click.Choice(_SORT_CHOICES),
    default=SortField.SORT_KEY.value,
    show_default=True,
    help="Ordering to navigate.",
)
@click.option(
    "--direction",
    type=click.Choice(["asc", "desc"]),
    default="asc",
    show_default=True,
    help="Ordering direction.",
)
@click.option("--library", "library_id", type=str, help="Navigate within one library.")
@click.option("--type", "collection_type", type=str, help="Navigate within one collection type.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON sibling information.")
@click.pass_context
def siblings(
    ctx: click.Context,
    record_id: str,
    sort_field: str,
    direction: str,
    library_id: str | None,
    collection_type: str | None,
    json_output: bool,
) -> None:
    """Show the records before and after RECORD_ID."""

    try:
        manager, config = _load_config(ctx)
        result = _run_with_engine(
            config,
            manager,
            lambda engine: engine.reader.siblings(
                record_id,
                sort=SortField(sort_field),
                direction=direction,
                library_id=library_id,
                collection_type=collection_type,
            ),
        )
        if json_output:
            console.print_json(data=result.model_dump(mode="json"))
            return
        if result.position == 0:
            raise click.ClickException(f"{record_id} is not in the index.")
        console.print(f"[cyan]{record_id}[/cyan] is {result.position} of {result.total}")
        console.print(f"previous: {result.previous or '-'}")
        console.print(f"next: {result.next or '-'}")
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except ConfigurationError as exc:
        _handle_cli_error(str(exc), code="invalid_arguments", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        _handle_cli_error(str(exc), code="store_unavailable", json_output=json_output, original=exc)
    except click.ClickException as exc:
        _handle_cli_error(str(exc), code="cli_error", json_output=json_output, original=exc)


@cli.command()
@click.option("--json", "json_output", is_flag=True, help="Emit JSON statistics.")
@click.pass_context
def stats(ctx: click.Context, json_output: bool) -> None:
    """Aggregate dashboard statistics from the index."""

    try:
        manager, config = _load_config(ctx)

        async def action(engine: IndexEngine) -> tuple[Any, Any]:
            return await engine.reader.statistics(), await engine.reader.index_info()

        statistics, info = _run_with_engine(config, manager, action)
        if json_output:
            console.print_json(
                data={
                    "statistics": statistics.model_dump(mode="json"),
                    "index": info.model_dump(mode="json"),
                }
            )
            return

        last_rebuild = info.last_rebuild_at.isoformat() if info.last_rebuild_at else "never"
        console.print(
            _summary_table(
                "Index statistics",
                [
                    ("Records", statistics.total_records),
                    ("Children", statistics.total_children),
                    ("Average children", f"{statistics.average_children:.1f}"),
                    ("Cached derivatives", statistics.total_cached_derivatives),
                    ("Total size", _format_bytes(statistics.total_size)),
                    ("Thumbnails cached", statistics.thumbnails_cached),
                    ("Thumbnail bytes", _format_bytes(statistics.thumbnail_bytes)),
                    ("Libraries", len(statistics.records_by_library)),
                    ("Collection types", len(statistics.records_by_type)),
                    ("Last rebuild", last_rebuild),
                    ("Last mode", info.last_rebuild_mode or "-"),
                ],
            )
        )
        if statistics.largest:
            table = Table(title="Largest records")
            table.add_column("ID", style="cyan")
            table.add_column("Name")
            table.add_column("Size", justify="right")
            for item in statistics.largest:
                table.add_row(item.id, item.name, _format_bytes(item.total_size))
            console.print(table)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        _handle_cli_error(str(exc), code="store_unavailable", json_output=json_output, original=exc)


@cli.command()
@click.argument("query")
@click.option("--limit", type=int, default=20, show_default=True, help="Maximum matches.")
@click.option("--json", "json_output", is_flag=True, help="Emit JSON matches.")
@click.pass_context
def search(ctx: click.Context, query: str, limit: int, json_output: bool) -> None:
    """Find indexed records whose name or path contains QUERY."""

    try:
        manager, config = _load_config(ctx)
        matches = _run_with_engine(
            config, manager, lambda engine: engine.reader.search(query, limit)
        )
        if json_output:
            console.print_json(data=[match.model_dump(mode="json") for match in matches])
            return
        if not matches:
            console.print(f"[yellow]No records match {query!r}.[/yellow]")
            return
        table = Table(title=f"{len(matches)} match(es)")
        table.add_column("ID", style="cyan")
        table.add_column("Name")
        table.add_column("Path")
        for match in matches:
            table.add_row(match.id, match.name, match.path or "")
        console.print(table)
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except ConfigurationError as exc:
        _handle_cli_error(str(exc), code="invalid_arguments", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        _handle_cli_error(str(exc), code="store_unavailable", json_output=json_output, original=exc)


@cli.command()
@click.argument("record_id")
@click.option("--json", "json_output", is_flag=True, help="Emit the stored state as JSON.")
@click.pass_context
def state(ctx: click.Context, record_id: str, json_output: bool) -> None:
    """Show the stored index state for RECORD_ID."""

    try:
        manager, config = _load_config(ctx)
        try:
            stored = _run_with_engine(config, manager, lambda engine: engine.state.load(record_id))
        except MissingStateError as exc:
            raise click.ClickException(
                f"No index state for {record_id}. Run `collindex rebuild` first."
            ) from exc

        if json_output:
            console.print_json(data=stored.model_dump(mode="json"))
            return
        console.print(
            _summary_table(
                f"Index state for {record_id}",
                [
                    ("Indexed at", stored.indexed_at.isoformat()),
                    ("Source updated at", stored.source_updated_at.isoformat()),
                    ("Children", stored.child_count),
                    ("Cached derivatives", stored.cached_derivative_count),
                    ("Thumbnail cached", "yes" if stored.has_first_thumbnail else "no"),
                    ("Thumbnail source", stored.first_thumbnail_source_path or "-"),
                    ("Library", stored.library_id or "-"),
                    ("Schema", stored.schema_version),
                ],
            )
        )
    except ConfigError as exc:
        _handle_cli_error(str(exc), code="config_error", json_output=json_output, original=exc)
    except StateError as exc:
        _handle_cli_error(str(exc), code="state_error", json_output=json_output, original=exc)
    except StoreConnectivityError as exc:
        _handle_cli_error(str(exc), code="store_unavailable", json_output=json_output, original=exc)
    except click.ClickException as exc:
        _handle_cli_error(str(exc), code="cli_error", json_output=json_output, original=exc)


@cli.group()
def config() -> None:
    """Manage collindex configuration files and overrides.

    Returns:
        None: This function is invoked for its side effects.
    """


@config.command("view")
@click.option("--no-env", is_flag=True, help="Ignore environment overrides when displaying output.")
def config_view(no_env: bool) -> None:
    """Display the effective configuration after applying precedence rules.

    Args:
        no_env: If True, ignore environment-derived overrides.

    Raises:
        click.ClickException: If configuration cannot be loaded.
    """
    manager = ConfigManager()
    try:
        manager.ensure_exists()
        loaded = manager.load(include_env=not no_env)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    yaml_text = yaml.safe_dump(loaded.model_dump(mode="python"), sort_keys=False)
    console.print(Syntax(yaml_text, "yaml", word_wrap=True))


@config.command("set")
@click.argument("key")
@click.option("--value", required=True, help="Value to assign to KEY.")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value expressed as a dotted KEY.

    Args:
        key: Dotted path describing the configuration field to update.
        value: YAML-literal value to write into the configuration file.

    Raises:
        click.ClickException: If parsing, assignment, or validation fails.
    """
    manager = ConfigManager()
    manager.ensure_exists()

    before = manager.read_text().splitlines()
    segments = [segment.strip() for segment in key.split(".") if segment.strip()]
    if not segments:
        raise click.ClickException(
            "KEY must specify a dotted path such as 'thumbnails.quality'."
        )

    try:
        parsed_value = yaml.safe_load(value)
    except yaml.YAMLError as exc:
        raise click.ClickException(f"Unable to parse value: {exc}") from exc

    file_data = manager.load_file_overrides()

    try:
        assign_dotted(file_data, segments, parsed_value, source_name="config file")
        resolve_with_precedence(defaults=CollindexConfig(), file_overrides=file_data)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc

    manager.save(file_data)
    after = manager.read_text().splitlines()

    diff = list(
        difflib.unified_diff(
            before,
            after,
            fromfile="config.yaml (before)",
            tofile="config.yaml (after)",
            lineterm="",
        )
    )

    if not diff:
        console.print("[yellow]No changes applied; value already up to date.[/yellow]")
        return

    console.print(Syntax("\n".join(diff), "diff", word_wrap=False))
    console.print(f"[green]Updated {'.'.join(segments)}.[/green]")


def main(argv: Optional[list[str]] = None) -> None:
    """Invoke the Click CLI as the console script entry point.

    Returns:
        None: This function is invoked for its side effects.
    """
    cli(args=argv)


if __name__ == "__main__":
    main()
