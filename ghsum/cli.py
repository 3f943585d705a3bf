"""
CLI interface for the GitHub activity cache.

Usage:
    ghsum ingest events events.json
    ghsum results --mode summary --start 2024-01-01 --end 2024-01-31
    ghsum stats
    ghsum purge --keep-token
"""

import asyncio
import json
import os
import sys
from pathlib import Path
from typing import Optional

import typer
from typing_extensions import Annotated

from .backend import create_cache, create_stores
from .config import FORM_SETTINGS_KEY, get_default_store_path, load_or_create_config
from .errors import log_exception
from .filters import ResultFilter
from .logging_config import configure_ops_log, configure_quiet_mode, enable_debug_mode
from .reconcile import Reconciler
from .types import ApiMode, SourceKind, WriteResult, utc_now

STORAGE_FULL_MESSAGE = "Data not saved, storage is full."


# Set GHSUM_VERBOSE=1 to enable debug mode via environment
if os.environ.get("GHSUM_VERBOSE") == "1":
    enable_debug_mode()
else:
    configure_quiet_mode(quiet=True)


def _version_callback(value: bool):
    if value:
        from importlib.metadata import version
        print(f"ghsum {version('ghsum')}")
        raise typer.Exit()


def _verbose_callback(value: bool):
    if value:
        enable_debug_mode()


# Global state for CLI options
_json_output = False
_store_override: Optional[Path] = None


def _json_callback(value: bool):
    global _json_output
    _json_output = value


def _store_callback(value: Optional[Path]):
    global _store_override
    _store_override = value


app = typer.Typer(
    name="ghsum",
    help="Bounded local cache and reconciled view of GitHub activity.",
    no_args_is_help=True,
    rich_markup_mode=None,
)


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option(
        "--verbose", "-v",
        help="Enable debug-level logging to stderr",
        callback=_verbose_callback,
        is_eager=True,
    )] = False,
    output_json: Annotated[bool, typer.Option(
        "--json", "-j",
        help="Output as JSON",
        callback=_json_callback,
        is_eager=True,
    )] = False,
    version: Annotated[Optional[bool], typer.Option(
        "--version",
        help="Show version and exit",
        callback=_version_callback,
        is_eager=True,
    )] = None,
    store: Annotated[Optional[Path], typer.Option(
        "--store", "-s",
        envvar="GHSUM_STORE_PATH",
        help="Path to the store directory",
        callback=_store_callback,
        is_eager=True,
    )] = None,
):
    """Bounded local cache and reconciled view of GitHub activity."""


def _open(context: str):
    """Load config and open stores, exiting cleanly on failure."""
    store_path = _store_override or get_default_store_path()
    try:
        config = load_or_create_config(store_path)
        bundle = create_stores(config)
    except Exception as e:
        log_path = log_exception(e, context)
        typer.echo(f"Error: {e}", err=True)
        typer.echo(f"Details logged to {log_path}", err=True)
        raise typer.Exit(1)
    bundle = bundle._replace(ops_log_handler=configure_ops_log(store_path))
    return config, bundle


def _format_bytes(n: int) -> str:
    if n >= 1024 * 1024:
        return f"{n / (1024 * 1024):.2f} MB"
    if n >= 1024:
        return f"{n / 1024:.1f} KB"
    return f"{n} B"


@app.command()
def stats():
    """Show cache usage against its limits."""
    config, bundle = _open("stats")
    cache = create_cache(config, bundle)
    s = cache.stats()
    if _json_output:
        data = s.to_dict()
        data["safe_limit"] = config.safe_limit
        typer.echo(json.dumps(data, indent=2))
    else:
        typer.echo(f"used:      {_format_bytes(s.total_size)} of {_format_bytes(s.max_size)} "
                   f"({s.usage_percent:.1f}%)")
        typer.echo(f"available: {_format_bytes(s.available_space)}")
        typer.echo(f"admission: {_format_bytes(config.safe_limit)}")
        if s.is_near_limit:
            typer.echo("warning:   storage nearly full")
    bundle.close()


@app.command()
def entries():
    """List stored keys, largest first."""
    config, bundle = _open("entries")
    cache = create_cache(config, bundle)
    listed = cache.tracker.list_entries()
    if _json_output:
        typer.echo(json.dumps([{"key": e.key, "size": e.size_bytes} for e in listed], indent=2))
    else:
        width = max((len(e.key) for e in listed), default=0)
        for e in listed:
            typer.echo(f"{e.key.ljust(width)}  {_format_bytes(e.size_bytes)}")
    bundle.close()


@app.command()
def put(
    key: Annotated[str, typer.Argument(help="Key to write")],
    value: Annotated[Optional[str], typer.Argument(
        help="Value to store ('-' or omitted reads stdin)"
    )] = None,
):
    """Write a value through the quota guard."""
    if value is None or value == "-":
        value = sys.stdin.read()
    config, bundle = _open("put")
    cache = create_cache(config, bundle)
    result = cache.write(key, value)
    bundle.close()
    if _json_output:
        typer.echo(json.dumps({"key": key, "result": result.value}))
    if result is not WriteResult.SUCCESS:
        typer.echo(STORAGE_FULL_MESSAGE, err=True)
        raise typer.Exit(1)


@app.command()
def get(
    key: Annotated[str, typer.Argument(help="Key to read")],
):
    """Print the value stored at a key."""
    config, bundle = _open("get")
    value = bundle.kv_store.get(key)
    bundle.close()
    if value is None:
        typer.echo(f"Not found: {key}", err=True)
        raise typer.Exit(1)
    typer.echo(value)


@app.command()
def purge(
    keep_token: Annotated[bool, typer.Option(
        "--keep-token",
        help="Also clear raw records, but keep the saved GitHub token",
    )] = False,
):
    """Clear cached data."""
    config, bundle = _open("purge")
    cache = create_cache(config, bundle)
    if not keep_token:
        removed = cache.purge.purge_all()
        bundle.close()
        typer.echo(json.dumps({"removed": removed}) if _json_output else f"Removed {len(removed)} keys")
        return

    outcome = asyncio.run(cache.purge.purge_keeping_secret(config.secret_field))
    reseeded = WriteResult.SUCCESS
    if outcome.secret:
        reseeded = cache.writer.write_json(FORM_SETTINGS_KEY, {config.secret_field: outcome.secret})
    bundle.close()

    if _json_output:
        typer.echo(json.dumps({
            "removed": outcome.removed,
            "records_cleared": outcome.bulk_cleared,
            "token_kept": bool(outcome.secret) and bool(reseeded),
        }))
    else:
        typer.echo(f"Removed {len(outcome.removed)} keys")
        if outcome.secret:
            typer.echo("Kept GitHub token" if reseeded else STORAGE_FULL_MESSAGE)
    if not outcome.bulk_cleared:
        typer.echo(f"Error: raw records not cleared: {outcome.bulk_error.error}", err=True)
        raise typer.Exit(1)


@app.command()
def ingest(
    source: Annotated[SourceKind, typer.Argument(help="Which collection the file holds")],
    file: Annotated[Path, typer.Argument(help="JSON array of raw items", exists=True, dir_okay=False)],
):
    """Replace one raw collection from a JSON file."""
    try:
        items = json.loads(file.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        typer.echo(f"Error: cannot read {file}: {e}", err=True)
        raise typer.Exit(1)
    if not isinstance(items, list):
        typer.echo(f"Error: {file} must contain a JSON array", err=True)
        raise typer.Exit(1)
    bad = [i for i, item in enumerate(items) if not isinstance(item, dict)]
    if bad:
        typer.echo(f"Error: {file} item {bad[0]} is not a JSON object", err=True)
        raise typer.Exit(1)
    config, bundle = _open("ingest")
    count = bundle.record_store.replace(source, items)
    bundle.close()
    typer.echo(f"Stored {count} {source.value} items")


@app.command()
def results(
    mode: Annotated[ApiMode, typer.Option("--mode", "-m", help="events, search or summary")] = ApiMode.SUMMARY,
    start: Annotated[str, typer.Option("--start", help="Window start (YYYY-MM-DD)")] = "1970-01-01",
    end: Annotated[Optional[str], typer.Option("--end", help="Window end (YYYY-MM-DD), default today")] = None,
    type_: Annotated[str, typer.Option("--type", help="all, issue, pr or comment")] = "all",
    status: Annotated[str, typer.Option("--status", help="all, open, closed or merged")] = "all",
    search: Annotated[str, typer.Option("--search", help="Text, label:name and -label:name terms")] = "",
    repo: Annotated[Optional[list[str]], typer.Option("--repo", help="owner/name (repeatable)")] = None,
    user: Annotated[str, typer.Option("--user", help="Author login")] = "",
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum records to show (0 = all)")] = 0,
):
    """Show reconciled activity for a date window."""
    try:
        result_filter = ResultFilter(
            type=type_, status=status, search_text=search, repos=repo or [], user=user,
        )
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    config, bundle = _open("results")
    raw_events = bundle.record_store.load(SourceKind.EVENT)
    raw_search = bundle.record_store.load(SourceKind.SEARCH)
    bundle.close()

    try:
        result = Reconciler(mode).run(raw_events, raw_search, start, end or utc_now()[:10])
    except ValueError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)

    records = result_filter.apply(result.records) if result_filter.is_active else result.records
    if limit > 0:
        records = records[:limit]

    if _json_output:
        data = result.to_dict()
        data["records"] = [r.to_dict() for r in records]
        typer.echo(json.dumps(data, indent=2))
        return

    typer.echo(f"events: {result.events_count}  search: {result.search_items_count}  "
               f"showing: {len(records)}")
    for r in records:
        day = r.timestamp.strftime("%Y-%m-%d")
        typer.echo(f"{day}  {r.source_kind.value:<6}  {r.title or r.identity}  {r.identity}")


@app.command()
def config(
    path: Annotated[Optional[str], typer.Argument(
        help="Config value to get (e.g., 'file', 'store', 'safe_limit')"
    )] = None,
):
    """Show configuration. Optionally get a specific value."""
    store_path = _store_override or get_default_store_path()
    cfg = load_or_create_config(store_path)
    values = {
        "file": str(cfg.config_path),
        "store": str(cfg.path),
        "safe_limit": cfg.safe_limit,
        "report_limit": cfg.report_limit,
        "hard_limit": cfg.hard_limit,
        "eviction_priority": list(cfg.eviction_priority),
        "secret_field": cfg.secret_field,
    }
    if path is not None:
        if path not in values:
            typer.echo(f"Unknown config path: {path}", err=True)
            raise typer.Exit(1)
        value = values[path]
        typer.echo(json.dumps(value) if isinstance(value, list) else str(value))
        return
    if _json_output:
        typer.echo(json.dumps(values, indent=2))
    else:
        for name, value in values.items():
            typer.echo(f"{name}: {value}")


def main():
    app()


if __name__ == "__main__":
    main()
