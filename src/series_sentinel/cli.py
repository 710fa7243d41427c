"""Click-based CLI for series-sentinel.

Thin wrapper around library modules with no business logic of its own. Every operation
delegates to the store, the collector, or the scheduler.
"""

from __future__ import annotations

import asyncio
import json
import logging
from contextlib import asynccontextmanager

import click
from rich.console import Console
from rich.table import Table

console = Console(stderr=True)

_BUCKETS = ("hourly", "daily", "weekly", "cleanup")
_FREQUENCIES = ("hourly", "daily", "weekly", "monthly", "quarterly", "yearly")
_SOURCE_TYPES = ("fred", "worldbank", "alphavantage", "dbnomics", "eurostat", "yahoo", "csv")
_STATUS_STYLE = {"success": "green", "warning": "yellow", "error": "red"}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run_async(coro):
    """Run an async coroutine from synchronous Click code."""
    return asyncio.run(coro)


def _load_config(ctx: click.Context):
    """Load config lazily, caching on first call."""
    if "config" not in ctx.obj:
        from series_sentinel.core import load_config

        ctx.obj["config"] = load_config(config_path=ctx.obj.get("config_path"))
    return ctx.obj["config"]


async def _create_store_async(config):
    """Create and initialize storage from config."""
    from series_sentinel.ingestion import create_store

    return await create_store(config.storage)


@asynccontextmanager
async def _runtime(config):
    """Store, collector and scheduler wired from config; closed on exit."""
    from series_sentinel.ingestion import Collector
    from series_sentinel.scheduler import PacingPolicy, Scheduler, SmtpNotifier
    from series_sentinel.sources import create_registry

    store = await _create_store_async(config)
    registry = create_registry(config)
    try:
        collector = Collector(store, registry, PacingPolicy.from_config(config.scheduler))
        scheduler = Scheduler(
            collector,
            store,
            config.scheduler,
            notify=config.notify,
            notifier=SmtpNotifier(config.notify) if config.notify.error_emails else None,
        )
        await scheduler.initialize()
        yield store, collector, scheduler
    finally:
        await registry.close()
        await store.close()


def _parse_settings(pairs: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated ``--set key=value`` options into a config map."""
    settings: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise click.BadParameter(f"expected key=value, got {pair!r}", param_hint="--set")
        settings[key.strip()] = value.strip()
    return settings


def _print_batch(batch) -> None:
    table = Table(title=batch.label)
    table.add_column("Series", style="bold")
    table.add_column("OK", justify="center")
    table.add_column("Message")
    for d in batch.details:
        table.add_row(d.slug, "[green]✓[/green]" if d.ok else "[red]✗[/red]", d.message)
    if batch.details:
        console.print(table)
    style = "yellow" if batch.failed else "green"
    console.print(
        f"[{style}]{batch.success} successful, {batch.failed} failed "
        f"out of {batch.total} total[/{style}]"
    )


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    envvar="SERIES_SENTINEL_CONFIG",
    default=None,
    help="Path to series-sentinel.yml config file.",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable debug logging.",
)
@click.version_option(package_name="series-sentinel")
@click.pass_context
def cli(ctx: click.Context, config: str | None, verbose: bool) -> None:
    """Series Sentinel: time-series ingestion from public data providers."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config
    ctx.obj["verbose"] = verbose
    ctx.obj["console"] = console
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# sources
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--json", "as_json", is_flag=True, default=False, help="Output JSON.")
@click.pass_context
def sources(ctx: click.Context, as_json: bool) -> None:
    """List available data sources and whether they are configured."""
    from series_sentinel.sources import create_registry

    config = _load_config(ctx)

    async def _run():
        registry = create_registry(config)
        try:
            return registry.describe()
        finally:
            await registry.close()

    infos = _run_async(_run())
    if as_json:
        click.echo(json.dumps([i.model_dump(mode="json") for i in infos], indent=2))
        return

    table = Table(title="Data Sources")
    table.add_column("Type", style="bold")
    table.add_column("Name")
    table.add_column("API key")
    table.add_column("Configured", justify="center")
    table.add_column("Rate limit")
    for info in infos:
        limit = info.rate_limit
        table.add_row(
            str(info.source_type),
            info.name,
            "required" if info.requires_api_key else "-",
            "[green]✓[/green]" if info.configured else "[red]✗[/red]",
            f"{limit.requests}/{limit.period_seconds:g}s" if limit else "-",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# series management
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("slug")
@click.option("--name", "-n", required=True, help="Display name.")
@click.option(
    "--source",
    "-s",
    "source_type",
    type=click.Choice(_SOURCE_TYPES, case_sensitive=False),
    required=True,
    help="Source type.",
)
@click.option("--set", "settings", multiple=True, help="Source config as key=value (repeatable).")
@click.option("--inactive", is_flag=True, default=False, help="Create the series disabled.")
@click.pass_context
def add(
    ctx: click.Context,
    slug: str,
    name: str,
    source_type: str,
    settings: tuple[str, ...],
    inactive: bool,
) -> None:
    """Create or update a series."""
    from pydantic import ValidationError

    from series_sentinel.core import ConfigError, Series

    config = _load_config(ctx)
    try:
        series = Series(
            slug=slug,
            name=name,
            source_type=source_type.lower(),
            source_config=_parse_settings(settings),
            is_active=not inactive,
        )
    except ValidationError as e:
        raise click.UsageError(str(e)) from e

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.save_series(series)
        finally:
            await store.close()

    try:
        action = _run_async(_run())
    except ConfigError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] Series '{series.slug}' {action}")


@cli.command()
@click.argument("slug")
@click.option("--yes", "-y", is_flag=True, default=False, help="Skip confirmation.")
@click.pass_context
def remove(ctx: click.Context, slug: str, yes: bool) -> None:
    """Delete a series and all of its observations."""
    config = _load_config(ctx)
    if not yes:
        click.confirm(f"Delete series '{slug}' and all its observations?", abort=True)

    async def _run():
        store = await _create_store_async(config)
        try:
            if await store.get_series(slug) is None:
                return None
            return await store.delete_series(slug)
        finally:
            await store.close()

    deleted = _run_async(_run())
    if deleted is None:
        console.print(f"[red]✗ Series '{slug}' not found[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] Series '{slug}' and {deleted} observations deleted")


def _set_active(ctx: click.Context, slug: str, active: bool) -> None:
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.set_series_active(slug, active)
        finally:
            await store.close()

    if not _run_async(_run()):
        console.print(f"[red]✗ Series '{slug}' not found[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] Series '{slug}' {'activated' if active else 'deactivated'}")


@cli.command()
@click.argument("slug")
@click.pass_context
def activate(ctx: click.Context, slug: str) -> None:
    """Include a series in fetches and refreshes again."""
    _set_active(ctx, slug, True)


@cli.command()
@click.argument("slug")
@click.pass_context
def deactivate(ctx: click.Context, slug: str) -> None:
    """Exclude a series from fetches and refreshes, keeping its data."""
    _set_active(ctx, slug, False)


@cli.command(name="list")
@click.option(
    "--source",
    "-s",
    "source_type",
    type=click.Choice(_SOURCE_TYPES, case_sensitive=False),
    default=None,
    help="Filter by source type.",
)
@click.option("--active-only", is_flag=True, default=False, help="Hide inactive series.")
@click.option("--search", "-q", default=None, help="Search name and slug.")
@click.pass_context
def list_cmd(
    ctx: click.Context, source_type: str | None, active_only: bool, search: str | None
) -> None:
    """List series."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            if search:
                found = await store.search_series(search, limit=None, active_only=active_only)
                if source_type:
                    found = [s for s in found if s.source_type == source_type.lower()]
                return found
            return await store.list_series(
                active_only=active_only,
                source_types=[source_type.lower()] if source_type else None,
            )
        finally:
            await store.close()

    series = _run_async(_run())
    if not series:
        console.print("[yellow]No series found.[/yellow]")
        return

    table = Table(title=f"Series ({len(series)})")
    table.add_column("Slug", style="bold")
    table.add_column("Name")
    table.add_column("Source")
    table.add_column("Active", justify="center")
    table.add_column("Last updated")
    for s in series:
        table.add_row(
            s.slug,
            s.name,
            str(s.source_type),
            "✓" if s.is_active else "-",
            s.last_updated.strftime("%Y-%m-%d %H:%M") if s.last_updated else "never",
        )
    console.print(table)


@cli.command()
@click.argument("slug")
@click.option("--limit", "-n", type=int, default=10, help="Latest observations to show.")
@click.pass_context
def show(ctx: click.Context, slug: str, limit: int) -> None:
    """Show one series with stats and its latest observations."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            series = await store.get_series(slug)
            if series is None:
                return None
            return (
                series,
                await store.get_stats(slug),
                await store.get_latest_observations(slug, limit),
            )
        finally:
            await store.close()

    found = _run_async(_run())
    if found is None:
        console.print(f"[red]✗ Series '{slug}' not found[/red]")
        raise SystemExit(1)
    series, stats, latest = found

    table = Table(title=series.name)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Slug", series.slug)
    table.add_row("Source", str(series.source_type))
    for key, value in sorted(series.source_config.items()):
        table.add_row(f"  {key}", value)
    table.add_row("Active", "yes" if series.is_active else "no")
    table.add_row("Last updated", str(series.last_updated or "never"))
    table.add_section()
    table.add_row("Observations", str(stats.count))
    if stats.count:
        table.add_row("Min / Max", f"{stats.min:g} / {stats.max:g}")
        table.add_row("Average", f"{stats.avg:.4g}")
    console.print(table)

    if latest:
        obs_table = Table(title="Latest observations")
        obs_table.add_column("Date")
        obs_table.add_column("Value", justify="right")
        for obs in latest:
            obs_table.add_row(obs.obs_date.isoformat(), f"{obs.value:g}")
        console.print(obs_table)


# ---------------------------------------------------------------------------
# fetching
# ---------------------------------------------------------------------------


@cli.command()
@click.argument("slug")
@click.pass_context
def fetch(ctx: click.Context, slug: str) -> None:
    """Fetch one series now."""
    config = _load_config(ctx)

    async def _run():
        async with _runtime(config) as (_, collector, _scheduler):
            return await collector.fetch_series(slug)

    result = _run_async(_run())
    if not result.ok:
        console.print(f"[red]✗ {slug}: {result.message}[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] {slug}: {result.message}")


@cli.command()
@click.option(
    "--frequency",
    "-f",
    type=click.Choice(_FREQUENCIES, case_sensitive=False),
    default=None,
    help="Only refresh series not updated within this window.",
)
@click.option(
    "--source",
    "-s",
    "source_types",
    type=click.Choice(_SOURCE_TYPES, case_sensitive=False),
    multiple=True,
    help="Only refresh these source types (repeatable).",
)
@click.pass_context
def refresh(ctx: click.Context, frequency: str | None, source_types: tuple[str, ...]) -> None:
    """Refresh active series sequentially with per-source pacing."""
    if frequency and source_types:
        raise click.UsageError("--frequency and --source are mutually exclusive")
    config = _load_config(ctx)

    async def _run():
        async with _runtime(config) as (_, collector, _scheduler):
            if frequency:
                return await collector.refresh_by_frequency(frequency.lower())
            if source_types:
                return await collector.refresh_by_source_types([t.lower() for t in source_types])
            return await collector.refresh_all()

    with console.status("Refreshing series..."):
        batch = _run_async(_run())
    _print_batch(batch)


@cli.command()
@click.argument("source_type", type=click.Choice(_SOURCE_TYPES, case_sensitive=False))
@click.option("--set", "settings", multiple=True, help="Source config as key=value (repeatable).")
@click.option("--limit", "-n", type=int, default=10, help="Points to show.")
@click.pass_context
def preview(ctx: click.Context, source_type: str, settings: tuple[str, ...], limit: int) -> None:
    """Dry-run a source configuration without storing anything."""
    config = _load_config(ctx)
    source_config = _parse_settings(settings)

    async def _run():
        async with _runtime(config) as (_, collector, _scheduler):
            return await collector.preview_data(source_type.lower(), source_config, limit)

    result = _run_async(_run())
    if not result.ok:
        console.print(f"[red]✗ {result.message}[/red]")
        raise SystemExit(1)

    console.print(f"[green]✓[/green] {result.message} ({result.start} to {result.end})")
    table = Table(title=f"First {len(result.points)}")
    table.add_column("Date")
    table.add_column("Value", justify="right")
    for obs in result.points:
        table.add_row(obs.obs_date.isoformat(), f"{obs.value:g}")
    console.print(table)


@cli.command(name="search-fred")
@click.argument("query")
@click.option("--limit", "-n", type=int, default=20, help="Results to show.")
@click.pass_context
def search_fred(ctx: click.Context, query: str, limit: int) -> None:
    """Search FRED series by keyword."""
    from series_sentinel.core import SeriesSentinelError
    from series_sentinel.sources import create_registry

    config = _load_config(ctx)

    async def _run():
        registry = create_registry(config)
        try:
            return await registry.get("fred").search(query, limit)
        finally:
            await registry.close()

    try:
        results = _run_async(_run())
    except SeriesSentinelError as e:
        console.print(f"[red]✗ {e}[/red]")
        raise SystemExit(1)
    if not results:
        console.print("[yellow]No FRED series found.[/yellow]")
        return

    table = Table(title=f"FRED: {query}")
    table.add_column("Series ID", style="bold")
    table.add_column("Title")
    table.add_column("Frequency")
    table.add_column("Units")
    for r in results:
        table.add_row(r["id"] or "", r["title"] or "", r["frequency"] or "", r["units"] or "")
    console.print(table)


@cli.command(name="test-source")
@click.argument("source_type", type=click.Choice(_SOURCE_TYPES, case_sensitive=False))
@click.option("--set", "settings", multiple=True, help="Source config as key=value (repeatable).")
@click.pass_context
def test_source(ctx: click.Context, source_type: str, settings: tuple[str, ...]) -> None:
    """Run a lightweight connection test for a source configuration."""
    config = _load_config(ctx)
    source_config = _parse_settings(settings)

    async def _run():
        async with _runtime(config) as (_, collector, _scheduler):
            return await collector.test_connection(source_type.lower(), source_config)

    result = _run_async(_run())
    if not result.ok:
        console.print(f"[red]✗ {result.message}[/red]")
        raise SystemExit(1)
    console.print(f"[green]✓[/green] {result.message}")


# ---------------------------------------------------------------------------
# scheduling
# ---------------------------------------------------------------------------


@cli.command(name="run-job")
@click.argument("bucket", type=click.Choice(_BUCKETS, case_sensitive=False))
@click.pass_context
def run_job(ctx: click.Context, bucket: str) -> None:
    """Run one cadence bucket now (hourly, daily, weekly, cleanup)."""
    config = _load_config(ctx)

    async def _run():
        async with _runtime(config) as (_, _collector, scheduler):
            return await scheduler.manual_trigger(bucket.lower())

    with console.status(f"Running {bucket} job..."):
        message = _run_async(_run())
    console.print(f"[green]✓[/green] {message}")


@cli.command(name="auto-update")
@click.argument("state", type=click.Choice(("on", "off"), case_sensitive=False))
@click.pass_context
def auto_update(ctx: click.Context, state: str) -> None:
    """Turn automatic updates on or off. A running scheduler picks this up on its next poll."""
    config = _load_config(ctx)

    async def _run():
        async with _runtime(config) as (_, _collector, scheduler):
            return await scheduler.set_auto_update(state.lower() == "on")

    console.print(f"[green]✓[/green] {_run_async(_run())}")


@cli.command()
@click.pass_context
def schedule(ctx: click.Context) -> None:
    """Run the scheduler loop in the foreground until interrupted."""
    config = _load_config(ctx)

    async def _run():
        async with _runtime(config) as (_, _collector, scheduler):
            if not scheduler.auto_update:
                console.print(
                    "[yellow]Automatic updates are disabled; waiting for them to be enabled.[/yellow]"
                )
            for trigger in scheduler.status():
                if trigger.scheduled:
                    console.print(
                        f"  {trigger.bucket}: next run {trigger.next_run:%Y-%m-%d %H:%M} UTC"
                    )
            await scheduler.run_forever()

    console.print("Scheduler started. Press Ctrl+C to stop.")
    try:
        _run_async(_run())
    except KeyboardInterrupt:
        console.print("Scheduler stopped.")


# ---------------------------------------------------------------------------
# logs
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--limit", "-n", type=int, default=20, help="Entries to show.")
@click.option(
    "--status",
    "-s",
    "status_filter",
    type=click.Choice(["success", "warning", "error"]),
    default=None,
)
@click.option("--series", "series_slug", default=None, help="Filter by series slug.")
@click.option("--days", type=int, default=None, help="Only the last N days.")
@click.option("--search", "-q", default=None, help="Search action and message.")
@click.pass_context
def logs(
    ctx: click.Context,
    limit: int,
    status_filter: str | None,
    series_slug: str | None,
    days: int | None,
    search: str | None,
) -> None:
    """Show the audit log, newest first."""
    config = _load_config(ctx)

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.get_logs(
                limit=limit,
                series_slug=series_slug,
                status=status_filter,
                days=days,
                search=search,
            )
        finally:
            await store.close()

    entries = _run_async(_run())
    if not entries:
        console.print("[yellow]No log entries.[/yellow]")
        return

    table = Table(title="Audit log")
    table.add_column("Time")
    table.add_column("Status")
    table.add_column("Action", style="bold")
    table.add_column("Series")
    table.add_column("Message")
    for e in entries:
        style = _STATUS_STYLE.get(str(e.status), "white")
        table.add_row(
            e.created_at.strftime("%Y-%m-%d %H:%M:%S"),
            f"[{style}]{e.status}[/{style}]",
            e.action,
            e.series_slug or "",
            e.message,
        )
    console.print(table)


@cli.command(name="prune-logs")
@click.option("--days", type=int, default=None, help="Retention in days (default from config).")
@click.pass_context
def prune_logs(ctx: click.Context, days: int | None) -> None:
    """Delete audit log entries older than the retention window."""
    config = _load_config(ctx)
    retention = days or config.scheduler.log_retention_days

    async def _run():
        store = await _create_store_async(config)
        try:
            return await store.prune_logs(retention)
        finally:
            await store.close()

    deleted = _run_async(_run())
    console.print(f"[green]✓[/green] Cleaned up {deleted} log entries older than {retention} days")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------


@cli.command()
@click.option("--host", type=str, default=None, help="Bind address (default from config).")
@click.option("--port", "-p", type=int, default=None, help="Port number (default from config).")
@click.option("--reload", is_flag=True, default=False, help="Auto-reload on code changes.")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None, reload: bool) -> None:
    """Start the REST API server."""
    import uvicorn

    config = _load_config(ctx)
    host = host or config.api.host
    port = port or config.api.port

    console.print(f"Starting series-sentinel API on [bold]{host}:{port}[/bold]")
    console.print(f"API docs: http://{host}:{port}/docs")

    uvicorn.run(
        "series_sentinel.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
    )


# ---------------------------------------------------------------------------
# status
# ---------------------------------------------------------------------------


@cli.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show dashboard counters and scheduler state."""
    config = _load_config(ctx)

    async def _run():
        async with _runtime(config) as (store, _collector, scheduler):
            return await store.dashboard_stats(), scheduler.auto_update, scheduler.status()

    stats, auto_update, triggers = _run_async(_run())

    table = Table(title="Series Sentinel Status")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Database path", config.storage.sqlite_path)
    table.add_section()
    table.add_row("Total series", str(stats.total_series))
    table.add_row("Active series", str(stats.active_series))
    table.add_row("Observations", str(stats.total_observations))
    table.add_row("Latest observation", str(stats.latest_observation or "N/A"))
    table.add_row("Errors (7 days)", str(stats.recent_errors))
    table.add_section()
    table.add_row("Auto-update", "on" if auto_update else "off")
    for t in triggers:
        table.add_row(
            f"Next {t.bucket}",
            f"in {t.human_time}" if t.scheduled else "not scheduled",
        )
    console.print(table)


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def main() -> None:
    """Main entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
