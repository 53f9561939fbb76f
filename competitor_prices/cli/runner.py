# competitor_prices/cli/runner.py

"""Headless CLI commands built on the async price service."""

import asyncio
import json
import logging
import sys
from datetime import datetime

from rich.console import Console
from rich.table import Table

from competitor_prices.config.settings import Settings
from competitor_prices.models.price_snapshot import (
    PriceSnapshot,
    PriceState,
)
from competitor_prices.repositories.product_url_repository import (
    ProductUrlRepository,
)
from competitor_prices.services.price_scraper_service import (
    build_price_scraper_service,
)
from competitor_prices.storage.local_storage import LocalStorage
from competitor_prices.storage.price_cache import PriceCache
from competitor_prices.storage.price_history_db import PriceHistoryDB

logger = logging.getLogger("competitor_prices.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)

_STATE_LABELS: dict[PriceState, str] = {
    PriceState.LIVE: "[green]LIVE[/green]",
    PriceState.STALE: "[yellow]STALE[/yellow]",
    PriceState.UNKNOWN: "[red]UNKNOWN[/red]",
}


def snapshot_to_dicts(
    snapshot: PriceSnapshot,
) -> list[dict[str, object]]:
    """Serialise a snapshot to plain dicts for JSON output."""
    return [
        {
            "competitor": cp.competitor,
            "price": str(cp.price),
            "currency": Settings.CURRENCY,
            "sourceUrl": cp.source_url,
            "lastUpdated": cp.last_updated.isoformat(),
            "isLive": cp.is_live,
            "state": cp.state.name.lower(),
        }
        for cp in sorted(
            snapshot.values(), key=lambda c: c.competitor.lower()
        )
    ]


def build_table(snapshot: PriceSnapshot, title: str) -> Table:
    """Build a Rich table of competitor prices, cheapest known first."""
    entries = sorted(
        snapshot.values(),
        key=lambda c: (
            c.state is PriceState.UNKNOWN,
            c.price,
        ),
    )
    table = Table(
        title=title,
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Competitor", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Status", justify="center")
    table.add_column("Last updated", style="dim")
    table.add_column("URL", overflow="fold", style="dim")

    for cp in entries:
        price_str = (
            "—"
            if cp.state is PriceState.UNKNOWN
            else f"{Settings.CURRENCY} {cp.price:,.2f}"
        )
        table.add_row(
            cp.competitor,
            price_str,
            _STATE_LABELS[cp.state],
            cp.last_updated.strftime("%Y-%m-%d %H:%M:%S"),
            cp.source_url,
        )
    return table


def _emit(
    snapshot: PriceSnapshot, output_format: str, title: str,
) -> None:
    """Write a snapshot to stdout as a table or JSON."""
    if output_format == "table":
        Console().print(build_table(snapshot, title))
    else:
        json.dump(
            snapshot_to_dicts(snapshot),
            sys.stdout,
            ensure_ascii=False,
            indent=2,
        )
        sys.stdout.write("\n")


async def cli_fetch(
    product_id: str,
    model: str,
    brand: str,
    output_format: str,
) -> int:
    """Run one refresh cycle and print the merged snapshot."""
    storage = LocalStorage()
    history = PriceHistoryDB()
    try:
        service = build_price_scraper_service(storage, history)
        _err.print(
            f"[bold]Fetching:[/bold] {brand} {model}  "
            f"[dim]id={product_id}[/dim]"
        )
        snapshot = await service.fetch_competitor_prices(
            product_id, model, brand,
        )
    finally:
        history.close()
        storage.close()

    if not snapshot:
        _err.print("[yellow]No competitor prices known.[/yellow]")
        return 1

    live = sum(1 for cp in snapshot.values() if cp.is_live)
    _err.print(
        f"[green]✓ {live} live[/green] of {len(snapshot)} competitors"
    )
    _emit(snapshot, output_format, f"Competitor prices: {brand} {model}")
    return 0


async def cli_show(product_id: str, output_format: str) -> int:
    """Print the cached snapshot without touching the network."""
    storage = LocalStorage()
    try:
        snapshot = await asyncio.to_thread(
            PriceCache(storage).get, product_id,
        )
    finally:
        storage.close()
    if not snapshot:
        _err.print(
            f"[yellow]Nothing cached for product {product_id}.[/yellow]"
        )
        return 1
    _emit(snapshot, output_format, f"Cached prices: {product_id}")
    return 0


async def cli_watch(
    product_id: str,
    model: str,
    brand: str,
    timeout: float | None,
) -> int:
    """Show cached prices now, refresh in the background, poll for it."""
    storage = LocalStorage()
    history = PriceHistoryDB()
    try:
        service = build_price_scraper_service(storage, history)
        started = datetime.now()

        cached = await service.get_last_fetched_prices(product_id)
        if cached:
            Console().print(
                build_table(cached, "Last known prices")
            )

        refresh = asyncio.create_task(
            service.fetch_competitor_prices(product_id, model, brand)
        )

        def _progress(snapshot: PriceSnapshot | None) -> None:
            live = sum(
                1 for cp in (snapshot or {}).values()
                if cp.is_live and cp.last_updated >= started
            )
            _err.print(
                f"[dim]{live}/{len(snapshot or {})} refreshed...[/dim]"
            )

        snapshot, timed_out = await service.wait_for_live_prices(
            product_id, since=started, timeout=timeout,
            on_update=_progress,
        )
        if not timed_out or refresh.done():
            snapshot = await refresh
            timed_out = False
        else:
            refresh.cancel()
    finally:
        history.close()
        storage.close()

    if timed_out:
        _err.print(
            "[yellow]Timed out, showing last known prices.[/yellow]"
        )
    if not snapshot:
        _err.print("[yellow]No competitor prices known.[/yellow]")
        return 1
    Console().print(build_table(snapshot, "Competitor prices"))
    return 0


def cli_history(
    product_id: str, competitor: str | None, output_format: str,
) -> int:
    """Print recorded live observations for a product."""
    db = PriceHistoryDB()
    try:
        observations = db.get_price_history(product_id, competitor)
    finally:
        db.close()
    if not observations:
        _err.print("[yellow]No price history recorded.[/yellow]")
        return 1

    if output_format != "table":
        json.dump(
            [
                {
                    "competitor": o.competitor,
                    "price": str(o.price),
                    "sourceUrl": o.source_url,
                    "observedAt": o.observed_at.isoformat(),
                }
                for o in observations
            ],
            sys.stdout,
            indent=2,
        )
        sys.stdout.write("\n")
        return 0

    table = Table(
        title=f"Price history: {product_id}",
        title_style="bold cyan",
    )
    table.add_column("Observed", style="dim")
    table.add_column("Competitor", style="magenta")
    table.add_column("Price", justify="right", style="green")
    for o in observations:
        table.add_row(
            o.observed_at.strftime("%Y-%m-%d %H:%M:%S"),
            o.competitor,
            f"{Settings.CURRENCY} {o.price:,.2f}",
        )
    Console().print(table)
    return 0


def cli_set_url(product_id: str, competitor: str, url: str) -> int:
    """Save a competitor listing URL for a product."""
    storage = LocalStorage()
    try:
        ProductUrlRepository(storage).add_competitor_url(
            product_id, competitor, url,
        )
    finally:
        storage.close()
    _err.print(f"[green]✓ {competitor} → {url}[/green]")
    return 0


def cli_clear(product_id: str | None) -> int:
    """Clear one product's cached prices, or all of them."""
    storage = LocalStorage()
    try:
        cache = PriceCache(storage)
        if product_id is None:
            count = cache.clear_all()
            _err.print(f"[green]✓ Cleared {count} snapshots[/green]")
        else:
            cache.clear(product_id)
            _err.print(
                f"[green]✓ Cleared cached prices for {product_id}[/green]"
            )
    finally:
        storage.close()
    return 0


_HEALTH_LABELS: dict[str, str] = {
    "ok": "[green]✅ OK[/green]",
    "slow": "[yellow]⚠️  SLOW[/yellow]",
    "skipped": "[dim]– SKIPPED[/dim]",
    "blocked": "[magenta]⛔ BLOCKED[/magenta]",
    "down": "[red]❌ DOWN[/red]",
}


async def run_health_check() -> int:
    """Check every marketplace homepage; exit 1 if any is unusable."""
    from competitor_prices.services.health_checker import HealthChecker

    _err.print("[bold]Running marketplace health check...[/bold]")
    results = await HealthChecker().check_all()

    table = Table(
        title="Marketplace Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    for header, justify in (
        ("Source", "left"),
        ("Status", "center"),
        ("Latency", "right"),
        ("Notes", "left"),
    ):
        table.add_column(header, justify=justify)  # type: ignore[arg-type]

    for r in results:
        table.add_row(
            r.source_id,
            _HEALTH_LABELS.get(r.status, r.status),
            f"{r.latency_ms:.0f}ms" if r.latency_ms > 0 else "—",
            r.message,
        )

    Console().print(table)
    return 1 if any(r.status in ("down", "blocked") for r in results) else 0
