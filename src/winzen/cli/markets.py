"""Markets subcommand: create, list, show, resolve."""

from __future__ import annotations

import time

import typer

from winzen.errors import WinzenError
from winzen.ledger.markets import create_market
from winzen.settlement.engine import resolve as resolve_market
from winzen.storage.db import get_connection, init_schema
from winzen.storage.markets import get_market
from winzen.storage.markets import list_markets as storage_list_markets

app = typer.Typer(help="Market creation, listing, and resolution")


@app.command("create")
def create(
    ctx: typer.Context,
    title: str = typer.Argument(..., help="Market question"),
    outcome: list[str] = typer.Option(["Yes", "No"], "--outcome", "-o", help="Outcome label (repeat)"),
    closes_in_hours: float = typer.Option(24.0, "--closes-in", help="Hours until trading closes"),
    creator: str | None = typer.Option(None, "--creator", help="Creator user ID (pays the deposit)"),
    liquidity: float | None = typer.Option(None, "--liquidity", "-l", help="AMM depth (default from config)"),
    category: str = typer.Option("culture", "--category", help="Category tag"),
) -> None:
    """Create a market. Two outcomes make a YES/NO market."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        closes_at = int(time.time() * 1000 + closes_in_hours * 3600 * 1000)
        market = create_market(
            conn,
            creator,
            title,
            outcome,
            closes_at,
            liquidity=liquidity,
            category=category,
            settings=settings,
        )
        typer.echo(f"Market id: {market.market_id}  Type: {market.market_type}  Liquidity: {market.liquidity}")
        for o in market.outcomes:
            typer.echo(f"  {o.outcome_id}  {o.label}{'  (yes)' if o.is_yes else ''}")
    except WinzenError as e:
        typer.echo(f"Error: {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("list")
def list_markets(
    ctx: typer.Context,
    open_only: bool = typer.Option(False, "--open", help="Show only markets accepting trades"),
) -> None:
    """List markets by volume."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        now_ms = int(time.time() * 1000)
        rows = storage_list_markets(conn, open_only=open_only, now_ms=now_ms)
        if not rows:
            typer.echo("No markets.")
            return
        for m in rows:
            title = (m.title or "")[:50]
            typer.echo(
                f"{m.market_id}  {m.status(now_ms).value:<14}  yes={m.current_probability:5.1f}%  "
                f"vol={m.total_volume:<8}  {title}"
            )
    finally:
        conn.close()


@app.command("show")
def show(ctx: typer.Context, market_id: str = typer.Argument(..., help="Market ID")) -> None:
    """Show market state and outcomes."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        m = get_market(conn, market_id)
        if not m:
            typer.echo(f"Market not found: {market_id}")
            raise typer.Exit(1)
        typer.echo(f"{m.title}  [{m.status(int(time.time() * 1000)).value}]")
        typer.echo(f"Yes probability: {m.current_probability:.1f}%  Liquidity: {m.liquidity}")
        typer.echo(f"Volume: {m.total_volume}  Participants: {m.participant_count}")
        for o in m.outcomes:
            marker = "  <- winner" if o.outcome_id == m.resolved_outcome_id else ""
            typer.echo(f"  {o.outcome_id}  {o.label}{marker}")
    finally:
        conn.close()


@app.command("resolve")
def resolve(
    ctx: typer.Context,
    market_id: str = typer.Argument(..., help="Market ID"),
    outcome: str = typer.Argument(..., help="Winning outcome ID or label (e.g. yes)"),
    force: bool = typer.Option(False, "--force", help="Admin: resolve before the close time"),
) -> None:
    """Resolve a market and settle every open position."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        report = resolve_market(conn, market_id, outcome, force=force, settings=settings)
        typer.echo(f"Resolved {market_id}: {report.winning_label}")
        typer.echo(f"Active stake: {report.total_stake}  Winners: {len(report.payouts)}")
        typer.echo(f"Paid out: {sum(report.payouts.values())}  Near misses: {len(report.near_miss_user_ids)}")
        typer.echo(f"Deposit refunded: {report.deposit_refunded}  Creator reward: {report.creator_reward}")
        if report.skipped_user_ids:
            typer.echo(f"Skipped (missing users): {', '.join(report.skipped_user_ids)}")
    except WinzenError as e:
        typer.echo(f"Error: {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()
