"""Trade subcommand: open, cash-out, portfolio."""

from __future__ import annotations

import typer

from winzen.errors import WinzenError
from winzen.ledger.positions import cash_out as ledger_cash_out
from winzen.ledger.positions import open_position, portfolio as ledger_portfolio
from winzen.models import Activity
from winzen.storage.activity import append_activity
from winzen.storage.db import get_connection, init_schema
from winzen.storage.markets import get_market
from winzen.storage.users import get_user

app = typer.Typer(help="Place bets, cash out, and value open positions")


@app.command("open")
def open_cmd(
    ctx: typer.Context,
    user_id: str = typer.Argument(..., help="User ID"),
    market_id: str = typer.Argument(..., help="Market ID"),
    outcome: str = typer.Argument(..., help="Outcome ID or label"),
    amount: int = typer.Argument(..., help="Coins to stake"),
) -> None:
    """Open (or add to) a position."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        market = get_market(conn, market_id)
        if not market:
            typer.echo(f"Market not found: {market_id}")
            raise typer.Exit(1)
        chosen = market.find_outcome(outcome)
        if not chosen:
            typer.echo(f"Invalid outcome: {outcome}")
            raise typer.Exit(1)
        result = open_position(conn, user_id, market_id, chosen.outcome_id, amount, settings=settings)
        user = get_user(conn, user_id)
        append_activity(
            conn,
            Activity(
                type="TRADE",
                user_id=user_id,
                username=user.name if user else None,
                market_id=market_id,
                market_title=market.title,
                side=chosen.label,
                amount=amount,
                price=result.entry_probability,
            ),
        )
        typer.echo(f"Position: {result.position_id}")
        typer.echo(f"Entry: {result.entry_probability:.2f}%  Shares: {result.shares:.4f}")
        typer.echo(f"Market yes probability now {result.new_probability:.2f}%")
    except WinzenError as e:
        typer.echo(f"Error: {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("cash-out")
def cash_out(
    ctx: typer.Context,
    position_id: str = typer.Argument(..., help="Position ID"),
) -> None:
    """Close a position at the live price."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        result = ledger_cash_out(conn, position_id)
        typer.echo(f"Cashed out {position_id}: {result.payout} coins at {result.exit_probability:.2f}%")
    except WinzenError as e:
        typer.echo(f"Error: {e.message}")
        raise typer.Exit(1)
    finally:
        conn.close()


@app.command("portfolio")
def portfolio(ctx: typer.Context, user_id: str = typer.Argument(..., help="User ID")) -> None:
    """Open positions with current value and unrealized P&L."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        views = ledger_portfolio(conn, user_id)
        if not views:
            typer.echo("No open positions.")
            return
        for v in views:
            typer.echo(
                f"{v.position.position_id}  {v.outcome_label:<8} stake={v.position.amount:<6} "
                f"value={v.current_value:9.2f}  pnl={v.unrealized_pnl:+9.2f}  {v.market_title[:40]}"
            )
    finally:
        conn.close()
