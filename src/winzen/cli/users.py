"""Users subcommand: create, show."""

from __future__ import annotations

import typer

from winzen.storage.db import get_connection, init_schema
from winzen.storage.users import get_user, insert_user

app = typer.Typer(help="User accounts (balance, rating, counters)")


@app.command("create")
def create(
    ctx: typer.Context,
    name: str = typer.Argument(..., help="Display name"),
    balance: int | None = typer.Option(None, "--balance", "-b", help="Starting balance (default from config)"),
) -> None:
    """Create a user with the configured starting balance."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        user = insert_user(
            conn,
            name=name,
            balance=balance if balance is not None else settings.initial_balance,
            elo_rating=settings.initial_elo,
        )
        typer.echo(f"User id: {user.user_id}  Name: {user.name}  Balance: {user.balance}")
    finally:
        conn.close()


@app.command("show")
def show(ctx: typer.Context, user_id: str = typer.Argument(..., help="User ID")) -> None:
    """Show balance, ELO, streak, and counters."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        user = get_user(conn, user_id)
        if not user:
            typer.echo(f"User not found: {user_id}")
            raise typer.Exit(1)
        typer.echo(f"{user.name} ({user.user_id}){' [bot]' if user.is_bot else ''}")
        typer.echo(f"Balance: {user.balance}  ELO: {user.elo_rating}  Level: {user.level} ({user.xp} xp)")
        typer.echo(
            f"Wins: {user.total_wins}  Losses: {user.total_losses}  "
            f"Streak: {user.win_streak}  Profit: {user.total_profit}"
        )
    finally:
        conn.close()
