"""Sim subcommand: seed, run, stats, fund, reset."""

from __future__ import annotations

import asyncio
import random
import signal
import sys

import typer

from winzen.simulation.config import SimulationConfig
from winzen.simulation.engine import SimulationEngine
from winzen.simulation.maintenance import fund_bots, reset_simulation
from winzen.simulation.seed import seed_bots
from winzen.simulation.stats import sim_stats
from winzen.storage.db import get_connection, init_schema

app = typer.Typer(help="Bot trading simulation")


@app.command("seed")
def seed(
    ctx: typer.Context,
    count: int = typer.Option(100, "--count", "-n", help="Number of bots to create"),
    seed_value: int | None = typer.Option(None, "--seed", help="RNG seed for reproducible names"),
) -> None:
    """Create bot users split evenly across strategies. Safe to re-run."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        bots = seed_bots(conn, count, rng=random.Random(seed_value), initial_elo=settings.initial_elo)
        typer.echo(f"Seeded {len(bots)} bots ({count - len(bots)} slots already filled).")
    finally:
        conn.close()


@app.command("run")
def run_sim(
    ctx: typer.Context,
    ticks: int | None = typer.Option(None, "--ticks", "-t", help="Stop after N ticks (default: until Ctrl+C)"),
    seed_value: int | None = typer.Option(None, "--seed", help="RNG seed"),
) -> None:
    """Run the simulation loop in the foreground."""
    settings = ctx.obj["settings"]
    config = SimulationConfig.from_settings(settings)
    conn = get_connection(settings.db_path)
    init_schema(conn)
    engine = SimulationEngine(conn, config, settings=settings, rng=random.Random(seed_value))
    stop_event = asyncio.Event()

    def shutdown() -> None:
        stop_event.set()

    loop = asyncio.new_event_loop()
    if sys.platform != "win32":
        loop.add_signal_handler(signal.SIGINT, shutdown)
        loop.add_signal_handler(signal.SIGTERM, shutdown)
    try:
        typer.echo("Starting simulation (Ctrl+C to stop)...")
        loop.run_until_complete(engine.run(stop_event=stop_event, max_ticks=ticks))
    except KeyboardInterrupt:
        pass
    finally:
        conn.close()
        loop.close()
    typer.echo(f"Stopped after {engine.telemetry.total_trades} trades.")


@app.command("stats")
def stats(ctx: typer.Context) -> None:
    """Bot population, trade counts, and the busiest markets."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        s = sim_stats(conn)
        typer.echo(f"Bots: {s['bot_count']}  Bot balance total: {s['bot_balance_total']}")
        typer.echo(f"Bot trades: {s['total_bot_trades']} (last 5m: {s['recent_bot_trades']})")
        typer.echo(f"Active yes/no markets: {s['active_markets']}")
        for m in s["top_markets"]:
            typer.echo(
                f"  {m['market_id']}  yes={m['yes_probability']:5.1f}%  vol={m['total_volume']:<8} "
                f"bot trades={m['bot_trade_count']:<5} {m['title'][:40]}"
            )
    finally:
        conn.close()


@app.command("fund")
def fund(
    ctx: typer.Context,
    seed_value: int | None = typer.Option(None, "--seed", help="RNG seed"),
) -> None:
    """Refill every bot's balance so the simulation keeps trading."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        config = SimulationConfig.from_settings(settings)
        n = fund_bots(conn, config, rng=random.Random(seed_value))
        typer.echo(f"Funded {n} bots to {config.fund_balance_min:,}-{config.fund_balance_max:,} coins.")
    finally:
        conn.close()


@app.command("reset")
def reset(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip the confirmation prompt"),
) -> None:
    """Delete all bots, their bets and ledger rows, and rebuild affected market stats."""
    settings = ctx.obj["settings"]
    conn = get_connection(settings.db_path)
    init_schema(conn)
    try:
        if not yes:
            typer.confirm("Permanently delete every bot user and bot bet?", abort=True)
        report = reset_simulation(conn, settings=settings)
        typer.echo(
            f"Deleted {report.bots} bots, {report.positions} bot bets, "
            f"{report.transactions} bot transactions, {report.activities} feed items."
        )
        typer.echo(f"Recalculated {report.markets_recomputed} markets.")
    finally:
        conn.close()
