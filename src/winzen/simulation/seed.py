"""Bot seeding with human-looking usernames. Strategy is an explicit column, never encoded in the name."""

from __future__ import annotations

import random
from typing import TYPE_CHECKING

import structlog

from winzen.models import User
from winzen.simulation.actors import Strategy
from winzen.storage.db import transaction
from winzen.storage.users import insert_user, list_user_names, taken_bot_slots

if TYPE_CHECKING:
    from duckdb import DuckDBPyConnection

log = structlog.get_logger(__name__)

ADJECTIVES = [
    "Silent", "Neon", "Crimson", "Rapid", "Lucky", "Shadow", "Golden",
    "Cosmic", "Blazing", "Iron", "Swift", "Dark", "Electric", "Frozen",
    "Wild", "Lunar", "Solar", "Atomic", "Mystic", "Stellar", "Turbo",
    "Chrome", "Onyx", "Phantom", "Hyper", "Savage", "Noble", "Hollow",
    "Ancient", "Velvet", "Jade", "Obsidian", "Ember", "Primal", "Digital",
]

NOUNS = [
    "Tiger", "Falcon", "Orbit", "Vortex", "Hawk", "Wolf", "Nova",
    "Phoenix", "Storm", "Raven", "Comet", "Blade", "Echo", "Pulse",
    "Ridge", "Surge", "Drift", "Blaze", "Frost", "Dusk", "Panda",
    "Cobra", "Lynx", "Crest", "Flare", "Shift", "Vault", "Spark",
    "Cipher", "Matrix", "Zenith", "Apex", "Nexus", "Vector", "Circuit",
]

BALANCE_RANGE = (5_000, 20_000)


def generate_bot_name(used: set[str], rng: random.Random, max_attempts: int = 2000) -> str:
    """Adjective + noun, with a two-digit suffix 40% of the time and after any collision. Adds to ``used``."""
    for attempt in range(max_attempts):
        suffix = ""
        if attempt > 0 or rng.random() < 0.4:
            suffix = str(rng.randint(10, 99))
        name = f"{rng.choice(ADJECTIVES)}{rng.choice(NOUNS)}{suffix}"
        if name not in used:
            used.add(name)
            return name
    raise RuntimeError("Could not generate a unique bot name")


def strategy_for_index(i: int, count: int) -> Strategy:
    """Split bots into equal strategy bands by seed index (0-based)."""
    strategies = list(Strategy)
    return strategies[min(len(strategies) - 1, i * len(strategies) // max(1, count))]


def seed_bots(
    conn: DuckDBPyConnection,
    count: int,
    rng: random.Random | None = None,
    initial_elo: int = 1000,
) -> list[User]:
    """Fill bot slots 1..``count`` in one transaction. Slots that already exist are skipped,
    so re-running with the same count creates nothing. Returns only the new bots."""
    rng = rng or random.Random()
    used = list_user_names(conn)
    taken = taken_bot_slots(conn)
    created = []
    with transaction(conn):
        for i in range(count):
            if i + 1 in taken:
                continue
            created.append(
                insert_user(
                    conn,
                    name=generate_bot_name(used, rng),
                    balance=rng.randint(*BALANCE_RANGE),
                    elo_rating=initial_elo,
                    is_bot=True,
                    bot_strategy=strategy_for_index(i, count).value,
                    bot_slot=i + 1,
                )
            )
    log.info("bots_seeded", created=len(created), skipped=count - len(created))
    return created
