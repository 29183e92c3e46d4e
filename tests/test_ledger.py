"""Position ledger: opening, validation, cash-out, and market creation."""

import random
import time

import pytest

from winzen.errors import NotFoundError, StateConflictError, ValidationError
from winzen.ledger.markets import create_market
from winzen.ledger.positions import cash_out, open_position, portfolio
from winzen.storage.audit import list_snapshots, list_transactions
from winzen.storage.markets import get_market
from winzen.storage.positions import get_position
from winzen.storage.users import get_user


def _ids(market):
    yes = market.yes_outcome
    no = next(o for o in market.outcomes if not o.is_yes)
    return yes.outcome_id, no.outcome_id


def test_open_position_reprices_and_debits(temp_db, make_user, make_market, locks):
    user = make_user(balance=1000)
    market = make_market(liquidity=5000)
    yes, _ = _ids(market)

    result = open_position(temp_db, user.user_id, market.market_id, yes, 500, locks=locks)

    assert result.new_probability == pytest.approx(60)
    assert result.entry_probability == pytest.approx(60)
    assert result.shares == pytest.approx(500 / 60)
    stored = get_market(temp_db, market.market_id)
    assert stored.current_probability == pytest.approx(60)
    assert stored.total_volume == 500
    assert stored.participant_count == 1
    after = get_user(temp_db, user.user_id)
    assert after.balance == 500
    assert after.xp == 20
    txns = list_transactions(temp_db, user.user_id)
    assert [(t.type, t.amount, t.balance_after) for t in txns] == [("bet", -500, 500)]


def test_no_side_entry_uses_complement(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market(liquidity=5000)
    _, no = _ids(market)
    result = open_position(temp_db, user.user_id, market.market_id, no, 500, locks=locks)
    assert result.new_probability == pytest.approx(40)
    assert result.entry_probability == pytest.approx(60)


def test_snapshots_written_per_outcome(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market(liquidity=5000)
    yes, no = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, yes, 500, locks=locks)
    snaps = {s.outcome_id: s.probability for s in list_snapshots(temp_db, market.market_id)}
    assert snaps[yes] == pytest.approx(0.6)
    assert snaps[no] == pytest.approx(0.4)


def test_adding_to_position_keeps_participant_count(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    assert get_market(temp_db, market.market_id).participant_count == 1


def test_side_switch_rejected(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, no = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    with pytest.raises(ValidationError, match='already bet on "Yes"'):
        open_position(temp_db, user.user_id, market.market_id, no, 100, locks=locks)
    assert get_user(temp_db, user.user_id).balance == 900


@pytest.mark.parametrize("amount", [0, -5, 2.5, True])
def test_invalid_amount_rejected(temp_db, make_user, make_market, locks, amount):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    with pytest.raises(ValidationError):
        open_position(temp_db, user.user_id, market.market_id, yes, amount, locks=locks)


def test_insufficient_balance_changes_nothing(temp_db, make_user, make_market, locks):
    user = make_user(balance=50)
    market = make_market()
    yes, _ = _ids(market)
    with pytest.raises(ValidationError, match="Insufficient balance"):
        open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    assert get_user(temp_db, user.user_id).balance == 50
    assert get_market(temp_db, market.market_id).current_probability == 50


def test_unknown_outcome_and_market(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    with pytest.raises(ValidationError):
        open_position(temp_db, user.user_id, market.market_id, "nope", 10, locks=locks)
    with pytest.raises(NotFoundError):
        open_position(temp_db, user.user_id, "missing", "nope", 10, locks=locks)


def test_closed_market_rejects_bets(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    with pytest.raises(StateConflictError, match="closed"):
        open_position(temp_db, user.user_id, market.market_id, yes, 10, now_ms=market.closes_at, locks=locks)


def test_cash_out_floors_payout(temp_db, make_user, make_market, locks):
    alice = make_user("alice", balance=1000)
    bob = make_user("bob", balance=2000)
    market = make_market(liquidity=5000)
    yes, no = _ids(market)
    trade = open_position(temp_db, alice.user_id, market.market_id, yes, 500, locks=locks)
    open_position(temp_db, bob.user_id, market.market_id, no, 1000, locks=locks)  # 60 -> 40

    result = cash_out(temp_db, trade.position_id, locks=locks)

    assert result.exit_probability == pytest.approx(40)
    assert result.payout == 333
    after = get_user(temp_db, alice.user_id)
    assert after.balance == 500 + 333
    assert after.total_profit == 333 - 500
    closed = get_position(temp_db, trade.position_id)
    assert not closed.is_open
    assert closed.payout == 333
    # Cash-out never moves the price.
    assert get_market(temp_db, market.market_id).current_probability == pytest.approx(40)


def test_double_cash_out_rejected(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    trade = open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    cash_out(temp_db, trade.position_id, locks=locks)
    balance = get_user(temp_db, user.user_id).balance
    with pytest.raises(StateConflictError):
        cash_out(temp_db, trade.position_id, locks=locks)
    assert get_user(temp_db, user.user_id).balance == balance


def test_cash_out_unknown_position(temp_db, locks):
    with pytest.raises(NotFoundError):
        cash_out(temp_db, "missing", locks=locks)


def test_bots_earn_no_bet_xp(temp_db, make_user, make_market, locks):
    bot = make_user("SilentTiger", balance=5000, is_bot=True, strategy="random")
    market = make_market()
    yes, _ = _ids(market)
    trade = open_position(temp_db, bot.user_id, market.market_id, yes, 100, locks=locks)
    assert get_user(temp_db, bot.user_id).xp == 0
    assert get_position(temp_db, trade.position_id).is_bot


def test_portfolio_values_open_positions(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market(liquidity=5000)
    yes, _ = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, yes, 500, locks=locks)
    views = portfolio(temp_db, user.user_id)
    assert len(views) == 1
    assert views[0].outcome_label == "Yes"
    assert views[0].current_value == pytest.approx(500)
    assert views[0].unrealized_pnl == pytest.approx(0)


def test_create_market_debits_deposit(temp_db, make_user, settings):
    creator = make_user("carol", balance=1000)
    closes_at = int(time.time() * 1000) + 3_600_000
    market = create_market(temp_db, creator.user_id, "Will it snow?", ["Yes", "No"], closes_at, settings=settings)
    assert market.market_type == "yes_no"
    assert market.creator_deposit == 100
    assert market.yes_outcome.label == "Yes"
    assert get_user(temp_db, creator.user_id).balance == 900


@pytest.mark.parametrize(
    "title,labels,offset_ms",
    [
        ("", ["Yes", "No"], 3_600_000),
        ("Dupes", ["Yes", "yes"], 3_600_000),
        ("One", ["Only"], 3_600_000),
        ("Past", ["Yes", "No"], -1000),
    ],
)
def test_create_market_validation(temp_db, settings, title, labels, offset_ms):
    with pytest.raises(ValidationError):
        create_market(temp_db, None, title, labels, int(time.time() * 1000) + offset_ms, settings=settings)


def test_multiple_choice_market(temp_db, make_market):
    market = make_market(outcomes=("Red", "Green", "Blue"))
    assert market.market_type == "multiple_choice"
    assert market.yes_outcome.label == "Red"


def test_shares_times_entry_equals_stake(temp_db, make_user, make_market, locks):
    rng = random.Random(17)
    users = [make_user(f"user{i}", balance=1_000_000) for i in range(5)]
    markets = [make_market(title=f"Market {i}", liquidity=rng.choice([500, 5000, 50_000])) for i in range(3)]
    held = {}
    for _ in range(200):
        user = rng.choice(users)
        market = rng.choice(markets)
        key = (user.user_id, market.market_id)
        outcome_id = held.setdefault(key, rng.choice(_ids(market)))
        amount = rng.randint(1, 2000)

        result = open_position(temp_db, user.user_id, market.market_id, outcome_id, amount, locks=locks)

        assert 1 <= result.entry_probability <= 99
        assert result.shares * result.entry_probability == pytest.approx(amount)
