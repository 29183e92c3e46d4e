"""Settlement: payouts, ratings, near-miss credit, creator terms, exactly-once resolution."""

import pytest

from winzen.config.settings import Settings
from winzen.engine.elo import apply_sequential
from winzen.errors import NotFoundError, StateConflictError, ValidationError
from winzen.ledger.positions import cash_out, open_position
from winzen.settlement import resolve
from winzen.settlement.engine import creator_terms, near_miss_outcomes
from winzen.storage.activity import recent_activities
from winzen.storage.audit import list_transactions
from winzen.storage.markets import get_market
from winzen.storage.users import get_user


def _ids(market):
    yes = market.yes_outcome
    no = next(o for o in market.outcomes if not o.is_yes)
    return yes.outcome_id, no.outcome_id


def _after_close(market):
    return market.closes_at + 1


def test_winning_payout_is_floor_of_shares(temp_db, make_user, make_market, locks):
    user = make_user(balance=1000)
    market = make_market(liquidity=5000)
    yes, _ = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, yes, 500, locks=locks)

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.payouts == {user.user_id: 833}
    after = get_user(temp_db, user.user_id)
    assert after.balance == 1000 - 500 + 833
    assert after.total_profit == 333
    assert after.total_wins == 1
    assert after.win_streak == 1
    assert after.elo_rating == 1016
    assert after.xp == 20 + 50
    assert list_transactions(temp_db, user.user_id)[-1].type == "win"


def test_resolve_by_label(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    _, no = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, no, 100, locks=locks)
    report = resolve(temp_db, market.market_id, "no", now_ms=_after_close(market), locks=locks)
    assert report.winning_outcome_id == no
    assert get_market(temp_db, market.market_id).resolved_outcome_id == no


def test_second_resolution_changes_nothing(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, no = _ids(market)
    open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)
    before = get_user(temp_db, user.user_id)

    with pytest.raises(StateConflictError, match="already resolved"):
        resolve(temp_db, market.market_id, no, now_ms=_after_close(market), locks=locks)

    assert get_user(temp_db, user.user_id) == before
    assert get_market(temp_db, market.market_id).resolved_outcome_id == yes


def test_resolved_market_rejects_new_bets(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    resolve(temp_db, market.market_id, yes, force=True, locks=locks)
    with pytest.raises(StateConflictError):
        open_position(temp_db, user.user_id, market.market_id, yes, 10, locks=locks)


def test_not_closed_requires_force(temp_db, make_market, locks):
    market = make_market()
    yes, _ = _ids(market)
    with pytest.raises(StateConflictError, match="not closed"):
        resolve(temp_db, market.market_id, yes, locks=locks)
    report = resolve(temp_db, market.market_id, yes, force=True, locks=locks)
    assert report.winning_label == "Yes"


def test_invalid_outcome_and_unknown_market(temp_db, make_market, locks):
    market = make_market()
    with pytest.raises(ValidationError):
        resolve(temp_db, market.market_id, "maybe", force=True, locks=locks)
    assert get_market(temp_db, market.market_id).resolved_outcome_id is None
    with pytest.raises(NotFoundError):
        resolve(temp_db, "missing", "yes", force=True, locks=locks)


def test_loser_near_miss_credit(temp_db, make_user, make_market, locks):
    alice = make_user("alice")
    bob = make_user("bob")
    market = make_market(liquidity=5000)
    yes, no = _ids(market)
    open_position(temp_db, alice.user_id, market.market_id, yes, 500, locks=locks)
    open_position(temp_db, bob.user_id, market.market_id, no, 400, locks=locks)  # 400/900 of the pool

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.near_miss_user_ids == [bob.user_id]
    after = get_user(temp_db, bob.user_id)
    assert after.balance == 1000 - 400 + 50
    assert after.total_losses == 1
    assert after.win_streak == 0
    assert after.total_profit == -400
    assert after.xp == 20 + 10


def test_small_losing_pool_gets_no_credit(temp_db, make_user, make_market, locks):
    alice = make_user("alice", balance=2000)
    bob = make_user("bob")
    market = make_market(liquidity=5000)
    yes, no = _ids(market)
    open_position(temp_db, alice.user_id, market.market_id, yes, 1000, locks=locks)
    open_position(temp_db, bob.user_id, market.market_id, no, 100, locks=locks)

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.near_miss_user_ids == []
    assert get_user(temp_db, bob.user_id).balance == 900


def test_near_miss_outcomes_threshold():
    class P:
        def __init__(self, outcome_id, amount):
            self.outcome_id = outcome_id
            self.amount = amount

    positions = [P("a", 65), P("b", 35)]
    assert near_miss_outcomes(positions, "a", 0.35) == {"b"}
    assert near_miss_outcomes(positions, "b", 0.35) == {"a"}
    assert near_miss_outcomes([], "a", 0.35) == set()


def test_elo_applies_sequentially_per_position(temp_db, make_user, make_market, locks):
    user = make_user(balance=2000)
    other = make_user("other", balance=2000)
    market = make_market(liquidity=5000)
    yes, no = _ids(market)
    first = open_position(temp_db, user.user_id, market.market_id, yes, 500, locks=locks)
    second = open_position(temp_db, user.user_id, market.market_id, yes, 500, locks=locks)
    open_position(temp_db, other.user_id, market.market_id, no, 1000, locks=locks)
    final_yes = get_market(temp_db, market.market_id).current_probability

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    expected = apply_sequential(
        1000,
        [(first.entry_probability, final_yes, True), (second.entry_probability, final_yes, True)],
    )
    assert get_user(temp_db, user.user_id).elo_rating == expected.new_rating
    assert report.elo_deltas[user.user_id] == expected.delta
    # Two winning positions still count as one win.
    assert get_user(temp_db, user.user_id).total_wins == 1


def test_cashed_out_positions_are_not_settled(temp_db, make_user, make_market, locks):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    trade = open_position(temp_db, user.user_id, market.market_id, yes, 100, locks=locks)
    cash_out(temp_db, trade.position_id, locks=locks)
    balance = get_user(temp_db, user.user_id).balance

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.payouts == {}
    assert report.total_stake == 0
    assert get_user(temp_db, user.user_id).balance == balance


def test_creator_refund_and_reward(temp_db, make_user, make_market, locks):
    creator = make_user("carol")
    market = make_market(creator_id=creator.user_id)
    yes, _ = _ids(market)
    for name in ("a", "b", "c"):
        bettor = make_user(name)
        open_position(temp_db, bettor.user_id, market.market_id, yes, 100, locks=locks)

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.deposit_refunded
    assert report.creator_reward == 36  # 3 * 10 + 300 * 0.02
    assert get_user(temp_db, creator.user_id).balance == 1000 - 100 + 100 + 36


def test_creator_keeps_no_deposit_on_thin_market(temp_db, make_user, make_market, locks):
    creator = make_user("carol")
    market = make_market(creator_id=creator.user_id)
    yes, _ = _ids(market)
    bettor = make_user("dave")
    open_position(temp_db, bettor.user_id, market.market_id, yes, 100, locks=locks)

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert not report.deposit_refunded
    assert report.creator_reward == 12
    assert get_user(temp_db, creator.user_id).balance == 900 + 12


def test_creator_reward_is_capped(make_market):
    market = make_market()
    big = market.model_copy(update={"participant_count": 100, "total_volume": 100_000, "creator_deposit": 100})
    assert creator_terms(big, Settings()) == (True, 500)


def test_missing_user_is_skipped(temp_db, make_user, make_market, locks):
    alice = make_user("alice")
    ghost = make_user("ghost")
    market = make_market(liquidity=5000)
    yes, _ = _ids(market)
    open_position(temp_db, alice.user_id, market.market_id, yes, 100, locks=locks)
    open_position(temp_db, ghost.user_id, market.market_id, yes, 100, locks=locks)
    temp_db.execute("DELETE FROM users WHERE user_id = ?", [ghost.user_id])

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.skipped_user_ids == [ghost.user_id]
    assert alice.user_id in report.payouts


def test_missing_user_strict_rolls_back(temp_db, make_user, make_market, locks):
    ghost = make_user("ghost")
    market = make_market()
    yes, _ = _ids(market)
    open_position(temp_db, ghost.user_id, market.market_id, yes, 100, locks=locks)
    temp_db.execute("DELETE FROM users WHERE user_id = ?", [ghost.user_id])
    strict = Settings(settlement={"strict_missing_users": True})

    with pytest.raises(NotFoundError):
        resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks, settings=strict)

    assert get_market(temp_db, market.market_id).resolved_outcome_id is None


def test_notifications_and_activity(temp_db, make_user, make_market, locks):
    alice = make_user("alice")
    bob = make_user("bob")
    market = make_market(liquidity=5000)
    yes, no = _ids(market)
    open_position(temp_db, alice.user_id, market.market_id, yes, 500, locks=locks)
    open_position(temp_db, bob.user_id, market.market_id, no, 100, locks=locks)
    sent = []

    resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), notify=sent.append, locks=locks)

    kinds = {n.user_id: n.kind for n in sent}
    assert kinds == {alice.user_id: "win", bob.user_id: "loss"}
    latest = recent_activities(temp_db, limit=1)[0]
    assert latest.type == "RESOLUTION"
    assert latest.side == "Yes"
    assert latest.amount == 600


def test_missing_creator_who_also_bet_is_skipped_once(temp_db, make_user, make_market, locks):
    creator = make_user("carol")
    market = make_market(creator_id=creator.user_id)
    yes, _ = _ids(market)
    open_position(temp_db, creator.user_id, market.market_id, yes, 100, locks=locks)
    temp_db.execute("DELETE FROM users WHERE user_id = ?", [creator.user_id])

    report = resolve(temp_db, market.market_id, yes, now_ms=_after_close(market), locks=locks)

    assert report.skipped_user_ids == [creator.user_id]
