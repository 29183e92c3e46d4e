"""HTTP surface: trade, cash-out, resolve, portfolio, and the error body shape."""

import pytest
from fastapi.testclient import TestClient

from winzen.api.main import app, get_app_settings, get_conn


@pytest.fixture
def client(temp_db, settings):
    def _conn():
        cur = temp_db.cursor()
        try:
            yield cur
        finally:
            cur.close()

    app.dependency_overrides[get_conn] = _conn
    app.dependency_overrides[get_app_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


def _ids(market):
    yes = market.yes_outcome
    no = next(o for o in market.outcomes if not o.is_yes)
    return yes.outcome_id, no.outcome_id


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_market_list_and_detail(client, make_market):
    market = make_market()
    r = client.get("/markets")
    assert r.status_code == 200
    body = r.json()
    assert body["total"] == 1
    assert body["markets"][0]["status"] == "ACTIVE"

    r = client.get(f"/markets/{market.market_id}")
    assert r.status_code == 200
    probs = {o["label"]: o["probability"] for o in r.json()["outcomes"]}
    assert probs == {"Yes": pytest.approx(0.5), "No": pytest.approx(0.5)}


def test_missing_market_error_shape(client):
    r = client.get("/markets/nope")
    assert r.status_code == 404
    assert r.json() == {"detail": "Market not found: nope", "code": "not_found"}


def test_trade_then_cash_out(client, make_user, make_market):
    user = make_user()
    market = make_market(liquidity=5000)
    yes, _ = _ids(market)

    r = client.post(
        "/positions",
        json={"user_id": user.user_id, "market_id": market.market_id, "outcome_id": yes, "amount": 500},
    )
    assert r.status_code == 200
    trade = r.json()
    assert trade["new_probability"] == pytest.approx(60)

    feed = client.get("/activity").json()["items"]
    assert feed[0]["type"] == "TRADE"
    assert feed[0]["side"] == "Yes"

    r = client.get(f"/users/{user.user_id}/portfolio")
    assert r.status_code == 200
    assert len(r.json()["positions"]) == 1

    r = client.post(f"/positions/{trade['position_id']}/cash-out")
    assert r.status_code == 200
    assert r.json()["payout"] == 500

    r = client.post(f"/positions/{trade['position_id']}/cash-out")
    assert r.status_code == 409
    assert r.json()["code"] == "conflict"


def test_side_switch_is_400(client, make_user, make_market):
    user = make_user()
    market = make_market()
    yes, no = _ids(market)
    payload = {"user_id": user.user_id, "market_id": market.market_id, "amount": 10}
    assert client.post("/positions", json={**payload, "outcome_id": yes}).status_code == 200
    r = client.post("/positions", json={**payload, "outcome_id": no})
    assert r.status_code == 400
    assert r.json()["code"] == "invalid"


def test_amount_below_one_rejected(client, make_user, make_market):
    user = make_user()
    market = make_market()
    yes, _ = _ids(market)
    r = client.post(
        "/positions",
        json={"user_id": user.user_id, "market_id": market.market_id, "outcome_id": yes, "amount": 0},
    )
    assert r.status_code == 422


def test_resolve(client, make_user, make_market):
    user = make_user()
    market = make_market(liquidity=5000)
    yes, _ = _ids(market)
    client.post(
        "/positions",
        json={"user_id": user.user_id, "market_id": market.market_id, "outcome_id": yes, "amount": 500},
    )

    r = client.post(f"/markets/{market.market_id}/resolve", json={"winning_outcome": "yes"})
    assert r.status_code == 409

    r = client.post(f"/markets/{market.market_id}/resolve", json={"winning_outcome": "yes", "force": True})
    assert r.status_code == 200
    body = r.json()
    assert body["paid_out"] == 833
    assert body["winners"] == 1

    r = client.post(f"/markets/{market.market_id}/resolve", json={"winning_outcome": "yes", "force": True})
    assert r.status_code == 409


def test_unknown_user_portfolio(client):
    r = client.get("/users/ghost/portfolio")
    assert r.status_code == 404


def test_sim_stats(client):
    r = client.get("/sim/stats")
    assert r.status_code == 200
    assert r.json()["bot_count"] == 0
