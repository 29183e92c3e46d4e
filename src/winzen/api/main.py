"""FastAPI surface for trade submission, cash-out, resolution, and health polling."""

from __future__ import annotations

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, Iterator

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from winzen.api.schemas import (
    ActivityResponse,
    CashOutResponse,
    ErrorResponse,
    HealthResponse,
    MarketResponse,
    MarketsListResponse,
    OpenPositionRequest,
    OutcomeItem,
    PortfolioResponse,
    ResolveRequest,
    ResolveResponse,
    SimStatsResponse,
    TradeResponse,
)
from winzen.config import get_settings
from winzen.config.settings import Settings
from winzen.engine.amm import outcome_probabilities
from winzen.errors import NotFoundError, StateConflictError, ValidationError, WinzenError
from winzen.ledger.positions import cash_out, open_position, portfolio
from winzen.models import Activity, Market
from winzen.settlement.engine import resolve
from winzen.simulation.stats import sim_stats
from winzen.storage.activity import append_activity, recent_activities
from winzen.storage.db import get_connection, init_schema
from winzen.storage.markets import get_market, list_markets
from winzen.storage.users import get_user

# Set by run_api() so lifespan can start the simulation in the same process.
_run_with_sim = False
_config_profile: str | None = None
_sim_engine: Any = None

_STATUS_BY_CODE = {
    ValidationError.code: 400,
    NotFoundError.code: 404,
    StateConflictError.code: 409,
}


def get_app_settings() -> Settings:
    return get_settings(_config_profile)


def get_conn(settings: Settings = Depends(get_app_settings)) -> Iterator[Any]:
    conn = get_connection(settings.db_path)
    try:
        yield conn
    finally:
        conn.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _sim_engine
    settings = get_settings(_config_profile)
    conn = get_connection(settings.db_path)
    try:
        init_schema(conn)
    finally:
        conn.close()

    sim_task = None
    sim_stop = None
    sim_conn = None
    if _run_with_sim:
        from winzen.simulation.config import SimulationConfig
        from winzen.simulation.engine import SimulationEngine

        sim_conn = get_connection(settings.db_path)
        _sim_engine = SimulationEngine(sim_conn, SimulationConfig.from_settings(settings), settings=settings)
        sim_stop = asyncio.Event()
        sim_task = asyncio.create_task(_sim_engine.run(stop_event=sim_stop))

    yield

    if sim_task is not None and sim_stop is not None:
        sim_stop.set()
        await sim_task
        sim_conn.close()
        _sim_engine = None


app = FastAPI(title="Winzen API", version="0.1.0", lifespan=lifespan)
app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])


def _error_json(code: str, message: str, status_code: int = 404) -> JSONResponse:
    """Return consistent error JSON: { detail, code }."""
    return JSONResponse(
        status_code=status_code,
        content={"detail": message, "code": code},
    )


@app.exception_handler(WinzenError)
async def winzen_error_handler(request: Request, exc: WinzenError) -> JSONResponse:
    return _error_json(exc.code, exc.message, _STATUS_BY_CODE.get(exc.code, 400))


def _market_response(m: Market, now_ms: int) -> MarketResponse:
    probs = outcome_probabilities(m.outcomes, m.current_probability)
    return MarketResponse(
        market_id=m.market_id,
        title=m.title,
        market_type=m.market_type,
        category=m.category,
        status=m.status(now_ms).value,
        current_probability=m.current_probability,
        liquidity=m.liquidity,
        total_volume=m.total_volume,
        participant_count=m.participant_count,
        closes_at=m.closes_at,
        resolved_outcome_id=m.resolved_outcome_id,
        outcomes=[
            OutcomeItem(outcome_id=o.outcome_id, label=o.label, is_yes=o.is_yes, probability=probs[o.outcome_id])
            for o in m.outcomes
        ],
    )


@app.get("/health", response_model=HealthResponse)
def health() -> HealthResponse:
    sim = None
    if _sim_engine is not None:
        sim = _sim_engine.last_health or _sim_engine.health()
    return HealthResponse(status="ok", simulation=sim)


@app.get("/markets", response_model=MarketsListResponse)
def markets_list(
    open_only: bool = False,
    limit: int = Query(100, ge=1, le=500),
    offset: int = Query(0, ge=0),
    conn: Any = Depends(get_conn),
) -> MarketsListResponse:
    """List markets by volume with optional limit/offset."""
    now_ms = int(time.time() * 1000)
    all_markets = list_markets(conn, open_only=open_only, now_ms=now_ms)
    page = all_markets[offset : offset + limit]
    return MarketsListResponse(markets=[_market_response(m, now_ms) for m in page], total=len(all_markets))


@app.get(
    "/markets/{market_id}",
    response_model=MarketResponse,
    responses={404: {"description": "Market not found", "model": ErrorResponse}},
)
def market_detail(market_id: str, conn: Any = Depends(get_conn)):
    m = get_market(conn, market_id)
    if m is None:
        return _error_json("not_found", f"Market not found: {market_id}")
    return _market_response(m, int(time.time() * 1000))


@app.post(
    "/markets/{market_id}/resolve",
    response_model=ResolveResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def market_resolve(
    market_id: str,
    body: ResolveRequest,
    conn: Any = Depends(get_conn),
    settings: Settings = Depends(get_app_settings),
) -> ResolveResponse:
    """Resolve a market. Authorization is the caller's job."""
    report = resolve(conn, market_id, body.winning_outcome, force=body.force, settings=settings)
    return ResolveResponse(
        market_id=market_id,
        winning_outcome_id=report.winning_outcome_id,
        winning_label=report.winning_label,
        total_stake=report.total_stake,
        winners=len(report.payouts),
        paid_out=sum(report.payouts.values()),
        near_misses=len(report.near_miss_user_ids),
        deposit_refunded=report.deposit_refunded,
        creator_reward=report.creator_reward,
        skipped_user_ids=report.skipped_user_ids,
    )


@app.post(
    "/positions",
    response_model=TradeResponse,
    responses={400: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def positions_open(
    body: OpenPositionRequest,
    conn: Any = Depends(get_conn),
    settings: Settings = Depends(get_app_settings),
) -> TradeResponse:
    """Submit a trade. Same code path as simulated trades."""
    result = open_position(conn, body.user_id, body.market_id, body.outcome_id, body.amount, settings=settings)
    market = get_market(conn, body.market_id)
    outcome = market.outcome(body.outcome_id)
    user = get_user(conn, body.user_id)
    append_activity(
        conn,
        Activity(
            type="TRADE",
            user_id=body.user_id,
            username=user.name if user else None,
            market_id=body.market_id,
            market_title=market.title,
            side=outcome.label,
            amount=body.amount,
            price=result.entry_probability,
        ),
    )
    return TradeResponse(**result.model_dump())


@app.post(
    "/positions/{position_id}/cash-out",
    response_model=CashOutResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
def positions_cash_out(position_id: str, conn: Any = Depends(get_conn)) -> CashOutResponse:
    result = cash_out(conn, position_id)
    return CashOutResponse(**result.model_dump())


@app.get("/users/{user_id}/portfolio", response_model=PortfolioResponse)
def user_portfolio(user_id: str, conn: Any = Depends(get_conn)):
    if get_user(conn, user_id) is None:
        return _error_json("not_found", f"User not found: {user_id}")
    views = portfolio(conn, user_id)
    return PortfolioResponse(
        user_id=user_id,
        positions=views,
        total_value=sum(v.current_value for v in views),
        total_unrealized_pnl=sum(v.unrealized_pnl for v in views),
    )


@app.get("/activity", response_model=ActivityResponse)
def activity_feed(limit: int = Query(20, ge=1, le=200), conn: Any = Depends(get_conn)) -> ActivityResponse:
    return ActivityResponse(items=recent_activities(conn, limit=limit))


@app.get("/sim/stats", response_model=SimStatsResponse)
def simulation_stats(conn: Any = Depends(get_conn)) -> SimStatsResponse:
    return SimStatsResponse(**sim_stats(conn))


def run_api(
    host: str = "127.0.0.1",
    port: int = 8000,
    with_sim: bool = False,
    profile: str | None = None,
) -> None:
    global _run_with_sim, _config_profile
    _run_with_sim = with_sim
    _config_profile = profile
    import uvicorn
    uvicorn.run("winzen.api.main:app", host=host, port=port, reload=False)
