"""
FastAPI server for trading and control endpoints.

Wraps one MarketSimulation: order entry, position management, engine knobs,
state snapshots and an on-demand batch run.
"""
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Dict, List, Literal, Optional
import logging

from ..batch_sim.batch_simulator import BatchSimulator, ScheduledOrder
from ..simulation import MarketSimulation
from ..streaming.serialization import (
    serialize_account, serialize_candle, serialize_event,
    serialize_order, serialize_position
)

logger = logging.getLogger(__name__)

# Pydantic models
class OrderRequest(BaseModel):
    side: Literal["buy", "sell"]
    type: Literal["market", "limit", "ioc"] = "market"
    qty: float
    price: Optional[float] = None
    trigger: Optional[float] = None
    sl_pct: Optional[float] = None
    tp_pct: Optional[float] = None
    slippage_pct: Optional[float] = Field(default=None, ge=0)
    reduce_only: Optional[bool] = None

class StopLossTakeProfitRequest(BaseModel):
    stop_loss: Optional[float] = Field(default=None, gt=0)
    take_profit: Optional[float] = Field(default=None, gt=0)

class ClosePositionRequest(BaseModel):
    pct: float = Field(default=1.0, gt=0, le=1)

class TimeframeRequest(BaseModel):
    tf_sec: int = Field(ge=1)

class ControlsRequest(BaseModel):
    speed: Optional[float] = Field(default=None, gt=0)
    volatility: Optional[float] = Field(default=None, gt=0)
    volume_scale: Optional[float] = Field(default=None, gt=0)
    event_rate: Optional[float] = Field(default=None, gt=0)

class ScheduledOrderRequest(BaseModel):
    at_sec: float = Field(ge=0)
    side: Literal["buy", "sell"]
    type: Literal["market", "limit", "ioc"] = "market"
    qty: float
    price: Optional[float] = None
    sl_pct: Optional[float] = None
    tp_pct: Optional[float] = None

class BatchRunRequest(BaseModel):
    seed: int = 1337
    duration_seconds: float = Field(default=60, gt=0, le=86_400)
    step_ms: int = Field(default=100, ge=1)
    tf_sec: int = Field(default=1, ge=1)
    orders: List[ScheduledOrderRequest] = []

class BatchRunResponse(BaseModel):
    summary: Dict[str, float]
    candles: List[Dict]
    regimes: List[str]


def create_app(simulation: MarketSimulation) -> FastAPI:
    """Build the HTTP ingress for one simulation"""
    app = FastAPI(title="Tick Simulation API")

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    account = simulation.account

    @app.get("/")
    def root():
        """API root"""
        return {
            "message": "Tick Simulation API",
            "docs": "/docs",
            "health": "/health"
        }

    @app.get("/health")
    def health():
        """Health check"""
        return {"status": "ok"}

    @app.get("/state")
    def state(limit: int = 100):
        """Market state plus the account ledgers, newest first"""
        return {
            "price": simulation.price,
            "regime": simulation.price_engine.regime.value,
            "market_cap": simulation.market_cap,
            "timeframe_sec": simulation.aggregator.tf_sec,
            "seconds_left": simulation.seconds_left(),
            "active_events": [serialize_event(e) for e in simulation.event_engine.active_events],
            "account": serialize_account(account.snapshot(), limit=limit)
        }

    @app.get("/candles")
    def candles():
        return [serialize_candle(c) for c in simulation.aggregator.series()]

    @app.get("/stats")
    def stats():
        return simulation.get_stats()

    # ------------------------------------------------------------------------
    # Orders and positions
    # ------------------------------------------------------------------------

    @app.post("/orders")
    def place_order(request: OrderRequest):
        result = account.place_order(
            side=request.side,
            order_type=request.type,
            qty=request.qty,
            price=request.price,
            trigger=request.trigger,
            sl_pct=request.sl_pct,
            tp_pct=request.tp_pct,
            slippage_pct=request.slippage_pct,
            reduce_only=request.reduce_only
        )
        if result.rejected:
            raise HTTPException(status_code=400, detail=result.rejection_reason)
        return serialize_order(result.order)

    @app.delete("/orders/{order_id}")
    def cancel_order(order_id: str):
        cancelled = account.cancel_order(order_id)
        if cancelled is None:
            raise HTTPException(status_code=404, detail=f"No pending order {order_id}")
        return serialize_order(cancelled)

    @app.post("/position/sltp")
    def set_sltp(request: StopLossTakeProfitRequest):
        position = account.set_stop_loss_take_profit(
            stop_loss=request.stop_loss,
            take_profit=request.take_profit
        )
        if position is None:
            raise HTTPException(status_code=404, detail="No open position")
        return serialize_position(position, account.risk_limits.max_leverage)

    @app.post("/position/close")
    def close_position(request: ClosePositionRequest):
        order = account.close_pct(request.pct)
        if order is None:
            raise HTTPException(status_code=404, detail="No open position")
        return serialize_order(order)

    @app.post("/position/reverse")
    def reverse_position():
        result = account.reverse_position()
        if result is None:
            raise HTTPException(status_code=404, detail="No open position")
        if result.rejected:
            raise HTTPException(status_code=400, detail=result.rejection_reason)
        return serialize_order(result.order)

    # ------------------------------------------------------------------------
    # Engine controls
    # ------------------------------------------------------------------------

    @app.post("/events/{event_type}")
    def inject_event(event_type: str):
        try:
            event = simulation.inject_event(event_type)
        except ValueError as e:
            raise HTTPException(status_code=404, detail=str(e))
        return serialize_event(event)

    @app.post("/timeframe")
    def set_timeframe(request: TimeframeRequest):
        rebuilt = simulation.set_timeframe(request.tf_sec)
        return {
            "tf_sec": request.tf_sec,
            "candles": [serialize_candle(c) for c in rebuilt]
        }

    @app.post("/controls")
    def set_controls(request: ControlsRequest):
        if request.speed is not None:
            simulation.set_speed(request.speed)
        if request.volatility is not None:
            simulation.set_volatility(request.volatility)
        if request.volume_scale is not None:
            simulation.set_volume_scale(request.volume_scale)
        if request.event_rate is not None:
            simulation.set_event_rate(request.event_rate)
        return {
            "speed": simulation.scheduler.speed_multiplier,
            "volatility": simulation.price_engine.vol_scale,
            "volume_scale": simulation.price_engine.volume_scale,
            "event_rate": simulation.event_engine.rate_scale
        }

    # ------------------------------------------------------------------------
    # Batch
    # ------------------------------------------------------------------------

    @app.post("/api/simulation/run", response_model=BatchRunResponse)
    def run_batch(request: BatchRunRequest):
        """Run a headless simulation with the live config and return its summary"""
        logger.info(f"Running batch simulation: seed={request.seed}, {request.duration_seconds}s")
        simulator = BatchSimulator(
            config=simulation.config,
            seed=request.seed,
            duration_seconds=request.duration_seconds,
            step_ms=request.step_ms,
            tf_sec=request.tf_sec,
            orders=[
                ScheduledOrder(
                    at_sec=o.at_sec,
                    side=o.side,
                    order_type=o.type,
                    qty=o.qty,
                    params={'price': o.price, 'sl_pct': o.sl_pct, 'tp_pct': o.tp_pct}
                )
                for o in request.orders
            ]
        )
        result = simulator.run()
        return BatchRunResponse(
            summary=result.to_dict(),
            candles=[serialize_candle(c) for c in result.candles],
            regimes=result.regimes
        )

    return app
