"""Crash Game local control API."""
import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect

from crashgame.config import settings
from crashgame.config_hash import get_config_hash
from crashgame.errors import ErrorCode, GameError
from crashgame.events import EventBuffer, EventBus, LoggingEventSink
from crashgame.history import GameHistory
from crashgame.ledger import BalanceLedger
from crashgame.logic.engine import RoundEngine
from crashgame.logic.fairness import verify_round
from crashgame.logic.formula import DEFAULT_AVERAGE_MAX_MULTIPLIER, calculate_average_game_time
from crashgame.logic.game_config import GameContext
from crashgame.logic.scheduler import AsyncioScheduler, Scheduler
from crashgame.middleware import ErrorHandlerMiddleware
from crashgame.protocol import (
    AddPhaseRequest,
    AverageGameTimeResponse,
    BetRequest,
    ConfigResponse,
    DebugOverrideRequest,
    EndTimeUpdate,
    PhaseOut,
    RateUpdate,
    RoundSnapshot,
    RTPUpdate,
    SimulationModeOut,
    SimulationModeRequest,
    VerifyRequest,
    VerifyResponse,
)
from crashgame.storage import KeyValueStore, create_store

logger = logging.getLogger(__name__)


@dataclass
class GameRuntime:
    """Everything one running game owns."""

    storage: KeyValueStore
    context: GameContext
    bus: EventBus
    engine: RoundEngine
    history: GameHistory
    ledger: BalanceLedger
    sink: LoggingEventSink

    async def shutdown(self) -> None:
        self.engine.cleanup()
        self.sink.close()
        self.history.close()
        self.ledger.close()
        await self.bus.drain()
        await self.storage.close()


async def build_runtime(
    storage: KeyValueStore | None = None,
    scheduler: Scheduler | None = None,
) -> GameRuntime:
    """Connect storage, restore persisted state and wire collaborators to the engine."""
    storage = storage or create_store()
    await storage.connect()

    context = GameContext(storage)
    await context.load()

    bus = EventBus()
    engine = RoundEngine(context, scheduler or AsyncioScheduler(), bus)
    history = GameHistory(context, bus)
    await history.load()
    ledger = BalanceLedger(engine, bus)
    await ledger.load()

    return GameRuntime(
        storage=storage,
        context=context,
        bus=bus,
        engine=engine,
        history=history,
        ledger=ledger,
        sink=LoggingEventSink(bus),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage game runtime lifecycle."""
    runtime = await build_runtime()
    app.state.runtime = runtime
    if settings.autostart_engine:
        try:
            await runtime.engine.init()
        except GameError as e:
            logger.error("Engine failed to start: %s", e)
    yield
    await runtime.shutdown()


app = FastAPI(
    title="Crash Game",
    version="0.1.0",
    description="Local control API for the crash game round engine",
    lifespan=lifespan,
)

app.add_middleware(ErrorHandlerMiddleware)


def _runtime(request: Request) -> GameRuntime:
    return request.app.state.runtime


def _snapshot(engine: RoundEngine) -> dict:
    snapshot = engine.snapshot()
    if snapshot is None:
        raise GameError(ErrorCode.NO_ACTIVE_ROUND, "No round has been prepared yet")
    return snapshot.model_dump()


def _config(context: GameContext) -> dict:
    phases = context.phases.phases
    return ConfigResponse(
        rtpFactor=context.rtp.rtp_factor,
        phases=[PhaseOut(**phase.to_dict()) for phase in phases],
        crashPointOverride=context.debug.crash_point_override,
        simulation=SimulationModeOut(
            enabled=context.simulation.enabled,
            updateInterval=context.simulation.update_interval_ms,
        ),
        configHash=get_config_hash(context.rtp.rtp_factor, phases),
    ).model_dump()


# === Health / round ===


@app.get("/health")
async def health(request: Request) -> dict:
    """Health check endpoint."""
    engine = _runtime(request).engine
    return {
        "status": "ok",
        "isRunning": engine.is_running,
        "lastError": engine.last_error.code.value if engine.last_error else None,
    }


@app.get("/round")
async def get_round(request: Request) -> dict:
    """Current round; seed and crash point are revealed only after the crash."""
    return _snapshot(_runtime(request).engine)


@app.post("/round/restart")
async def restart_round(request: Request) -> dict:
    """Abandon the current round and start a new one with a short countdown."""
    engine = _runtime(request).engine
    await engine.force_restart_round()
    return _snapshot(engine)


@app.post("/game/reset")
async def reset_game(request: Request) -> dict:
    """Restart round numbering from 1."""
    engine = _runtime(request).engine
    await engine.reset_game()
    return _snapshot(engine)


# === Configuration ===


@app.get("/config")
async def get_config(request: Request) -> dict:
    return _config(_runtime(request).context)


@app.put("/config/rtp")
async def set_rtp(request: Request, body: RTPUpdate) -> dict:
    """Applies from the next round."""
    context = _runtime(request).context
    await context.rtp.set_rtp_factor(body.rtpFactor)
    return _config(context)


@app.put("/config/phases/{index}/rate")
async def set_phase_rate(request: Request, index: int, body: RateUpdate) -> dict:
    context = _runtime(request).context
    await context.phases.set_rate(index, body.rate)
    return _config(context)


@app.put("/config/phases/{index}/end-time")
async def set_phase_end_time(request: Request, index: int, body: EndTimeUpdate) -> dict:
    context = _runtime(request).context
    await context.phases.set_phase_end_time(index, body.endTime)
    return _config(context)


@app.post("/config/phases")
async def add_phase(request: Request, body: AddPhaseRequest) -> dict:
    context = _runtime(request).context
    await context.phases.add_phase(body.afterIndex)
    return _config(context)


@app.delete("/config/phases/{index}")
async def remove_phase(request: Request, index: int) -> dict:
    context = _runtime(request).context
    await context.phases.remove_phase(index)
    return _config(context)


@app.post("/config/phases/reset")
async def reset_phases(request: Request) -> dict:
    context = _runtime(request).context
    await context.phases.reset_to_defaults()
    return _config(context)


@app.put("/config/debug")
async def set_debug_override(request: Request, body: DebugOverrideRequest) -> dict:
    """Force the crash point of rounds prepared from now on."""
    context = _runtime(request).context
    await context.debug.set_override(body.crashPoint)
    return _config(context)


@app.delete("/config/debug")
async def clear_debug_override(request: Request) -> dict:
    context = _runtime(request).context
    await context.debug.clear_override()
    return _config(context)


@app.put("/config/simulation")
async def set_simulation_mode(request: Request, body: SimulationModeRequest) -> dict:
    """Switch tick source; takes effect when the next round starts running."""
    simulation = _runtime(request).context.simulation
    if body.updateInterval is not None:
        await simulation.set_update_interval(body.updateInterval)
    if body.enabled:
        await simulation.enable()
    else:
        await simulation.disable()
    return _config(_runtime(request).context)


# === Analytics / verification ===


@app.get("/analytics/average-game-time")
async def average_game_time(request: Request, maxMultiplier: float = DEFAULT_AVERAGE_MAX_MULTIPLIER) -> dict:
    context = _runtime(request).context
    seconds = calculate_average_game_time(maxMultiplier, context.rtp.rtp_factor, context.phases.phases)
    return AverageGameTimeResponse(
        maxMultiplier=maxMultiplier,
        rtpFactor=context.rtp.rtp_factor,
        averageSeconds=seconds,
    ).model_dump()


@app.post("/verify")
async def verify(body: VerifyRequest) -> dict:
    """Re-derive hash and crash point from a revealed seed."""
    result = verify_round(
        seed=body.seed,
        seed_hash=body.seedHash,
        crash_point=body.crashPoint,
        rtp_factor=body.rtpFactor,
        debug_override=body.debugOverride,
    )
    return VerifyResponse(
        hashMatches=result.hash_matches,
        crashPointMatches=result.crash_point_matches,
        debugOverride=result.debug_override,
        isValid=result.is_valid,
    ).model_dump()


# === History ===


@app.get("/history")
async def get_history(request: Request, count: int = 10) -> dict:
    rounds = _runtime(request).history.get_recent_rounds(count)
    return {"rounds": [r.model_dump() for r in rounds]}


@app.delete("/history")
async def clear_history(request: Request) -> dict:
    await _runtime(request).history.clear_history()
    return {"rounds": []}


# === Balance ===


def _balance(ledger: BalanceLedger) -> dict:
    return {
        "balanceCents": ledger.balance_cents,
        "currentBet": ledger.current_bet.model_dump(mode="json") if ledger.current_bet else None,
        "canCashOut": ledger.can_cash_out(),
        "transactions": [t.model_dump(mode="json") for t in ledger.transactions],
    }


@app.get("/balance")
async def get_balance(request: Request) -> dict:
    return _balance(_runtime(request).ledger)


@app.post("/bet")
async def place_bet(request: Request, body: BetRequest) -> dict:
    """Only accepted during the betting countdown."""
    ledger = _runtime(request).ledger
    await ledger.place_bet(body.amountCents)
    return _balance(ledger)


@app.post("/cashout")
async def cash_out(request: Request) -> dict:
    """Pays the multiplier of the latest tick; rejected once the round crashed."""
    ledger = _runtime(request).ledger
    await ledger.cash_out()
    return _balance(ledger)


@app.post("/balance/reset")
async def reset_balance(request: Request) -> dict:
    ledger = _runtime(request).ledger
    await ledger.reset_balance()
    return _balance(ledger)


# === Events ===


@app.websocket("/events")
async def events(websocket: WebSocket) -> None:
    """Stream engine events as ``{"type", "data"}`` messages."""
    runtime: GameRuntime = websocket.app.state.runtime
    await websocket.accept()

    buffer = EventBuffer(settings.event_buffer_size)
    subscriptions = runtime.bus.subscribe_all(buffer.put_nowait)

    snapshot: RoundSnapshot | None = runtime.engine.snapshot()
    await websocket.send_json({"type": "connected", "data": snapshot.model_dump() if snapshot else None})

    async def pump() -> None:
        while True:
            event_type, payload = await buffer.get()
            await websocket.send_json({"type": event_type.value, "data": payload.model_dump()})

    sender = asyncio.create_task(pump())
    try:
        while True:
            # Client messages are ignored; this only waits for the disconnect.
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        for subscription in subscriptions:
            subscription.unsubscribe()
        sender.cancel()
        [result] = await asyncio.gather(sender, return_exceptions=True)
        if isinstance(result, Exception):
            logger.warning("Event stream sender failed: %s", result)
        if buffer.dropped:
            logger.info("Event stream client fell behind, %d events dropped", buffer.dropped)
