"""Round engine: lifecycle state machine over the fair RNG and crash formula."""
import logging

from crashgame.config import settings
from crashgame.errors import GameError
from crashgame.events import EventBus
from crashgame.logic.fairness import derive_crash_point
from crashgame.logic.formula import calculate_current_multiplier
from crashgame.logic.game_config import GameContext
from crashgame.logic.models import Round, RoundState
from crashgame.logic.rng import ProductionRNG, RNGBase, commit_seed
from crashgame.logic.scheduler import Scheduler, TimerHandle, select_tick_source
from crashgame.protocol import (
    EventType,
    MultiplierUpdateEvent,
    RoundCrashEvent,
    RoundSnapshot,
    RoundStartEvent,
)

logger = logging.getLogger(__name__)

ENGINE_STORAGE_KEY = "engine"
COUNTDOWN_STEP_MS = 1000.0


class RoundEngine:
    """
    Drives rounds BETTING -> RUNNING -> CRASHED, then starts a fresh round.

    Implements:
    - Round preparation (seed, crash point, commitment) built atomically
    - Countdown, tick loop and next-round delay on an injected Scheduler
    - Event emission: roundStart, multiplierUpdate, roundCrash
    - Forced restart, cleanup and reset without leaking timers

    All state changes happen on the event loop thread. ``cleanup`` bumps an
    epoch so a round preparation still awaiting its hash is discarded.
    """

    def __init__(
        self,
        context: GameContext,
        scheduler: Scheduler,
        bus: EventBus | None = None,
        rng: RNGBase | None = None,
    ):
        self.context = context
        self.scheduler = scheduler
        self.bus = bus or EventBus()
        self.rng = rng or ProductionRNG(require_secure=settings.require_secure_crypto)

        self.current_round: Round | None = None
        self.countdown = 0
        self.last_error: GameError | None = None

        self._last_round_id: int | None = None
        self._epoch = 0
        self._countdown_timer: TimerHandle | None = None
        self._tick_handle: TimerHandle | None = None
        self._next_round_timer: TimerHandle | None = None
        self._preparing: TimerHandle | None = None

    @property
    def is_running(self) -> bool:
        return self.current_round is not None and self.current_round.is_running

    # === Public operations ===

    async def init(self) -> Round | None:
        """Bootstrap the first round with the normal countdown."""
        return await self._new_round(settings.betting_countdown_seconds)

    def cleanup(self) -> None:
        """Cancel every timer, tick source and pending round preparation."""
        self._epoch += 1
        self._cancel("_countdown_timer", "_tick_handle", "_next_round_timer", "_preparing")

    async def force_restart_round(self) -> Round | None:
        """Abort whatever is in flight and start a new round with a short countdown."""
        self.cleanup()
        logger.info("Force restarting round")
        return await self._new_round(settings.force_restart_countdown_seconds)

    async def reset_game(self) -> Round | None:
        """Forget round numbering and start again from round 1."""
        self.cleanup()
        await self.context.storage.delete(ENGINE_STORAGE_KEY)
        self._last_round_id = 0
        self.current_round = None
        self.countdown = 0
        return await self.init()

    def cash_out_multiplier(self) -> float | None:
        """
        Multiplier a cash-out requested now would be paid at.

        None once roundCrash has been emitted (or before RUNNING). The value
        is the one published by the latest tick.
        """
        if not self.is_running:
            return None
        return self.current_round.current_multiplier

    def snapshot(self) -> RoundSnapshot | None:
        rnd = self.current_round
        if rnd is None:
            return None
        revealed = rnd.state is RoundState.CRASHED
        return RoundSnapshot(
            roundId=rnd.round_id,
            state=rnd.state.value,
            seedHash=rnd.seed_hash,
            seed=rnd.seed if revealed else None,
            crashPoint=rnd.crash_point if revealed else None,
            currentMultiplier=rnd.current_multiplier,
            elapsedTime=rnd.elapsed_time,
            countdown=self.countdown,
            isRunning=rnd.is_running,
        )

    def _cancel(self, *names: str) -> None:
        for name in names:
            handle = getattr(self, name)
            if handle is not None:
                handle.cancel()
                setattr(self, name, None)

    # === Round preparation ===

    async def _load_last_round_id(self) -> int:
        blob = await self.context.storage.load(ENGINE_STORAGE_KEY)
        if blob is None:
            return 0
        value = blob.get("lastRoundId", 0)
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            logger.warning("Ignoring invalid stored lastRoundId: %r", value)
            return 0
        return value

    async def _new_round(self, countdown_seconds: int) -> Round | None:
        epoch = self._epoch
        try:
            if self._last_round_id is None:
                self._last_round_id = await self._load_last_round_id()

            rtp_factor = self.context.rtp.rtp_factor
            overridden = self.context.debug.is_active
            seed = self.rng.generate_seed()
            if overridden:
                crash_point = self.context.debug.crash_point_override
            else:
                crash_point = derive_crash_point(seed, rtp_factor)
            commitment = await commit_seed(seed, require_secure=settings.require_secure_crypto)
        except GameError as e:
            self.last_error = e
            raise

        if epoch != self._epoch:
            logger.debug("Discarding round prepared before cleanup")
            return None

        round_id = self._last_round_id + 1
        self._last_round_id = round_id
        self.current_round = Round(
            round_id=round_id,
            seed=seed,
            seed_hash=commitment.seed_hash,
            crash_point=crash_point,
            rtp_factor=rtp_factor,
            debug_override=overridden,
            verifiable=commitment.verifiable,
        )
        # At most one countdown or tick source may exist at any time.
        self._cancel("_countdown_timer", "_tick_handle", "_next_round_timer")
        self.last_error = None
        logger.info(
            "Round %d ready (hash=%s, debug_override=%s, verifiable=%s)",
            round_id,
            commitment.seed_hash,
            overridden,
            commitment.verifiable,
        )
        self._start_countdown(countdown_seconds)

        await self.context.storage.save(ENGINE_STORAGE_KEY, {"lastRoundId": round_id})
        return self.current_round

    async def _run_next_round(self) -> None:
        try:
            await self._new_round(settings.betting_countdown_seconds)
        except GameError as e:
            logger.error("Next round could not be prepared, engine is idle: %s", e)

    def _on_next_round_due(self) -> None:
        self._next_round_timer = None
        self._preparing = self.scheduler.spawn(self._run_next_round())

    # === BETTING ===

    def _start_countdown(self, seconds: int) -> None:
        self.countdown = seconds
        if seconds <= 0:
            self._start_running()
            return
        self._countdown_timer = self.scheduler.call_every(COUNTDOWN_STEP_MS, self._on_countdown_tick)

    def _on_countdown_tick(self) -> None:
        self.countdown -= 1
        if self.countdown > 0:
            return
        if self._countdown_timer is not None:
            self._countdown_timer.cancel()
            self._countdown_timer = None
        self._start_running()

    # === RUNNING ===

    def _start_running(self) -> None:
        rnd = self.current_round
        epoch = self._epoch
        rnd.start(self.scheduler.now())
        # Mode changes apply from the next round only.
        tick_source = select_tick_source(self.context.simulation)

        self.bus.emit(EventType.ROUND_START, RoundStartEvent(roundId=rnd.round_id, seedHash=rnd.seed_hash))
        if epoch != self._epoch:
            return

        self._tick()
        if rnd.is_running and epoch == self._epoch:
            self._tick_handle = tick_source.start(self.scheduler, self._tick)

    def _tick(self) -> None:
        rnd = self.current_round
        if rnd is None or not rnd.is_running:
            return
        epoch = self._epoch
        elapsed = max(0.0, self.scheduler.now() - rnd.start_time)
        multiplier = calculate_current_multiplier(elapsed, self.context.phases.phases)
        rnd.advance(elapsed, multiplier)

        self.bus.emit(
            EventType.MULTIPLIER_UPDATE,
            MultiplierUpdateEvent(multiplier=rnd.current_multiplier, elapsedTime=elapsed),
        )
        if epoch != self._epoch:
            return
        if multiplier >= rnd.crash_point:
            self._crash()

    # === CRASHED ===

    def _crash(self) -> None:
        rnd = self.current_round
        epoch = self._epoch
        if self._tick_handle is not None:
            self._tick_handle.cancel()
            self._tick_handle = None
        rnd.crash(self.scheduler.now())
        logger.info("Round %d crashed at %.2fx after %.0fms", rnd.round_id, rnd.crash_point, rnd.elapsed_time)

        self.bus.emit(
            EventType.ROUND_CRASH,
            RoundCrashEvent(
                roundId=rnd.round_id,
                crashPoint=rnd.crash_point,
                seed=rnd.seed,
                seedHash=rnd.seed_hash,
                rtpFactor=rnd.rtp_factor,
                debugOverride=rnd.debug_override,
                verifiable=rnd.verifiable,
            ),
        )
        if epoch != self._epoch:
            return
        self._next_round_timer = self.scheduler.call_later(settings.next_round_delay_ms, self._on_next_round_due)
