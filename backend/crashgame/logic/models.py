"""Round and growth-phase models."""
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from crashgame.errors import InvalidStateTransition


class RoundState(str, Enum):
    """Round lifecycle state. Transitions only move forward."""

    BETTING = "BETTING"
    RUNNING = "RUNNING"
    CRASHED = "CRASHED"


_NEXT_STATE: dict[RoundState, RoundState] = {
    RoundState.BETTING: RoundState.RUNNING,
    RoundState.RUNNING: RoundState.CRASHED,
}


class GrowthPhase(BaseModel):
    """
    One segment of the multiplier curve.

    The multiplier grows as e^(rate * t) inside the phase. ``end_time`` is
    measured in ms from round start; None marks the open-ended last phase.
    """

    model_config = ConfigDict(frozen=True)

    id: int
    rate: float = Field(gt=0)
    end_time: float | None = None

    def to_dict(self) -> dict:
        return {"id": self.id, "rate": self.rate, "endTime": self.end_time}


class Round(BaseModel):
    """
    A single crash round.

    Built complete (seed, commitment and crash point resolved) before it is
    published, then mutated only through ``start``, ``advance`` and ``crash``.
    """

    round_id: int
    seed: str
    seed_hash: str
    crash_point: float = Field(ge=1.0)
    rtp_factor: float
    state: RoundState = RoundState.BETTING
    start_time: float | None = None
    crash_time: float | None = None
    current_multiplier: float = 1.0
    elapsed_time: float = 0.0
    debug_override: bool = False
    verifiable: bool = True

    def _transition(self, target: RoundState) -> None:
        if _NEXT_STATE.get(self.state) is not target:
            raise InvalidStateTransition(
                f"Round {self.round_id} cannot move from {self.state.value} to {target.value}"
            )
        self.state = target

    def start(self, now_ms: float) -> None:
        """BETTING -> RUNNING."""
        self._transition(RoundState.RUNNING)
        self.start_time = now_ms
        self.elapsed_time = 0.0
        self.current_multiplier = 1.0

    def advance(self, elapsed_ms: float, multiplier: float) -> None:
        """Record a tick while RUNNING. Multiplier never exceeds the crash point."""
        if self.state is not RoundState.RUNNING:
            raise InvalidStateTransition(
                f"Round {self.round_id} is {self.state.value}, cannot advance"
            )
        self.elapsed_time = max(0.0, elapsed_ms)
        self.current_multiplier = min(max(multiplier, 1.0), self.crash_point)

    def crash(self, now_ms: float) -> None:
        """RUNNING -> CRASHED; the multiplier freezes at the crash point."""
        self._transition(RoundState.CRASHED)
        self.crash_time = now_ms
        self.current_multiplier = self.crash_point

    @property
    def is_running(self) -> bool:
        return self.state is RoundState.RUNNING
