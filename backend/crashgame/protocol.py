"""Event payloads and control API models."""
from enum import Enum

from pydantic import BaseModel, Field

from crashgame.config import settings


# === Events ===


class EventType(str, Enum):
    """Events emitted by the round engine."""

    ROUND_START = "roundStart"
    MULTIPLIER_UPDATE = "multiplierUpdate"
    ROUND_CRASH = "roundCrash"


class RoundStartEvent(BaseModel):
    """Round entered RUNNING; the commitment is public, the seed is not."""

    roundId: int
    seedHash: str


class MultiplierUpdateEvent(BaseModel):
    """One tick of a running round."""

    multiplier: float
    elapsedTime: float


class RoundCrashEvent(BaseModel):
    """Round crashed; the seed is revealed for verification."""

    roundId: int
    crashPoint: float
    seed: str
    seedHash: str
    rtpFactor: float
    debugOverride: bool = False
    verifiable: bool = True


EventPayload = RoundStartEvent | MultiplierUpdateEvent | RoundCrashEvent


# === Request Models ===


class RateUpdate(BaseModel):
    rate: float


class EndTimeUpdate(BaseModel):
    endTime: float


class AddPhaseRequest(BaseModel):
    afterIndex: int = Field(..., description="Insert after this index; -1 inserts first")


class RTPUpdate(BaseModel):
    rtpFactor: float


class DebugOverrideRequest(BaseModel):
    crashPoint: float


class SimulationModeRequest(BaseModel):
    enabled: bool
    updateInterval: float | None = None


class BetRequest(BaseModel):
    amountCents: int


class VerifyRequest(BaseModel):
    seed: str
    seedHash: str
    crashPoint: float
    rtpFactor: float = settings.default_rtp_factor
    debugOverride: bool = False


# === Response Models ===


class RoundSnapshot(BaseModel):
    """Current round as seen by collaborators. Seed and crash point stay hidden until crash."""

    protocolVersion: str = settings.protocol_version
    roundId: int
    state: str
    seedHash: str
    seed: str | None = None
    crashPoint: float | None = None
    currentMultiplier: float
    elapsedTime: float
    countdown: int
    isRunning: bool


class PhaseOut(BaseModel):
    id: int
    rate: float
    endTime: float | None


class SimulationModeOut(BaseModel):
    enabled: bool
    updateInterval: float


class ConfigResponse(BaseModel):
    protocolVersion: str = settings.protocol_version
    rtpFactor: float
    phases: list[PhaseOut]
    crashPointOverride: float | None
    simulation: SimulationModeOut
    configHash: str


class AverageGameTimeResponse(BaseModel):
    maxMultiplier: float
    rtpFactor: float
    averageSeconds: float


class VerifyResponse(BaseModel):
    hashMatches: bool
    crashPointMatches: bool | None
    debugOverride: bool
    isValid: bool
