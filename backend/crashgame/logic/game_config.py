"""Process-wide game configuration owned by a single GameContext."""
import logging
from dataclasses import dataclass, field
from typing import Any

from crashgame.config import settings
from crashgame.logic.phases import PhaseConfigStore
from crashgame.storage import KeyValueStore, PersistedConfig
from crashgame.validators import (
    validate_crash_point_override,
    validate_rtp_factor,
    validate_update_interval,
)

logger = logging.getLogger(__name__)


class RTPConfig(PersistedConfig):
    """RTP factor in (0, 1] used to derive new crash points."""

    STORAGE_KEY = "rtp_config"

    def __init__(self, storage: KeyValueStore):
        super().__init__(storage)
        self.rtp_factor: float = settings.default_rtp_factor

    @property
    def rtp_percentage(self) -> float:
        return self.rtp_factor * 100

    def to_blob(self) -> dict[str, Any]:
        return {"rtpFactor": self.rtp_factor, "rtpPercentage": self.rtp_percentage}

    def apply_blob(self, blob: dict[str, Any]) -> None:
        self.rtp_factor = validate_rtp_factor(blob["rtpFactor"])

    async def set_rtp_factor(self, factor: float) -> float:
        self.rtp_factor = validate_rtp_factor(factor)
        await self.save()
        return self.rtp_factor

    async def set_rtp_percentage(self, percentage: float) -> float:
        return await self.set_rtp_factor(percentage / 100)

    async def reset_to_default(self) -> float:
        return await self.set_rtp_factor(settings.default_rtp_factor)


class DebugOverride(PersistedConfig):
    """Optional forced crash point, read once per round at round init."""

    STORAGE_KEY = "debug"

    def __init__(self, storage: KeyValueStore):
        super().__init__(storage)
        self.crash_point_override: float | None = None

    @property
    def is_active(self) -> bool:
        return self.crash_point_override is not None

    def to_blob(self) -> dict[str, Any]:
        return {"crashPointOverride": self.crash_point_override}

    def apply_blob(self, blob: dict[str, Any]) -> None:
        value = blob["crashPointOverride"]
        self.crash_point_override = None if value is None else validate_crash_point_override(value)

    async def set_override(self, crash_point: float) -> float:
        self.crash_point_override = validate_crash_point_override(crash_point)
        logger.info("Debug crash point override set to %.2fx", self.crash_point_override)
        await self.save()
        return self.crash_point_override

    async def clear_override(self) -> None:
        self.crash_point_override = None
        await self.save()


class SimulationMode(PersistedConfig):
    """
    Tick source selection.

    Disabled: continuous frame-rate ticks. Enabled: fixed-interval ticks that
    emulate lower-frequency server pushes.
    """

    STORAGE_KEY = "simulation"

    def __init__(self, storage: KeyValueStore):
        super().__init__(storage)
        self.enabled: bool = settings.simulation_enabled_default
        self.update_interval_ms: float = settings.simulation_interval_ms_default

    def to_blob(self) -> dict[str, Any]:
        return {"enabled": self.enabled, "updateInterval": self.update_interval_ms}

    def apply_blob(self, blob: dict[str, Any]) -> None:
        enabled = blob["enabled"]
        if not isinstance(enabled, bool):
            raise ValueError(f"enabled must be a bool, got {enabled!r}")
        interval = validate_update_interval(blob["updateInterval"])
        self.enabled = enabled
        self.update_interval_ms = interval

    async def enable(self) -> None:
        self.enabled = True
        await self.save()

    async def disable(self) -> None:
        self.enabled = False
        await self.save()

    async def set_update_interval(self, interval_ms: float) -> float:
        self.update_interval_ms = validate_update_interval(interval_ms)
        await self.save()
        return self.update_interval_ms

    async def reset_to_defaults(self) -> None:
        self.enabled = settings.simulation_enabled_default
        self.update_interval_ms = settings.simulation_interval_ms_default
        await self.save()


@dataclass
class GameContext:
    """Everything the round engine reads from configuration."""

    storage: KeyValueStore
    phases: PhaseConfigStore = field(init=False)
    rtp: RTPConfig = field(init=False)
    debug: DebugOverride = field(init=False)
    simulation: SimulationMode = field(init=False)

    def __post_init__(self) -> None:
        self.phases = PhaseConfigStore(self.storage)
        self.rtp = RTPConfig(self.storage)
        self.debug = DebugOverride(self.storage)
        self.simulation = SimulationMode(self.storage)

    async def load(self) -> None:
        """Read all persisted configuration; missing or bad blobs keep defaults."""
        for config in (self.phases, self.rtp, self.debug, self.simulation):
            await config.load()
