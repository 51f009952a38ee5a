"""
Growth phase configuration.

Holds the ordered phase sequence the multiplier curve is built from:
- 2..10 phases
- only the last phase is open-ended (end_time None)
- finite end times strictly increasing

Every mutation is validated on a copy and swapped in whole, so a rejected
edit leaves the configuration untouched. Accepted edits are persisted
best-effort.
"""
import logging
from typing import Any, Sequence

from crashgame.config import settings
from crashgame.errors import ConfigurationInvariantViolation
from crashgame.logic.models import GrowthPhase
from crashgame.storage import KeyValueStore, PersistedConfig
from crashgame.validators import validate_end_time, validate_growth_rate

logger = logging.getLogger(__name__)

# (rate per ms, end time ms)
DEFAULT_PHASES: tuple[tuple[float, float | None], ...] = (
    (0.0000693, 10000.0),  # 0-10s: 1x -> ~2x
    (0.0000921, 25000.0),  # 10-25s: ~2x -> ~8x
    (0.0001842, None),     # 25s+
)


def default_phases() -> tuple[GrowthPhase, ...]:
    """Canonical three-phase curve."""
    return tuple(
        GrowthPhase(id=i + 1, rate=rate, end_time=end_time)
        for i, (rate, end_time) in enumerate(DEFAULT_PHASES)
    )


def validate_phase_sequence(phases: Sequence[GrowthPhase]) -> None:
    """Raise ConfigurationInvariantViolation unless ``phases`` is a legal curve."""
    if len(phases) < settings.min_phases:
        raise ConfigurationInvariantViolation(
            f"At least {settings.min_phases} phases are required, got {len(phases)}"
        )
    if len(phases) > settings.max_phases:
        raise ConfigurationInvariantViolation(
            f"At most {settings.max_phases} phases are allowed, got {len(phases)}"
        )
    if phases[-1].end_time is not None:
        raise ConfigurationInvariantViolation("The last phase must be open-ended")

    previous_end = 0.0
    for index, phase in enumerate(phases[:-1]):
        if phase.end_time is None:
            raise ConfigurationInvariantViolation(
                f"Only the last phase may be open-ended (phase {index})"
            )
        if phase.end_time <= previous_end:
            raise ConfigurationInvariantViolation(
                f"Phase {index} ends at {phase.end_time}ms, must be after {previous_end}ms"
            )
        previous_end = phase.end_time


class PhaseConfigStore(PersistedConfig):
    """Mutable, persisted phase sequence."""

    STORAGE_KEY = "growth_phases"

    def __init__(self, storage: KeyValueStore):
        super().__init__(storage)
        self._phases: tuple[GrowthPhase, ...] = default_phases()

    @property
    def phases(self) -> tuple[GrowthPhase, ...]:
        """Immutable snapshot, safe to hand to the formula on every tick."""
        return self._phases

    def __len__(self) -> int:
        return len(self._phases)

    def to_blob(self) -> dict[str, Any]:
        return {"phases": [phase.to_dict() for phase in self._phases]}

    def apply_blob(self, blob: dict[str, Any]) -> None:
        candidate = tuple(
            GrowthPhase(
                id=item["id"],
                rate=validate_growth_rate(item["rate"]),
                end_time=None if item["endTime"] is None else validate_end_time(item["endTime"]),
            )
            for item in blob["phases"]
        )
        validate_phase_sequence(candidate)
        self._phases = candidate

    def _check_index(self, index: int) -> None:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < len(self._phases):
            raise ConfigurationInvariantViolation(f"No phase at index {index!r}")

    def _next_id(self) -> int:
        return max(phase.id for phase in self._phases) + 1

    async def _commit(self, candidate: list[GrowthPhase]) -> tuple[GrowthPhase, ...]:
        validate_phase_sequence(candidate)
        self._phases = tuple(candidate)
        await self.save()
        return self._phases

    async def set_rate(self, index: int, rate: float) -> tuple[GrowthPhase, ...]:
        """Change one phase's growth rate."""
        self._check_index(index)
        rate = validate_growth_rate(rate)
        candidate = list(self._phases)
        candidate[index] = candidate[index].model_copy(update={"rate": rate})
        return await self._commit(candidate)

    async def set_phase_end_time(self, index: int, time_ms: float) -> tuple[GrowthPhase, ...]:
        """Move a phase boundary; the open-ended last phase cannot be given an end."""
        self._check_index(index)
        if index == len(self._phases) - 1:
            raise ConfigurationInvariantViolation("The last phase must stay open-ended")
        time_ms = validate_end_time(time_ms)
        candidate = list(self._phases)
        candidate[index] = candidate[index].model_copy(update={"end_time": time_ms})
        return await self._commit(candidate)

    async def add_phase(self, after_index: int) -> tuple[GrowthPhase, ...]:
        """
        Insert a phase after ``after_index`` (-1 inserts at the front).

        The new phase ends halfway to the next boundary, or new_phase_gap_ms
        after the previous one when it lands just before the open-ended phase.
        Adding after the last phase inserts before it.
        """
        count = len(self._phases)
        if count >= settings.max_phases:
            raise ConfigurationInvariantViolation(
                f"Cannot add phase, already at maximum of {settings.max_phases}"
            )
        if isinstance(after_index, bool) or not isinstance(after_index, int) or not -1 <= after_index < count:
            raise ConfigurationInvariantViolation(f"No phase at index {after_index!r}")

        position = min(after_index + 1, count - 1)
        previous_end = self._phases[position - 1].end_time if position > 0 else 0.0
        following = self._phases[position]
        if following.end_time is None:
            end_time = previous_end + settings.new_phase_gap_ms
        else:
            end_time = (previous_end + following.end_time) / 2

        candidate = list(self._phases)
        candidate.insert(
            position,
            GrowthPhase(id=self._next_id(), rate=settings.new_phase_rate, end_time=end_time),
        )
        return await self._commit(candidate)

    async def remove_phase(self, index: int) -> tuple[GrowthPhase, ...]:
        """Remove an interior phase; the next phase takes over its time range."""
        self._check_index(index)
        if index == len(self._phases) - 1:
            raise ConfigurationInvariantViolation("The open-ended last phase cannot be removed")
        if len(self._phases) <= settings.min_phases:
            raise ConfigurationInvariantViolation(
                f"Cannot remove phase, minimum of {settings.min_phases} required"
            )
        candidate = list(self._phases)
        del candidate[index]
        return await self._commit(candidate)

    async def reset_to_defaults(self) -> tuple[GrowthPhase, ...]:
        """Restore the canonical three-phase curve."""
        return await self._commit(list(default_phases()))
