"""
Crash formula and N-phase multiplier curve.

Crash point: M = rtp / (1 - R), R uniform in (0, 1), clamped to [1, 10000].
Its density is f(m) = rtp / m^2 for m >= rtp.

Curve: the multiplier grows exponentially with a per-phase rate. Each phase
starts from the multiplier reached at the end of the previous one, so the
curve is continuous at every boundary.
"""
import math
import sys
from typing import Sequence

from crashgame.errors import InvalidArgument
from crashgame.logic.models import GrowthPhase
from crashgame.logic.phases import default_phases
from crashgame.validators import (
    MAX_CRASH_POINT,
    MIN_CRASH_POINT,
    validate_random_value,
    validate_rtp_factor,
)

INTEGRATION_STEPS = 10000
MAX_EXPONENT = math.log(sys.float_info.max)
DEFAULT_AVERAGE_MAX_MULTIPLIER = 100.0


def calculate_crash_point(random_value: float, rtp_factor: float = 0.97) -> float:
    """Crash point for a uniform value in (0, 1) and an RTP factor in (0, 1]."""
    random_value = validate_random_value(random_value)
    rtp_factor = validate_rtp_factor(rtp_factor)

    crash_point = rtp_factor / (1 - random_value)
    return min(max(crash_point, MIN_CRASH_POINT), MAX_CRASH_POINT)


def calculate_current_multiplier(elapsed_ms: float, phases: Sequence[GrowthPhase]) -> float:
    """
    Multiplier after ``elapsed_ms`` of running time.

    Not clamped to the crash point and not rounded; the engine does both.
    Returns ``math.inf`` once the curve leaves the float range.
    """
    if elapsed_ms < 0:
        return 1.0
    if not phases:
        return 1.0

    # Accumulated in log space: e^x overflows above MAX_EXPONENT.
    log_multiplier = 0.0
    previous_end = 0.0
    for phase in phases:
        if phase.end_time is None or elapsed_ms < phase.end_time:
            log_multiplier += phase.rate * (elapsed_ms - previous_end)
            break
        log_multiplier += phase.rate * (phase.end_time - previous_end)
        previous_end = phase.end_time

    if log_multiplier > MAX_EXPONENT:
        return math.inf
    return math.exp(log_multiplier)


def time_to_reach_multiplier(target_multiplier: float, phases: Sequence[GrowthPhase]) -> float:
    """Milliseconds needed to reach ``target_multiplier``; inverse of the curve."""
    if target_multiplier <= 1.0:
        return 0.0

    log_target = math.log(target_multiplier)
    log_multiplier = 0.0
    previous_end = 0.0
    for phase in phases:
        if phase.end_time is None:
            phase_end_log = math.inf
        else:
            phase_end_log = log_multiplier + phase.rate * (phase.end_time - previous_end)

        if log_target <= phase_end_log:
            # log(target) = log(multiplier) + rate * t
            return previous_end + (log_target - log_multiplier) / phase.rate

        log_multiplier = phase_end_log
        previous_end = phase.end_time

    raise InvalidArgument("Phase sequence must end with an open-ended phase")


def calculate_average_game_time(
    max_multiplier: float = DEFAULT_AVERAGE_MAX_MULTIPLIER,
    rtp_factor: float = 0.97,
    phases: Sequence[GrowthPhase] | None = None,
) -> float:
    """
    Expected round duration in seconds.

    Integrates time(m) * rtp / m^2 over [rtp, min(max_multiplier, 10000)]
    with the trapezoidal rule, plus the time to ``max_multiplier`` weighted
    by P(crash > max_multiplier) = rtp / max_multiplier. ``phases`` defaults
    to the canonical three-phase curve.
    """
    rtp_factor = validate_rtp_factor(rtp_factor)
    if isinstance(max_multiplier, bool) or not math.isfinite(max_multiplier) or max_multiplier < 1.0:
        raise InvalidArgument(f"Max multiplier must be >= 1.0, got {max_multiplier!r}")
    if phases is None:
        phases = default_phases()

    effective_max = min(max_multiplier, MAX_CRASH_POINT)
    dm = (effective_max - rtp_factor) / INTEGRATION_STEPS

    expected_ms = 0.0
    for i in range(INTEGRATION_STEPS + 1):
        m = rtp_factor + i * dm
        pdf = rtp_factor / (m * m)
        weight = 0.5 if i in (0, INTEGRATION_STEPS) else 1.0
        expected_ms += time_to_reach_multiplier(m, phases) * pdf * dm * weight

    if max_multiplier < MAX_CRASH_POINT:
        expected_ms += time_to_reach_multiplier(max_multiplier, phases) * (rtp_factor / max_multiplier)

    return expected_ms / 1000
