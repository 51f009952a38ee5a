"""Shared numeric validators for formula inputs and configuration edits."""
import math

from crashgame.config import settings
from crashgame.errors import InvalidArgument

MAX_CRASH_POINT = 10000.0
MIN_CRASH_POINT = 1.0


def _require_number(value: object, name: str) -> float:
    """Reject bools, non-numbers and NaN/inf."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidArgument(f"{name} must be a number, got {value!r}")
    if not math.isfinite(value):
        raise InvalidArgument(f"{name} must be finite, got {value!r}")
    return float(value)


def validate_random_value(random_value: object) -> float:
    """Random value must lie in (0, 1) exclusive."""
    value = _require_number(random_value, "Random value")
    if value <= 0 or value >= 1:
        raise InvalidArgument("Random value must be in range (0, 1)")
    return value


def validate_rtp_factor(rtp_factor: object) -> float:
    """RTP factor must lie in (0, 1]."""
    value = _require_number(rtp_factor, "RTP factor")
    if value <= 0 or value > 1:
        raise InvalidArgument("RTP factor must be in range (0, 1]")
    return value


def validate_growth_rate(rate: object) -> float:
    """Growth rate must be positive and inside the configured policy bounds."""
    value = _require_number(rate, "Growth rate")
    if value <= 0:
        raise InvalidArgument(f"Growth rate must be positive, got {value}")
    if value < settings.min_growth_rate or value > settings.max_growth_rate:
        raise InvalidArgument(
            f"Growth rate {value} out of bounds "
            f"({settings.min_growth_rate}..{settings.max_growth_rate})"
        )
    return value


def validate_end_time(time_ms: object) -> float:
    """Phase end time must be a positive number of milliseconds."""
    value = _require_number(time_ms, "Phase end time")
    if value <= 0:
        raise InvalidArgument(f"Phase end time must be positive, got {value}")
    return value


def validate_crash_point_override(crash_point: object) -> float:
    """Debug override must lie in [1.00, 10000]."""
    value = _require_number(crash_point, "Crash point")
    if value < MIN_CRASH_POINT:
        raise InvalidArgument("Minimum crash point is 1.00x")
    if value > MAX_CRASH_POINT:
        raise InvalidArgument("Maximum crash point is 10000x")
    return value


def validate_update_interval(interval_ms: object) -> float:
    """Discretized tick interval must lie in the configured bounds."""
    value = _require_number(interval_ms, "Update interval")
    if value < settings.min_update_interval_ms or value > settings.max_update_interval_ms:
        raise InvalidArgument(
            f"Update interval out of bounds "
            f"({settings.min_update_interval_ms:g}-{settings.max_update_interval_ms:g}ms): {value:g}"
        )
    return value


def validate_bet_amount(amount_cents: object) -> int:
    """Bet must be an integer number of cents inside the table limits."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int):
        raise InvalidArgument("Bet amount must be an integer (cents)")
    if amount_cents < settings.min_bet_cents:
        raise InvalidArgument(f"Minimum bet is ${settings.min_bet_cents / 100:.2f}")
    if amount_cents > settings.max_bet_cents:
        raise InvalidArgument(f"Maximum bet is ${settings.max_bet_cents / 100:.2f}")
    return amount_cents
