"""Crash point derivation from a revealed seed, and its verification."""
import math
from dataclasses import dataclass

from crashgame.logic.formula import calculate_crash_point
from crashgame.logic.rng import sha256_hex, seed_to_random


def derive_crash_point(seed: str, rtp_factor: float) -> float:
    """Crash point committed by ``seed``."""
    return calculate_crash_point(seed_to_random(seed), rtp_factor)


@dataclass(frozen=True)
class VerificationResult:
    """Outcome of checking a revealed round."""

    hash_matches: bool
    crash_point_matches: bool | None  # None: override round, not derived from the seed
    debug_override: bool

    @property
    def is_valid(self) -> bool:
        return self.hash_matches and self.crash_point_matches is not False


def verify_round(
    seed: str,
    seed_hash: str,
    crash_point: float,
    rtp_factor: float,
    debug_override: bool = False,
) -> VerificationResult:
    """
    Recompute hash and crash point from a revealed seed.

    Rounds played under a debug override are reported as such instead of
    as a failed crash point check.
    """
    hash_matches = sha256_hex(seed) == seed_hash.lower()
    if debug_override:
        return VerificationResult(hash_matches, None, True)
    expected = derive_crash_point(seed, rtp_factor)
    return VerificationResult(
        hash_matches=hash_matches,
        crash_point_matches=math.isclose(expected, crash_point, rel_tol=1e-9),
        debug_override=False,
    )
