"""Provably-fair randomness: seeds, commitments and seed -> uniform value."""
import hashlib
import logging
import random
import secrets
import string
from abc import ABC, abstractmethod
from dataclasses import dataclass

from crashgame.errors import CryptoUnavailable, InvalidArgument

logger = logging.getLogger(__name__)

SEED_BYTES = 16
SEED_HEX_DIGITS = 13  # 13 hex chars = 52 bits
RANDOM_FLOOR = 0.0001
RANDOM_CEIL = 0.9999

_HEX_DIGITS = set(string.hexdigits)


class RNGBase(ABC):
    """Abstract randomness source."""

    @abstractmethod
    def generate_seed(self) -> str:
        """Return a fresh 32-char hex round seed."""
        pass


class ProductionRNG(RNGBase):
    """
    Production randomness.

    Uses the OS CSPRNG via ``secrets``, no fixed seed. If the OS has no
    randomness source the seed falls back to the Mersenne Twister, which is
    logged as a fairness degradation (or refused when ``require_secure``).
    """

    def __init__(self, require_secure: bool = False):
        self.require_secure = require_secure
        self.degraded = False
        self._fallback: random.Random | None = None

    def generate_seed(self) -> str:
        try:
            return secrets.token_hex(SEED_BYTES)
        except NotImplementedError as e:
            if self.require_secure:
                raise CryptoUnavailable("No secure randomness source available") from e
            if not self.degraded:
                logger.warning(
                    "Secure randomness unavailable, seeds are NOT cryptographically secure: %s", e
                )
                self.degraded = True
                self._fallback = random.Random()
            return f"{self._fallback.getrandbits(SEED_BYTES * 8):0{SEED_BYTES * 2}x}"


class SeededRNG(RNGBase):
    """
    Test/simulation randomness.

    Deterministic, fully controlled by seed. Never used for live rounds.
    """

    def __init__(self, seed: int):
        self._rng = random.Random(seed)
        self.seed = seed

    def generate_seed(self) -> str:
        return f"{self._rng.getrandbits(SEED_BYTES * 8):0{SEED_BYTES * 2}x}"


def generate_seed() -> str:
    """Generate a 32-char hex seed from the CSPRNG."""
    return secrets.token_hex(SEED_BYTES)


@dataclass(frozen=True)
class SeedCommitment:
    """Seed plus its published hash."""

    seed: str
    seed_hash: str
    verifiable: bool  # False when the fallback hash was used


def sha256_hex(seed: str) -> str | None:
    try:
        digest = hashlib.new("sha256")
    except ValueError:
        return None
    digest.update(seed.encode("utf-8"))
    return digest.hexdigest()


def fallback_hash(seed: str) -> str:
    """
    NON-CRYPTOGRAPHIC display hash for environments without SHA-256.

    32-bit string hash, repeated to 64 hex chars. Must never be used for
    fairness-critical derivation.
    """
    h = 0
    for char in seed:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 2**31:
        h -= 2**32
    return f"{abs(h):08x}" * 8


async def commit_seed(seed: str, require_secure: bool = False) -> SeedCommitment:
    """Hash a seed for publication before the round starts."""
    seed_hash = sha256_hex(seed)
    if seed_hash is not None:
        return SeedCommitment(seed=seed, seed_hash=seed_hash, verifiable=True)
    if require_secure:
        raise CryptoUnavailable("SHA-256 is not available, refusing to commit seed")
    logger.warning("SHA-256 unavailable, using non-cryptographic fallback hash; round is not verifiable")
    return SeedCommitment(seed=seed, seed_hash=fallback_hash(seed), verifiable=False)


async def hash_seed(seed: str) -> str:
    """SHA-256 of the seed as 64 hex chars."""
    commitment = await commit_seed(seed)
    return commitment.seed_hash


def seed_to_random(seed: str) -> float:
    """
    Derive the round's uniform value from its seed.

    The first 13 hex chars are read as a 52-bit integer and divided by 2^52,
    then clamped into [0.0001, 0.9999]. Pure function of the seed, so anyone
    can recompute the crash point once the seed is revealed.
    """
    if not isinstance(seed, str) or len(seed) < SEED_HEX_DIGITS:
        raise InvalidArgument(f"Seed must be a hex string of at least {SEED_HEX_DIGITS} chars")
    head = seed[:SEED_HEX_DIGITS]
    if not set(head) <= _HEX_DIGITS:
        raise InvalidArgument(f"Seed is not hex: {head!r}")
    value = int(head, 16) / 2**52
    return max(RANDOM_FLOOR, min(RANDOM_CEIL, value))
