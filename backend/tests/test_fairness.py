"""Provable fairness: derivation from a revealed seed and round verification."""
import pytest

from crashgame.logic.fairness import derive_crash_point, verify_round
from crashgame.logic.formula import calculate_crash_point
from crashgame.logic.rng import generate_seed, hash_seed, seed_to_random

GOLDEN_SEED = "1234567890abcdef1234567890abcdef"
GOLDEN_SEED_SHA256 = "cc75443d8979fe5cdbdf2de55b822ec8b63bc55348c2e451b46b19f4746885ca"
GOLDEN_CRASH_POINT = 1.0442583731954487


def test_golden_crash_point():
    assert derive_crash_point(GOLDEN_SEED, 0.97) == pytest.approx(GOLDEN_CRASH_POINT, rel=1e-12)


def test_golden_crash_point_is_stable():
    first = calculate_crash_point(seed_to_random(GOLDEN_SEED), 0.97)
    second = calculate_crash_point(seed_to_random(GOLDEN_SEED), 0.97)
    assert first == second == derive_crash_point(GOLDEN_SEED, 0.97)


def test_valid_round_verifies():
    result = verify_round(GOLDEN_SEED, GOLDEN_SEED_SHA256, GOLDEN_CRASH_POINT, 0.97)
    assert result.hash_matches
    assert result.crash_point_matches is True
    assert result.is_valid


def test_hash_comparison_ignores_case():
    result = verify_round(GOLDEN_SEED, GOLDEN_SEED_SHA256.upper(), GOLDEN_CRASH_POINT, 0.97)
    assert result.hash_matches


def test_tampered_crash_point_fails():
    result = verify_round(GOLDEN_SEED, GOLDEN_SEED_SHA256, 2.5, 0.97)
    assert result.hash_matches
    assert result.crash_point_matches is False
    assert not result.is_valid


def test_wrong_seed_fails_hash_check():
    result = verify_round(generate_seed(), GOLDEN_SEED_SHA256, GOLDEN_CRASH_POINT, 0.97)
    assert not result.hash_matches
    assert not result.is_valid


def test_wrong_rtp_fails():
    result = verify_round(GOLDEN_SEED, GOLDEN_SEED_SHA256, GOLDEN_CRASH_POINT, 0.90)
    assert result.crash_point_matches is False


def test_override_round_reported_as_override():
    result = verify_round(GOLDEN_SEED, GOLDEN_SEED_SHA256, 5.0, 0.97, debug_override=True)
    assert result.debug_override
    assert result.crash_point_matches is None
    assert result.is_valid


@pytest.mark.asyncio
async def test_fresh_round_verifies():
    seed = generate_seed()
    seed_hash = await hash_seed(seed)
    crash_point = derive_crash_point(seed, 0.95)
    assert verify_round(seed, seed_hash, crash_point, 0.95).is_valid
