"""Crash formula and multiplier curve tests."""
import math

import pytest

from crashgame.errors import InvalidArgument
from crashgame.logic.formula import (
    calculate_average_game_time,
    calculate_crash_point,
    calculate_current_multiplier,
    time_to_reach_multiplier,
)
from crashgame.logic.models import GrowthPhase
from crashgame.logic.phases import PhaseConfigStore, default_phases
from crashgame.validators import MAX_CRASH_POINT, MIN_CRASH_POINT

PHASES = default_phases()


class TestCrashPoint:
    """M = rtp / (1 - R), clamped to [1, 10000]."""

    def test_half_gives_twice_rtp(self):
        assert calculate_crash_point(0.5, 0.97) == pytest.approx(1.94, abs=0.01)

    def test_point_nine_gives_ten_times_rtp(self):
        assert calculate_crash_point(0.9, 0.97) == pytest.approx(9.70, abs=0.01)

    def test_default_rtp_is_97_percent(self):
        assert calculate_crash_point(0.5) == calculate_crash_point(0.5, 0.97)

    @pytest.mark.parametrize("random_value", [0, 1, -0.5, 1.5, math.nan])
    def test_random_value_outside_open_interval_rejected(self, random_value):
        with pytest.raises(InvalidArgument):
            calculate_crash_point(random_value, 0.97)

    @pytest.mark.parametrize("rtp_factor", [0, 1.5, -0.1])
    def test_rtp_factor_outside_range_rejected(self, rtp_factor):
        with pytest.raises(InvalidArgument):
            calculate_crash_point(0.5, rtp_factor)

    def test_non_numbers_rejected(self):
        with pytest.raises(InvalidArgument):
            calculate_crash_point("0.5", 0.97)
        with pytest.raises(InvalidArgument):
            calculate_crash_point(0.5, True)

    @pytest.mark.parametrize("random_value", [1e-9, 0.0001, 0.01, 0.03, 0.5, 0.9999, 0.99999999])
    def test_result_always_within_bounds(self, random_value):
        crash_point = calculate_crash_point(random_value, 0.97)
        assert MIN_CRASH_POINT <= crash_point <= MAX_CRASH_POINT

    def test_low_values_clamped_to_one(self):
        # 0.97 / 0.99 < 1
        assert calculate_crash_point(0.01, 0.97) == 1.0

    def test_high_values_clamped_to_max(self):
        assert calculate_crash_point(0.99999999, 1.0) == MAX_CRASH_POINT

    def test_full_rtp_allowed(self):
        assert calculate_crash_point(0.5, 1.0) == pytest.approx(2.0)


class TestCurrentMultiplier:
    def test_starts_at_one(self):
        assert calculate_current_multiplier(0, PHASES) == 1.0

    def test_negative_elapsed_is_one(self):
        assert calculate_current_multiplier(-500, PHASES) == 1.0

    def test_empty_phases_is_one(self):
        assert calculate_current_multiplier(5000, ()) == 1.0

    def test_first_phase_boundary(self):
        # e^(0.0000693 * 10000)
        assert calculate_current_multiplier(10000, PHASES) == pytest.approx(1.9997056605411641, rel=1e-12)

    def test_second_phase_boundary(self):
        assert calculate_current_multiplier(25000, PHASES) == pytest.approx(7.960565181207655, rel=1e-12)

    def test_boundary_matches_next_phase_entry(self):
        at_boundary = calculate_current_multiplier(10000, PHASES)
        phase_one = math.exp(PHASES[0].rate * 10000)
        phase_two_entry = phase_one * math.exp(PHASES[1].rate * 0)
        assert abs(at_boundary - phase_one) < 1e-6
        assert abs(at_boundary - phase_two_entry) < 1e-6

    @pytest.mark.parametrize(
        "phases",
        [
            PHASES,
            (
                GrowthPhase(id=1, rate=0.0002, end_time=3000),
                GrowthPhase(id=2, rate=0.00001, end_time=7000),
                GrowthPhase(id=3, rate=0.0009, end_time=9000),
                GrowthPhase(id=4, rate=0.00005),
            ),
        ],
    )
    def test_continuous_at_every_boundary(self, phases):
        for phase in phases[:-1]:
            before = calculate_current_multiplier(phase.end_time - 1e-6, phases)
            after = calculate_current_multiplier(phase.end_time + 1e-6, phases)
            assert abs(before - after) < 1e-6

    def test_non_decreasing(self):
        previous = 0.0
        for elapsed in range(0, 60000, 250):
            current = calculate_current_multiplier(elapsed, PHASES)
            assert current >= previous
            previous = current

    def test_not_clamped(self):
        assert calculate_current_multiplier(120000, PHASES) > MAX_CRASH_POINT

    def test_beyond_float_range_is_infinite(self):
        assert calculate_current_multiplier(5_000_000, PHASES) == math.inf

    def test_long_finite_phase_is_infinite(self):
        phases = (GrowthPhase(id=1, rate=0.001, end_time=1e6), GrowthPhase(id=2, rate=0.0001))
        assert calculate_current_multiplier(2e6, phases) == math.inf
        assert calculate_current_multiplier(1000, phases) == pytest.approx(math.e)


class TestTimeToReach:
    @pytest.mark.parametrize("target", [1.5, 2.0, 5.0, 10.0, 50.0])
    def test_inverse_of_multiplier(self, target):
        elapsed = time_to_reach_multiplier(target, PHASES)
        assert calculate_current_multiplier(elapsed, PHASES) == pytest.approx(target, rel=1e-4)

    def test_one_or_less_is_zero(self):
        assert time_to_reach_multiplier(1.0, PHASES) == 0.0
        assert time_to_reach_multiplier(0.5, PHASES) == 0.0

    def test_boundary_multiplier_lands_on_boundary(self):
        boundary = calculate_current_multiplier(10000, PHASES)
        assert time_to_reach_multiplier(boundary, PHASES) == pytest.approx(10000, rel=1e-9)

    def test_target_inside_long_finite_phase(self):
        phases = (GrowthPhase(id=1, rate=0.001, end_time=1e6), GrowthPhase(id=2, rate=0.0001))
        assert time_to_reach_multiplier(2.0, phases) == pytest.approx(math.log(2) / 0.001)

    def test_target_after_long_finite_phase(self):
        phases = (GrowthPhase(id=1, rate=0.001, end_time=1e6), GrowthPhase(id=2, rate=0.0001))
        # e^1000 is past the float range; 1e300 is reached inside the first phase.
        assert time_to_reach_multiplier(1e300, phases) == pytest.approx(math.log(1e300) / 0.001)
        assert time_to_reach_multiplier(MAX_CRASH_POINT, phases) < 1e6

    def test_requires_open_ended_phase(self):
        closed = (GrowthPhase(id=1, rate=0.0001, end_time=1000),)
        with pytest.raises(InvalidArgument):
            time_to_reach_multiplier(5.0, closed)


class TestAverageGameTime:
    def test_positive_and_finite(self):
        seconds = calculate_average_game_time(10000, 0.97, PHASES)
        assert math.isfinite(seconds)
        assert seconds > 0

    def test_grows_with_max_multiplier(self):
        short = calculate_average_game_time(2.0, 0.97, PHASES)
        long = calculate_average_game_time(100.0, 0.97, PHASES)
        assert short < long

    def test_max_of_one_is_zero(self):
        assert calculate_average_game_time(1.0, 0.97, PHASES) == 0.0

    def test_capped_at_max_crash_point(self):
        at_cap = calculate_average_game_time(MAX_CRASH_POINT, 0.97, PHASES)
        beyond = calculate_average_game_time(MAX_CRASH_POINT * 10, 0.97, PHASES)
        assert beyond >= at_cap

    def test_max_below_one_rejected(self):
        with pytest.raises(InvalidArgument):
            calculate_average_game_time(0.5, 0.97, PHASES)

    def test_invalid_rtp_rejected(self):
        with pytest.raises(InvalidArgument):
            calculate_average_game_time(100, 1.5, PHASES)

    def test_defaults(self):
        assert calculate_average_game_time() == calculate_average_game_time(100.0, 0.97, PHASES)

    @pytest.mark.asyncio
    async def test_long_phases_from_store(self, memory_store):
        store = PhaseConfigStore(memory_store)
        await store.set_rate(0, 0.001)
        await store.set_phase_end_time(1, 2e6)
        await store.set_phase_end_time(0, 1e6)

        seconds = calculate_average_game_time(100, 0.97, store.phases)
        assert math.isfinite(seconds)
        assert seconds > 0
