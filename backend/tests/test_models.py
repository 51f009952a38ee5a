"""Round state machine tests."""
import pytest
from pydantic import ValidationError

from crashgame.errors import InvalidStateTransition
from crashgame.logic.models import GrowthPhase, Round, RoundState


def make_round(crash_point: float = 2.5) -> Round:
    return Round(round_id=1, seed="ab" * 16, seed_hash="cd" * 32, crash_point=crash_point, rtp_factor=0.97)


def test_new_round_is_betting():
    rnd = make_round()
    assert rnd.state is RoundState.BETTING
    assert rnd.current_multiplier == 1.0
    assert not rnd.is_running


def test_forward_lifecycle():
    rnd = make_round()
    rnd.start(1000)
    assert rnd.is_running
    rnd.advance(500, 1.2)
    rnd.crash(1600)
    assert rnd.state is RoundState.CRASHED
    assert rnd.current_multiplier == 2.5
    assert rnd.crash_time == 1600


def test_cannot_skip_running():
    with pytest.raises(InvalidStateTransition):
        make_round().crash(1000)


def test_cannot_restart_running_round():
    rnd = make_round()
    rnd.start(1000)
    with pytest.raises(InvalidStateTransition):
        rnd.start(2000)


def test_crashed_round_never_runs_again():
    rnd = make_round()
    rnd.start(1000)
    rnd.crash(2000)
    with pytest.raises(InvalidStateTransition):
        rnd.start(3000)
    with pytest.raises(InvalidStateTransition):
        rnd.advance(100, 1.1)
    assert rnd.state is RoundState.CRASHED


def test_advance_clamps_to_crash_point():
    rnd = make_round(crash_point=2.0)
    rnd.start(0)
    rnd.advance(20000, 3.7)
    assert rnd.current_multiplier == 2.0


def test_advance_requires_running():
    with pytest.raises(InvalidStateTransition):
        make_round().advance(100, 1.1)


def test_crash_point_below_one_rejected():
    with pytest.raises(ValidationError):
        make_round(crash_point=0.5)


def test_growth_phase_rate_must_be_positive():
    with pytest.raises(ValidationError):
        GrowthPhase(id=1, rate=0)


def test_growth_phase_is_frozen():
    phase = GrowthPhase(id=1, rate=0.0001, end_time=1000)
    with pytest.raises(ValidationError):
        phase.rate = 0.0002
    assert phase.to_dict() == {"id": 1, "rate": 0.0001, "endTime": 1000}
