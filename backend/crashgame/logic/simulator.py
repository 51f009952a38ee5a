"""
RTP simulator for a fixed cash-out strategy.

Every simulated round draws a seed and derives its crash point exactly like a
live round. The player wins when the crash point reaches the target and is
paid ``floor(bet * target)``.
"""
from dataclasses import dataclass

from crashgame.errors import InvalidArgument
from crashgame.ledger import calculate_winnings
from crashgame.logic.fairness import derive_crash_point
from crashgame.logic.rng import ProductionRNG, RNGBase
from crashgame.validators import validate_rtp_factor

MIN_TARGET_MULTIPLIER = 1.01


@dataclass
class SimulationResult:
    """Aggregated outcome of a simulation run."""

    rtp_factor: float
    target_multiplier: float
    num_rounds: int
    bet_amount_cents: int
    wins: int = 0
    losses: int = 0
    total_bet_cents: int = 0
    total_payout_cents: int = 0
    max_crash_point: float = 0.0
    min_crash_point: float = float("inf")
    max_consecutive_wins: int = 0
    max_consecutive_losses: int = 0

    @property
    def win_rate(self) -> float:
        return self.wins / self.num_rounds

    @property
    def profit_loss_cents(self) -> int:
        return self.total_payout_cents - self.total_bet_cents

    @property
    def actual_rtp(self) -> float:
        if self.total_bet_cents == 0:
            return 0.0
        return self.total_payout_cents / self.total_bet_cents

    @property
    def theoretical_win_rate(self) -> float:
        return theoretical_win_rate(self.rtp_factor, self.target_multiplier)

    @property
    def win_rate_variance(self) -> float:
        return self.win_rate - self.theoretical_win_rate

    @property
    def rtp_variance(self) -> float:
        return self.actual_rtp - self.rtp_factor


@dataclass(frozen=True)
class Strategy:
    name: str
    target_multiplier: float
    description: str
    win_rate_percentage: float


def theoretical_win_rate(rtp_factor: float, target_multiplier: float) -> float:
    """P(crash point >= target) = rtp / target, capped at 1."""
    return min(rtp_factor / target_multiplier, 1.0)


def calculate_simulation(
    rtp_factor: float,
    target_multiplier: float,
    num_rounds: int,
    bet_amount_cents: int,
    rng: RNGBase | None = None,
) -> SimulationResult:
    """Simulate ``num_rounds`` rounds cashing out at ``target_multiplier``."""
    rtp_factor = validate_rtp_factor(rtp_factor)
    if target_multiplier < MIN_TARGET_MULTIPLIER:
        raise InvalidArgument(f"Target multiplier must be at least {MIN_TARGET_MULTIPLIER}x")
    if num_rounds < 1:
        raise InvalidArgument("Number of rounds must be at least 1")
    if bet_amount_cents < 0:
        raise InvalidArgument("Bet amount must not be negative")

    rng = rng or ProductionRNG()
    result = SimulationResult(
        rtp_factor=rtp_factor,
        target_multiplier=target_multiplier,
        num_rounds=num_rounds,
        bet_amount_cents=bet_amount_cents,
        total_bet_cents=num_rounds * bet_amount_cents,
    )
    win_streak = 0
    loss_streak = 0

    for _ in range(num_rounds):
        crash_point = derive_crash_point(rng.generate_seed(), rtp_factor)
        result.max_crash_point = max(result.max_crash_point, crash_point)
        result.min_crash_point = min(result.min_crash_point, crash_point)

        if crash_point >= target_multiplier:
            result.wins += 1
            result.total_payout_cents += calculate_winnings(bet_amount_cents, target_multiplier)
            win_streak += 1
            loss_streak = 0
            result.max_consecutive_wins = max(result.max_consecutive_wins, win_streak)
        else:
            result.losses += 1
            loss_streak += 1
            win_streak = 0
            result.max_consecutive_losses = max(result.max_consecutive_losses, loss_streak)

    return result


def recommended_strategies(rtp_factor: float) -> list[Strategy]:
    """Preset cash-out targets with their theoretical win rates."""
    presets = [
        ("Conservative", 1.5, "Low risk, high win rate"),
        ("Balanced", 2.0, "Medium risk, balanced approach"),
        ("Aggressive", 5.0, "High risk, high reward"),
        ("Very Aggressive", 10.0, "Very high risk, very high reward"),
    ]
    return [
        Strategy(name, target, description, theoretical_win_rate(rtp_factor, target) * 100)
        for name, target, description in presets
    ]
