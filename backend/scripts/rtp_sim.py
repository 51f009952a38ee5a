#!/usr/bin/env python3
"""
RTP simulation for a fixed cash-out strategy.

Writes a one-row CSV so runs can be compared across configurations.

Usage:
    python -m scripts.rtp_sim --target 2.0 --rounds 100000 --seed SIM_2026 --out out/rtp_2x.csv
    python -m scripts.rtp_sim --target 1.5 --rounds 50000 --seed SIM_2026 --rtp 0.95 --out out/rtp_95.csv
"""
import argparse
import csv
import hashlib
import sys
from datetime import datetime, timezone
from pathlib import Path

# Add parent to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from crashgame.config import settings
from crashgame.config_hash import get_config_hash
from crashgame.errors import InvalidArgument
from crashgame.logic.phases import default_phases
from crashgame.logic.rng import SeededRNG
from crashgame.logic.simulator import SimulationResult, calculate_simulation, recommended_strategies


def get_timestamp_iso() -> str:
    """Get ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def seed_to_int(seed_str: str) -> int:
    """Convert string seed to integer deterministically."""
    return int(hashlib.sha256(seed_str.encode()).hexdigest(), 16) % (2**31)


def build_row(result: SimulationResult, seed_str: str, config_hash: str) -> dict[str, str | int]:
    """CSV row for one simulation run; identifying columns first."""
    return {
        "timestamp": get_timestamp_iso(),
        "config_hash": config_hash,
        "seed": seed_str,
        "rounds": result.num_rounds,
        "rtp_factor": f"{result.rtp_factor:.4f}",
        "target_multiplier": f"{result.target_multiplier:.2f}",
        "bet_cents": result.bet_amount_cents,
        "wins": result.wins,
        "losses": result.losses,
        "win_rate": f"{result.win_rate:.6f}",
        "theoretical_win_rate": f"{result.theoretical_win_rate:.6f}",
        "actual_rtp": f"{result.actual_rtp:.6f}",
        "rtp_variance": f"{result.rtp_variance:+.6f}",
        "total_bet_cents": result.total_bet_cents,
        "total_payout_cents": result.total_payout_cents,
        "profit_loss_cents": result.profit_loss_cents,
        "min_crash_point": f"{result.min_crash_point:.2f}",
        "max_crash_point": f"{result.max_crash_point:.2f}",
        "max_consecutive_wins": result.max_consecutive_wins,
        "max_consecutive_losses": result.max_consecutive_losses,
    }


def write_csv(row: dict[str, str | int], output_path: str) -> None:
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    with open(output_file, "w", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=row.keys())
        writer.writeheader()
        writer.writerow(row)

    print(f"CSV written to: {output_path}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Fixed-target RTP simulation")
    parser.add_argument("--target", type=float, required=True, help="Cash-out target multiplier")
    parser.add_argument("--rounds", type=int, required=True, help="Number of rounds to simulate")
    parser.add_argument("--seed", type=str, required=True, help="Seed string for reproducibility")
    parser.add_argument("--out", type=str, required=True, help="Output CSV path")
    parser.add_argument(
        "--rtp",
        type=float,
        default=settings.default_rtp_factor,
        help="RTP factor in (0, 1]",
    )
    parser.add_argument("--bet", type=int, default=100, help="Bet per round in cents")
    parser.add_argument(
        "--strategies",
        action="store_true",
        help="Print the recommended strategies for this RTP",
    )

    args = parser.parse_args(argv)

    config_hash = get_config_hash(args.rtp, default_phases())
    print(f"Running simulation: target={args.target}x, rounds={args.rounds}, seed={args.seed}")
    print(f"Config hash: {config_hash}")

    try:
        result = calculate_simulation(
            rtp_factor=args.rtp,
            target_multiplier=args.target,
            num_rounds=args.rounds,
            bet_amount_cents=args.bet,
            rng=SeededRNG(seed=seed_to_int(args.seed)),
        )
    except InvalidArgument as e:
        print(f"Invalid simulation parameters: {e.message}")
        return 2

    write_csv(build_row(result, args.seed, config_hash), args.out)

    print(f"\nSummary:")
    print(f"  Rounds: {result.num_rounds}")
    print(f"  Win rate: {result.win_rate:.4%} (theoretical {result.theoretical_win_rate:.4%})")
    print(f"  RTP: {result.actual_rtp:.4%} (theoretical {result.rtp_factor:.4%})")
    print(f"  Profit/loss: {result.profit_loss_cents / 100:+.2f}")
    print(f"  Crash points: {result.min_crash_point:.2f}x .. {result.max_crash_point:.2f}x")

    if args.strategies:
        print("\nRecommended strategies:")
        for strategy in recommended_strategies(args.rtp):
            print(
                f"  {strategy.name:<16} {strategy.target_multiplier:>5.1f}x  "
                f"win rate {strategy.win_rate_percentage:.1f}%  ({strategy.description})"
            )

    return 0


if __name__ == "__main__":
    sys.exit(main())
