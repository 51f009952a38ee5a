"""Play-money balance, one bet per round, cash-out against the live multiplier.

All amounts are integer cents. Winnings are always rounded down.
"""
import logging
import math
import time
import uuid
from enum import Enum
from typing import Any

from pydantic import BaseModel, ValidationError

from crashgame.config import settings
from crashgame.errors import BetRejected, ErrorCode, GameError
from crashgame.events import EventBus, Subscription
from crashgame.logic.engine import RoundEngine
from crashgame.logic.models import RoundState
from crashgame.protocol import EventType, RoundCrashEvent, RoundStartEvent
from crashgame.storage import PersistedConfig
from crashgame.validators import validate_bet_amount

logger = logging.getLogger(__name__)


class BetStatus(str, Enum):
    ACTIVE = "ACTIVE"
    CASHED_OUT = "CASHED_OUT"
    LOST = "LOST"


class TransactionType(str, Enum):
    BET = "BET"
    WIN = "WIN"
    LOSS = "LOSS"
    REFUND = "REFUND"


class PlayerBet(BaseModel):
    betId: str
    roundId: int
    amountCents: int
    status: BetStatus = BetStatus.ACTIVE
    cashOutMultiplier: float | None = None
    cashOutTime: int | None = None
    winningsCents: int = 0
    placedAt: int


class Transaction(BaseModel):
    type: TransactionType
    amountCents: int
    balanceAfterCents: int
    roundId: int
    timestamp: int


def calculate_winnings(bet_cents: int, multiplier: float) -> int:
    """Payout for a cash-out, rounded down to whole cents."""
    return math.floor(bet_cents * multiplier)


def _now_ms() -> int:
    return int(time.time() * 1000)


class BalanceLedger(PersistedConfig):
    """
    Player balance bound to a round engine.

    Implements:
    - place_bet: only while the current round is BETTING
    - cash_out: only while the engine reports a cash-out multiplier
    - roundCrash marks the bet of that round LOST
    - roundStart drops bets left over from older rounds (refunding abandoned ones)
    """

    STORAGE_KEY = "balance"

    def __init__(self, engine: RoundEngine, bus: EventBus):
        super().__init__(engine.context.storage)
        self.engine = engine
        self.balance_cents: int = settings.starting_balance_cents
        self.current_bet: PlayerBet | None = None
        self.transactions: list[Transaction] = []
        self._subscriptions: list[Subscription] = [
            bus.subscribe(EventType.ROUND_START, self._on_round_start),
            bus.subscribe(EventType.ROUND_CRASH, self._on_round_crash),
        ]

    # === Persistence ===

    def to_blob(self) -> dict[str, Any]:
        return {
            "balanceCents": self.balance_cents,
            "transactions": [t.model_dump(mode="json") for t in self.transactions[-settings.transaction_log_size :]],
        }

    def apply_blob(self, blob: dict[str, Any]) -> None:
        balance = blob["balanceCents"]
        if isinstance(balance, bool) or not isinstance(balance, int) or balance < 0:
            raise ValueError(f"balanceCents must be a non-negative int, got {balance!r}")
        try:
            transactions = [Transaction.model_validate(t) for t in blob.get("transactions", [])]
        except ValidationError as e:
            raise ValueError(str(e)) from e
        self.balance_cents = balance
        self.transactions = transactions

    def _record(self, kind: TransactionType, amount_cents: int, round_id: int) -> None:
        self.transactions.append(
            Transaction(
                type=kind,
                amountCents=amount_cents,
                balanceAfterCents=self.balance_cents,
                roundId=round_id,
                timestamp=_now_ms(),
            )
        )
        del self.transactions[: -settings.transaction_log_size]

    # === Player operations ===

    def can_place_bet(self, amount_cents: int) -> bool:
        try:
            self._check_bet(amount_cents)
        except GameError:
            return False
        return True

    def can_cash_out(self) -> bool:
        try:
            self._check_cash_out()
        except GameError:
            return False
        return True

    def _check_bet(self, amount_cents: int) -> int:
        rnd = self.engine.current_round
        if rnd is None:
            raise GameError(ErrorCode.NO_ACTIVE_ROUND, "No round in progress")
        if rnd.state is not RoundState.BETTING:
            raise BetRejected("Bets are only accepted during the betting countdown")
        amount_cents = validate_bet_amount(amount_cents)
        if self.balance_cents < amount_cents:
            raise BetRejected("Insufficient balance")
        bet = self.current_bet
        if bet is not None and bet.status is BetStatus.ACTIVE and bet.roundId == rnd.round_id:
            raise BetRejected("Bet already placed for this round")
        return amount_cents

    async def place_bet(self, amount_cents: int) -> PlayerBet:
        rnd = self.engine.current_round
        if self.current_bet is not None and rnd is not None and self.current_bet.roundId != rnd.round_id:
            await self.clear_current_bet()
        amount_cents = self._check_bet(amount_cents)
        round_id = self.engine.current_round.round_id

        self.balance_cents -= amount_cents
        self.current_bet = PlayerBet(
            betId=f"bet_{uuid.uuid4().hex[:12]}",
            roundId=round_id,
            amountCents=amount_cents,
            placedAt=_now_ms(),
        )
        self._record(TransactionType.BET, -amount_cents, round_id)
        logger.info("Bet of %d cents placed on round %d", amount_cents, round_id)
        await self.save()
        return self.current_bet

    def _check_cash_out(self) -> tuple[PlayerBet, float]:
        bet = self.current_bet
        if bet is None or bet.status is not BetStatus.ACTIVE:
            raise BetRejected("No active bet to cash out")
        multiplier = self.engine.cash_out_multiplier()
        rnd = self.engine.current_round
        if multiplier is None or rnd is None or rnd.round_id != bet.roundId:
            raise BetRejected("Round is not running")
        return bet, multiplier

    async def cash_out(self) -> PlayerBet:
        bet, multiplier = self._check_cash_out()
        winnings = calculate_winnings(bet.amountCents, multiplier)
        bet.status = BetStatus.CASHED_OUT
        bet.cashOutMultiplier = multiplier
        bet.cashOutTime = _now_ms()
        bet.winningsCents = winnings
        self.balance_cents += winnings
        self._record(TransactionType.WIN, winnings, bet.roundId)
        logger.info("Cashed out round %d at %.2fx for %d cents", bet.roundId, multiplier, winnings)
        await self.save()
        return bet

    async def lose_bet(self) -> None:
        bet = self.current_bet
        if bet is None or bet.status is not BetStatus.ACTIVE:
            return
        bet.status = BetStatus.LOST
        bet.winningsCents = 0
        self._record(TransactionType.LOSS, 0, bet.roundId)
        await self.save()

    async def clear_current_bet(self) -> None:
        bet = self.current_bet
        self.current_bet = None
        if bet is not None and bet.status is BetStatus.ACTIVE:
            # Round was abandoned by a restart and never crashed.
            self.balance_cents += bet.amountCents
            self._record(TransactionType.REFUND, bet.amountCents, bet.roundId)
            logger.info("Refunded %d cents from abandoned round %d", bet.amountCents, bet.roundId)
            await self.save()

    async def reset_balance(self) -> None:
        self.balance_cents = settings.starting_balance_cents
        self.current_bet = None
        self.transactions = []
        await self.save()

    # === Engine events ===

    async def _on_round_start(self, event: RoundStartEvent) -> None:
        if self.current_bet is not None and self.current_bet.roundId != event.roundId:
            await self.clear_current_bet()

    async def _on_round_crash(self, event: RoundCrashEvent) -> None:
        if self.current_bet is not None and self.current_bet.roundId == event.roundId:
            await self.lose_bet()

    def close(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
