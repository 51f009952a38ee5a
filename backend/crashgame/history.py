"""Completed-round history fed by roundCrash events."""
import logging
import time
from typing import Any

from pydantic import BaseModel, ValidationError

from crashgame.config import settings
from crashgame.config_hash import get_config_hash
from crashgame.events import EventBus, Subscription
from crashgame.logic.game_config import GameContext
from crashgame.protocol import EventType, RoundCrashEvent
from crashgame.storage import PersistedConfig

logger = logging.getLogger(__name__)


class RoundSummary(BaseModel):
    """One finished round, with everything needed to re-verify it."""

    roundId: int
    crashPoint: float
    seed: str
    seedHash: str
    rtpFactor: float
    debugOverride: bool = False
    verifiable: bool = True
    configHash: str
    timestamp: int


class GameHistory(PersistedConfig):
    """Newest-first list of finished rounds, capped at ``history_max_records``."""

    STORAGE_KEY = "history"

    def __init__(self, context: GameContext, bus: EventBus, max_records: int | None = None):
        super().__init__(context.storage)
        self.context = context
        self.max_records = max_records or settings.history_max_records
        self.rounds: list[RoundSummary] = []
        self._subscription: Subscription = bus.subscribe(EventType.ROUND_CRASH, self._on_round_crash)

    def to_blob(self) -> dict[str, Any]:
        return {"rounds": [r.model_dump() for r in self.rounds]}

    def apply_blob(self, blob: dict[str, Any]) -> None:
        try:
            rounds = [RoundSummary.model_validate(r) for r in blob["rounds"]]
        except ValidationError as e:
            raise ValueError(str(e)) from e
        self.rounds = rounds[: self.max_records]

    async def _on_round_crash(self, event: RoundCrashEvent) -> None:
        summary = RoundSummary(
            roundId=event.roundId,
            crashPoint=event.crashPoint,
            seed=event.seed,
            seedHash=event.seedHash,
            rtpFactor=event.rtpFactor,
            debugOverride=event.debugOverride,
            verifiable=event.verifiable,
            configHash=get_config_hash(event.rtpFactor, self.context.phases.phases),
            timestamp=int(time.time() * 1000),
        )
        await self.add_round(summary)

    async def add_round(self, summary: RoundSummary) -> None:
        self.rounds.insert(0, summary)
        del self.rounds[self.max_records :]
        await self.save()

    def get_recent_rounds(self, count: int = 10) -> list[RoundSummary]:
        return self.rounds[: max(count, 0)]

    async def clear_history(self) -> None:
        self.rounds = []
        await self.save()

    def close(self) -> None:
        self._subscription.unsubscribe()
