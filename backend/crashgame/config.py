"""Application configuration derived from defaults and environment."""
from typing import Literal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Engine settings; every field can be overridden with a CRASH_* variable."""

    model_config = ConfigDict(env_prefix="CRASH_")

    # Server
    debug: bool = False
    protocol_version: str = "1.0"
    autostart_engine: bool = True
    event_buffer_size: int = 256  # per WebSocket client

    # Storage
    storage_backend: Literal["memory", "redis"] = "memory"
    redis_url: str = "redis://localhost:6379/0"
    storage_key_prefix: str = "crashgame_"

    # Fairness
    default_rtp_factor: float = 0.97
    require_secure_crypto: bool = False  # refuse rounds instead of degrading

    # Round timing
    betting_countdown_seconds: int = 5
    force_restart_countdown_seconds: int = 1
    next_round_delay_ms: float = 3000.0

    # Tick sources
    frame_interval_ms: float = 1000.0 / 60
    simulation_enabled_default: bool = False
    simulation_interval_ms_default: float = 100.0
    min_update_interval_ms: float = 10.0
    max_update_interval_ms: float = 1000.0

    # Growth phases (policy bounds, not laws)
    min_growth_rate: float = 0.000001
    max_growth_rate: float = 0.001
    min_phases: int = 2
    max_phases: int = 10
    new_phase_rate: float = 0.0001
    new_phase_gap_ms: float = 10000.0

    # Collaborators
    history_max_records: int = 50
    transaction_log_size: int = 50
    starting_balance_cents: int = 100000
    min_bet_cents: int = 100
    max_bet_cents: int = 100000


settings = Settings()
