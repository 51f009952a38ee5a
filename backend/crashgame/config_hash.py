"""Config hash shared by round history and RTP simulation reports.

The hash MUST be computed identically in both places so a history record can
be matched to the simulation run made with the same configuration.
"""
import hashlib
import json
from typing import Sequence

from crashgame.logic.models import GrowthPhase


def get_config_hash(rtp_factor: float, phases: Sequence[GrowthPhase]) -> str:
    """
    Generate hash of the configuration that shapes a round.

    Returns 16-char hex hash of config snapshot.
    Used for:
    - history record configHash field
    - rtp_sim CSV config_hash column
    """
    config_snapshot = {
        "rtp_factor": rtp_factor,
        "phases": [[phase.rate, phase.end_time] for phase in phases],
    }
    canonical = json.dumps(config_snapshot, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode()).hexdigest()[:16]
