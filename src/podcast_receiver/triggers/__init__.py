"""
Trigger system for automated podcast refreshes.

Provides the periodic refresh trigger and the single-worker queue through
which every refresh cycle runs.

Configuration via podcast.yaml:
    receiver:
      refresh_interval_hours: 24    # or "disabled"
"""

from podcast_receiver.triggers.state import TriggerState
from podcast_receiver.triggers.scheduler import RefreshScheduler

__all__ = [
    "TriggerState",
    "RefreshScheduler",
]
