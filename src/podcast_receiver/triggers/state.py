"""Run bookkeeping for triggers."""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass
class TriggerState:
    """
    Represents the current state of a trigger.

    Tracks whether a trigger is enabled, when it last fired, how many
    times it has fired, and the most recent error.

    Attributes:
        name: Trigger identifier (e.g., "podcast_refresh")
        enabled: Whether the trigger is armed
        last_run: Timestamp of most recent firing
        run_count: Total number of times this trigger has fired
        last_error: Most recent error message, if any
    """

    name: str
    enabled: bool = True
    last_run: Optional[datetime] = None
    run_count: int = 0
    last_error: Optional[str] = None

    def record_run(self, error: Optional[str] = None) -> None:
        """
        Record a trigger firing.

        Args:
            error: Error message if the firing failed, None for success
        """
        self.last_run = datetime.now()
        self.run_count += 1
        self.last_error = error
