"""Long-running processes: the trigger scheduler and the trigger consumer."""

from crypto_pulse.worker.consumer import TriggerConsumer
from crypto_pulse.worker.scheduler import (
    DEFAULT_INTERVAL_SECONDS,
    SchedulerState,
    TriggerScheduler,
)

__all__ = [
    "DEFAULT_INTERVAL_SECONDS",
    "SchedulerState",
    "TriggerConsumer",
    "TriggerScheduler",
]
