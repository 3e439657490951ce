"""Statistics over stored price history."""

from crypto_pulse.stats.deviation import (
    DEFAULT_WINDOW,
    PriceStatistics,
    round_for_report,
    standard_deviation,
)

__all__ = [
    "DEFAULT_WINDOW",
    "PriceStatistics",
    "round_for_report",
    "standard_deviation",
]
