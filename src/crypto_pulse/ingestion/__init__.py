"""Price ingestion: fetch current quotes and append snapshots."""

from crypto_pulse.ingestion.service import NO_DATA_REASON, IngestionService

__all__ = [
    "IngestionService",
    "NO_DATA_REASON",
]
