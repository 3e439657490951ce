"""crypto-pulse: scheduled crypto price ingestion and statistics."""

__version__ = "0.1.0"
