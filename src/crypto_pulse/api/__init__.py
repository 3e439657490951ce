"""REST query surface over stored snapshots."""

from crypto_pulse.api.app import create_app

__all__ = ["create_app"]
