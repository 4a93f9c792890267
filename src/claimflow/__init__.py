"""claimflow - healthcare claims CSV ingestion service."""

__version__ = "0.1.0"
