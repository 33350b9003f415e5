"""CivicLens — AI enrichment and analytics for municipal complaint data."""

__version__ = "0.1.0"
