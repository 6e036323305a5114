"""Release Intel: trading-card release tracking and reconciliation."""

__version__ = "0.1.0"
