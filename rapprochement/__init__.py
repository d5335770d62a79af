"""Bank-reconciliation matching engine."""

__version__ = "1.0.0"
