"""Utility modules."""

from .audit_logger import AuditLogger
from .logging_setup import setup_logging

__all__ = ["AuditLogger", "setup_logging"]
