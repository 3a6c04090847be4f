"""Outcome logging package."""

from .logger import OutcomeLogger, configure_audit_logging

__all__ = [
    "OutcomeLogger",
    "configure_audit_logging",
]
