"""Structured logging of reconcile outcomes."""

import logging
from typing import Any

import structlog

from realmsync.models.status import ReconcileOutcome


def configure_audit_logging(
    *,
    log_level: str | int,
    json_format: bool,
    service_name: str,
) -> None:
    # Resolve log level via stdlib logging (NOT structlog)
    if isinstance(log_level, str):
        level = getattr(logging, log_level.upper(), logging.INFO)
    else:
        level = int(log_level)

    logging.basicConfig(level=level)

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
    structlog.contextvars.bind_contextvars(service=service_name)


class OutcomeLogger:
    """Emits one structured event per reconcile pass."""

    def __init__(self, enabled: bool = True, logger: Any = None):
        """Initialize outcome logger.

        Args:
            enabled: Whether outcome events are emitted
            logger: Optional custom logger
        """
        self._enabled = enabled
        self._logger = logger or structlog.get_logger("reconcile")

    def log_outcome(
        self,
        *,
        kind: str,
        name: str,
        namespace: str,
        realm: str,
        outcome: ReconcileOutcome,
    ) -> None:
        """Log the outcome of a pass over one resource.

        Args:
            kind: Resource kind (KeycloakClient, KeycloakRealm)
            name: Resource name
            namespace: Resource namespace
            realm: Target realm
            outcome: Result of the pass
        """
        if not self._enabled:
            return

        log_data: dict[str, Any] = {
            "resource_kind": kind,
            "resource_name": name,
            "namespace": namespace,
            "realm": realm,
            "ok": outcome.ok,
        }

        if outcome.ok:
            self._logger.info("reconcile_succeeded", **log_data)
            return

        log_data["error_kind"] = outcome.error_kind.value if outcome.error_kind else None
        log_data["reference"] = outcome.reference
        log_data["retryable"] = outcome.retryable
        log_data["message"] = outcome.message
        self._logger.warning("reconcile_failed", **log_data)
