"""Status contract returned to the configuration store."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from pydantic import Field

from realmsync.keycloak.errors import ErrorKind, KeycloakError
from realmsync.models.common import KeycloakModel

SECRET_KIND = "Secret"


class Phase(str, Enum):
    RECONCILING = "reconciling"
    READY = "ready"
    FAILING = "failing"


class ResourceStatus(KeycloakModel):
    """Status persisted by the caller after each pass."""

    phase: Phase = Phase.RECONCILING
    message: str = ""
    ready: bool = False
    error_kind: ErrorKind | None = None
    reference: str | None = None
    # kind -> names of externally managed artifacts created for the resource
    secondary_resources: dict[str, list[str]] = Field(default_factory=dict)

    def without_secondary(self, kind: str, name: str) -> dict[str, list[str]]:
        """Copy of the bookkeeping with ``name`` removed from ``kind``."""
        remaining = {k: list(v) for k, v in self.secondary_resources.items()}
        names = [n for n in remaining.get(kind, []) if n != name]
        if names:
            remaining[kind] = names
        else:
            remaining.pop(kind, None)
        return remaining


@dataclass(frozen=True)
class ReconcileOutcome:
    """Result of one reconcile pass over one resource."""

    ok: bool
    message: str = ""
    error_kind: ErrorKind | None = None
    reference: str | None = None

    @classmethod
    def success(cls) -> "ReconcileOutcome":
        return cls(ok=True)

    @classmethod
    def failure(cls, error: KeycloakError) -> "ReconcileOutcome":
        return cls(
            ok=False,
            message=str(error),
            error_kind=error.kind,
            reference=error.reference,
        )

    @property
    def retryable(self) -> bool:
        return self.error_kind is ErrorKind.TRANSIENT

    def to_status(
        self, secondary_resources: dict[str, list[str]] | None = None
    ) -> ResourceStatus:
        """Build the complete status for this outcome."""
        if self.ok:
            return ResourceStatus(
                phase=Phase.READY,
                ready=True,
                secondary_resources=secondary_resources or {},
            )
        return ResourceStatus(
            phase=Phase.FAILING,
            ready=False,
            message=self.message,
            error_kind=self.error_kind,
            reference=self.reference,
            secondary_resources=secondary_resources or {},
        )
