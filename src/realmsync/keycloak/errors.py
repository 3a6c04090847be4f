"""Typed errors raised by the Keycloak session, admin client and reconcilers."""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    """Failure category reported back to the caller as part of a status."""

    AUTH = "auth"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    REFERENCE = "reference"
    TRANSIENT = "transient"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class KeycloakError(Exception):
    """Base exception for Keycloak API errors."""

    kind: ErrorKind = ErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response: dict | None = None,
        reference: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.response = response
        self.reference = reference


class KeycloakAuthError(KeycloakError):
    """Login or re-authentication failed."""

    kind = ErrorKind.AUTH


class KeycloakNotFoundError(KeycloakError):
    """Resource not found."""

    kind = ErrorKind.NOT_FOUND


class KeycloakConflictError(KeycloakError):
    """Resource already exists."""

    kind = ErrorKind.CONFLICT


class KeycloakTransientError(KeycloakError):
    """Network failure, timeout or gateway error; retryable by the caller."""

    kind = ErrorKind.TRANSIENT


class KeycloakValidationError(KeycloakError):
    """The desired state is internally inconsistent."""

    kind = ErrorKind.VALIDATION


class KeycloakReferenceError(KeycloakError):
    """A named role, client or user required by the desired state does not exist."""

    kind = ErrorKind.REFERENCE

    def __init__(self, reference: str, message: str | None = None):
        super().__init__(
            message or f"Referenced entity not found: {reference}",
            reference=reference,
        )
