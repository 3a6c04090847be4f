"""Keycloak Admin API access: session, client, settings and errors."""

from realmsync.keycloak.client import KeycloakAdminClient
from realmsync.keycloak.errors import (
    ErrorKind,
    KeycloakAuthError,
    KeycloakConflictError,
    KeycloakError,
    KeycloakNotFoundError,
    KeycloakReferenceError,
    KeycloakTransientError,
    KeycloakValidationError,
)
from realmsync.keycloak.session import KeycloakSession, build_ssl_context
from realmsync.keycloak.settings import KeycloakSettings

__all__ = [
    "ErrorKind",
    "KeycloakAdminClient",
    "KeycloakAuthError",
    "KeycloakConflictError",
    "KeycloakError",
    "KeycloakNotFoundError",
    "KeycloakReferenceError",
    "KeycloakSession",
    "KeycloakSettings",
    "KeycloakTransientError",
    "KeycloakValidationError",
    "build_ssl_context",
]
