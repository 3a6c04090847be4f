"""Declarative reconciliation of Keycloak realms, clients and roles."""

__version__ = "0.1.0"
