"""YAML bundle of desired-state resources used by the CLI.

Example YAML structure:
    realms:
      - metadata: {name: sso, labels: {app: sso}}
        spec:
          realm: {realm: sso, enabled: true}
          roles: [{name: realmRoleA}, {name: realmRoleB}]

    clients:
      - metadata: {name: billing}
        spec:
          realmSelector: {matchLabels: {app: sso}}
          client:
            clientId: billing
            secret: ${BILLING_SECRET}  # supports env vars

    # Credentials that already exist in the target namespace
    secrets:
      - keycloak-client-secret-billing
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field

from realmsync.models.client import KeycloakClientResource
from realmsync.models.common import KeycloakModel
from realmsync.models.realm import KeycloakRealmResource

# Pattern for ${VAR} and ${VAR:-default} interpolation
_ENV_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)(:-([^}]*))?\}")


def _resolve_env_str(s: str) -> str:
    """Resolve environment variable placeholders in a string."""
    def repl(m: re.Match[str]) -> str:
        var = m.group(1)
        default = m.group(3)
        val = os.getenv(var)
        if val is None or val == "":
            return default if default is not None else ""
        return val

    # Resolve repeatedly until stable (handles nested defaults)
    prev = None
    cur = s
    for _ in range(5):
        if cur == prev:
            break
        prev = cur
        cur = _ENV_PATTERN.sub(repl, cur)
    return cur


def _resolve_env(value: Any) -> Any:
    """Recursively resolve environment variables in a data structure."""
    if isinstance(value, str):
        return _resolve_env_str(value)
    if isinstance(value, list):
        return [_resolve_env(v) for v in value]
    if isinstance(value, dict):
        return {k: _resolve_env(v) for k, v in value.items()}
    return value


class ResourceBundle(KeycloakModel):
    """Realms and clients to reconcile together."""

    realms: list[KeycloakRealmResource] = Field(default_factory=list)
    clients: list[KeycloakClientResource] = Field(default_factory=list)
    secrets: list[str] = Field(default_factory=list)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ResourceBundle":
        """Load a bundle from a YAML file with env var interpolation."""
        p = Path(path)
        if not p.exists():
            raise FileNotFoundError(f"Bundle file not found: {path}")

        raw = yaml.safe_load(p.read_text())
        if not isinstance(raw, dict):
            raise ValueError(f"Bundle file must be a YAML mapping: {path}")

        return cls.model_validate(_resolve_env(raw))

    def secret_exists(self, namespace: str, name: str) -> bool:
        return name in self.secrets
