"""Keycloak connection settings.

Settings can be provided via:
1. Environment variables (REALMSYNC_KEYCLOAK_*)
2. CLI arguments (--admin-user, --admin-password, --ca-cert, etc.)
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from realmsync.keycloak.errors import KeycloakValidationError

logger = logging.getLogger(__name__)


class KeycloakSettings(BaseSettings):
    """Keycloak connection and authentication settings."""

    model_config = SettingsConfigDict(
        env_prefix="REALMSYNC_KEYCLOAK_",
        extra="ignore",
    )

    # Connection
    base_url: str = Field(
        default="http://localhost:8080",
        description="Keycloak base URL (include '/auth' for legacy servers)",
    )
    timeout: float = Field(
        default=10.0,
        description="Deadline in seconds for every remote call",
    )

    # Admin login
    token_realm: str = Field(
        default="master",
        description="Realm the admin user logs into",
    )
    admin_client_id: str = Field(
        default="admin-cli",
        description="Public client used for the password grant",
    )
    admin_user: str | None = Field(
        default=None,
        description="Keycloak admin username",
    )
    admin_password: str | None = Field(
        default=None,
        description="Keycloak admin password",
    )

    # TLS trust
    ca_cert: str | None = Field(
        default=None,
        description="PEM certificate used as the only trust anchor",
    )
    ca_cert_file: Path | None = Field(
        default=None,
        description="File holding the PEM trust anchor",
    )

    @property
    def root_url(self) -> str:
        return self.base_url.rstrip("/")

    @property
    def token_url(self) -> str:
        """Get the password-grant token endpoint."""
        return f"{self.root_url}/realms/{self.token_realm}/protocol/openid-connect/token"

    @property
    def has_admin_credentials(self) -> bool:
        """Check if admin user credentials are available."""
        return bool(self.admin_user and self.admin_password)

    def ca_certificate(self) -> str | None:
        """Return the PEM trust anchor, inline value first."""
        if self.ca_cert:
            return self.ca_cert
        if self.ca_cert_file is None:
            return None
        if not self.ca_cert_file.exists():
            raise KeycloakValidationError(
                f"CA certificate file not found: {self.ca_cert_file}",
                reference=str(self.ca_cert_file),
            )
        logger.debug("Loading CA certificate from %s", self.ca_cert_file)
        return self.ca_cert_file.read_text()

    def with_overrides(
        self,
        *,
        base_url: str | None = None,
        admin_user: str | None = None,
        admin_password: str | None = None,
        ca_cert_file: Path | None = None,
    ) -> "KeycloakSettings":
        """Create a new settings instance with CLI overrides applied."""
        return KeycloakSettings(
            base_url=base_url or self.base_url,
            timeout=self.timeout,
            token_realm=self.token_realm,
            admin_client_id=self.admin_client_id,
            admin_user=admin_user or self.admin_user,
            admin_password=admin_password or self.admin_password,
            ca_cert=None if ca_cert_file else self.ca_cert,
            ca_cert_file=ca_cert_file or self.ca_cert_file,
        )
