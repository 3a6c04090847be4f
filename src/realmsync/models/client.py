"""Desired-state model of a Keycloak client resource.

Example YAML structure:
    metadata:
      name: billing
      labels:
        app: sso
    spec:
      realmSelector:
        matchLabels:
          app: sso
      client:
        clientId: billing
        publicClient: false
        serviceAccountsEnabled: true
        defaultRoles: [viewer]
      roles:
        - name: viewer
        - name: editor
      scopeMappings:
        realmMappings:
          - name: offline_access
        clientMappings:
          reports:
            mappings:
              - name: read
      serviceAccountRealmRoles: [uma_authorization]
      serviceAccountClientRoles:
        reports: [read]
"""

from __future__ import annotations

from typing import Any

from pydantic import Field

from realmsync.models.common import (
    KeycloakModel,
    LabelSelector,
    ObjectMeta,
    RoleRepresentation,
)
from realmsync.models.policies import ResourceServer
from realmsync.models.status import ResourceStatus

# Credentials created under this name by earlier releases are left alone.
DEPRECATED_SECRET_PREFIX = "keycloak-client-secret-"

# Fields carried on the resource but never part of the client representation
# compared against the server.
UNTRACKED_FIELDS = {"id", "secret", "default_roles", "authorization_settings"}


class KeycloakAPIClient(KeycloakModel):
    """Client representation as sent to the admin API."""

    id: str | None = None
    client_id: str
    name: str | None = None
    description: str | None = None
    enabled: bool | None = True
    root_url: str | None = None
    base_url: str | None = None
    admin_url: str | None = None
    redirect_uris: list[str] | None = None
    web_origins: list[str] | None = None
    bearer_only: bool | None = None
    consent_required: bool | None = None
    standard_flow_enabled: bool | None = None
    implicit_flow_enabled: bool | None = None
    direct_access_grants_enabled: bool | None = None
    service_accounts_enabled: bool | None = None
    public_client: bool | None = None
    frontchannel_logout: bool | None = None
    protocol: str | None = None
    full_scope_allowed: bool | None = None
    surrogate_auth_required: bool | None = None
    node_re_registration_timeout: int | None = None
    default_client_scopes: list[str] | None = None
    optional_client_scopes: list[str] | None = None
    attributes: dict[str, str] | None = None
    secret: str | None = None
    authorization_services_enabled: bool | None = None
    authorization_settings: ResourceServer | None = None

    # Names of this client's roles that belong to the realm default role
    default_roles: list[str] = Field(default_factory=list)

    def to_representation(self) -> dict[str, Any]:
        """Full client representation for create/overwrite."""
        return self.representation(exclude={"default_roles", "authorization_settings"})

    def tracked_fields(self) -> dict[str, Any]:
        """Fields whose remote value must equal the desired one."""
        return self.representation(exclude=UNTRACKED_FIELDS)


class MappingsClientRepresentation(KeycloakModel):
    """Roles of one other client in a scope mapping."""

    id: str | None = None
    client: str | None = None
    mappings: list[RoleRepresentation] = Field(default_factory=list)


class MappingsRepresentation(KeycloakModel):
    """Scope mappings of a client: realm roles plus roles of other clients."""

    realm_mappings: list[RoleRepresentation] = Field(default_factory=list)
    client_mappings: dict[str, MappingsClientRepresentation] = Field(
        default_factory=dict
    )


class KeycloakClientSpec(KeycloakModel):
    realm_selector: LabelSelector | None = None
    client: KeycloakAPIClient
    roles: list[RoleRepresentation] = Field(default_factory=list)
    # None leaves scope mappings unmanaged
    scope_mappings: MappingsRepresentation | None = None
    service_account_realm_roles: list[str] = Field(default_factory=list)
    service_account_client_roles: dict[str, list[str]] = Field(default_factory=dict)


class KeycloakClientResource(KeycloakModel):
    """A client resource as submitted by the configuration store."""

    kind: str = "KeycloakClient"
    metadata: ObjectMeta
    spec: KeycloakClientSpec
    status: ResourceStatus = Field(default_factory=ResourceStatus)

    @property
    def client_id(self) -> str:
        return self.spec.client.client_id

    def deprecated_secret_name(self) -> str:
        """Credential name used by earlier releases, keyed on the client ID."""
        return f"{DEPRECATED_SECRET_PREFIX}{self.client_id}"
