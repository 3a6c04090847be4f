"""Desired-state model of a Keycloak realm resource."""

from __future__ import annotations

from typing import Any

from pydantic import Field

from realmsync.models.common import KeycloakModel, ObjectMeta, RoleRepresentation
from realmsync.models.status import ResourceStatus


class KeycloakAPIRealm(KeycloakModel):
    id: str | None = None
    realm: str
    enabled: bool = True
    display_name: str | None = None
    attributes: dict[str, str] | None = None

    def to_representation(self) -> dict[str, Any]:
        rep = self.representation()
        rep.setdefault("id", self.realm)
        return rep


class KeycloakRealmSpec(KeycloakModel):
    realm: KeycloakAPIRealm
    # Realm roles, reconciled to exactly this set
    roles: list[RoleRepresentation] = Field(default_factory=list)


class KeycloakRealmResource(KeycloakModel):
    """A realm resource as submitted by the configuration store."""

    kind: str = "KeycloakRealm"
    metadata: ObjectMeta
    spec: KeycloakRealmSpec
    status: ResourceStatus = Field(default_factory=ResourceStatus)

    @property
    def realm_name(self) -> str:
        return self.spec.realm.realm
