"""Desired-state resources and the status contract."""

from realmsync.models.bundle import ResourceBundle
from realmsync.models.client import (
    KeycloakAPIClient,
    KeycloakClientResource,
    KeycloakClientSpec,
    MappingsClientRepresentation,
    MappingsRepresentation,
)
from realmsync.models.common import LabelSelector, ObjectMeta, RoleRepresentation
from realmsync.models.policies import (
    AuthorizationResource,
    AuthorizationScope,
    Policy,
    ResourceServer,
    parse_policy,
)
from realmsync.models.realm import (
    KeycloakAPIRealm,
    KeycloakRealmResource,
    KeycloakRealmSpec,
)
from realmsync.models.status import Phase, ReconcileOutcome, ResourceStatus

__all__ = [
    "AuthorizationResource",
    "AuthorizationScope",
    "KeycloakAPIClient",
    "KeycloakAPIRealm",
    "KeycloakClientResource",
    "KeycloakClientSpec",
    "KeycloakRealmResource",
    "KeycloakRealmSpec",
    "LabelSelector",
    "MappingsClientRepresentation",
    "MappingsRepresentation",
    "ObjectMeta",
    "Phase",
    "Policy",
    "ReconcileOutcome",
    "ResourceBundle",
    "ResourceServer",
    "ResourceStatus",
    "RoleRepresentation",
    "parse_policy",
]
