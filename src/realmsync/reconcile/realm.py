"""Reconcile pass for one Keycloak realm resource."""

from __future__ import annotations

import logging
from typing import Any

from realmsync.audit import OutcomeLogger
from realmsync.keycloak.client import KeycloakAdminClient
from realmsync.keycloak.errors import KeycloakError, KeycloakValidationError
from realmsync.models.common import RoleRepresentation
from realmsync.models.realm import KeycloakAPIRealm, KeycloakRealmResource
from realmsync.models.status import ReconcileOutcome
from realmsync.reconcile.roles import RoleRef, RoleRename, apply_role_diff, diff_role_sets

logger = logging.getLogger(__name__)

# Realm roles Keycloak creates itself; never removed
BUILTIN_REALM_ROLES = frozenset({"offline_access", "uma_authorization"})

PROTECTED_REALMS = frozenset({"master"})


def realm_needs_update(desired: KeycloakAPIRealm, current: dict[str, Any]) -> bool:
    if desired.enabled != current.get("enabled"):
        return True
    if desired.display_name is not None and desired.display_name != current.get("displayName"):
        return True
    if desired.attributes:
        have = current.get("attributes") or {}
        return any(have.get(k) != v for k, v in desired.attributes.items())
    return False


class RealmReconciler:
    """Converges one realm resource and its realm roles."""

    def __init__(
        self,
        admin: KeycloakAdminClient,
        outcome_logger: OutcomeLogger | None = None,
    ):
        self._admin = admin
        self._outcomes = outcome_logger or OutcomeLogger()

    def reconcile(self, resource: KeycloakRealmResource) -> ReconcileOutcome:
        realm = resource.realm_name
        logger.info("Reconciling realm %s", realm)

        try:
            realm_rep = self._sync_realm(resource.spec.realm)
            self._sync_roles(realm, realm_rep, resource.spec.roles)
        except KeycloakError as e:
            logger.warning("Realm %s failed (%s): %s", realm, e.kind.value, e)
            outcome = ReconcileOutcome.failure(e)
        else:
            outcome = ReconcileOutcome.success()

        resource.status = outcome.to_status(resource.status.secondary_resources)
        self._outcomes.log_outcome(
            kind=resource.kind,
            name=resource.metadata.name,
            namespace=resource.metadata.namespace,
            realm=realm,
            outcome=outcome,
        )
        return outcome

    def delete(self, resource: KeycloakRealmResource) -> bool:
        """Delete the remote realm. Returns False if it did not exist."""
        realm = resource.realm_name
        if realm in PROTECTED_REALMS:
            raise KeycloakValidationError(
                f"Refusing to delete the {realm} realm", reference=realm
            )
        return self._admin.delete_realm(realm)

    def _sync_realm(self, desired: KeycloakAPIRealm) -> dict[str, Any]:
        current = self._admin.get_realm(desired.realm)
        if current is None:
            self._admin.create_realm(desired.to_representation())
        elif realm_needs_update(desired, current):
            self._admin.update_realm(desired.realm, desired.representation(exclude={"id"}))
        else:
            return current

        current = self._admin.get_realm(desired.realm)
        if current is None:
            raise KeycloakError(f"Failed to retrieve realm: {desired.realm}")
        return current

    def _sync_roles(
        self, realm: str, realm_rep: dict[str, Any], roles: list[RoleRepresentation]
    ) -> None:
        default_role = realm_rep.get("defaultRole") or {}
        unmanaged = BUILTIN_REALM_ROLES | {
            default_role.get("name") or f"default-roles-{realm.lower()}"
        }
        desired_by_name = {r.name: r for r in roles}

        default_id = default_role.get("id")
        actual = [
            RoleRef.of(r)
            for r in self._admin.list_realm_roles(realm)
            if r["name"] not in unmanaged and not (default_id and r.get("id") == default_id)
        ]
        desired = [RoleRef.of(r) for r in roles if r.name not in unmanaged]
        diff = diff_role_sets(actual, desired)

        def body(name: str) -> dict[str, Any]:
            role = desired_by_name.get(name)
            rep = role.representation(
                exclude={"id", "client_role", "container_id", "composite"}
            ) if role else {}
            rep["name"] = name
            return rep

        def remove(refs: list[RoleRef]) -> None:
            for ref in refs:
                self._admin.delete_realm_role(realm, ref.name)

        def rename(r: RoleRename) -> None:
            self._admin.update_role_by_id(realm, r.current.id, body(r.desired.name))

        def create(refs: list[RoleRef]) -> None:
            for ref in refs:
                self._admin.create_realm_role(realm, body(ref.name))

        apply_role_diff(diff, remove=remove, rename=rename, create=create)
