"""Reconcile pass for one Keycloak client resource.

The pass runs these steps in order against freshly fetched remote state:

1. client entity (create, or overwrite when a tracked field differs)
2. client roles
3. realm default-role composites restricted to this client
4. scope mappings (every name resolved before any write)
5. service-account role bindings
6. deprecated credential bookkeeping

The first KeycloakError aborts the remaining steps and becomes a failing status.
Nothing computed here is kept between passes.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from realmsync.audit import OutcomeLogger
from realmsync.keycloak.client import KeycloakAdminClient
from realmsync.keycloak.errors import (
    KeycloakError,
    KeycloakNotFoundError,
    KeycloakReferenceError,
    KeycloakValidationError,
)
from realmsync.models.client import (
    KeycloakAPIClient,
    KeycloakClientResource,
    KeycloakClientSpec,
    MappingsRepresentation,
)
from realmsync.models.common import RoleRepresentation
from realmsync.models.policies import ResourceServer
from realmsync.models.status import SECRET_KIND, ReconcileOutcome
from realmsync.reconcile.authorization import diff_authorization
from realmsync.reconcile.roles import (
    RoleRef,
    RoleRename,
    apply_role_diff,
    diff_role_sets,
)

logger = logging.getLogger(__name__)

# (namespace, name) -> whether the credential exists
SecretLookup = Callable[[str, str], bool]


def _payload(roles: list[RoleRef]) -> list[dict[str, str]]:
    return [r.payload() for r in roles]


def _refs(roles: list[dict[str, Any]] | None) -> list[RoleRef]:
    return [RoleRef.of(r) for r in roles or []]


def _role_body(role: RoleRepresentation | None, name: str) -> dict[str, Any]:
    """Role payload for create/rename, without server-owned fields."""
    if role is None:
        return {"name": name}
    body = role.representation(exclude={"id", "client_role", "container_id", "composite"})
    body["name"] = name
    return body


def client_needs_update(desired: KeycloakAPIClient, current: dict[str, Any]) -> bool:
    """Check if any tracked client field differs from the server's value.

    Lists compare as sets; attributes compare only the keys that are set.
    """
    for key, want in desired.tracked_fields().items():
        have = current.get(key)
        if isinstance(want, list):
            if sorted(want) != sorted(have or []):
                logger.debug("Client field %s differs: %s != %s", key, want, have)
                return True
        elif isinstance(want, dict):
            have = have or {}
            if any(have.get(k) != v for k, v in want.items()):
                logger.debug("Client field %s differs", key)
                return True
        elif want != have:
            logger.debug("Client field %s differs: %s != %s", key, want, have)
            return True
    return False


class ClientReconciler:
    """Converges one client resource to its desired state."""

    def __init__(
        self,
        admin: KeycloakAdminClient,
        secret_exists: SecretLookup | None = None,
        outcome_logger: OutcomeLogger | None = None,
    ):
        self._admin = admin
        self._secret_exists = secret_exists
        self._outcomes = outcome_logger or OutcomeLogger()

    def reconcile(self, resource: KeycloakClientResource, realm: str) -> ReconcileOutcome:
        """Run one pass and replace ``resource.status`` with its result."""
        spec = resource.spec
        secondary = resource.status.secondary_resources
        logger.info("Reconciling client %s in realm %s", resource.client_id, realm)

        try:
            client_uuid = self._sync_client(realm, spec.client)
            self._sync_roles(realm, client_uuid, spec.roles)

            realm_rep = self._get_realm(realm)
            self._sync_default_roles(realm, realm_rep, client_uuid, spec.client)
            if spec.scope_mappings is not None:
                self._sync_scope_mappings(realm, client_uuid, spec.scope_mappings)
            self._sync_service_account_roles(realm, realm_rep, client_uuid, spec)

            secondary = self._drop_deprecated_secret(resource)
        except KeycloakError as e:
            logger.warning(
                "Client %s failed (%s): %s", resource.client_id, e.kind.value, e
            )
            outcome = ReconcileOutcome.failure(e)
        else:
            outcome = ReconcileOutcome.success()

        resource.status = outcome.to_status(secondary)
        self._outcomes.log_outcome(
            kind=resource.kind,
            name=resource.metadata.name,
            namespace=resource.metadata.namespace,
            realm=realm,
            outcome=outcome,
        )
        return outcome

    def delete(self, resource: KeycloakClientResource, realm: str) -> bool:
        """Delete the remote client. Returns False if it did not exist."""
        try:
            current = self._admin.get_client_by_client_id(realm, resource.client_id)
        except KeycloakNotFoundError:
            # The realm itself is gone
            current = None
        if current is None:
            logger.info("Client %s already absent from realm %s", resource.client_id, realm)
            return False
        return self._admin.delete_client(realm, current["id"])

    # -------------------------------------------------------------------------
    # 1. Client entity
    # -------------------------------------------------------------------------

    def _sync_client(self, realm: str, client: KeycloakAPIClient) -> str:
        desired = client.to_representation()
        current = self._admin.get_client_by_client_id(realm, client.client_id)

        if current is None:
            client_uuid = self._admin.create_client(realm, desired)
        else:
            client_uuid = current["id"]
            if client_needs_update(client, current):
                self._admin.update_client(realm, client_uuid, desired)

        settings = client.authorization_settings
        if client.authorization_services_enabled and settings is not None:
            self._sync_authorization(realm, client_uuid, settings)
        return client_uuid

    def _sync_authorization(
        self, realm: str, client_uuid: str, settings: ResourceServer
    ) -> None:
        remote = self._admin.get_authorization_settings(realm, client_uuid)
        drift = diff_authorization(settings, remote)
        if not drift.has_changes:
            logger.debug("Authorization settings of %s are up to date", client_uuid)
            return

        # Permissions reference resources and scopes, so they go first
        for policy_id in drift.stale_policies:
            self._admin.delete_authorization_policy(realm, client_uuid, policy_id)
        for resource_id in drift.stale_resources:
            self._admin.delete_authorization_resource(realm, client_uuid, resource_id)
        for scope_id in drift.stale_scopes:
            self._admin.delete_authorization_scope(realm, client_uuid, scope_id)

        if drift.changed:
            self._admin.import_authorization_settings(
                realm, client_uuid, settings.to_representation()
            )

    # -------------------------------------------------------------------------
    # 2. Client roles
    # -------------------------------------------------------------------------

    def _sync_roles(
        self, realm: str, client_uuid: str, roles: list[RoleRepresentation]
    ) -> None:
        desired_by_name = {r.name: r for r in roles}
        actual = _refs(self._admin.list_client_roles(realm, client_uuid))
        diff = diff_role_sets(actual, [RoleRef.of(r) for r in roles])

        def remove(refs: list[RoleRef]) -> None:
            for ref in refs:
                self._admin.delete_client_role(realm, client_uuid, ref.name)

        def rename(r: RoleRename) -> None:
            body = _role_body(desired_by_name.get(r.desired.name), r.desired.name)
            self._admin.update_role_by_id(realm, r.current.id, body)

        def create(refs: list[RoleRef]) -> None:
            for ref in refs:
                body = _role_body(desired_by_name.get(ref.name), ref.name)
                self._admin.create_client_role(realm, client_uuid, body)

        apply_role_diff(diff, remove=remove, rename=rename, create=create)

    # -------------------------------------------------------------------------
    # 3. Default roles
    # -------------------------------------------------------------------------

    def _get_realm(self, realm: str) -> dict[str, Any]:
        realm_rep = self._admin.get_realm(realm)
        if realm_rep is None:
            raise KeycloakReferenceError(realm, f"Realm not found: {realm}")
        return realm_rep

    def _sync_default_roles(
        self,
        realm: str,
        realm_rep: dict[str, Any],
        client_uuid: str,
        client: KeycloakAPIClient,
    ) -> None:
        default_role_id = (realm_rep.get("defaultRole") or {}).get("id")
        if not default_role_id:
            if client.default_roles:
                raise KeycloakReferenceError(
                    f"default-roles-{realm}",
                    f"Realm {realm} has no default role to attach {client.default_roles} to",
                )
            return

        available = {r["name"]: r for r in self._admin.list_client_roles(realm, client_uuid)}
        desired: list[RoleRef] = []
        for name in client.default_roles:
            role = available.get(name)
            if role is None:
                raise KeycloakReferenceError(
                    name, f"Default role '{name}' is not a role of client '{client.client_id}'"
                )
            desired.append(RoleRef.of(role))

        actual = _refs(
            self._admin.list_composite_client_roles(realm, default_role_id, client_uuid)
        )
        apply_role_diff(
            diff_role_sets(actual, desired),
            remove=lambda refs: self._admin.remove_composites(
                realm, default_role_id, _payload(refs)
            ),
            create=lambda refs: self._admin.add_composites(
                realm, default_role_id, _payload(refs)
            ),
        )

    # -------------------------------------------------------------------------
    # 4. Scope mappings
    # -------------------------------------------------------------------------

    def _resolve_realm_role(self, realm: str, name: str) -> RoleRef:
        role = self._admin.get_realm_role(realm, name)
        if role is None:
            raise KeycloakReferenceError(name, f"Realm role '{name}' not found in {realm}")
        return RoleRef.of(role)

    def _resolve_client_roles(
        self, realm: str, client_id: str, names: list[str]
    ) -> tuple[str, list[RoleRef]]:
        other = self._admin.get_client_by_client_id(realm, client_id)
        if other is None:
            raise KeycloakReferenceError(client_id, f"Client '{client_id}' not found in {realm}")
        available = {r["name"]: r for r in self._admin.list_client_roles(realm, other["id"])}

        refs: list[RoleRef] = []
        for name in names:
            role = available.get(name)
            if role is None:
                raise KeycloakReferenceError(
                    name, f"Role '{name}' not found on client '{client_id}'"
                )
            refs.append(RoleRef.of(role))
        return other["id"], refs

    def _sync_scope_mappings(
        self, realm: str, client_uuid: str, mappings: MappingsRepresentation
    ) -> None:
        desired_realm = [self._resolve_realm_role(realm, r.name) for r in mappings.realm_mappings]
        desired_clients: dict[str, list[RoleRef]] = {}
        for key, bucket in mappings.client_mappings.items():
            other_uuid, refs = self._resolve_client_roles(
                realm, bucket.client or key, [r.name for r in bucket.mappings]
            )
            desired_clients[other_uuid] = refs

        current = self._admin.get_scope_mappings(realm, client_uuid)

        apply_role_diff(
            diff_role_sets(_refs(current.get("realmMappings")), desired_realm),
            remove=lambda refs: self._admin.remove_realm_scope_mappings(
                realm, client_uuid, _payload(refs)
            ),
            create=lambda refs: self._admin.add_realm_scope_mappings(
                realm, client_uuid, _payload(refs)
            ),
        )

        actual_clients = {
            bucket["id"]: _refs(bucket.get("mappings"))
            for bucket in (current.get("clientMappings") or {}).values()
        }
        for other_uuid in sorted(set(actual_clients) | set(desired_clients)):
            apply_role_diff(
                diff_role_sets(
                    actual_clients.get(other_uuid, []), desired_clients.get(other_uuid, [])
                ),
                remove=lambda refs, o=other_uuid: self._admin.remove_client_scope_mappings(
                    realm, client_uuid, o, _payload(refs)
                ),
                create=lambda refs, o=other_uuid: self._admin.add_client_scope_mappings(
                    realm, client_uuid, o, _payload(refs)
                ),
            )

    # -------------------------------------------------------------------------
    # 5. Service account role bindings
    # -------------------------------------------------------------------------

    def _sync_service_account_roles(
        self,
        realm: str,
        realm_rep: dict[str, Any],
        client_uuid: str,
        spec: KeycloakClientSpec,
    ) -> None:
        if not spec.client.service_accounts_enabled:
            if spec.service_account_realm_roles or spec.service_account_client_roles:
                raise KeycloakValidationError(
                    f"Client '{spec.client.client_id}' lists service account roles "
                    "but serviceAccountsEnabled is not set",
                    reference=spec.client.client_id,
                )
            return

        desired_realm = [
            self._resolve_realm_role(realm, name) for name in spec.service_account_realm_roles
        ]
        desired_clients: dict[str, list[RoleRef]] = {}
        for client_id, names in spec.service_account_client_roles.items():
            other_uuid, refs = self._resolve_client_roles(realm, client_id, names)
            desired_clients[other_uuid] = refs

        try:
            user = self._admin.get_service_account_user(realm, client_uuid)
        except KeycloakNotFoundError as e:
            raise KeycloakReferenceError(
                f"service-account-{spec.client.client_id}",
                f"Service account user of '{spec.client.client_id}' not found",
            ) from e
        user_id = user["id"]
        mappings = self._admin.get_user_role_mappings(realm, user_id)

        # Every realm member holds the default role implicitly
        default_role_id = (realm_rep.get("defaultRole") or {}).get("id")
        actual_realm = [
            r
            for r in _refs(mappings.get("realmMappings"))
            if not (default_role_id and r.id == default_role_id)
        ]
        apply_role_diff(
            diff_role_sets(actual_realm, desired_realm),
            remove=lambda refs: self._admin.remove_user_realm_roles(
                realm, user_id, _payload(refs)
            ),
            create=lambda refs: self._admin.add_user_realm_roles(
                realm, user_id, _payload(refs)
            ),
        )

        actual_clients = {
            bucket["id"]: _refs(bucket.get("mappings"))
            for bucket in (mappings.get("clientMappings") or {}).values()
        }
        for other_uuid in sorted(set(actual_clients) | set(desired_clients)):
            apply_role_diff(
                diff_role_sets(
                    actual_clients.get(other_uuid, []), desired_clients.get(other_uuid, [])
                ),
                remove=lambda refs, o=other_uuid: self._admin.remove_user_client_roles(
                    realm, user_id, o, _payload(refs)
                ),
                create=lambda refs, o=other_uuid: self._admin.add_user_client_roles(
                    realm, user_id, o, _payload(refs)
                ),
            )

    # -------------------------------------------------------------------------
    # 6. Deprecated credential
    # -------------------------------------------------------------------------

    def _drop_deprecated_secret(
        self, resource: KeycloakClientResource
    ) -> dict[str, list[str]]:
        status = resource.status
        name = resource.deprecated_secret_name()
        if self._secret_exists is None:
            return status.secondary_resources
        if not self._secret_exists(resource.metadata.namespace, name):
            return status.secondary_resources

        logger.info(
            "Credential %s/%s uses the deprecated name; leaving it unmanaged",
            resource.metadata.namespace, name,
        )
        return status.without_secondary(SECRET_KIND, name)
