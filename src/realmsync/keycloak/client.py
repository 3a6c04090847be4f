"""Keycloak Admin API client.

Wraps the Keycloak Admin REST API for managing:
- Realms
- Clients and their authorization settings
- Realm and client roles (including renames by ID)
- Default-role composites
- Client scope mappings
- Service account users and their role mappings

Writes are idempotent: creating an entity that already exists and deleting one
that is already gone both complete without error.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from realmsync.keycloak.errors import (
    KeycloakConflictError,
    KeycloakError,
    KeycloakNotFoundError,
)
from realmsync.keycloak.session import KeycloakSession
from realmsync.keycloak.settings import KeycloakSettings

logger = logging.getLogger(__name__)


def _segment(value: str) -> str:
    return quote(value, safe="")


class KeycloakAdminClient:
    """Blocking client for the Keycloak Admin REST API."""

    def __init__(self, session: KeycloakSession):
        self._session = session

    @classmethod
    def connect(
        cls,
        settings: KeycloakSettings,
        transport: httpx.BaseTransport | None = None,
    ) -> "KeycloakAdminClient":
        """Open a session for ``settings`` and log in with its admin credentials."""
        session = KeycloakSession(settings, transport=transport)
        session.authenticate(settings.admin_user or "", settings.admin_password or "")
        return cls(session)

    def __enter__(self) -> "KeycloakAdminClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._session.close()

    @property
    def session(self) -> KeycloakSession:
        return self._session

    # -------------------------------------------------------------------------
    # HTTP helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _realm_path(realm: str) -> str:
        return f"/admin/realms/{_segment(realm)}"

    def _get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """Make GET request to admin API."""
        response = self._session.request("GET", path, params=params)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise KeycloakError(
                f"Invalid JSON in response to GET {path}", status_code=response.status_code
            ) from e

    def _post(self, path: str, json: Any = None) -> httpx.Response:
        """Make POST request to admin API."""
        return self._session.request("POST", path, json=json)

    def _put(self, path: str, json: Any = None) -> httpx.Response:
        """Make PUT request to admin API."""
        return self._session.request("PUT", path, json=json)

    def _delete(self, path: str, json: Any = None) -> httpx.Response:
        """Make DELETE request to admin API."""
        return self._session.request("DELETE", path, json=json)

    def _create(self, path: str, json: Any, what: str) -> bool:
        """POST that treats 409 as success. Returns False if it already existed."""
        try:
            self._post(path, json=json)
        except KeycloakConflictError:
            logger.debug("%s already exists", what)
            return False
        return True

    def _remove(self, path: str, what: str, json: Any = None) -> bool:
        """DELETE that treats 404 as success. Returns False if it was already gone."""
        try:
            self._delete(path, json=json)
        except KeycloakNotFoundError:
            logger.debug("%s already absent", what)
            return False
        return True

    def _get_optional(self, path: str, params: dict[str, Any] | None = None) -> Any:
        try:
            return self._get(path, params=params)
        except KeycloakNotFoundError:
            return None

    # -------------------------------------------------------------------------
    # Realms
    # -------------------------------------------------------------------------

    def get_realm(self, realm: str) -> dict[str, Any] | None:
        """Get a realm representation, or None if it does not exist."""
        return self._get_optional(self._realm_path(realm))

    def create_realm(self, representation: dict[str, Any]) -> bool:
        """Create a realm."""
        name = representation["realm"]
        logger.debug("Creating realm: %s", name)
        created = self._create("/admin/realms", representation, f"Realm {name}")
        if created:
            logger.info("Created realm: %s", name)
        return created

    def update_realm(self, realm: str, representation: dict[str, Any]) -> None:
        """Update realm attributes."""
        logger.debug("Updating realm: %s", realm)
        self._put(self._realm_path(realm), json=representation)
        logger.info("Updated realm: %s", realm)

    def delete_realm(self, realm: str) -> bool:
        """Delete a realm."""
        logger.debug("Deleting realm: %s", realm)
        deleted = self._remove(self._realm_path(realm), f"Realm {realm}")
        if deleted:
            logger.info("Deleted realm: %s", realm)
        return deleted

    # -------------------------------------------------------------------------
    # Clients
    # -------------------------------------------------------------------------

    def list_clients_by_client_id(self, realm: str, client_id: str) -> list[dict[str, Any]]:
        """List clients whose clientId equals ``client_id``."""
        clients = self._get(
            f"{self._realm_path(realm)}/clients", params={"clientId": client_id}
        )
        return [c for c in clients or [] if c.get("clientId") == client_id]

    def get_client_by_client_id(self, realm: str, client_id: str) -> dict[str, Any] | None:
        """Get a client by clientId."""
        clients = self.list_clients_by_client_id(realm, client_id)
        if clients:
            return clients[0]
        return None

    def create_client(self, realm: str, representation: dict[str, Any]) -> str:
        """Create a client and return its UUID."""
        client_id = representation["clientId"]
        logger.debug("Creating client: %s", client_id)
        self._create(
            f"{self._realm_path(realm)}/clients", representation, f"Client {client_id}"
        )

        client = self.get_client_by_client_id(realm, client_id)
        if not client:
            raise KeycloakError(f"Failed to retrieve created client: {client_id}")

        logger.info("Created client: %s (uuid=%s)", client_id, client["id"])
        return client["id"]

    def update_client(
        self, realm: str, client_uuid: str, representation: dict[str, Any]
    ) -> None:
        """Overwrite a client representation."""
        logger.debug("Updating client: %s", representation.get("clientId", client_uuid))
        self._put(
            f"{self._realm_path(realm)}/clients/{client_uuid}",
            json={**representation, "id": client_uuid},
        )
        logger.info("Updated client: %s", representation.get("clientId", client_uuid))

    def delete_client(self, realm: str, client_uuid: str) -> bool:
        """Delete a client."""
        logger.debug("Deleting client: %s", client_uuid)
        deleted = self._remove(
            f"{self._realm_path(realm)}/clients/{client_uuid}", f"Client {client_uuid}"
        )
        if deleted:
            logger.info("Deleted client: %s", client_uuid)
        return deleted

    def get_authorization_settings(
        self, realm: str, client_uuid: str
    ) -> dict[str, Any] | None:
        """Export the client's resource server (resources, policies, scopes)."""
        return self._get_optional(
            f"{self._realm_path(realm)}/clients/{client_uuid}/authz/resource-server/settings"
        )

    def import_authorization_settings(
        self, realm: str, client_uuid: str, settings: dict[str, Any]
    ) -> None:
        """Import a resource server representation into the client."""
        logger.debug("Importing authorization settings for client %s", client_uuid)
        self._post(
            f"{self._realm_path(realm)}/clients/{client_uuid}/authz/resource-server/import",
            json=settings,
        )
        logger.info("Imported authorization settings for client %s", client_uuid)

    def _resource_server_path(self, realm: str, client_uuid: str) -> str:
        return f"{self._realm_path(realm)}/clients/{client_uuid}/authz/resource-server"

    def delete_authorization_policy(self, realm: str, client_uuid: str, policy_id: str) -> bool:
        """Delete a policy or permission of the client's resource server."""
        logger.debug("Deleting authorization policy %s of client %s", policy_id, client_uuid)
        return self._remove(
            f"{self._resource_server_path(realm, client_uuid)}/policy/{policy_id}",
            f"Authorization policy {policy_id}",
        )

    def delete_authorization_resource(
        self, realm: str, client_uuid: str, resource_id: str
    ) -> bool:
        """Delete a protected resource of the client's resource server."""
        logger.debug("Deleting authorization resource %s of client %s", resource_id, client_uuid)
        return self._remove(
            f"{self._resource_server_path(realm, client_uuid)}/resource/{resource_id}",
            f"Authorization resource {resource_id}",
        )

    def delete_authorization_scope(self, realm: str, client_uuid: str, scope_id: str) -> bool:
        """Delete an authorization scope of the client's resource server."""
        logger.debug("Deleting authorization scope %s of client %s", scope_id, client_uuid)
        return self._remove(
            f"{self._resource_server_path(realm, client_uuid)}/scope/{scope_id}",
            f"Authorization scope {scope_id}",
        )

    # -------------------------------------------------------------------------
    # Roles
    # -------------------------------------------------------------------------

    def list_realm_roles(self, realm: str) -> list[dict[str, Any]]:
        """List all realm roles."""
        return self._get(f"{self._realm_path(realm)}/roles") or []

    def get_realm_role(self, realm: str, name: str) -> dict[str, Any] | None:
        """Get a realm role by name."""
        return self._get_optional(f"{self._realm_path(realm)}/roles/{_segment(name)}")

    def create_realm_role(self, realm: str, role: dict[str, Any]) -> bool:
        """Create a realm role."""
        logger.debug("Creating realm role: %s", role["name"])
        created = self._create(
            f"{self._realm_path(realm)}/roles", role, f"Realm role {role['name']}"
        )
        if created:
            logger.info("Created realm role: %s", role["name"])
        return created

    def delete_realm_role(self, realm: str, name: str) -> bool:
        """Delete a realm role by name."""
        logger.debug("Deleting realm role: %s", name)
        deleted = self._remove(
            f"{self._realm_path(realm)}/roles/{_segment(name)}", f"Realm role {name}"
        )
        if deleted:
            logger.info("Deleted realm role: %s", name)
        return deleted

    def list_client_roles(self, realm: str, client_uuid: str) -> list[dict[str, Any]]:
        """Get all roles for a client."""
        return self._get(f"{self._realm_path(realm)}/clients/{client_uuid}/roles") or []

    def create_client_role(
        self, realm: str, client_uuid: str, role: dict[str, Any]
    ) -> bool:
        """Create a client role."""
        logger.debug("Creating role %s on client %s", role["name"], client_uuid)
        created = self._create(
            f"{self._realm_path(realm)}/clients/{client_uuid}/roles",
            role,
            f"Client role {role['name']}",
        )
        if created:
            logger.info("Created role %s on client %s", role["name"], client_uuid)
        return created

    def delete_client_role(self, realm: str, client_uuid: str, name: str) -> bool:
        """Delete a client role by name."""
        logger.debug("Deleting role %s from client %s", name, client_uuid)
        deleted = self._remove(
            f"{self._realm_path(realm)}/clients/{client_uuid}/roles/{_segment(name)}",
            f"Client role {name}",
        )
        if deleted:
            logger.info("Deleted role %s from client %s", name, client_uuid)
        return deleted

    def update_role_by_id(self, realm: str, role_id: str, role: dict[str, Any]) -> None:
        """Update (e.g. rename) a role in place, keeping its ID and composite links."""
        logger.debug("Updating role %s -> %s", role_id, role.get("name"))
        self._put(
            f"{self._realm_path(realm)}/roles-by-id/{role_id}",
            json={**role, "id": role_id},
        )
        logger.info("Updated role %s (name=%s)", role_id, role.get("name"))

    # -------------------------------------------------------------------------
    # Composites (default roles)
    # -------------------------------------------------------------------------

    def list_composite_client_roles(
        self, realm: str, role_id: str, client_uuid: str
    ) -> list[dict[str, Any]]:
        """List composite members of ``role_id`` that belong to ``client_uuid``."""
        return (
            self._get(
                f"{self._realm_path(realm)}/roles-by-id/{role_id}/composites/clients/{client_uuid}"
            )
            or []
        )

    def add_composites(
        self, realm: str, role_id: str, roles: list[dict[str, Any]]
    ) -> None:
        """Add roles to a composite role."""
        logger.debug("Adding %d composites to role %s", len(roles), role_id)
        self._post(
            f"{self._realm_path(realm)}/roles-by-id/{role_id}/composites", json=roles
        )

    def remove_composites(
        self, realm: str, role_id: str, roles: list[dict[str, Any]]
    ) -> None:
        """Remove roles from a composite role."""
        logger.debug("Removing %d composites from role %s", len(roles), role_id)
        self._remove(
            f"{self._realm_path(realm)}/roles-by-id/{role_id}/composites",
            f"Composites of role {role_id}",
            json=roles,
        )

    # -------------------------------------------------------------------------
    # Scope mappings
    # -------------------------------------------------------------------------

    def get_scope_mappings(self, realm: str, client_uuid: str) -> dict[str, Any]:
        """Get realm and per-client scope mappings of a client."""
        return (
            self._get(f"{self._realm_path(realm)}/clients/{client_uuid}/scope-mappings")
            or {}
        )

    def add_realm_scope_mappings(
        self, realm: str, client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        """Add realm roles to a client's scope."""
        logger.debug("Adding %d realm scope mappings to client %s", len(roles), client_uuid)
        self._post(
            f"{self._realm_path(realm)}/clients/{client_uuid}/scope-mappings/realm",
            json=roles,
        )

    def remove_realm_scope_mappings(
        self, realm: str, client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        """Remove realm roles from a client's scope."""
        logger.debug(
            "Removing %d realm scope mappings from client %s", len(roles), client_uuid
        )
        self._remove(
            f"{self._realm_path(realm)}/clients/{client_uuid}/scope-mappings/realm",
            f"Realm scope mappings of {client_uuid}",
            json=roles,
        )

    def add_client_scope_mappings(
        self,
        realm: str,
        client_uuid: str,
        other_client_uuid: str,
        roles: list[dict[str, Any]],
    ) -> None:
        """Add roles of another client to a client's scope."""
        logger.debug(
            "Adding %d scope mappings of client %s to client %s",
            len(roles), other_client_uuid, client_uuid,
        )
        self._post(
            f"{self._realm_path(realm)}/clients/{client_uuid}/scope-mappings/clients/{other_client_uuid}",
            json=roles,
        )

    def remove_client_scope_mappings(
        self,
        realm: str,
        client_uuid: str,
        other_client_uuid: str,
        roles: list[dict[str, Any]],
    ) -> None:
        """Remove roles of another client from a client's scope."""
        logger.debug(
            "Removing %d scope mappings of client %s from client %s",
            len(roles), other_client_uuid, client_uuid,
        )
        self._remove(
            f"{self._realm_path(realm)}/clients/{client_uuid}/scope-mappings/clients/{other_client_uuid}",
            f"Scope mappings of {other_client_uuid} on {client_uuid}",
            json=roles,
        )

    # -------------------------------------------------------------------------
    # Users
    # -------------------------------------------------------------------------

    def get_service_account_user(self, realm: str, client_uuid: str) -> dict[str, Any]:
        """Get the service account user for a client."""
        return self._get(
            f"{self._realm_path(realm)}/clients/{client_uuid}/service-account-user"
        )

    def get_user_role_mappings(self, realm: str, user_id: str) -> dict[str, Any]:
        """Get all direct realm and client role mappings of a user."""
        return self._get(f"{self._realm_path(realm)}/users/{user_id}/role-mappings") or {}

    def add_user_realm_roles(
        self, realm: str, user_id: str, roles: list[dict[str, Any]]
    ) -> None:
        """Assign realm roles to a user."""
        logger.debug("Assigning %d realm roles to user %s", len(roles), user_id)
        self._post(
            f"{self._realm_path(realm)}/users/{user_id}/role-mappings/realm", json=roles
        )

    def remove_user_realm_roles(
        self, realm: str, user_id: str, roles: list[dict[str, Any]]
    ) -> None:
        """Unassign realm roles from a user."""
        logger.debug("Unassigning %d realm roles from user %s", len(roles), user_id)
        self._remove(
            f"{self._realm_path(realm)}/users/{user_id}/role-mappings/realm",
            f"Realm role mappings of user {user_id}",
            json=roles,
        )

    def add_user_client_roles(
        self,
        realm: str,
        user_id: str,
        client_uuid: str,
        roles: list[dict[str, Any]],
    ) -> None:
        """Assign client roles to a user."""
        logger.debug("Assigning %d roles to user %s", len(roles), user_id)
        self._post(
            f"{self._realm_path(realm)}/users/{user_id}/role-mappings/clients/{client_uuid}",
            json=roles,
        )

    def remove_user_client_roles(
        self,
        realm: str,
        user_id: str,
        client_uuid: str,
        roles: list[dict[str, Any]],
    ) -> None:
        """Unassign client roles from a user."""
        logger.debug("Unassigning %d roles from user %s", len(roles), user_id)
        self._remove(
            f"{self._realm_path(realm)}/users/{user_id}/role-mappings/clients/{client_uuid}",
            f"Client role mappings of user {user_id}",
            json=roles,
        )
