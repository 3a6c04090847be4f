"""Pytest configuration and fixtures."""

from __future__ import annotations

import copy
import itertools
from pathlib import Path
from typing import Any

import pytest

from realmsync.keycloak.errors import KeycloakNotFoundError


class FakeKeycloak:
    """In-memory stand-in for KeycloakAdminClient.

    Keeps the same method signatures and return shapes as the real client and
    records every mutating call in ``calls``. The ``seed_*`` helpers set up
    remote state without being recorded.
    """

    def __init__(self):
        self._ids = itertools.count(1)
        self.realms: dict[str, dict[str, Any]] = {}
        # realm -> role id -> role (realm and client roles alike)
        self.roles: dict[str, dict[str, dict[str, Any]]] = {}
        self.clients: dict[str, dict[str, dict[str, Any]]] = {}
        # (realm, role id) -> composite member role ids
        self.composites: dict[tuple[str, str], set[str]] = {}
        # (realm, client uuid) -> {"realm": ids, "clients": {uuid: ids}}
        self.scope_mappings: dict[tuple[str, str], dict[str, Any]] = {}
        # (realm, client uuid) -> service account user id
        self.service_accounts: dict[tuple[str, str], str] = {}
        # (realm, user id) -> {"realm": ids, "clients": {uuid: ids}}
        self.user_roles: dict[tuple[str, str], dict[str, Any]] = {}
        self.authz: dict[tuple[str, str], dict[str, Any]] = {}
        self.calls: list[tuple[str, tuple]] = []
        self.closed = False

    # -- bookkeeping ---------------------------------------------------------

    def _id(self, prefix: str) -> str:
        return f"{prefix}-{next(self._ids)}"

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, copy.deepcopy(args)))

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def reset_calls(self) -> None:
        self.calls.clear()

    def __enter__(self) -> "FakeKeycloak":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self.closed = True

    # -- seeding -------------------------------------------------------------

    def seed_realm(self, realm: str, **rep: Any) -> dict[str, Any]:
        default_role_id = self._id("role")
        self.realms[realm] = {
            "id": realm,
            "realm": realm,
            "enabled": True,
            **rep,
            "defaultRole": {"id": default_role_id, "name": f"default-roles-{realm}"},
        }
        self.roles[realm] = {}
        self.clients[realm] = {}
        self._put_role(realm, {"id": default_role_id, "name": f"default-roles-{realm}"})
        builtins = [
            self._put_role(realm, {"name": "offline_access"}),
            self._put_role(realm, {"name": "uma_authorization"}),
        ]
        self.composites[(realm, default_role_id)] = {r["id"] for r in builtins}
        return self.realms[realm]

    def seed_client(self, realm: str, client_id: str, **rep: Any) -> str:
        uuid = self._id("client")
        self.clients[realm][uuid] = {"id": uuid, "clientId": client_id, "enabled": True, **rep}
        self._ensure_service_account(realm, uuid)
        return uuid

    def seed_realm_role(self, realm: str, name: str) -> str:
        return self._put_role(realm, {"name": name})["id"]

    def seed_client_role(self, realm: str, client_uuid: str, name: str) -> str:
        return self._put_role(realm, {"name": name}, client_uuid)["id"]

    def _put_role(
        self, realm: str, role: dict[str, Any], client_uuid: str | None = None
    ) -> dict[str, Any]:
        stored = {
            "id": role.get("id") or self._id("role"),
            "name": role["name"],
            "composite": False,
            "clientRole": client_uuid is not None,
            "containerId": client_uuid or realm,
        }
        if role.get("description"):
            stored["description"] = role["description"]
        self.roles[realm][stored["id"]] = stored
        return stored

    def _ensure_service_account(self, realm: str, client_uuid: str) -> None:
        client = self.clients[realm][client_uuid]
        if not client.get("serviceAccountsEnabled"):
            return
        if (realm, client_uuid) in self.service_accounts:
            return
        user_id = self._id("user")
        self.service_accounts[(realm, client_uuid)] = user_id
        # New users get the realm default role
        default_id = self.realms[realm]["defaultRole"]["id"]
        self.user_roles[(realm, user_id)] = {"realm": {default_id}, "clients": {}}

    # -- reading helpers -----------------------------------------------------

    def role(self, realm: str, role_id: str) -> dict[str, Any]:
        try:
            return self.roles[realm][role_id]
        except KeyError:
            raise KeycloakNotFoundError(f"Role not found: {role_id}", status_code=404)

    def realm_role_names(self, realm: str) -> set[str]:
        return {r["name"] for r in self.roles[realm].values() if not r["clientRole"]}

    def client_role_names(self, realm: str, client_uuid: str) -> set[str]:
        return {r["name"] for r in self._client_roles(realm, client_uuid)}

    def _client_roles(self, realm: str, client_uuid: str) -> list[dict[str, Any]]:
        return [
            r for r in self.roles[realm].values()
            if r["clientRole"] and r["containerId"] == client_uuid
        ]

    def _names(self, realm: str, ids: set[str]) -> set[str]:
        return {self.roles[realm][i]["name"] for i in ids}

    def default_role_names(self, realm: str) -> set[str]:
        default_id = self.realms[realm]["defaultRole"]["id"]
        return self._names(realm, self.composites.get((realm, default_id), set()))

    def user_realm_role_names(self, realm: str, user_id: str) -> set[str]:
        return self._names(realm, self.user_roles[(realm, user_id)]["realm"])

    def user_client_role_names(self, realm: str, user_id: str, client_uuid: str) -> set[str]:
        return self._names(
            realm, self.user_roles[(realm, user_id)]["clients"].get(client_uuid, set())
        )

    def _role_list(self, realm: str, ids: set[str]) -> list[dict[str, Any]]:
        return [copy.deepcopy(self.roles[realm][i]) for i in sorted(ids)]

    def _resolve_ids(self, realm: str, roles: list[dict[str, Any]]) -> set[str]:
        return {self.role(realm, r["id"])["id"] for r in roles}

    def _mapping_view(self, realm: str, mapping: dict[str, Any]) -> dict[str, Any]:
        view: dict[str, Any] = {}
        if mapping["realm"]:
            view["realmMappings"] = self._role_list(realm, mapping["realm"])
        buckets = {}
        for uuid, ids in mapping["clients"].items():
            if ids:
                client_id = self.clients[realm][uuid]["clientId"]
                buckets[client_id] = {
                    "id": uuid,
                    "client": client_id,
                    "mappings": self._role_list(realm, ids),
                }
        if buckets:
            view["clientMappings"] = buckets
        return view

    # -- realms --------------------------------------------------------------

    def get_realm(self, realm: str) -> dict[str, Any] | None:
        return copy.deepcopy(self.realms.get(realm))

    def create_realm(self, representation: dict[str, Any]) -> bool:
        self._record("create_realm", representation)
        name = representation["realm"]
        if name in self.realms:
            return False
        self.seed_realm(name, **{k: v for k, v in representation.items() if k != "realm"})
        return True

    def update_realm(self, realm: str, representation: dict[str, Any]) -> None:
        self._record("update_realm", realm, representation)
        self.realms[realm].update(representation)

    def delete_realm(self, realm: str) -> bool:
        self._record("delete_realm", realm)
        return self.realms.pop(realm, None) is not None

    # -- clients -------------------------------------------------------------

    def list_clients_by_client_id(self, realm: str, client_id: str) -> list[dict[str, Any]]:
        return [
            copy.deepcopy(c) for c in self.clients[realm].values()
            if c["clientId"] == client_id
        ]

    def get_client_by_client_id(self, realm: str, client_id: str) -> dict[str, Any] | None:
        clients = self.list_clients_by_client_id(realm, client_id)
        return clients[0] if clients else None

    def create_client(self, realm: str, representation: dict[str, Any]) -> str:
        self._record("create_client", realm, representation)
        existing = self.get_client_by_client_id(realm, representation["clientId"])
        if existing:
            return existing["id"]
        uuid = self._id("client")
        self.clients[realm][uuid] = {**copy.deepcopy(representation), "id": uuid}
        self._ensure_service_account(realm, uuid)
        return uuid

    def update_client(self, realm: str, client_uuid: str, representation: dict[str, Any]) -> None:
        self._record("update_client", realm, client_uuid, representation)
        self.clients[realm][client_uuid] = {**copy.deepcopy(representation), "id": client_uuid}
        self._ensure_service_account(realm, client_uuid)

    def delete_client(self, realm: str, client_uuid: str) -> bool:
        self._record("delete_client", realm, client_uuid)
        return self.clients[realm].pop(client_uuid, None) is not None

    def get_authorization_settings(self, realm: str, client_uuid: str) -> dict[str, Any] | None:
        return copy.deepcopy(self.authz.get((realm, client_uuid)))

    def import_authorization_settings(
        self, realm: str, client_uuid: str, settings: dict[str, Any]
    ) -> None:
        """Adds or overwrites entries by name; never removes any."""
        self._record("import_authorization_settings", realm, client_uuid, settings)
        stored = self.authz.setdefault(
            (realm, client_uuid), {"resources": [], "policies": [], "scopes": []}
        )
        for key, value in settings.items():
            if key not in ("resources", "policies", "scopes"):
                stored[key] = copy.deepcopy(value)
                continue
            entries = stored.setdefault(key, [])
            for incoming in value:
                existing = next((e for e in entries if e["name"] == incoming["name"]), None)
                entry = {**copy.deepcopy(incoming), "id": self._id(key[:-1])}
                if existing is None:
                    entries.append(entry)
                else:
                    entry["id"] = existing["id"]
                    entries[entries.index(existing)] = entry

    def _delete_authz_entry(self, realm: str, client_uuid: str, key: str, entry_id: str) -> bool:
        entries = self.authz.get((realm, client_uuid), {}).get(key, [])
        kept = [e for e in entries if e.get("id") != entry_id]
        if len(kept) == len(entries):
            return False
        self.authz[(realm, client_uuid)][key] = kept
        return True

    def delete_authorization_policy(self, realm: str, client_uuid: str, policy_id: str) -> bool:
        self._record("delete_authorization_policy", realm, client_uuid, policy_id)
        return self._delete_authz_entry(realm, client_uuid, "policies", policy_id)

    def delete_authorization_resource(
        self, realm: str, client_uuid: str, resource_id: str
    ) -> bool:
        self._record("delete_authorization_resource", realm, client_uuid, resource_id)
        return self._delete_authz_entry(realm, client_uuid, "resources", resource_id)

    def delete_authorization_scope(self, realm: str, client_uuid: str, scope_id: str) -> bool:
        self._record("delete_authorization_scope", realm, client_uuid, scope_id)
        return self._delete_authz_entry(realm, client_uuid, "scopes", scope_id)

    # -- roles ---------------------------------------------------------------

    def list_realm_roles(self, realm: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self.roles[realm].values() if not r["clientRole"]]

    def get_realm_role(self, realm: str, name: str) -> dict[str, Any] | None:
        for role in self.list_realm_roles(realm):
            if role["name"] == name:
                return role
        return None

    def create_realm_role(self, realm: str, role: dict[str, Any]) -> bool:
        self._record("create_realm_role", realm, role)
        if role["name"] in self.realm_role_names(realm):
            return False
        self._put_role(realm, {k: v for k, v in role.items() if k != "id"})
        return True

    def delete_realm_role(self, realm: str, name: str) -> bool:
        self._record("delete_realm_role", realm, name)
        role = self.get_realm_role(realm, name)
        if role is None:
            return False
        del self.roles[realm][role["id"]]
        return True

    def list_client_roles(self, realm: str, client_uuid: str) -> list[dict[str, Any]]:
        return [copy.deepcopy(r) for r in self._client_roles(realm, client_uuid)]

    def create_client_role(self, realm: str, client_uuid: str, role: dict[str, Any]) -> bool:
        self._record("create_client_role", realm, client_uuid, role)
        if role["name"] in self.client_role_names(realm, client_uuid):
            return False
        self._put_role(realm, {k: v for k, v in role.items() if k != "id"}, client_uuid)
        return True

    def delete_client_role(self, realm: str, client_uuid: str, name: str) -> bool:
        self._record("delete_client_role", realm, client_uuid, name)
        for role in self._client_roles(realm, client_uuid):
            if role["name"] == name:
                del self.roles[realm][role["id"]]
                return True
        return False

    def update_role_by_id(self, realm: str, role_id: str, role: dict[str, Any]) -> None:
        self._record("update_role_by_id", realm, role_id, role)
        stored = self.role(realm, role_id)
        stored["name"] = role["name"]
        if "description" in role:
            stored["description"] = role["description"]

    # -- composites ----------------------------------------------------------

    def list_composite_client_roles(
        self, realm: str, role_id: str, client_uuid: str
    ) -> list[dict[str, Any]]:
        ids = {
            i for i in self.composites.get((realm, role_id), set())
            if self.roles[realm][i]["containerId"] == client_uuid
        }
        return self._role_list(realm, ids)

    def add_composites(self, realm: str, role_id: str, roles: list[dict[str, Any]]) -> None:
        self._record("add_composites", realm, role_id, roles)
        self.composites.setdefault((realm, role_id), set()).update(self._resolve_ids(realm, roles))

    def remove_composites(self, realm: str, role_id: str, roles: list[dict[str, Any]]) -> None:
        self._record("remove_composites", realm, role_id, roles)
        self.composites.get((realm, role_id), set()).difference_update(
            r["id"] for r in roles
        )

    # -- scope mappings ------------------------------------------------------

    def _scope(self, realm: str, client_uuid: str) -> dict[str, Any]:
        return self.scope_mappings.setdefault(
            (realm, client_uuid), {"realm": set(), "clients": {}}
        )

    def get_scope_mappings(self, realm: str, client_uuid: str) -> dict[str, Any]:
        return self._mapping_view(realm, self._scope(realm, client_uuid))

    def add_realm_scope_mappings(
        self, realm: str, client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record("add_realm_scope_mappings", realm, client_uuid, roles)
        self._scope(realm, client_uuid)["realm"].update(self._resolve_ids(realm, roles))

    def remove_realm_scope_mappings(
        self, realm: str, client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record("remove_realm_scope_mappings", realm, client_uuid, roles)
        self._scope(realm, client_uuid)["realm"].difference_update(r["id"] for r in roles)

    def add_client_scope_mappings(
        self, realm: str, client_uuid: str, other_client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record("add_client_scope_mappings", realm, client_uuid, other_client_uuid, roles)
        bucket = self._scope(realm, client_uuid)["clients"].setdefault(other_client_uuid, set())
        bucket.update(self._resolve_ids(realm, roles))

    def remove_client_scope_mappings(
        self, realm: str, client_uuid: str, other_client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record(
            "remove_client_scope_mappings", realm, client_uuid, other_client_uuid, roles
        )
        bucket = self._scope(realm, client_uuid)["clients"].get(other_client_uuid, set())
        bucket.difference_update(r["id"] for r in roles)

    # -- users ---------------------------------------------------------------

    def get_service_account_user(self, realm: str, client_uuid: str) -> dict[str, Any]:
        user_id = self.service_accounts.get((realm, client_uuid))
        if user_id is None:
            raise KeycloakNotFoundError("Service account user not found", status_code=404)
        client_id = self.clients[realm][client_uuid]["clientId"]
        return {"id": user_id, "username": f"service-account-{client_id}"}

    def get_user_role_mappings(self, realm: str, user_id: str) -> dict[str, Any]:
        return self._mapping_view(realm, self.user_roles[(realm, user_id)])

    def add_user_realm_roles(self, realm: str, user_id: str, roles: list[dict[str, Any]]) -> None:
        self._record("add_user_realm_roles", realm, user_id, roles)
        self.user_roles[(realm, user_id)]["realm"].update(self._resolve_ids(realm, roles))

    def remove_user_realm_roles(
        self, realm: str, user_id: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record("remove_user_realm_roles", realm, user_id, roles)
        self.user_roles[(realm, user_id)]["realm"].difference_update(r["id"] for r in roles)

    def add_user_client_roles(
        self, realm: str, user_id: str, client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record("add_user_client_roles", realm, user_id, client_uuid, roles)
        bucket = self.user_roles[(realm, user_id)]["clients"].setdefault(client_uuid, set())
        bucket.update(self._resolve_ids(realm, roles))

    def remove_user_client_roles(
        self, realm: str, user_id: str, client_uuid: str, roles: list[dict[str, Any]]
    ) -> None:
        self._record("remove_user_client_roles", realm, user_id, client_uuid, roles)
        bucket = self.user_roles[(realm, user_id)]["clients"].get(client_uuid, set())
        bucket.difference_update(r["id"] for r in roles)


class FakeStructLogger:
    def __init__(self):
        self.calls = []

    def info(self, event, **kwargs):
        self.calls.append(("info", event, kwargs))

    def warning(self, event, **kwargs):
        self.calls.append(("warning", event, kwargs))


@pytest.fixture
def fake() -> FakeKeycloak:
    """Fake admin API with one realm ``test``."""
    kc = FakeKeycloak()
    kc.seed_realm("test")
    return kc


@pytest.fixture
def struct_logger() -> FakeStructLogger:
    return FakeStructLogger()


@pytest.fixture
def fixtures_dir() -> Path:
    return Path(__file__).parent / "fixtures"


@pytest.fixture
def ca_pem(fixtures_dir: Path) -> str:
    """Self-signed CA certificate in PEM form."""
    return (fixtures_dir / "ca.pem").read_text()
