import pytest

from realmsync.models import Phase, ReconcileOutcome, ResourceBundle, ResourceStatus
from realmsync.keycloak import ErrorKind, KeycloakReferenceError

BUNDLE = """
realms:
  - metadata: {name: sso, labels: {app: sso}}
    spec:
      realm: {realm: sso, displayName: "${REALM_TITLE:-Single Sign-On}"}
      roles: [{name: realmRoleA}]
clients:
  - metadata: {name: billing, namespace: apps}
    spec:
      realmSelector: {matchLabels: {app: sso}}
      client:
        clientId: billing
        secret: ${BILLING_SECRET}
        defaultRoles: [viewer]
      roles: [{name: viewer}]
      serviceAccountClientRoles:
        reports: [read]
secrets:
  - keycloak-client-secret-billing
"""


def test_bundle_from_yaml_resolves_env(tmp_path, monkeypatch):
    monkeypatch.setenv("BILLING_SECRET", "s3cret")
    monkeypatch.delenv("REALM_TITLE", raising=False)
    path = tmp_path / "bundle.yaml"
    path.write_text(BUNDLE)

    bundle = ResourceBundle.from_yaml(path)

    realm = bundle.realms[0]
    assert realm.realm_name == "sso"
    assert realm.spec.realm.display_name == "Single Sign-On"
    client = bundle.clients[0]
    assert client.client_id == "billing"
    assert client.metadata.namespace == "apps"
    assert client.spec.client.secret == "s3cret"
    assert client.spec.client.default_roles == ["viewer"]
    assert client.spec.scope_mappings is None
    assert client.spec.service_account_client_roles == {"reports": ["read"]}
    assert bundle.secret_exists("apps", "keycloak-client-secret-billing")
    assert not bundle.secret_exists("apps", "other")


def test_bundle_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ResourceBundle.from_yaml(tmp_path / "missing.yaml")


def test_bundle_must_be_mapping(tmp_path):
    path = tmp_path / "bundle.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ValueError):
        ResourceBundle.from_yaml(path)


def test_client_representation_omits_local_fields(tmp_path, monkeypatch):
    monkeypatch.setenv("BILLING_SECRET", "s3cret")
    path = tmp_path / "bundle.yaml"
    path.write_text(BUNDLE)
    client = ResourceBundle.from_yaml(path).clients[0].spec.client

    assert client.to_representation() == {
        "clientId": "billing", "enabled": True, "secret": "s3cret"
    }
    assert "secret" not in client.tracked_fields()


def test_failure_status_names_reference():
    outcome = ReconcileOutcome.failure(KeycloakReferenceError("nonexistent"))
    status = outcome.to_status({"Secret": ["a"]})

    assert status.phase == Phase.FAILING
    assert status.ready is False
    assert status.error_kind is ErrorKind.REFERENCE
    assert status.reference == "nonexistent"
    assert status.secondary_resources == {"Secret": ["a"]}


def test_without_secondary_drops_empty_kind():
    status = ResourceStatus(secondary_resources={"Secret": ["old"], "ConfigMap": ["c"]})

    assert status.without_secondary("Secret", "old") == {"ConfigMap": ["c"]}
    assert status.secondary_resources == {"Secret": ["old"], "ConfigMap": ["c"]}
