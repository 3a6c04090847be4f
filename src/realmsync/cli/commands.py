"""Keycloak CLI commands.

Commands:
    realmsync keycloak apply <bundle.yaml>
    realmsync keycloak delete <bundle.yaml>
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Optional

import typer

from realmsync.audit import OutcomeLogger, configure_audit_logging
from realmsync.config import get_settings
from realmsync.keycloak import (
    KeycloakAdminClient,
    KeycloakAuthError,
    KeycloakError,
    KeycloakReferenceError,
    KeycloakSettings,
    KeycloakValidationError,
)
from realmsync.logs import configure_logging, get_logger
from realmsync.models import KeycloakClientResource, ReconcileOutcome, ResourceBundle
from realmsync.reconcile import (
    ClientReconciler,
    MatchState,
    RealmMatch,
    RealmReconciler,
    find_realm,
)

logger = get_logger(__name__)

keycloak_app = typer.Typer(
    name="keycloak",
    help="Keycloak reconcile commands",
    add_completion=False,
)

BundleArg = Annotated[
    Path,
    typer.Argument(
        help="Path to the resource bundle YAML file",
        exists=True,
        dir_okay=False,
        readable=True,
    ),
]
BaseUrlOpt = Annotated[
    Optional[str], typer.Option("--base-url", "-u", help="Keycloak base URL")
]
AdminUserOpt = Annotated[
    Optional[str], typer.Option("--admin-user", help="Keycloak admin username")
]
AdminPasswordOpt = Annotated[
    Optional[str], typer.Option("--admin-password", help="Keycloak admin password")
]
CaCertOpt = Annotated[
    Optional[Path],
    typer.Option("--ca-cert", help="PEM file trusted instead of the system store"),
]
VerboseOpt = Annotated[
    bool, typer.Option("--verbose", "-v", help="Enable verbose output")
]


def _configure(verbose: bool) -> OutcomeLogger:
    app_settings = get_settings()
    configure_logging(verbose)
    configure_audit_logging(
        log_level="DEBUG" if verbose else app_settings.log_level,
        json_format=app_settings.log_json,
        service_name=app_settings.service_name,
    )
    return OutcomeLogger(enabled=app_settings.outcome_log_enabled)


def _build_settings(
    base_url: str | None,
    admin_user: str | None,
    admin_password: str | None,
    ca_cert: Path | None,
) -> KeycloakSettings:
    """Build settings from environment and CLI overrides."""
    settings = KeycloakSettings().with_overrides(
        base_url=base_url,
        admin_user=admin_user,
        admin_password=admin_password,
        ca_cert_file=ca_cert,
    )
    if not settings.has_admin_credentials:
        typer.secho(
            "Error: admin credentials required. "
            "Use --admin-user and --admin-password.",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(1)
    return settings


def _load_bundle(path: Path) -> ResourceBundle:
    try:
        return ResourceBundle.from_yaml(path)
    except Exception as e:
        typer.secho(f"Error loading bundle: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


def _unbound_error(resource: KeycloakClientResource, match: RealmMatch) -> KeycloakError:
    if match.state is MatchState.AMBIGUOUS:
        return KeycloakValidationError(
            f"Client {resource.client_id}: {match.describe()}",
            reference=resource.metadata.name,
        )
    return KeycloakReferenceError(
        resource.metadata.name, f"Client {resource.client_id}: {match.describe()}"
    )


def _echo_outcome(kind: str, name: str, outcome: ReconcileOutcome) -> None:
    if outcome.ok:
        typer.secho(f"✓ {kind} {name}: ready", fg=typer.colors.GREEN)
        return
    kind_label = outcome.error_kind.value if outcome.error_kind else "error"
    typer.secho(
        f"✗ {kind} {name}: {kind_label}: {outcome.message}", fg=typer.colors.RED
    )


def _connect(settings: KeycloakSettings) -> KeycloakAdminClient:
    try:
        return KeycloakAdminClient.connect(settings)
    except KeycloakAuthError as e:
        typer.secho(f"Authentication failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    except KeycloakError as e:
        typer.secho(f"Keycloak error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)


@keycloak_app.command("apply")
def apply(
    bundle_path: BundleArg,
    base_url: BaseUrlOpt = None,
    admin_user: AdminUserOpt = None,
    admin_password: AdminPasswordOpt = None,
    ca_cert: CaCertOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Reconcile the realms and clients of a bundle.

    Realms are reconciled first, then each client in the realm its selector
    picks. Running it again against an unchanged server makes no changes.

    Example:
        realmsync keycloak apply bundle.yaml --admin-user admin --admin-password admin
    """
    outcome_logger = _configure(verbose)
    bundle = _load_bundle(bundle_path)
    settings = _build_settings(base_url, admin_user, admin_password, ca_cert)

    typer.echo(f"Reconciling against Keycloak: {settings.base_url}")
    typer.echo(f"Bundle: {len(bundle.realms)} realms, {len(bundle.clients)} clients")

    failed = 0
    with _connect(settings) as admin:
        realms = RealmReconciler(admin, outcome_logger=outcome_logger)
        for realm in bundle.realms:
            outcome = realms.reconcile(realm)
            _echo_outcome("realm", realm.realm_name, outcome)
            failed += not outcome.ok

        clients = ClientReconciler(
            admin,
            secret_exists=bundle.secret_exists,
            outcome_logger=outcome_logger,
        )
        for client in bundle.clients:
            match = find_realm(client.spec.realm_selector, bundle.realms)
            if match.found:
                outcome = clients.reconcile(client, match.realm.realm_name)
            else:
                outcome = ReconcileOutcome.failure(_unbound_error(client, match))
                client.status = outcome.to_status(client.status.secondary_resources)
                logger.warning("Client %s not bound: %s", client.client_id, match.describe())
            _echo_outcome("client", client.client_id, outcome)
            failed += not outcome.ok

    if failed:
        typer.secho(f"\n{failed} resource(s) failing", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)
    typer.secho("\nAll resources ready", fg=typer.colors.GREEN)


@keycloak_app.command("delete")
def delete(
    bundle_path: BundleArg,
    base_url: BaseUrlOpt = None,
    admin_user: AdminUserOpt = None,
    admin_password: AdminPasswordOpt = None,
    ca_cert: CaCertOpt = None,
    verbose: VerboseOpt = False,
) -> None:
    """Delete the clients, then the realms, of a bundle.

    Resources already absent are skipped.
    """
    _configure(verbose)
    bundle = _load_bundle(bundle_path)
    settings = _build_settings(base_url, admin_user, admin_password, ca_cert)

    try:
        with _connect(settings) as admin:
            clients = ClientReconciler(admin)
            for client in bundle.clients:
                match = find_realm(client.spec.realm_selector, bundle.realms)
                if not match.found:
                    typer.secho(
                        f"- client {client.client_id}: skipped, {match.describe()}",
                        fg=typer.colors.YELLOW,
                    )
                    continue
                deleted = clients.delete(client, match.realm.realm_name)
                typer.echo(
                    f"- client {client.client_id}: {'deleted' if deleted else 'absent'}"
                )

            refused = 0
            realms = RealmReconciler(admin)
            for realm in bundle.realms:
                try:
                    deleted = realms.delete(realm)
                except KeycloakValidationError as e:
                    refused += 1
                    typer.secho(
                        f"- realm {realm.realm_name}: refused, {e}", fg=typer.colors.YELLOW
                    )
                    continue
                typer.echo(f"- realm {realm.realm_name}: {'deleted' if deleted else 'absent'}")
    except KeycloakError as e:
        typer.secho(f"Keycloak error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(1)

    if refused:
        raise typer.Exit(1)
