"""realmsync CLI - Main entrypoint.

Usage:
    realmsync keycloak apply bundle.yaml
    realmsync keycloak delete bundle.yaml --admin-user admin --admin-password admin
"""

from __future__ import annotations

import typer

from realmsync.cli.commands import keycloak_app

app = typer.Typer(
    name="realmsync",
    help="Declarative Keycloak realm and client reconciliation",
    add_completion=True,
)

app.add_typer(keycloak_app, name="keycloak")


def create_app() -> None:
    """CLI entrypoint."""
    app()


if __name__ == "__main__":
    create_app()
