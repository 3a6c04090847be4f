"""Authenticated transport for the Keycloak Admin REST API.

The session owns the TLS trust policy and the bearer token. A request rejected
with 401 triggers one re-authentication with the last credentials and one retry;
a second rejection is surfaced as KeycloakAuthError.
"""

from __future__ import annotations

import logging
import ssl
import threading
import time
from dataclasses import dataclass
from typing import Any

import httpx

from realmsync.keycloak.errors import (
    KeycloakAuthError,
    KeycloakConflictError,
    KeycloakError,
    KeycloakNotFoundError,
    KeycloakTransientError,
    KeycloakValidationError,
)
from realmsync.keycloak.settings import KeycloakSettings

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = {502, 503, 504}


@dataclass(frozen=True)
class TokenInfo:
    """OAuth token information."""

    access_token: str
    expires_at: float

    def is_valid(self, leeway: int = 10) -> bool:
        """Check if token is still valid."""
        return time.time() < (self.expires_at - leeway)


def build_ssl_context(ca_pem: str | None) -> ssl.SSLContext:
    """Build the TLS context used for every call.

    A supplied PEM becomes the only trust anchor. Without one, the platform
    trust store is loaded. Certificate and hostname verification stay on in
    both cases.
    """
    if ca_pem is None:
        return ssl.create_default_context()

    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    try:
        context.load_verify_locations(cadata=ca_pem)
    except (ssl.SSLError, ValueError) as e:
        raise KeycloakValidationError(f"Invalid CA certificate: {e}") from e
    return context


class KeycloakSession:
    """Blocking session against one Keycloak server."""

    def __init__(
        self,
        settings: KeycloakSettings,
        transport: httpx.BaseTransport | None = None,
    ):
        self._settings = settings
        self._ssl_context = build_ssl_context(settings.ca_certificate())
        self._client = httpx.Client(
            verify=self._ssl_context,
            timeout=settings.timeout,
            transport=transport,
        )
        self._token: TokenInfo | None = None
        self._credentials: tuple[str, str] | None = None
        self._lock = threading.Lock()

    def __enter__(self) -> "KeycloakSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    @property
    def settings(self) -> KeycloakSettings:
        """Get settings."""
        return self._settings

    @property
    def token(self) -> str | None:
        """Current bearer token, if logged in."""
        token = self._token
        return token.access_token if token else None

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    def authenticate(self, username: str, password: str) -> str:
        """Log in with the password grant and remember the credentials."""
        with self._lock:
            self._credentials = (username, password)
            self._token = self._login(username, password)
            return self._token.access_token

    def _login(self, username: str, password: str) -> TokenInfo:
        data = {
            "grant_type": "password",
            "client_id": self._settings.admin_client_id,
            "username": username,
            "password": password,
        }

        logger.debug("Authenticating with admin user: %s", username)

        try:
            response = self._client.post(self._settings.token_url, data=data)
        except httpx.TimeoutException as e:
            raise KeycloakTransientError("Login timed out") from e
        except httpx.TransportError as e:
            raise KeycloakTransientError(f"Login failed: {e}") from e

        if response.status_code in TRANSIENT_STATUS_CODES:
            raise KeycloakTransientError(
                f"Login failed with {response.status_code}",
                status_code=response.status_code,
            )
        if response.status_code != 200:
            raise KeycloakAuthError(
                f"Admin user authentication failed: {response.text}",
                status_code=response.status_code,
                reference=username,
            )

        try:
            payload = response.json()
            token = TokenInfo(
                access_token=payload["access_token"],
                expires_at=time.time() + float(payload.get("expires_in", 60)),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise KeycloakAuthError(
                "Token endpoint returned no usable access token",
                status_code=response.status_code,
                reference=username,
            ) from e

        logger.info("Authenticated as admin user: %s", username)
        return token

    def _reauthenticate(self, stale: TokenInfo | None) -> TokenInfo:
        """Replace ``stale`` with a fresh token; the only writer of the token."""
        with self._lock:
            if self._token is not None and self._token is not stale:
                # Another caller already refreshed it.
                return self._token
            if self._credentials is None:
                raise KeycloakAuthError(
                    "Not authenticated - call authenticate() first",
                    status_code=401,
                )
            logger.debug("Re-authenticating admin session")
            self._token = self._login(*self._credentials)
            return self._token

    def _current_token(self) -> TokenInfo:
        token = self._token
        if token is None or not token.is_valid():
            token = self._reauthenticate(token)
        return token

    # -------------------------------------------------------------------------
    # Requests
    # -------------------------------------------------------------------------

    def request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request to ``path`` below the server root."""
        token = self._current_token()
        response = self._send(method, path, token, json, params)

        if response.status_code == 401:
            logger.info("Token rejected on %s %s, re-authenticating", method, path)
            token = self._reauthenticate(token)
            response = self._send(method, path, token, json, params)

        return self._handle_response(response)

    def _send(
        self,
        method: str,
        path: str,
        token: TokenInfo,
        json: Any,
        params: dict[str, Any] | None,
    ) -> httpx.Response:
        url = f"{self._settings.root_url}{path}"
        headers = {"Authorization": f"Bearer {token.access_token}"}
        try:
            return self._client.request(
                method, url, headers=headers, json=json, params=params
            )
        except httpx.TimeoutException as e:
            raise KeycloakTransientError(f"Request timed out: {method} {path}") from e
        except httpx.TransportError as e:
            raise KeycloakTransientError(f"Request failed: {method} {path}: {e}") from e

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response."""
        status_code = response.status_code

        if status_code < 400:
            return response

        if status_code == 404:
            raise KeycloakNotFoundError(
                f"Resource not found: {response.request.url}",
                status_code=404,
            )

        if status_code == 409:
            raise KeycloakConflictError(
                f"Resource already exists: {response.text}",
                status_code=409,
            )

        if status_code == 401:
            raise KeycloakAuthError(
                "Authentication expired or invalid",
                status_code=401,
            )

        if status_code == 403:
            raise KeycloakAuthError(
                f"Forbidden: {response.request.url}",
                status_code=403,
            )

        if status_code == 400:
            raise KeycloakValidationError(
                f"Request rejected: {response.text}",
                status_code=400,
            )

        if status_code in TRANSIENT_STATUS_CODES:
            raise KeycloakTransientError(
                f"Server unavailable ({status_code}): {response.request.url}",
                status_code=status_code,
            )

        raise KeycloakError(
            f"Unexpected response {status_code}: {response.text}",
            status_code=status_code,
        )
