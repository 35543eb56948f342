"""
Bearer token acquisition from the identity provider.

Two grant flavours are supported:
- SSO: OAuth2 client_credentials against a Keycloak realm
- BUILD_IN: password grant against TB WebAdmin's built-in auth server
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import aiohttp

from tradefeed.adapters.env_provider import MissingSecretError
from tradefeed.config.settings import AuthSettings
from tradefeed.errors import AuthenticationError
from tradefeed.ports.secrets_provider import SecretsProvider

logger = logging.getLogger(__name__)

# Basic credentials of TB WebAdmin's built-in OAuth client
BUILD_IN_CLIENT_AUTHORIZATION = aiohttp.encode_basic_auth("web", "secret")


class TokenProvider:
    """
    Fetches an access token for the WebSocket handshake.

    Usage:
        provider = TokenProvider(settings.auth, EnvSecretsProvider())
        token = await provider.fetch_token()
    """

    def __init__(
        self,
        settings: AuthSettings,
        secrets: SecretsProvider,
        session: Optional[aiohttp.ClientSession] = None,
    ) -> None:
        self._settings = settings
        self._secrets = secrets
        self._session = session

    def _build_request(self) -> tuple[dict[str, str], Optional[dict[str, str]]]:
        if self._settings.auth_type == "SSO":
            form = {
                "grant_type": "client_credentials",
                "client_id": self._secrets.get("client_id"),
                "client_secret": self._secrets.get("client_secret"),
            }
            return form, None

        form = {
            "grant_type": "password",
            "username": self._secrets.get("username"),
            "password": self._secrets.get("password"),
            "scope": "trust",
        }
        return form, {"Authorization": BUILD_IN_CLIENT_AUTHORIZATION}

    async def fetch_token(self) -> str:
        """
        Request a bearer token.

        Raises:
            AuthenticationError: On missing credentials, HTTP/transport failure
                or a response without ``access_token``
        """
        auth_type = self._settings.auth_type
        try:
            form, headers = self._build_request()
        except MissingSecretError as e:
            logger.error(f"Error getting token from SSO: {e}")
            raise AuthenticationError(
                f"Missing credentials: {e}", auth_type=auth_type, component="TokenProvider"
            ) from e

        url = self._settings.token_url
        logger.info(f"Requesting {auth_type} token from {url}")

        if self._session is not None:
            payload = await self._post(self._session, url, form, headers)
        else:
            async with aiohttp.ClientSession() as session:
                payload = await self._post(session, url, form, headers)

        token = payload.get("access_token") if isinstance(payload, dict) else None
        if not token:
            logger.error("Error getting token from SSO: no access_token in response")
            raise AuthenticationError(
                "Token response did not contain access_token",
                auth_type=auth_type,
                component="TokenProvider",
            )
        return str(token)

    async def _post(
        self,
        session: aiohttp.ClientSession,
        url: str,
        form: dict[str, str],
        headers: Optional[dict[str, str]],
    ) -> Any:
        auth_type = self._settings.auth_type
        try:
            async with session.post(url, data=form, headers=headers) as response:
                response.raise_for_status()
                return await response.json(content_type=None)
        except aiohttp.ClientResponseError as e:
            logger.error(f"Error getting token from SSO: HTTP {e.status} {e.message}")
            raise AuthenticationError(
                f"Identity provider rejected the request: HTTP {e.status}",
                auth_type=auth_type,
                status=e.status,
                component="TokenProvider",
            ) from e
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.error(f"Error getting token from SSO: {e}")
            raise AuthenticationError(
                f"Token request failed: {e}", auth_type=auth_type, component="TokenProvider"
            ) from e
