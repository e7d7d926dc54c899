# -*- coding: utf-8 -*-

# SongBridge
# Copyright (C) 2025 SongBridge contributors
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program. If not, see <https://www.gnu.org/licenses/>.

"""
Token endpoint clients.

Each provider gets one exchanger with two operations:
- exchange_code(): authorization code -> TokenSet
- refresh(): refresh token -> TokenSet

Both send a form-encoded POST with the client id/secret in the body.
Kick binds the code to a PKCE verifier; Spotify does not.
"""

from typing import Dict, Optional

import httpx
from loguru import logger

from songbridge.config import HTTP_TIMEOUT
from songbridge.exceptions import (
    ExchangeFailed,
    MissingClientCredentials,
    MissingCodeVerifier,
    RefreshFailed,
)
from songbridge.models import ClientCredentials, Provider, TokenSet
from songbridge.network_errors import classify_network_error, get_short_error_message
from songbridge.providers import ProviderSettings, get_provider_settings
from songbridge.store import CredentialStore


class TokenExchanger:
    """
    Base token endpoint client.

    Client credentials are read from the store on every call, so replacing
    them in the settings takes effect without rebuilding the exchanger.

    Example:
        >>> exchanger = KickTokenExchanger(store)
        >>> token_set = await exchanger.exchange_code("abc123", code_verifier=verifier)
        >>> token_set.expires_at
        datetime.datetime(2025, 1, 12, 23, 0, tzinfo=datetime.timezone.utc)
    """

    provider: Provider

    def __init__(
        self,
        store: CredentialStore,
        settings: Optional[ProviderSettings] = None,
        shared_client: Optional[httpx.AsyncClient] = None,
    ):
        """
        Args:
            store: Credential store holding the client credentials
            settings: Provider endpoints (default: from config)
            shared_client: Optional shared httpx.AsyncClient. If omitted, a
                short-lived client is created per request.
        """
        self.store = store
        self.settings = settings or get_provider_settings(self.provider)
        self._shared_client = shared_client

    def _require_client_credentials(self) -> ClientCredentials:
        credentials = self.store.get_client_credentials(self.provider)
        if credentials is None or not credentials.is_complete():
            raise MissingClientCredentials(self.provider)
        return credentials

    async def _post(
        self,
        data: Dict[str, str],
        auth: Optional[httpx.BasicAuth] = None,
    ) -> httpx.Response:
        """
        Sends a form POST to the token endpoint.

        Raises:
            ExchangeFailed: On transport errors (status=None)
        """
        url = self.settings.token_url
        headers = {"Content-Type": "application/x-www-form-urlencoded"}
        try:
            if self._shared_client is not None:
                return await self._shared_client.post(url, data=data, headers=headers, auth=auth, timeout=HTTP_TIMEOUT)
            async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
                return await client.post(url, data=data, headers=headers, auth=auth)
        except httpx.RequestError as e:
            error_info = classify_network_error(e)
            logger.error(
                f"{self.provider.display_name} token request failed "
                f"[{error_info.category.value}]: {error_info.technical_details}"
            )
            raise ExchangeFailed(self.provider, None, get_short_error_message(error_info)) from e

    def _parse_token_response(self, response: httpx.Response, error_cls=ExchangeFailed) -> TokenSet:
        """
        Converts a token endpoint response into a TokenSet.

        Raises:
            ExchangeFailed/RefreshFailed: On a non-2xx status or an unusable body
        """
        name = self.provider.display_name
        status = response.status_code

        if not 200 <= status < 300:
            body = response.text
            logger.bind(status=status, body=body[:500]).error(f"{name} token endpoint returned {status}")
            raise error_cls(self.provider, status, body)

        try:
            data = response.json()
        except ValueError:
            logger.error(f"{name} token endpoint returned a non-JSON body")
            raise error_cls(self.provider, status, "Token response is not valid JSON")

        if not isinstance(data, dict) or not data.get("access_token"):
            logger.error(f"{name} token response did not include an access_token")
            raise error_cls(self.provider, status, "Token response did not include an access_token")

        return TokenSet.from_response(data)

    async def exchange_code(self, code: str, code_verifier: Optional[str] = None) -> TokenSet:
        """
        Exchanges an authorization code for tokens.

        Args:
            code: Authorization code from the redirect
            code_verifier: PKCE verifier (required for PKCE providers)

        Returns:
            TokenSet with an absolute expiry

        Raises:
            MissingClientCredentials: No client id/secret configured
            MissingCodeVerifier: PKCE provider called without a verifier
            ExchangeFailed: Token endpoint rejected the code or was unreachable
        """
        credentials = self._require_client_credentials()
        if self.settings.uses_pkce and not code_verifier:
            raise MissingCodeVerifier(self.provider)

        data = {
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.redirect_uri,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        }
        if self.settings.uses_pkce:
            data["code_verifier"] = code_verifier

        logger.bind(code_verifier=code_verifier).debug(
            f"Exchanging {self.provider.display_name} authorization code"
        )
        response = await self._post(data)
        token_set = self._parse_token_response(response)

        logger.bind(
            access_token=token_set.access_token,
            refresh_token=token_set.refresh_token,
            expires_in=token_set.expires_in,
        ).info(f"{self.provider.display_name} tokens received")
        return token_set

    async def refresh(self, refresh_token: str) -> TokenSet:
        """
        Obtains new tokens with a refresh token.

        A response without refresh_token keeps the one that was sent.

        Raises:
            MissingClientCredentials: No client id/secret configured
            RefreshFailed: Token endpoint rejected the refresh token
            ExchangeFailed: Token endpoint unreachable (status=None)
        """
        credentials = self._require_client_credentials()

        data = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": credentials.client_id,
            "client_secret": credentials.client_secret,
        }

        logger.info(f"Refreshing {self.provider.display_name} access token...")
        response = await self._post(data)
        token_set = self._parse_token_response(response, error_cls=RefreshFailed)

        if not token_set.refresh_token:
            token_set.refresh_token = refresh_token

        logger.bind(expires_in=token_set.expires_in).info(
            f"{self.provider.display_name} token refreshed, expires: {token_set.expires_at.isoformat()}"
        )
        return token_set

    async def validate_client_credentials(self, client_id: str, client_secret: str) -> bool:
        """
        Checks client credentials with a client_credentials grant.

        Returns:
            True if the token endpoint accepted the credentials

        Raises:
            ExchangeFailed: Token endpoint unreachable (status=None)
        """
        response = await self._post(
            {"grant_type": "client_credentials"},
            auth=httpx.BasicAuth(client_id, client_secret),
        )
        if 200 <= response.status_code < 300:
            logger.info(f"{self.provider.display_name} client credentials validated")
            return True

        logger.bind(status=response.status_code, body=response.text[:500]).warning(
            f"{self.provider.display_name} rejected the client credentials"
        )
        return False


class SpotifyTokenExchanger(TokenExchanger):
    """Spotify: plain authorization code flow."""

    provider = Provider.SPOTIFY


class KickTokenExchanger(TokenExchanger):
    """Kick: authorization code flow bound to a PKCE verifier."""

    provider = Provider.KICK


def create_exchangers(
    store: CredentialStore,
    shared_client: Optional[httpx.AsyncClient] = None,
) -> Dict[Provider, TokenExchanger]:
    """Builds one exchanger per provider."""
    return {
        Provider.SPOTIFY: SpotifyTokenExchanger(store, shared_client=shared_client),
        Provider.KICK: KickTokenExchanger(store, shared_client=shared_client),
    }
