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
HTTP client for provider APIs with token handling and retry logic.

Handles:
- Tokens: obtained from the RefreshGuard before every attempt
- 401: one forced token refresh, then retry
- 429: exponential backoff
- 5xx: exponential backoff
- Network errors: exponential backoff for retryable categories

Supports both per-request clients and a shared application-level client.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from songbridge.config import BASE_RETRY_DELAY, HTTP_TIMEOUT, MAX_RETRIES
from songbridge.exceptions import NotAuthenticated, ProviderRequestFailed
from songbridge.guard import RefreshGuard
from songbridge.models import Provider
from songbridge.network_errors import NetworkErrorInfo, classify_network_error, get_short_error_message


class AuthorizedHttpClient:
    """
    Bearer-authenticated HTTP client for one provider.

    Attributes:
        guard: Refresh guard handing out valid access tokens
        provider: Provider whose tokens are attached
        client: httpx client (owned or shared)

    Example:
        >>> client = AuthorizedHttpClient(guard, Provider.SPOTIFY)
        >>> response = await client.request_with_retry("GET", "https://api.spotify.com/v1/me")
    """

    def __init__(
        self,
        guard: RefreshGuard,
        provider: Provider,
        shared_client: Optional[httpx.AsyncClient] = None,
        max_retries: int = MAX_RETRIES,
    ):
        """
        Args:
            guard: Refresh guard
            provider: Provider whose access token is used
            shared_client: Optional shared httpx.AsyncClient. A shared
                client is NOT closed by close().
            max_retries: Attempts per request
        """
        self.guard = guard
        self.provider = provider
        self.max_retries = max_retries
        self._shared_client = shared_client
        self._owns_client = shared_client is None
        self.client: Optional[httpx.AsyncClient] = shared_client

    async def _get_client(self) -> httpx.AsyncClient:
        if self._shared_client is not None:
            return self._shared_client

        if self.client is None or self.client.is_closed:
            logger.debug(f"Creating HTTP client (timeout={HTTP_TIMEOUT}s)")
            self.client = httpx.AsyncClient(timeout=httpx.Timeout(timeout=HTTP_TIMEOUT), follow_redirects=True)
        return self.client

    async def close(self) -> None:
        """Closes the HTTP client if this instance owns it."""
        if not self._owns_client:
            return

        if self.client and not self.client.is_closed:
            try:
                await self.client.aclose()
            except Exception as e:
                # Cleanup must not mask the original exception
                logger.warning(f"Error closing HTTP client: {e}")

    async def request_with_retry(
        self,
        method: str,
        url: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        """
        Executes an authenticated request with retry logic.

        Args:
            method: HTTP method
            url: Request URL
            json_data: Optional JSON body
            params: Optional query parameters

        Returns:
            The response (2xx, or a 4xx other than 401/429 returned as is)

        Raises:
            NotAuthenticated: No valid token, or the provider kept rejecting it
            ProviderRequestFailed: Retries exhausted on 429/5xx/network errors
        """
        name = self.provider.display_name
        client = await self._get_client()
        refreshed = False
        last_status: Optional[int] = None
        last_error_info: Optional[NetworkErrorInfo] = None

        for attempt in range(self.max_retries):
            token = await self.guard.get_access_token(self.provider)
            if not token:
                raise NotAuthenticated(self.provider)

            headers = {"Authorization": f"Bearer {token}"}

            try:
                logger.debug(f"Sending {method} request to {name} API...")
                response = await client.request(method, url, json=json_data, params=params, headers=headers)
            except httpx.RequestError as e:
                error_info = classify_network_error(e)
                last_error_info = error_info
                short_msg = get_short_error_message(error_info)

                if error_info.is_retryable and attempt < self.max_retries - 1:
                    delay = BASE_RETRY_DELAY * (2 ** attempt)
                    logger.warning(f"{short_msg} - waiting {delay}s (attempt {attempt + 1}/{self.max_retries})")
                    await asyncio.sleep(delay)
                    continue

                logger.error(f"{short_msg} - no more retries (attempt {attempt + 1}/{self.max_retries})")
                break

            last_status = response.status_code
            last_error_info = None

            if 200 <= response.status_code < 300:
                return response

            # 401 - token revoked or expired early, refresh once and retry
            if response.status_code == 401:
                if refreshed:
                    logger.warning(f"{name} rejected a freshly refreshed token")
                    raise NotAuthenticated(self.provider)
                logger.warning(f"Received 401 from {name}, refreshing token (attempt {attempt + 1}/{self.max_retries})")
                refreshed = True
                if not await self.guard.force_refresh(self.provider, rejected_token=token):
                    raise NotAuthenticated(self.provider)
                continue

            if response.status_code == 429 or 500 <= response.status_code < 600:
                delay = BASE_RETRY_DELAY * (2 ** attempt)
                logger.warning(
                    f"Received {response.status_code} from {name}, waiting {delay}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                continue

            # Other errors - return as is
            return response

        if last_error_info:
            raise ProviderRequestFailed(
                self.provider,
                f"{name} request failed: {last_error_info.user_message}",
            )
        raise ProviderRequestFailed(
            self.provider,
            f"{name} request failed after {self.max_retries} attempts",
            status=last_status,
        )

    async def __aenter__(self) -> "AuthorizedHttpClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
