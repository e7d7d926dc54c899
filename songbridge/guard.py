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
Refresh guard: the single choke point for authenticated calls.

Every caller that needs an access token goes through RefreshGuard, which
refreshes expired tokens before handing them out. Refreshes are
single-flight per provider: concurrent callers wait on one lock and the
ones that arrive late reuse the tokens the first one obtained.
"""

import asyncio
from typing import Dict, Mapping, Optional

from loguru import logger

from songbridge.exceptions import ExchangeFailed, MissingClientCredentials
from songbridge.exchanger import TokenExchanger
from songbridge.models import CredentialRecord, Provider
from songbridge.store import CredentialStore


class RefreshGuard:
    """
    Keeps provider access tokens valid.

    Example:
        >>> guard = RefreshGuard(store, exchangers)
        >>> if await guard.ensure_valid(Provider.SPOTIFY):
        ...     token = store.get(Provider.SPOTIFY).access_token
    """

    def __init__(self, store: CredentialStore, exchangers: Mapping[Provider, TokenExchanger]):
        self.store = store
        self.exchangers = exchangers
        self._locks: Dict[Provider, asyncio.Lock] = {}

    def _lock_for(self, provider: Provider) -> asyncio.Lock:
        lock = self._locks.get(provider)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[provider] = lock
        return lock

    async def ensure_valid(self, provider: Provider) -> bool:
        """
        Makes sure the provider has a usable access token.

        Returns:
            True if an unexpired access token is stored after the call,
            False if the user is (or has just become) unauthenticated
        """
        record = self.store.get(provider)
        if not record.has_tokens:
            return False
        if not record.is_expired():
            return True

        async with self._lock_for(provider):
            # Another caller may have refreshed while we waited
            record = self.store.get(provider)
            if not record.has_tokens:
                return False
            if not record.is_expired():
                logger.debug(f"{provider.display_name} token already refreshed by a concurrent caller")
                return True

            logger.info(f"{provider.display_name} access token expired, refreshing...")
            return await self._refresh(provider, record)

    async def force_refresh(self, provider: Provider, rejected_token: Optional[str] = None) -> bool:
        """
        Refreshes regardless of the stored expiry.

        Used when the provider rejects a token with 401 before its expiry.

        Args:
            provider: Provider to refresh
            rejected_token: The token the provider rejected. If the stored
                token already differs, another caller refreshed it and no
                request is made.

        Returns:
            True if a fresh token is stored
        """
        async with self._lock_for(provider):
            record = self.store.get(provider)
            if not record.has_tokens:
                return False
            if rejected_token and record.access_token != rejected_token:
                return True
            return await self._refresh(provider, record)

    async def get_access_token(self, provider: Provider) -> Optional[str]:
        """Returns a valid access token, or None if the user is not authenticated."""
        if not await self.ensure_valid(provider):
            return None
        return self.store.get(provider).access_token

    async def _refresh(self, provider: Provider, record: CredentialRecord) -> bool:
        name = provider.display_name
        try:
            token_set = await self.exchangers[provider].refresh(record.refresh_token)
        except MissingClientCredentials as e:
            logger.warning(f"Cannot refresh {name} token: {e.message}")
            return False
        except ExchangeFailed as e:
            # Rejections and unreachable token endpoints alike
            logger.bind(provider=provider.value, status=e.status, refresh_token=record.refresh_token).error(
                f"{name} token refresh failed, re-authentication required: {e.message}"
            )
            self.store.clear(provider)
            return False

        self.store.save_tokens(provider, token_set)
        return True
