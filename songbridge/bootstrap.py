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
Kick session bootstrap.

After the first token exchange, resolves the chat identity in two steps:
1. channel list -> slug (username) and broadcaster user id
2. chatroom descriptor for the slug -> chatroom id

The chatroom endpoint is known to lag behind new logins, so step 2 is
retried a few times.
"""

import asyncio
from typing import Any, Dict, Optional

import httpx
from loguru import logger

from songbridge.config import (
    CHATROOM_LOOKUP_ATTEMPTS,
    CHATROOM_RETRY_DELAY,
    HTTP_TIMEOUT,
    KICK_API_BASE,
    KICK_CHATROOM_URL_TEMPLATE,
)
from songbridge.exceptions import ChannelLookupFailed, ChatroomLookupFailed
from songbridge.models import Provider, SessionIdentity
from songbridge.network_errors import classify_network_error, get_short_error_message


class KickSessionBootstrapper:
    """
    Resolves user id, username and chatroom id for a fresh Kick token.

    Example:
        >>> identity = await KickSessionBootstrapper().bootstrap(access_token)
        >>> identity.chatroom_id
        '123456'
    """

    def __init__(
        self,
        shared_client: Optional[httpx.AsyncClient] = None,
        api_base: str = KICK_API_BASE,
        chatroom_url_template: str = KICK_CHATROOM_URL_TEMPLATE,
        attempts: int = CHATROOM_LOOKUP_ATTEMPTS,
        retry_delay: float = CHATROOM_RETRY_DELAY,
    ):
        self._shared_client = shared_client
        self.api_base = api_base.rstrip("/")
        self.chatroom_url_template = chatroom_url_template
        self.attempts = max(1, attempts)
        self.retry_delay = retry_delay

    async def bootstrap(self, access_token: str) -> SessionIdentity:
        """
        Runs the lookup chain.

        Raises:
            ChannelLookupFailed: Channel list missing, empty or unreachable
            ChatroomLookupFailed: Chatroom id not found after all attempts
        """
        if self._shared_client is not None:
            return await self._bootstrap(self._shared_client, access_token)
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT) as client:
            return await self._bootstrap(client, access_token)

    async def _bootstrap(self, client: httpx.AsyncClient, access_token: str) -> SessionIdentity:
        headers = {"Authorization": f"Bearer {access_token}"}
        user_id, username = await self._lookup_channel(client, headers)
        chatroom_id = await self._lookup_chatroom(client, headers, username)
        logger.info(f"Kick session resolved: {username} (chatroom {chatroom_id})")
        return SessionIdentity(user_id=user_id, username=username, chatroom_id=chatroom_id)

    async def _lookup_channel(self, client: httpx.AsyncClient, headers: Dict[str, str]):
        url = f"{self.api_base}/public/v1/channels"
        try:
            response = await client.get(url, headers=headers)
        except httpx.RequestError as e:
            error_info = classify_network_error(e)
            raise ChannelLookupFailed(
                Provider.KICK, f"Could not fetch Kick channels: {get_short_error_message(error_info)}"
            ) from e

        if response.status_code != 200:
            raise ChannelLookupFailed(
                Provider.KICK, f"Could not fetch Kick channels: {response.status_code} {response.text[:200]}"
            )

        try:
            payload = response.json()
        except ValueError:
            payload = None
        channels = (payload.get("data") if isinstance(payload, dict) else None) or []

        if not channels:
            raise ChannelLookupFailed(Provider.KICK, "No Kick channel found for this account")

        channel = channels[0]
        username = channel.get("slug")
        user_id = channel.get("broadcaster_user_id")
        if not username or user_id is None:
            raise ChannelLookupFailed(Provider.KICK, "Kick channel response is missing slug or broadcaster_user_id")

        logger.debug(f"Kick channel found: {username}")
        return str(user_id), username

    async def _lookup_chatroom(self, client: httpx.AsyncClient, headers: Dict[str, str], username: str) -> str:
        url = self.chatroom_url_template.format(slug=username)
        last_problem = "no response"

        for attempt in range(1, self.attempts + 1):
            try:
                response = await client.get(url, headers=headers)
                data: Any = response.json() if response.status_code == 200 else None
                chatroom = data.get("chatroom") if isinstance(data, dict) else None
                if isinstance(chatroom, dict) and chatroom.get("id") is not None:
                    return str(chatroom["id"])
                last_problem = f"status {response.status_code}"
            except httpx.RequestError as e:
                last_problem = get_short_error_message(classify_network_error(e))
            except ValueError:
                last_problem = "invalid JSON"

            logger.warning(f"Kick chatroom lookup failed ({last_problem}), attempt {attempt}/{self.attempts}")
            if attempt < self.attempts:
                await asyncio.sleep(self.retry_delay)

        raise ChatroomLookupFailed(
            Provider.KICK, f"Could not find the chatroom for {username} after {self.attempts} attempts ({last_problem})"
        )
