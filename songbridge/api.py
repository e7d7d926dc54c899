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
Token-bearing provider API calls.

All requests go through AuthorizedHttpClient, so callers never handle
tokens or refreshes themselves.
"""

import re
from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from songbridge.config import KICK_API_BASE, SPOTIFY_API_BASE
from songbridge.exceptions import ProviderRequestFailed
from songbridge.http_client import AuthorizedHttpClient

# open.spotify.com/track/<id>, open.spotify.com/intl-xx/track/<id> or spotify:track:<id>
TRACK_LINK_RE = re.compile(
    r"(?:https?://open\.spotify\.com/(?:intl-[a-z]{2,3}/)?track/|spotify:track:)([a-zA-Z0-9]+)"
)


@dataclass
class QueuedTrack:
    """Track added to the playback queue."""
    uri: str
    title: str
    artist: str


def _raise_for_status(client: AuthorizedHttpClient, response, action: str) -> None:
    if not 200 <= response.status_code < 300:
        raise ProviderRequestFailed(
            client.provider,
            f"{client.provider.display_name} {action} failed: {response.status_code} {response.text[:200]}",
            status=response.status_code,
        )


class SpotifyApi:
    """Spotify Web API calls used by chat commands."""

    def __init__(self, client: AuthorizedHttpClient, base_url: str = SPOTIFY_API_BASE):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def get_current_user(self) -> Dict[str, Any]:
        """GET /me: profile of the authenticated user."""
        response = await self.client.request_with_retry("GET", f"{self.base_url}/me")
        _raise_for_status(self.client, response, "profile lookup")
        return response.json()

    async def get_track(self, track_id: str) -> Dict[str, Any]:
        response = await self.client.request_with_retry("GET", f"{self.base_url}/tracks/{track_id}")
        _raise_for_status(self.client, response, "track lookup")
        return response.json()

    async def search_track(self, query: str) -> Optional[Dict[str, Any]]:
        """Returns the best match for a free-text query, or None."""
        response = await self.client.request_with_retry(
            "GET",
            f"{self.base_url}/search",
            params={"q": query, "type": "track", "limit": 1},
        )
        _raise_for_status(self.client, response, "track search")
        items = response.json().get("tracks", {}).get("items") or []
        return items[0] if items else None

    async def add_to_queue(self, uri: str) -> None:
        response = await self.client.request_with_retry(
            "POST",
            f"{self.base_url}/me/player/queue",
            params={"uri": uri},
        )
        _raise_for_status(self.client, response, "queue add")

    async def queue_track(self, query: str) -> Optional[QueuedTrack]:
        """
        Resolves a track link or search query and adds it to the queue.

        Args:
            query: Spotify track URL/URI or free text

        Returns:
            The queued track, or None if nothing matched
        """
        match = TRACK_LINK_RE.search(query)
        if match:
            track = await self.get_track(match.group(1))
        else:
            track = await self.search_track(query)
            if track is None:
                logger.warning(f"No tracks found for query: {query}")
                return None

        queued = QueuedTrack(
            uri=track["uri"],
            title=track.get("name", ""),
            artist=", ".join(artist.get("name", "") for artist in track.get("artists", [])),
        )
        await self.add_to_queue(queued.uri)
        logger.info(f"Queued {queued.title} by {queued.artist}")
        return queued


class KickApi:
    """Kick public API calls."""

    def __init__(self, client: AuthorizedHttpClient, base_url: str = KICK_API_BASE):
        self.client = client
        self.base_url = base_url.rstrip("/")

    async def send_chat_message(self, content: str, broadcaster_user_id: str) -> None:
        """Posts a bot message to the broadcaster's chat."""
        response = await self.client.request_with_retry(
            "POST",
            f"{self.base_url}/public/v1/chat",
            json_data={
                "broadcaster_user_id": int(broadcaster_user_id),
                "content": content,
                "type": "bot",
            },
        )
        _raise_for_status(self.client, response, "chat message")
