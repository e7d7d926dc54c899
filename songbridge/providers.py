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
Per-provider OAuth settings.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional
from urllib.parse import urlencode, urlparse

from songbridge import config
from songbridge.models import Provider


@dataclass(frozen=True)
class ProviderSettings:
    """
    OAuth endpoints and loopback settings for one provider.

    Attributes:
        provider: Provider identity
        authorize_url: Browser authorization endpoint
        token_url: Token endpoint (code exchange and refresh)
        redirect_uri: Loopback redirect registered with the provider
        scopes: Requested scopes
        uses_pkce: Whether the authorization code is bound to a PKCE verifier
        callback_timeout: Seconds before an unused listener closes (None = never)
    """
    provider: Provider
    authorize_url: str
    token_url: str
    redirect_uri: str
    scopes: List[str]
    uses_pkce: bool
    callback_timeout: Optional[float] = None

    @property
    def callback_host(self) -> str:
        return urlparse(self.redirect_uri).hostname or "127.0.0.1"

    @property
    def callback_port(self) -> int:
        port = urlparse(self.redirect_uri).port
        if port is None:
            raise ValueError(f"Redirect URI must include a port: {self.redirect_uri}")
        return port

    @property
    def callback_path(self) -> str:
        return urlparse(self.redirect_uri).path or "/callback"

    def build_authorize_url(self, client_id: str, state: str, code_challenge: Optional[str] = None) -> str:
        """Build the provider authorization URL the browser is sent to."""
        params = {
            "response_type": "code",
            "client_id": client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(self.scopes),
            "state": state,
        }
        if self.uses_pkce:
            if not code_challenge:
                raise ValueError("code_challenge is required for PKCE providers")
            params["code_challenge"] = code_challenge
            params["code_challenge_method"] = "S256"
        return f"{self.authorize_url}?{urlencode(params)}"


def get_provider_settings(provider: Provider) -> ProviderSettings:
    """Return settings for the specified provider, read from config."""
    if provider == Provider.SPOTIFY:
        return ProviderSettings(
            provider=Provider.SPOTIFY,
            authorize_url=config.SPOTIFY_AUTHORIZE_URL,
            token_url=config.SPOTIFY_TOKEN_URL,
            redirect_uri=config.SPOTIFY_REDIRECT_URI,
            scopes=list(config.SPOTIFY_SCOPES),
            uses_pkce=False,
            callback_timeout=config.SPOTIFY_CALLBACK_TIMEOUT,
        )
    return ProviderSettings(
        provider=Provider.KICK,
        authorize_url=config.KICK_AUTHORIZE_URL,
        token_url=config.KICK_TOKEN_URL,
        redirect_uri=config.KICK_REDIRECT_URI,
        scopes=list(config.KICK_SCOPES),
        uses_pkce=True,
        callback_timeout=config.KICK_CALLBACK_TIMEOUT,
    )


def all_provider_settings() -> Dict[Provider, ProviderSettings]:
    return {provider: get_provider_settings(provider) for provider in Provider}
