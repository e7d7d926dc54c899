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
Data model shared by the authorization subsystem.

- Provider: the two identity providers we link
- CredentialRecord: per-provider user tokens, cached identity and PKCE verifier
- ClientCredentials: application-level client id/secret
- TokenSet: parsed token endpoint response with an absolute expiry
- SessionIdentity: chat identity resolved after the first token exchange
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional


class Provider(str, Enum):
    """Identity providers supported by SongBridge."""
    SPOTIFY = "spotify"
    KICK = "kick"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


@dataclass
class TokenSet:
    """
    Tokens returned by a provider's token endpoint.

    Attributes:
        access_token: Bearer token for API calls
        refresh_token: Refresh token (None when the provider omitted it)
        expires_in: Lifetime reported by the provider, in seconds
        expires_at: Absolute expiry computed when the response was parsed
    """
    access_token: str
    refresh_token: Optional[str]
    expires_in: int
    expires_at: datetime

    @classmethod
    def from_response(cls, data: dict, now: Optional[datetime] = None) -> "TokenSet":
        """
        Build a TokenSet from a token endpoint JSON body.

        expires_in is converted to an absolute instant right away so that
        the delay between issuance and use never skews the expiry.
        """
        expires_in = int(data.get("expires_in") or 3600)
        issued_at = now or utcnow()
        return cls(
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token") or None,
            expires_in=expires_in,
            expires_at=issued_at + timedelta(seconds=expires_in),
        )


@dataclass
class SessionIdentity:
    """Chat identity; the three fields are always persisted together."""
    user_id: str
    username: str
    chatroom_id: str


@dataclass
class ClientCredentials:
    """Application credentials registered by the user with a provider."""
    client_id: str
    client_secret: str

    def is_complete(self) -> bool:
        return bool(self.client_id and self.client_secret)


@dataclass
class CredentialRecord:
    """
    Per-provider credential record.

    Access and refresh tokens are set together or not at all. Identity
    fields are only used by the chat provider.
    """
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    user_id: Optional[str] = None
    username: Optional[str] = None
    chatroom_id: Optional[str] = None
    code_verifier: Optional[str] = None

    @property
    def has_tokens(self) -> bool:
        """True only when both tokens are present."""
        return bool(self.access_token and self.refresh_token)

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        """
        Checks if the access token is expired.

        Returns:
            True if the token has expired or no expiry is known
        """
        if not self.expires_at:
            return True
        return (now or utcnow()) >= self.expires_at

    @property
    def identity(self) -> Optional[SessionIdentity]:
        if self.user_id and self.username and self.chatroom_id:
            return SessionIdentity(self.user_id, self.username, self.chatroom_id)
        return None

    def is_empty(self) -> bool:
        return not any((
            self.access_token,
            self.refresh_token,
            self.expires_at,
            self.user_id,
            self.username,
            self.chatroom_id,
            self.code_verifier,
        ))


@dataclass
class AuthStatus:
    """Result of check_authenticated() for the UI layer."""
    authenticated: bool
    username: Optional[str] = None


@dataclass
class SaveResult:
    """Result of set_client_credentials() for the UI layer."""
    success: bool
    error: Optional[str] = None


@dataclass
class LogEntry:
    """Log entry forwarded to the presentation layer."""
    level: str
    message: str
    timestamp: float
    meta: dict = field(default_factory=dict)
