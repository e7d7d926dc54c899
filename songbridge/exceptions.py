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
Error taxonomy for the authorization subsystem.

Every error carries the provider it belongs to. Errors raised inside an
authorization flow are caught by AuthService and turned into notifications;
they never reach the UI as raw exceptions.
"""

from typing import Optional

from songbridge.models import Provider


class AuthError(Exception):
    """Base class for authorization errors."""

    def __init__(self, provider: Provider, message: str):
        super().__init__(message)
        self.provider = provider
        self.message = message


class MissingClientCredentials(AuthError):
    """The user has not configured a client id/secret for the provider."""

    def __init__(self, provider: Provider):
        super().__init__(provider, f"{provider.display_name} client ID and secret are not configured")


class ListenerStartFailed(AuthError):
    """The loopback listener could not bind its port."""


class MissingCallbackCode(AuthError):
    """The redirect reached the listener without a `code` parameter."""

    def __init__(self, provider: Provider, reason: Optional[str] = None):
        message = "Missing authorization code in callback"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(provider, message)


class CallbackTimeout(AuthError):
    """No redirect arrived before the listener timeout."""


class MissingCodeVerifier(AuthError):
    """A PKCE exchange was attempted without a stored verifier."""

    def __init__(self, provider: Provider):
        super().__init__(provider, "Missing PKCE code verifier")


class ExchangeFailed(AuthError):
    """
    The token endpoint rejected the request or could not be reached.

    Attributes:
        status: HTTP status code, or None for transport errors
        body: Response body or transport error description
    """

    def __init__(self, provider: Provider, status: Optional[int], body: str):
        if status is None:
            message = f"{provider.display_name} token request failed: {body}"
        else:
            message = f"{provider.display_name} token request failed: {status} {body}"
        super().__init__(provider, message)
        self.status = status
        self.body = body


class RefreshFailed(ExchangeFailed):
    """The refresh token was rejected; the user must authenticate again."""


class BootstrapError(AuthError):
    """Base class for session bootstrap failures."""


class ChannelLookupFailed(BootstrapError):
    """The channel list for the authenticated user could not be resolved."""


class ChatroomLookupFailed(BootstrapError):
    """The chatroom for the user's channel could not be resolved."""


class NotAuthenticated(AuthError):
    """No valid tokens are available for the provider."""

    def __init__(self, provider: Provider):
        super().__init__(provider, f"Not authenticated with {provider.display_name}")


class ProviderRequestFailed(AuthError):
    """An authenticated API call failed after all retries."""

    def __init__(self, provider: Provider, message: str, status: Optional[int] = None):
        super().__init__(provider, message)
        self.status = status
