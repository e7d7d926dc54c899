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
Authorization service: the entry points the UI layer calls.

AuthService owns the authorization flow for both providers:

    authenticate() -> listener bound -> browser opened
    redirect -> exchange code -> persist tokens -> (Kick) bootstrap identity
    -> listener closed -> UI notified

It is also the flow boundary: every AuthError and every unexpected
exception raised inside a flow is logged here and turned into a
notification. Nothing raised by a flow reaches the UI.

Notifications are delivered as notifier(event, payload):
- "authenticated": {"provider": ..., "username": ...}
- "authentication_failed": {"provider": ..., "message": ...}
- "toast": {"type": "success" | "error" | "info", "message": ...}
"""

import secrets
import webbrowser
from functools import partial
from typing import Any, Callable, Dict, Mapping, Optional

import httpx
from loguru import logger

from songbridge.api import SpotifyApi
from songbridge.bootstrap import KickSessionBootstrapper
from songbridge.exceptions import (
    AuthError,
    ExchangeFailed,
    MissingClientCredentials,
    NotAuthenticated,
    ProviderRequestFailed,
)
from songbridge.exchanger import TokenExchanger, create_exchangers
from songbridge.guard import RefreshGuard
from songbridge.http_client import AuthorizedHttpClient
from songbridge.listener import CallbackListener, ListenerState
from songbridge.models import AuthStatus, ClientCredentials, Provider, SaveResult
from songbridge.pkce import generate_pkce_pair
from songbridge.providers import ProviderSettings, all_provider_settings
from songbridge.store import CredentialStore


Notifier = Callable[[str, Dict[str, Any]], None]

GENERIC_FAILURE_MESSAGE = "Authentication failed unexpectedly. Check the log for details."


def _ignore_notification(event: str, payload: Dict[str, Any]) -> None:
    pass


class AuthService:
    """
    Collaborator interface exposed to the UI layer.

    Example:
        >>> service = AuthService(CredentialStore(), notifier=window.send)
        >>> await service.set_client_credentials(Provider.KICK, "id", "secret")
        >>> await service.authenticate(Provider.KICK)
        >>> await service.wait_for_flow(Provider.KICK)
        >>> (await service.check_authenticated(Provider.KICK)).username
        'streamer'
    """

    def __init__(
        self,
        store: CredentialStore,
        notifier: Optional[Notifier] = None,
        exchangers: Optional[Mapping[Provider, TokenExchanger]] = None,
        guard: Optional[RefreshGuard] = None,
        bootstrapper: Optional[KickSessionBootstrapper] = None,
        listeners: Optional[Mapping[Provider, CallbackListener]] = None,
        settings: Optional[Mapping[Provider, ProviderSettings]] = None,
        shared_client: Optional[httpx.AsyncClient] = None,
        open_browser: Callable[[str], Any] = webbrowser.open,
    ):
        """
        Args:
            store: Credential store
            notifier: UI notification callback
            exchangers: Token exchangers per provider (default: from config)
            guard: Refresh guard (default: built on store and exchangers)
            bootstrapper: Kick session bootstrapper
            listeners: Callback listeners per provider (default: from settings)
            settings: Provider settings (default: from config)
            shared_client: Optional shared httpx.AsyncClient for all outbound calls
            open_browser: Function that opens a URL in the user's browser
        """
        self.store = store
        self.notifier = notifier or _ignore_notification
        self.settings = dict(settings or all_provider_settings())
        self.exchangers = dict(exchangers or create_exchangers(store, shared_client))
        self.guard = guard or RefreshGuard(store, self.exchangers)
        self.bootstrapper = bootstrapper or KickSessionBootstrapper(shared_client)
        self.listeners = dict(listeners or {
            provider: CallbackListener.from_settings(provider_settings)
            for provider, provider_settings in self.settings.items()
        })
        self._shared_client = shared_client
        self._open_browser = open_browser

    # ==================================================================================================
    # Notifications
    # ==================================================================================================

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        try:
            self.notifier(event, payload)
        except Exception as e:
            logger.exception(f"Notifier failed for event '{event}': {e}")

    def _toast(self, kind: str, message: str) -> None:
        self._emit("toast", {"type": kind, "message": message})

    def _notify_failure(self, provider: Provider, message: str) -> None:
        self._emit("authentication_failed", {"provider": provider.value, "message": message})
        self._toast("error", message)

    def _notify_success(self, provider: Provider, username: Optional[str]) -> None:
        self._emit("authenticated", {"provider": provider.value, "username": username})
        if username:
            self._toast("success", f"Connected to {provider.display_name} as {username}")
        else:
            self._toast("success", f"Connected to {provider.display_name}")

    # ==================================================================================================
    # Client credentials
    # ==================================================================================================

    def has_client_credentials(self, provider: Provider) -> bool:
        return self.store.get_client_credentials(provider) is not None

    async def set_client_credentials(self, provider: Provider, client_id: str, client_secret: str) -> SaveResult:
        """
        Validates and saves client credentials.

        Spotify credentials are checked with a client_credentials grant
        before being accepted. Kick credentials only need both fields.
        """
        credentials = ClientCredentials(
            client_id=(client_id or "").strip(),
            client_secret=(client_secret or "").strip(),
        )
        if not credentials.is_complete():
            return SaveResult(success=False, error="Client ID and client secret are both required")

        if provider == Provider.SPOTIFY:
            try:
                valid = await self.exchangers[provider].validate_client_credentials(
                    credentials.client_id, credentials.client_secret
                )
            except ExchangeFailed as e:
                return SaveResult(success=False, error=e.message)
            if not valid:
                return SaveResult(success=False, error=f"Invalid {provider.display_name} client credentials")

        self.store.set_client_credentials(provider, credentials)
        return SaveResult(success=True)

    def delete_client_credentials(self, provider: Provider) -> None:
        """Removes client credentials. Stored user tokens are kept."""
        self.store.delete_client_credentials(provider)

    # ==================================================================================================
    # Authorization flow
    # ==================================================================================================

    def build_authorize_url(self, provider: Provider) -> str:
        """
        Builds the authorize URL for a new attempt.

        For PKCE providers a new verifier is stored, replacing any verifier
        from an earlier attempt.

        Raises:
            MissingClientCredentials: No client credentials configured
        """
        credentials = self.store.get_client_credentials(provider)
        if credentials is None:
            raise MissingClientCredentials(provider)

        provider_settings = self.settings[provider]
        state = secrets.token_urlsafe(16)
        code_challenge = None
        if provider_settings.uses_pkce:
            code_verifier, code_challenge = generate_pkce_pair()
            self.store.set_code_verifier(provider, code_verifier)

        self.listeners[provider].expected_state = state
        return provider_settings.build_authorize_url(credentials.client_id, state, code_challenge)

    async def authenticate(self, provider: Provider) -> bool:
        """
        Starts the authorization flow: binds the listener and opens the browser.

        A listener that is already waiting for this provider is reused.

        Returns:
            True if the browser was sent to the provider, False on failure
            (the failure has already been reported through the notifier)
        """
        name = provider.display_name
        try:
            if not self.has_client_credentials(provider):
                raise MissingClientCredentials(provider)

            listener = self.listeners[provider]
            if listener.state == ListenerState.CLOSING:
                # Previous socket is still being released
                logger.info(f"{name} callback listener is closing, waiting to start a new one")
                await listener.wait_closed()

            started = await listener.start(partial(self._on_callback, provider))
            if not started:
                logger.info(f"{name} authorization already in progress, reusing the callback listener")

            url = self.build_authorize_url(provider)
            self._open_browser(url)
            logger.info(f"Opened {name} authorization page in the browser")
            return True
        except AuthError as e:
            logger.error(f"{name} authorization could not start: {e.message}")
            await self._reset_flow(provider)
            self._notify_failure(provider, e.message)
            return False
        except Exception as e:
            logger.exception(f"Unexpected error starting {name} authorization: {e}")
            await self._reset_flow(provider)
            self._notify_failure(provider, GENERIC_FAILURE_MESSAGE)
            return False

    async def wait_for_flow(self, provider: Provider) -> None:
        """Waits until the provider's callback listener has shut down."""
        await self.listeners[provider].wait_closed()

    async def _reset_flow(self, provider: Provider) -> None:
        self.store.consume_code_verifier(provider)
        await self.listeners[provider].stop()

    async def _on_callback(self, provider: Provider, code: Optional[str], error: Optional[AuthError]) -> bool:
        """
        Listener callback. Runs inside the redirect request handler, so it
        must not stop the listener; the listener closes itself afterwards.
        """
        name = provider.display_name
        if error is not None:
            self.store.consume_code_verifier(provider)
            logger.error(f"{name} authorization aborted: {error.message}")
            self._notify_failure(provider, error.message)
            return False

        try:
            username = await self._complete_flow(provider, code)
        except AuthError as e:
            logger.error(f"{name} authorization failed: {e.message}")
            self._notify_failure(provider, e.message)
            return False
        except Exception as e:
            logger.exception(f"Unexpected error completing {name} authorization: {e}")
            self._notify_failure(provider, GENERIC_FAILURE_MESSAGE)
            return False

        self._notify_success(provider, username)
        return True

    async def _complete_flow(self, provider: Provider, code: str) -> Optional[str]:
        # The verifier is single-use whatever happens next
        code_verifier = self.store.consume_code_verifier(provider)
        uses_pkce = self.settings[provider].uses_pkce

        token_set = await self.exchangers[provider].exchange_code(code, code_verifier if uses_pkce else None)
        if not token_set.refresh_token:
            raise ExchangeFailed(provider, 200, "Token response did not include a refresh_token")
        # Identity is resolved again for every authorization
        self.store.save_tokens(provider, token_set, reset_identity=True)

        if provider == Provider.KICK:
            # Tokens stay persisted if this fails; identity stays absent
            identity = await self.bootstrapper.bootstrap(token_set.access_token)
            self.store.save_identity(provider, identity)
            return identity.username

        return await self._fetch_spotify_display_name()

    async def _fetch_spotify_display_name(self) -> Optional[str]:
        async with AuthorizedHttpClient(self.guard, Provider.SPOTIFY, shared_client=self._shared_client) as client:
            try:
                profile = await SpotifyApi(client).get_current_user()
            except (NotAuthenticated, ProviderRequestFailed) as e:
                logger.warning(f"Could not fetch Spotify profile: {e.message}")
                return None
        return profile.get("display_name") or profile.get("id")

    # ==================================================================================================
    # Session state
    # ==================================================================================================

    async def check_authenticated(self, provider: Provider) -> AuthStatus:
        """
        Reports whether the provider is usable, refreshing tokens if needed.

        Kick reports the cached username; Spotify asks the API for the
        profile and reports unauthenticated if that fails.
        """
        if not await self.guard.ensure_valid(provider):
            return AuthStatus(authenticated=False)

        if provider == Provider.KICK:
            return AuthStatus(authenticated=True, username=self.store.get(provider).username)

        async with AuthorizedHttpClient(self.guard, provider, shared_client=self._shared_client) as client:
            try:
                profile = await SpotifyApi(client).get_current_user()
            except (NotAuthenticated, ProviderRequestFailed) as e:
                logger.warning(f"Spotify session check failed: {e.message}")
                return AuthStatus(authenticated=False)
        return AuthStatus(authenticated=True, username=profile.get("display_name") or profile.get("id"))

    async def logout(self, provider: Provider) -> None:
        """Clears tokens, identity and any pending verifier; stops a waiting listener."""
        await self.listeners[provider].stop()
        self.store.clear(provider)
        logger.info(f"Logged out of {provider.display_name}")
        self._toast("info", f"Disconnected from {provider.display_name}")

    async def close(self) -> None:
        """Stops all listeners."""
        for listener in self.listeners.values():
            await listener.stop()
