# -*- coding: utf-8 -*-

"""
Common fixtures and utilities for testing SongBridge.

Provides test isolation from external services and global state.
All tests MUST be completely isolated from the network: provider
endpoints are replaced with httpx.MockTransport handlers.
"""

import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, Mock

import httpx
import pytest

from songbridge.exchanger import TokenExchanger
from songbridge.models import ClientCredentials, Provider, TokenSet
from songbridge.store import CredentialStore


# =============================================================================
# Store Fixtures
# =============================================================================

@pytest.fixture
def store_path(tmp_path):
    """Path of an isolated credential store document."""
    return tmp_path / "config.json"


@pytest.fixture
def store(store_path):
    """Empty plaintext credential store in a temporary directory."""
    print(f"Creating credential store at {store_path}...")
    return CredentialStore(store_path, encryption_key=None)


@pytest.fixture
def client_credentials():
    return ClientCredentials(client_id="test_client_id", client_secret="test_client_secret")


@pytest.fixture
def store_with_client_credentials(store, client_credentials):
    """Credential store with client credentials for both providers."""
    for provider in Provider:
        store.set_client_credentials(provider, client_credentials)
    return store


def make_token_set(
    access_token: str = "AT1",
    refresh_token: Optional[str] = "RT1",
    expires_in: int = 3600,
    now: Optional[datetime] = None,
) -> TokenSet:
    """Builds a TokenSet expiring expires_in seconds from now (negative = already expired)."""
    issued_at = now or datetime.now(timezone.utc)
    return TokenSet(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_in=expires_in,
        expires_at=issued_at + timedelta(seconds=expires_in),
    )


@pytest.fixture
def token_set_factory():
    return make_token_set


# =============================================================================
# Token Endpoint Fixtures
# =============================================================================

@pytest.fixture
def token_response():
    """
    Factory for token endpoint JSON bodies.
    """
    def _create(access_token: str = "AT1", refresh_token: Optional[str] = "RT1", expires_in: Optional[int] = 3600):
        body: Dict[str, Any] = {"access_token": access_token, "token_type": "bearer"}
        if refresh_token is not None:
            body["refresh_token"] = refresh_token
        if expires_in is not None:
            body["expires_in"] = expires_in
        return body
    return _create


class RecordingTransport:
    """
    httpx.MockTransport wrapper that records every request.

    handler(request) -> httpx.Response decides the reply.
    """

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]):
        self.handler = handler
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.handler(request)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @staticmethod
    def form(request: httpx.Request) -> Dict[str, str]:
        """Decodes a form-encoded request body."""
        return dict(httpx.QueryParams(request.content.decode()))

    @staticmethod
    def json(request: httpx.Request) -> Any:
        return json.loads(request.content.decode())


@pytest.fixture
def recording_transport():
    """
    Factory for RecordingTransport instances.
    """
    def _create(handler: Callable[[httpx.Request], httpx.Response]) -> RecordingTransport:
        return RecordingTransport(handler)
    return _create


# =============================================================================
# Exchanger Fixtures
# =============================================================================

@pytest.fixture
def mock_exchangers():
    """
    Mocked token exchangers for both providers.

    refresh() returns a fresh token set by default.
    """
    exchangers = {}
    for provider in Provider:
        exchanger = Mock(spec=TokenExchanger)
        exchanger.provider = provider
        exchanger.refresh = AsyncMock(return_value=make_token_set("AT2", "RT2", 3600))
        exchanger.exchange_code = AsyncMock(return_value=make_token_set("AT1", "RT1", 3600))
        exchanger.validate_client_credentials = AsyncMock(return_value=True)
        exchangers[provider] = exchanger
    return exchangers
