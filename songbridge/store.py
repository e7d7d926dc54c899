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
Persistent credential store.

All credentials live in a single JSON document with a flat namespace of
provider-prefixed keys (kickAccessToken, spotifyExpiresAt, ...). Keys the
store does not own are preserved. The document is read once at startup and
rewritten in full on every mutation (temp file + atomic replace).

When an encryption key is configured, secret fields are stored
Fernet-encrypted.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Union

from cryptography.fernet import Fernet, InvalidToken
from loguru import logger

from songbridge.config import ENCRYPTION_KEY, STORE_FILE
from songbridge.models import (
    ClientCredentials,
    CredentialRecord,
    Provider,
    SessionIdentity,
    TokenSet,
)


ACCESS_TOKEN = "AccessToken"
REFRESH_TOKEN = "RefreshToken"
EXPIRES_AT = "ExpiresAt"
CODE_VERIFIER = "CodeVerifier"
USER_ID = "UserId"
USERNAME = "Username"
CHATROOM_ID = "ChatroomId"
CLIENT_ID = "ClientId"
CLIENT_SECRET = "ClientSecret"

IDENTITY_FIELDS = (USER_ID, USERNAME, CHATROOM_ID)

# Fields cleared on logout or failed refresh (client credentials survive)
RECORD_FIELDS = (ACCESS_TOKEN, REFRESH_TOKEN, EXPIRES_AT, CODE_VERIFIER) + IDENTITY_FIELDS

# Fields encrypted at rest when an encryption key is set
SECRET_FIELDS = frozenset({ACCESS_TOKEN, REFRESH_TOKEN, CODE_VERIFIER, CLIENT_SECRET})


def parse_expiry(value: Any) -> Optional[datetime]:
    """
    Parses a persisted expiry.

    Accepts ISO 8601 strings (naive values are taken as UTC) and epoch
    milliseconds, as numbers or numeric strings.

    Returns:
        Timezone-aware datetime, or None if the value is missing or unreadable
    """
    if value is None or value == "":
        return None

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)

    if isinstance(value, str):
        if value.isdigit():
            return datetime.fromtimestamp(int(value) / 1000, tz=timezone.utc)
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            logger.warning(f"Ignoring unreadable expiry value: {value!r}")
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    logger.warning(f"Ignoring expiry of unexpected type: {type(value).__name__}")
    return None


class CredentialStore:
    """
    Durable per-provider credential records and client credentials.

    Only accessed from the event loop thread, so no locking is needed.

    Example:
        >>> store = CredentialStore("~/.songbridge/config.json")
        >>> store.save_tokens(Provider.KICK, token_set)
        >>> store.get(Provider.KICK).has_tokens
        True
    """

    def __init__(self, path: Optional[Union[str, Path]] = None, encryption_key: Optional[str] = ENCRYPTION_KEY):
        """
        Initializes the store and loads the document from disk.

        Args:
            path: JSON document path (default: STORE_FILE)
            encryption_key: Fernet key for secret fields (None = plaintext)
        """
        self._path = Path(path or STORE_FILE).expanduser()
        self._cipher = Fernet(encryption_key.encode()) if encryption_key else None
        self._data: Dict[str, Any] = {}
        self._load()

    @property
    def path(self) -> Path:
        return self._path

    @staticmethod
    def _key(provider: Provider, field: str) -> str:
        return f"{provider.value}{field}"

    # ==================================================================================================
    # Disk I/O
    # ==================================================================================================

    def _load(self) -> None:
        """Reads the document and drops partial token pairs."""
        if not self._path.exists():
            logger.debug(f"Credential store not found, starting empty: {self._path}")
            self._data = {}
            return

        try:
            with open(self._path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Error reading credential store {self._path}: {e}")
            self._data = {}
            return

        if not isinstance(data, dict):
            logger.error(f"Credential store {self._path} is not a JSON object, ignoring it")
            self._data = {}
            return

        self._data = data

        for provider in Provider:
            has_access = bool(self._read(provider, ACCESS_TOKEN))
            has_refresh = bool(self._read(provider, REFRESH_TOKEN))
            if has_access != has_refresh:
                logger.warning(
                    f"Discarding incomplete {provider.display_name} token pair from {self._path}"
                )
                for field in (ACCESS_TOKEN, REFRESH_TOKEN, EXPIRES_AT):
                    self._data.pop(self._key(provider, field), None)

        logger.debug(f"Credential store loaded from {self._path}")

    def _persist(self) -> None:
        """Rewrites the whole document atomically."""
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_name(self._path.name + ".tmp")
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
            os.replace(tmp_path, self._path)
        except OSError as e:
            logger.error(f"Error saving credential store {self._path}: {e}")
            raise

    def _read(self, provider: Provider, field: str) -> Optional[str]:
        value = self._data.get(self._key(provider, field))
        if value is None or value == "":
            return None
        if field in SECRET_FIELDS and self._cipher:
            try:
                return self._cipher.decrypt(str(value).encode()).decode()
            except InvalidToken:
                logger.warning(f"Could not decrypt {provider.value}{field}, treating it as absent")
                return None
        return str(value)

    def _write(self, provider: Provider, field: str, value: Optional[str]) -> None:
        key = self._key(provider, field)
        if value is None:
            self._data.pop(key, None)
            return
        if field in SECRET_FIELDS and self._cipher:
            value = self._cipher.encrypt(value.encode()).decode()
        self._data[key] = value

    # ==================================================================================================
    # Credential records
    # ==================================================================================================

    def get(self, provider: Provider) -> CredentialRecord:
        """Returns the current record for the provider (empty if none)."""
        access_token = self._read(provider, ACCESS_TOKEN)
        refresh_token = self._read(provider, REFRESH_TOKEN)
        if not (access_token and refresh_token):
            access_token = refresh_token = None

        return CredentialRecord(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=parse_expiry(self._data.get(self._key(provider, EXPIRES_AT))) if access_token else None,
            user_id=self._read(provider, USER_ID),
            username=self._read(provider, USERNAME),
            chatroom_id=self._read(provider, CHATROOM_ID),
            code_verifier=self._read(provider, CODE_VERIFIER),
        )

    def save_tokens(self, provider: Provider, token_set: TokenSet, reset_identity: bool = False) -> None:
        """
        Persists a token set. Identity fields are left untouched unless
        reset_identity is set, which drops them in the same write (a new
        authorization may belong to a different account).

        A token set without a refresh token keeps the stored one; if there
        is none, the token set is refused.

        Raises:
            ValueError: If the access token or the refresh token would be missing
        """
        if not token_set.access_token:
            raise ValueError(f"Refusing to persist {provider.display_name} tokens without an access token")

        refresh_token = token_set.refresh_token or self._read(provider, REFRESH_TOKEN)
        if not refresh_token:
            raise ValueError(f"Refusing to persist {provider.display_name} tokens without a refresh token")

        self._write(provider, ACCESS_TOKEN, token_set.access_token)
        self._write(provider, REFRESH_TOKEN, refresh_token)
        self._write(provider, EXPIRES_AT, token_set.expires_at.isoformat())
        if reset_identity:
            for field in IDENTITY_FIELDS:
                self._write(provider, field, None)
        self._persist()

        logger.bind(
            provider=provider.value,
            access_token=token_set.access_token,
            expires_at=token_set.expires_at.isoformat(),
        ).debug(f"{provider.display_name} tokens saved")

    def save_identity(self, provider: Provider, identity: SessionIdentity) -> None:
        """Persists all three identity fields in one write."""
        self._write(provider, USER_ID, str(identity.user_id))
        self._write(provider, USERNAME, identity.username)
        self._write(provider, CHATROOM_ID, str(identity.chatroom_id))
        self._persist()
        logger.debug(f"{provider.display_name} identity saved for {identity.username}")

    def set_code_verifier(self, provider: Provider, verifier: str) -> None:
        """Stores the PKCE verifier, replacing any earlier one."""
        self._write(provider, CODE_VERIFIER, verifier)
        self._persist()

    def consume_code_verifier(self, provider: Provider) -> Optional[str]:
        """Returns the stored PKCE verifier and removes it."""
        verifier = self._read(provider, CODE_VERIFIER)
        if self._key(provider, CODE_VERIFIER) in self._data:
            self._write(provider, CODE_VERIFIER, None)
            self._persist()
        return verifier

    def clear(self, provider: Provider) -> None:
        """Clears tokens, expiry, verifier and cached identity. Client credentials are kept."""
        for field in RECORD_FIELDS:
            self._write(provider, field, None)
        self._persist()
        logger.debug(f"{provider.display_name} credential record cleared")

    # ==================================================================================================
    # Client credentials
    # ==================================================================================================

    def get_client_credentials(self, provider: Provider) -> Optional[ClientCredentials]:
        """Returns client credentials, or None unless both fields are set."""
        client_id = self._read(provider, CLIENT_ID)
        client_secret = self._read(provider, CLIENT_SECRET)
        if not (client_id and client_secret):
            return None
        return ClientCredentials(client_id=client_id, client_secret=client_secret)

    def set_client_credentials(self, provider: Provider, credentials: ClientCredentials) -> None:
        self._write(provider, CLIENT_ID, credentials.client_id)
        self._write(provider, CLIENT_SECRET, credentials.client_secret)
        self._persist()
        logger.bind(client_secret=credentials.client_secret).info(
            f"{provider.display_name} client credentials saved"
        )

    def delete_client_credentials(self, provider: Provider) -> None:
        """Removes client credentials. User tokens are not touched."""
        self._write(provider, CLIENT_ID, None)
        self._write(provider, CLIENT_SECRET, None)
        self._persist()
        logger.info(f"{provider.display_name} client credentials deleted")
