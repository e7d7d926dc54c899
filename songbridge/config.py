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
SongBridge Configuration.

Centralized storage for all settings, constants, and provider endpoints.
Loads environment variables and provides typed access to them.
"""

import os
import re
from pathlib import Path
from typing import List, Optional
from dotenv import load_dotenv

# Load environment variables
load_dotenv()


def _get_raw_env_value(var_name: str, env_file: str = ".env") -> Optional[str]:
    """
    Read variable value from .env file without processing escape sequences.

    Needed for Windows paths where backslashes (e.g., C:\\Users\\me\\songbridge)
    may be interpreted as escape sequences (\\U, \\n, etc.).

    Args:
        var_name: Environment variable name
        env_file: Path to .env file (default ".env")

    Returns:
        Raw variable value or None if not found
    """
    env_path = Path(env_file)
    if not env_path.exists():
        return None

    try:
        content = env_path.read_text(encoding="utf-8")

        # VAR="value" or VAR='value' or VAR=value
        pattern = rf'^{re.escape(var_name)}=(["\']?)(.+?)\1\s*$'

        for line in content.splitlines():
            line = line.strip()
            if line.startswith("#") or not line:
                continue

            match = re.match(pattern, line)
            if match:
                return match.group(2)
    except (OSError, UnicodeDecodeError):
        return None

    return None


def _get_float(var_name: str, default: str) -> Optional[float]:
    """Parse a float setting where "0", "none" and "" mean disabled."""
    raw = os.getenv(var_name, default).strip().lower()
    if raw in ("", "none", "null"):
        return None
    value = float(raw)
    return value if value > 0 else None


# ==================================================================================================
# Storage Settings
# ==================================================================================================

# Directory for the credential store and log files
# Read directly from .env to avoid escape sequence issues on Windows
_raw_data_dir = _get_raw_env_value("SONGBRIDGE_DATA_DIR") or os.getenv("SONGBRIDGE_DATA_DIR", "~/.songbridge")
DATA_DIR: Path = Path(_raw_data_dir).expanduser()

# Single JSON document holding all credential and client credential records.
# Other application settings may live in the same file; they are preserved on rewrite.
STORE_FILE: Path = Path(os.getenv("SONGBRIDGE_STORE_FILE", str(DATA_DIR / "config.json"))).expanduser()

# Fernet key for encrypting secrets at rest (optional).
# Generate one with:
#   python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
# Leave empty to store secrets in plain JSON (the file is only readable by the current user).
ENCRYPTION_KEY: str = os.getenv("ENCRYPTION_KEY", "")

# ==================================================================================================
# Logging Settings
# ==================================================================================================

# Log level for the application
# Available levels: TRACE, DEBUG, INFO, WARNING, ERROR, CRITICAL
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

# Directory for rotated log files
LOG_DIR: Path = Path(os.getenv("LOG_DIR", str(DATA_DIR / "logs"))).expanduser()

# Active log file name
LOG_FILE_NAME: str = os.getenv("LOG_FILE_NAME", "songbridge.log")

# Rotate the active log file once it exceeds this size (bytes). Default: 1 MB
LOG_MAX_BYTES: int = int(os.getenv("LOG_MAX_BYTES", str(1024 * 1024)))

# Number of rotated log files to keep (oldest are discarded)
LOG_BACKUP_COUNT: int = int(os.getenv("LOG_BACKUP_COUNT", "3"))

# Number of recent entries kept in memory for the log viewer
LOG_BUFFER_SIZE: int = int(os.getenv("LOG_BUFFER_SIZE", "1000"))

# ==================================================================================================
# HTTP Settings
# ==================================================================================================

# Timeout for every outbound provider request (seconds)
HTTP_TIMEOUT: float = float(os.getenv("HTTP_TIMEOUT", "30.0"))

# Maximum number of attempts for authenticated API calls
# Default: 3
MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))

# Base delay between attempts (seconds)
# Uses exponential backoff: delay * (2 ** attempt)
BASE_RETRY_DELAY: float = float(os.getenv("BASE_RETRY_DELAY", "1.0"))

# ==================================================================================================
# Spotify (music provider)
# ==================================================================================================

SPOTIFY_CALLBACK_PORT: int = int(os.getenv("SPOTIFY_CALLBACK_PORT", "8888"))
SPOTIFY_REDIRECT_URI: str = os.getenv(
    "SPOTIFY_REDIRECT_URI", f"http://127.0.0.1:{SPOTIFY_CALLBACK_PORT}/callback"
)
SPOTIFY_AUTHORIZE_URL: str = "https://accounts.spotify.com/authorize"
SPOTIFY_TOKEN_URL: str = os.getenv("SPOTIFY_TOKEN_URL", "https://accounts.spotify.com/api/token")
SPOTIFY_API_BASE: str = os.getenv("SPOTIFY_API_BASE", "https://api.spotify.com/v1")
SPOTIFY_SCOPES: List[str] = [
    "user-read-playback-state",
    "user-modify-playback-state",
    "user-read-currently-playing",
    "user-read-private",
]

# Close the Spotify callback listener if no redirect arrives in time (seconds).
# Set to 0 to wait indefinitely.
SPOTIFY_CALLBACK_TIMEOUT: Optional[float] = _get_float("SPOTIFY_CALLBACK_TIMEOUT", "300")

# ==================================================================================================
# Kick (chat provider)
# ==================================================================================================

KICK_CALLBACK_PORT: int = int(os.getenv("KICK_CALLBACK_PORT", "8889"))
KICK_REDIRECT_URI: str = os.getenv(
    "KICK_REDIRECT_URI", f"http://localhost:{KICK_CALLBACK_PORT}/callback"
)
KICK_AUTHORIZE_URL: str = "https://id.kick.com/oauth/authorize"
KICK_TOKEN_URL: str = os.getenv("KICK_TOKEN_URL", "https://id.kick.com/oauth/token")
KICK_API_BASE: str = os.getenv("KICK_API_BASE", "https://api.kick.com")
KICK_CHATROOM_URL_TEMPLATE: str = os.getenv(
    "KICK_CHATROOM_URL_TEMPLATE", "https://kick.com/api/v1/{slug}/chatroom"
)
KICK_SCOPES: List[str] = ["chat:write", "user:read", "channel:read"]

# Kick listener waits for the redirect until it arrives or the process exits.
# Set a positive value to close it after that many seconds.
KICK_CALLBACK_TIMEOUT: Optional[float] = _get_float("KICK_CALLBACK_TIMEOUT", "0")

# Chatroom lookup right after login is flaky on Kick's side, so it is retried
CHATROOM_LOOKUP_ATTEMPTS: int = int(os.getenv("CHATROOM_LOOKUP_ATTEMPTS", "3"))
CHATROOM_RETRY_DELAY: float = float(os.getenv("CHATROOM_RETRY_DELAY", "1.0"))

# ==================================================================================================
# Application Version
# ==================================================================================================

APP_VERSION: str = "1.0.0"
APP_TITLE: str = "SongBridge"
