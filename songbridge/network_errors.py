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
Classification of httpx transport failures.

Token exchanges, identity lookups and API calls all talk to provider
endpoints over the internet. When the request never produces an HTTP
response, the exception is classified here so the user sees a short
actionable message instead of a raw traceback.
"""

import socket
from dataclasses import dataclass
from enum import Enum
from typing import List

import httpx


class ErrorCategory(str, Enum):
    """Categories of transport failures."""
    DNS_RESOLUTION = "dns_resolution"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    NETWORK_UNREACHABLE = "network_unreachable"
    TIMEOUT_CONNECT = "timeout_connect"
    TIMEOUT_READ = "timeout_read"
    SSL_ERROR = "ssl_error"
    PROXY_ERROR = "proxy_error"
    UNKNOWN = "unknown"


@dataclass
class NetworkErrorInfo:
    """
    Structured information about a transport failure.

    Attributes:
        category: Error category
        user_message: Short message suitable for a toast
        troubleshooting_steps: Things the user can try
        technical_details: Exception type and text, for the log
        is_retryable: Whether retrying might succeed
    """
    category: ErrorCategory
    user_message: str
    troubleshooting_steps: List[str]
    technical_details: str
    is_retryable: bool


def classify_network_error(error: Exception) -> NetworkErrorInfo:
    """
    Classifies a transport error.

    Args:
        error: Exception raised by httpx (usually httpx.RequestError)

    Returns:
        NetworkErrorInfo with the category and user-facing text

    Example:
        >>> try:
        ...     await client.post(token_url, data=form)
        ... except httpx.RequestError as e:
        ...     info = classify_network_error(e)
        ...     logger.error(f"[{info.category}] {info.user_message}")
    """
    technical_details = f"{type(error).__name__}: {error}"

    if isinstance(error, httpx.ConnectTimeout):
        return NetworkErrorInfo(
            category=ErrorCategory.TIMEOUT_CONNECT,
            user_message="Connection timeout - the provider did not answer the connection attempt.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if isinstance(error, httpx.TimeoutException):
        return NetworkErrorInfo(
            category=ErrorCategory.TIMEOUT_READ,
            user_message="Request timeout - the provider stopped responding.",
            troubleshooting_steps=[
                "The provider may be under heavy load",
                "Try again in a few moments",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if isinstance(error, httpx.ProxyError):
        return NetworkErrorInfo(
            category=ErrorCategory.PROXY_ERROR,
            user_message="Proxy connection failed - cannot reach the provider through the configured proxy.",
            troubleshooting_steps=[
                "Check HTTP_PROXY / HTTPS_PROXY environment variables",
                "Try disabling the proxy temporarily",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if isinstance(error, httpx.ConnectError):
        return _classify_connect_error(error, technical_details)

    if isinstance(error, httpx.RequestError):
        return NetworkErrorInfo(
            category=ErrorCategory.UNKNOWN,
            user_message="Network request failed due to an unexpected error.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Check the log for details",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.UNKNOWN,
        user_message="An unexpected error occurred.",
        troubleshooting_steps=["Check the log for details"],
        technical_details=technical_details,
        is_retryable=False,
    )


def _classify_connect_error(error: httpx.ConnectError, technical_details: str) -> NetworkErrorInfo:
    """Splits httpx.ConnectError into DNS, refused, reset, unreachable and TLS failures."""
    error_str = str(error)
    cause = error.__cause__

    if isinstance(cause, socket.gaierror) or "Name or service not known" in error_str or "getaddrinfo" in error_str:
        errno = getattr(cause, "errno", None)
        return NetworkErrorInfo(
            category=ErrorCategory.DNS_RESOLUTION,
            user_message="DNS resolution failed - cannot resolve the provider's domain name.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Temporarily disable VPN if you're using one",
            ],
            technical_details=f"{technical_details} (errno: {errno})",
            is_retryable=True,
        )

    if "Connection refused" in error_str or "ECONNREFUSED" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_REFUSED,
            user_message="Connection refused - the provider is not accepting connections.",
            troubleshooting_steps=["The service may be temporarily down, try again later"],
            technical_details=technical_details,
            is_retryable=True,
        )

    if "Connection reset" in error_str or "ECONNRESET" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_RESET,
            user_message="Connection reset - the provider closed the connection unexpectedly.",
            troubleshooting_steps=["Try again in a few moments"],
            technical_details=technical_details,
            is_retryable=True,
        )

    if "Network is unreachable" in error_str or "No route to host" in error_str or "ENETUNREACH" in error_str:
        return NetworkErrorInfo(
            category=ErrorCategory.NETWORK_UNREACHABLE,
            user_message="Network unreachable - you appear to be offline.",
            troubleshooting_steps=[
                "Check your internet connection",
                "Try disabling VPN temporarily",
            ],
            technical_details=technical_details,
            is_retryable=True,
        )

    if "SSL" in error_str or "TLS" in error_str or "certificate" in error_str.lower():
        return NetworkErrorInfo(
            category=ErrorCategory.SSL_ERROR,
            user_message="SSL/TLS error - a secure connection to the provider could not be established.",
            troubleshooting_steps=[
                "Check the system date and time",
                "Check if antivirus software is intercepting HTTPS traffic",
            ],
            technical_details=technical_details,
            is_retryable=False,
        )

    return NetworkErrorInfo(
        category=ErrorCategory.UNKNOWN,
        user_message="Connection failed - unable to reach the provider.",
        troubleshooting_steps=["Check your internet connection"],
        technical_details=technical_details,
        is_retryable=True,
    )


def format_error_for_user(error_info: NetworkErrorInfo, include_troubleshooting: bool = True) -> str:
    """
    Formats a classified error as multi-line text for the UI.

    Example:
        >>> format_error_for_user(classify_network_error(e))
        'Connection refused - ...\\n\\nTroubleshooting steps:\\n1. ...'
    """
    message = error_info.user_message
    if include_troubleshooting and error_info.troubleshooting_steps:
        message += "\n\nTroubleshooting steps:\n"
        for i, step in enumerate(error_info.troubleshooting_steps, 1):
            message += f"{i}. {step}\n"
    return message.strip()


def get_short_error_message(error_info: NetworkErrorInfo) -> str:
    """Returns a single-line message for logs and toasts."""
    return error_info.user_message
