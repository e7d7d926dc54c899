# -*- coding: utf-8 -*-

"""
Unit tests for network error classification system.
Tests classify_network_error(), format_error_for_user(), and get_short_error_message().
"""

import socket
import pytest

import httpx

from songbridge.network_errors import (
    ErrorCategory,
    NetworkErrorInfo,
    classify_network_error,
    format_error_for_user,
    get_short_error_message
)


class TestClassifyNetworkErrorDNS:
    """Tests for DNS resolution error classification."""

    def test_dns_error_with_socket_gaierror_windows(self):
        """
        What it does: Verifies DNS errors are classified correctly on Windows.
        Purpose: Ensure socket.gaierror with errno 11001 is detected as DNS_RESOLUTION.
        """
        print("Setup: Creating ConnectError with socket.gaierror (Windows errno 11001)...")
        dns_error = socket.gaierror(11001, "getaddrinfo failed")
        connect_error = httpx.ConnectError("All connection attempts failed")
        connect_error.__cause__ = dns_error

        print("Action: Classifying error...")
        error_info = classify_network_error(connect_error)

        print(f"Comparing category: Expected {ErrorCategory.DNS_RESOLUTION}, Got {error_info.category}")
        assert error_info.category == ErrorCategory.DNS_RESOLUTION
        assert "DNS resolution failed" in error_info.user_message
        assert error_info.is_retryable is True
        assert "11001" in error_info.technical_details

    def test_dns_error_from_message_only(self):
        """
        What it does: Verifies DNS detection without an exception cause.
        Purpose: Some transports only put the resolver text in the message.
        """
        connect_error = httpx.ConnectError("[Errno -2] Name or service not known")

        error_info = classify_network_error(connect_error)

        assert error_info.category == ErrorCategory.DNS_RESOLUTION


class TestClassifyNetworkErrorConnection:
    """Tests for connection-level error classification."""

    @pytest.mark.parametrize("message, category", [
        ("[Errno 111] Connection refused", ErrorCategory.CONNECTION_REFUSED),
        ("ECONNREFUSED", ErrorCategory.CONNECTION_REFUSED),
        ("Connection reset by peer", ErrorCategory.CONNECTION_RESET),
        ("ECONNRESET", ErrorCategory.CONNECTION_RESET),
        ("[Errno 101] Network is unreachable", ErrorCategory.NETWORK_UNREACHABLE),
        ("No route to host", ErrorCategory.NETWORK_UNREACHABLE),
    ])
    def test_connect_error_categories(self, message, category):
        """
        What it does: Classifies ConnectError messages.
        Purpose: Each OS-level failure maps to its own category.
        """
        print(f"Action: Classifying '{message}'...")
        error_info = classify_network_error(httpx.ConnectError(message))

        print(f"Comparing category: Expected {category}, Got {error_info.category}")
        assert error_info.category == category
        assert error_info.is_retryable is True

    def test_generic_connect_error_classified_as_unknown(self):
        error_info = classify_network_error(httpx.ConnectError("Something odd happened"))

        assert error_info.category == ErrorCategory.UNKNOWN
        assert "Connection failed" in error_info.user_message
        assert error_info.is_retryable is True


class TestClassifyNetworkErrorTimeout:
    """Tests for timeout error classification."""

    def test_connect_timeout_error(self):
        """
        What it does: Verifies ConnectTimeout classification.
        Purpose: Connection timeouts are distinguished from read timeouts.
        """
        error_info = classify_network_error(httpx.ConnectTimeout("Connection timed out"))

        assert error_info.category == ErrorCategory.TIMEOUT_CONNECT
        assert error_info.is_retryable is True

    def test_read_timeout_error(self):
        error_info = classify_network_error(httpx.ReadTimeout("Read timed out"))

        assert error_info.category == ErrorCategory.TIMEOUT_READ
        assert "Request timeout" in error_info.user_message

    def test_pool_timeout_is_treated_as_read_timeout(self):
        error_info = classify_network_error(httpx.PoolTimeout("Pool timed out"))

        assert error_info.category == ErrorCategory.TIMEOUT_READ


class TestClassifyNetworkErrorSSL:
    """Tests for SSL/TLS error classification."""

    @pytest.mark.parametrize("message", [
        "[SSL: WRONG_VERSION_NUMBER] wrong version number",
        "TLS handshake failed",
        "Certificate verify failed",
    ])
    def test_ssl_errors_are_not_retryable(self, message):
        """
        What it does: Classifies TLS failures.
        Purpose: Retrying a broken certificate chain cannot succeed.
        """
        error_info = classify_network_error(httpx.ConnectError(message))

        assert error_info.category == ErrorCategory.SSL_ERROR
        assert error_info.is_retryable is False


class TestClassifyNetworkErrorProxy:
    """Tests for proxy error classification."""

    def test_proxy_error_detection(self):
        error_info = classify_network_error(httpx.ProxyError("Proxy connection failed"))

        assert error_info.category == ErrorCategory.PROXY_ERROR
        assert any("PROXY" in step for step in error_info.troubleshooting_steps)


class TestClassifyNetworkErrorGeneric:
    """Tests for generic error classification."""

    def test_generic_request_error_classified_as_unknown(self):
        """
        What it does: Classifies an httpx error with no specific category.
        Purpose: Unknown transport errors are still retryable.
        """
        error_info = classify_network_error(httpx.RemoteProtocolError("Server disconnected"))

        assert error_info.category == ErrorCategory.UNKNOWN
        assert error_info.is_retryable is True

    def test_non_httpx_error_classified_as_unknown(self):
        """
        What it does: Classifies a non-httpx exception.
        Purpose: Programming errors are not retried.
        """
        error_info = classify_network_error(ValueError("Some random error"))

        assert error_info.category == ErrorCategory.UNKNOWN
        assert error_info.is_retryable is False
        assert "ValueError" in error_info.technical_details


class TestFormatErrorForUser:
    """Tests for format_error_for_user."""

    def test_includes_numbered_troubleshooting(self):
        """
        What it does: Formats an error with troubleshooting steps.
        Purpose: The log view shows actionable steps.
        """
        error_info = classify_network_error(httpx.ConnectError("Connection refused"))

        text = format_error_for_user(error_info)

        print(f"Formatted: {text}")
        assert text.startswith("Connection refused")
        assert "Troubleshooting steps:" in text
        assert "1. " in text

    def test_without_troubleshooting(self):
        error_info = classify_network_error(httpx.ConnectError("Connection refused"))

        text = format_error_for_user(error_info, include_troubleshooting=False)

        assert text == error_info.user_message


class TestGetShortErrorMessage:
    """Tests for get_short_error_message."""

    def test_short_message_is_single_line(self):
        error_info = classify_network_error(httpx.ConnectTimeout("timed out"))

        message = get_short_error_message(error_info)

        assert message == error_info.user_message
        assert "\n" not in message


class TestNetworkErrorInfoDataclass:
    """Tests for the NetworkErrorInfo dataclass."""

    def test_network_error_info_creation(self):
        info = NetworkErrorInfo(
            category=ErrorCategory.CONNECTION_RESET,
            user_message="Connection reset",
            troubleshooting_steps=["Try again"],
            technical_details="ConnectError: reset",
            is_retryable=True,
        )

        assert info.category.value == "connection_reset"
        assert info.troubleshooting_steps == ["Try again"]
