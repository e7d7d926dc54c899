# -*- coding: utf-8 -*-

"""
Unit tests for PKCE verifier and challenge generation.
"""

import base64
import hashlib

import pytest

from songbridge.pkce import (
    MAX_VERIFIER_LENGTH,
    MIN_VERIFIER_LENGTH,
    VERIFIER_ALPHABET,
    derive_challenge,
    generate_pkce_pair,
    generate_verifier,
)


class TestGenerateVerifier:
    """Tests for generate_verifier."""

    def test_default_length_is_128(self):
        """
        What it does: Verifies the default verifier length.
        Purpose: Ensure the longest allowed verifier is used by default.
        """
        print("Action: Generating verifier...")
        verifier = generate_verifier()

        print(f"Verification: length={len(verifier)}...")
        assert len(verifier) == 128

    def test_uses_only_unreserved_characters(self):
        """
        What it does: Verifies the verifier character set.
        Purpose: Ensure providers accept the verifier (RFC 7636 unreserved chars only).
        """
        print("Action: Generating verifiers...")
        for _ in range(20):
            verifier = generate_verifier()
            assert set(verifier) <= set(VERIFIER_ALPHABET)

    def test_verifiers_are_unique(self):
        """
        What it does: Verifies that consecutive verifiers differ.
        Purpose: Ensure the verifier is random per attempt.
        """
        print("Action: Generating 50 verifiers...")
        verifiers = {generate_verifier() for _ in range(50)}

        print("Verification: All unique...")
        assert len(verifiers) == 50

    @pytest.mark.parametrize("length", [MIN_VERIFIER_LENGTH, 64, MAX_VERIFIER_LENGTH])
    def test_accepts_allowed_lengths(self, length):
        """
        What it does: Verifies custom lengths inside the allowed range.
        Purpose: Ensure boundaries 43 and 128 are accepted.
        """
        assert len(generate_verifier(length)) == length

    @pytest.mark.parametrize("length", [0, MIN_VERIFIER_LENGTH - 1, MAX_VERIFIER_LENGTH + 1])
    def test_rejects_lengths_outside_range(self, length):
        """
        What it does: Verifies out-of-range lengths raise ValueError.
        Purpose: Ensure invalid verifiers are never produced.
        """
        with pytest.raises(ValueError):
            generate_verifier(length)


class TestDeriveChallenge:
    """Tests for derive_challenge."""

    def test_challenge_is_deterministic(self):
        """
        What it does: Calls derive_challenge twice with the same verifier.
        Purpose: The token endpoint recomputes the challenge, so it must match.
        """
        print("Setup: Generating verifier...")
        verifier = generate_verifier()

        print("Action: Deriving challenge twice...")
        first = derive_challenge(verifier)
        second = derive_challenge(verifier)

        print("Verification: Same output...")
        assert first == second

    def test_matches_rfc7636_example(self):
        """
        What it does: Checks the RFC 7636 appendix B example.
        Purpose: Ensure S256 is SHA-256 + base64url without padding.
        """
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"

        assert derive_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGEl3ZP-cM"

    def test_challenge_has_no_padding(self):
        """
        What it does: Verifies there is no '=' padding and no '+' or '/'.
        Purpose: Ensure base64url encoding.
        """
        challenge = derive_challenge(generate_verifier())

        assert "=" not in challenge
        assert "+" not in challenge
        assert "/" not in challenge
        assert len(challenge) == 43

    def test_matches_manual_computation(self):
        """
        What it does: Compares with a direct hashlib/base64 computation.
        Purpose: Guard against encoding the hex digest instead of the raw digest.
        """
        verifier = generate_verifier(50)
        expected = base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest()).decode().rstrip("=")

        assert derive_challenge(verifier) == expected


class TestGeneratePkcePair:
    """Tests for generate_pkce_pair."""

    def test_pair_is_consistent(self):
        """
        What it does: Verifies the pair's challenge derives from its verifier.
        Purpose: Ensure the convenience function does not mix up values.
        """
        verifier, challenge = generate_pkce_pair()

        assert derive_challenge(verifier) == challenge
