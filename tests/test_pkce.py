"""Tests for PKCE generation."""

import base64
import hashlib
import re

from auth.pkce import PKCEChallenge, challenge_for


class TestPKCEChallenge:

    def test_verifier_is_43_chars_of_base64url(self):
        """32 random bytes encode to 43 unpadded base64url characters."""
        pkce = PKCEChallenge.generate()
        assert len(pkce.verifier) == 43
        assert re.fullmatch(r"[A-Za-z0-9_-]+", pkce.verifier)

    def test_challenge_is_sha256_of_verifier(self):
        pkce = PKCEChallenge.generate()
        digest = hashlib.sha256(pkce.verifier.encode("ascii")).digest()
        expected = base64.urlsafe_b64encode(digest).decode().rstrip("=")
        assert pkce.challenge == expected

    def test_rfc7636_example(self):
        """Challenge should match the worked example from RFC 7636 appendix B."""
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert challenge_for(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_each_attempt_is_fresh(self):
        assert PKCEChallenge.generate().verifier != PKCEChallenge.generate().verifier
