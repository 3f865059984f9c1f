"""Tests for PKCE utilities and credential generation."""

from oauth.credentials import (
    generate_authorization_code,
    generate_bearer_token,
    generate_client_id,
    token_preview,
)
from oauth.pkce import compute_challenge, generate_pkce_pair, verify_pkce


class TestPKCE:
    """Tests for PKCE utilities."""

    def test_compute_challenge_rfc7636_vector(self):
        # RFC 7636 Appendix B
        verifier = "dBjftJeZ4CVP-mB92K27uhbUJU1p1r_wW1gFWFOEjXk"
        assert compute_challenge(verifier) == "E9Melhoa2OwvFrEMTJguCHaoeK1t8URWbuGJSstw-cM"

    def test_generated_pair_verifies(self):
        verifier, challenge = generate_pkce_pair()
        assert len(verifier) == 43
        assert len(challenge) == 43
        assert verify_pkce(verifier, challenge) is True

    def test_wrong_verifier_fails(self):
        verifier, challenge = generate_pkce_pair()
        assert verify_pkce("wrong_verifier", challenge) is False
        assert verify_pkce(verifier + "x", challenge) is False

    def test_plain_challenge_is_not_accepted(self):
        # A "plain" challenge equal to the verifier must not verify
        verifier, _ = generate_pkce_pair()
        assert verify_pkce(verifier, verifier) is False

    def test_non_ascii_verifier_fails(self):
        _, challenge = generate_pkce_pair()
        assert verify_pkce("vérifier", challenge) is False


class TestCredentials:
    def test_prefixes_and_lengths(self):
        assert generate_bearer_token().startswith("agdrug_")
        assert len(generate_bearer_token()) == len("agdrug_") + 64
        assert generate_authorization_code().startswith("authcode_")
        assert generate_client_id().startswith("client_")
        assert len(generate_client_id()) == len("client_") + 32

    def test_tokens_are_unique(self):
        tokens = {generate_bearer_token() for _ in range(50)}
        assert len(tokens) == 50

    def test_token_preview_truncates(self):
        token = generate_bearer_token()
        assert token_preview(token) == token[:12] + "..."
        assert token_preview("") == "None"
