"""PKCE (Proof Key for Code Exchange) utilities.

Implements RFC 7636 S256 verification for the token endpoint. Plain
challenges are never accepted.
"""

from __future__ import annotations

import base64
import hashlib
import secrets

S256 = "S256"


def generate_pkce_pair() -> tuple[str, str]:
    """Generate a PKCE code_verifier and code_challenge pair.

    Returns:
        tuple[str, str]: (code_verifier, code_challenge)
    """
    code_verifier = secrets.token_urlsafe(32)
    return code_verifier, compute_challenge(code_verifier)


def compute_challenge(code_verifier: str) -> str:
    """Compute BASE64URL(SHA256(code_verifier)) without padding."""
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return base64.urlsafe_b64encode(digest).decode("ascii").rstrip("=")


def verify_pkce(code_verifier: str, code_challenge: str) -> bool:
    """Verify a PKCE code_verifier against the stored code_challenge.

    Args:
        code_verifier: The verifier submitted at the token endpoint
        code_challenge: The challenge recorded when the code was issued

    Returns:
        bool: True if the verifier matches the challenge
    """
    try:
        expected_challenge = compute_challenge(code_verifier)
    except UnicodeEncodeError:
        return False

    # Use constant-time comparison to prevent timing attacks
    return secrets.compare_digest(expected_challenge.encode("ascii"), code_challenge.encode("utf-8"))
