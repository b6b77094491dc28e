"""
PKCE (RFC 7636): challenge computation and verifier check.
"""
import hashlib
import hmac
import re
import secrets
from base64 import urlsafe_b64encode

METHOD_S256 = "S256"
METHOD_PLAIN = "plain"
SUPPORTED_METHODS = (METHOD_S256, METHOD_PLAIN)

# RFC 7636 §4.1: 43-128 unreserved characters
_VERIFIER_RE = re.compile(r"[A-Za-z0-9\-._~]{43,128}")


def compute_challenge(code_verifier: str, method: str = METHOD_S256) -> str:
    if method == METHOD_PLAIN:
        return code_verifier
    if method != METHOD_S256:
        raise ValueError(f"unsupported code_challenge_method: {method}")
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    return urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def is_valid_verifier(code_verifier: str | None) -> bool:
    return bool(code_verifier) and _VERIFIER_RE.fullmatch(code_verifier) is not None


def verify(code_verifier: str | None, code_challenge: str | None, method: str | None) -> bool:
    """True if the verifier hashes (per method) to the stored challenge."""
    if not code_challenge or not is_valid_verifier(code_verifier):
        return False
    if method not in SUPPORTED_METHODS:
        return False
    computed = compute_challenge(code_verifier, method)
    return hmac.compare_digest(computed.encode("utf-8"), code_challenge.encode("utf-8"))


def generate_pkce() -> tuple[str, str]:
    """
    Generate code_verifier and S256 code_challenge.
    Returns (code_verifier, code_challenge). Verifier is 43 chars (256 bits entropy).
    """
    code_verifier = secrets.token_urlsafe(32)
    return code_verifier, compute_challenge(code_verifier, METHOD_S256)
