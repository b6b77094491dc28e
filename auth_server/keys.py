"""
Process-wide RSA signing key (developer signing credential).
Loaded from OAUTH_SIGNING_KEY_PATH when set, otherwise generated once per process.
Only the public half leaves this module (JWKS, in-process verification).
"""
import base64
import hashlib
import json
import logging
import threading
from pathlib import Path

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPrivateKey, generate_private_key

logger = logging.getLogger(__name__)

_KEY_BITS = 2048
ALGORITHM = "RS256"


def _generate_key() -> RSAPrivateKey:
    return generate_private_key(public_exponent=65537, key_size=_KEY_BITS)


def _deserialize_private(pem: bytes) -> RSAPrivateKey:
    key = serialization.load_pem_private_key(pem, password=None)
    if not isinstance(key, RSAPrivateKey):
        raise ValueError("signing key must be RSA")
    return key


def load_or_create_signing_key(path: str | None) -> RSAPrivateKey:
    """Load RSA private key from path; generate an in-memory key if unset or unusable."""
    if path:
        p = Path(path)
        if p.exists():
            try:
                key = _deserialize_private(p.read_bytes())
                logger.info("Loaded signing key from %s", path)
                return key
            except ValueError as e:
                logger.warning("Failed to load signing key from %s: %s; generating new key", path, e)
        else:
            logger.warning("Signing key file %s not found; generating new key", path)
    logger.info("Using generated developer signing key (valid for this process only)")
    return _generate_key()


def _b64url_uint(value: int) -> str:
    raw = value.to_bytes((value.bit_length() + 7) // 8, "big")
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def compute_kid(public_key) -> str:
    """RFC 7638 JWK thumbprint (SHA-256, base64url)."""
    numbers = public_key.public_numbers()
    canonical = json.dumps(
        {"e": _b64url_uint(numbers.e), "kty": "RSA", "n": _b64url_uint(numbers.n)},
        separators=(",", ":"),
        sort_keys=True,
    )
    digest = hashlib.sha256(canonical.encode("utf-8")).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def public_key_to_jwk(public_key, kid: str) -> dict:
    numbers = public_key.public_numbers()
    return {
        "kty": "RSA",
        "kid": kid,
        "alg": ALGORITHM,
        "use": "sig",
        "n": _b64url_uint(numbers.n),
        "e": _b64url_uint(numbers.e),
    }


# Module-level state (set at app startup, immutable afterwards)
_private_key: RSAPrivateKey | None = None
_kid: str | None = None
_lock = threading.Lock()


def _ensure_key_loaded() -> None:
    global _private_key, _kid
    if _private_key is not None:
        return
    with _lock:
        if _private_key is not None:
            return
        from auth_server.config import SIGNING_KEY_PATH

        key = load_or_create_signing_key(SIGNING_KEY_PATH)
        _kid = compute_kid(key.public_key())
        _private_key = key


def get_signing_key() -> tuple[RSAPrivateKey, str]:
    """Private key and kid for signing. Only the token issuer calls this."""
    _ensure_key_loaded()
    return _private_key, _kid


def get_public_key():
    _ensure_key_loaded()
    return _private_key.public_key()


def get_kid() -> str:
    _ensure_key_loaded()
    return _kid


def get_jwks() -> dict:
    _ensure_key_loaded()
    return {"keys": [public_key_to_jwk(_private_key.public_key(), _kid)]}
