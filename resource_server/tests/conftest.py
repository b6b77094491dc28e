"""
Pytest configuration for resource_server. Same environment as the auth_server tests so the
end-to-end flow can drive both apps in one process.
"""
import os

os.environ["AUTH_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["BACKOFFICE_CLIENT_ID"] = "docket-manager"
os.environ["BACKOFFICE_API_SECRET"] = "test-secret"
os.environ["BACKOFFICE_BACKEND_URL"] = "https://host/"
os.environ.pop("OAUTH_SIGNING_KEY_PATH", None)
os.environ.pop("OAUTH_API_AUDIENCE", None)

import time
from unittest.mock import patch

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric.rsa import generate_private_key
from fastapi.testclient import TestClient
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError

from resource_server import auth as auth_module
from resource_server.config import ISSUER
from resource_server.main import app


def _int_to_b64url(value: int) -> str:
    """Encode a positive int as base64url (JWK n/e)."""
    length = (value.bit_length() + 7) // 8
    s = jwt.utils.base64url_encode(value.to_bytes(length, "big"))
    return s.decode("utf-8") if isinstance(s, bytes) else s


class SigningKey:
    """Test RSA key with its JWKS and a helper to mint access tokens."""

    def __init__(self, kid: str = "test-key"):
        self.kid = kid
        self.private_key = generate_private_key(65537, 2048)
        pub = self.private_key.public_key().public_numbers()
        self.jwks = {
            "keys": [{"kty": "RSA", "kid": kid, "alg": "RS256", "use": "sig", "n": _int_to_b64url(pub.n), "e": _int_to_b64url(pub.e)}]
        }

    def token(self, sub="818727", scope="openid docket-manager", *, iss=ISSUER, aud=None, expires_in=3600, **claims):
        now = int(time.time())
        payload = {"iss": iss, "iat": now, "nbf": now, "exp": now + expires_in, "scope": scope, **claims}
        if sub is not None:
            payload["sub"] = sub
        if aud is not None:
            payload["aud"] = aud
        return jwt.encode(payload, self.private_key, algorithm="RS256", headers={"kid": self.kid})


@pytest.fixture(scope="session")
def signing_key():
    return SigningKey()


@pytest.fixture(scope="session")
def foreign_key():
    """Different key pair advertising the same kid."""
    return SigningKey()


@pytest.fixture
def serve_jwks(monkeypatch):
    """Call with a JWKS dict; every PyJWKClient then receives that set instead of fetching it."""
    monkeypatch.setattr(auth_module, "_validator", None)
    patches = []

    def _serve(jwks: dict):
        p = patch.object(PyJWKClient, "fetch_data", return_value=jwks)
        p.start()
        patches.append(p)

    yield _serve
    for p in reversed(patches):
        p.stop()


@pytest.fixture
def jwks_unreachable(monkeypatch):
    """The authority's JWKS endpoint cannot be reached."""
    monkeypatch.setattr(auth_module, "_validator", None)
    with patch.object(PyJWKClient, "fetch_data", side_effect=PyJWKClientConnectionError("Fail to fetch data from the url")):
        yield


@pytest.fixture
def client():
    return TestClient(app)
