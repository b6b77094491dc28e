"""
Tests for the token issuer and claim selection.
"""
import jwt
import pytest

from auth_server.config import API_AUDIENCE, ISSUER
from auth_server.keys import get_jwks, get_kid, get_public_key
from auth_server.registry import (
    GRANT_AUTHORIZATION_CODE,
    Client,
    get_client_registry,
    get_resource_registry,
    get_user_store,
)
from auth_server.tokens import TokenIssuer, select_user_claims


@pytest.fixture
def issuer():
    return TokenIssuer(get_resource_registry(), access_token_lifetime=3600, id_token_lifetime=300)


@pytest.fixture
def backoffice():
    return get_client_registry().lookup("docket-manager")


@pytest.fixture
def alice():
    return get_user_store().find_by_username("alice")


def _decode(token: str, audience: str) -> dict:
    return jwt.decode(token, get_public_key(), algorithms=["RS256"], audience=audience, issuer=ISSUER)


def test_select_user_claims_by_granted_resources(alice):
    resources = get_resource_registry()
    scopes = ["openid", "email", "roles"]
    claims = select_user_claims(alice, scopes, resources.identity_resources_for(scopes))
    assert claims == {
        "email": "AliceSmith@email.com",
        "email_verified": True,
        "role": ["admin", "user"],
    }


def test_select_user_claims_profile_and_address(alice):
    resources = get_resource_registry()
    scopes = ["profile", "address"]
    claims = select_user_claims(alice, scopes, resources.identity_resources_for(scopes))
    assert claims["name"] == "Alice Smith"
    assert claims["given_name"] == "Alice"
    assert claims["website"] == "http://alice.com"
    assert claims["address"]["locality"] == "Heidelberg"
    assert "email" not in claims
    assert "role" not in claims


def test_select_user_claims_nothing_for_api_scope(alice):
    resources = get_resource_registry()
    assert select_user_claims(alice, ["docket-manager"], resources.identity_resources_for(["docket-manager"])) == {}


def test_access_token_claims(issuer, backoffice, alice):
    issued = issuer.issue_access_token(alice.subject_id, backoffice, ["openid", "docket-manager"], user=alice)
    header = jwt.get_unverified_header(issued.token)
    assert header["kid"] == get_kid()
    assert header["alg"] == "RS256"
    payload = _decode(issued.token, API_AUDIENCE)
    assert payload["sub"] == "818727"
    assert payload["client_id"] == "docket-manager"
    assert payload["scope"] == "docket-manager openid"
    assert payload["exp"] - payload["iat"] == 3600
    assert payload["nbf"] == payload["iat"]
    assert "jti" in payload
    assert "role" not in payload
    assert issued.expires_in == 3600


def test_access_token_includes_roles_when_granted(issuer, backoffice, alice):
    issued = issuer.issue_access_token(alice.subject_id, backoffice, ["roles", "docket-manager"], user=alice)
    assert _decode(issued.token, API_AUDIENCE)["role"] == ["admin", "user"]


def test_client_credentials_access_token_has_no_subject(issuer, backoffice):
    issued = issuer.issue_access_token(None, backoffice, ["docket-manager"])
    payload = _decode(issued.token, API_AUDIENCE)
    assert "sub" not in payload
    assert payload["client_id"] == "docket-manager"


def test_identity_token_always_includes_user_claims(issuer, backoffice, alice):
    issued = issuer.issue_identity_token(
        alice.subject_id, backoffice, ["openid", "profile", "email"], alice, nonce="n-123"
    )
    payload = _decode(issued.token, "docket-manager")
    assert payload["sub"] == "818727"
    assert payload["iss"] == ISSUER
    assert payload["nonce"] == "n-123"
    assert payload["name"] == "Alice Smith"
    assert payload["email"] == "AliceSmith@email.com"
    assert "auth_time" in payload
    assert payload["exp"] - payload["iat"] == 300


def test_identity_token_without_always_include_has_only_protocol_claims(issuer, alice):
    client = Client(
        client_id="minimal",
        allowed_grant_types=frozenset({GRANT_AUTHORIZATION_CODE}),
        allowed_scopes=frozenset({"openid", "profile"}),
        always_include_user_claims_in_id_token=False,
    )
    issued = issuer.issue_identity_token(alice.subject_id, client, ["openid", "profile"], alice)
    payload = _decode(issued.token, "minimal")
    assert "name" not in payload
    assert "nonce" not in payload
    assert set(payload) == {"iss", "sub", "aud", "iat", "nbf", "exp", "auth_time"}


def test_identity_token_requires_openid(issuer, backoffice, alice):
    with pytest.raises(ValueError):
        issuer.issue_identity_token(alice.subject_id, backoffice, ["profile"], alice)


def test_jwks_exposes_public_key_only():
    jwks = get_jwks()
    assert len(jwks["keys"]) == 1
    key = jwks["keys"][0]
    assert key["kid"] == get_kid()
    assert key["kty"] == "RSA"
    assert set(key) == {"kty", "kid", "alg", "use", "n", "e"}
