"""
Back-office flow across both apps: login and consent-free code issue at the identity provider,
code exchange with PKCE, then the product API with the issued access token.
"""
from urllib.parse import parse_qs, urlparse

import pytest
from fastapi.testclient import TestClient

from auth_server.database import init_db
from auth_server.keys import get_jwks
from auth_server.main import app as auth_app
from auth_server.pkce import generate_pkce
from auth_server.registry import get_client_registry, get_resource_registry
from auth_server.tokens import TokenIssuer
from resource_server.products import list_products

CLIENT_ID = "docket-manager"
CLIENT_SECRET = "test-secret"
REDIRECT_URI = "https://host/signin-docket-manager"


@pytest.fixture
def idp():
    init_db()
    return TestClient(auth_app)


@pytest.fixture
def api(client, serve_jwks):
    serve_jwks(get_jwks())
    return client


def _login_and_redeem(idp) -> dict:
    verifier, challenge = generate_pkce()
    params = {
        "response_type": "code",
        "client_id": CLIENT_ID,
        "redirect_uri": REDIRECT_URI,
        "scope": "openid profile docket-manager",
        "state": "e2e",
        "code_challenge": challenge,
        "code_challenge_method": "S256",
    }
    login_page = idp.get("/authorize", params=params, follow_redirects=False)
    assert login_page.status_code == 200

    redirect = idp.post(
        "/authorize", data={**params, "username": "bob", "password": "bob"}, follow_redirects=False
    )
    assert redirect.status_code == 302
    query = parse_qs(urlparse(redirect.headers["location"]).query)
    assert query["state"] == ["e2e"]

    response = idp.post(
        "/token",
        data={
            "grant_type": "authorization_code",
            "code": query["code"][0],
            "redirect_uri": REDIRECT_URI,
            "code_verifier": verifier,
        },
        auth=(CLIENT_ID, CLIENT_SECRET),
    )
    assert response.status_code == 200
    return response.json()


def test_backoffice_flow_reaches_products(idp, api):
    tokens = _login_and_redeem(idp)
    response = api.get("/api/products", headers={"Authorization": f"Bearer {tokens['access_token']}"})
    assert response.status_code == 200
    assert response.json() == list_products()


def test_client_credentials_token_reaches_products(idp, api):
    token = idp.post(
        "/token", data={"grant_type": "client_credentials"}, auth=(CLIENT_ID, CLIENT_SECRET)
    ).json()["access_token"]
    assert api.get("/api/products", headers={"Authorization": f"Bearer {token}"}).status_code == 200


def test_products_without_token_after_login(idp, api):
    _login_and_redeem(idp)
    assert api.get("/api/products").status_code == 401


def test_expired_provider_token_rejected(api):
    client = get_client_registry().lookup(CLIENT_ID)
    expired = TokenIssuer(get_resource_registry(), access_token_lifetime=-60).issue_access_token(
        "88421113", client, ["docket-manager"]
    )
    response = api.get("/api/products", headers={"Authorization": f"Bearer {expired.token}"})
    assert response.status_code == 401


def test_identity_token_not_accepted_as_access_token(idp, api):
    tokens = _login_and_redeem(idp)
    response = api.get("/api/products", headers={"Authorization": f"Bearer {tokens['id_token']}"})
    assert response.status_code == 401
