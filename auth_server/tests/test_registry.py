"""
Tests for the static client/scope/user registries.
"""
from auth_server.passwords import hash_password
from auth_server.registry import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_CLIENT_CREDENTIALS,
    SCOPE_OFFLINE_ACCESS,
    Client,
    ClientRegistry,
    get_client_registry,
    get_resource_registry,
    get_user_store,
)


def test_lookup_backoffice_client():
    client = get_client_registry().lookup("docket-manager")
    assert client is not None
    assert client.allowed_grant_types == {GRANT_AUTHORIZATION_CODE, GRANT_CLIENT_CREDENTIALS}
    assert client.require_pkce is True
    assert client.require_consent is False
    assert client.allow_offline_access is True
    assert client.always_include_user_claims_in_id_token is True
    assert client.redirect_uris == {"https://host/signin-docket-manager"}
    assert client.post_logout_redirect_uris == {"https://host/signout-docket-manager"}
    assert {"openid", "profile", "email", "address", "roles", "docket-manager"} == client.allowed_scopes


def test_lookup_unknown_client_returns_none():
    registry = get_client_registry()
    assert registry.lookup("nope") is None
    assert registry.lookup("") is None
    assert registry.lookup(None) is None


def test_client_secret_is_hashed_not_plaintext():
    client = get_client_registry().lookup("docket-manager")
    assert client.is_confidential
    assert "test-secret" not in client.secret_hashes
    assert client.verify_secret("test-secret")
    assert not client.verify_secret("wrong-secret")
    assert not client.verify_secret(None)


def test_redirect_uri_exact_match_only():
    client = get_client_registry().lookup("docket-manager")
    assert client.redirect_uri_allowed("https://host/signin-docket-manager")
    assert not client.redirect_uri_allowed("https://host/signin-docket-manager/")
    assert not client.redirect_uri_allowed("https://host/signin-docket-manager?x=1")
    assert not client.redirect_uri_allowed("HTTPS://HOST/signin-docket-manager")
    assert not client.redirect_uri_allowed("https://host/")


def test_offline_access_follows_client_flag():
    online = Client(
        client_id="c",
        allowed_grant_types=frozenset({GRANT_AUTHORIZATION_CODE}),
        allowed_scopes=frozenset({"openid"}),
    )
    assert not online.scope_allowed(SCOPE_OFFLINE_ACCESS)
    assert get_client_registry().lookup("docket-manager").scope_allowed(SCOPE_OFFLINE_ACCESS)


def test_public_client_has_no_secret():
    registry = ClientRegistry(
        [
            Client(
                client_id="spa",
                allowed_grant_types=frozenset({GRANT_AUTHORIZATION_CODE}),
                allowed_scopes=frozenset({"openid"}),
            ),
            Client(
                client_id="svc",
                allowed_grant_types=frozenset({GRANT_CLIENT_CREDENTIALS}),
                allowed_scopes=frozenset({"docket-manager"}),
                secret_hashes=(hash_password("s1"), hash_password("s2")),
            ),
        ]
    )
    assert not registry.lookup("spa").is_confidential
    svc = registry.lookup("svc")
    assert svc.verify_secret("s1") and svc.verify_secret("s2")
    assert len(registry) == 2


def test_resource_registry_scopes():
    resources = get_resource_registry()
    assert resources.scope_exists("openid")
    assert resources.scope_exists("roles")
    assert resources.scope_exists("docket-manager")
    assert resources.scope_exists(SCOPE_OFFLINE_ACCESS)
    assert not resources.scope_exists("api.admin")
    assert [r.name for r in resources.identity_resources_for(["roles", "openid", "docket-manager"])] == [
        "openid",
        "roles",
    ]
    assert [s.name for s in resources.api_scopes_for(["openid", "docket-manager"])] == ["docket-manager"]
    assert resources.identity_resources["roles"].user_claims == {"role"}


def test_user_store_credentials():
    users = get_user_store()
    alice = users.validate_credentials("alice", "alice")
    assert alice is not None
    assert alice.subject_id == "818727"
    assert users.validate_credentials("alice", "bob") is None
    assert users.validate_credentials("mallory", "x") is None
    assert users.find_by_subject("88421113").username == "bob"
    assert alice.claim_values("role") == ["admin", "user"]
