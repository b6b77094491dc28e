"""
Static identity configuration: identity resources, the docket-manager API scope,
the back-office client (from env) and test users. No hardcoded client secret.
"""
import json
import logging
import secrets

from auth_server import config
from auth_server.passwords import hash_password
from auth_server.registry import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_CLIENT_CREDENTIALS,
    SCOPE_OPENID,
    ApiScope,
    Client,
    IdentityResource,
    User,
)

logger = logging.getLogger(__name__)


def identity_resources() -> list[IdentityResource]:
    """Standard OIDC identity resources plus "roles"."""
    return [
        IdentityResource(SCOPE_OPENID, frozenset({"sub"}), "Your user identifier"),
        IdentityResource(
            "profile",
            frozenset({
                "name", "family_name", "given_name", "middle_name", "nickname",
                "preferred_username", "profile", "picture", "website", "gender",
                "birthdate", "zoneinfo", "locale", "updated_at",
            }),
            "User profile",
        ),
        IdentityResource("email", frozenset({"email", "email_verified"}), "Your email address"),
        IdentityResource("address", frozenset({"address"}), "Your postal address"),
        IdentityResource("roles", frozenset({"role"}), "Your roles"),
    ]


def api_scopes() -> list[ApiScope]:
    return [ApiScope(config.DOCKET_MANAGER_SCOPE, "DocketManager API")]


def build_clients() -> list[Client]:
    """The back-office client. Secret from BACKOFFICE_API_SECRET, else a random one per process."""
    secret = config.BACKOFFICE_API_SECRET
    if not secret:
        secret = secrets.token_urlsafe(32)
        logger.warning(
            "BACKOFFICE_API_SECRET not set; generated a random secret for client %s "
            "(client_credentials and code exchange will fail for any real back office)",
            config.BACKOFFICE_CLIENT_ID,
        )
    backend = config.BACKOFFICE_BACKEND_URL
    client = Client(
        client_id=config.BACKOFFICE_CLIENT_ID,
        client_name="Back Office",
        secret_hashes=(hash_password(secret),),
        allowed_grant_types=frozenset({GRANT_AUTHORIZATION_CODE, GRANT_CLIENT_CREDENTIALS}),
        allow_offline_access=True,
        always_include_user_claims_in_id_token=True,
        require_consent=False,
        require_pkce=True,
        redirect_uris=frozenset({f"{backend}signin-docket-manager"}),
        post_logout_redirect_uris=frozenset({f"{backend}signout-docket-manager"}),
        allowed_scopes=frozenset({
            SCOPE_OPENID, "profile", "email", "address", "roles", config.DOCKET_MANAGER_SCOPE,
        }),
    )
    logger.info("Registered client: %s (redirect=%s)", client.client_id, ", ".join(sorted(client.redirect_uris)))
    return [client]


def _address(street: str, locality: str, postal_code: str, country: str) -> str:
    return json.dumps(
        {"street_address": street, "locality": locality, "postal_code": postal_code, "country": country}
    )


def test_users() -> list[User]:
    """Demo users (password = username)."""
    return [
        User(
            subject_id="818727",
            username="alice",
            password_hash=hash_password("alice"),
            claims=(
                ("name", "Alice Smith"),
                ("given_name", "Alice"),
                ("family_name", "Smith"),
                ("email", "AliceSmith@email.com"),
                ("email_verified", "true"),
                ("website", "http://alice.com"),
                ("address", _address("One Hacker Way", "Heidelberg", "69118", "Germany")),
                ("role", "admin"),
                ("role", "user"),
            ),
        ),
        User(
            subject_id="88421113",
            username="bob",
            password_hash=hash_password("bob"),
            claims=(
                ("name", "Bob Smith"),
                ("given_name", "Bob"),
                ("family_name", "Smith"),
                ("email", "BobSmith@email.com"),
                ("email_verified", "true"),
                ("website", "http://bob.com"),
                ("address", _address("One Hacker Way", "Heidelberg", "69118", "Germany")),
                ("role", "user"),
            ),
        ),
    ]
