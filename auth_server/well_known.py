"""
Well-known endpoints: JWKS and OpenID Connect discovery.
"""
from fastapi import APIRouter

from auth_server.config import ISSUER
from auth_server.keys import ALGORITHM, get_jwks
from auth_server.registry import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_CLIENT_CREDENTIALS,
    GRANT_REFRESH_TOKEN,
    SCOPE_OFFLINE_ACCESS,
    get_resource_registry,
)

router = APIRouter()


@router.get("/.well-known/jwks.json")
def jwks_json():
    """JSON Web Key Set for token signature verification."""
    return get_jwks()


@router.get("/.well-known/openid-configuration")
def openid_configuration():
    """OpenID Connect discovery document."""
    resources = get_resource_registry()
    claims = sorted({c for r in resources.identity_resources.values() for c in r.user_claims})
    return {
        "issuer": ISSUER,
        "authorization_endpoint": f"{ISSUER}/authorize",
        "token_endpoint": f"{ISSUER}/token",
        "userinfo_endpoint": f"{ISSUER}/userinfo",
        "end_session_endpoint": f"{ISSUER}/logout",
        "jwks_uri": f"{ISSUER}/.well-known/jwks.json",
        "response_types_supported": ["code"],
        "response_modes_supported": ["query"],
        "grant_types_supported": [GRANT_AUTHORIZATION_CODE, GRANT_CLIENT_CREDENTIALS, GRANT_REFRESH_TOKEN],
        "scopes_supported": resources.all_scope_names() + [SCOPE_OFFLINE_ACCESS],
        "claims_supported": claims,
        "subject_types_supported": ["public"],
        "id_token_signing_alg_values_supported": [ALGORITHM],
        "token_endpoint_auth_methods_supported": ["client_secret_basic", "client_secret_post"],
        "code_challenge_methods_supported": ["S256"],
    }
