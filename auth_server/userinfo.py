"""
OIDC UserInfo endpoint (GET /userinfo). Bearer access token from this issuer; returns claims by scope.
"""
import logging

import jwt
from fastapi import APIRouter, Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth_server.config import ISSUER
from auth_server.keys import ALGORITHM, get_public_key
from auth_server.registry import SCOPE_OPENID, get_resource_registry, get_user_store
from auth_server.tokens import select_user_claims

logger = logging.getLogger(__name__)
router = APIRouter()
security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=401,
        detail={"error": "invalid_token"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_access_token(token: str) -> dict:
    """Decode and validate an access token issued by this server. Returns payload or raises 401."""
    try:
        return jwt.decode(
            token,
            get_public_key(),
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            options={"verify_aud": False, "require": ["exp", "iss"]},
        )
    except jwt.InvalidTokenError as e:
        logger.debug("UserInfo token invalid: %s", e)
        raise _unauthorized()


@router.get("/userinfo")
def userinfo(credentials: HTTPAuthorizationCredentials | None = Depends(security)):
    """
    Claims for the token's subject. Requires the openid scope; sub always,
    other claims selected by the granted identity resources.
    """
    if credentials is None:
        raise _unauthorized()
    payload = _decode_access_token(credentials.credentials)
    scopes = (payload.get("scope") or "").split()
    sub = payload.get("sub")
    if not sub or SCOPE_OPENID not in scopes:
        raise HTTPException(
            status_code=403,
            detail={"error": "insufficient_scope"},
            headers={"WWW-Authenticate": 'Bearer error="insufficient_scope"'},
        )

    user = get_user_store().find_by_subject(sub)
    if user is None:
        raise _unauthorized()

    resources = get_resource_registry()
    claims = select_user_claims(user, scopes, resources.identity_resources_for(scopes))
    claims["sub"] = sub
    return claims
