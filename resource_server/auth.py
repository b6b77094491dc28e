"""
Bearer token validation for the product API.
Signature via the authority's JWKS, then exp/nbf, iss, optional aud and the required scope.
Every failure is the same 401: callers learn nothing about which check failed.
"""
import logging
from dataclasses import dataclass, field
from typing import Annotated

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import PyJWKClient
from jwt.exceptions import PyJWKClientConnectionError

from resource_server.config import API_AUDIENCE, CLOCK_SKEW_SECONDS, ISSUER, JWKS_CACHE_SECONDS

logger = logging.getLogger(__name__)

ALGORITHMS = ["RS256"]
JWKS_URI = f"{ISSUER}/.well-known/jwks.json"


class Unauthorized(Exception):
    """Token rejected. Deliberately carries no reason."""


@dataclass(frozen=True)
class Principal:
    subject: str | None
    client_id: str | None
    scopes: frozenset[str]
    claims: dict = field(default_factory=dict, compare=False)


def _parse_scope(scope_value: str | list | None) -> frozenset[str]:
    """Normalize scope claim (space-separated string or list) to a set."""
    if scope_value is None:
        return frozenset()
    if isinstance(scope_value, list):
        return frozenset(str(s) for s in scope_value)
    return frozenset(str(scope_value).split())


class TokenValidator:
    def __init__(
        self,
        jwks_client: PyJWKClient,
        *,
        issuer: str = ISSUER,
        audience: str | None = API_AUDIENCE,
        leeway: int = CLOCK_SKEW_SECONDS,
    ):
        self.jwks_client = jwks_client
        self.issuer = issuer
        self.audience = audience
        self.leeway = leeway

    def validate(self, token: str | None, required_scope: str | None) -> Principal:
        """Return the token's principal, or raise Unauthorized."""
        if not token:
            raise Unauthorized()
        try:
            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            payload = jwt.decode(
                token,
                signing_key.key,
                algorithms=ALGORITHMS,
                issuer=self.issuer,
                audience=self.audience,
                leeway=self.leeway,
                options={
                    "require": ["exp", "iss"],
                    "verify_aud": self.audience is not None,
                },
            )
        except PyJWKClientConnectionError:
            # Key source unreachable is a server fault, not a bad token
            logger.error("JWKS endpoint %s unreachable", self.jwks_client.uri)
            raise
        except jwt.PyJWTError as e:
            logger.debug("JWT verification failed: %s", e)
            raise Unauthorized() from None

        scopes = _parse_scope(payload.get("scope"))
        if required_scope and required_scope not in scopes:
            logger.debug("Token lacks required scope %s", required_scope)
            raise Unauthorized()
        return Principal(
            subject=payload.get("sub"),
            client_id=payload.get("client_id"),
            scopes=scopes,
            claims=payload,
        )


# Single shared validator; PyJWKClient caches the JWK set and keys
_validator: TokenValidator | None = None


def get_validator() -> TokenValidator:
    global _validator
    if _validator is None:
        _validator = TokenValidator(PyJWKClient(uri=JWKS_URI, cache_jwk_set=True, lifespan=JWKS_CACHE_SECONDS))
    return _validator


security = HTTPBearer(auto_error=False)


def _unauthorized() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": "invalid_token"},
        headers={"WWW-Authenticate": "Bearer"},
    )


def require_scope(required: str):
    """Dependency factory: a valid bearer token carrying `required`, else 401."""

    def _check(
        credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(security)],
    ) -> Principal:
        if credentials is None or credentials.scheme.lower() != "bearer":
            raise _unauthorized()
        try:
            return get_validator().validate(credentials.credentials, required)
        except Unauthorized:
            raise _unauthorized()

    return Depends(_check)
