"""
Token issuer: signs access and identity tokens (RS256) with the process signing key.
User claims in tokens come only from select_user_claims().
"""
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone

import jwt

from auth_server import config
from auth_server.keys import ALGORITHM, get_signing_key
from auth_server.registry import SCOPE_OPENID, Client, IdentityResource, ResourceRegistry, User

logger = logging.getLogger(__name__)

# Claims the issuer owns; a user claim with one of these names is never copied into a token
_PROTOCOL_CLAIMS = frozenset(
    {"iss", "sub", "aud", "exp", "nbf", "iat", "jti", "nonce", "auth_time", "scope", "client_id", "at_hash"}
)
_JSON_CLAIMS = frozenset({"address"})
_BOOL_CLAIMS = frozenset({"email_verified", "phone_number_verified"})


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_in: int
    claims: dict


def select_user_claims(user: User, granted_scopes, identity_resources: list[IdentityResource]) -> dict:
    """
    Claims of `user` exposed by the identity resources whose scope was granted.
    Multi-valued claims (e.g. role) become lists; address is decoded JSON.
    """
    granted = set(granted_scopes)
    wanted: set[str] = set()
    for resource in identity_resources:
        if resource.name in granted:
            wanted |= resource.user_claims
    wanted -= _PROTOCOL_CLAIMS

    claims: dict = {}
    for claim_type, value in user.claims:
        if claim_type not in wanted:
            continue
        if claim_type in _BOOL_CLAIMS:
            value = value.lower() == "true"
        elif claim_type in _JSON_CLAIMS:
            try:
                value = json.loads(value)
            except ValueError:
                pass
        if claim_type in claims:
            existing = claims[claim_type]
            claims[claim_type] = existing + [value] if isinstance(existing, list) else [existing, value]
        else:
            claims[claim_type] = value
    return claims


def _timestamp(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


class TokenIssuer:
    def __init__(
        self,
        resources: ResourceRegistry,
        *,
        issuer: str = config.ISSUER,
        audience: str = config.API_AUDIENCE,
        access_token_lifetime: int = config.ACCESS_TOKEN_EXPIRES,
        id_token_lifetime: int = config.ID_TOKEN_EXPIRES,
    ):
        self.resources = resources
        self.issuer = issuer
        self.audience = audience
        self.access_token_lifetime = access_token_lifetime
        self.id_token_lifetime = id_token_lifetime

    def _sign(self, payload: dict) -> str:
        private_key, kid = get_signing_key()
        token = jwt.encode(payload, private_key, algorithm=ALGORITHM, headers={"kid": kid, "typ": "JWT"})
        if isinstance(token, bytes):
            token = token.decode("utf-8")
        return token

    def issue_access_token(
        self,
        subject: str | None,
        client: Client,
        granted_scopes,
        user: User | None = None,
        auth_time: datetime | None = None,
    ) -> IssuedToken:
        """Access token for the granted scopes. subject is None for client_credentials."""
        now = int(datetime.now(timezone.utc).timestamp())
        scopes = sorted(set(granted_scopes))
        payload = {
            "iss": self.issuer,
            "aud": self.audience,
            "client_id": client.client_id,
            "iat": now,
            "nbf": now,
            "exp": now + self.access_token_lifetime,
            "jti": secrets.token_hex(16),
            "scope": " ".join(scopes),
        }
        if subject is not None:
            payload["sub"] = subject
        if auth_time is not None:
            payload["auth_time"] = _timestamp(auth_time)
        if user is not None and "roles" in scopes:
            roles = user.claim_values("role")
            if roles:
                payload["role"] = roles if len(roles) > 1 else roles[0]
        token = self._sign(payload)
        logger.debug("Issued access token client_id=%s sub=%s scope=%s", client.client_id, subject, payload["scope"])
        return IssuedToken(token=token, expires_in=self.access_token_lifetime, claims=payload)

    def issue_identity_token(
        self,
        subject: str,
        client: Client,
        granted_scopes,
        user: User,
        nonce: str | None = None,
        auth_time: datetime | None = None,
    ) -> IssuedToken:
        """ID token; user claims are included only if the client always includes them."""
        if SCOPE_OPENID not in set(granted_scopes):
            raise ValueError("identity token requires the openid scope")
        now = int(datetime.now(timezone.utc).timestamp())
        payload: dict = {}
        if client.always_include_user_claims_in_id_token:
            payload.update(
                select_user_claims(user, granted_scopes, self.resources.identity_resources_for(granted_scopes))
            )
        payload.update(
            {
                "iss": self.issuer,
                "sub": subject,
                "aud": client.client_id,
                "iat": now,
                "nbf": now,
                "exp": now + self.id_token_lifetime,
                "auth_time": _timestamp(auth_time) if auth_time is not None else now,
            }
        )
        if nonce:
            payload["nonce"] = nonce
        token = self._sign(payload)
        return IssuedToken(token=token, expires_in=self.id_token_lifetime, claims=payload)


_issuer: TokenIssuer | None = None


def get_token_issuer() -> TokenIssuer:
    global _issuer
    if _issuer is None:
        from auth_server.registry import get_resource_registry

        _issuer = TokenIssuer(get_resource_registry())
    return _issuer
