"""
Token endpoint (POST /token): authorization_code (PKCE), client_credentials and refresh_token grants.
"""
import logging

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from auth_server import pkce
from auth_server.audit import (
    EVENT_TOKEN_FAIL,
    EVENT_TOKEN_ISSUED,
    EVENT_TOKEN_REFRESHED,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
    get_client_ip,
    log_audit,
)
from auth_server.authorize import parse_scopes
from auth_server.client_auth import authenticate_client
from auth_server.database import get_db
from auth_server.errors import (
    InvalidGrant,
    InvalidRequest,
    OAuthError,
    UnauthorizedClient,
    UnauthorizedScope,
    UnsupportedGrantType,
)
from auth_server.registry import (
    GRANT_AUTHORIZATION_CODE,
    GRANT_CLIENT_CREDENTIALS,
    GRANT_REFRESH_TOKEN,
    SCOPE_OPENID,
    Client,
    get_client_registry,
    get_resource_registry,
    get_user_store,
)
from auth_server.stores import RedeemedCode, RefreshGrant, get_code_store, get_refresh_store
from auth_server.tokens import get_token_issuer

logger = logging.getLogger(__name__)
router = APIRouter()

_NO_STORE = {"Cache-Control": "no-store", "Pragma": "no-cache"}


@router.post("/token")
def token(
    request: Request,
    grant_type: str = Form(""),
    code: str | None = Form(None),
    redirect_uri: str | None = Form(None),
    code_verifier: str | None = Form(None),
    refresh_token: str | None = Form(None),
    scope: str | None = Form(None),
    client_id: str | None = Form(None),
    client_secret: str | None = Form(None),
    db: Session = Depends(get_db),
):
    """
    authorization_code: redeem a single-use code with its PKCE verifier.
    client_credentials: access token for the client's own API scopes.
    refresh_token: new tokens for a rotated refresh token (offline-access clients).
    """
    if not grant_type:
        raise InvalidRequest("grant_type is required")
    if grant_type not in (GRANT_AUTHORIZATION_CODE, GRANT_CLIENT_CREDENTIALS, GRANT_REFRESH_TOKEN):
        raise UnsupportedGrantType(f"Grant type '{grant_type}' is not supported")

    client = authenticate_client(get_client_registry(), request, client_id, client_secret)
    try:
        if grant_type == GRANT_AUTHORIZATION_CODE:
            body, subject_id = _token_authorization_code(db, client, code, redirect_uri, code_verifier)
            event = EVENT_TOKEN_ISSUED
        elif grant_type == GRANT_CLIENT_CREDENTIALS:
            body, subject_id = _token_client_credentials(client, scope)
            event = EVENT_TOKEN_ISSUED
        else:
            body, subject_id = _token_refresh_token(db, client, refresh_token)
            event = EVENT_TOKEN_REFRESHED
    except OAuthError as exc:
        log_audit(
            db,
            EVENT_TOKEN_FAIL,
            client_id=client.client_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
            detail=exc.error,
        )
        raise

    log_audit(
        db,
        event,
        client_id=client.client_id,
        subject_id=subject_id,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
        detail=grant_type,
    )
    return JSONResponse(body, headers=_NO_STORE)


def _require_grant(client: Client, grant_type: str) -> None:
    allowed = client.allowed_grant_types
    # Refresh tokens ride on the client's offline access flag
    if grant_type == GRANT_REFRESH_TOKEN:
        if client.allow_offline_access:
            return
    elif grant_type in allowed:
        return
    raise UnauthorizedClient(f"Client is not allowed to use grant type '{grant_type}'")


def _user_token_response(db: Session, client: Client, subject_id: str, scopes, nonce, auth_time) -> dict:
    """access_token, plus id_token when openid was granted and refresh_token for offline-access clients."""
    user = get_user_store().find_by_subject(subject_id)
    if user is None:
        # Subject vanished from the user store since the grant was made
        raise InvalidGrant("Unknown subject")
    issuer = get_token_issuer()
    access = issuer.issue_access_token(subject_id, client, scopes, user=user, auth_time=auth_time)
    response = {
        "access_token": access.token,
        "token_type": "Bearer",
        "expires_in": access.expires_in,
        "scope": " ".join(sorted(set(scopes))),
    }
    if SCOPE_OPENID in scopes:
        identity = issuer.issue_identity_token(subject_id, client, scopes, user, nonce=nonce, auth_time=auth_time)
        response["id_token"] = identity.token
    if client.allow_offline_access:
        response["refresh_token"] = get_refresh_store().issue(
            db, client_id=client.client_id, subject_id=subject_id, scopes=scopes, auth_time=auth_time
        )
    return response


def _token_authorization_code(
    db: Session,
    client: Client,
    code: str | None,
    redirect_uri: str | None,
    code_verifier: str | None,
) -> tuple[dict, str]:
    _require_grant(client, GRANT_AUTHORIZATION_CODE)
    if not code or not redirect_uri:
        raise InvalidRequest("code and redirect_uri are required for authorization_code grant")

    # Burn the code before any other check: a failed redemption cannot be retried
    redeemed: RedeemedCode | None = get_code_store().consume(db, code)
    if redeemed is None:
        raise InvalidGrant("Invalid or already used authorization code")
    if redeemed.expired():
        raise InvalidGrant("Authorization code expired")
    if redeemed.client_id != client.client_id:
        raise InvalidGrant("Client mismatch")
    if redeemed.redirect_uri != redirect_uri:
        raise InvalidGrant("redirect_uri mismatch")
    if redeemed.code_challenge:
        if not code_verifier:
            raise InvalidGrant("code_verifier is required")
        if not pkce.verify(code_verifier, redeemed.code_challenge, redeemed.code_challenge_method):
            raise InvalidGrant("PKCE verification failed")
    elif client.require_pkce:
        raise InvalidGrant("PKCE is required for this client")

    response = _user_token_response(
        db, client, redeemed.subject_id, redeemed.scopes, redeemed.nonce, redeemed.auth_time
    )
    logger.info("authorization_code grant: tokens issued for client_id=%s sub=%s", client.client_id, redeemed.subject_id)
    return response, redeemed.subject_id


def _token_client_credentials(client: Client, scope: str | None) -> tuple[dict, None]:
    _require_grant(client, GRANT_CLIENT_CREDENTIALS)
    resources = get_resource_registry()
    allowed_api = {s.name for s in resources.api_scopes_for(client.allowed_scopes)}
    requested = set(parse_scopes(scope))
    if requested:
        invalid = requested - allowed_api
        if invalid:
            raise UnauthorizedScope(f"Scope(s) not allowed for client credentials: {', '.join(sorted(invalid))}")
        granted = requested
    else:
        granted = allowed_api
    if not granted:
        raise UnauthorizedScope("Client has no API scopes")

    access = get_token_issuer().issue_access_token(None, client, granted)
    logger.info("client_credentials grant: access token issued for client_id=%s", client.client_id)
    return {
        "access_token": access.token,
        "token_type": "Bearer",
        "expires_in": access.expires_in,
        "scope": " ".join(sorted(granted)),
    }, None


def _token_refresh_token(db: Session, client: Client, refresh_token: str | None) -> tuple[dict, str]:
    _require_grant(client, GRANT_REFRESH_TOKEN)
    if not refresh_token:
        raise InvalidRequest("refresh_token is required")
    grant: RefreshGrant | None = get_refresh_store().consume(db, refresh_token)
    if grant is None:
        raise InvalidGrant("Invalid, expired or already used refresh token")
    if grant.client_id != client.client_id:
        raise InvalidGrant("Client mismatch")

    response = _user_token_response(db, client, grant.subject_id, grant.scopes, None, grant.auth_time)
    logger.info(
        "refresh_token grant: new tokens issued for client_id=%s sub=%s (refresh token rotated)",
        client.client_id,
        grant.subject_id,
    )
    return response, grant.subject_id
