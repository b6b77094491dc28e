"""
Authorization endpoint and login flow.
GET /authorize: validate request, show login. POST /authorize: authenticate, then auto-consent
(redirect with code) or show consent. POST /authorize/consent: confirm scopes, redirect with code.
Any validation failure redirects to /error?errorId=... instead of the client.
"""
import html
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Form, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from auth_server.audit import (
    EVENT_AUTHORIZE_ERROR,
    EVENT_CODE_ISSUED,
    EVENT_CONSENT_ALLOW,
    EVENT_CONSENT_DENY,
    EVENT_LOGIN_FAIL,
    EVENT_LOGIN_OK,
    OUTCOME_FAIL,
    OUTCOME_SUCCESS,
    get_client_ip,
    log_audit,
)
from auth_server.database import get_db
from auth_server.errors import (
    AccessDenied,
    InvalidClient,
    InvalidRequest,
    OAuthError,
    UnauthorizedClient,
    UnauthorizedScope,
    UnsupportedResponseType,
)
from auth_server.interaction import ConsentRequest, ErrorMessage, get_consent_store, get_error_store
from auth_server.pkce import METHOD_PLAIN, SUPPORTED_METHODS
from auth_server.registry import (
    GRANT_AUTHORIZATION_CODE,
    Client,
    ClientRegistry,
    ResourceRegistry,
    User,
    get_client_registry,
    get_resource_registry,
    get_user_store,
)
from auth_server.stores import get_code_store

logger = logging.getLogger(__name__)
router = APIRouter()


@dataclass(frozen=True)
class AuthorizeRequest:
    client: Client
    redirect_uri: str
    scopes: tuple[str, ...]
    state: str | None = None
    code_challenge: str | None = None
    code_challenge_method: str | None = None
    nonce: str | None = None

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


def parse_scopes(scope: str | None) -> tuple[str, ...]:
    if not scope:
        return ()
    return tuple(sorted(set(s for s in scope.split() if s)))


def validate_authorize_request(
    clients: ClientRegistry,
    resources: ResourceRegistry,
    *,
    response_type: str | None,
    client_id: str | None,
    redirect_uri: str | None,
    scope: str | None,
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    nonce: str | None = None,
) -> AuthorizeRequest:
    """Validate an authorization request. Raises an OAuthError subclass on the first failed check."""
    if not client_id:
        raise InvalidRequest("client_id is required")
    client = clients.lookup(client_id)
    if client is None:
        raise InvalidClient("Unknown client_id")
    if GRANT_AUTHORIZATION_CODE not in client.allowed_grant_types:
        raise UnauthorizedClient("Client is not allowed to use the authorization code flow")
    if not redirect_uri or not client.redirect_uri_allowed(redirect_uri):
        raise InvalidRequest("redirect_uri is not registered for this client")
    if response_type != "code":
        raise UnsupportedResponseType("response_type must be 'code'")

    scopes = parse_scopes(scope)
    if not scopes:
        raise InvalidRequest("scope is required")
    unknown = [s for s in scopes if not resources.scope_exists(s)]
    if unknown:
        raise UnauthorizedScope(f"Unknown scope(s): {', '.join(unknown)}")
    not_allowed = [s for s in scopes if not client.scope_allowed(s)]
    if not_allowed:
        raise UnauthorizedScope(f"Scope(s) not allowed for client: {', '.join(not_allowed)}")

    method = None
    if code_challenge:
        # RFC 7636 §4.3: absent method means plain
        method = code_challenge_method or METHOD_PLAIN
        if method not in SUPPORTED_METHODS:
            raise InvalidRequest("code_challenge_method must be S256")
        if method == METHOD_PLAIN and not client.allow_plain_text_pkce:
            raise InvalidRequest("Transform algorithm not supported; use S256")
        if not 43 <= len(code_challenge) <= 128:
            raise InvalidRequest("code_challenge has an invalid length")
    elif client.require_pkce:
        raise InvalidRequest("code_challenge is required")

    return AuthorizeRequest(
        client=client,
        redirect_uri=redirect_uri,
        scopes=scopes,
        state=state or None,
        code_challenge=code_challenge or None,
        code_challenge_method=method,
        nonce=nonce or None,
    )


def _redirect_to_error_page(db: Session, request: Request, exc: OAuthError, client_id: str | None) -> RedirectResponse:
    """Store the error under an opaque id and send the browser to the error page."""
    error_id = get_error_store().create(
        ErrorMessage(error=exc.error, error_description=exc.description or None, client_id=client_id)
    )
    logger.info("Authorization request failed: error=%s client_id=%s", exc.error, client_id)
    log_audit(
        db,
        EVENT_AUTHORIZE_ERROR,
        client_id=client_id,
        ip=get_client_ip(request),
        outcome=OUTCOME_FAIL,
        detail=exc.error,
    )
    return RedirectResponse(url=f"/error?{urlencode({'errorId': error_id})}", status_code=302)


def _redirect_to_client(redirect_uri: str, params: dict, state: str | None) -> RedirectResponse:
    if state:
        params = {**params, "state": state}
    separator = "&" if "?" in redirect_uri else "?"
    return RedirectResponse(url=f"{redirect_uri}{separator}{urlencode(params)}", status_code=302)


def e(s: str | None) -> str:
    return html.escape(s or "")


def _login_page(req: AuthorizeRequest, *, error: str | None = None, username: str = "") -> str:
    error_html = f'<p style="color:red;">{e(error)}</p>' if error else ""
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Log in</title></head>
<body>
  <h1>Log in</h1>
  <p>Sign in to continue to <strong>{e(req.client.client_name or req.client.client_id)}</strong>.</p>
  {error_html}
  <form method="post" action="/authorize">
    <input type="hidden" name="client_id" value="{e(req.client.client_id)}"/>
    <input type="hidden" name="redirect_uri" value="{e(req.redirect_uri)}"/>
    <input type="hidden" name="scope" value="{e(req.scope)}"/>
    <input type="hidden" name="state" value="{e(req.state)}"/>
    <input type="hidden" name="response_type" value="code"/>
    <input type="hidden" name="code_challenge" value="{e(req.code_challenge)}"/>
    <input type="hidden" name="code_challenge_method" value="{e(req.code_challenge_method)}"/>
    <input type="hidden" name="nonce" value="{e(req.nonce)}"/>
    <label>Username: <input type="text" name="username" value="{e(username)}" required/></label><br/>
    <label>Password: <input type="password" name="password" required/></label><br/>
    <button type="submit">Log in</button>
  </form>
</body>
</html>"""


def _consent_page(req: AuthorizeRequest, interaction_id: str) -> str:
    checkboxes = "".join(
        f'<label><input type="checkbox" name="granted_scope" value="{e(s)}" checked/> {e(s)}</label><br/>'
        for s in req.scopes
    )
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Consent</title></head>
<body>
  <h1>Consent</h1>
  <p><strong>{e(req.client.client_name or req.client.client_id)}</strong> requests the following scopes:</p>
  <form method="post" action="/authorize/consent">
    <input type="hidden" name="interaction_id" value="{e(interaction_id)}"/>
    {checkboxes}
    <button type="submit" name="allow" value="true">Allow</button>
    <button type="submit" name="allow" value="false">Deny</button>
  </form>
</body>
</html>"""


def _issue_code(
    db: Session,
    request: Request,
    req: AuthorizeRequest,
    subject_id: str,
    granted_scopes,
    auth_time: datetime,
) -> RedirectResponse:
    code = get_code_store().issue(
        db,
        client_id=req.client.client_id,
        subject_id=subject_id,
        redirect_uri=req.redirect_uri,
        scopes=granted_scopes,
        code_challenge=req.code_challenge,
        code_challenge_method=req.code_challenge_method,
        nonce=req.nonce,
        auth_time=auth_time,
    )
    log_audit(
        db,
        EVENT_CODE_ISSUED,
        client_id=req.client.client_id,
        subject_id=subject_id,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
    )
    return _redirect_to_client(req.redirect_uri, {"code": code}, req.state)


@router.get("/authorize", response_class=HTMLResponse)
def authorize_get(
    request: Request,
    response_type: str | None = None,
    client_id: str | None = None,
    redirect_uri: str | None = None,
    scope: str | None = None,
    state: str | None = None,
    code_challenge: str | None = None,
    code_challenge_method: str | None = None,
    nonce: str | None = None,
    db: Session = Depends(get_db),
):
    """
    OAuth2 authorization endpoint (GET).
    Validates client_id, redirect_uri (exact match), response_type=code, scope and PKCE.
    Renders the login form on success.
    """
    try:
        req = validate_authorize_request(
            get_client_registry(),
            get_resource_registry(),
            response_type=response_type,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            nonce=nonce,
        )
    except OAuthError as exc:
        return _redirect_to_error_page(db, request, exc, client_id)
    return HTMLResponse(_login_page(req))


@router.post("/authorize")
def authorize_post(
    request: Request,
    client_id: str = Form(""),
    redirect_uri: str = Form(""),
    scope: str = Form(""),
    state: str = Form(""),
    response_type: str = Form(""),
    username: str = Form(""),
    password: str = Form(""),
    code_challenge: str = Form(""),
    code_challenge_method: str = Form(""),
    nonce: str = Form(""),
    db: Session = Depends(get_db),
):
    """
    Process login. On success: auto-consent redirects to redirect_uri?code=...&state=...,
    otherwise the consent page is shown. On bad credentials the login form is re-shown (401).
    """
    try:
        req = validate_authorize_request(
            get_client_registry(),
            get_resource_registry(),
            response_type=response_type,
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=scope,
            state=state,
            code_challenge=code_challenge,
            code_challenge_method=code_challenge_method,
            nonce=nonce,
        )
    except OAuthError as exc:
        return _redirect_to_error_page(db, request, exc, client_id or None)

    user: User | None = None
    if username and password:
        user = get_user_store().validate_credentials(username, password)
    if user is None:
        log_audit(
            db,
            EVENT_LOGIN_FAIL,
            client_id=req.client.client_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_FAIL,
        )
        return HTMLResponse(
            _login_page(req, error="Invalid username or password.", username=username),
            status_code=401,
        )

    log_audit(
        db,
        EVENT_LOGIN_OK,
        client_id=req.client.client_id,
        subject_id=user.subject_id,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
    )
    auth_time = datetime.now(timezone.utc)

    if not req.client.require_consent:
        return _issue_code(db, request, req, user.subject_id, req.scopes, auth_time)

    interaction_id = get_consent_store().create(
        ConsentRequest(subject_id=user.subject_id, request=req, auth_time=auth_time)
    )
    return HTMLResponse(_consent_page(req, interaction_id))


@router.post("/authorize/consent")
def authorize_consent(
    request: Request,
    interaction_id: str = Form(""),
    allow: str = Form("false"),
    granted_scope: list[str] = Form([]),
    db: Session = Depends(get_db),
):
    """Confirm (a subset of) the requested scopes, or deny."""
    pending = get_consent_store().pop(interaction_id)
    if not isinstance(pending, ConsentRequest):
        return _redirect_to_error_page(db, request, InvalidRequest("Consent request expired or unknown"), None)
    req: AuthorizeRequest = pending.request

    granted = set(s.strip() for s in granted_scope if s and s.strip())
    if allow.lower() not in ("true", "1", "yes", "allow") or not granted:
        log_audit(
            db,
            EVENT_CONSENT_DENY,
            client_id=req.client.client_id,
            subject_id=pending.subject_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_SUCCESS,
        )
        denied = AccessDenied("User denied authorization")
        return _redirect_to_client(req.redirect_uri, denied.to_dict(), req.state)

    if not granted <= set(req.scopes):
        return _redirect_to_error_page(
            db,
            request,
            InvalidRequest("Granted scopes must be a subset of the requested scopes"),
            req.client.client_id,
        )

    log_audit(
        db,
        EVENT_CONSENT_ALLOW,
        client_id=req.client.client_id,
        subject_id=pending.subject_id,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
    )
    return _issue_code(db, request, req, pending.subject_id, sorted(granted), pending.auth_time)
