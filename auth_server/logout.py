"""
OIDC RP-Initiated Logout. GET /logout with id_token_hint, post_logout_redirect_uri, state.
The provider keeps no browser session, so logout only routes the browser back to the client,
and only to a registered post-logout redirect URI.
"""
import logging
from urllib.parse import urlencode

import jwt
from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlalchemy.orm import Session

from auth_server.audit import EVENT_LOGOUT, OUTCOME_FAIL, OUTCOME_SUCCESS, get_client_ip, log_audit
from auth_server.config import ISSUER
from auth_server.database import get_db
from auth_server.errors import InvalidRequest
from auth_server.keys import ALGORITHM, get_public_key
from auth_server.registry import get_client_registry

logger = logging.getLogger(__name__)
router = APIRouter()

_SIGNED_OUT_PAGE = """<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Signed out</title></head>
<body>
  <h1>Signed out</h1>
  <p>You are now signed out. Close this window or return to the application.</p>
</body>
</html>"""


def _decode_id_token_hint(id_token: str | None) -> dict | None:
    """Verify an id_token_hint issued by us. Expiry is not enforced: hints are usually stale."""
    if not id_token or not id_token.strip():
        return None
    try:
        return jwt.decode(
            id_token.strip(),
            get_public_key(),
            algorithms=[ALGORITHM],
            issuer=ISSUER,
            options={"verify_aud": False, "verify_exp": False},
        )
    except jwt.InvalidTokenError as e:
        logger.debug("Ignoring invalid id_token_hint: %s", e)
        return None


@router.get("/logout")
def logout(
    request: Request,
    id_token_hint: str | None = None,
    post_logout_redirect_uri: str | None = None,
    state: str | None = None,
    db: Session = Depends(get_db),
):
    """
    Redirects to post_logout_redirect_uri (with state) when the client named by the
    id_token_hint's aud registered it; otherwise renders the signed-out page.
    """
    payload = _decode_id_token_hint(id_token_hint)
    client_id = payload.get("aud") if payload else None
    if isinstance(client_id, list):
        client_id = client_id[0] if client_id else None
    client = get_client_registry().lookup(client_id)
    subject_id = payload.get("sub") if payload else None

    target = (post_logout_redirect_uri or "").strip()
    if target:
        if client is None or not client.post_logout_redirect_uri_allowed(target):
            exc = InvalidRequest("post_logout_redirect_uri not allowed")
            log_audit(
                db,
                EVENT_LOGOUT,
                client_id=client_id,
                subject_id=subject_id,
                ip=get_client_ip(request),
                outcome=OUTCOME_FAIL,
                detail=exc.error,
            )
            return HTMLResponse(
                "<h1>Invalid request</h1><p>post_logout_redirect_uri not allowed for this client.</p>",
                status_code=400,
            )
        log_audit(
            db,
            EVENT_LOGOUT,
            client_id=client.client_id,
            subject_id=subject_id,
            ip=get_client_ip(request),
            outcome=OUTCOME_SUCCESS,
        )
        if state and state.strip():
            target = f"{target}{'&' if '?' in target else '?'}{urlencode({'state': state.strip()})}"
        return RedirectResponse(url=target, status_code=302)

    log_audit(
        db,
        EVENT_LOGOUT,
        client_id=client.client_id if client else None,
        subject_id=subject_id,
        ip=get_client_ip(request),
        outcome=OUTCOME_SUCCESS,
    )
    return HTMLResponse(_SIGNED_OUT_PAGE)
