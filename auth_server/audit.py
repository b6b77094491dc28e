"""
Audit logging. Security-relevant events only; no tokens, secrets, passwords or full request bodies.
"""
import logging

from fastapi import Request
from sqlalchemy.orm import Session

from auth_server.database import unit_of_work
from auth_server.models import AuditLog

logger = logging.getLogger(__name__)

EVENT_AUTHORIZE_ERROR = "authorize_error"
EVENT_LOGIN_OK = "login_ok"
EVENT_LOGIN_FAIL = "login_fail"
EVENT_CONSENT_ALLOW = "consent_allow"
EVENT_CONSENT_DENY = "consent_deny"
EVENT_CODE_ISSUED = "code_issued"
EVENT_TOKEN_ISSUED = "token_issued"
EVENT_TOKEN_FAIL = "token_fail"
EVENT_TOKEN_REFRESHED = "token_refreshed"
EVENT_LOGOUT = "logout"

OUTCOME_SUCCESS = "success"
OUTCOME_FAIL = "fail"


def get_client_ip(request: Request | None) -> str | None:
    """Client IP if available (request.client.host). Forwarding headers are not trusted."""
    if request is None or request.client is None:
        return None
    return getattr(request.client, "host", None)


def log_audit(
    db: Session,
    event_type: str,
    *,
    client_id: str | None = None,
    subject_id: str | None = None,
    ip: str | None = None,
    outcome: str = OUTCOME_SUCCESS,
    detail: str | None = None,
) -> None:
    """Append one audit record. Never pass tokens or passwords."""
    with unit_of_work(db):
        db.add(
            AuditLog(
                event_type=event_type,
                client_id=client_id,
                subject_id=subject_id,
                ip=ip,
                outcome=outcome,
                detail=detail,
            )
        )
    logger.info(
        "audit event=%s outcome=%s client_id=%s sub=%s%s",
        event_type,
        outcome,
        client_id,
        subject_id,
        f" detail={detail}" if detail else "",
    )
