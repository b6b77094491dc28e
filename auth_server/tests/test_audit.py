"""
Audit trail: security events are recorded without secrets.
"""
import base64

from auth_server.audit import EVENT_LOGIN_FAIL, EVENT_TOKEN_FAIL, EVENT_TOKEN_ISSUED, OUTCOME_FAIL
from auth_server.database import SessionLocal
from auth_server.models import AuditLog
from auth_server.pkce import generate_pkce


def _events(event_type: str) -> list[AuditLog]:
    db = SessionLocal()
    try:
        return db.query(AuditLog).filter(AuditLog.event_type == event_type).order_by(AuditLog.id).all()
    finally:
        db.close()


def test_login_failure_is_audited(client):
    before = len(_events(EVENT_LOGIN_FAIL))
    _, challenge = generate_pkce()
    client.post(
        "/authorize",
        data={
            "response_type": "code",
            "client_id": "docket-manager",
            "redirect_uri": "https://host/signin-docket-manager",
            "scope": "openid",
            "code_challenge": challenge,
            "code_challenge_method": "S256",
            "username": "alice",
            "password": "super-secret-guess",
        },
        follow_redirects=False,
    )
    events = _events(EVENT_LOGIN_FAIL)
    assert len(events) == before + 1
    assert events[-1].client_id == "docket-manager"
    assert events[-1].outcome == OUTCOME_FAIL


def test_token_events_record_no_secrets(client):
    raw = base64.b64encode(b"docket-manager:test-secret").decode()
    ok = client.post("/token", data={"grant_type": "client_credentials"}, headers={"Authorization": f"Basic {raw}"})
    access_token = ok.json()["access_token"]
    client.post(
        "/token",
        data={"grant_type": "client_credentials", "client_id": "docket-manager", "client_secret": "test-secret", "scope": "openid"},
    )

    issued = _events(EVENT_TOKEN_ISSUED)[-1]
    assert issued.client_id == "docket-manager"
    assert issued.detail == "client_credentials"
    failed = _events(EVENT_TOKEN_FAIL)[-1]
    assert failed.detail == "invalid_scope"

    db = SessionLocal()
    try:
        for row in db.query(AuditLog).all():
            for value in (row.detail, row.client_id, row.subject_id):
                assert "test-secret" not in (value or "")
                assert access_token not in (value or "")
                assert "super-secret-guess" not in (value or "")
    finally:
        db.close()
