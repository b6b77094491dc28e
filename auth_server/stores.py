"""
Authorization code and refresh token stores over the provider database.
Code redemption is atomic: of two concurrent redemptions of one code exactly one gets it.
"""
import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete
from sqlalchemy.orm import Session

from auth_server.database import unit_of_work
from auth_server.models import AuthorizationCode, RefreshToken

logger = logging.getLogger(__name__)


def _as_utc(dt: datetime) -> datetime:
    # SQLite returns naive datetimes; they are stored as UTC
    return dt.replace(tzinfo=timezone.utc) if dt.tzinfo is None else dt


@dataclass(frozen=True)
class RedeemedCode:
    client_id: str
    subject_id: str
    redirect_uri: str
    scopes: tuple[str, ...]
    code_challenge: str | None
    code_challenge_method: str | None
    nonce: str | None
    auth_time: datetime
    expires_at: datetime

    def expired(self, now: datetime | None = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return self.expires_at < now


class AuthorizationCodeStore:
    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds

    def issue(
        self,
        db: Session,
        *,
        client_id: str,
        subject_id: str,
        redirect_uri: str,
        scopes,
        code_challenge: str | None,
        code_challenge_method: str | None,
        nonce: str | None,
        auth_time: datetime,
    ) -> str:
        """Persist a new code and return its opaque value. Expired codes are purged first."""
        code = secrets.token_urlsafe(32)
        with unit_of_work(db):
            self._purge(db)
            db.add(
                AuthorizationCode(
                    code=code,
                    client_id=client_id,
                    subject_id=subject_id,
                    redirect_uri=redirect_uri,
                    scope=" ".join(sorted(set(scopes))),
                    code_challenge=code_challenge or None,
                    code_challenge_method=code_challenge_method or None,
                    nonce=nonce or None,
                    auth_time=auth_time,
                    expires_at=datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds),
                )
            )
        return code

    def consume(self, db: Session, code: str | None) -> RedeemedCode | None:
        """
        Remove the code and return what it was bound to; None if unknown or already redeemed.
        Expiry is left to the caller so an expired code is still burned.
        """
        if not code:
            return None
        with unit_of_work(db):
            row = db.query(AuthorizationCode).filter(AuthorizationCode.code == code).first()
            if row is None:
                return None
            redeemed = RedeemedCode(
                client_id=row.client_id,
                subject_id=row.subject_id,
                redirect_uri=row.redirect_uri,
                scopes=tuple(row.scope.split()),
                code_challenge=row.code_challenge,
                code_challenge_method=row.code_challenge_method,
                nonce=row.nonce,
                auth_time=_as_utc(row.auth_time),
                expires_at=_as_utc(row.expires_at),
            )
            result = db.execute(delete(AuthorizationCode).where(AuthorizationCode.id == row.id))
            if result.rowcount != 1:
                return None
        return redeemed

    def purge_expired(self, db: Session) -> int:
        with unit_of_work(db):
            return self._purge(db)

    def _purge(self, db: Session) -> int:
        result = db.execute(delete(AuthorizationCode).where(AuthorizationCode.expires_at < datetime.now(timezone.utc)))
        if result.rowcount:
            logger.debug("Purged %d expired authorization code(s)", result.rowcount)
        return result.rowcount


def _digest(handle: str) -> str:
    return hashlib.sha256(handle.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class RefreshGrant:
    client_id: str
    subject_id: str
    scopes: tuple[str, ...]
    auth_time: datetime


class RefreshTokenStore:
    def __init__(self, ttl_seconds: int):
        self.ttl_seconds = ttl_seconds

    def issue(self, db: Session, *, client_id: str, subject_id: str, scopes, auth_time: datetime) -> str:
        handle = secrets.token_urlsafe(48)
        with unit_of_work(db):
            db.add(
                RefreshToken(
                    token_hash=_digest(handle),
                    subject_id=subject_id,
                    client_id=client_id,
                    scope=" ".join(sorted(set(scopes))),
                    auth_time=auth_time,
                    expires_at=datetime.now(timezone.utc) + timedelta(seconds=self.ttl_seconds),
                )
            )
        return handle

    def consume(self, db: Session, handle: str | None) -> RefreshGrant | None:
        """Remove the refresh token (rotation) and return its grant if it was still valid."""
        if not handle:
            return None
        with unit_of_work(db):
            row = db.query(RefreshToken).filter(RefreshToken.token_hash == _digest(handle)).first()
            if row is None:
                return None
            grant = RefreshGrant(
                client_id=row.client_id,
                subject_id=row.subject_id,
                scopes=tuple(row.scope.split()),
                auth_time=_as_utc(row.auth_time),
            )
            expired = _as_utc(row.expires_at) < datetime.now(timezone.utc)
            result = db.execute(delete(RefreshToken).where(RefreshToken.id == row.id))
            if result.rowcount != 1 or expired:
                return None
        return grant


_code_store: AuthorizationCodeStore | None = None
_refresh_store: RefreshTokenStore | None = None


def get_code_store() -> AuthorizationCodeStore:
    global _code_store
    if _code_store is None:
        from auth_server.config import CODE_TTL_SECONDS

        _code_store = AuthorizationCodeStore(CODE_TTL_SECONDS)
    return _code_store


def get_refresh_store() -> RefreshTokenStore:
    global _refresh_store
    if _refresh_store is None:
        from auth_server.config import REFRESH_TOKEN_EXPIRES

        _refresh_store = RefreshTokenStore(REFRESH_TOKEN_EXPIRES)
    return _refresh_store
