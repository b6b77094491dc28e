"""
Database engine and session for provider state. In-memory SQLite by default.
"""
import threading
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from auth_server.config import DATABASE_URL
from auth_server.models import Base

# SQLite: in-memory needs StaticPool so all connections share the same DB
# File-based SQLite needs check_same_thread=False for FastAPI's threadpool
if DATABASE_URL.startswith("sqlite:///:memory:") or DATABASE_URL == "sqlite://":
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
else:
    connect_args = {"check_same_thread": False} if "sqlite" in DATABASE_URL else {}
    engine = create_engine(DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Every session shares one connection under StaticPool: units of work must not interleave on it
_db_lock = threading.RLock()


@contextmanager
def unit_of_work(db: Session):
    """Run one transaction under the process-wide DB lock. Commits on exit, rolls back on error."""
    with _db_lock:
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise


def init_db() -> None:
    """Create all tables."""
    with _db_lock:
        Base.metadata.create_all(bind=engine)


def get_db():
    """Dependency: yield a DB session."""
    db = SessionLocal()
    try:
        yield db
    finally:
        with _db_lock:
            db.close()
