# backend/app/db.py
from typing import Generator, Optional

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from app import settings

# --- SQLAlchemy Base ---------------------------------------------------------
class Base(DeclarativeBase):
    pass

# --- Engine / Session --------------------------------------------------------
def _connect_args(url: str) -> dict:
    # bounded waits so a dead backend fails fast instead of hanging a request
    if url.startswith("sqlite"):
        return {"timeout": settings.DB_CONNECT_TIMEOUT_SECONDS, "check_same_thread": False}
    if url.startswith("postgresql"):
        return {"connect_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS}
    return {}


def make_engine(url: str) -> Engine:
    # pool_pre_ping avoids “stale” connections on container restarts
    return create_engine(
        url,
        pool_pre_ping=True,
        future=True,
        connect_args=_connect_args(url),
    )


DATABASE_URL = settings.DATABASE_URL
engine = make_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)

# Read-only fallback hop (replica); unset means the chain goes primary -> cache
secondary_engine: Optional[Engine] = (
    make_engine(settings.SECONDARY_DATABASE_URL) if settings.SECONDARY_DATABASE_URL else None
)
SecondarySessionLocal = (
    sessionmaker(bind=secondary_engine, autoflush=False, expire_on_commit=False, future=True)
    if secondary_engine is not None
    else None
)

# FastAPI dependency
def get_db() -> Generator:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

# Used by the /health route
def healthcheck() -> dict:
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))
    return {"status": "ok"}
