"""
Engine, session factory and schema bootstrap.
"""

import logging

from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker

from config import settings
from models import Base

logger = logging.getLogger(__name__)


def _engine_kwargs(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"connect_args": {"check_same_thread": False, "timeout": settings.DB_POOL_TIMEOUT}}
    kwargs = {
        "pool_size": settings.DB_POOL_SIZE,
        "max_overflow": settings.DB_MAX_OVERFLOW,
        "pool_timeout": settings.DB_POOL_TIMEOUT,
        "pool_pre_ping": True,
    }
    if url.startswith("postgresql"):
        kwargs["connect_args"] = {"options": f"-c statement_timeout={settings.DB_STATEMENT_TIMEOUT_MS}"}
    return kwargs


engine = create_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, **_engine_kwargs(settings.DATABASE_URL))
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_us_group_user_round ON user_scores (group_id, user_id, round_number)",
    "CREATE INDEX IF NOT EXISTS idx_gm_user_id         ON group_members (user_id)",
    "CREATE INDEX IF NOT EXISTS idx_pa_user_active     ON profile_avatars (user_id, is_active)",
]


def create_tables(bind=None):
    """Create all tables if they don't already exist."""
    Base.metadata.create_all(bind=bind or engine)
    logger.info("✓ Database tables ensured")


def create_indexes(bind=None):
    """Create read-path indexes (idempotent — uses IF NOT EXISTS)."""
    with (bind or engine).connect() as conn:
        for stmt in INDEXES:
            conn.execute(text(stmt))
        conn.commit()
    logger.info("✓ Database indexes ensured")


def get_db():
    """Yield a request-scoped session; uncommitted work is discarded on close."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
