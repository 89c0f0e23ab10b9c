"""
ChannelLink Database Configuration

SQLAlchemy engine and session management.
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base, Session
from typing import Generator

from app.config import settings

# =============================================================================
# Database Engine
# =============================================================================

engine_kwargs = {
    "pool_pre_ping": True,
    "echo": settings.database_echo,
}

if settings.database_url.startswith("sqlite"):
    # SQLite is used for local runs and tests only
    engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    engine_kwargs["pool_size"] = 10
    engine_kwargs["max_overflow"] = 20

engine = create_engine(settings.database_url, **engine_kwargs)

# =============================================================================
# Session Factory
# =============================================================================

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

# =============================================================================
# Base Model
# =============================================================================

Base = declarative_base()


# =============================================================================
# Dependency
# =============================================================================

def get_db() -> Generator[Session, None, None]:
    """
    Database session dependency for FastAPI.

    Yields a database session and ensures it's closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


# =============================================================================
# Upserts
# =============================================================================

def upsert_statement(db: Session, model):
    """
    Build a dialect-specific INSERT supporting ON CONFLICT clauses.

    PostgreSQL in production, SQLite in tests. Both expose
    ``on_conflict_do_update`` / ``on_conflict_do_nothing`` and ``excluded``.
    """
    if db.get_bind().dialect.name == "postgresql":
        from sqlalchemy.dialects.postgresql import insert
    else:
        from sqlalchemy.dialects.sqlite import insert
    return insert(model)
