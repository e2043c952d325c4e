"""Database configuration and session management"""

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from cms_fee_import.config import settings


def _engine_options(url: str) -> dict:
    options = {"pool_pre_ping": True, "echo": settings.debug}
    if url.startswith("sqlite"):
        # One shared connection so in-memory databases survive across sessions and threads
        options.update(poolclass=StaticPool, connect_args={"check_same_thread": False})
    return options


# Database engine
engine = create_engine(settings.database_url, **_engine_options(settings.database_url))

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for models
Base = declarative_base()


def get_db():
    """Dependency to get database session"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
