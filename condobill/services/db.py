"""Database connection and session management."""

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from condobill.services.config import load_config


def create_db_engine(database_url: str) -> Engine:
    """Engine for a database URL (SQLite uses StaticPool for simplicity in dev/test)."""
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(database_url, pool_pre_ping=True)


engine = create_db_engine(load_config().database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


__all__ = ["SessionLocal", "create_db_engine", "engine"]
