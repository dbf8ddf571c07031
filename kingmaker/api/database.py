"""
SQLAlchemy engine and session for campaign storage.
Tables (players, campaigns, settlements) live in models.py. Defaults to a SQLite
file beside this module; set DATABASE_URL to point a deployment at Postgres.
"""

import os
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base


def _database_url() -> str:
    url = os.environ.get("DATABASE_URL")
    if not url:
        return f"sqlite:///{os.path.join(os.path.dirname(os.path.abspath(__file__)), 'kingdom.db')}"
    # SQLAlchemy 2.x only accepts the postgresql:// scheme
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


DATABASE_URL = _database_url()

# The API serves requests from a thread pool, so SQLite connections must be shareable
_connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, connect_args=_connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """Request-scoped session for campaign and settlement queries."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db():
    """Create the player, campaign and settlement tables if missing."""
    from . import models  # noqa: F401  registers tables on Base
    Base.metadata.create_all(bind=engine)
