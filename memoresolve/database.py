"""
Database schema and connection management.

Uses SQLite with SQLAlchemy for the pending-clarification ledger.
"""

from pathlib import Path
from sqlalchemy import create_engine, Boolean, Column, DateTime, Integer, JSON, String
from sqlalchemy.orm import declarative_base, sessionmaker

Base = declarative_base()


class PendingClarificationRecord(Base):
    """One parked batch per user."""

    __tablename__ = "pending_clarifications"

    user_id = Column(String, primary_key=True)
    domain = Column(String, nullable=False)
    origin_step_id = Column(String, nullable=False)
    kind = Column(String, nullable=False)
    allow_multiple = Column(Boolean, nullable=False, default=False)
    return_to = Column(String, nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    payload = Column(JSON, nullable=False)  # PendingClarification.to_dict()
    created_at = Column(DateTime, nullable=False)  # naive UTC
    expires_at = Column(DateTime, nullable=False, index=True)  # naive UTC


def _engine(db_path: Path):
    return create_engine(f"sqlite:///{db_path}")


def init_database(db_path: Path) -> None:
    """
    Initialize database and create tables.

    Args:
        db_path: Path to SQLite database file
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    Base.metadata.create_all(_engine(db_path))


def make_session_factory(db_path: Path):
    """
    Create tables if needed and return a bound session factory.

    Args:
        db_path: Path to SQLite database file

    Returns:
        sessionmaker bound to the database
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    engine = _engine(db_path)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def get_session(db_path: Path):
    """
    Get database session.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLAlchemy session
    """
    engine = _engine(db_path)
    Session = sessionmaker(bind=engine)
    return Session()
