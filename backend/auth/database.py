"""
BankDash - Database Configuration

SQLModel database setup with connection pooling.
Supports PostgreSQL (production) and SQLite (development).

Usage:
    from backend.auth.database import get_engine, init_db

    engine = get_engine(settings.DATABASE_URL)
    init_db(engine)  # Creates tables
"""

from typing import Callable

from sqlmodel import SQLModel, Session, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool


def get_engine(database_url: str, echo: bool = False) -> Engine:
    """
    Create SQLAlchemy engine with appropriate configuration.

    Args:
        database_url: Connection string
        echo: Log SQL statements

    Returns:
        SQLAlchemy Engine
    """
    if database_url.startswith("sqlite"):
        # SQLite configuration; StaticPool keeps in-memory databases alive
        return create_engine(
            database_url,
            echo=echo,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )

    # PostgreSQL configuration with connection pooling
    return create_engine(
        database_url,
        echo=echo,
        pool_size=5,
        max_overflow=10,
        pool_pre_ping=True,
    )


def init_db(engine: Engine) -> None:
    """
    Initialize database tables.

    Safe to call multiple times (uses CREATE IF NOT EXISTS).
    """
    # Import models to register them with SQLModel
    from backend.auth.models import Account  # noqa: F401

    SQLModel.metadata.create_all(engine)


def get_session_factory(engine: Engine) -> Callable[[], Session]:
    """
    Create a session factory bound to engine.

    Returns:
        Callable that creates new database sessions
    """
    def session_factory() -> Session:
        return Session(engine, expire_on_commit=False)

    return session_factory
