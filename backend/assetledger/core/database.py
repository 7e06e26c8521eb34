"""
Database Configuration
"""
from sqlalchemy import create_engine, insert
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from typing import Generator

from assetledger.core.config import settings

# Get the properly formatted database URL
db_url = settings.database_url


def build_engine(url: str, echo: bool = False):
    """Create an engine with the connection options each backend needs"""
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args = {
            "check_same_thread": False,
            "timeout": settings.SQLITE_BUSY_TIMEOUT_SECONDS,
        }
    return create_engine(url, connect_args=connect_args, echo=echo, pool_pre_ping=True)


# Create engine
engine = build_engine(db_url, echo=settings.DEBUG)

# Session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base model
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """
    Dependency that provides a database session.
    Ensures the session is closed after use.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def insert_if_missing(db: Session, model, values: dict, conflict_columns: list) -> None:
    """
    Insert a row unless one already exists for the given unique columns.

    Concurrent callers racing to create the same row all succeed; exactly one
    row is written. Used for records that are created lazily on first use.
    """
    dialect = db.get_bind().dialect.name
    if dialect == "sqlite":
        stmt = sqlite.insert(model).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
    elif dialect == "postgresql":
        stmt = postgresql.insert(model).values(**values).on_conflict_do_nothing(
            index_elements=conflict_columns
        )
    else:
        # No portable upsert; a racing duplicate surfaces as IntegrityError
        exists = db.query(model).filter_by(
            **{column: values[column] for column in conflict_columns}
        ).first()
        if exists:
            return
        stmt = insert(model).values(**values)
    db.execute(stmt)


def init_db(bind=None):
    """Initialize database tables"""
    # Import all models to register them with Base
    from assetledger.models import (  # noqa: F401
        FixedAsset, DepreciationEntry, FinancialPeriod, PeriodLockTransition,
        JournalEntry, JournalLine, AuditLog
    )
    Base.metadata.create_all(bind=bind or engine)
