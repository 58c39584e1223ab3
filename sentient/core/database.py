"""
Database configuration and connection management.

This module provides:
- SQLAlchemy engine and session management
- Connection pooling with sane defaults
- Test database support (in-memory SQLite)
- Translation of driver failures into BackendError kinds
"""
import logging
from typing import Optional, Generator
from contextlib import contextmanager
from sqlalchemy import create_engine, MetaData, Table, Column, Integer, String, DateTime, Boolean, Numeric, Text, Index
from sqlalchemy.exc import SQLAlchemyError, DBAPIError, DisconnectionError, NoSuchTableError, OperationalError
from sqlalchemy.pool import QueuePool, StaticPool
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.sql import func
import os

from sentient.core.config import settings
from sentient.core.errors import BackendError, BackendErrorKind

logger = logging.getLogger("sentient.database")

# SQLAlchemy metadata for table definitions
metadata = MetaData()

# Connection pooling configuration
POOL_SIZE = 10
MAX_OVERFLOW = 20
POOL_TIMEOUT = 30
POOL_RECYCLE = 3600  # Recycle connections after 1 hour

# Global engine and session factory
_engine = None
_SessionLocal = None


def get_database_url() -> Optional[str]:
    """
    Get the database URL from settings or environment.

    For testing, use TEST_DATABASE_URL if available.
    """
    test_url = os.getenv("TEST_DATABASE_URL")
    if test_url:
        return test_url

    return settings.DATABASE_URL


def init_engine(database_url: Optional[str] = None):
    """
    Initialize the SQLAlchemy engine.

    SQLite URLs get a single shared connection so an in-memory database
    survives across sessions.

    Args:
        database_url: Optional override for DATABASE_URL
    """
    global _engine, _SessionLocal

    url = database_url or get_database_url()

    if not url:
        raise ValueError(
            "DATABASE_URL is not configured. "
            "Set DATABASE_URL in environment or .env file."
        )

    if _engine is not None:
        _engine.dispose()

    if url.startswith("sqlite"):
        _engine = create_engine(
            url,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    else:
        _engine = create_engine(
            url,
            poolclass=QueuePool,
            pool_size=POOL_SIZE,
            max_overflow=MAX_OVERFLOW,
            pool_timeout=POOL_TIMEOUT,
            pool_recycle=POOL_RECYCLE,
            pool_pre_ping=True,
            echo=False,  # Set to True for SQL query logging
        )

    # Create session factory
    _SessionLocal = sessionmaker(
        autocommit=False,
        autoflush=False,
        bind=_engine
    )

    return _engine


def dispose_engine() -> None:
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None


def get_engine():
    """Get the current SQLAlchemy engine."""
    global _engine
    if _engine is None:
        init_engine()
    return _engine


def get_session_factory():
    """Get the session factory."""
    global _SessionLocal
    if _SessionLocal is None:
        init_engine()
    return _SessionLocal


@contextmanager
def get_db_session():
    """
    Context manager for database sessions.

    Usage:
        with get_db_session() as session:
            session.execute(...)
            session.commit()
    """
    SessionLocal = get_session_factory()
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator[Session, None, None]:
    """FastAPI-friendly DB dependency that yields a Session and closes it.

    Use this with `Depends(get_db)` in route functions to ensure the session
    lifecycle works with both sync and async endpoints under FastAPI.
    """
    SessionLocal = get_session_factory()
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def create_all_tables():
    """
    Create all tables defined in metadata.

    This is idempotent - tables that already exist will not be recreated.
    """
    engine = get_engine()
    metadata.create_all(bind=engine)


def drop_all_tables():
    """
    Drop all tables defined in metadata.

    WARNING: This is destructive! Only use in tests or development.
    """
    engine = get_engine()
    metadata.drop_all(bind=engine)


def check_connection() -> bool:
    """
    Check if database connection is available.

    Returns:
        True if connection successful, False otherwise
    """
    try:
        engine = get_engine()
        with engine.connect() as conn:
            conn.exec_driver_sql("SELECT 1")
        return True
    except (SQLAlchemyError, ValueError) as e:
        logger.warning(f"Database connection check failed: {e}")
        return False


# Postgres SQLSTATE codes worth telling apart
_PG_PERMISSION_CODES = {"42501"}  # insufficient_privilege (RLS / grants)
_PG_SCHEMA_CODES = {"42P01", "42703", "42883", "3F000"}  # undefined table/column/function/schema
_PG_RECURSION_CODES = {"42P17"}  # infinite recursion in policy


def classify_store_error(exc: SQLAlchemyError) -> BackendErrorKind:
    """Map a SQLAlchemy/driver failure onto a BackendErrorKind."""
    if isinstance(exc, NoSuchTableError):
        return BackendErrorKind.SCHEMA
    if isinstance(exc, DisconnectionError):
        return BackendErrorKind.NETWORK
    if isinstance(exc, DBAPIError):
        if exc.connection_invalidated:
            return BackendErrorKind.NETWORK
        pgcode = getattr(exc.orig, "pgcode", None) or getattr(exc.orig, "sqlstate", None)
        if pgcode in _PG_PERMISSION_CODES:
            return BackendErrorKind.PERMISSION
        if pgcode in _PG_SCHEMA_CODES or pgcode in _PG_RECURSION_CODES:
            return BackendErrorKind.SCHEMA
        if isinstance(exc, OperationalError):
            # sqlite reports missing tables as OperationalError without a SQLSTATE
            if str(exc.orig).startswith("no such table"):
                return BackendErrorKind.SCHEMA
            return BackendErrorKind.NETWORK
    return BackendErrorKind.UNKNOWN


@contextmanager
def store_call(session: Session, operation: str):
    """Run record-store statements, rolling back and raising BackendError on failure."""
    try:
        yield
    except SQLAlchemyError as exc:
        session.rollback()
        kind = classify_store_error(exc)
        logger.warning(
            f"[store] {operation} failed: {exc.__class__.__name__}",
            extra={"error_kind": kind.value},
        )
        raise BackendError(f"{operation} failed", kind=kind, operation=operation) from exc


# User profiles (one per identity user)
profiles = Table(
    'profiles',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('email', String(320), nullable=True),
    Column('full_name', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Subscription payments
payments = Table(
    'payments',
    metadata,
    Column('id', String(36), primary_key=True),
    Column('user_id', String(100), nullable=True, index=True),
    Column('payment_method', String(20), nullable=False),  # paypal, usdt
    Column('amount', Numeric(10, 2), nullable=False),
    Column('currency', String(10), nullable=False, server_default='USD'),
    Column('status', String(20), nullable=False, server_default='pending'),  # pending, completed, failed, cancelled
    Column('payment_proof_url', Text, nullable=True),
    Column('paypal_payment_id', String(100), nullable=True),
    Column('transaction_hash', String(200), nullable=True),
    Column('notes', Text, nullable=True),
    Column('discord_invite_sent', Boolean, nullable=False, server_default='false'),
    Column('admin_verified', Boolean, nullable=False, server_default='false'),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Column('updated_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    # Composite index for the per-user history query: (user_id, created_at)
    Index('idx_payments_user_created', 'user_id', 'created_at'),
    Index('idx_payments_created_at', 'created_at'),
    Index('idx_payments_status_verified', 'status', 'admin_verified'),
)

# Admin role membership
admin_users = Table(
    'admin_users',
    metadata,
    Column('id', String(100), primary_key=True),
    Column('role', String(20), nullable=False, server_default='admin'),  # admin, super_admin
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
)

# Admin audit log for verification decisions
admin_audit = Table(
    'admin_audit',
    metadata,
    Column('id', Integer, primary_key=True, autoincrement=True),
    Column('actor_id', String(100), nullable=False),
    Column('actor_email', String(320), nullable=True),
    Column('action', String(100), nullable=False),  # "payment_approved", "payment_rejected"
    Column('target_payment_id', String(36), nullable=True),
    Column('target_user_id', String(100), nullable=True),
    Column('payload_json', Text, nullable=True),
    Column('created_at', DateTime(timezone=True), server_default=func.now(), nullable=False),
    Index('idx_admin_audit_actor', 'actor_id'),
    Index('idx_admin_audit_payment', 'target_payment_id'),
    Index('idx_admin_audit_created_at', 'created_at'),
)
