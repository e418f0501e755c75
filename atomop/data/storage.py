"""Database schema and storage using SQLAlchemy."""

from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, Integer, String, Text, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from atomop.config import get_settings


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class PositionRecordDB(Base):
    """Ledger snapshot: one row per tracked position."""

    __tablename__ = "position_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # uint256 values do not fit SQL integers; stored as decimal strings.
    position_id = Column(String(80), unique=True, nullable=False, index=True)
    pool_id = Column(String(66), nullable=False, index=True)
    owner = Column(String(42), nullable=False, index=True)
    liquidity = Column(String(80), nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class ClearedPositionDB(Base):
    """Ledger snapshot: ids whose tracking was dropped while possibly still subscribed."""

    __tablename__ = "cleared_positions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    position_id = Column(String(80), unique=True, nullable=False, index=True)
    cleared_at = Column(DateTime, default=datetime.utcnow, nullable=False)


class NotificationDB(Base):
    """Journal of notifications applied by the ledger."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    kind = Column(String(20), nullable=False, index=True)
    position_id = Column(String(80), nullable=False, index=True)
    caller = Column(String(42), nullable=False)
    pool_id = Column(String(66), nullable=True)
    owner = Column(String(42), nullable=True)
    balance_change = Column(String(80), nullable=False)
    payload = Column(JSON, nullable=True)
    applied_at = Column(DateTime, default=datetime.utcnow, nullable=False, index=True)


class BatchSubmissionDB(Base):
    """Log of batch submissions and their outcomes."""

    __tablename__ = "batch_submissions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    fingerprint = Column(String(66), nullable=False, index=True)
    deadline = Column(Integer, nullable=False)
    native_value = Column(String(80), nullable=False, default="0")
    action_kinds = Column(JSON, nullable=False)
    status = Column(String(20), nullable=False, index=True)  # succeeded, failed
    tx_hash = Column(String(66), nullable=True)
    error = Column(Text, nullable=True)
    submitted_at = Column(DateTime, default=datetime.utcnow, nullable=False)


_engine = None
_SessionLocal = None


def init_db(db_url: str | None = None) -> None:
    """Initialize database connection and create tables."""
    global _engine, _SessionLocal

    if db_url is None:
        settings = get_settings()
        db_url = settings.db_url

    _engine = create_engine(
        db_url,
        echo=False,
        pool_pre_ping=True,
        connect_args={"check_same_thread": False} if "sqlite" in db_url else {},
    )

    Base.metadata.create_all(bind=_engine)
    _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine)


def get_session() -> Session:
    """Get a database session."""
    if _SessionLocal is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _SessionLocal()
