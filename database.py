"""Database module for Goal Reminder Service.

Two tables:
- kv_store: namespaced key -> JSON document (reminder collection, settings)
- scheduled_notifications: pending notifications awaiting delivery

IMPORTANT: fire_at is stored as a UTC DateTime object, NOT string.
SQLite returns it naive; use clock.as_utc when reading.
"""

import enum

from sqlalchemy import Column, DateTime, Enum as SQLEnum, Index, Integer, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

# SQLAlchemy Base
Base = declarative_base()


class NotificationStatusEnum(enum.Enum):
    """Lifecycle of a scheduled notification"""
    PENDING = "pending"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


class KeyValue(Base):
    """One namespaced JSON document.

    The reminder collection lives in a single row and is always read and
    written whole.
    """

    __tablename__ = "kv_store"

    key = Column(String, primary_key=True, doc="Namespace key, e.g. 'motivations'")
    value = Column(Text, nullable=False, doc="JSON-serialized document")
    updated_at = Column(DateTime(timezone=True), nullable=False, doc="Last write time (UTC)")

    def __repr__(self):
        return f"<KeyValue(key={self.key}, size={len(self.value or '')})>"


class ScheduledNotification(Base):
    """A notification waiting for its fire time.

    The id is the opaque handle returned to callers of the scheduler.
    """

    __tablename__ = "scheduled_notifications"

    id = Column(String, primary_key=True, doc="Notification handle (UUID)")
    title = Column(String, nullable=False)
    body = Column(Text, nullable=False)

    # CRITICAL: DateTime object, NOT string!
    fire_at = Column(DateTime(timezone=True), nullable=False, doc="When to deliver (UTC)")

    status = Column(
        SQLEnum(NotificationStatusEnum),
        default=NotificationStatusEnum.PENDING,
        nullable=False,
        index=True
    )
    attempts = Column(Integer, default=0, nullable=False, doc="Delivery attempts so far")
    created_at = Column(DateTime(timezone=True), nullable=False)
    delivered_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_status_fire_at', 'status', 'fire_at'),
    )

    def __repr__(self):
        return (
            f"<ScheduledNotification(id={self.id}, fire_at={self.fire_at}, "
            f"status={self.status.value if self.status else None})>"
        )


def make_engine(database_url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, echo=False, **kwargs)
    return create_engine(database_url, echo=False)


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


def init_db(engine) -> None:
    """Create all tables."""
    Base.metadata.create_all(bind=engine)
