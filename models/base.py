"""
Defines the declarative base shared by all ORM models.

Models record when a row was last written so stored chats can be listed
newest first.
"""

from datetime import UTC, datetime

from sqlalchemy import Column, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(UTC)


class BaseModel(Base):
    """
    Base model class for database entities.

    :ivar updated_at: Timezone-aware timestamp of the most recent write to the row.
    :type updated_at: datetime
    """
    __abstract__ = True

    updated_at = Column(DateTime(timezone=True), default=utc_now, onupdate=utc_now)
