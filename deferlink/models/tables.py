"""
Database models for the SQL storage backend.

Design principles:
  - pending_links rows are consumed by DELETE ... RETURNING (never updated)
  - referrals are insert-only; referee_id is unique (first writer wins)
"""

from sqlalchemy import (
    JSON,
    BigInteger,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase

from deferlink.storage.base import MAX_KEY_LENGTH

# JSONB on Postgres, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")

# SQLite only autoincrements INTEGER PRIMARY KEY
BigIntPK = BigInteger().with_variant(Integer(), "sqlite")


class Base(DeclarativeBase):
    pass


class PendingLinkRow(Base):
    __tablename__ = "pending_links"

    namespace = Column(String(20), primary_key=True)  # "pending" | "fingerprint"
    key = Column(String(MAX_KEY_LENGTH), primary_key=True)
    url = Column(Text, nullable=False)
    params = Column(JSONType, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    __table_args__ = (
        Index("ix_pending_links_expires_at", "expires_at"),
    )


class ReferralRow(Base):
    __tablename__ = "referrals"

    id = Column(BigIntPK, primary_key=True, autoincrement=True)
    referrer_id = Column(String(MAX_KEY_LENGTH), nullable=False, index=True)
    referee_id = Column(String(MAX_KEY_LENGTH), nullable=False, unique=True)
    referral_code = Column(String(MAX_KEY_LENGTH), nullable=False)
    timestamp = Column(DateTime(timezone=True), nullable=False)
    # "metadata" is reserved on declarative classes
    extra = Column("metadata", JSONType, nullable=True)
    recorded_at = Column(DateTime(timezone=True), server_default=func.now())
