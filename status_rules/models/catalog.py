"""
Reference data every rule is validated against.

Jurisdictions own their status vocabulary; test types own their results.
Both are long-lived and only change through the administrative services.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import relationship

from status_rules.models.database import Base


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Jurisdiction – an administrative region with its own statuses
# ---------------------------------------------------------------------------
class Jurisdiction(Base):
    __tablename__ = "jurisdictions"

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    region = Column(String(128), nullable=False, comment="State or province")
    country = Column(String(128), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    statuses = relationship(
        "JurisdictionStatus",
        back_populates="jurisdiction",
        cascade="all, delete-orphan",
        order_by="JurisdictionStatus.created_at",
        lazy="selectin",
    )


class JurisdictionStatus(Base):
    __tablename__ = "jurisdiction_statuses"

    id = Column(String(64), primary_key=True, default=new_id)
    jurisdiction_id = Column(String(64), ForeignKey("jurisdictions.id"), nullable=False)
    name = Column(String(128), nullable=False)
    description = Column(Text, default="")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    jurisdiction = relationship("Jurisdiction", back_populates="statuses")

    __table_args__ = (Index("ix_statuses_jurisdiction", "jurisdiction_id"),)


# ---------------------------------------------------------------------------
# Test types and their discrete outcomes
# ---------------------------------------------------------------------------
class TestType(Base):
    __tablename__ = "test_types"
    __test__ = False  # not a pytest class

    id = Column(String(64), primary_key=True, default=new_id)
    name = Column(String(128), nullable=False)
    priority = Column(Integer, nullable=True, comment="Ordering hint for clients")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    results = relationship(
        "TestTypeResult",
        back_populates="test_type",
        cascade="all, delete-orphan",
        order_by="TestTypeResult.created_at",
        lazy="selectin",
    )


class TestTypeResult(Base):
    __tablename__ = "test_type_results"
    __test__ = False

    id = Column(String(64), primary_key=True, default=new_id)
    test_type_id = Column(String(64), ForeignKey("test_types.id"), nullable=False)
    name = Column(String(128), nullable=False)
    next_step = Column(Text, default="", comment="Guidance shown for this result")
    next_step_offset = Column(Integer, nullable=True, comment="Hours until the guidance applies")
    result_expires_offset = Column(Integer, nullable=True, comment="Hours until the result expires")
    created_at = Column(DateTime, default=utcnow, nullable=False)

    test_type = relationship("TestType", back_populates="results")

    __table_args__ = (Index("ix_results_test_type", "test_type_id"),)
