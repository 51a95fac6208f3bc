"""
Rule configuration authored by administrators.

Every uniqueness invariant is backed by a database constraint so that two
concurrent writers cannot both create a rule for the same key.
"""

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from status_rules.models.catalog import new_id, utcnow
from status_rules.models.database import Base


# ---------------------------------------------------------------------------
# Result-mapping rule – (jurisdiction, test type) -> result -> status
# ---------------------------------------------------------------------------
class ResultMappingRule(Base):
    __tablename__ = "result_mapping_rules"

    id = Column(String(64), primary_key=True, default=new_id)
    jurisdiction_id = Column(String(64), ForeignKey("jurisdictions.id"), nullable=False)
    test_type_id = Column(String(64), ForeignKey("test_types.id"), nullable=False)
    priority = Column(Integer, nullable=True, comment="Lower value takes precedence")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    jurisdiction = relationship("Jurisdiction", lazy="joined")
    test_type = relationship("TestType", lazy="joined")
    mappings = relationship(
        "ResultStatusMapping",
        back_populates="rule",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        UniqueConstraint("jurisdiction_id", "test_type_id", name="uq_rule_jurisdiction_test_type"),
    )


class ResultStatusMapping(Base):
    __tablename__ = "result_status_mappings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    rule_id = Column(String(64), ForeignKey("result_mapping_rules.id"), nullable=False)
    test_type_result_id = Column(String(64), ForeignKey("test_type_results.id"), nullable=False)
    jurisdiction_status_id = Column(String(64), ForeignKey("jurisdiction_statuses.id"), nullable=False)

    rule = relationship("ResultMappingRule", back_populates="mappings")

    __table_args__ = (
        UniqueConstraint("rule_id", "test_type_result_id", name="uq_mapping_rule_result"),
        Index("ix_mapping_status", "jurisdiction_status_id"),
    )


# ---------------------------------------------------------------------------
# Symptom decision table (legacy) – exhaustive 2x2 matrix per jurisdiction
# ---------------------------------------------------------------------------
class SymptomDecisionTable(Base):
    __tablename__ = "symptom_decision_tables"

    id = Column(String(64), primary_key=True, default=new_id)
    jurisdiction_id = Column(String(64), ForeignKey("jurisdictions.id"), nullable=False)
    gr1_threshold = Column(Integer, nullable=False, comment="Group 1 symptom count threshold")
    gr2_threshold = Column(Integer, nullable=False, comment="Group 2 symptom count threshold")
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    jurisdiction = relationship("Jurisdiction", lazy="joined")
    entries = relationship(
        "SymptomDecisionEntry",
        back_populates="table",
        cascade="all, delete-orphan",
        order_by=lambda: [SymptomDecisionEntry.gr1, SymptomDecisionEntry.gr2],
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("jurisdiction_id", name="uq_symptom_table_jurisdiction"),)


class SymptomDecisionEntry(Base):
    __tablename__ = "symptom_decision_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    table_id = Column(String(64), ForeignKey("symptom_decision_tables.id"), nullable=False)
    gr1 = Column(Boolean, nullable=False)
    gr2 = Column(Boolean, nullable=False)
    jurisdiction_status_id = Column(String(64), ForeignKey("jurisdiction_statuses.id"), nullable=False)
    next_step = Column(Text, default="")

    table = relationship("SymptomDecisionTable", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("table_id", "gr1", "gr2", name="uq_symptom_entry_combination"),
        Index("ix_symptom_entry_status", "jurisdiction_status_id"),
    )


# ---------------------------------------------------------------------------
# Access rule – status -> granted | denied
# ---------------------------------------------------------------------------
class AccessRule(Base):
    __tablename__ = "access_rules"

    id = Column(String(64), primary_key=True, default=new_id)
    jurisdiction_id = Column(String(64), ForeignKey("jurisdictions.id"), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    jurisdiction = relationship("Jurisdiction", lazy="joined")
    entries = relationship(
        "AccessRuleEntry",
        back_populates="access_rule",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (UniqueConstraint("jurisdiction_id", name="uq_access_rule_jurisdiction"),)


class AccessRuleEntry(Base):
    __tablename__ = "access_rule_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    access_rule_id = Column(String(64), ForeignKey("access_rules.id"), nullable=False)
    jurisdiction_status_id = Column(String(64), ForeignKey("jurisdiction_statuses.id"), nullable=False)
    decision = Column(
        Enum("granted", "denied", name="access_decision_enum"),
        nullable=False,
    )

    access_rule = relationship("AccessRule", back_populates="entries")

    __table_args__ = (
        UniqueConstraint("access_rule_id", "jurisdiction_status_id", name="uq_access_entry_status"),
        Index("ix_access_entry_status", "jurisdiction_status_id"),
    )


# ---------------------------------------------------------------------------
# Versioned rule documents – opaque payloads for client-side evaluation
# ---------------------------------------------------------------------------
class AppVersion(Base):
    __tablename__ = "app_versions"

    id = Column(Integer, primary_key=True, autoincrement=True)
    version = Column(String(32), unique=True, nullable=False, comment="Canonical x.y or x.y.z")
    created_at = Column(DateTime, default=utcnow, nullable=False)


class VersionedRuleDocument(Base):
    __tablename__ = "versioned_rule_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    jurisdiction_id = Column(String(64), nullable=False)
    app_version = Column(String(32), nullable=False)
    payload = Column(Text, nullable=False, comment="Opaque serialized ruleset")
    last_updated = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("jurisdiction_id", "app_version", name="uq_document_jurisdiction_version"),
    )


class VersionedSymptomsDocument(Base):
    __tablename__ = "versioned_symptoms_documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    app_version = Column(String(32), unique=True, nullable=False)
    payload = Column(Text, nullable=False, comment="Opaque serialized symptom list")
    last_updated = Column(DateTime, default=utcnow, nullable=False)
