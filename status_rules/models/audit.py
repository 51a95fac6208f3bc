import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Index, String, Text

from status_rules.models.database import Base


# ---------------------------------------------------------------------------
# Audit Log – immutable trail of administrative changes
# ---------------------------------------------------------------------------
class AuditLog(Base):
    __tablename__ = "audit_log"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    actor = Column(String(128), nullable=False, comment="User or service identity")
    action = Column(String(16), nullable=False, comment="create | update | delete")
    entity_kind = Column(String(64), nullable=False)
    entity_id = Column(String(128), nullable=False)
    before = Column(JSON, nullable=True, comment="State prior to the change")
    after = Column(JSON, nullable=True, comment="State after the change")
    annotation = Column(Text, nullable=True, comment="Free-text note supplied by the caller")
    timestamp = Column(DateTime, default=lambda: datetime.now(timezone.utc), nullable=False)

    __table_args__ = (
        Index("ix_audit_timestamp", "timestamp"),
        Index("ix_audit_entity", "entity_kind", "entity_id"),
    )
