"""Audit logging for administrative changes to rules and reference data."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from status_rules.models.audit import AuditLog

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    *,
    actor: str,
    action: str,
    entity_kind: str,
    entity_id: str,
    before: dict[str, Any] | None = None,
    after: dict[str, Any] | None = None,
    annotation: str | None = None,
) -> None:
    """Write an immutable audit log entry in the caller's transaction.

    ``annotation`` is stored as given; it is never interpreted here.
    """
    entry = AuditLog(
        actor=actor,
        action=action,
        entity_kind=entity_kind,
        entity_id=entity_id,
        before=before,
        after=after,
        annotation=annotation,
    )
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s/%s", actor, action, entity_kind, entity_id)
