"""Access rules: per-jurisdiction mapping from status to granted/denied."""

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy.orm import Session

from status_rules.errors import Conflict, InvalidArgument, InvalidReference, NotFound
from status_rules.models.rules import AccessRule, AccessRuleEntry
from status_rules.schemas import rules as schemas
from status_rules.services import catalog
from status_rules.services.audit import log_action
from status_rules.services.validation import coerce_items, find_duplicates, flush_unique

logger = logging.getLogger(__name__)


def _access_rule_state(access_rule: AccessRule) -> dict:
    return schemas.AccessRuleResponse.model_validate(access_rule).model_dump(mode="json")


def _validate_entries(
    db: Session,
    jurisdiction_id: str,
    entries: Iterable[Any] | None,
) -> list[schemas.AccessRuleEntry]:
    catalog.get_jurisdiction(db, jurisdiction_id)
    items = coerce_items(schemas.AccessRuleEntry, entries, field="entries")

    duplicates = find_duplicates(item.jurisdiction_status_id for item in items)
    if duplicates:
        raise InvalidArgument(
            "A status may appear only once per access rule",
            details={"duplicate_status_ids": duplicates},
        )

    statuses = catalog.statuses_by_id(db, jurisdiction_id)
    foreign = [item.jurisdiction_status_id for item in items if item.jurisdiction_status_id not in statuses]
    if foreign:
        raise InvalidReference(
            "Entries reference statuses outside the jurisdiction",
            details={"jurisdiction_id": jurisdiction_id, "invalid_status_ids": foreign},
        )
    return items


def _entry_rows(items: list[schemas.AccessRuleEntry]) -> list[AccessRuleEntry]:
    return [
        AccessRuleEntry(jurisdiction_status_id=item.jurisdiction_status_id, decision=item.decision.value)
        for item in items
    ]


def _find_access_rule(db: Session, jurisdiction_id: str) -> AccessRule | None:
    return db.query(AccessRule).filter(AccessRule.jurisdiction_id == jurisdiction_id).first()


def create_access_rule(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    entries: Iterable[Any] | None,
    annotation: str | None = None,
) -> AccessRule:
    items = _validate_entries(db, jurisdiction_id, entries)
    if _find_access_rule(db, jurisdiction_id) is not None:
        raise Conflict(
            "There is already an access rule for this jurisdiction",
            details={"jurisdiction_id": jurisdiction_id},
        )

    access_rule = AccessRule(jurisdiction_id=jurisdiction_id, entries=_entry_rows(items))
    db.add(access_rule)
    flush_unique(
        db,
        "There is already an access rule for this jurisdiction",
        {"jurisdiction_id": jurisdiction_id},
    )

    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="access-rule",
        entity_id=access_rule.id,
        after=_access_rule_state(access_rule),
        annotation=annotation,
    )
    return access_rule


def update_access_rule(
    db: Session,
    *,
    actor: str,
    access_rule_id: str,
    jurisdiction_id: str,
    entries: Iterable[Any] | None,
    annotation: str | None = None,
) -> AccessRule:
    access_rule = get_access_rule(db, access_rule_id)
    items = _validate_entries(db, jurisdiction_id, entries)
    other = _find_access_rule(db, jurisdiction_id)
    if other is not None and other.id != access_rule.id:
        raise Conflict(
            "There is already an access rule for this jurisdiction",
            details={"jurisdiction_id": jurisdiction_id, "access_rule_id": other.id},
        )
    before = _access_rule_state(access_rule)

    # Old entries go first; the jurisdiction move is only flushed through flush_unique.
    access_rule.entries.clear()
    db.flush()
    access_rule.jurisdiction_id = jurisdiction_id
    access_rule.entries.extend(_entry_rows(items))
    flush_unique(
        db,
        "There is already an access rule for this jurisdiction",
        {"jurisdiction_id": jurisdiction_id},
    )
    db.refresh(access_rule)

    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="access-rule",
        entity_id=access_rule.id,
        before=before,
        after=_access_rule_state(access_rule),
        annotation=annotation,
    )
    return access_rule


def delete_access_rule(db: Session, *, actor: str, access_rule_id: str, annotation: str | None = None) -> None:
    access_rule = get_access_rule(db, access_rule_id)
    before = _access_rule_state(access_rule)
    db.delete(access_rule)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="access-rule",
        entity_id=access_rule_id,
        before=before,
        annotation=annotation,
    )


def get_access_rule(db: Session, access_rule_id: str) -> AccessRule:
    access_rule = db.get(AccessRule, access_rule_id)
    if access_rule is None:
        raise NotFound(f"Access rule {access_rule_id} not found")
    return access_rule


def get_access_rule_by_jurisdiction(db: Session, jurisdiction_id: str) -> AccessRule:
    access_rule = _find_access_rule(db, jurisdiction_id)
    if access_rule is None:
        raise NotFound(f"Jurisdiction {jurisdiction_id} has no access rule")
    return access_rule


def decide(db: Session, jurisdiction_id: str, status_id: str) -> schemas.AccessDecision | None:
    """Return granted/denied for the status, or None when the jurisdiction is silent.

    None covers both a jurisdiction without an access rule and a rule without
    an entry for ``status_id``; no default is imputed here.
    """
    access_rule = _find_access_rule(db, jurisdiction_id)
    if access_rule is None:
        logger.debug("No access rule for jurisdiction %s", jurisdiction_id)
        return None
    for entry in access_rule.entries:
        if entry.jurisdiction_status_id == status_id:
            return schemas.AccessDecision(entry.decision)
    return None
