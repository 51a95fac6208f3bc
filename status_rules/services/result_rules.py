"""
Result-mapping rules: for each (jurisdiction, test type) a decision table from
test result to jurisdiction status, plus the resolution of several observed
signals down to one status.

Resolution policy:
- a signal whose test type has no rule, or whose result is not mapped,
  contributes nothing;
- the candidate from the rule with the lowest ``priority`` wins, rules without
  a priority rank after every prioritised rule;
- candidates tied on rank that map to different statuses raise Ambiguous;
- no candidate at all returns None, which is not the same as "healthy".
"""

from __future__ import annotations

import logging
from typing import Any, Iterable

from sqlalchemy.orm import Session

from status_rules.errors import Ambiguous, Conflict, InvalidArgument, InvalidReference, NotFound
from status_rules.models.rules import ResultMappingRule, ResultStatusMapping
from status_rules.schemas import rules as schemas
from status_rules.services import catalog
from status_rules.services.audit import log_action
from status_rules.services.validation import coerce_items, find_duplicates, flush_unique

logger = logging.getLogger(__name__)


def _rule_state(rule: ResultMappingRule) -> dict:
    return {
        "id": rule.id,
        "jurisdiction_id": rule.jurisdiction_id,
        "test_type_id": rule.test_type_id,
        "priority": rule.priority,
        "mappings": sorted(
            (
                {
                    "test_type_result_id": m.test_type_result_id,
                    "jurisdiction_status_id": m.jurisdiction_status_id,
                }
                for m in rule.mappings
            ),
            key=lambda m: m["test_type_result_id"],
        ),
    }


def _find_rule(db: Session, jurisdiction_id: str, test_type_id: str) -> ResultMappingRule | None:
    return (
        db.query(ResultMappingRule)
        .filter(
            ResultMappingRule.jurisdiction_id == jurisdiction_id,
            ResultMappingRule.test_type_id == test_type_id,
        )
        .first()
    )


def _validate_mappings(
    db: Session,
    jurisdiction_id: str,
    test_type_id: str,
    mappings: Iterable[Any] | None,
) -> list[schemas.ResultStatusMapping]:
    """Check structure first, then every reference against the catalog."""
    items = coerce_items(schemas.ResultStatusMapping, mappings, field="mappings")

    duplicates = find_duplicates(item.test_type_result_id for item in items)
    if duplicates:
        raise InvalidArgument(
            "A test type result may be mapped only once per rule",
            details={"duplicate_result_ids": duplicates},
        )

    results = catalog.results_by_id(db, test_type_id)
    statuses = catalog.statuses_by_id(db, jurisdiction_id)
    foreign_results = [i.test_type_result_id for i in items if i.test_type_result_id not in results]
    foreign_statuses = [i.jurisdiction_status_id for i in items if i.jurisdiction_status_id not in statuses]
    if foreign_results or foreign_statuses:
        raise InvalidReference(
            "Mappings reference results or statuses outside the rule's test type or jurisdiction",
            details={
                "test_type_id": test_type_id,
                "jurisdiction_id": jurisdiction_id,
                "invalid_result_ids": foreign_results,
                "invalid_status_ids": foreign_statuses,
            },
        )
    return items


def _mapping_rows(items: list[schemas.ResultStatusMapping]) -> list[ResultStatusMapping]:
    return [
        ResultStatusMapping(
            test_type_result_id=item.test_type_result_id,
            jurisdiction_status_id=item.jurisdiction_status_id,
        )
        for item in items
    ]


# ---------------------------------------------------------------------------
# Administration
# ---------------------------------------------------------------------------

def create_rule(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    test_type_id: str,
    priority: int | None,
    mappings: Iterable[Any] | None,
    annotation: str | None = None,
) -> ResultMappingRule:
    jurisdiction = catalog.get_jurisdiction(db, jurisdiction_id)
    test_type = catalog.get_test_type(db, test_type_id)

    conflict_details = {"jurisdiction_id": jurisdiction_id, "test_type_id": test_type_id}
    existing = _find_rule(db, jurisdiction_id, test_type_id)
    if existing is not None:
        raise Conflict(
            "There is already a rule for this jurisdiction and test type",
            details={**conflict_details, "rule_id": existing.id},
        )

    items = _validate_mappings(db, jurisdiction_id, test_type_id, mappings)

    rule = ResultMappingRule(
        jurisdiction=jurisdiction,
        test_type=test_type,
        priority=priority,
        mappings=_mapping_rows(items),
    )
    db.add(rule)
    flush_unique(db, "There is already a rule for this jurisdiction and test type", conflict_details)

    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="rule",
        entity_id=rule.id,
        after=_rule_state(rule),
        annotation=annotation,
    )
    logger.info(
        "Created rule %s for jurisdiction %s / test type %s with %d mappings",
        rule.id,
        jurisdiction_id,
        test_type_id,
        len(items),
    )
    return rule


def update_rule(
    db: Session,
    *,
    actor: str,
    rule_id: str,
    priority: int | None,
    mappings: Iterable[Any] | None,
    annotation: str | None = None,
) -> ResultMappingRule:
    """Replace priority and mappings; the jurisdiction and test type never change."""
    rule = get_rule(db, rule_id)
    items = _validate_mappings(db, rule.jurisdiction_id, rule.test_type_id, mappings)
    before = _rule_state(rule)

    rule.priority = priority
    # Old rows must be gone before the new ones hit uq_mapping_rule_result.
    rule.mappings.clear()
    db.flush()
    rule.mappings.extend(_mapping_rows(items))
    db.flush()

    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="rule",
        entity_id=rule.id,
        before=before,
        after=_rule_state(rule),
        annotation=annotation,
    )
    return rule


def delete_rule(db: Session, *, actor: str, rule_id: str, annotation: str | None = None) -> None:
    """Delete a rule. A missing id is NotFound, never a silent no-op."""
    rule = get_rule(db, rule_id)
    before = _rule_state(rule)
    db.delete(rule)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="rule",
        entity_id=rule_id,
        before=before,
        annotation=annotation,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------

def get_rule(db: Session, rule_id: str) -> ResultMappingRule:
    rule = db.get(ResultMappingRule, rule_id)
    if rule is None:
        raise NotFound(f"Rule {rule_id} not found")
    return rule


def list_rules_by_jurisdiction(db: Session, jurisdiction_id: str) -> list[ResultMappingRule]:
    """Rules of one jurisdiction by ascending priority (nulls last), then test type id."""
    catalog.get_jurisdiction(db, jurisdiction_id)
    return (
        db.query(ResultMappingRule)
        .filter(ResultMappingRule.jurisdiction_id == jurisdiction_id)
        .order_by(
            ResultMappingRule.priority.asc().nulls_last(),
            ResultMappingRule.test_type_id,
        )
        .all()
    )


def _rank(candidate: schemas.StatusCandidate) -> tuple[bool, int]:
    return (candidate.priority is None, candidate.priority or 0)


def resolve_status(
    db: Session,
    jurisdiction_id: str,
    signals: Iterable[Any],
) -> schemas.StatusCandidate | None:
    """Select the single status that the given signals lead to, or None."""
    catalog.get_jurisdiction(db, jurisdiction_id)
    observed = list(dict.fromkeys(coerce_items(schemas.Signal, signals, field="signals")))
    if not observed:
        return None

    test_type_ids = {signal.test_type_id for signal in observed}
    rules = {
        rule.test_type_id: rule
        for rule in db.query(ResultMappingRule).filter(
            ResultMappingRule.jurisdiction_id == jurisdiction_id,
            ResultMappingRule.test_type_id.in_(test_type_ids),
        )
    }
    statuses = catalog.statuses_by_id(db, jurisdiction_id)

    candidates: list[schemas.StatusCandidate] = []
    for signal in observed:
        rule = rules.get(signal.test_type_id)
        if rule is None:
            continue
        status_id = next(
            (m.jurisdiction_status_id for m in rule.mappings if m.test_type_result_id == signal.result_id),
            None,
        )
        if status_id is None:
            continue
        result = catalog.get_result(db, signal.test_type_id, signal.result_id)
        candidates.append(
            schemas.StatusCandidate(
                rule_id=rule.id,
                priority=rule.priority,
                test_type_id=signal.test_type_id,
                result_id=signal.result_id,
                status_id=status_id,
                status_name=statuses[status_id].name,
                next_step=result.next_step,
                next_step_offset=result.next_step_offset,
                result_expires_offset=result.result_expires_offset,
            )
        )

    if not candidates:
        logger.debug("No status resolved for jurisdiction %s from %d signals", jurisdiction_id, len(observed))
        return None

    best = min(_rank(c) for c in candidates)
    winners = [c for c in candidates if _rank(c) == best]
    if len({c.status_id for c in winners}) > 1:
        raise Ambiguous(
            f"{len(winners)} candidate statuses tie on priority {winners[0].priority}",
            candidates=winners,
        )
    return winners[0]
