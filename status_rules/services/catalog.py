"""
Entity catalog: jurisdictions, jurisdiction statuses, test types and results.

Lookups raise NotFound rather than returning None so that the write paths of
the rule stores can validate references with a single call. Deletes are
refused with Conflict while any rule still points at the entity.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from status_rules.errors import Conflict, NotFound
from status_rules.models.catalog import (
    Jurisdiction,
    JurisdictionStatus,
    TestType,
    TestTypeResult,
)
from status_rules.models.rules import (
    AccessRule,
    AccessRuleEntry,
    ResultMappingRule,
    ResultStatusMapping,
    SymptomDecisionEntry,
    SymptomDecisionTable,
    VersionedRuleDocument,
)
from status_rules.schemas.catalog import (
    JurisdictionResponse,
    JurisdictionStatusResponse,
    TestTypeResultResponse,
    TestTypeSummary,
)
from status_rules.services.audit import log_action

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

def get_jurisdiction(db: Session, jurisdiction_id: str) -> Jurisdiction:
    jurisdiction = db.get(Jurisdiction, jurisdiction_id)
    if jurisdiction is None:
        raise NotFound(f"Jurisdiction {jurisdiction_id} not found")
    return jurisdiction


def get_status(db: Session, jurisdiction_id: str, status_id: str) -> JurisdictionStatus:
    """Return the status only if it belongs to ``jurisdiction_id``."""
    status = db.get(JurisdictionStatus, status_id)
    if status is None or status.jurisdiction_id != jurisdiction_id:
        raise NotFound(f"Status {status_id} not found in jurisdiction {jurisdiction_id}")
    return status


def get_test_type(db: Session, test_type_id: str) -> TestType:
    test_type = db.get(TestType, test_type_id)
    if test_type is None:
        raise NotFound(f"Test type {test_type_id} not found")
    return test_type


def get_result(db: Session, test_type_id: str, result_id: str) -> TestTypeResult:
    """Return the result only if it belongs to ``test_type_id``."""
    result = db.get(TestTypeResult, result_id)
    if result is None or result.test_type_id != test_type_id:
        raise NotFound(f"Result {result_id} not found for test type {test_type_id}")
    return result


def statuses_by_id(db: Session, jurisdiction_id: str) -> dict[str, JurisdictionStatus]:
    rows = db.query(JurisdictionStatus).filter(JurisdictionStatus.jurisdiction_id == jurisdiction_id)
    return {status.id: status for status in rows}


def results_by_id(db: Session, test_type_id: str) -> dict[str, TestTypeResult]:
    rows = db.query(TestTypeResult).filter(TestTypeResult.test_type_id == test_type_id)
    return {result.id: result for result in rows}


# ---------------------------------------------------------------------------
# Listing
# ---------------------------------------------------------------------------

def list_jurisdictions(db: Session) -> list[Jurisdiction]:
    return db.query(Jurisdiction).order_by(Jurisdiction.name, Jurisdiction.id).all()


def list_statuses(db: Session, jurisdiction_id: str) -> list[JurisdictionStatus]:
    return list(get_jurisdiction(db, jurisdiction_id).statuses)


def list_test_types(db: Session) -> list[TestType]:
    return (
        db.query(TestType)
        .order_by(TestType.priority.asc().nulls_last(), TestType.name, TestType.id)
        .all()
    )


def list_results(db: Session, test_type_id: str) -> list[TestTypeResult]:
    return list(get_test_type(db, test_type_id).results)


# ---------------------------------------------------------------------------
# Jurisdictions
# ---------------------------------------------------------------------------

def _jurisdiction_state(jurisdiction: Jurisdiction) -> dict:
    return JurisdictionResponse.model_validate(jurisdiction).model_dump(mode="json")


def create_jurisdiction(
    db: Session,
    *,
    actor: str,
    name: str,
    region: str,
    country: str,
    annotation: str | None = None,
) -> Jurisdiction:
    jurisdiction = Jurisdiction(name=name, region=region, country=country)
    db.add(jurisdiction)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="jurisdiction",
        entity_id=jurisdiction.id,
        after=_jurisdiction_state(jurisdiction),
        annotation=annotation,
    )
    return jurisdiction


def update_jurisdiction(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    name: str,
    region: str,
    country: str,
    annotation: str | None = None,
) -> Jurisdiction:
    jurisdiction = get_jurisdiction(db, jurisdiction_id)
    before = _jurisdiction_state(jurisdiction)
    jurisdiction.name = name
    jurisdiction.region = region
    jurisdiction.country = country
    db.flush()
    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="jurisdiction",
        entity_id=jurisdiction.id,
        before=before,
        after=_jurisdiction_state(jurisdiction),
        annotation=annotation,
    )
    return jurisdiction


def delete_jurisdiction(db: Session, *, actor: str, jurisdiction_id: str, annotation: str | None = None) -> None:
    """Delete a jurisdiction and its statuses; refused while any rule targets it."""
    jurisdiction = get_jurisdiction(db, jurisdiction_id)
    for model, label in (
        (ResultMappingRule, "result-mapping rules"),
        (SymptomDecisionTable, "symptom decision tables"),
        (AccessRule, "access rules"),
        (VersionedRuleDocument, "versioned rule documents"),
    ):
        if db.query(model).filter(model.jurisdiction_id == jurisdiction_id).first() is not None:
            raise Conflict(
                f"Jurisdiction {jurisdiction_id} is still referenced by {label}",
                details={"jurisdiction_id": jurisdiction_id, "referenced_by": label},
            )
    before = _jurisdiction_state(jurisdiction)
    db.delete(jurisdiction)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="jurisdiction",
        entity_id=jurisdiction_id,
        before=before,
        annotation=annotation,
    )


# ---------------------------------------------------------------------------
# Jurisdiction statuses
# ---------------------------------------------------------------------------

def _status_state(status: JurisdictionStatus) -> dict:
    return JurisdictionStatusResponse.model_validate(status).model_dump(mode="json")


def create_status(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    name: str,
    description: str = "",
    annotation: str | None = None,
) -> JurisdictionStatus:
    jurisdiction = get_jurisdiction(db, jurisdiction_id)
    status = JurisdictionStatus(name=name, description=description)
    jurisdiction.statuses.append(status)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="jurisdiction-status",
        entity_id=status.id,
        after=_status_state(status),
        annotation=annotation,
    )
    return status


def update_status(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    status_id: str,
    name: str,
    description: str = "",
    annotation: str | None = None,
) -> JurisdictionStatus:
    status = get_status(db, jurisdiction_id, status_id)
    before = _status_state(status)
    status.name = name
    status.description = description
    db.flush()
    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="jurisdiction-status",
        entity_id=status.id,
        before=before,
        after=_status_state(status),
        annotation=annotation,
    )
    return status


def delete_status(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    status_id: str,
    annotation: str | None = None,
) -> None:
    status = get_status(db, jurisdiction_id, status_id)
    for model, label in (
        (ResultStatusMapping, "result-mapping rules"),
        (SymptomDecisionEntry, "symptom decision tables"),
        (AccessRuleEntry, "access rules"),
    ):
        if db.query(model).filter(model.jurisdiction_status_id == status_id).first() is not None:
            raise Conflict(
                f"Status {status_id} is still referenced by {label}",
                details={"status_id": status_id, "referenced_by": label},
            )
    before = _status_state(status)
    status.jurisdiction.statuses.remove(status)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="jurisdiction-status",
        entity_id=status_id,
        before=before,
        annotation=annotation,
    )


# ---------------------------------------------------------------------------
# Test types
# ---------------------------------------------------------------------------

def _test_type_state(test_type: TestType) -> dict:
    return TestTypeSummary.model_validate(test_type).model_dump(mode="json")


def create_test_type(
    db: Session,
    *,
    actor: str,
    name: str,
    priority: int | None = None,
    annotation: str | None = None,
) -> TestType:
    test_type = TestType(name=name, priority=priority)
    db.add(test_type)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="test-type",
        entity_id=test_type.id,
        after=_test_type_state(test_type),
        annotation=annotation,
    )
    return test_type


def update_test_type(
    db: Session,
    *,
    actor: str,
    test_type_id: str,
    name: str,
    priority: int | None = None,
    annotation: str | None = None,
) -> TestType:
    test_type = get_test_type(db, test_type_id)
    before = _test_type_state(test_type)
    test_type.name = name
    test_type.priority = priority
    db.flush()
    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="test-type",
        entity_id=test_type.id,
        before=before,
        after=_test_type_state(test_type),
        annotation=annotation,
    )
    return test_type


def delete_test_type(db: Session, *, actor: str, test_type_id: str, annotation: str | None = None) -> None:
    """Delete a test type together with its results; refused while a rule uses it."""
    test_type = get_test_type(db, test_type_id)
    rule = db.query(ResultMappingRule).filter(ResultMappingRule.test_type_id == test_type_id).first()
    if rule is not None:
        raise Conflict(
            f"Test type {test_type_id} is still referenced by rule {rule.id}",
            details={"test_type_id": test_type_id, "rule_id": rule.id},
        )
    before = _test_type_state(test_type)
    db.delete(test_type)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="test-type",
        entity_id=test_type_id,
        before=before,
        annotation=annotation,
    )


# ---------------------------------------------------------------------------
# Test type results
# ---------------------------------------------------------------------------

def _result_state(result: TestTypeResult) -> dict:
    return TestTypeResultResponse.model_validate(result).model_dump(mode="json")


def create_result(
    db: Session,
    *,
    actor: str,
    test_type_id: str,
    name: str,
    next_step: str = "",
    next_step_offset: int | None = None,
    result_expires_offset: int | None = None,
    annotation: str | None = None,
) -> TestTypeResult:
    test_type = get_test_type(db, test_type_id)
    result = TestTypeResult(
        name=name,
        next_step=next_step,
        next_step_offset=next_step_offset,
        result_expires_offset=result_expires_offset,
    )
    test_type.results.append(result)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="test-type-result",
        entity_id=result.id,
        after=_result_state(result),
        annotation=annotation,
    )
    return result


def update_result(
    db: Session,
    *,
    actor: str,
    test_type_id: str,
    result_id: str,
    name: str,
    next_step: str = "",
    next_step_offset: int | None = None,
    result_expires_offset: int | None = None,
    annotation: str | None = None,
) -> TestTypeResult:
    result = get_result(db, test_type_id, result_id)
    before = _result_state(result)
    result.name = name
    result.next_step = next_step
    result.next_step_offset = next_step_offset
    result.result_expires_offset = result_expires_offset
    db.flush()
    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="test-type-result",
        entity_id=result.id,
        before=before,
        after=_result_state(result),
        annotation=annotation,
    )
    return result


def delete_result(
    db: Session,
    *,
    actor: str,
    test_type_id: str,
    result_id: str,
    annotation: str | None = None,
) -> None:
    result = get_result(db, test_type_id, result_id)
    mapping = (
        db.query(ResultStatusMapping)
        .filter(ResultStatusMapping.test_type_result_id == result_id)
        .first()
    )
    if mapping is not None:
        raise Conflict(
            f"Result {result_id} is still referenced by rule {mapping.rule_id}",
            details={"result_id": result_id, "rule_id": mapping.rule_id},
        )
    before = _result_state(result)
    result.test_type.results.remove(result)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="test-type-result",
        entity_id=result_id,
        before=before,
        annotation=annotation,
    )
    logger.debug("Removed result %s from test type %s", result_id, test_type_id)
