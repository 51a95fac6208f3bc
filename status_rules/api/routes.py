"""
FastAPI routes – administrative and client API for the rules engine.

Authentication happens upstream; the gateway forwards the caller's identity in
``X-Actor`` and an optional audit note in ``X-Audit-Note``. Routes own the
transaction: services flush, routes commit.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from status_rules.config import settings
from status_rules.models.database import get_db
from status_rules.schemas.catalog import (
    JurisdictionIn,
    JurisdictionResponse,
    JurisdictionStatusIn,
    JurisdictionStatusResponse,
    TestTypeIn,
    TestTypeResponse,
    TestTypeResultIn,
    TestTypeResultResponse,
)
from status_rules.schemas.health import HealthResponse
from status_rules.schemas.rules import (
    AccessDecisionResponse,
    AccessRuleIn,
    AccessRuleResponse,
    AppVersionIn,
    ResolutionResponse,
    ResolveRequest,
    RuleCreate,
    RuleDocumentIn,
    RuleDocumentResponse,
    RuleResponse,
    RuleUpdate,
    SymptomsDocumentResponse,
    SymptomEvaluateRequest,
    SymptomOutcome,
    SymptomTableIn,
    SymptomTableResponse,
)
from status_rules.services import (
    access_rules,
    app_versions,
    catalog,
    result_rules,
    symptom_rules,
    versioned_rules,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def get_actor(x_actor: str = Header(..., alias="X-Actor", min_length=1)) -> str:
    return x_actor


def get_audit_note(x_audit_note: str | None = Header(None, alias="X-Audit-Note")) -> str | None:
    return x_audit_note


# ---------------------------------------------------------------------------
# Health check
# ---------------------------------------------------------------------------

@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        logger.exception("Database health check failed")
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
    )


# ---------------------------------------------------------------------------
# Catalog: jurisdictions and statuses
# ---------------------------------------------------------------------------

@router.get("/jurisdictions", response_model=list[JurisdictionResponse])
def list_jurisdictions(db: Session = Depends(get_db)):
    return catalog.list_jurisdictions(db)


@router.post("/jurisdictions", response_model=JurisdictionResponse, status_code=201)
def create_jurisdiction(
    body: JurisdictionIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    jurisdiction = catalog.create_jurisdiction(db, actor=actor, annotation=note, **body.model_dump())
    db.commit()
    return jurisdiction


@router.put("/jurisdictions/{jurisdiction_id}", response_model=JurisdictionResponse)
def update_jurisdiction(
    jurisdiction_id: str,
    body: JurisdictionIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    jurisdiction = catalog.update_jurisdiction(
        db, actor=actor, annotation=note, jurisdiction_id=jurisdiction_id, **body.model_dump()
    )
    db.commit()
    return jurisdiction


@router.delete("/jurisdictions/{jurisdiction_id}", status_code=204)
def delete_jurisdiction(
    jurisdiction_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    catalog.delete_jurisdiction(db, actor=actor, jurisdiction_id=jurisdiction_id, annotation=note)
    db.commit()
    return Response(status_code=204)


@router.get("/jurisdictions/{jurisdiction_id}/statuses", response_model=list[JurisdictionStatusResponse])
def list_statuses(jurisdiction_id: str, db: Session = Depends(get_db)):
    return catalog.list_statuses(db, jurisdiction_id)


@router.post(
    "/jurisdictions/{jurisdiction_id}/statuses",
    response_model=JurisdictionStatusResponse,
    status_code=201,
)
def create_status(
    jurisdiction_id: str,
    body: JurisdictionStatusIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    status = catalog.create_status(
        db, actor=actor, annotation=note, jurisdiction_id=jurisdiction_id, **body.model_dump()
    )
    db.commit()
    return status


@router.put(
    "/jurisdictions/{jurisdiction_id}/statuses/{status_id}",
    response_model=JurisdictionStatusResponse,
)
def update_status(
    jurisdiction_id: str,
    status_id: str,
    body: JurisdictionStatusIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    status = catalog.update_status(
        db,
        actor=actor,
        annotation=note,
        jurisdiction_id=jurisdiction_id,
        status_id=status_id,
        **body.model_dump(),
    )
    db.commit()
    return status


@router.delete("/jurisdictions/{jurisdiction_id}/statuses/{status_id}", status_code=204)
def delete_status(
    jurisdiction_id: str,
    status_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    catalog.delete_status(
        db, actor=actor, jurisdiction_id=jurisdiction_id, status_id=status_id, annotation=note
    )
    db.commit()
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Catalog: test types and results
# ---------------------------------------------------------------------------

@router.get("/test-types", response_model=list[TestTypeResponse])
def list_test_types(db: Session = Depends(get_db)):
    return catalog.list_test_types(db)


@router.post("/test-types", response_model=TestTypeResponse, status_code=201)
def create_test_type(
    body: TestTypeIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    test_type = catalog.create_test_type(db, actor=actor, annotation=note, **body.model_dump())
    db.commit()
    return test_type


@router.put("/test-types/{test_type_id}", response_model=TestTypeResponse)
def update_test_type(
    test_type_id: str,
    body: TestTypeIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    test_type = catalog.update_test_type(
        db, actor=actor, annotation=note, test_type_id=test_type_id, **body.model_dump()
    )
    db.commit()
    return test_type


@router.delete("/test-types/{test_type_id}", status_code=204)
def delete_test_type(
    test_type_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    catalog.delete_test_type(db, actor=actor, test_type_id=test_type_id, annotation=note)
    db.commit()
    return Response(status_code=204)


@router.get("/test-types/{test_type_id}/results", response_model=list[TestTypeResultResponse])
def list_results(test_type_id: str, db: Session = Depends(get_db)):
    return catalog.list_results(db, test_type_id)


@router.post(
    "/test-types/{test_type_id}/results",
    response_model=TestTypeResultResponse,
    status_code=201,
)
def create_result(
    test_type_id: str,
    body: TestTypeResultIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    result = catalog.create_result(
        db, actor=actor, annotation=note, test_type_id=test_type_id, **body.model_dump()
    )
    db.commit()
    return result


@router.put("/test-types/{test_type_id}/results/{result_id}", response_model=TestTypeResultResponse)
def update_result(
    test_type_id: str,
    result_id: str,
    body: TestTypeResultIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    result = catalog.update_result(
        db,
        actor=actor,
        annotation=note,
        test_type_id=test_type_id,
        result_id=result_id,
        **body.model_dump(),
    )
    db.commit()
    return result


@router.delete("/test-types/{test_type_id}/results/{result_id}", status_code=204)
def delete_result(
    test_type_id: str,
    result_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    catalog.delete_result(
        db, actor=actor, test_type_id=test_type_id, result_id=result_id, annotation=note
    )
    db.commit()
    return Response(status_code=204)


# ---------------------------------------------------------------------------
# Result-mapping rules
# ---------------------------------------------------------------------------

@router.post("/rules", response_model=RuleResponse, status_code=201)
def create_rule(
    body: RuleCreate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    rule = result_rules.create_rule(
        db,
        actor=actor,
        jurisdiction_id=body.jurisdiction_id,
        test_type_id=body.test_type_id,
        priority=body.priority,
        mappings=body.mappings,
        annotation=note,
    )
    db.commit()
    return rule


@router.get("/rules/{rule_id}", response_model=RuleResponse)
def get_rule(rule_id: str, db: Session = Depends(get_db)):
    return result_rules.get_rule(db, rule_id)


@router.put("/rules/{rule_id}", response_model=RuleResponse)
def update_rule(
    rule_id: str,
    body: RuleUpdate,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    rule = result_rules.update_rule(
        db,
        actor=actor,
        rule_id=rule_id,
        priority=body.priority,
        mappings=body.mappings,
        annotation=note,
    )
    db.commit()
    return rule


@router.delete("/rules/{rule_id}", status_code=204)
def delete_rule(
    rule_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    result_rules.delete_rule(db, actor=actor, rule_id=rule_id, annotation=note)
    db.commit()
    return Response(status_code=204)


@router.get("/jurisdictions/{jurisdiction_id}/rules", response_model=list[RuleResponse])
def list_rules(jurisdiction_id: str, db: Session = Depends(get_db)):
    return result_rules.list_rules_by_jurisdiction(db, jurisdiction_id)


@router.post("/jurisdictions/{jurisdiction_id}/resolve-status", response_model=ResolutionResponse)
def resolve_status(jurisdiction_id: str, body: ResolveRequest, db: Session = Depends(get_db)):
    """Reduce the subject's test results to one status; ``status`` is null when none applies."""
    return ResolutionResponse(status=result_rules.resolve_status(db, jurisdiction_id, body.signals))


# ---------------------------------------------------------------------------
# Symptom decision tables
# ---------------------------------------------------------------------------

@router.post("/symptom-rules", response_model=SymptomTableResponse, status_code=201)
def create_symptom_rule(
    body: SymptomTableIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    table = symptom_rules.create_table(db, actor=actor, annotation=note, **body.model_dump())
    db.commit()
    return table


@router.put("/symptom-rules/{table_id}", response_model=SymptomTableResponse)
def update_symptom_rule(
    table_id: str,
    body: SymptomTableIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    table = symptom_rules.update_table(
        db, actor=actor, annotation=note, table_id=table_id, **body.model_dump()
    )
    db.commit()
    return table


@router.delete("/symptom-rules/{table_id}", status_code=204)
def delete_symptom_rule(
    table_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    symptom_rules.delete_table(db, actor=actor, table_id=table_id, annotation=note)
    db.commit()
    return Response(status_code=204)


@router.get("/jurisdictions/{jurisdiction_id}/symptom-rule", response_model=SymptomTableResponse)
def get_symptom_rule(jurisdiction_id: str, db: Session = Depends(get_db)):
    return symptom_rules.get_table_by_jurisdiction(db, jurisdiction_id)


@router.post("/jurisdictions/{jurisdiction_id}/symptom-rule/evaluate", response_model=SymptomOutcome)
def evaluate_symptoms(jurisdiction_id: str, body: SymptomEvaluateRequest, db: Session = Depends(get_db)):
    return symptom_rules.evaluate(db, jurisdiction_id, body.gr1_count, body.gr2_count)


# ---------------------------------------------------------------------------
# Access rules
# ---------------------------------------------------------------------------

@router.post("/access-rules", response_model=AccessRuleResponse, status_code=201)
def create_access_rule(
    body: AccessRuleIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    access_rule = access_rules.create_access_rule(
        db,
        actor=actor,
        jurisdiction_id=body.jurisdiction_id,
        entries=body.entries,
        annotation=note,
    )
    db.commit()
    return access_rule


@router.put("/access-rules/{access_rule_id}", response_model=AccessRuleResponse)
def update_access_rule(
    access_rule_id: str,
    body: AccessRuleIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    access_rule = access_rules.update_access_rule(
        db,
        actor=actor,
        access_rule_id=access_rule_id,
        jurisdiction_id=body.jurisdiction_id,
        entries=body.entries,
        annotation=note,
    )
    db.commit()
    return access_rule


@router.delete("/access-rules/{access_rule_id}", status_code=204)
def delete_access_rule(
    access_rule_id: str,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    access_rules.delete_access_rule(db, actor=actor, access_rule_id=access_rule_id, annotation=note)
    db.commit()
    return Response(status_code=204)


@router.get("/jurisdictions/{jurisdiction_id}/access-rule", response_model=AccessRuleResponse)
def get_access_rule(jurisdiction_id: str, db: Session = Depends(get_db)):
    return access_rules.get_access_rule_by_jurisdiction(db, jurisdiction_id)


@router.get(
    "/jurisdictions/{jurisdiction_id}/access/{status_id}",
    response_model=AccessDecisionResponse,
)
def decide_access(jurisdiction_id: str, status_id: str, db: Session = Depends(get_db)):
    return AccessDecisionResponse(
        jurisdiction_id=jurisdiction_id,
        status_id=status_id,
        decision=access_rules.decide(db, jurisdiction_id, status_id),
    )


# ---------------------------------------------------------------------------
# App versions and versioned documents
# ---------------------------------------------------------------------------

@router.get("/app-versions", response_model=list[str])
def list_app_versions(db: Session = Depends(get_db)):
    return app_versions.list_app_versions(db)


@router.post("/app-versions", response_model=str, status_code=201)
def create_app_version(
    body: AppVersionIn,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    version = app_versions.create_app_version(db, actor=actor, version=body.version, annotation=note)
    db.commit()
    return version


@router.put(
    "/jurisdictions/{jurisdiction_id}/rule-documents/{app_version}",
    response_model=RuleDocumentResponse,
)
def put_rule_document(
    jurisdiction_id: str,
    app_version: str,
    body: RuleDocumentIn,
    response: Response,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    document, created = versioned_rules.put(
        db,
        actor=actor,
        jurisdiction_id=jurisdiction_id,
        app_version=app_version,
        payload=body.payload,
        annotation=note,
    )
    db.commit()
    response.status_code = 201 if created else 200
    return document


@router.get(
    "/jurisdictions/{jurisdiction_id}/rule-documents/{app_version}",
    response_model=RuleDocumentResponse,
)
def get_rule_document(jurisdiction_id: str, app_version: str, db: Session = Depends(get_db)):
    return versioned_rules.get(db, jurisdiction_id, app_version)


@router.get("/jurisdictions/{jurisdiction_id}/rule-documents", response_model=RuleDocumentResponse)
def get_client_rule_document(
    jurisdiction_id: str,
    app_version: str | None = None,
    db: Session = Depends(get_db),
):
    """Client lookup: may serve the document of an older registered app version."""
    return versioned_rules.get_for_client(db, jurisdiction_id, app_version)


@router.put("/symptom-documents/{app_version}", response_model=SymptomsDocumentResponse)
def put_symptoms_document(
    app_version: str,
    body: RuleDocumentIn,
    response: Response,
    db: Session = Depends(get_db),
    actor: str = Depends(get_actor),
    note: str | None = Depends(get_audit_note),
):
    document, created = versioned_rules.put_symptoms(
        db, actor=actor, app_version=app_version, payload=body.payload, annotation=note
    )
    db.commit()
    response.status_code = 201 if created else 200
    return document


@router.get("/symptom-documents/{app_version}", response_model=SymptomsDocumentResponse)
def get_symptoms_document(app_version: str, db: Session = Depends(get_db)):
    return versioned_rules.get_symptoms(db, app_version)


@router.get("/symptom-documents", response_model=SymptomsDocumentResponse)
def get_client_symptoms_document(app_version: str | None = None, db: Session = Depends(get_db)):
    """Client lookup: may serve the symptoms of an older registered app version."""
    return versioned_rules.get_symptoms_for_client(db, app_version)
