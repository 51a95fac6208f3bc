"""Pydantic models for rule requests, responses and evaluation outcomes."""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from status_rules.schemas.catalog import JurisdictionResponse, TestTypeSummary


class AccessDecision(str, Enum):
    GRANTED = "granted"
    DENIED = "denied"


# ---------------------------------------------------------------------------
# Result-mapping rules
# ---------------------------------------------------------------------------

class ResultStatusMapping(BaseModel):
    """One entry of a rule's decision table: test result -> jurisdiction status."""
    model_config = ConfigDict(from_attributes=True, frozen=True)

    test_type_result_id: str
    jurisdiction_status_id: str


class RuleCreate(BaseModel):
    jurisdiction_id: str
    test_type_id: str
    priority: int | None = None
    mappings: list[ResultStatusMapping] = []


class RuleUpdate(BaseModel):
    priority: int | None = None
    mappings: list[ResultStatusMapping] = []


class RuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    priority: int | None = None
    jurisdiction: JurisdictionResponse
    test_type: TestTypeSummary
    mappings: list[ResultStatusMapping]


class Signal(BaseModel):
    """A test result observed for one subject."""
    model_config = ConfigDict(frozen=True)

    test_type_id: str
    result_id: str


class ResolveRequest(BaseModel):
    signals: list[Signal] = Field(..., min_length=1)


class StatusCandidate(BaseModel):
    """A status produced by one signal, together with the guidance for it."""

    rule_id: str
    priority: int | None = None
    test_type_id: str
    result_id: str
    status_id: str
    status_name: str
    next_step: str | None = None
    next_step_offset: int | None = None
    result_expires_offset: int | None = None


class ResolutionResponse(BaseModel):
    # None means no signal resolved; callers keep their own baseline status.
    status: StatusCandidate | None = None


# ---------------------------------------------------------------------------
# Symptom decision table (legacy)
# ---------------------------------------------------------------------------

class SymptomDecisionEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    gr1: bool
    gr2: bool
    jurisdiction_status_id: str
    next_step: str = ""


class SymptomTableIn(BaseModel):
    jurisdiction_id: str
    gr1_threshold: int
    gr2_threshold: int
    entries: list[SymptomDecisionEntry]


class SymptomTableResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    jurisdiction_id: str
    gr1_threshold: int
    gr2_threshold: int
    entries: list[SymptomDecisionEntry]


class SymptomEvaluateRequest(BaseModel):
    gr1_count: int
    gr2_count: int


class SymptomOutcome(BaseModel):
    gr1: bool
    gr2: bool
    status_id: str
    next_step: str | None = None


# ---------------------------------------------------------------------------
# Access rules
# ---------------------------------------------------------------------------

class AccessRuleEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    jurisdiction_status_id: str
    decision: AccessDecision


class AccessRuleIn(BaseModel):
    jurisdiction_id: str
    entries: list[AccessRuleEntry]


class AccessRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    jurisdiction_id: str
    entries: list[AccessRuleEntry]


class AccessDecisionResponse(BaseModel):
    jurisdiction_id: str
    status_id: str
    # None means the jurisdiction does not say; the caller applies its default.
    decision: AccessDecision | None = None


# ---------------------------------------------------------------------------
# Versioned rule documents
# ---------------------------------------------------------------------------

class AppVersionIn(BaseModel):
    version: str


class RuleDocumentIn(BaseModel):
    payload: str


class RuleDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    jurisdiction_id: str
    app_version: str
    payload: str
    last_updated: datetime


class SymptomsDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    app_version: str
    payload: str
    last_updated: datetime
