"""Pydantic models for catalog (reference data) requests and responses."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Jurisdictions and their statuses
# ---------------------------------------------------------------------------

class JurisdictionIn(BaseModel):
    name: str = Field(..., min_length=1)
    region: str = ""
    country: str = ""


class JurisdictionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    region: str
    country: str


class JurisdictionStatusIn(BaseModel):
    name: str = Field(..., min_length=1)
    description: str = ""


class JurisdictionStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    jurisdiction_id: str
    name: str
    description: str | None = None


# ---------------------------------------------------------------------------
# Test types and results
# ---------------------------------------------------------------------------

class TestTypeIn(BaseModel):
    __test__ = False

    name: str = Field(..., min_length=1)
    priority: int | None = None


class TestTypeResultIn(BaseModel):
    __test__ = False

    name: str = Field(..., min_length=1)
    next_step: str = ""
    next_step_offset: int | None = Field(None, description="Hours until the guidance applies")
    result_expires_offset: int | None = Field(None, description="Hours until the result expires")


class TestTypeResultResponse(BaseModel):
    __test__ = False
    model_config = ConfigDict(from_attributes=True)

    id: str
    test_type_id: str
    name: str
    next_step: str | None = None
    next_step_offset: int | None = None
    result_expires_offset: int | None = None


class TestTypeResponse(BaseModel):
    __test__ = False
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    priority: int | None = None
    results: list[TestTypeResultResponse] = []


class TestTypeSummary(BaseModel):
    __test__ = False
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str
    priority: int | None = None
