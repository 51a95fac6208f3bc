"""
Error taxonomy for the rules engine.

Every failure surfaced by a service is one of these; the HTTP layer maps
``code`` to a status and serializes ``to_response()``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response format."""

    code: str
    message: str
    details: dict[str, Any] = {}


class RuleEngineError(Exception):
    """Base exception for the rules engine."""

    code = "RULE_ENGINE_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(code=self.code, message=self.message, details=self.details)


class NotFound(RuleEngineError):
    """A rule, status, test type, result or document does not exist."""

    code = "NOT_FOUND"


class InvalidReference(RuleEngineError):
    """An entry points outside the rule's test type or jurisdiction."""

    code = "INVALID_REFERENCE"


class InvalidArgument(RuleEngineError):
    """Structural problem: wrong entry count, duplicate keys, bad enum values."""

    code = "INVALID_ARGUMENT"


class Conflict(RuleEngineError):
    """Uniqueness violation, or delete of an entity that is still referenced."""

    code = "CONFLICT"


class Ambiguous(RuleEngineError):
    """Several candidate statuses tie on priority."""

    code = "AMBIGUOUS"

    def __init__(self, message: str, candidates: list | None = None):
        self.candidates = list(candidates or [])
        super().__init__(
            message,
            details={
                "candidates": [
                    {
                        "rule_id": c.rule_id,
                        "test_type_id": c.test_type_id,
                        "result_id": c.result_id,
                        "status_id": c.status_id,
                        "priority": c.priority,
                    }
                    for c in self.candidates
                ]
            },
        )
