"""
Input coercion for service calls.

Services accept either parsed pydantic models or plain dicts. Every item is
validated and all problems are collected before one InvalidArgument is raised,
so a caller sees every bad entry at once.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, TypeVar

from pydantic import BaseModel, ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from status_rules.errors import Conflict, InvalidArgument

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def coerce_items(model: type[M], items: Iterable[Any] | None, *, field: str) -> list[M]:
    """Validate each item against ``model``; raise InvalidArgument listing every error."""
    coerced: list[M] = []
    errors: list[str] = []
    for index, item in enumerate(items or []):
        try:
            coerced.append(model.model_validate(item))
        except ValidationError as exc:
            for error in exc.errors():
                location = ".".join(str(part) for part in error["loc"])
                errors.append(f"{field}[{index}].{location}: {error['msg']}")
    if errors:
        raise InvalidArgument(f"Invalid {field}", details={"errors": errors})
    return coerced


def find_duplicates(keys: Iterable[Any]) -> list[Any]:
    """Return the keys that occur more than once, in first-seen order."""
    seen: set = set()
    duplicates: list = []
    for key in keys:
        if key in seen and key not in duplicates:
            duplicates.append(key)
        seen.add(key)
    return duplicates


def flush_unique(db: Session, message: str, details: dict[str, Any] | None = None) -> None:
    """Flush pending writes; a unique-constraint violation becomes Conflict.

    Concurrent writers can both pass the existence check; the unique
    constraint in the database decides which one wins.
    """
    try:
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Unique constraint rejected write: %s", message)
        raise Conflict(message, details=details) from exc
