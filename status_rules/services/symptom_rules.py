"""
Symptom decision tables (legacy).

Each jurisdiction has at most one table: two symptom-group thresholds and
exactly four entries, one for every (gr1, gr2) combination. Because that
exhaustiveness is enforced on write, ``evaluate`` always finds an entry.
"""

from __future__ import annotations

import logging
from itertools import product
from typing import Any, Iterable

from sqlalchemy.orm import Session

from status_rules.errors import Conflict, InvalidArgument, InvalidReference, NotFound
from status_rules.models.rules import SymptomDecisionEntry, SymptomDecisionTable
from status_rules.schemas import rules as schemas
from status_rules.services import catalog
from status_rules.services.audit import log_action
from status_rules.services.validation import coerce_items, flush_unique

logger = logging.getLogger(__name__)

COMBINATIONS = frozenset(product((False, True), repeat=2))


def _table_state(table: SymptomDecisionTable) -> dict:
    return schemas.SymptomTableResponse.model_validate(table).model_dump(mode="json")


def _validate_table(
    db: Session,
    jurisdiction_id: str,
    gr1_threshold: int,
    gr2_threshold: int,
    entries: Iterable[Any] | None,
) -> list[schemas.SymptomDecisionEntry]:
    catalog.get_jurisdiction(db, jurisdiction_id)

    if gr1_threshold < 0 or gr2_threshold < 0:
        raise InvalidArgument(
            "Symptom thresholds must be non-negative",
            details={"gr1_threshold": gr1_threshold, "gr2_threshold": gr2_threshold},
        )

    items = coerce_items(schemas.SymptomDecisionEntry, entries, field="entries")
    keys = [(item.gr1, item.gr2) for item in items]
    if len(items) != len(COMBINATIONS) or set(keys) != COMBINATIONS:
        missing = sorted(COMBINATIONS - set(keys))
        raise InvalidArgument(
            "Entries must cover each (gr1, gr2) combination exactly once",
            details={
                "entry_count": len(items),
                "missing": [list(key) for key in missing],
            },
        )

    statuses = catalog.statuses_by_id(db, jurisdiction_id)
    foreign = [item.jurisdiction_status_id for item in items if item.jurisdiction_status_id not in statuses]
    if foreign:
        raise InvalidReference(
            "Entries reference statuses outside the jurisdiction",
            details={"jurisdiction_id": jurisdiction_id, "invalid_status_ids": foreign},
        )
    return items


def _entry_rows(items: list[schemas.SymptomDecisionEntry]) -> list[SymptomDecisionEntry]:
    return [
        SymptomDecisionEntry(
            gr1=item.gr1,
            gr2=item.gr2,
            jurisdiction_status_id=item.jurisdiction_status_id,
            next_step=item.next_step,
        )
        for item in items
    ]


def _find_table(db: Session, jurisdiction_id: str) -> SymptomDecisionTable | None:
    return (
        db.query(SymptomDecisionTable)
        .filter(SymptomDecisionTable.jurisdiction_id == jurisdiction_id)
        .first()
    )


def create_table(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    gr1_threshold: int,
    gr2_threshold: int,
    entries: Iterable[Any] | None,
    annotation: str | None = None,
) -> SymptomDecisionTable:
    items = _validate_table(db, jurisdiction_id, gr1_threshold, gr2_threshold, entries)
    if _find_table(db, jurisdiction_id) is not None:
        raise Conflict(
            "There is already a symptom decision table for this jurisdiction",
            details={"jurisdiction_id": jurisdiction_id},
        )

    table = SymptomDecisionTable(
        jurisdiction_id=jurisdiction_id,
        gr1_threshold=gr1_threshold,
        gr2_threshold=gr2_threshold,
        entries=_entry_rows(items),
    )
    db.add(table)
    flush_unique(
        db,
        "There is already a symptom decision table for this jurisdiction",
        {"jurisdiction_id": jurisdiction_id},
    )

    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="symptom-rule",
        entity_id=table.id,
        after=_table_state(table),
        annotation=annotation,
    )
    return table


def update_table(
    db: Session,
    *,
    actor: str,
    table_id: str,
    jurisdiction_id: str,
    gr1_threshold: int,
    gr2_threshold: int,
    entries: Iterable[Any] | None,
    annotation: str | None = None,
) -> SymptomDecisionTable:
    table = get_table(db, table_id)
    items = _validate_table(db, jurisdiction_id, gr1_threshold, gr2_threshold, entries)
    other = _find_table(db, jurisdiction_id)
    if other is not None and other.id != table.id:
        raise Conflict(
            "There is already a symptom decision table for this jurisdiction",
            details={"jurisdiction_id": jurisdiction_id, "table_id": other.id},
        )
    before = _table_state(table)

    # Old entries go first; the jurisdiction move is only flushed through flush_unique.
    table.entries.clear()
    db.flush()
    table.jurisdiction_id = jurisdiction_id
    table.gr1_threshold = gr1_threshold
    table.gr2_threshold = gr2_threshold
    table.entries.extend(_entry_rows(items))
    flush_unique(
        db,
        "There is already a symptom decision table for this jurisdiction",
        {"jurisdiction_id": jurisdiction_id},
    )
    db.refresh(table)

    log_action(
        db,
        actor=actor,
        action="update",
        entity_kind="symptom-rule",
        entity_id=table.id,
        before=before,
        after=_table_state(table),
        annotation=annotation,
    )
    return table


def delete_table(db: Session, *, actor: str, table_id: str, annotation: str | None = None) -> None:
    table = get_table(db, table_id)
    before = _table_state(table)
    db.delete(table)
    db.flush()
    log_action(
        db,
        actor=actor,
        action="delete",
        entity_kind="symptom-rule",
        entity_id=table_id,
        before=before,
        annotation=annotation,
    )


def get_table(db: Session, table_id: str) -> SymptomDecisionTable:
    table = db.get(SymptomDecisionTable, table_id)
    if table is None:
        raise NotFound(f"Symptom decision table {table_id} not found")
    return table


def get_table_by_jurisdiction(db: Session, jurisdiction_id: str) -> SymptomDecisionTable:
    table = _find_table(db, jurisdiction_id)
    if table is None:
        raise NotFound(f"Jurisdiction {jurisdiction_id} has no symptom decision table")
    return table


def evaluate(db: Session, jurisdiction_id: str, gr1_count: int, gr2_count: int) -> schemas.SymptomOutcome:
    """Map two symptom-group counts to the table's (status, next step)."""
    if gr1_count < 0 or gr2_count < 0:
        raise InvalidArgument(
            "Symptom counts must be non-negative",
            details={"gr1_count": gr1_count, "gr2_count": gr2_count},
        )
    table = get_table_by_jurisdiction(db, jurisdiction_id)
    gr1 = gr1_count >= table.gr1_threshold
    gr2 = gr2_count >= table.gr2_threshold
    entry = next(e for e in table.entries if e.gr1 == gr1 and e.gr2 == gr2)
    return schemas.SymptomOutcome(
        gr1=gr1,
        gr2=gr2,
        status_id=entry.jurisdiction_status_id,
        next_step=entry.next_step,
    )
