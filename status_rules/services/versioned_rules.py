"""
Versioned documents served to clients by app version.

Two kinds are stored, both as opaque payloads the engine never looks inside:

- rule documents, addressed by (jurisdiction, app version);
- symptoms documents, addressed by app version alone.

Writes are upserts: a put replaces the payload of an existing key and never
merges. Documents may only be written for, and read by, registered app
versions. ``get``/``get_symptoms`` match the key exactly; the ``*_for_client``
lookups are the only ones that may serve a document written for an older app
version.
"""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from status_rules.config import settings
from status_rules.errors import InvalidArgument, NotFound
from status_rules.models.catalog import utcnow
from status_rules.models.rules import VersionedRuleDocument, VersionedSymptomsDocument
from status_rules.schemas.rules import RuleDocumentResponse, SymptomsDocumentResponse
from status_rules.services.app_versions import require_registered, resolve_client_version
from status_rules.services.audit import log_action
from status_rules.services.validation import flush_unique

logger = logging.getLogger(__name__)

_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}

_RESPONSES = {
    VersionedRuleDocument: RuleDocumentResponse,
    VersionedSymptomsDocument: SymptomsDocumentResponse,
}


def _document_state(document) -> dict:
    return _RESPONSES[type(document)].model_validate(document).model_dump(mode="json")


def _find(db: Session, model, key: dict[str, Any]):
    return db.query(model).filter_by(**key).populate_existing().first()


def _upsert(db: Session, model, key: dict[str, Any], payload: str) -> None:
    values = {**key, "payload": payload, "last_updated": utcnow()}
    insert = _UPSERT_INSERTS.get(db.get_bind().dialect.name)
    if insert is None:
        # Dialects without ON CONFLICT go through the ORM; the unique
        # constraint still rejects a concurrent duplicate insert.
        document = _find(db, model, key)
        if document is None:
            db.add(model(**values))
        else:
            document.payload = payload
            document.last_updated = values["last_updated"]
        flush_unique(db, "Document was written concurrently", dict(key))
        return

    table = model.__table__
    stmt = insert(table).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[table.c[name] for name in key],
        set_={"payload": stmt.excluded.payload, "last_updated": stmt.excluded.last_updated},
    )
    db.execute(stmt)


def _put(
    db: Session,
    model,
    key: dict[str, Any],
    payload: str,
    *,
    actor: str,
    entity_kind: str,
    entity_id: str,
    annotation: str | None,
):
    if payload is None:
        raise InvalidArgument("Payload is required", details=dict(key))

    existing = _find(db, model, key)
    before = _document_state(existing) if existing is not None else None

    _upsert(db, model, key, payload)
    document = _find(db, model, key)
    created = existing is None
    logger.info("%s %s %s", "Created" if created else "Replaced", entity_kind, entity_id)

    log_action(
        db,
        actor=actor,
        action="create" if created else "update",
        entity_kind=entity_kind,
        entity_id=entity_id,
        before=before,
        after=_document_state(document),
        annotation=annotation,
    )
    return document, created


# ---------------------------------------------------------------------------
# Rule documents
# ---------------------------------------------------------------------------

def put(
    db: Session,
    *,
    actor: str,
    jurisdiction_id: str,
    app_version: str,
    payload: str,
    annotation: str | None = None,
) -> tuple[VersionedRuleDocument, bool]:
    """Create or replace the document for the key; returns (document, created)."""
    if not jurisdiction_id:
        raise InvalidArgument("Jurisdiction id is required")
    canonical = require_registered(db, app_version)
    return _put(
        db,
        VersionedRuleDocument,
        {"jurisdiction_id": jurisdiction_id, "app_version": canonical},
        payload,
        actor=actor,
        entity_kind="versioned-rules",
        entity_id=f"{jurisdiction_id}@{canonical}",
        annotation=annotation,
    )


def get(db: Session, jurisdiction_id: str, app_version: str) -> VersionedRuleDocument:
    """Exact-key lookup; never falls back to another version."""
    canonical = require_registered(db, app_version)
    document = _find(db, VersionedRuleDocument, {"jurisdiction_id": jurisdiction_id, "app_version": canonical})
    if document is None:
        raise NotFound(
            f"No rule document for jurisdiction {jurisdiction_id} and app version {canonical}",
            details={"jurisdiction_id": jurisdiction_id, "app_version": canonical},
        )
    return document


def _client_version(db: Session, app_version: str | None) -> str:
    if app_version is not None and not settings.CLIENT_VERSION_FALLBACK:
        return require_registered(db, app_version)
    return resolve_client_version(db, app_version)


def get_for_client(db: Session, jurisdiction_id: str, app_version: str | None = None) -> VersionedRuleDocument:
    """Serve a client: no version means the latest registered one, and an
    unregistered version falls back to the newest registered version below it.

    The fallback is skipped when ``CLIENT_VERSION_FALLBACK`` is off; the
    requested version is then matched exactly like ``get``.
    """
    return get(db, jurisdiction_id, _client_version(db, app_version))


# ---------------------------------------------------------------------------
# Symptoms documents
# ---------------------------------------------------------------------------

def put_symptoms(
    db: Session,
    *,
    actor: str,
    app_version: str,
    payload: str,
    annotation: str | None = None,
) -> tuple[VersionedSymptomsDocument, bool]:
    canonical = require_registered(db, app_version)
    return _put(
        db,
        VersionedSymptomsDocument,
        {"app_version": canonical},
        payload,
        actor=actor,
        entity_kind="symptoms",
        entity_id=canonical,
        annotation=annotation,
    )


def get_symptoms(db: Session, app_version: str) -> VersionedSymptomsDocument:
    canonical = require_registered(db, app_version)
    document = _find(db, VersionedSymptomsDocument, {"app_version": canonical})
    if document is None:
        raise NotFound(f"No symptoms document for app version {canonical}", details={"app_version": canonical})
    return document


def get_symptoms_for_client(db: Session, app_version: str | None = None) -> VersionedSymptomsDocument:
    return get_symptoms(db, _client_version(db, app_version))
