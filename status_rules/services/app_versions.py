"""
Registry of supported client app versions.

Versions are written as ``x.y`` or ``x.y.z``. A zero patch is dropped, so
``3.5.0`` and ``3.5`` name the same version and are stored as ``3.5``.
"""

from __future__ import annotations

import logging
import re

from sqlalchemy.orm import Session

from status_rules.errors import Conflict, InvalidArgument, NotFound
from status_rules.models.rules import AppVersion
from status_rules.services.audit import log_action
from status_rules.services.validation import flush_unique

logger = logging.getLogger(__name__)

_VERSION_RE = re.compile(r"\d+(?:\.\d+){1,2}", re.ASCII)


def _parse(raw: str) -> tuple[int, int, int]:
    text = (raw or "").strip()
    if not _VERSION_RE.fullmatch(text):
        raise InvalidArgument(
            "App version must be formatted as x.y.z or x.y",
            details={"app_version": raw},
        )
    parts = text.split(".")
    major, minor = int(parts[0]), int(parts[1])
    patch = int(parts[2]) if len(parts) == 3 else 0
    return major, minor, patch


def version_key(version: str) -> tuple[int, int, int]:
    return _parse(version)


def normalize_version(raw: str) -> str:
    major, minor, patch = _parse(raw)
    if patch == 0:
        return f"{major}.{minor}"
    return f"{major}.{minor}.{patch}"


def list_app_versions(db: Session) -> list[str]:
    """All registered versions, newest first."""
    versions = [row.version for row in db.query(AppVersion).all()]
    return sorted(versions, key=version_key, reverse=True)


def require_registered(db: Session, version: str) -> str:
    """Return the canonical form of ``version``; NotFound unless it is registered."""
    canonical = normalize_version(version)
    if db.query(AppVersion).filter(AppVersion.version == canonical).first() is None:
        raise NotFound(f"App version {canonical} is not supported", details={"app_version": canonical})
    return canonical


def create_app_version(db: Session, *, actor: str, version: str, annotation: str | None = None) -> str:
    canonical = normalize_version(version)
    if db.query(AppVersion).filter(AppVersion.version == canonical).first() is not None:
        raise Conflict(f"App version {canonical} already exists", details={"app_version": canonical})

    db.add(AppVersion(version=canonical))
    flush_unique(db, f"App version {canonical} already exists", {"app_version": canonical})
    log_action(
        db,
        actor=actor,
        action="create",
        entity_kind="app-version",
        entity_id=canonical,
        after={"version": canonical},
        annotation=annotation,
    )
    return canonical


def resolve_client_version(db: Session, requested: str | None) -> str:
    """Pick the registered version a client should be served.

    No version means the latest one. An unregistered version falls back to the
    newest registered version below it.
    """
    versions = list_app_versions(db)
    if not versions:
        raise NotFound("No app versions are registered")
    if requested is None:
        return versions[0]

    canonical = normalize_version(requested)
    if canonical in versions:
        return canonical

    wanted = version_key(canonical)
    for candidate in versions:
        if version_key(candidate) < wanted:
            logger.info("App version %s not registered, serving %s", canonical, candidate)
            return candidate
    raise NotFound(f"No registered app version at or below {canonical}", details={"app_version": canonical})
