"""Shared fixtures: an in-memory database and a small seeded catalog."""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from status_rules.models import audit, catalog as catalog_models, rules  # noqa: F401
from status_rules.models.database import Base
from status_rules.services import catalog


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seeded(db):
    """
    Two jurisdictions and two test types:

    J1 statuses: healthy, quarantine, monitor, none
    J2 statuses: isolation
    PCR results: positive, negative
    Antigen results: positive, negative
    """
    j1 = catalog.create_jurisdiction(db, actor="seed", name="J1", region="Illinois", country="US")
    j2 = catalog.create_jurisdiction(db, actor="seed", name="J2", region="Indiana", country="US")

    statuses = {
        name: catalog.create_status(db, actor="seed", jurisdiction_id=j1.id, name=name)
        for name in ("healthy", "quarantine", "monitor", "none")
    }
    isolation = catalog.create_status(db, actor="seed", jurisdiction_id=j2.id, name="isolation")

    pcr = catalog.create_test_type(db, actor="seed", name="PCR", priority=1)
    pcr_positive = catalog.create_result(
        db,
        actor="seed",
        test_type_id=pcr.id,
        name="positive",
        next_step="Stay home for 10 days",
        next_step_offset=0,
        result_expires_offset=240,
    )
    pcr_negative = catalog.create_result(
        db,
        actor="seed",
        test_type_id=pcr.id,
        name="negative",
        next_step="No action needed",
        result_expires_offset=96,
    )

    antigen = catalog.create_test_type(db, actor="seed", name="Antigen", priority=2)
    antigen_positive = catalog.create_result(
        db, actor="seed", test_type_id=antigen.id, name="positive", next_step="Get a PCR test"
    )
    antigen_negative = catalog.create_result(db, actor="seed", test_type_id=antigen.id, name="negative")
    db.commit()

    return SimpleNamespace(
        j1=j1.id,
        j2=j2.id,
        healthy=statuses["healthy"].id,
        quarantine=statuses["quarantine"].id,
        monitor=statuses["monitor"].id,
        none=statuses["none"].id,
        isolation=isolation.id,
        pcr=pcr.id,
        pcr_positive=pcr_positive.id,
        pcr_negative=pcr_negative.id,
        antigen=antigen.id,
        antigen_positive=antigen_positive.id,
        antigen_negative=antigen_negative.id,
    )
