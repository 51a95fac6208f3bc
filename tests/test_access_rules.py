"""Tests for per-jurisdiction access rules."""

import pytest

from status_rules.errors import Conflict, InvalidArgument, InvalidReference, NotFound
from status_rules.schemas.rules import AccessDecision
from status_rules.services import access_rules


def _make_access_rule(db, s):
    return access_rules.create_access_rule(
        db,
        actor="admin",
        jurisdiction_id=s.j1,
        entries=[
            {"jurisdiction_status_id": s.healthy, "decision": "granted"},
            {"jurisdiction_status_id": s.quarantine, "decision": "denied"},
        ],
    )


def test_decide_granted_denied_and_silent(db, seeded):
    s = seeded
    _make_access_rule(db, s)

    assert access_rules.decide(db, s.j1, s.healthy) is AccessDecision.GRANTED
    assert access_rules.decide(db, s.j1, s.quarantine) is AccessDecision.DENIED
    assert access_rules.decide(db, s.j1, s.monitor) is None


def test_jurisdiction_without_access_rule_decides_nothing(db, seeded):
    assert access_rules.decide(db, seeded.j2, seeded.isolation) is None


def test_duplicate_status_is_invalid_argument(db, seeded):
    s = seeded
    with pytest.raises(InvalidArgument) as exc_info:
        access_rules.create_access_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            entries=[
                {"jurisdiction_status_id": s.healthy, "decision": "granted"},
                {"jurisdiction_status_id": s.healthy, "decision": "denied"},
            ],
        )
    assert exc_info.value.details["duplicate_status_ids"] == [s.healthy]


def test_unknown_decision_is_invalid_argument(db, seeded):
    s = seeded
    with pytest.raises(InvalidArgument):
        access_rules.create_access_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            entries=[{"jurisdiction_status_id": s.healthy, "decision": "maybe"}],
        )


def test_status_from_other_jurisdiction_is_invalid_reference(db, seeded):
    s = seeded
    with pytest.raises(InvalidReference):
        access_rules.create_access_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            entries=[{"jurisdiction_status_id": s.isolation, "decision": "denied"}],
        )


def test_second_access_rule_conflicts(db, seeded):
    s = seeded
    _make_access_rule(db, s)
    with pytest.raises(Conflict):
        access_rules.create_access_rule(db, actor="admin", jurisdiction_id=s.j1, entries=[])


def test_update_replaces_entries(db, seeded):
    s = seeded
    access_rule = _make_access_rule(db, s)

    access_rules.update_access_rule(
        db,
        actor="admin",
        access_rule_id=access_rule.id,
        jurisdiction_id=s.j1,
        entries=[{"jurisdiction_status_id": s.healthy, "decision": "denied"}],
    )
    assert access_rules.decide(db, s.j1, s.healthy) is AccessDecision.DENIED
    assert access_rules.decide(db, s.j1, s.quarantine) is None


def test_update_can_move_rule_to_another_jurisdiction(db, seeded):
    s = seeded
    access_rule = _make_access_rule(db, s)

    access_rules.update_access_rule(
        db,
        actor="admin",
        access_rule_id=access_rule.id,
        jurisdiction_id=s.j2,
        entries=[{"jurisdiction_status_id": s.isolation, "decision": "denied"}],
    )
    assert access_rules.decide(db, s.j2, s.isolation) is AccessDecision.DENIED
    assert access_rules.decide(db, s.j1, s.healthy) is None


def test_delete_access_rule(db, seeded):
    s = seeded
    access_rule = _make_access_rule(db, s)
    access_rules.delete_access_rule(db, actor="admin", access_rule_id=access_rule.id)

    assert access_rules.decide(db, s.j1, s.healthy) is None
    with pytest.raises(NotFound):
        access_rules.get_access_rule_by_jurisdiction(db, s.j1)


def test_concurrent_move_into_occupied_jurisdiction_conflicts(db, seeded, monkeypatch):
    """The unique constraint still decides when the existence check is passed by two writers."""
    s = seeded
    access_rule_id = _make_access_rule(db, s).id
    access_rules.create_access_rule(
        db,
        actor="admin",
        jurisdiction_id=s.j2,
        entries=[{"jurisdiction_status_id": s.isolation, "decision": "denied"}],
    )
    db.commit()

    monkeypatch.setattr(access_rules, "_find_access_rule", lambda *args: None)
    with pytest.raises(Conflict):
        access_rules.update_access_rule(
            db,
            actor="admin",
            access_rule_id=access_rule_id,
            jurisdiction_id=s.j2,
            entries=[{"jurisdiction_status_id": s.isolation, "decision": "granted"}],
        )

    access_rule = access_rules.get_access_rule(db, access_rule_id)
    assert access_rule.jurisdiction_id == s.j1
    assert len(access_rule.entries) == 2
