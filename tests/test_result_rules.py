"""Tests for result-mapping rules and status resolution."""

import pytest

from status_rules.errors import Ambiguous, Conflict, InvalidArgument, InvalidReference, NotFound
from status_rules.models.audit import AuditLog
from status_rules.services import result_rules


def _mapping(result_id, status_id):
    return {"test_type_result_id": result_id, "jurisdiction_status_id": status_id}


def _make_pcr_rule(db, s, priority=5, positive_to=None):
    return result_rules.create_rule(
        db,
        actor="admin",
        jurisdiction_id=s.j1,
        test_type_id=s.pcr,
        priority=priority,
        mappings=[
            _mapping(s.pcr_positive, positive_to or s.quarantine),
            _mapping(s.pcr_negative, s.healthy),
        ],
    )


def _make_antigen_rule(db, s, priority, positive_to):
    return result_rules.create_rule(
        db,
        actor="admin",
        jurisdiction_id=s.j1,
        test_type_id=s.antigen,
        priority=priority,
        mappings=[_mapping(s.antigen_positive, positive_to)],
    )


def test_positive_pcr_resolves_to_quarantine_then_update_remaps(db, seeded):
    """Updating a rule changes resolution without creating a second rule."""
    s = seeded
    rule = _make_pcr_rule(db, s)

    resolved = result_rules.resolve_status(db, s.j1, [{"test_type_id": s.pcr, "result_id": s.pcr_positive}])
    assert resolved.status_id == s.quarantine
    assert resolved.status_name == "quarantine"

    result_rules.update_rule(
        db,
        actor="admin",
        rule_id=rule.id,
        priority=5,
        mappings=[_mapping(s.pcr_positive, s.healthy), _mapping(s.pcr_negative, s.healthy)],
    )
    resolved = result_rules.resolve_status(db, s.j1, [{"test_type_id": s.pcr, "result_id": s.pcr_positive}])
    assert resolved.status_id == s.healthy
    assert len(result_rules.list_rules_by_jurisdiction(db, s.j1)) == 1


def test_created_rule_is_hydrated(db, seeded):
    rule = _make_pcr_rule(db, seeded)
    assert rule.jurisdiction.name == "J1"
    assert rule.test_type.name == "PCR"
    assert rule.priority == 5


def test_second_rule_for_same_pair_conflicts(db, seeded):
    """Uniqueness holds regardless of the new rule's mapping contents."""
    s = seeded
    _make_pcr_rule(db, s)

    with pytest.raises(Conflict):
        result_rules.create_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            test_type_id=s.pcr,
            priority=1,
            mappings=[_mapping(s.pcr_negative, s.monitor)],
        )
    with pytest.raises(Conflict):
        result_rules.create_rule(
            db, actor="admin", jurisdiction_id=s.j1, test_type_id=s.pcr, priority=None, mappings=[]
        )


def test_unique_constraint_catches_concurrent_create(db, seeded, monkeypatch):
    """If two writers both pass the existence check, the database constraint still wins."""
    s = seeded
    _make_pcr_rule(db, s)
    db.commit()

    monkeypatch.setattr(result_rules, "_find_rule", lambda *args: None)
    with pytest.raises(Conflict):
        _make_pcr_rule(db, s, priority=9)

    db.expire_all()
    rules = result_rules.list_rules_by_jurisdiction(db, s.j1)
    assert [r.priority for r in rules] == [5]


def test_result_from_other_test_type_is_invalid_reference(db, seeded):
    s = seeded
    with pytest.raises(InvalidReference) as exc_info:
        result_rules.create_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            test_type_id=s.pcr,
            priority=1,
            mappings=[_mapping(s.antigen_positive, s.quarantine)],
        )
    assert exc_info.value.details["invalid_result_ids"] == [s.antigen_positive]


def test_status_from_other_jurisdiction_is_invalid_reference(db, seeded):
    s = seeded
    with pytest.raises(InvalidReference) as exc_info:
        result_rules.create_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            test_type_id=s.pcr,
            priority=1,
            mappings=[_mapping(s.pcr_positive, s.isolation)],
        )
    assert exc_info.value.details["invalid_status_ids"] == [s.isolation]


def test_duplicate_result_in_mappings_is_invalid_argument(db, seeded):
    s = seeded
    with pytest.raises(InvalidArgument):
        result_rules.create_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            test_type_id=s.pcr,
            priority=1,
            mappings=[_mapping(s.pcr_positive, s.quarantine), _mapping(s.pcr_positive, s.healthy)],
        )


def test_malformed_mapping_is_invalid_argument(db, seeded):
    s = seeded
    with pytest.raises(InvalidArgument) as exc_info:
        result_rules.create_rule(
            db,
            actor="admin",
            jurisdiction_id=s.j1,
            test_type_id=s.pcr,
            priority=1,
            mappings=[{"test_type_result_id": s.pcr_positive}],
        )
    assert any("jurisdiction_status_id" in e for e in exc_info.value.details["errors"])


def test_unknown_jurisdiction_or_test_type_is_not_found(db, seeded):
    s = seeded
    with pytest.raises(NotFound):
        result_rules.create_rule(
            db, actor="admin", jurisdiction_id="missing", test_type_id=s.pcr, priority=1, mappings=[]
        )
    with pytest.raises(NotFound):
        result_rules.create_rule(
            db, actor="admin", jurisdiction_id=s.j1, test_type_id="missing", priority=1, mappings=[]
        )


def test_invalid_update_leaves_rule_untouched(db, seeded):
    """Validation runs before any write, so a rejected update changes nothing."""
    s = seeded
    rule = _make_pcr_rule(db, s)

    with pytest.raises(InvalidReference):
        result_rules.update_rule(
            db,
            actor="admin",
            rule_id=rule.id,
            priority=1,
            mappings=[_mapping(s.pcr_positive, s.isolation)],
        )
    assert rule.priority == 5
    assert {(m.test_type_result_id, m.jurisdiction_status_id) for m in rule.mappings} == {
        (s.pcr_positive, s.quarantine),
        (s.pcr_negative, s.healthy),
    }


def test_list_round_trip_keeps_mappings_and_priority(db, seeded):
    s = seeded
    _make_pcr_rule(db, s, priority=3)
    db.commit()

    (rule,) = result_rules.list_rules_by_jurisdiction(db, s.j1)
    assert rule.priority == 3
    assert {(m.test_type_result_id, m.jurisdiction_status_id) for m in rule.mappings} == {
        (s.pcr_positive, s.quarantine),
        (s.pcr_negative, s.healthy),
    }
    assert result_rules.list_rules_by_jurisdiction(db, s.j2) == []


def test_list_orders_by_priority_with_nulls_last(db, seeded):
    s = seeded
    _make_pcr_rule(db, s, priority=None)
    _make_antigen_rule(db, s, priority=7, positive_to=s.monitor)

    rules = result_rules.list_rules_by_jurisdiction(db, s.j1)
    assert [r.test_type_id for r in rules] == [s.antigen, s.pcr]


def test_lower_priority_value_wins(db, seeded):
    s = seeded
    _make_pcr_rule(db, s, priority=1)
    _make_antigen_rule(db, s, priority=2, positive_to=s.monitor)

    resolved = result_rules.resolve_status(
        db,
        s.j1,
        [
            {"test_type_id": s.antigen, "result_id": s.antigen_positive},
            {"test_type_id": s.pcr, "result_id": s.pcr_positive},
        ],
    )
    assert resolved.status_id == s.quarantine
    assert resolved.rule_id is not None
    assert resolved.next_step == "Stay home for 10 days"
    assert resolved.result_expires_offset == 240


def test_rule_without_priority_ranks_last(db, seeded):
    s = seeded
    _make_pcr_rule(db, s, priority=None)
    _make_antigen_rule(db, s, priority=10, positive_to=s.monitor)

    resolved = result_rules.resolve_status(
        db,
        s.j1,
        [
            {"test_type_id": s.pcr, "result_id": s.pcr_positive},
            {"test_type_id": s.antigen, "result_id": s.antigen_positive},
        ],
    )
    assert resolved.status_id == s.monitor


def test_tie_between_different_statuses_is_ambiguous(db, seeded):
    s = seeded
    _make_pcr_rule(db, s, priority=4)
    _make_antigen_rule(db, s, priority=4, positive_to=s.monitor)

    with pytest.raises(Ambiguous) as exc_info:
        result_rules.resolve_status(
            db,
            s.j1,
            [
                {"test_type_id": s.pcr, "result_id": s.pcr_positive},
                {"test_type_id": s.antigen, "result_id": s.antigen_positive},
            ],
        )
    tied = {c.status_id for c in exc_info.value.candidates}
    assert tied == {s.quarantine, s.monitor}
    assert len(exc_info.value.details["candidates"]) == 2


def test_tie_on_same_status_is_not_ambiguous(db, seeded):
    s = seeded
    _make_pcr_rule(db, s, priority=4)
    _make_antigen_rule(db, s, priority=4, positive_to=s.quarantine)

    resolved = result_rules.resolve_status(
        db,
        s.j1,
        [
            {"test_type_id": s.pcr, "result_id": s.pcr_positive},
            {"test_type_id": s.antigen, "result_id": s.antigen_positive},
        ],
    )
    assert resolved.status_id == s.quarantine


def test_signals_without_rule_or_mapping_resolve_to_nothing(db, seeded):
    """No rule for the test type, or an unmapped result, is not an error."""
    s = seeded
    _make_antigen_rule(db, s, priority=1, positive_to=s.monitor)

    assert result_rules.resolve_status(db, s.j1, [{"test_type_id": s.pcr, "result_id": s.pcr_positive}]) is None
    assert (
        result_rules.resolve_status(db, s.j1, [{"test_type_id": s.antigen, "result_id": s.antigen_negative}])
        is None
    )
    assert result_rules.resolve_status(db, s.j1, []) is None


def test_resolve_in_unknown_jurisdiction_is_not_found(db, seeded):
    with pytest.raises(NotFound):
        result_rules.resolve_status(db, "missing", [])


def test_delete_rule_then_delete_again_is_not_found(db, seeded):
    s = seeded
    rule = _make_pcr_rule(db, s)
    rule_id = rule.id

    result_rules.delete_rule(db, actor="admin", rule_id=rule_id)
    with pytest.raises(NotFound):
        result_rules.delete_rule(db, actor="admin", rule_id=rule_id)
    with pytest.raises(NotFound):
        result_rules.get_rule(db, rule_id)


def test_rule_changes_are_audited(db, seeded):
    s = seeded
    rule = _make_pcr_rule(db, s)
    result_rules.update_rule(
        db,
        actor="admin",
        rule_id=rule.id,
        priority=2,
        mappings=[_mapping(s.pcr_positive, s.monitor)],
        annotation="ticket 42",
    )

    entries = db.query(AuditLog).filter(AuditLog.entity_kind == "rule", AuditLog.entity_id == rule.id).all()
    assert sorted(e.action for e in entries) == ["create", "update"]
    update = next(e for e in entries if e.action == "update")
    assert update.annotation == "ticket 42"
    assert update.before["priority"] == 5
    assert update.after["priority"] == 2
    assert update.after["mappings"] == [_mapping(s.pcr_positive, s.monitor)]
