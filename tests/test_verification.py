"""
Unit tests for the profile verification workflow.
Tests versioned transitions, concurrent reviewers and validation
preconditions.
"""
import threading

import pytest

from app.core.exceptions import NotFoundError, PermissionDenied, ValidationError
from app.db.models.profile import DiplomaStatus
from app.db.models.user import Role
from app.db.models.verification import VerificationRecord, VerificationStatus
from app.services.verification_service import StateConflict, TransitionResult, is_terminal
from tests.factories import context, make_actor, make_establishment, make_worker

WORKER_PROFILE = "WORKER_PROFILE"


@pytest.fixture
def machine(services):
    return services.verification


@pytest.fixture
def admin_a(db):
    return context(make_actor(db, Role.ADMIN))


@pytest.fixture
def admin_b(db):
    return context(make_actor(db, Role.SUPER_ADMIN))


def pending_worker(db, machine, **kwargs):
    worker = make_worker(db, verified=False, **kwargs)
    machine.open_record(db, WORKER_PROFILE, worker.id)
    return worker


def in_review_worker(db, machine, admin, **kwargs):
    worker = pending_worker(db, machine, **kwargs)
    result = machine.transition(db, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=admin)
    assert result.ok
    return worker


# ============================================
# OPENING A CASE
# ============================================

def test_open_record_starts_pending_at_version_one(db, machine):
    worker = make_worker(db, verified=False)
    record = machine.open_record(db, WORKER_PROFILE, worker.id)

    assert record.status == VerificationStatus.PENDING.value
    assert record.version == 1
    assert record.entity_type == WORKER_PROFILE


def test_open_record_returns_existing_open_case(db, machine):
    worker = make_worker(db, verified=False)
    first = machine.open_record(db, WORKER_PROFILE, worker.id)
    second = machine.open_record(db, "worker_profile", worker.id)

    assert second.id == first.id
    assert db.query(VerificationRecord).count() == 1


def test_rejected_profile_can_resubmit(db, machine, admin_a):
    worker = in_review_worker(db, machine, admin_a)
    machine.transition(db, WORKER_PROFILE, worker.id, 2, "REJECT",
                       payload={"reject_reason": "Blurry ID"}, reviewer=admin_a)

    record = machine.open_record(db, WORKER_PROFILE, worker.id)
    assert record.status == VerificationStatus.PENDING.value
    assert record.version == 1
    assert db.query(VerificationRecord).count() == 2


def test_validated_profile_cannot_reopen(db, machine):
    worker = make_worker(db, verified=True)
    with pytest.raises(ValidationError):
        machine.open_record(db, WORKER_PROFILE, worker.id)


def test_open_record_needs_profile(db, machine):
    actor = make_actor(db, Role.WORKER)
    with pytest.raises(NotFoundError):
        machine.open_record(db, WORKER_PROFILE, actor.id)


def test_unknown_entity_type_rejected(db, machine):
    with pytest.raises(ValidationError):
        machine.open_record(db, "MISSION", 1)


# ============================================
# TRANSITIONS
# ============================================

def test_full_review_path(db, machine, admin_a, audit_sink):
    worker = pending_worker(db, machine)

    taken = machine.transition(db, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=admin_a)
    assert taken == TransitionResult(record_id=taken.record_id, status="IN_REVIEW", version=2)

    validated = machine.transition(db, WORKER_PROFILE, worker.id, 2, "VALIDATE",
                                   payload={"notes": "All good"}, reviewer=admin_a)
    assert validated.status == "VALIDATED"
    assert validated.version == 3

    record = machine.current(db, WORKER_PROFILE, worker.id)
    assert record.reviewer_id == admin_a.actor_id
    assert record.notes == "All good"
    assert machine.is_validated(db, WORKER_PROFILE, worker.id)

    events = audit_sink.of_type("verification.transitioned")
    assert [e.details["action"] for e in events] == ["TAKE_CHARGE", "VALIDATE"]


def test_second_reviewer_with_stale_version_conflicts(session_factory, machine, admin_a, admin_b):
    """Two admins open the same case at version 1; the second one to act loses."""
    setup = session_factory()
    worker = pending_worker(setup, machine)
    setup.close()

    db_a = session_factory()
    db_b = session_factory()
    try:
        assert machine.current(db_a, WORKER_PROFILE, worker.id).version == 1
        assert machine.current(db_b, WORKER_PROFILE, worker.id).version == 1

        won = machine.transition(db_a, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=admin_a)
        lost = machine.transition(db_b, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=admin_b)
    finally:
        db_a.close()
        db_b.close()

    assert won.ok
    assert isinstance(lost, StateConflict)
    assert lost.to_dict() == {
        "ok": False,
        "reason": "STATE_CONFLICT",
        "current_status": "IN_REVIEW",
        "current_version": 2,
        "expected_version": 1,
    }


def test_concurrent_take_charge_has_one_winner(session_factory, machine, admin_a, admin_b):
    setup = session_factory()
    worker = pending_worker(setup, machine)
    setup.close()

    barrier = threading.Barrier(2)
    results = []
    errors = []

    def take_charge(admin):
        db = session_factory()
        try:
            barrier.wait()
            results.append(machine.transition(db, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=admin))
        except Exception as exc:
            errors.append(exc)
        finally:
            db.close()

    threads = [threading.Thread(target=take_charge, args=(admin,)) for admin in (admin_a, admin_b)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert sorted(r.ok for r in results) == [False, True]

    db = session_factory()
    try:
        record = machine.current(db, WORKER_PROFILE, worker.id)
        winner = next(r for r in results if r.ok)
        assert record.version == 2
        assert record.status == winner.status
    finally:
        db.close()


def test_wrong_status_for_action_is_rejected(db, machine, admin_a):
    worker = pending_worker(db, machine)
    with pytest.raises(ValidationError):
        machine.transition(db, WORKER_PROFILE, worker.id, 1, "VALIDATE", reviewer=admin_a)


def test_terminal_status_accepts_nothing(db, machine, admin_a):
    worker = in_review_worker(db, machine, admin_a)
    machine.transition(db, WORKER_PROFILE, worker.id, 2, "VALIDATE", reviewer=admin_a)

    for action in ("TAKE_CHARGE", "VALIDATE", "REJECT"):
        with pytest.raises(ValidationError):
            machine.transition(db, WORKER_PROFILE, worker.id, 3, action,
                               payload={"reject_reason": "late"}, reviewer=admin_a)


def test_unknown_action_rejected(db, machine, admin_a):
    worker = pending_worker(db, machine)
    with pytest.raises(ValidationError):
        machine.transition(db, WORKER_PROFILE, worker.id, 1, "APPROVE", reviewer=admin_a)


def test_only_admins_review(db, machine):
    worker = pending_worker(db, machine)
    other = context(make_actor(db, Role.WORKER))

    with pytest.raises(PermissionDenied):
        machine.transition(db, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=other)
    with pytest.raises(PermissionDenied):
        machine.transition(db, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=None)


def test_transition_without_case_is_not_found(db, machine, admin_a):
    worker = make_worker(db, verified=False)
    with pytest.raises(NotFoundError):
        machine.transition(db, WORKER_PROFILE, worker.id, 1, "TAKE_CHARGE", reviewer=admin_a)


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_reject_needs_reason(db, machine, admin_a, reason):
    worker = in_review_worker(db, machine, admin_a)
    with pytest.raises(ValidationError):
        machine.transition(db, WORKER_PROFILE, worker.id, 2, "REJECT",
                           payload={"reject_reason": reason}, reviewer=admin_a)

    assert machine.current(db, WORKER_PROFILE, worker.id).status == "IN_REVIEW"


def test_reject_stores_trimmed_reason(db, machine, admin_a):
    worker = in_review_worker(db, machine, admin_a)
    result = machine.transition(db, WORKER_PROFILE, worker.id, 2, "REJECT",
                                payload={"reject_reason": "  Missing diploma  "}, reviewer=admin_a)

    assert result.status == "REJECTED"
    assert machine.current(db, WORKER_PROFILE, worker.id).reject_reason == "Missing diploma"


# ============================================
# VALIDATION WITHOUT DIPLOMA
# ============================================

def test_validate_without_diploma_needs_experience(db, machine, admin_a):
    junior = in_review_worker(db, machine, admin_a, experience_years=1)
    with pytest.raises(ValidationError) as exc_info:
        machine.transition(db, WORKER_PROFILE, junior.id, 2, "VALIDATE",
                           payload={"with_diploma": False}, reviewer=admin_a)
    assert exc_info.value.details["required_experience_years"] == 3
    assert machine.current(db, WORKER_PROFILE, junior.id).status == "IN_REVIEW"

    senior = in_review_worker(db, machine, admin_a, experience_years=3)
    result = machine.transition(db, WORKER_PROFILE, senior.id, 2, "VALIDATE",
                                payload={"with_diploma": False}, reviewer=admin_a)
    assert result.status == "VALIDATED"


def test_validate_without_diploma_blocked_by_pending_diploma(db, machine, admin_a):
    worker = in_review_worker(db, machine, admin_a, experience_years=10, diplomas=[DiplomaStatus.PENDING])
    with pytest.raises(ValidationError):
        machine.transition(db, WORKER_PROFILE, worker.id, 2, "VALIDATE",
                           payload={"with_diploma": False}, reviewer=admin_a)


def test_validate_with_diploma_skips_experience_check(db, machine, admin_a):
    worker = in_review_worker(db, machine, admin_a, experience_years=0)
    result = machine.transition(db, WORKER_PROFILE, worker.id, 2, "VALIDATE", reviewer=admin_a)
    assert result.status == "VALIDATED"


def test_establishment_review(db, machine, admin_a):
    establishment = make_establishment(db, verified=False)
    machine.open_record(db, "ESTABLISHMENT_PROFILE", establishment.id)

    machine.transition(db, "ESTABLISHMENT_PROFILE", establishment.id, 1, "TAKE_CHARGE", reviewer=admin_a)
    result = machine.transition(db, "ESTABLISHMENT_PROFILE", establishment.id, 2, "VALIDATE",
                                payload={"with_diploma": False}, reviewer=admin_a)

    assert result.status == "VALIDATED"


@pytest.mark.parametrize("status,terminal", [
    ("PENDING", False),
    ("IN_REVIEW", False),
    ("VALIDATED", True),
    ("REJECTED", True),
])
def test_is_terminal(status, terminal):
    assert is_terminal(status) is terminal
