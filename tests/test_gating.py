"""
Tests for feature gating and mission redaction.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.core.gating import (
    AccessLevel,
    can_access_urgent,
    can_post_urgent,
    get_access_level,
    has_feature_access,
    mission_visibility,
    should_redact_mission,
)
from app.db.models.mission import Mission
from app.db.models.user import ActorStatus, Role
from tests.factories import context, make_actor, make_basic_plans, make_plan, subscribe

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def resolver(services):
    return services.resolver


@pytest.fixture
def plans(db):
    return make_basic_plans(db)


@pytest.fixture
def free_worker(db, plans):
    return context(make_actor(db, Role.WORKER))


@pytest.fixture
def premium_worker(db, plans):
    premium = make_plan(db, "PREMIUM", Role.WORKER, {
        "max_active_applications": 10,
        "can_view_urgent_missions": True,
        "has_auto_matching": True,
    })
    actor = make_actor(db, Role.WORKER)
    subscribe(db, actor, premium)
    return context(actor)


def mission(is_urgent=False, age_hours=100):
    return Mission(title="Shift", is_urgent=is_urgent, created_at=NOW - timedelta(hours=age_hours))


# ============================================
# ACCESS LEVELS
# ============================================

def test_access_levels(db, resolver, free_worker, premium_worker):
    pending = context(make_actor(db, Role.WORKER, status=ActorStatus.PENDING))
    establishment = context(make_actor(db, Role.ESTABLISHMENT))

    assert get_access_level(None, resolver) == AccessLevel.VISITOR
    assert get_access_level(establishment, resolver) == AccessLevel.OTHER
    assert get_access_level(pending, resolver) == AccessLevel.PENDING
    assert get_access_level(free_worker, resolver) == AccessLevel.VALIDATED
    assert get_access_level(premium_worker, resolver) == AccessLevel.PREMIUM


def test_access_level_for_establishment_content(db, resolver, plans):
    establishment = context(make_actor(db, Role.ESTABLISHMENT))
    assert get_access_level(establishment, resolver, role=Role.ESTABLISHMENT) == AccessLevel.VALIDATED


# ============================================
# FEATURE FLAGS
# ============================================

def test_feature_access_follows_plan(resolver, free_worker, premium_worker):
    assert has_feature_access(free_worker, "has_auto_matching", resolver) is False
    assert has_feature_access(premium_worker, "has_auto_matching", resolver) is True


def test_feature_must_be_a_flag(resolver, free_worker):
    with pytest.raises(ValidationError):
        has_feature_access(free_worker, "worker_visibility_delay_hours", resolver)


def test_urgent_access(resolver, free_worker, premium_worker):
    assert can_access_urgent(free_worker, resolver) is False
    assert can_access_urgent(premium_worker, resolver) is True

    resolver.set_override("WORKER", "worker_urgent_access_premium_only", False)
    assert can_access_urgent(free_worker, resolver) is True


def test_urgent_posting(db, resolver, plans):
    free = context(make_actor(db, Role.ESTABLISHMENT))
    pro_plan = make_plan(db, "PRO", Role.ESTABLISHMENT, {"max_active_missions": 10, "can_post_urgent": True})
    pro_actor = make_actor(db, Role.ESTABLISHMENT)
    subscribe(db, pro_actor, pro_plan)

    assert can_post_urgent(free, resolver) is False
    assert can_post_urgent(context(pro_actor), resolver) is True

    resolver.set_override("ESTABLISHMENT", "estab_urgent_free_allowed", True)
    assert can_post_urgent(free, resolver) is True


# ============================================
# REDACTION
# ============================================

def test_visitors_and_pending_see_nothing(db, resolver, plans):
    pending = context(make_actor(db, Role.WORKER, status=ActorStatus.PENDING))

    visitor_view = mission_visibility(None, resolver)
    pending_view = mission_visibility(pending, resolver)

    assert should_redact_mission(mission(), visitor_view, now=NOW) == (True, "VISITOR")
    assert should_redact_mission(mission(), pending_view, now=NOW) == (True, "PENDING")


def test_premium_and_other_roles_see_everything(db, resolver, premium_worker):
    establishment = context(make_actor(db, Role.ESTABLISHMENT))
    fresh_urgent = mission(is_urgent=True, age_hours=1)

    assert should_redact_mission(fresh_urgent, mission_visibility(premium_worker, resolver), now=NOW).redact is False
    assert should_redact_mission(fresh_urgent, mission_visibility(establishment, resolver), now=NOW).redact is False


def test_free_worker_urgent_redacted(resolver, free_worker):
    visibility = mission_visibility(free_worker, resolver)

    assert visibility.urgent_allowed is False
    assert should_redact_mission(mission(is_urgent=True), visibility, now=NOW) == (True, "URGENT_PREMIUM_ONLY")


def test_urgent_redaction_follows_plan_flag(db, resolver):
    """A free plan that includes urgent missions shows them, as it lets the worker apply."""
    make_basic_plans(db, worker_limits={"max_active_applications": 3, "can_view_urgent_missions": True})
    worker = context(make_actor(db, Role.WORKER))

    visibility = mission_visibility(worker, resolver)

    assert visibility.access_level == AccessLevel.VALIDATED
    assert can_access_urgent(worker, resolver) is True
    assert should_redact_mission(mission(is_urgent=True), visibility, now=NOW).redact is False


def test_urgent_redaction_lifted_with_premium_only_off(resolver, free_worker):
    resolver.set_override("WORKER", "worker_urgent_access_premium_only", False)

    visibility = mission_visibility(free_worker, resolver)

    assert should_redact_mission(mission(is_urgent=True), visibility, now=NOW).redact is False


@pytest.mark.parametrize("age_hours,redacted", [(1, True), (47, True), (48, False), (200, False)])
def test_free_worker_visibility_delay(resolver, free_worker, age_hours, redacted):
    visibility = mission_visibility(free_worker, resolver)

    decision = should_redact_mission(mission(age_hours=age_hours), visibility, now=NOW)

    assert decision.redact is redacted
    if redacted:
        assert decision.reason == "RECENT_MISSION_PREMIUM_ONLY"


def test_visibility_delay_is_adjustable(resolver, free_worker):
    resolver.set_override("WORKER", "worker_visibility_delay_hours", 0)

    visibility = mission_visibility(free_worker, resolver)

    assert should_redact_mission(mission(age_hours=0), visibility, now=NOW).redact is False
