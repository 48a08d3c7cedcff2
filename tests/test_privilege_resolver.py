"""
Unit tests for privilege resolution.
Tests the override > plan > compiled default chain, value coercion and the
TTL cache.
"""
import pytest
from datetime import timedelta

from app.core.exceptions import ConfigurationMissing, ValidationError
from app.db.models.user import Role
from app.services.config_store import ConfigStore
from app.services.plan_service import utcnow
from app.services.privilege_resolver import PrivilegeResolver
from tests.factories import context, make_actor, make_basic_plans, make_plan, subscribe


@pytest.fixture
def resolver(services):
    return services.resolver


@pytest.fixture
def worker(db):
    return context(make_actor(db, Role.WORKER))


def test_compiled_default_when_nothing_else(resolver):
    """Test a key with no override and no plan value falls back to its compiled default."""
    assert resolver.resolve("WORKER", "worker_visibility_delay_hours") == 48
    assert resolver.resolve("ESTABLISHMENT", "estab_credits_urgent_mission") == 3
    assert resolver.resolve("ADMIN", "admin_can_edit_finances") is False


def test_category_is_case_insensitive(resolver):
    assert resolver.resolve("worker", "worker_credits_per_application") == 1


def test_builtin_basic_plan_when_no_plan_rows(resolver, worker):
    """Test free-tier limit comes from the built-in BASIC limits on an empty database."""
    assert resolver.resolve("WORKER", "worker_free_applications_limit", actor=worker) == 3


def test_basic_plan_row_overrides_compiled_default(db, resolver, worker):
    make_basic_plans(db, worker_limits={"max_active_applications": 7})
    assert resolver.resolve("WORKER", "worker_free_applications_limit", actor=worker) == 7


def test_paid_plan_value(db, resolver):
    make_basic_plans(db)
    premium = make_plan(db, "PREMIUM", Role.WORKER, {"max_active_applications": 10, "can_view_urgent_missions": True})
    actor = make_actor(db, Role.WORKER)
    subscribe(db, actor, premium)

    ctx = context(actor)
    assert resolver.resolve("WORKER", "max_active_applications", actor=ctx) == 10
    assert resolver.resolve("WORKER", "can_view_urgent_missions", actor=ctx) is True


def test_expired_subscription_falls_back_to_basic(db, resolver):
    make_basic_plans(db)
    premium = make_plan(db, "PREMIUM", Role.WORKER, {"max_active_applications": 10})
    actor = make_actor(db, Role.WORKER)
    subscribe(db, actor, premium, end_date=utcnow() - timedelta(days=1))

    plan = resolver.plan_for(context(actor))
    assert plan.code == "BASIC"
    assert plan.is_free


def test_null_plan_value_means_unlimited(db, resolver):
    make_basic_plans(db)
    pro = make_plan(db, "PRO", Role.WORKER, {"max_active_applications": None})
    actor = make_actor(db, Role.WORKER)
    subscribe(db, actor, pro)

    assert resolver.resolve("WORKER", "max_active_applications", actor=context(actor)) is None


def test_override_beats_plan(db, resolver, worker):
    make_basic_plans(db, worker_limits={"max_active_applications": 7})
    resolver.set_override("WORKER", "worker_free_applications_limit", 1, updated_by=None)
    assert resolver.resolve("WORKER", "worker_free_applications_limit", actor=worker) == 1


def test_missing_plan_only_key_is_fatal(db, resolver):
    """Test a plan-only key the plan does not define raises instead of guessing."""
    make_basic_plans(db)
    premium = make_plan(db, "PREMIUM", Role.WORKER, {"can_view_urgent_missions": True})
    actor = make_actor(db, Role.WORKER)
    subscribe(db, actor, premium)

    with pytest.raises(ConfigurationMissing) as exc_info:
        resolver.resolve("WORKER", "max_active_applications", actor=context(actor))
    assert exc_info.value.details == {"category": "WORKER", "key": "max_active_applications"}


def test_invalid_stored_override_is_fatal(db, resolver):
    ConfigStore().upsert(db, "WORKER", "worker_visibility_delay_hours", '"soon"')
    db.commit()

    with pytest.raises(ConfigurationMissing):
        resolver.resolve("WORKER", "worker_visibility_delay_hours")


def test_unknown_key_rejected(resolver):
    with pytest.raises(ValidationError):
        resolver.resolve("WORKER", "worker_teleport_limit")


def test_key_under_wrong_category_rejected(resolver):
    with pytest.raises(ValidationError):
        resolver.resolve("ADMIN", "worker_free_missions_limit")


def test_unknown_category_rejected(resolver):
    with pytest.raises(ValidationError):
        resolver.resolve("GLOBAL", "review_period_days")


def test_set_override_coerces_values(resolver):
    assert resolver.set_override("WORKER", "worker_urgent_access_premium_only", "false") is False
    assert resolver.set_override("WORKER", "worker_free_missions_limit", "6") == 6
    assert resolver.set_override("WORKER", "worker_monetization_mode", "credits") == "CREDITS"
    assert resolver.set_override("ESTABLISHMENT", "estab_recruitment_commission", 12) == 12.0

    assert resolver.resolve("WORKER", "worker_urgent_access_premium_only") is False
    assert resolver.resolve("WORKER", "worker_monetization_mode") == "CREDITS"


@pytest.mark.parametrize("key,value", [
    ("worker_free_missions_limit", "many"),
    ("worker_free_missions_limit", -1),
    ("worker_free_missions_limit", True),
    ("worker_free_missions_limit", None),
    ("worker_urgent_access_premium_only", "maybe"),
    ("worker_monetization_mode", "BARTER"),
])
def test_set_override_rejects_bad_values(resolver, key, value):
    with pytest.raises(ValidationError):
        resolver.set_override("WORKER", key, value)


def test_nullable_limit_accepts_none(resolver):
    """Test None (unlimited) is a legal value for nullable limits."""
    assert resolver.set_override("WORKER", "worker_free_applications_limit", None) is None


def test_bulk_update_is_all_or_nothing(db, resolver):
    with pytest.raises(ValidationError):
        resolver.set_overrides("WORKER", {
            "worker_free_missions_limit": 9,
            "worker_visibility_delay_hours": "later",
        })

    assert ConfigStore().list(db, "WORKER") == []
    assert resolver.resolve("WORKER", "worker_free_missions_limit") == 4


def test_bulk_update_saves_every_key(db, resolver):
    saved = resolver.set_overrides("ESTABLISHMENT", {
        "estab_credits_per_mission": 2,
        "estab_credits_urgent_mission": "5",
    }, updated_by=None)

    assert saved == {"estab_credits_per_mission": 2, "estab_credits_urgent_mission": 5}
    keys = [row.key for row in ConfigStore().list(db, "ESTABLISHMENT")]
    assert keys == ["estab_credits_per_mission", "estab_credits_urgent_mission"]


def test_clear_override_restores_default(resolver):
    resolver.set_override("WORKER", "worker_visibility_delay_hours", 12)
    assert resolver.resolve("WORKER", "worker_visibility_delay_hours") == 12

    assert resolver.clear_override("WORKER", "worker_visibility_delay_hours") is True
    assert resolver.resolve("WORKER", "worker_visibility_delay_hours") == 48
    assert resolver.clear_override("WORKER", "worker_visibility_delay_hours") is False


def test_get_privileges_lists_category(resolver):
    assert resolver.get_privileges("ADMIN") == {
        "admin_daily_validation_quota": 0,
        "admin_can_edit_finances": False,
    }

    worker_privileges = resolver.get_privileges("WORKER")
    assert worker_privileges["worker_free_missions_limit"] == 4
    assert worker_privileges["max_visible_missions"] == 5  # from built-in BASIC


def test_privilege_update_is_audited(resolver, audit_sink):
    resolver.set_override("WORKER", "worker_free_missions_limit", 8, updated_by=None)

    events = audit_sink.of_type("privilege.updated")
    assert len(events) == 1
    assert events[0].subject == {"category": "WORKER"}
    assert events[0].details == {"values": {"worker_free_missions_limit": 8}}


def test_cached_value_survives_until_ttl(session_factory, clock):
    """Test another process's write is invisible until this process's TTL runs out."""
    reader = PrivilegeResolver(session_factory, ttl_seconds=300, clock=clock)
    writer = PrivilegeResolver(session_factory, ttl_seconds=300, clock=clock)

    assert reader.resolve("WORKER", "worker_free_missions_limit") == 4  # caches "no override"

    writer.set_override("WORKER", "worker_free_missions_limit", 9)
    clock.advance(299)
    assert reader.resolve("WORKER", "worker_free_missions_limit") == 4

    clock.advance(1)
    assert reader.resolve("WORKER", "worker_free_missions_limit") == 9


def test_invalidate_forces_reload(session_factory, clock):
    reader = PrivilegeResolver(session_factory, ttl_seconds=300, clock=clock)
    writer = PrivilegeResolver(session_factory, ttl_seconds=300, clock=clock)

    reader.resolve("WORKER", "worker_free_missions_limit")
    writer.set_override("WORKER", "worker_free_missions_limit", 2)

    assert reader.invalidate("WORKER") == 1
    assert reader.resolve("WORKER", "worker_free_missions_limit") == 2


def test_write_through_and_bounded_staleness(session_factory, clock):
    """
    Admin lowers worker_free_missions_limit from 10 to 5.

    The admin's own process sees 5 at once; another process that cached 10
    a second before the write keeps 10 until its entry expires.
    """
    admin_process = PrivilegeResolver(session_factory, ttl_seconds=300, clock=clock)
    other_process = PrivilegeResolver(session_factory, ttl_seconds=300, clock=clock)

    admin_process.set_override("WORKER", "worker_free_missions_limit", 10)  # t = -250
    assert admin_process.resolve("WORKER", "worker_free_missions_limit") == 10

    clock.advance(249)  # t = -1
    assert other_process.resolve("WORKER", "worker_free_missions_limit") == 10

    clock.advance(1)  # t = 0
    admin_process.set_override("WORKER", "worker_free_missions_limit", 5)
    assert admin_process.resolve("WORKER", "worker_free_missions_limit") == 5
    assert other_process.resolve("WORKER", "worker_free_missions_limit") == 10

    clock.advance(298)  # t = 298
    assert other_process.resolve("WORKER", "worker_free_missions_limit") == 10

    clock.advance(1)  # t = 299, entry cached at t = -1 expires
    assert other_process.resolve("WORKER", "worker_free_missions_limit") == 5
