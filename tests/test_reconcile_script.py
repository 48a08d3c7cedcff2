"""
Tests for the quota repair job.
"""
from datetime import timedelta

from app.db.models.mission import Mission, MissionStatus
from app.db.models.quota import QuotaCounter
from app.db.models.subscription import Subscription, SubscriptionStatus
from app.db.models.user import Role
from app.services.plan_service import utcnow
from scripts.reconcile_quotas import reconcile_quotas
from tests.factories import make_actor, make_basic_plans, make_establishment, make_plan, subscribe


def test_reconcile_all_actors(db, session_factory):
    make_basic_plans(db)
    establishment = make_establishment(db)
    admin = make_actor(db, Role.ADMIN)
    db.add_all([
        Mission(establishment_id=establishment.id, title="Open", status=MissionStatus.PUBLISHED.value),
        Mission(establishment_id=establishment.id, title="Done", status=MissionStatus.CLOSED.value),
    ])
    db.commit()

    results = reconcile_quotas(session_factory=session_factory)

    assert results[establishment.id] == {"MISSION": 1}
    assert admin.id not in results
    counter = db.query(QuotaCounter).filter(QuotaCounter.actor_id == establishment.id).one()
    assert counter.active_count == 1


def test_reconcile_selected_actors_and_expire_subscriptions(db, session_factory):
    make_basic_plans(db)
    premium = make_plan(db, "PREMIUM", Role.WORKER, {"max_active_applications": 10})
    lapsed = make_actor(db, Role.WORKER)
    other = make_actor(db, Role.WORKER)
    subscription = subscribe(db, lapsed, premium, end_date=utcnow() - timedelta(days=2))

    results = reconcile_quotas([lapsed.id], session_factory=session_factory)

    assert results == {lapsed.id: {"APPLICATION": 0}}
    assert other.id not in results
    refreshed = db.query(Subscription).populate_existing().filter(Subscription.id == subscription.id).one()
    assert refreshed.status == SubscriptionStatus.EXPIRED.value
