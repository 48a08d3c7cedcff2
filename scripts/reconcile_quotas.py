"""
Repair job: rebuild quota counters from the resource tables and expire
lapsed subscriptions.
Run: python -m scripts.reconcile_quotas [actor_id ...]
"""
import sys
import logging

from app.db.session import SessionLocal
from app.db.models.user import Actor, Role
from app.services.container import build_services

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

QUOTA_ROLES = (Role.WORKER.value, Role.ESTABLISHMENT.value)


def reconcile_quotas(actor_ids=None, session_factory=SessionLocal):
    """
    Reconcile every worker and establishment, or only `actor_ids`.

    Returns:
        {actor_id: {resource_kind: corrected_count}}
    """
    services = build_services(session_factory)
    db = session_factory()
    try:
        services.plans.expire_subscriptions(db)
        db.commit()

        query = db.query(Actor.id).filter(Actor.role.in_(QUOTA_ROLES))
        if actor_ids:
            query = query.filter(Actor.id.in_(actor_ids))
        ids = [row[0] for row in query.order_by(Actor.id).all()]

        results = {}
        for actor_id in ids:
            results[actor_id] = services.resources.reconcile_quota(db, actor_id)
        logger.info(f"Reconciled quota counters for {len(results)} actors")
        return results
    finally:
        db.close()


if __name__ == "__main__":
    try:
        wanted = [int(arg) for arg in sys.argv[1:]]
    except ValueError:
        print("Usage: python -m scripts.reconcile_quotas [actor_id ...]")
        sys.exit(2)

    results = reconcile_quotas(wanted or None)
    for actor_id, counts in results.items():
        print(f"actor {actor_id}: {counts}")
