"""
Row builders for tests.
"""
from app.db.models.profile import Diploma, DiplomaStatus, EstablishmentProfile, WorkerProfile
from app.db.models.subscription import FREE_PLAN_CODE, Subscription, SubscriptionPlan, SubscriptionStatus
from app.db.models.user import Actor, ActorStatus, Role
from app.db.models.verification import VerificationEntityType, VerificationRecord, VerificationStatus
from app.schemas.actor import ActorContext

_counter = {"n": 0}


def _email(prefix):
    _counter["n"] += 1
    return f"{prefix}{_counter['n']}@example.com"


def context(actor: Actor) -> ActorContext:
    return ActorContext(actor_id=actor.id, role=actor.role, status=actor.status)


def make_actor(db, role: Role, status: ActorStatus = ActorStatus.VALIDATED) -> Actor:
    actor = Actor(email=_email(role.value.lower()), role=role.value, status=status.value)
    db.add(actor)
    db.commit()
    db.refresh(actor)
    return actor


def make_plan(db, code, role: Role, limits=None, monetization_mode=None) -> SubscriptionPlan:
    plan = SubscriptionPlan(
        code=code,
        name=code.title(),
        target_role=role.value,
        limits=limits or {},
        monetization_mode=monetization_mode,
        is_active=True,
    )
    db.add(plan)
    db.commit()
    db.refresh(plan)
    return plan


def make_basic_plans(db, worker_limits=None, establishment_limits=None):
    worker = make_plan(db, FREE_PLAN_CODE, Role.WORKER, worker_limits or {
        "max_active_applications": 3,
        "can_view_urgent_missions": False,
        "can_view_full_profiles": False,
        "has_auto_matching": False,
        "mission_view_delay_hours": 48,
        "max_visible_missions": 5,
    })
    establishment = make_plan(db, FREE_PLAN_CODE, Role.ESTABLISHMENT, establishment_limits or {
        "max_active_missions": 2,
        "can_post_urgent": False,
        "can_search_workers": False,
        "can_view_full_profiles": False,
    })
    return worker, establishment


def subscribe(db, actor: Actor, plan: SubscriptionPlan, end_date=None, status=SubscriptionStatus.ACTIVE) -> Subscription:
    subscription = Subscription(actor_id=actor.id, plan_id=plan.id, status=status.value, end_date=end_date)
    db.add(subscription)
    db.commit()
    db.refresh(subscription)
    return subscription


def make_worker(db, experience_years=0, diplomas=(), verified=True) -> Actor:
    """Worker with a profile; `diplomas` is a list of DiplomaStatus values."""
    actor = make_actor(db, Role.WORKER)
    db.add(WorkerProfile(actor_id=actor.id, first_name="Test", last_name="Worker", experience_years=experience_years))
    db.flush()
    for i, status in enumerate(diplomas):
        db.add(Diploma(worker_id=actor.id, name=f"Diploma {i}", verification_status=DiplomaStatus(status).value))
    if verified:
        db.add(_validated_record(VerificationEntityType.WORKER_PROFILE, actor.id))
    db.commit()
    return actor


def make_establishment(db, verified=True) -> Actor:
    actor = make_actor(db, Role.ESTABLISHMENT)
    db.add(EstablishmentProfile(actor_id=actor.id, name="Test Clinic"))
    if verified:
        db.add(_validated_record(VerificationEntityType.ESTABLISHMENT_PROFILE, actor.id))
    db.commit()
    return actor


def _validated_record(entity_type, entity_id) -> VerificationRecord:
    return VerificationRecord(
        entity_type=entity_type.value,
        entity_id=entity_id,
        status=VerificationStatus.VALIDATED.value,
        version=3,
    )
