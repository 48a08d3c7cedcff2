"""
Subscription plan lookup.

Resolves which SubscriptionPlan governs an actor: the latest ACTIVE
subscription that has not ended, otherwise the free BASIC plan for the actor's
role. Plans are reference data and are returned as immutable snapshots so
they can be used after the session that loaded them is closed.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from sqlalchemy import or_, update
from sqlalchemy.orm import Session

from app.core.privilege_defaults import BASIC_PLAN_FALLBACK
from app.db.models.subscription import FREE_PLAN_CODE, Subscription, SubscriptionPlan, SubscriptionStatus
from app.db.models.user import ADMIN_ROLES, Role

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class PlanSnapshot:
    code: str
    target_role: str
    limits: Dict[str, Any] = field(default_factory=dict)
    monetization_mode: Optional[str] = None
    subscription_id: Optional[int] = None

    @property
    def is_free(self) -> bool:
        return self.code == FREE_PLAN_CODE

    def values(self) -> Dict[str, Any]:
        """Plan defaults keyed by privilege/limit key."""
        values = dict(self.limits)
        if self.monetization_mode:
            values["monetization_mode"] = self.monetization_mode
        return values

    @classmethod
    def from_model(cls, plan: SubscriptionPlan, subscription_id: Optional[int] = None) -> "PlanSnapshot":
        return cls(
            code=plan.code,
            target_role=plan.target_role,
            limits=dict(plan.limits or {}),
            monetization_mode=plan.monetization_mode,
            subscription_id=subscription_id,
        )


class PlanService:

    def get_active_subscription(
        self, db: Session, actor_id: int, now: Optional[datetime] = None
    ) -> Optional[Subscription]:
        now = now or utcnow()
        return (
            db.query(Subscription)
            .filter(
                Subscription.actor_id == actor_id,
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                or_(Subscription.end_date.is_(None), Subscription.end_date > now),
            )
            .order_by(Subscription.id.desc())
            .first()
        )

    def get_basic_plan(self, db: Session, role: str) -> PlanSnapshot:
        """
        The free plan for a role.

        Falls back to hardcoded limits when no BASIC row exists, so a fresh
        database still enforces something sensible.
        """
        role = Role(role)
        plan = (
            db.query(SubscriptionPlan)
            .filter(
                SubscriptionPlan.code == FREE_PLAN_CODE,
                SubscriptionPlan.target_role == role.value,
                SubscriptionPlan.is_active.is_(True),
            )
            .first()
        )
        if plan is not None:
            return PlanSnapshot.from_model(plan)

        logger.warning(f"No active {FREE_PLAN_CODE} plan for role={role.value}, using built-in limits")
        return PlanSnapshot(
            code=FREE_PLAN_CODE,
            target_role=role.value,
            limits=dict(BASIC_PLAN_FALLBACK.get(role, {})),
        )

    def get_active_plan(
        self, db: Session, actor_id: int, role: str, now: Optional[datetime] = None
    ) -> PlanSnapshot:
        """
        Get the plan governing an actor.

        Args:
            db: Database session
            actor_id: Actor ID
            role: Actor role; admins have no plan and get an empty free snapshot

        Returns:
            PlanSnapshot of the subscribed plan, or of the BASIC plan
        """
        role = Role(role)
        if role in ADMIN_ROLES:
            return PlanSnapshot(code=FREE_PLAN_CODE, target_role=role.value)

        subscription = self.get_active_subscription(db, actor_id, now)
        if subscription is None:
            return self.get_basic_plan(db, role)

        plan = subscription.plan
        if plan.target_role != role.value:
            logger.warning(
                f"Subscription {subscription.id} targets role={plan.target_role} "
                f"but actor_id={actor_id} is {role.value}; using {FREE_PLAN_CODE}"
            )
            return self.get_basic_plan(db, role)

        return PlanSnapshot.from_model(plan, subscription_id=subscription.id)

    def expire_subscriptions(self, db: Session, now: Optional[datetime] = None) -> int:
        """Mark ACTIVE subscriptions whose end date has passed as EXPIRED. Caller commits."""
        now = now or utcnow()
        result = db.execute(
            update(Subscription)
            .where(
                Subscription.status == SubscriptionStatus.ACTIVE.value,
                Subscription.end_date.is_not(None),
                Subscription.end_date <= now,
            )
            .values(status=SubscriptionStatus.EXPIRED.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            logger.info(f"Expired {result.rowcount} subscriptions")
        return result.rowcount
