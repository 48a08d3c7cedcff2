"""
Subscription plans and actor subscriptions.

Plans are admin-managed reference data. `limits` maps limit keys
(max_active_applications, can_post_urgent, ...) to numbers or booleans; a
null value means unlimited.
"""
import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base

FREE_PLAN_CODE = "BASIC"


class MonetizationMode(str, enum.Enum):
    SUBSCRIPTION = "SUBSCRIPTION"
    CREDITS = "CREDITS"
    COMMISSION = "COMMISSION"


class SubscriptionStatus(str, enum.Enum):
    ACTIVE = "ACTIVE"
    EXPIRED = "EXPIRED"
    CANCELED = "CANCELED"


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String, nullable=False)  # BASIC | PREMIUM | PRO
    name = Column(String, nullable=True)
    target_role = Column(String, nullable=False)  # WORKER | ESTABLISHMENT
    limits = Column(JSON, nullable=False, default=dict)
    monetization_mode = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("code", "target_role", name="uq_plan_code_role"),
    )


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("actors.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)
    status = Column(String, nullable=False, default=SubscriptionStatus.ACTIVE.value)
    end_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    plan = relationship("SubscriptionPlan")

    __table_args__ = (
        Index("idx_subscription_actor_status", "actor_id", "status"),
    )
