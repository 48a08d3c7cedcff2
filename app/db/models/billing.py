"""
Credit balances and commission tags used by the CREDITS and COMMISSION
monetization modes. No payment is captured here.
"""
import enum
from sqlalchemy import Column, Integer, String, Float, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.db.base import Base


class CommissionStatus(str, enum.Enum):
    PENDING = "PENDING"  # resource created, nothing owed yet
    DUE = "DUE"  # lifecycle event reached, charge collectable
    VOID = "VOID"  # resource released before the event


class CreditBalance(Base):
    __tablename__ = "credit_balances"

    actor_id = Column(Integer, ForeignKey("actors.id"), primary_key=True)
    balance = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class CommissionCharge(Base):
    __tablename__ = "commission_charges"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("actors.id"), nullable=False, index=True)
    resource_kind = Column(String, nullable=False)
    resource_id = Column(String, nullable=False)
    rate = Column(Float, nullable=False)  # percent
    status = Column(String, nullable=False, default=CommissionStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    due_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("resource_kind", "resource_id", name="uq_commission_resource"),
    )
