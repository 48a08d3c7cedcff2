"""
Quota counter and reservation models.

`quota_counters` holds the number of live quota-consuming resources per actor
and kind. It is a derivative of the resource tables and must move in the same
transaction as them. `quota_reservations` records which resource owns each
counted unit so that releasing one resource twice cannot decrement twice.
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func
from app.db.base import Base


class ResourceKind(str, enum.Enum):
    APPLICATION = "APPLICATION"
    MISSION = "MISSION"


class QuotaCounter(Base):
    __tablename__ = "quota_counters"

    actor_id = Column(Integer, ForeignKey("actors.id"), primary_key=True)
    resource_kind = Column(String, primary_key=True)
    active_count = Column(Integer, nullable=False, default=0)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class QuotaReservation(Base):
    __tablename__ = "quota_reservations"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, ForeignKey("actors.id"), nullable=False)
    resource_kind = Column(String, nullable=False)
    resource_id = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    released_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("resource_kind", "resource_id", name="uq_reservation_resource"),
        Index("idx_reservation_actor_kind", "actor_id", "resource_kind"),
    )
