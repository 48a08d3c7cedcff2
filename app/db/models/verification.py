import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from app.db.base import Base


class VerificationEntityType(str, enum.Enum):
    WORKER_PROFILE = "WORKER_PROFILE"
    ESTABLISHMENT_PROFILE = "ESTABLISHMENT_PROFILE"


class VerificationStatus(str, enum.Enum):
    PENDING = "PENDING"
    IN_REVIEW = "IN_REVIEW"
    VALIDATED = "VALIDATED"
    REJECTED = "REJECTED"


TERMINAL_STATUSES = frozenset({VerificationStatus.VALIDATED, VerificationStatus.REJECTED})


class VerificationRecord(Base):
    """
    One review case for a worker or establishment profile.

    Mutated only through the verification state machine; `version` is bumped on
    every transition and is what callers compare-and-swap against. Records are
    never deleted: a rejected profile gets a new record.
    """
    __tablename__ = "verification_records"

    id = Column(Integer, primary_key=True, index=True)
    entity_type = Column(String, nullable=False)
    entity_id = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=VerificationStatus.PENDING.value)
    reviewer_id = Column(Integer, ForeignKey("actors.id"), nullable=True)
    notes = Column(Text, nullable=True)
    reject_reason = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_verification_entity", "entity_type", "entity_id"),
    )
