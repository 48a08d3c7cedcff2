"""
Profile models read by the verification workflow.
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, ForeignKey
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.db.base import Base


class DiplomaStatus(str, enum.Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class WorkerProfile(Base):
    __tablename__ = "worker_profiles"

    actor_id = Column(Integer, ForeignKey("actors.id"), primary_key=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)
    experience_years = Column(Integer, nullable=False, default=0)

    diplomas = relationship("Diploma", back_populates="worker", cascade="all, delete-orphan")


class Diploma(Base):
    __tablename__ = "diplomas"

    id = Column(Integer, primary_key=True, index=True)
    worker_id = Column(Integer, ForeignKey("worker_profiles.actor_id"), nullable=False, index=True)
    name = Column(String, nullable=False)
    verification_status = Column(String, nullable=False, default=DiplomaStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    worker = relationship("WorkerProfile", back_populates="diplomas")


class EstablishmentProfile(Base):
    __tablename__ = "establishment_profiles"

    actor_id = Column(Integer, ForeignKey("actors.id"), primary_key=True)
    name = Column(String, nullable=False)
