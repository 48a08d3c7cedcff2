"""
Actor model.

Identity, role and account status are owned by the authentication layer; the
core only reads them.
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime
from sqlalchemy.sql import func
from app.db.base import Base


class Role(str, enum.Enum):
    WORKER = "WORKER"
    ESTABLISHMENT = "ESTABLISHMENT"
    ADMIN = "ADMIN"
    SUPER_ADMIN = "SUPER_ADMIN"


class ActorStatus(str, enum.Enum):
    PENDING = "PENDING"
    VALIDATED = "VALIDATED"
    SUSPENDED = "SUSPENDED"


ADMIN_ROLES = frozenset({Role.ADMIN, Role.SUPER_ADMIN})


class Actor(Base):
    __tablename__ = "actors"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    role = Column(String, nullable=False, index=True)
    status = Column(String, nullable=False, default=ActorStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
