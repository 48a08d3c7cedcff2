import enum
from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index
from sqlalchemy.sql import func
from app.db.base import Base


class MissionStatus(str, enum.Enum):
    OPEN = "OPEN"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


# Statuses that hold a mission quota unit
ACTIVE_MISSION_STATUSES = frozenset({MissionStatus.OPEN.value, MissionStatus.PUBLISHED.value})


class Mission(Base):
    __tablename__ = "missions"

    id = Column(Integer, primary_key=True, index=True)
    establishment_id = Column(Integer, ForeignKey("actors.id"), nullable=False, index=True)
    title = Column(String, nullable=False)
    is_urgent = Column(Boolean, nullable=False, default=False)
    status = Column(String, nullable=False, default=MissionStatus.OPEN.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_mission_establishment_status", "establishment_id", "status"),
    )
