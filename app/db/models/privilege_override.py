import enum
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.sql import func
from app.db.base import Base


class PrivilegeCategory(str, enum.Enum):
    WORKER = "WORKER"
    ESTABLISHMENT = "ESTABLISHMENT"
    ADMIN = "ADMIN"


class PrivilegeOverride(Base):
    """
    Administrator override of a privilege default for a whole role.

    One row per (category, key); the latest save wins.
    """
    __tablename__ = "privilege_overrides"

    id = Column(Integer, primary_key=True, index=True)
    category = Column(String, nullable=False)
    key = Column(String, nullable=False)
    value = Column(Text, nullable=False)  # JSON-encoded scalar
    updated_by = Column(Integer, ForeignKey("actors.id"), nullable=True)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint("category", "key", name="uq_privilege_category_key"),
    )
