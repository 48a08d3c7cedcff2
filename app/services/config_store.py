"""
Durable store of administrator privilege overrides.

Thin data access over the privilege_overrides table. Values are stored as
JSON-encoded scalars; typing and validation happen in the resolver.
"""
import logging
from typing import List, Optional

from sqlalchemy import delete
from sqlalchemy.orm import Session
from sqlalchemy.sql import func

from app.db.dialect import upsert
from app.db.models.privilege_override import PrivilegeOverride

logger = logging.getLogger(__name__)


class ConfigStore:
    """Category-scoped key/value overrides; one row per (category, key)."""

    def get(self, db: Session, category: str, key: str) -> Optional[PrivilegeOverride]:
        return (
            db.query(PrivilegeOverride)
            .filter(PrivilegeOverride.category == category, PrivilegeOverride.key == key)
            .first()
        )

    def list(self, db: Session, category: Optional[str] = None) -> List[PrivilegeOverride]:
        query = db.query(PrivilegeOverride)
        if category is not None:
            query = query.filter(PrivilegeOverride.category == category)
        return query.order_by(PrivilegeOverride.category, PrivilegeOverride.key).all()

    def upsert(
        self,
        db: Session,
        category: str,
        key: str,
        encoded_value: str,
        updated_by: Optional[int] = None,
    ) -> None:
        """Insert or replace an override. Caller commits."""
        upsert(
            db,
            PrivilegeOverride,
            values={
                "category": category,
                "key": key,
                "value": encoded_value,
                "updated_by": updated_by,
            },
            conflict_columns=("category", "key"),
            update_values={
                "value": encoded_value,
                "updated_by": updated_by,
                "updated_at": func.now(),
            },
        )
        logger.debug(f"Override staged: {category}.{key}={encoded_value}")

    def delete(self, db: Session, category: str, key: str) -> bool:
        """Remove an override. Caller commits."""
        result = db.execute(
            delete(PrivilegeOverride).where(
                PrivilegeOverride.category == category,
                PrivilegeOverride.key == key,
            )
        )
        return result.rowcount > 0
