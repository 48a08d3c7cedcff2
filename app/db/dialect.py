"""
Race-free "insert if absent" and "insert or update" for the two databases the
service runs on: PostgreSQL in production, SQLite locally and in tests.
"""
import logging
from typing import Any, Dict, Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _dialect_insert(db: Session, model):
    name = db.get_bind().dialect.name
    factory = _DIALECT_INSERTS.get(name)
    if factory is None:
        return None
    return factory(model)


def insert_ignore(db: Session, model, values: Dict[str, Any], conflict_columns: Iterable[str]) -> None:
    """INSERT ... ON CONFLICT DO NOTHING."""
    stmt = _dialect_insert(db, model)
    if stmt is not None:
        db.execute(stmt.values(**values).on_conflict_do_nothing(index_elements=list(conflict_columns)))
        return

    # Other backends: fall back to a savepoint around a plain insert
    try:
        with db.begin_nested():
            db.execute(model.__table__.insert().values(**values))
    except IntegrityError:
        logger.debug(f"Row already present in {model.__tablename__}: {values}")


def upsert(
    db: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_values: Dict[str, Any],
) -> None:
    """INSERT ... ON CONFLICT DO UPDATE (last writer wins)."""
    conflict_columns = list(conflict_columns)
    stmt = _dialect_insert(db, model)
    if stmt is not None:
        db.execute(
            stmt.values(**values).on_conflict_do_update(index_elements=conflict_columns, set_=update_values)
        )
        return

    try:
        with db.begin_nested():
            db.execute(model.__table__.insert().values(**values))
    except IntegrityError:
        table = model.__table__
        criteria = [table.c[column] == values[column] for column in conflict_columns]
        db.execute(table.update().where(*criteria).values(**update_values))
