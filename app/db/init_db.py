"""
Create all tables directly from the models.

Used for local bootstrap and tests; deployed databases are migrated with Alembic.
"""
from app.db.base import Base
import app.db.models  # noqa: F401  (registers every model on Base.metadata)


def init_db(bind=None):
    if bind is None:
        from app.db.session import engine
        bind = engine
    Base.metadata.create_all(bind=bind)


if __name__ == "__main__":
    init_db()
