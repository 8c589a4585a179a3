# backend/xdr_engine/db/init_db.py

from xdr_engine.db.session import engine
from xdr_engine.db.base_class import Base

# Import models so they are registered with Base.metadata
from xdr_engine.models import action_execution_record  # noqa: F401


def init_db() -> None:
    """
    Create all tables (development only).
    In production, replace this with Alembic migrations.
    """
    Base.metadata.create_all(bind=engine)
