"""Database engine for the local job store."""

from sqlalchemy import create_engine

from leadpilot.config import settings
from leadpilot.db.models import Base

engine = create_engine(settings.JOB_STORE_URL, pool_pre_ping=True)


def init_db(bind=None) -> None:
    """Create the store tables if they do not exist yet."""
    Base.metadata.create_all(bind=bind or engine)
