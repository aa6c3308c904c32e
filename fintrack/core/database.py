from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from fintrack.core.config import settings


class Base(DeclarativeBase):
    pass


# Sync engine shared by the Celery worker and the read services
engine = create_engine(settings.database_url_sync, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)


def init_db(bind: Engine = engine) -> None:
    """Create all tables. Development and tests only; production schemas are managed outside this package."""
    # Register every mapped class on Base.metadata before create_all
    from fintrack.models import account, budget, sync_job, user  # noqa: F401

    Base.metadata.create_all(bind)
