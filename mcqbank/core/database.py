import logging

from sqlalchemy import create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from mcqbank.core.config import settings

logger = logging.getLogger(__name__)

engine = create_engine(settings.DATABASE_URL, echo=settings.DATABASE_ECHO, future=True, pool_pre_ping=True)
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


class Base(DeclarativeBase):
    pass


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def init_db(bind=None):
    """Create tables and seed the human-id sequence counter."""
    # models must be imported so their tables are registered on Base.metadata
    from mcqbank.models import orm  # noqa: F401
    from mcqbank.services.question_ids import SequenceAllocator

    bind = bind or engine
    Base.metadata.create_all(bind)
    session = sessionmaker(bind=bind, autoflush=False, future=True)()
    try:
        SequenceAllocator(session).ensure_counter()
        session.commit()
    finally:
        session.close()
    logger.info("Database initialized")
