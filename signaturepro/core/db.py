# signaturepro/core/db.py

from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from signaturepro.core.config import settings
from signaturepro.utils.logger import get_logger

# --- Configure logging ---
logger = get_logger(__name__)


def build_engine(url: str, echo: bool = False):
    """
    Create an engine for the given URL. SQLite needs cross-thread access
    because FastAPI runs sync endpoints in a threadpool.
    """
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, echo=echo, future=True, connect_args=connect_args)


def build_session_factory(bind) -> sessionmaker:
    """
    Session factory used by request handlers and by the signing coordinator.
    Objects stay usable after commit so snapshots can be built from them.
    """
    return sessionmaker(bind=bind, autoflush=False, expire_on_commit=False)


# --- Create database engine ---
engine = build_engine(settings.db_url, echo=settings.db_echo)

# --- Create sessionmaker ---
SessionLocal = build_session_factory(engine)

# --- Create declarative base ---
Base = declarative_base()


def get_db():
    """
    Method for obtaining database session object
    """
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception as e:
        db.rollback()
        logger.error("Error in DB transaction", error_message=str(e))
        raise
    finally:
        db.close()
