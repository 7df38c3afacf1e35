from sqlalchemy import create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session
from sqlalchemy.orm.exc import StaleDataError
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache, wraps
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./rps_match.db"
    max_write_retries: int = 5
    subscriber_queue_size: int = 100
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env")


@lru_cache()
def get_settings():
    return Settings()


settings = get_settings()


def build_engine(database_url: str):
    """
    Create an engine for the given URL.

    SQLite needs check_same_thread=False because FastAPI runs sync
    endpoints in a worker thread pool.
    """
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False} if database_url.startswith("sqlite") else {},
        pool_pre_ping=True
    )


engine = build_engine(settings.database_url)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()


def get_db():
    """
    FastAPI dependency: one Session per request.

    The session is closed when the request finishes.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_session_factory():
    """
    FastAPI dependency for long-lived handlers (WebSocket) that open
    short sessions on demand instead of holding one for the whole connection.
    """
    return SessionLocal


def transactional(func):
    """
    Transaction decorator: run the wrapped function as one atomic unit.

    Usage:
        @transactional
        def some_business_logic(db: Session, ...):
            match = Match(...)
            db.add(match)
            # no manual commit, the decorator commits

    On exception:
        - the session is rolled back
        - the exception is re-raised for the caller to handle

    Notes:
        - the first argument must be db: Session
        - never commit inside the wrapped function
        - a version conflict (StaleDataError) is re-raised as-is so that
          core.locks.retry_on_conflict can re-run the whole transaction
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        db = None
        if args and isinstance(args[0], Session):
            db = args[0]
        elif 'db' in kwargs:
            db = kwargs['db']

        if db is None:
            raise ValueError(
                f"@transactional requires 'db: Session' as first argument, "
                f"but got args={args}, kwargs={kwargs}"
            )

        try:
            result = func(*args, **kwargs)
            db.commit()
            return result
        except StaleDataError:
            db.rollback()
            raise
        except SQLAlchemyError as e:
            logger.error(f"Transaction failed in {func.__name__}: {e}", exc_info=True)
            db.rollback()
            raise
        except Exception:
            db.rollback()
            raise

    return wrapper
