from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.exc import DataError, IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base
from library_catalog.core.config import settings
from library_catalog.core.exceptions import StorageUnavailableError, ValidationError


def build_engine(database_url: str = None, **kwargs):
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    else:
        kwargs.setdefault("pool_size", settings.DB_POOL_SIZE)
        kwargs.setdefault("max_overflow", settings.DB_MAX_OVERFLOW)
        kwargs.setdefault("pool_pre_ping", True)  # Detect stale connections
        kwargs.setdefault("pool_recycle", settings.DB_POOL_RECYCLE)
    return create_engine(url, **kwargs)


engine = build_engine()

Base = declarative_base()


def init_db(bind=None) -> None:
    """Create the catalog tables."""
    from library_catalog import models  # noqa: F401  registers the tables

    Base.metadata.create_all(bind=bind or engine)


@contextmanager
def storage_errors(db: Session):
    """
    Translate record store failures. Constraint and data errors are bad input;
    anything else from the driver means the store cannot serve the request.
    The session is rolled back either way.
    """
    try:
        yield
    except (IntegrityError, DataError) as e:
        db.rollback()
        raise ValidationError(f"Record rejected by store: {e.orig or e}") from e
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageUnavailableError("Record store", str(getattr(e, 'orig', None) or e)) from e
