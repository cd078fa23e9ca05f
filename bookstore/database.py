from contextlib import contextmanager

from sqlalchemy import create_engine, event
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker, Session

from .config import get_settings
from .errors import StorageError

# Get DB connection string from the environment-backed settings.
DATABASE_URL = get_settings().database_url


def build_engine(url: str, **kwargs):
    """Creates an engine, enabling foreign keys when the backend is SQLite."""
    if url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":
        @event.listens_for(engine, "connect")
        def _enable_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()

    return engine


# Create the SQLAlchemy engine.
engine = build_engine(DATABASE_URL)

# Create a configured "Session" class for database interactions.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for declarative ORM models.
Base = declarative_base()


def get_db():
    """FastAPI dependency to get a DB session for a single request."""
    db = SessionLocal()
    try:
        yield db
    finally:
        # Ensure the session is always closed after the request is finished.
        db.close()


@contextmanager
def transaction(db: Session):
    """
    Runs a unit of work on `db`.
    - Commits when the block finishes.
    - Rolls back on any exception; SQLAlchemy failures surface as StorageError.
    """
    try:
        yield db
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError(str(exc)) from exc
    except Exception:
        db.rollback()
        raise


@contextmanager
def storage_errors():
    """Translates SQLAlchemy failures raised by read-only queries into StorageError."""
    try:
        yield
    except SQLAlchemyError as exc:
        raise StorageError(str(exc)) from exc
