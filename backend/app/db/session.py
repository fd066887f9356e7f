"""
Database session management
"""
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import settings
from app.exceptions import ConflictError, InternalError
from app.logging_config import get_logger

logger = get_logger(__name__)


def build_engine(url: str = None):
    url = url or settings.database_url
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(
        url,
        echo=settings.DB_ECHO,
        pool_pre_ping=True,  # Verify connections before using
        connect_args=connect_args,
    )


engine = build_engine()

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


def get_db():
    """
    Dependency for getting database session

    Usage in FastAPI endpoints:
        @router.get("/materials")
        def list_materials(db: Session = Depends(get_db)):
            ...
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def atomic(db: Session) -> Iterator[Session]:
    """
    Run a unit of work in one transaction.

    Commits when the block exits cleanly. Any exception rolls the whole
    transaction back; domain errors propagate unchanged, unique-constraint
    violations surface as ConflictError and other database failures as
    InternalError.
    """
    try:
        yield db
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.warning("Integrity error, transaction rolled back", extra={"error": str(exc.orig)})
        raise ConflictError("Record conflicts with an existing record") from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Database error, transaction rolled back", exc_info=True)
        raise InternalError("A database error occurred; no changes were saved") from exc
    except Exception:
        db.rollback()
        raise
