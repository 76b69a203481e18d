from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from datapanel.config import settings


class Base(DeclarativeBase):
    """Declarative base for models that datatables read from."""


def get_engine(url: str | None = None) -> Engine:
    url = url or settings.database_url
    # sqlite has no connection pool to size
    if make_url(url).get_backend_name() == "sqlite":
        return create_engine(url, connect_args={"check_same_thread": False})
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_recycle=settings.db_pool_recycle,
    )


SessionLocal = sessionmaker(bind=get_engine(), autoflush=False, autocommit=False)


def get_db():
    """Request-scoped session for the datatable routes.

    The list, detail and lazy-tab handlers run all their statements on this
    one session. A failed list query rolls it back; it is closed when the
    response is sent.
    """
    db: Session = SessionLocal()
    try:
        yield db
    finally:
        db.close()
