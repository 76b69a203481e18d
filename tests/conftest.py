import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from datapanel.client.timings import PanelTimings
from datapanel.db import Base
from datapanel.services.registry import DataTableRegistry
from tests.mocks import FakeTransport, WidgetTable, add_widgets


@pytest.fixture(scope="session")
def engine():
    engine = create_engine(
        "sqlite+pysqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture()
def db_session(engine):
    connection = engine.connect()
    transaction = connection.begin()
    SessionLocal = sessionmaker(bind=connection, autoflush=False, autocommit=False)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        transaction.rollback()
        connection.close()


@pytest.fixture()
def widgets(db_session):
    """Five widgets inserted out of id order."""
    add_widgets(
        db_session,
        [
            (3, "Gizmo", "active"),
            (1, "Anvil", "active"),
            (5, "Sprocket", "inactive"),
            (2, "Bracket", "inactive"),
            (4, "Cog", "active"),
        ],
    )
    return db_session


@pytest.fixture()
def widget_table():
    return WidgetTable()


@pytest.fixture()
def registry(widget_table):
    registry = DataTableRegistry()
    registry.register(widget_table)
    return registry


@pytest.fixture()
def transport():
    return FakeTransport()


@pytest.fixture()
def timings():
    """Short client windows so timer-driven tests stay fast."""
    return PanelTimings(
        transition=0.01,
        loading_delay=0.05,
        error_dismiss=0.1,
        refresh_debounce=0.05,
    )
