import datetime as dt

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from cache import Cache
from database import Base, configure_sqlite
from schemas import EntryIn, GroupIn
from services import Services
from store import Store


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    configure_sqlite(engine)
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


@pytest.fixture
def session():
    session = make_session()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def cache() -> Cache:
    return Cache()


@pytest.fixture
def store(session) -> Store:
    return Store(session)


@pytest.fixture
def services(store, cache) -> Services:
    return Services(store, cache)


class SeveredSession:
    """Stands in for a session whose database went away."""

    def __getattr__(self, name):
        raise AssertionError(f"store was touched: session.{name}")


@pytest.fixture
def sever(store):
    def _sever() -> None:
        store.session = SeveredSession()

    return _sever


@pytest.fixture
def make_group(services):
    def _make(name: str = "Family", currency: str = "USD"):
        return services.groups.create(GroupIn(name=name, currency=currency))

    return _make


@pytest.fixture
def make_entry(services):
    def _make(group, category=None, day=dt.date(2025, 1, 1), description=None):
        return services.entries.create(
            EntryIn(
                description=description,
                date=day,
                group_id=group.id,
                category_id=category.id if category else None,
            )
        )

    return _make
