import os

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///:memory:")

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from hilink.config import Settings
from hilink.db.session import Base
from hilink.db import models
from hilink.services.payments import StubGateway

TEST_SERVER_KEY = "test-server-key"


def _make_engine():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )

    # pysqlite issues its own BEGIN lazily; take over so SAVEPOINT works
    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")

    Base.metadata.create_all(bind=engine)
    return engine


@pytest.fixture()
def session_factory():
    engine = _make_engine()
    factory = sessionmaker(
        bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True
    )
    try:
        yield factory
    finally:
        engine.dispose()


@pytest.fixture()
def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def settings():
    return Settings(MIDTRANS_SERVER_KEY=TEST_SERVER_KEY, APP_URL="http://testserver")


@pytest.fixture()
def gateway(settings):
    return StubGateway(settings)


@pytest.fixture()
def make_user(db_session):
    counter = {"value": 0}

    def factory(email=None):
        counter["value"] += 1
        user = models.User(email=email or f"user{counter['value']}@example.com", full_name="Test User")
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return factory


@pytest.fixture()
def make_trip(db_session):
    def factory(days=3, price_per_person=Decimal("100")):
        start = datetime.now(timezone.utc) + timedelta(days=10)
        trip = models.Trip(
            title="Rinjani Summit",
            destination="Lombok",
            start_date=start,
            end_date=start + timedelta(days=days),
            price_per_person=price_per_person,
        )
        db_session.add(trip)
        db_session.commit()
        db_session.refresh(trip)
        return trip

    return factory


@pytest.fixture()
def make_equipment(db_session):
    def factory(stock=5, price_per_day=Decimal("10"), name="Tent"):
        equipment = models.Equipment(
            name=name,
            category="camping",
            stock_quantity=stock,
            rental_price_per_day=price_per_day,
        )
        db_session.add(equipment)
        db_session.commit()
        db_session.refresh(equipment)
        return equipment

    return factory
