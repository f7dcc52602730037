import os

# Must be set before the package reads its configuration
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["REDIS_URL"] = ""
os.environ["REDIS_HOST"] = ""
os.environ["ADVISORY_LOCKS_ENABLED"] = "false"

from datetime import date  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from schedule_ledger.auth import get_current_user  # noqa: E402
from schedule_ledger.database import Base, enable_sqlite_savepoints, get_db  # noqa: E402
from schedule_ledger.main import app  # noqa: E402
from schedule_ledger.models import Client, RecurringRule, User  # noqa: E402

# Monday
TODAY = date(2025, 3, 10)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    enable_sqlite_savepoints(engine)
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    TestingSession = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSession()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def user(db):
    owner = User(auth_uid="owner-1", email="owner@example.com", timezone="America/Sao_Paulo")
    db.add(owner)
    db.commit()
    db.refresh(owner)
    return owner


@pytest.fixture
def other_user(db):
    owner = User(auth_uid="owner-2", email="other@example.com", timezone="America/Sao_Paulo")
    db.add(owner)
    db.commit()
    db.refresh(owner)
    return owner


@pytest.fixture
def client_row(db, user):
    client = Client(user_id=user.id, name="Ana Souza", is_recurring=True)
    db.add(client)
    db.commit()
    db.refresh(client)
    return client


@pytest.fixture
def make_rule(db, user, client_row):
    def _make_rule(**overrides):
        data = {
            "user_id": user.id,
            "client_id": client_row.id,
            "title": "Weekly session",
            "weekdays": [1, 3],
            "time_local": "19:00",
            "timezone": "America/Sao_Paulo",
            "start_date": date(2025, 3, 1),
            "end_date": None,
            "interval_weeks": 1,
            "amount": 100.0,
            "active": True,
        }
        data.update(overrides)
        rule = RecurringRule(**data)
        db.add(rule)
        db.commit()
        db.refresh(rule)
        return rule

    return _make_rule


@pytest.fixture
def api(db, user):
    def override_get_db():
        yield db

    async def override_get_current_user():
        return user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user
    yield TestClient(app)
    app.dependency_overrides.clear()
