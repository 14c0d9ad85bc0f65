"""
Shared fixtures: an in-memory SQLite database per test, a seeded location
with floor users, and a TestClient whose authenticated user is swapped
through dependency overrides.
"""
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from app.main import app
from models.location import Franchise, Location
from models.table_management import Table, TableStatus
from models.user import User, UserRole
from services.order_cache import order_cache
from utils.auth import get_current_user
from utils.database import Base, get_db


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(engine):
    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = TestingSessionLocal()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clear_order_cache():
    order_cache.clear()
    yield
    order_cache.clear()


def _user(db, username, role, location=None):
    user = User(
        email=f"{username}@example.com",
        username=username,
        name=username.title(),
        hashed_password="not-used",
        role=role,
        is_active=True,
        location_id=location.id if location else None,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def owner(db_session):
    return _user(db_session, "owner", UserRole.OWNER)


@pytest.fixture
def location(db_session, owner):
    franchise = Franchise(name="Spice Route", owner_id=owner.id)
    db_session.add(franchise)
    db_session.flush()
    location = Location(
        franchise_id=franchise.id,
        name="Spice Route MG Road",
        city="Pune",
        cgst_rate=2.5,
        sgst_rate=2.5,
        service_charge_rate=0.0,
    )
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def other_location(db_session):
    location = Location(name="Elsewhere", cgst_rate=0.0, sgst_rate=0.0, service_charge_rate=0.0)
    db_session.add(location)
    db_session.commit()
    db_session.refresh(location)
    return location


@pytest.fixture
def staff(db_session, location):
    return _user(db_session, "waiter", UserRole.STAFF, location)


@pytest.fixture
def manager(db_session, location):
    return _user(db_session, "manager", UserRole.MANAGER, location)


@pytest.fixture
def outsider(db_session, other_location):
    return _user(db_session, "outsider", UserRole.STAFF, other_location)


@pytest.fixture
def tables(db_session, location):
    created = []
    for name, capacity in (("1", 4), ("2", 4), ("3", 2), ("4", 6)):
        table = Table(name=name, capacity=capacity, location_id=location.id, status=TableStatus.AVAILABLE)
        db_session.add(table)
        created.append(table)
    db_session.commit()
    for table in created:
        db_session.refresh(table)
    return created


@pytest.fixture
def client(db_session):
    def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    test_client = TestClient(app)
    yield test_client
    app.dependency_overrides.clear()


@pytest.fixture
def login_as(db_session):
    """Authenticate subsequent requests as ``user``."""
    def _login(user):
        app.dependency_overrides[get_current_user] = lambda: db_session.get(User, user.id)
        return user
    return _login


@pytest.fixture
def items():
    return [
        {"name": "Paneer Tikka", "price": 200.0, "quantity": 1},
        {"name": "Butter Naan", "price": 50.0, "quantity": 2},
    ]
