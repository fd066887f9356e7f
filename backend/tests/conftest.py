"""
Shared fixtures

Every test gets a fresh in-memory SQLite schema on a single shared
connection (StaticPool), seeded with one user per role, a project and a
small material catalogue.
"""
import os

# Keep the app's own engine and audit file out of the way before app modules load
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("AUDIT_LOG_FILE", "")
os.environ.setdefault("NOTIFY_AFTER_COMMIT", "false")
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-siteledger-tests")

from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.security import Caller, create_access_token
from app.db.base import Base
from app.models import Material, MaterialCategory, Project, Role, User

# Create in-memory SQLite database for testing
SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def session_factory():
    return TestingSessionLocal


@pytest.fixture
def db_session():
    """Create a fresh database for each test"""
    Base.metadata.create_all(bind=engine)
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def users(db_session):
    """One active user per role, keyed by Role"""
    created = {}
    for role in Role:
        user = User(
            name=role.value.replace("_", " ").title(),
            email=f"{role.value}@siteledger.test",
            role=role,
        )
        db_session.add(user)
        created[role] = user
    db_session.commit()
    return created


@pytest.fixture
def callers(users):
    """Caller identities matching the seeded users"""
    return {role: Caller(id=user.id, role=role.value) for role, user in users.items()}


@pytest.fixture
def project(db_session):
    project = Project(
        name="Warehouse Extension",
        customer="PT Contoh",
        city="Bandung",
        estimated_cost=Decimal("250000.00"),
    )
    db_session.add(project)
    db_session.commit()
    return project


@pytest.fixture
def cement(db_session):
    """stock 100, min 20, 75.00 per sack"""
    material = Material(
        code="MAT-CEM-01",
        name="Portland Cement 50kg",
        category=MaterialCategory.STRUCTURAL,
        unit="sack",
        unit_price=Decimal("75.00"),
        stock=Decimal("100"),
        min_stock=Decimal("20"),
    )
    db_session.add(material)
    db_session.commit()
    return material


@pytest.fixture
def cable(db_session):
    """stock 500, min 50, 2.50 per metre"""
    material = Material(
        code="MAT-ELC-01",
        name="NYM Cable 3x2.5mm",
        category=MaterialCategory.ELECTRICAL,
        unit="m",
        unit_price=Decimal("2.50"),
        stock=Decimal("500"),
        min_stock=Decimal("50"),
    )
    db_session.add(material)
    db_session.commit()
    return material


@pytest.fixture
def auth_headers():
    """Build a bearer header for a user id and role"""
    def _headers(user_id: int, role: str) -> dict:
        token = create_access_token(user_id, role)
        return {"Authorization": f"Bearer {token}"}
    return _headers
