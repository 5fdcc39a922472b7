"""
Pytest configuration and fixtures for backend tests.
"""

import itertools
import os

# Point the application engine at SQLite before anything imports settings
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from costing_api.main import app
from costing_api.models import Base, Tenant, User
from costing_api.services.audit import Actor
from costing_api.services.domain import FormulationService, MaterialService
from costing_api.services.events import get_event_bus
from costing_api.services.propagation import register_propagation_handlers
from shared.config.constants import Roles, SubscriptionPlan
from shared.infrastructure.db import get_db
from shared.security.password import hash_password
from shared.security.rate_limit import limiter


_id_counter = itertools.count(1000)

# Low bcrypt cost keeps the suite fast
TEST_ROUNDS = 4

SQLALCHEMY_DATABASE_URL = "sqlite:///:memory:"

engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=engine
)


def next_id():
    """Generate a unique ID for test entities."""
    return next(_id_counter)


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Uses SQLite in-memory for isolation.
    """
    Base.metadata.create_all(bind=engine)

    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture(scope="function")
def client(db_session):
    """
    Create a test client with database session override.
    """
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def propagation_handlers():
    """The app lifespan clears the bus on shutdown; every test starts wired."""
    bus = get_event_bus()
    bus.clear()
    register_propagation_handlers()
    yield bus
    bus.clear()


@pytest.fixture(autouse=True)
def reset_rate_limiter():
    limiter.reset()
    yield


# =============================================================================
# Tenants and users
# =============================================================================


def _make_tenant(db_session, *, tenant_id, slug, plan):
    tenant = Tenant(id=tenant_id, name=f"Tenant {slug}", slug=slug, plan=plan)
    db_session.add(tenant)
    db_session.commit()
    db_session.refresh(tenant)
    return tenant


def _make_user(db_session, tenant, *, email, password, role):
    user = User(
        tenant_id=tenant.id,
        email=email,
        password=hash_password(password, rounds=TEST_ROUNDS),
        role=role,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture
def seed_tenant(db_session):
    """Tenant on the largest plan so limits stay out of the way."""
    return _make_tenant(
        db_session, tenant_id=1, slug="test-bakery", plan=SubscriptionPlan.ENTERPRISE
    )


@pytest.fixture
def free_tenant(db_session):
    return _make_tenant(db_session, tenant_id=2, slug="free-bakery", plan=SubscriptionPlan.FREE)


@pytest.fixture
def other_tenant(db_session):
    return _make_tenant(
        db_session, tenant_id=3, slug="other-bakery", plan=SubscriptionPlan.ENTERPRISE
    )


@pytest.fixture
def seed_owner_user(db_session, seed_tenant):
    return _make_user(
        db_session, seed_tenant, email="owner@test.com", password="ownerpass123", role=Roles.OWNER
    )


@pytest.fixture
def seed_viewer_user(db_session, seed_tenant):
    return _make_user(
        db_session, seed_tenant, email="viewer@test.com", password="viewer123", role=Roles.VIEWER
    )


@pytest.fixture
def free_owner_user(db_session, free_tenant):
    return _make_user(
        db_session, free_tenant, email="owner@free.example.com", password="freepass123", role=Roles.OWNER
    )


def _login(client, email, password):
    response = client.post("/api/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, f"Login failed: {response.json()}"
    token = response.json()["access_token"]
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers(client, seed_owner_user):
    """Get authentication headers for an OWNER of the enterprise tenant."""
    return _login(client, "owner@test.com", "ownerpass123")


@pytest.fixture
def viewer_auth_headers(client, seed_viewer_user):
    return _login(client, "viewer@test.com", "viewer123")


@pytest.fixture
def free_auth_headers(client, free_owner_user):
    return _login(client, "owner@free.example.com", "freepass123")


# =============================================================================
# Domain helpers
# =============================================================================


@pytest.fixture
def owner_actor(seed_owner_user):
    return Actor(seed_owner_user.id, seed_owner_user.email)


@pytest.fixture
def make_material(db_session, seed_tenant, owner_actor):
    """Factory creating a material through the service (audited)."""
    service = MaterialService(db_session)

    def _make(name="Flour", total_cost="100.00", quantity="10", unit="kg", **extra):
        data = {
            "name": name,
            "total_cost": total_cost,
            "quantity": quantity,
            "unit": unit,
            **extra,
        }
        return service.create_material(data, seed_tenant.id, owner_actor)

    return _make


@pytest.fixture
def make_formulation(db_session, seed_tenant, owner_actor):
    """Factory creating a formulation with ingredient lines through the service."""
    service = FormulationService(db_session)

    def _make(name="Bread", ingredients=(), batch_size="1", markup_percentage="30", **extra):
        data = {
            "name": name,
            "batch_size": batch_size,
            "batch_unit": "batch",
            "markup_percentage": markup_percentage,
            **extra,
        }
        return service.create_formulation(data, list(ingredients), seed_tenant.id, owner_actor)

    return _make


def line(material_id, quantity, unit="kg", **extra):
    """Ingredient line payload for a material."""
    return {"material_id": material_id, "quantity": quantity, "unit": unit, **extra}
