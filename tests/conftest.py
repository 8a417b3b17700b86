"""Pytest fixtures for the shop backend tests."""
from datetime import datetime, timezone

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings, get_settings
from database import create_document, get_db
from security import get_password_hash, issue_token

PASSWORD = "secret-pass"


@pytest.fixture(scope="session")
def password_hash():
    """Hash once; bcrypt is slow on purpose."""
    return get_password_hash(PASSWORD)


@pytest.fixture
def settings():
    return Settings(
        secret_key="test-secret",
        admin_email="owner@example.com",
        admin_password="owner-pass",
        business_name="Rong Chapa",
    )


@pytest.fixture
def db():
    client = mongomock.MongoClient(tz_aware=True)
    return client["rong_chapa_test"]


@pytest.fixture
def client(db, settings):
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    app.dependency_overrides[get_settings] = lambda: settings
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_user(db, settings, password_hash):
    """Insert a user and return (document, bearer token)."""

    def _make(email="customer@example.com", role="customer", name="Test Customer"):
        user_id = create_document(db, "user", {
            "name": name,
            "email": email,
            "password_hash": password_hash,
            "role": role,
            "phone": "01700000000",
        })
        user = db["user"].find_one({"_id": user_id})
        return user, issue_token(user, settings)

    return _make


@pytest.fixture
def customer(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="staff@example.com", role="admin", name="Staff")


@pytest.fixture
def auth():
    def _headers(token):
        return {"Authorization": f"Bearer {token}"}

    return _headers


@pytest.fixture
def make_product(db):
    def _make(name="Business Cards", slug="business-cards", base_price=100.0, **extra):
        product_id = create_document(db, "product", {
            "name": name,
            "slug": slug,
            "base_price": base_price,
            "categories": [],
            "sizes": [],
            "paper_types": [],
            "quantity_options": [],
            "is_active": True,
            **extra,
        })
        return db["product"].find_one({"_id": product_id})

    return _make


@pytest.fixture
def product(make_product):
    return make_product()


@pytest.fixture
def old_stamp():
    return datetime(2020, 1, 1, tzinfo=timezone.utc)
