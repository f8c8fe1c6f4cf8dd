"""Shared fixtures: in-memory SQLite database, users and a small catalog."""
import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["TELEMETRY_ENABLED"] = "false"
os.environ["PROFILING_ENABLED"] = "false"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["SEED_DEMO_DATA"] = "false"
os.environ["BCRYPT_ROUNDS"] = "4"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from database import SessionLocal, engine  # noqa: E402
from models import Base  # noqa: E402
from services.cart_service import CartService  # noqa: E402
from services.catalog_service import CatalogService  # noqa: E402
from services.order_service import OrderService  # noqa: E402
from tests.factories import create_category, create_product, create_user  # noqa: E402


@pytest.fixture()
def db():
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def client(db):
    from main import app
    return TestClient(app)


@pytest.fixture()
def seller(db):
    return create_user(db, "seller", role="SELLER")


@pytest.fixture()
def buyer(db):
    return create_user(db, "buyer")


@pytest.fixture()
def category(db, seller):
    return create_category(db, seller)


@pytest.fixture()
def product_a(db, seller, category):
    return create_product(db, seller, category, name="ProductA", price=10.0, stock=5)


@pytest.fixture()
def product_b(db, seller, category):
    return create_product(db, seller, category, name="ProductB", price=25.0, stock=3)


@pytest.fixture()
def cart_service():
    return CartService()


@pytest.fixture()
def order_service(cart_service):
    return OrderService(cart_service)


@pytest.fixture()
def catalog_service():
    return CatalogService()
