"""Pytest fixtures for FarmLink tests."""

import os

# Must be set before config.settings is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SECRET_KEY"] = "test-secret-key"
os.environ["RATE_LIMIT_ENABLED"] = "true"

from decimal import Decimal  # noqa: E402
from itertools import count  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from config.database import Base, SessionLocal, engine  # noqa: E402
from common.rate_limit import InMemoryRateLimiter  # noqa: E402
from common.security import create_token  # noqa: E402
from main import app  # noqa: E402
from modules.cart.models import CartItem  # noqa: E402
from modules.catalog.models import Product, derive_status  # noqa: E402
from modules.user.models import User  # noqa: E402

_seq = count(1)


@pytest.fixture(autouse=True)
def tables():
    """Fresh schema per test."""
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def rate_limiter():
    """Generous limiter so ordinary tests never hit 429."""
    limiter = InMemoryRateLimiter(max_requests=10_000, window_seconds=900)
    app.state.rate_limiter = limiter
    yield limiter
    app.dependency_overrides.clear()


@pytest.fixture
def db(tables):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def make_user(db):
    """Create a user with the given role."""

    def _make(role="buyer", name=None):
        n = next(_seq)
        user = User(email=f"{role}{n}@farmlink.test", name=name or f"{role.title()} {n}", role=role)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    return _make


@pytest.fixture
def buyer(make_user):
    return make_user("buyer")


@pytest.fixture
def producer(make_user):
    return make_user("producer")


@pytest.fixture
def make_product(db, producer):
    """Create a product owned by `producer` unless another owner is given."""

    def _make(price="10.00", quantity=5, title=None, owner=None, status=None):
        n = next(_seq)
        product = Product(
            producer_id=(owner or producer).id,
            title=title or f"Product {n}",
            unit="kg",
            unit_price=Decimal(price),
            available_quantity=quantity,
            status=status or derive_status(quantity).value,
        )
        db.add(product)
        db.commit()
        db.refresh(product)
        return product

    return _make


@pytest.fixture
def add_to_cart(db):
    """Put a line straight into a buyer's cart, bypassing stock checks."""

    def _add(user, product, quantity):
        item = CartItem(buyer_id=user.id, product_id=product.id, quantity=quantity)
        db.add(item)
        db.commit()
        db.refresh(item)
        return item

    return _add


def auth_headers(user):
    token = create_token({"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers():
    return auth_headers
