"""Shared pytest fixtures for test suite"""
import hashlib
import hmac
import itertools
import json
import os
import sys
import time
from pathlib import Path
from types import SimpleNamespace
from typing import Generator
from unittest.mock import Mock, patch

import pytest

# Test configuration must be in place before the app reads settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("FAL_WEBHOOK_SECRET", "fal_test_secret")
os.environ.setdefault("REPLICATE_WEBHOOK_SECRET", "replicate_test_secret")
os.environ.setdefault("ADMIN_API_KEY", "admin_test_key")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.core.config import settings
from app.db.session import get_db
from app.models import Base, Creator, Store, Generation, Product, Order, OrderItem
from app.models.enums import WebhookSource


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# Create test engine with StaticPool for in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

# Create test session factory
TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database"""

    # Override get_db dependency to use test database
    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        # Disable OpenTelemetry and the real database bootstrap in tests
        with patch('app.core.otel.initialize_otel', return_value=False):
            with patch('app.core.otel.setup_otel_logging', return_value=False):
                with patch('app.core.otel.instrument_sqlalchemy'):
                    with patch('app.main.init_db'):
                        with TestClient(app) as test_client:
                            yield test_client
    finally:
        # Cleanup - always clear overrides
        app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def admin_headers() -> dict:
    return {"X-Admin-Key": settings.ADMIN_API_KEY}


@pytest.fixture(scope="function", autouse=True)
def auto_mock_stripe():
    """Automatically mock Stripe for all tests so no real transfers or sessions are created"""
    transfer_ids = itertools.count(1)

    with patch('app.services.stripe_connect_service.stripe') as mock_stripe_module, \
            patch('app.services.checkout_service.stripe', mock_stripe_module):
        # Mock Transfer operations - unique id per call
        mock_stripe_module.Transfer.create = Mock(
            side_effect=lambda **kwargs: {"id": f"tr_test_{next(transfer_ids)}", **kwargs}
        )

        # Mock Connect account operations
        mock_stripe_module.Account.retrieve = Mock(return_value={
            "id": "acct_creator123",
            "charges_enabled": True,
            "payouts_enabled": True,
            "details_submitted": True,
        })

        # Mock Checkout operations
        mock_stripe_module.checkout.Session.create = Mock(return_value=Mock(
            id="cs_test123",
            url="https://checkout.stripe.com/test"
        ))

        yield mock_stripe_module


# ============================================================================
# MARKETPLACE BUILDERS
# ============================================================================

@pytest.fixture(scope="function")
def creator(db_session: Session) -> Creator:
    """Onboarded creator with default licensing (10% royalty, $5 minimum)"""
    creator = Creator(
        name="Test Creator",
        email="creator@example.com",
        status="READY",
        fal_job_id="fal_job_123",
        stripe_account_id="acct_creator123",
        stripe_onboarding_complete=True,
    )
    db_session.add(creator)
    db_session.commit()
    db_session.refresh(creator)
    return creator


@pytest.fixture(scope="function")
def store(db_session: Session) -> Store:
    """Store whose owner has not connected a payout account"""
    store = Store(name="Test Store", owner_id="store-owner-1")
    db_session.add(store)
    db_session.commit()
    db_session.refresh(store)
    return store


@pytest.fixture(scope="function")
def generation(db_session: Session, creator: Creator) -> Generation:
    generation = Generation(
        creator_id=creator.id,
        user_id="store-owner-1",
        status="COMPLETED",
        prompt="portrait in a sunflower field",
        image_url="https://cdn.example.com/generations/watermarked.jpg",
        replicate_prediction_id="pred_done",
    )
    db_session.add(generation)
    db_session.commit()
    db_session.refresh(generation)
    return generation


@pytest.fixture(scope="function")
def product(db_session: Session, store: Store, generation: Generation, creator: Creator) -> Product:
    product = Product(
        store_id=store.id,
        generation_id=generation.id,
        creator_id=creator.id,
        product_type="print",
        price_cents=1000,
        status="ACTIVE",
    )
    db_session.add(product)
    db_session.commit()
    db_session.refresh(product)
    return product


@pytest.fixture(scope="function")
def make_order(db_session: Session, product: Product):
    """Factory: order for one unit of the product at its price"""
    session_ids = itertools.count(1)

    def _make_order(status: str = "PENDING", quantity: int = 1, price_cents: int = None) -> Order:
        price = price_cents if price_cents is not None else product.price_cents
        order = Order(
            user_id="buyer-1",
            status=status,
            total_cents=price * quantity,
            platform_fee_cents=0,
            stripe_session_id=f"cs_test_order_{next(session_ids)}",
        )
        order.items = [OrderItem(product_id=product.id, quantity=quantity, price_cents=price)]
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)
        return order

    return _make_order


@pytest.fixture(scope="function")
def marketplace(creator, store, generation, product, make_order) -> SimpleNamespace:
    return SimpleNamespace(creator=creator, store=store, generation=generation, product=product, make_order=make_order)


# ============================================================================
# WEBHOOK SIGNING
# ============================================================================

def stripe_signature_header(body: bytes, secret: str, timestamp: int = None) -> str:
    timestamp = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(secret.encode(), f"{timestamp}.".encode() + body, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def fal_signature_header(body: bytes, secret: str) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def replicate_signature_header(body: bytes, secret: str) -> str:
    return "sha1=" + hmac.new(secret.encode(), body, hashlib.sha1).hexdigest()


@pytest.fixture(scope="function")
def post_webhook(client: TestClient):
    """Post a correctly signed webhook for a source: post_webhook(source, payload_dict)"""
    routes = {
        WebhookSource.STRIPE: ("/api/webhooks/stripe", "Stripe-Signature",
                               lambda body: stripe_signature_header(body, settings.STRIPE_WEBHOOK_SECRET)),
        WebhookSource.FAL: ("/api/webhooks/fal", "X-Fal-Signature",
                            lambda body: fal_signature_header(body, settings.FAL_WEBHOOK_SECRET)),
        WebhookSource.REPLICATE: ("/api/webhooks/replicate", "Replicate-Signature",
                                  lambda body: replicate_signature_header(body, settings.REPLICATE_WEBHOOK_SECRET)),
    }

    def _post(source: WebhookSource, payload: dict):
        path, header, sign = routes[source]
        body = json.dumps(payload).encode()
        return client.post(path, content=body, headers={header: sign(body), "Content-Type": "application/json"})

    return _post


def checkout_completed_event(session_id: str, event_id: str = "evt_checkout_1", payment_intent="pi_test_1") -> dict:
    """Stripe checkout.session.completed event body"""
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {"object": {"id": session_id, "object": "checkout.session", "payment_intent": payment_intent}},
    }


@pytest.fixture(scope="function")
def stripe_checkout_event():
    return checkout_completed_event
