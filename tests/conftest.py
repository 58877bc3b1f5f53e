"""Pytest fixtures for storefront tests."""

import hashlib
import hmac
import os
import time
from datetime import timedelta
from decimal import Decimal

# konfiguracja musi byc ustawiona przed importem storefront.utils.settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "1"
os.environ.setdefault("CELERY_BROKER_URL", "memory://")
os.environ.setdefault("CELERY_RESULT_BACKEND", "cache+memory://")
os.environ.setdefault("MOYASAR_SECRET_KEY", "sk_moyasar_test")
os.environ.setdefault("MOYASAR_WEBHOOK_SECRET", "moyasar-webhook-secret")
os.environ.setdefault("PAYMOB_API_KEY", "paymob-api-key")
os.environ.setdefault("PAYMOB_HMAC_SECRET", "paymob-hmac-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_storefront")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_storefront")

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.data import models  # noqa: F401
from storefront.data.database import Base
from storefront.data.models.coupon import CouponModel
from storefront.data.models.service import ServiceModel, ServiceOptionModel
from storefront.services.service_cache import service_cache
from storefront.utils.money import utc_now


MOYASAR_SECRET = os.environ["MOYASAR_WEBHOOK_SECRET"]
PAYMOB_SECRET = os.environ["PAYMOB_HMAC_SECRET"]
STRIPE_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


def hmac_hex(secret: str, body: bytes, digestmod=hashlib.sha256) -> str:
    return hmac.new(secret.encode("utf-8"), body, digestmod).hexdigest()


def stripe_signature(secret: str, body: bytes, timestamp: int | None = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.".encode("utf-8") + body
    return f"t={timestamp},v1={hmac_hex(secret, signed)}"


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload or {}
        self.text = str(self._payload)

    def json(self):
        return self._payload


class RecordingNotifications:
    """Zamiast Celery - zapamietuje co zostalo wyslane."""

    def __init__(self):
        self.confirmations = []
        self.status_changes = []

    def send_order_confirmation(self, user_id, order_number):
        self.confirmations.append((user_id, order_number))

    def send_status_change(self, user_id, order_number, status, payment_status):
        self.status_changes.append((user_id, order_number, status, payment_status))


class FakeLockService:
    def __init__(self):
        self.held = {}
        self.acquired = []
        self.released = []

    def acquire_order_lock(self, order_id, token, ttl):
        if order_id in self.held:
            return False
        self.held[order_id] = token
        self.acquired.append(order_id)
        return True

    def release_order_lock(self, order_id, token):
        if self.held.get(order_id) == token:
            del self.held[order_id]
            self.released.append(order_id)
            return True
        return False


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
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture(autouse=True)
def clear_service_cache():
    service_cache.invalidate()
    yield
    service_cache.invalidate()


@pytest.fixture
def catalog(db):
    """Uslugi: bez limitu, z limitem magazynu, z opcja, nieaktywna."""
    db.add_all(
        [
            ServiceModel(id="cleaning", title="Home cleaning", base_price=Decimal("100.00"), stock=None),
            ServiceModel(id="ac-repair", title="AC repair", base_price=Decimal("50.00"), stock=5),
            ServiceModel(
                id="retired", title="Retired service", base_price=Decimal("10.00"), active=False, stock=None
            ),
            ServiceOptionModel(
                id="cleaning-deep", service_id="cleaning", title="Deep cleaning", price=Decimal("150.00")
            ),
            ServiceOptionModel(
                id="ac-gas", service_id="ac-repair", title="Gas refill", price=Decimal("80.00")
            ),
        ]
    )
    db.commit()
    return db


@pytest.fixture
def make_coupon(db):
    def _make(code="SAVE20", discount_type="PERCENTAGE", discount_value="20", **kwargs):
        now = utc_now()
        coupon = CouponModel(
            code=code,
            name=kwargs.pop("name", code.title()),
            discount_type=discount_type,
            discount_value=Decimal(discount_value),
            used_count=kwargs.pop("used_count", 0),
            valid_from=kwargs.pop("valid_from", now - timedelta(days=1)),
            valid_until=kwargs.pop("valid_until", now + timedelta(days=30)),
            active=kwargs.pop("active", True),
            **kwargs,
        )
        db.add(coupon)
        db.commit()
        return coupon

    return _make


@pytest.fixture
def notifications():
    return RecordingNotifications()


@pytest.fixture
def lock_service():
    return FakeLockService()
