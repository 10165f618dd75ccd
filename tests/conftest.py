from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from main import app
from core.db import Base, get_db
from core import config as core_config
from models.bank_transfer_order import BankTransferOrder
from models.order import Order
from services import notifications
from services.totals import totals_for_documents

# Saturday 13:00 in Lagos
OFF_HOURS = datetime(2024, 1, 13, 12, 0, tzinfo=timezone.utc)

_order_numbers = count(1)


@pytest.fixture(scope="session", autouse=True)
def test_settings():
    core_config.settings.TESTING = True
    core_config.settings.ADMIN_EMAIL = "admin@example.com"
    core_config.settings.BUSINESS_TIMEZONE = "Africa/Lagos"
    yield


@pytest.fixture()
def db_session_override():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    TestingSessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)
    Base.metadata.create_all(bind=engine)

    db = TestingSessionLocal()

    def _get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = _get_db
    try:
        yield db
    finally:
        db.close()
        app.dependency_overrides.clear()


@pytest.fixture()
def db(db_session_override):
    return db_session_override


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Collect queued notifications instead of handing them to Celery."""
    sent = []

    def _fake_send(to_email: str, subject: str, body: str) -> None:
        sent.append({"to": to_email, "subject": subject, "body": body})

    monkeypatch.setattr(notifications, "send_email", _fake_send)
    return sent


@pytest.fixture()
def client(db_session_override):
    with TestClient(app) as c:
        yield c


def _items(unit_amount):
    return [{"name": "Ankara Gown", "quantity": 1, "unit_amount": str(unit_amount), "image_ref": None, "sku": None}]


@pytest.fixture()
def make_bank_order(db):
    """Insert a bank transfer order; amounts follow the totals rules for one item."""

    def _make(unit_amount=Decimal("80000"), status="pending_payment", reference=None,
              submitted_at=None, verification_method=None, email="ada@example.com",
              user_id="user-1", created_at=None, **fields):
        items = _items(unit_amount)
        totals = totals_for_documents(items)
        order = BankTransferOrder(
            order_id=fields.pop("order_id", f"BT-1700000000000-test{next(_order_numbers):05d}"),
            user_id=user_id,
            customer_name="Ada Obi",
            customer_email=email,
            customer_phone="08030000000",
            status=status,
            subtotal=totals.subtotal,
            amount=totals.grand_total,
            items=items,
            bank_details={"account_name": "Store Ltd", "account_number": "0123456789", "bank_name": "GTBank"},
            transaction_reference=reference,
            reference_submitted_at=submitted_at,
            verification_method=verification_method,
            payment_verified=fields.pop("payment_verified", False),
            created_at=created_at or datetime.utcnow(),
            **fields,
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make


@pytest.fixture()
def make_submitted_order(make_bank_order):
    """A reference submitted ``minutes_ago`` before ``now`` and awaiting review."""

    def _make(reference, minutes_ago, now=OFF_HOURS, unit_amount=Decimal("80000"), **fields):
        submitted = now.astimezone(timezone.utc).replace(tzinfo=None) - timedelta(minutes=minutes_ago)
        return make_bank_order(
            unit_amount=unit_amount,
            status="payment_submitted",
            reference=reference,
            submitted_at=submitted,
            verification_method="pending_manual",
            **fields,
        )

    return _make


@pytest.fixture()
def make_gateway_order(db):
    def _make(order_id=None, status="confirmed", user_id="user-1", created_at=None, amount=Decimal("50910")):
        order = Order(
            order_id=order_id or f"FLW-tx-{next(_order_numbers)}",
            user_id=user_id,
            customer_name="Ada Obi",
            customer_email="ada@example.com",
            status=status,
            subtotal=Decimal("50000"),
            amount=amount,
            items=_items(Decimal("50000")),
            transaction_id="12345",
            reference="FLW-MOCK-1",
            created_at=created_at or datetime.utcnow(),
        )
        db.add(order)
        db.commit()
        db.refresh(order)
        return order

    return _make
