import pytest
from datetime import datetime
from decimal import Decimal
from sqlalchemy import create_engine
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from models.order import Order
from models.bank_transfer_order import BankTransferOrder
from core.db import Base


@pytest.fixture
def db_session():
    """Create a test database session"""
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(bind=engine)
    SessionLocal = sessionmaker(bind=engine)
    session = SessionLocal()
    yield session
    session.close()


class TestOrder:
    """Test cases for the instant gateway partition"""

    def test_order_creation(self, db_session):
        """Test creating a gateway order with defaults"""
        order = Order(
            order_id="FLW-cart-1",
            customer_name="Ada Obi",
            customer_email="ada@example.com",
            amount=Decimal("50910"),
            items=[{"name": "Gown", "quantity": 1, "unit_amount": "50000"}],
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)

        assert order.id is not None
        assert order.status == "pending"
        assert order.currency == "NGN"
        assert order.payment_status == "completed"
        assert order.amount == Decimal("50910")
        assert order.items[0]["name"] == "Gown"
        assert isinstance(order.created_at, datetime)

    def test_order_id_unique(self, db_session):
        """Test order ids are unique within the partition"""
        db_session.add(Order(order_id="FLW-1", customer_name="A", customer_email="a@example.com"))
        db_session.commit()
        db_session.add(Order(order_id="FLW-1", customer_name="B", customer_email="b@example.com"))

        with pytest.raises(IntegrityError):
            db_session.commit()


class TestBankTransferOrder:
    """Test cases for the bank transfer partition"""

    def test_defaults(self, db_session):
        """Test a new bank transfer order awaits payment"""
        order = BankTransferOrder(
            order_id="BT-1-abc",
            customer_name="Ada Obi",
            customer_email="ada@example.com",
            bank_details={"bank_name": "GTBank"},
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)

        assert order.status == "pending_payment"
        assert order.payment_verified is False
        assert order.transaction_reference is None
        assert order.verification_method is None
        assert order.bank_details == {"bank_name": "GTBank"}

    def test_verification_fields(self, db_session):
        """Test verification outcome columns persist"""
        order = BankTransferOrder(
            order_id="BT-2-abc",
            customer_name="Ada Obi",
            customer_email="ada@example.com",
            transaction_reference="FT240123456789",
            reference_submitted_at=datetime(2024, 1, 13, 12, 0),
            payment_verified=True,
            status="confirmed",
            verification_method="auto_delayed",
            auto_verification_confidence=100,
        )
        db_session.add(order)
        db_session.commit()
        db_session.refresh(order)

        assert order.auto_verification_confidence == 100
        assert order.reference_submitted_at == datetime(2024, 1, 13, 12, 0)
