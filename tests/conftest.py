"""Pytest fixtures for storefront tests."""

import hashlib
import hmac
import os
from uuid import uuid4

# must be set before storefront.config is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("DATABASE_URL_OVERRIDE", "sqlite://")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

from storefront.config import Settings, get_settings
from storefront.database import get_session
from storefront.dependencies.gateway import get_gateway_bridge
from storefront.main import app
from storefront.models import CartItem, Coupon, DiscountType, Order, Product, User
from storefront.services.gateway_service import GatewayOrderBridge
from storefront.utils.token import create_access_token

RAZORPAY_SECRET = "test_razorpay_secret"


def sign(gateway_order_id: str, gateway_payment_id: str, secret: str = RAZORPAY_SECRET) -> str:
    """Signature the gateway hands to the checkout callback."""
    return hmac.new(
        secret.encode(), f"{gateway_order_id}|{gateway_payment_id}".encode(), hashlib.sha256
    ).hexdigest()


class FakeOrderResource:
    def __init__(self):
        self.calls = []
        self.error = None

    def create(self, data):
        self.calls.append(data)
        if self.error is not None:
            raise self.error
        return {
            "id": f"order_{uuid4().hex[:14]}",
            "entity": "order",
            "amount": data["amount"],
            "currency": data["currency"],
            "receipt": data["receipt"],
            "status": "created",
        }


class FakeRazorpayClient:
    """Stands in for razorpay.Client on the order-creation path."""

    def __init__(self):
        self.order = FakeOrderResource()


@pytest.fixture
def test_settings():
    return Settings(
        env="test",
        database_url_override="sqlite://",
        secret_key="test-jwt-secret",
        algorithm="HS256",
        razorpay_key_id="rzp_test_key",
        razorpay_key_secret=RAZORPAY_SECRET,
        free_shipping_threshold=500,
        shipping_flat_rate=50,
    )


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def fake_razorpay():
    return FakeRazorpayClient()


@pytest.fixture
def sent_emails(monkeypatch):
    """Capture notification calls instead of talking to Brevo."""
    sent = []

    def record(kind):
        def _record(context):
            sent.append((kind, context))
            return True
        return _record

    monkeypatch.setattr(
        "storefront.routes.payments.send_payment_success_email", record("payment_success")
    )
    monkeypatch.setattr(
        "storefront.routes.admin_orders.send_delivery_notification", record("out_for_delivery")
    )
    return sent


@pytest.fixture
def client(engine, test_settings, fake_razorpay, sent_emails):
    def get_session_override():
        with Session(engine) as session:
            yield session

    app.dependency_overrides[get_session] = get_session_override
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_gateway_bridge] = lambda: GatewayOrderBridge(
        test_settings, client=fake_razorpay
    )

    yield TestClient(app)

    app.dependency_overrides.clear()


# --- data helpers ---


@pytest.fixture
def make_user(session):
    def _make_user(email="buyer@example.com", role="user", can_login=True):
        user = User(email=email, name="Test Buyer", role=role, can_login=can_login)
        session.add(user)
        session.commit()
        session.refresh(user)
        return user
    return _make_user


@pytest.fixture
def user(make_user):
    return make_user()


@pytest.fixture
def admin(make_user):
    return make_user(email="admin@example.com", role="admin")


@pytest.fixture
def auth_headers(test_settings):
    def _auth_headers(user):
        token = create_access_token({"sub": str(user.id)}, test_settings)
        return {"Authorization": f"Bearer {token}"}
    return _auth_headers


@pytest.fixture
def make_product(session):
    def _make_product(name="Product", price=100.0, stock=10, discount_price=None):
        product = Product(name=name, price=price, discount_price=discount_price, stock=stock)
        session.add(product)
        session.commit()
        session.refresh(product)
        return product
    return _make_product


@pytest.fixture
def add_to_cart(session):
    def _add_to_cart(user, product, quantity=1):
        item = CartItem(user_id=user.id, product_id=product.id, quantity=quantity)
        session.add(item)
        session.commit()
        return item
    return _add_to_cart


@pytest.fixture
def make_coupon(session):
    def _make_coupon(code="SAVE10", discount_type=DiscountType.percentage, discount_value=10, **kwargs):
        coupon = Coupon(code=code, discount_type=discount_type, discount_value=discount_value, **kwargs)
        session.add(coupon)
        session.commit()
        session.refresh(coupon)
        return coupon
    return _make_coupon


@pytest.fixture
def make_order(session):
    def _make_order(user, total_amount, shipping_amount=0, discount_amount=0, **kwargs):
        order = Order(
            order_number=f"ORD-TEST-{uuid4().hex[:8]}",
            user_id=user.id,
            total_amount=total_amount,
            shipping_amount=shipping_amount,
            discount_amount=discount_amount,
            customer_name="Test Buyer",
            customer_email="buyer@example.com",
            customer_phone="9876543210",
            shipping_address="12 MG Road, Indiranagar",
            shipping_city="Bengaluru",
            shipping_state="Karnataka",
            shipping_pincode="560038",
            **kwargs,
        )
        session.add(order)
        session.commit()
        session.refresh(order)
        return order
    return _make_order


def cart_line(product, quantity):
    return {
        "product_id": product.id,
        "quantity": quantity,
        "products": {
            "name": product.name,
            "price": product.price,
            "discount_price": product.discount_price,
            "stock": product.stock,
        },
    }


SHIPPING = {
    "fullName": "Test Buyer",
    "email": "buyer@example.com",
    "phone": "9876543210",
    "address": "12 MG Road, Indiranagar",
    "city": "Bengaluru",
    "state": "Karnataka",
    "pincode": "560038",
}
