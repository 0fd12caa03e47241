"""Tests for signature verification and order settlement."""

import pytest
from sqlalchemy.exc import IntegrityError
from sqlmodel import select

from storefront.errors import (
    CouponLimitReached,
    InsufficientStock,
    OrderTotalMismatch,
    PaymentVerificationFailed,
    SettlementError,
    SettlementOrderNotFound,
)
from storefront.models import CartItem, Coupon, CouponUsage, DiscountType, Order, OrderItem, Product, SavedAddress
from storefront.schemas.payment_schemas import RazorpayPaymentVerifySchema
from storefront.services.gateway_service import to_minor_units
from storefront.services.order_event_service import order_timeline
from storefront.services.payment_service import PaymentVerifier

from conftest import SHIPPING, cart_line, sign

GATEWAY_ORDER_ID = "order_TESTGATEWAY01"
PAYMENT_ID = "pay_TESTPAYMENT001"


def verify_payload(order, lines, gateway_order_id=GATEWAY_ORDER_ID, payment_id=PAYMENT_ID, **extra):
    data = {
        "razorpay_order_id": gateway_order_id,
        "razorpay_payment_id": payment_id,
        "razorpay_signature": sign(gateway_order_id, payment_id),
        "order_id": order.id,
        "cart_items": lines,
    }
    data.update(extra)
    return data


@pytest.fixture
def make_order(make_order):
    """Orders bound to GATEWAY_ORDER_ID for their full amount unless told otherwise."""
    def _make_order(user, total_amount, **kwargs):
        kwargs.setdefault("gateway_order_id", GATEWAY_ORDER_ID)
        kwargs.setdefault("gateway_amount", to_minor_units(total_amount))
        return make_order(user, total_amount, **kwargs)
    return _make_order


@pytest.fixture
def verifier(test_settings):
    return PaymentVerifier(test_settings)


@pytest.fixture
def two_product_cart(user, make_product, add_to_cart):
    """A x2 at 250 and B x1 at 300, stock 5 each."""
    a = make_product(name="Product A", price=250, stock=5)
    b = make_product(name="Product B", price=300, stock=5)
    add_to_cart(user, a, 2)
    add_to_cart(user, b, 1)
    return a, b


def snapshot(session, *products):
    session.expire_all()
    return [session.get(Product, p.id).stock for p in products]


class TestSignature:
    def test_valid_signature(self, verifier):
        assert verifier.signature_matches(
            GATEWAY_ORDER_ID, PAYMENT_ID, sign(GATEWAY_ORDER_ID, PAYMENT_ID)
        )

    def test_every_single_character_change_is_rejected(self, verifier):
        good = sign(GATEWAY_ORDER_ID, PAYMENT_ID)

        for i, ch in enumerate(good):
            replacement = "0" if ch != "0" else "1"
            tampered = good[:i] + replacement + good[i + 1:]
            assert not verifier.signature_matches(GATEWAY_ORDER_ID, PAYMENT_ID, tampered)

    def test_swapped_ids_are_rejected(self, verifier):
        assert not verifier.signature_matches(
            PAYMENT_ID, GATEWAY_ORDER_ID, sign(GATEWAY_ORDER_ID, PAYMENT_ID)
        )

    def test_wrong_secret_is_rejected(self, verifier):
        assert not verifier.signature_matches(
            GATEWAY_ORDER_ID, PAYMENT_ID, sign(GATEWAY_ORDER_ID, PAYMENT_ID, secret="other")
        )

    def test_non_ascii_signature_is_rejected(self, verifier):
        assert not verifier.signature_matches(GATEWAY_ORDER_ID, PAYMENT_ID, "é" * 64)

    def test_bad_signature_mutates_nothing(
        self, session, user, verifier, two_product_cart, make_order
    ):
        a, b = two_product_cart
        order = make_order(user, total_amount=800)
        data = verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])
        data["razorpay_signature"] = "0" * 64

        with pytest.raises(PaymentVerificationFailed):
            verifier.verify(session, user, RazorpayPaymentVerifySchema(**data))

        session.expire_all()
        assert session.get(Order, order.id).status == "pending"
        assert snapshot(session, a, b) == [5, 5]
        assert len(session.exec(select(CartItem)).all()) == 2
        assert session.exec(select(OrderItem)).all() == []


class TestSettlement:
    def test_settles_pending_order(self, session, user, verifier, two_product_cart, make_order):
        a, b = two_product_cart
        order = make_order(user, total_amount=800)

        result = verifier.verify(
            session, user,
            RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])),
        )

        assert result.order_id == order.id
        assert not result.already_settled

        session.expire_all()
        settled = session.get(Order, order.id)
        assert settled.status == "confirmed"
        assert settled.gateway_payment_id == PAYMENT_ID

        items = session.exec(select(OrderItem).where(OrderItem.order_id == order.id)).all()
        assert sorted((i.product_name, i.price, i.quantity) for i in items) == [
            ("Product A", 250, 2),
            ("Product B", 300, 1),
        ]
        assert snapshot(session, a, b) == [3, 4]
        assert session.exec(select(CartItem).where(CartItem.user_id == user.id)).all() == []

        events = [e.event_type for e in order_timeline(session, order.id)]
        assert events == ["payment_confirmed"]

    def test_retry_is_idempotent(self, session, user, verifier, two_product_cart, make_order):
        a, b = two_product_cart
        order = make_order(user, total_amount=800)
        data = verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])

        verifier.verify(session, user, RazorpayPaymentVerifySchema(**data))
        again = verifier.verify(session, user, RazorpayPaymentVerifySchema(**data))

        assert again.already_settled
        assert snapshot(session, a, b) == [3, 4]
        assert len(session.exec(select(OrderItem)).all()) == 2

    def test_stock_floor_rolls_back_everything(
        self, session, user, verifier, make_product, add_to_cart, make_order
    ):
        a = make_product(name="Product A", price=100, stock=5)
        b = make_product(name="Product B", price=100, stock=2)
        add_to_cart(user, a, 2)
        add_to_cart(user, b, 3)
        order = make_order(user, total_amount=500)

        with pytest.raises(InsufficientStock) as exc_info:
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 3)])),
            )

        assert str(exc_info.value) == "Insufficient stock for Product B"
        session.expire_all()
        assert session.get(Order, order.id).status == "pending"
        assert snapshot(session, a, b) == [5, 2]
        assert session.exec(select(OrderItem)).all() == []
        assert len(session.exec(select(CartItem)).all()) == 2

    def test_total_mismatch_is_rejected(self, session, user, verifier, two_product_cart, make_order):
        a, b = two_product_cart
        order = make_order(user, total_amount=999)

        with pytest.raises(OrderTotalMismatch):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])),
            )

        session.expire_all()
        assert session.get(Order, order.id).status == "pending"
        assert snapshot(session, a, b) == [5, 5]

    def test_shipping_and_discount_are_reconciled(
        self, session, user, verifier, make_product, add_to_cart, make_order
    ):
        a = make_product(price=200, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=230, shipping_amount=50, discount_amount=20)

        result = verifier.verify(
            session, user, RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 1)]))
        )

        assert result.order.status == "confirmed"

    def test_missing_order(self, session, user, verifier, two_product_cart):
        a, b = two_product_cart
        data = verify_payload(Order(id=9999, total_amount=800), [cart_line(a, 2), cart_line(b, 1)])

        with pytest.raises(SettlementOrderNotFound):
            verifier.verify(session, user, RazorpayPaymentVerifySchema(**data))

        assert snapshot(session, a, b) == [5, 5]

    def test_foreign_order_is_not_found(
        self, session, user, make_user, verifier, two_product_cart, make_order
    ):
        a, b = two_product_cart
        other = make_user(email="other@example.com")
        order = make_order(other, total_amount=800)

        with pytest.raises(SettlementOrderNotFound):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])),
            )

        session.expire_all()
        assert session.get(Order, order.id).status == "pending"

    def test_cancelled_order_cannot_be_paid(
        self, session, user, verifier, two_product_cart, make_order
    ):
        a, b = two_product_cart
        order = make_order(user, total_amount=800, status="cancelled")

        with pytest.raises(SettlementError, match="cancelled"):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])),
            )

        assert snapshot(session, a, b) == [5, 5]

    def test_payment_for_another_gateway_order_is_rejected(
        self, session, user, verifier, two_product_cart, make_order
    ):
        a, b = two_product_cart
        order = make_order(user, total_amount=800, gateway_order_id="order_BOUND")

        with pytest.raises(PaymentVerificationFailed):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(
                    **verify_payload(order, [cart_line(a, 2), cart_line(b, 1)], gateway_order_id="order_OTHER")
                ),
            )

        session.expire_all()
        assert session.get(Order, order.id).status == "pending"


class TestGatewayBinding:
    def test_order_without_gateway_order_is_rejected(
        self, session, user, verifier, two_product_cart, make_order
    ):
        a, b = two_product_cart
        order = make_order(user, total_amount=800, gateway_order_id=None, gateway_amount=None)

        with pytest.raises(PaymentVerificationFailed):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])),
            )

        session.expire_all()
        assert session.get(Order, order.id).status == "pending"
        assert snapshot(session, a, b) == [5, 5]

    def test_underpaid_gateway_order_is_rejected(
        self, session, user, verifier, two_product_cart, make_order
    ):
        a, b = two_product_cart
        order = make_order(user, total_amount=800, gateway_amount=100)

        with pytest.raises(PaymentVerificationFailed):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])),
            )

        session.expire_all()
        assert session.get(Order, order.id).status == "pending"
        assert snapshot(session, a, b) == [5, 5]

    def test_one_payment_settles_one_order(
        self, session, user, verifier, two_product_cart, add_to_cart, make_order
    ):
        a, b = two_product_cart
        lines = [cart_line(a, 2), cart_line(b, 1)]
        first = make_order(user, total_amount=800)
        second = make_order(user, total_amount=800)

        verifier.verify(session, user, RazorpayPaymentVerifySchema(**verify_payload(first, lines)))
        add_to_cart(user, a, 2)
        add_to_cart(user, b, 1)

        with pytest.raises(PaymentVerificationFailed):
            verifier.verify(session, user, RazorpayPaymentVerifySchema(**verify_payload(second, lines)))

        session.expire_all()
        assert session.get(Order, first.id).status == "confirmed"
        assert session.get(Order, second.id).status == "pending"
        assert snapshot(session, a, b) == [3, 4]
        assert len(session.exec(select(CartItem)).all()) == 2

    def test_payment_id_is_unique_per_order(self, session, user, make_order):
        make_order(user, total_amount=100, gateway_payment_id=PAYMENT_ID)

        with pytest.raises(IntegrityError):
            make_order(user, total_amount=100, gateway_payment_id=PAYMENT_ID)
        session.rollback()


class TestCouponRedemption:
    def test_redeems_order_coupon(
        self, session, user, verifier, make_product, add_to_cart, make_coupon, make_order
    ):
        coupon = make_coupon(code="FLAT100", discount_type=DiscountType.fixed, discount_value=100, max_uses=10)
        a = make_product(price=1000, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=900, discount_amount=100, coupon_id=coupon.id)

        verifier.verify(
            session, user,
            RazorpayPaymentVerifySchema(
                **verify_payload(order, [cart_line(a, 1)], coupon_id=coupon.id, discount_amount=100)
            ),
        )

        session.expire_all()
        assert session.get(Coupon, coupon.id).current_uses == 1
        usage = session.exec(select(CouponUsage)).one()
        assert usage.order_id == order.id
        assert usage.user_id == user.id
        assert usage.discount_amount == 100

    def test_exhausted_coupon_rolls_back(
        self, session, user, verifier, make_product, add_to_cart, make_coupon, make_order
    ):
        coupon = make_coupon(
            code="ONCE", discount_type=DiscountType.fixed, discount_value=100, max_uses=1, current_uses=1
        )
        a = make_product(price=1000, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=900, discount_amount=100, coupon_id=coupon.id)

        with pytest.raises(CouponLimitReached):
            verifier.verify(
                session, user,
                RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 1)], coupon_id=coupon.id)),
            )

        session.expire_all()
        assert session.get(Coupon, coupon.id).current_uses == 1
        assert session.get(Order, order.id).status == "pending"
        assert snapshot(session, a) == [5]
        assert session.exec(select(CouponUsage)).all() == []

    def test_order_without_coupon_ignores_request_coupon(
        self, session, user, verifier, make_product, add_to_cart, make_coupon, make_order
    ):
        coupon = make_coupon(code="SNEAKY")
        a = make_product(price=1000, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=1000)

        verifier.verify(
            session, user,
            RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 1)], coupon_id=coupon.id)),
        )

        session.expire_all()
        assert session.get(Coupon, coupon.id).current_uses == 0
        assert session.exec(select(CouponUsage)).all() == []


class TestSavedAddress:
    def test_first_address_becomes_default(
        self, session, user, verifier, make_product, add_to_cart, make_order
    ):
        a = make_product(price=1000, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=1000)

        verifier.verify(
            session, user,
            RazorpayPaymentVerifySchema(
                **verify_payload(order, [cart_line(a, 1)], save_address=True, address_data=SHIPPING)
            ),
        )

        saved = session.exec(select(SavedAddress).where(SavedAddress.user_id == user.id)).one()
        assert saved.is_default
        assert saved.name == "Test Buyer"
        assert saved.zip_code == "560038"

    def test_later_addresses_are_not_default(
        self, session, user, verifier, make_product, add_to_cart, make_order
    ):
        session.add(SavedAddress(
            user_id=user.id, name="Home", email="buyer@example.com", phone="9876543210",
            address="1 Old Street, Somewhere", city="Pune", state="Maharashtra",
            zip_code="411001", is_default=True,
        ))
        session.commit()
        a = make_product(price=1000, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=1000)

        verifier.verify(
            session, user,
            RazorpayPaymentVerifySchema(
                **verify_payload(order, [cart_line(a, 1)], save_address=True, address_data=SHIPPING)
            ),
        )

        addresses = session.exec(select(SavedAddress).where(SavedAddress.user_id == user.id)).all()
        assert sorted(addr.is_default for addr in addresses) == [False, True]

    def test_address_not_saved_unless_asked(
        self, session, user, verifier, make_product, add_to_cart, make_order
    ):
        a = make_product(price=1000, stock=5)
        add_to_cart(user, a, 1)
        order = make_order(user, total_amount=1000)

        verifier.verify(
            session, user,
            RazorpayPaymentVerifySchema(**verify_payload(order, [cart_line(a, 1)], address_data=SHIPPING)),
        )

        assert session.exec(select(SavedAddress)).all() == []


class TestVerifyEndpoint:
    def test_requires_authentication(self, client, session, user, two_product_cart, make_order):
        a, b = two_product_cart
        order = make_order(user, total_amount=800)

        response = client.post(
            "/payments/razorpay/verify",
            json=verify_payload(order, [cart_line(a, 2), cart_line(b, 1)]),
        )

        assert response.status_code == 401
        assert response.json() == {"error": "Unauthorized"}
        session.expire_all()
        assert session.get(Order, order.id).status == "pending"

    def test_tampered_signature(self, client, session, user, auth_headers, two_product_cart, make_order):
        a, b = two_product_cart
        order = make_order(user, total_amount=800)
        data = verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])
        data["razorpay_signature"] = data["razorpay_signature"][:-1] + (
            "0" if data["razorpay_signature"][-1] != "0" else "1"
        )

        response = client.post("/payments/razorpay/verify", json=data, headers=auth_headers(user))

        assert response.status_code == 400
        assert response.json() == {"error": "Payment verification failed"}
        assert snapshot(session, a, b) == [5, 5]

    def test_success_response_and_email(
        self, client, session, user, auth_headers, two_product_cart, make_order, sent_emails
    ):
        a, b = two_product_cart
        order = make_order(user, total_amount=800)
        data = verify_payload(order, [cart_line(a, 2), cart_line(b, 1)])

        response = client.post("/payments/razorpay/verify", json=data, headers=auth_headers(user))

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Payment verified successfully",
            "order_id": order.id,
        }
        assert [kind for kind, _ in sent_emails] == ["payment_success"]
        context = sent_emails[0][1]
        assert context["order_number"] == order.order_number
        assert context["payment_id"] == PAYMENT_ID
        assert sorted(context["product_names"]) == ["Product A", "Product B"]

        # a retry succeeds without a second email
        response = client.post("/payments/razorpay/verify", json=data, headers=auth_headers(user))
        assert response.status_code == 200
        assert len(sent_emails) == 1

    def test_missing_order(self, client, user, auth_headers, two_product_cart):
        a, b = two_product_cart
        data = verify_payload(Order(id=4242, total_amount=1), [cart_line(a, 2), cart_line(b, 1)])

        response = client.post("/payments/razorpay/verify", json=data, headers=auth_headers(user))

        assert response.status_code == 500
        assert response.json() == {"error": "Order not found"}

    def test_insufficient_stock_message(
        self, client, user, auth_headers, make_product, add_to_cart, make_order
    ):
        a = make_product(name="Rare Print", price=400, stock=1)
        add_to_cart(user, a, 2)
        order = make_order(user, total_amount=800)

        response = client.post(
            "/payments/razorpay/verify",
            json=verify_payload(order, [cart_line(a, 2)]),
            headers=auth_headers(user),
        )

        assert response.status_code == 500
        assert response.json() == {"error": "Insufficient stock for Rare Print"}

    def test_malformed_body(self, client, user, auth_headers):
        response = client.post(
            "/payments/razorpay/verify",
            json={"razorpay_order_id": "order_X"},
            headers=auth_headers(user),
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request"
