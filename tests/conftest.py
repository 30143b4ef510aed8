"""Pytest fixtures for the store API tests."""

import json
import time
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import httpx
import mongomock
import pytest
from mongoengine import connect, disconnect

from app import create_app
from Models.cartModel import Cart, CartItem
from Models.couponModel import Coupon
from Models.productModel import Product, Variant
from Models.userModel import User
from Utils.cashfree import sign_webhook
from Utils.config import CashfreeConfig, Settings
from Utils.jwt_utils import create_access_token

TEST_DB = "bloomtales_test"
JWT_SECRET = "test-jwt-secret-for-bloomtales-suite-0123456789"
WEBHOOK_SECRET = "whsec_test_secret"


class FakeCashfree:
    """In-memory stand-in for the Cashfree PG API, mounted via httpx.MockTransport."""

    def __init__(self):
        self.requests = []
        self.payments = {}
        self.create_error = None
        self.payments_error = None
        self.refund_error = None

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        body = json.loads(request.content) if request.content else {}

        if request.method == "POST" and path == "/pg/orders":
            if self.create_error == "timeout":
                raise httpx.ConnectTimeout("connect timed out", request=request)
            if self.create_error:
                return httpx.Response(self.create_error, json={"message": "order_amount : invalid value"})
            return httpx.Response(200, json={
                "cf_order_id": "2149460581",
                "order_id": body["order_id"],
                "order_status": "ACTIVE",
                "payment_session_id": f"session_{body['order_id']}",
            })

        if request.method == "GET" and path.endswith("/payments"):
            if self.payments_error == "timeout":
                raise httpx.ReadTimeout("read timed out", request=request)
            if self.payments_error:
                return httpx.Response(self.payments_error, json={"message": "upstream error"})
            order_id = path.split("/")[3]
            return httpx.Response(200, json=self.payments.get(order_id, []))

        if request.method == "POST" and path.endswith("/refunds"):
            if self.refund_error:
                return httpx.Response(self.refund_error, json={"message": "refund rejected"})
            return httpx.Response(200, json={"refund_id": body["refund_id"], "refund_status": "PENDING"})

        return httpx.Response(404, json={"message": "not found"})

    def calls(self, method, suffix=""):
        return [r for r in self.requests if r.method == method and r.url.path.endswith(suffix)]

    @property
    def transport(self):
        return httpx.MockTransport(self.handler)


@pytest.fixture(autouse=True)
def db():
    """Fresh mongomock database per test."""
    conn = connect(
        TEST_DB,
        host="mongodb://localhost",
        alias="default",
        mongo_client_class=mongomock.MongoClient,
    )
    yield conn
    conn.drop_database(TEST_DB)
    disconnect(alias="default")


@pytest.fixture
def gateway():
    return FakeCashfree()


@pytest.fixture
def settings(tmp_path):
    return Settings(
        env="testing",
        jwt_secret=JWT_SECRET,
        log_dir=str(tmp_path / "logs"),
        expose_errors=True,
        testing=True,
        cashfree=CashfreeConfig(
            app_id="TEST_APP_ID",
            secret_key="TEST_SECRET",
            webhook_secret=WEBHOOK_SECRET,
        ),
    )


@pytest.fixture
def app(settings, gateway):
    return create_app(settings, init_database=False, cashfree_transport=gateway.transport)


@pytest.fixture
def client(app):
    return app.test_client()


# ----------------------------
# Users & auth
# ----------------------------
@pytest.fixture
def user():
    return User(
        first_name="Asha", last_name="Rao", email="asha@example.com", phone="9876543210"
    ).save()


@pytest.fixture
def other_user():
    return User(
        first_name="Ravi", last_name="Iyer", email="ravi@example.com", phone="9123456780"
    ).save()


@pytest.fixture
def admin():
    return User(
        first_name="Store", last_name="Admin", email="admin@example.com", phone="9000000000", role="admin"
    ).save()


def auth_headers(user):
    token = create_access_token(user.id, user.role, secret=JWT_SECRET)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers(user):
    return auth_headers(user)


@pytest.fixture
def admin_headers(admin):
    return auth_headers(admin)


# ----------------------------
# Catalog, cart, coupons
# ----------------------------
@pytest.fixture
def make_product():
    def _make(name="Bloom Dress", price="1000", variants=None, quantity=0, track_quantity=False):
        return Product(
            name=name,
            price=Decimal(str(price)),
            variants=[Variant(size=size, stock=stock) for size, stock in (variants or {}).items()],
            quantity=quantity,
            track_quantity=track_quantity,
        ).save()
    return _make


@pytest.fixture
def fill_cart():
    def _fill(user, *lines):
        """lines: (product, quantity, size) tuples."""
        cart = Cart.for_user(user)
        for product, quantity, size in lines:
            cart.items.append(CartItem(product=product, quantity=quantity, size=size))
        cart.save()
        return cart
    return _fill


@pytest.fixture
def make_coupon():
    def _make(code="SAVE10", **fields):
        now = datetime.now(timezone.utc)
        values = {
            "discount_type": "percentage",
            "discount_value": Decimal("10"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=30),
        }
        values.update(fields)
        return Coupon(code=code, **values).save()
    return _make


@pytest.fixture
def shipping_address():
    return {
        "full_name": "Asha Rao",
        "email": "asha@example.com",
        "phone": "9876543210",
        "address": "12 MG Road",
        "city": "Bengaluru",
        "state": "Karnataka",
        "pincode": "560001",
        "nearby_places": "Near Trinity metro",
    }


# ----------------------------
# Webhooks
# ----------------------------
def webhook_payload(order_number, status="SUCCESS", cf_payment_id="885471", amount=None):
    payment = {"cf_payment_id": cf_payment_id, "payment_status": status}
    if amount is not None:
        payment["payment_amount"] = amount
    return {
        "type": "PAYMENT_SUCCESS_WEBHOOK" if status == "SUCCESS" else "PAYMENT_FAILED_WEBHOOK",
        "data": {"order": {"order_id": order_number}, "payment": payment},
    }


def post_webhook(client, payload, secret=WEBHOOK_SECRET, signature=None):
    raw = json.dumps(payload).encode("utf-8")
    timestamp = str(int(time.time()))
    headers = {
        "Content-Type": "application/json",
        "x-webhook-timestamp": timestamp,
        "x-webhook-signature": signature or sign_webhook(raw, timestamp, secret),
    }
    return client.post("/api/v1/payments/webhook", data=raw, headers=headers)
