import re
from decimal import Decimal

import pytest
from mongoengine import ValidationError as DocumentValidationError

from Models.cartModel import Cart
from Models.couponModel import Coupon
from Models.orderModel import Order

CHECKOUT_URL = "/api/v1/checkout"


def _checkout(client, headers, address, payment_method="cod", **extra):
    body = {"shipping_address": address, "payment_method": payment_method, **extra}
    return client.post(CHECKOUT_URL, json=body, headers=headers)


@pytest.fixture
def stocked_cart(user, make_product, fill_cart):
    dress = make_product("Bloom Dress", price="5000", variants={"M": 5})
    return fill_cart(user, (dress, 3, "M"))


class TestCodCheckout:
    def test_creates_order_awaiting_approval(self, client, user, user_headers, shipping_address, stocked_cart):
        resp = _checkout(client, user_headers, shipping_address)

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["message"] == "Order created successfully and sent for admin approval"
        order = body["data"]["order"]
        assert order["status"] == "awaiting_approval"
        assert order["payment_status"] == "pending"
        assert order["admin_approval"]["status"] == "pending"
        # 15000 subtotal, 4% automatic discount, COD shipping
        assert order["subtotal"] == 15000
        assert order["discount"] == 600
        assert order["shipping"] == 199
        assert order["advance_payment"] == 300
        assert order["total_amount"] == 14599
        assert order["timeline"][0]["status"] == "awaiting_approval"
        assert "payment" not in body["data"]

    def test_empties_cart(self, client, user, user_headers, shipping_address, stocked_cart):
        _checkout(client, user_headers, shipping_address)
        assert Cart.objects.get(user=user.id).items == []

    def test_does_not_touch_stock(self, client, user_headers, shipping_address, stocked_cart):
        _checkout(client, user_headers, shipping_address)
        product = stocked_cart.items[0].product
        product.reload()
        assert product.get_variant_stock("M") == 5

    def test_records_coupon_usage(self, client, user, user_headers, shipping_address, stocked_cart, make_coupon):
        make_coupon("SAVE10")

        resp = _checkout(client, user_headers, shipping_address, coupon_code="save10")

        order = resp.get_json()["data"]["order"]
        assert order["coupon_code"] == "SAVE10"
        assert order["coupon_discount"] == 1440
        assert order["total_amount"] == 15000 - 600 - 1440 + 199
        coupon = Coupon.objects.get(code="SAVE10")
        assert coupon.usage_count == 1
        assert coupon.user_usage_count(user.id) == 1

    def test_order_alias_route(self, client, user_headers, shipping_address, stocked_cart):
        resp = client.post(
            "/api/v1/orders/create",
            json={"shipping_address": shipping_address, "payment_method": "cod"},
            headers=user_headers,
        )
        assert resp.status_code == 201


class TestCheckoutFailures:
    def test_empty_cart(self, client, user_headers, shipping_address):
        resp = _checkout(client, user_headers, shipping_address)
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Cart is empty"
        assert Order.objects.count() == 0

    def test_stock_shortage_keeps_cart(self, client, user, user_headers, shipping_address, make_product, fill_cart):
        dress = make_product("Bloom Dress", variants={"M": 1})
        fill_cart(user, (dress, 2, "M"))

        resp = _checkout(client, user_headers, shipping_address)

        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Insufficient stock for Bloom Dress (Size: M)"
        assert Order.objects.count() == 0
        assert len(Cart.objects.get(user=user.id).items) == 1

    def test_invalid_coupon_keeps_cart(self, client, user, user_headers, shipping_address, stocked_cart):
        resp = _checkout(client, user_headers, shipping_address, coupon_code="NOPE")

        assert resp.status_code == 400
        assert resp.get_json()["message"] == "Invalid coupon code"
        assert Order.objects.count() == 0
        assert len(Cart.objects.get(user=user.id).items) == 1

    def test_per_user_coupon_limit(self, client, user, user_headers, shipping_address, make_product, fill_cart, make_coupon):
        make_coupon("ONCE", user_usage_limit=1)
        scarf = make_product("Silk Scarf", price="800")

        fill_cart(user, (scarf, 1, None))
        assert _checkout(client, user_headers, shipping_address, coupon_code="ONCE").status_code == 201

        fill_cart(user, (scarf, 1, None))
        resp = _checkout(client, user_headers, shipping_address, coupon_code="ONCE")
        assert resp.status_code == 400
        assert resp.get_json()["message"] == "You have reached the maximum usage limit for this coupon"

    def test_invalid_address(self, client, user_headers, shipping_address, stocked_cart):
        shipping_address["pincode"] = "56001"
        resp = _checkout(client, user_headers, shipping_address)
        assert resp.status_code == 400
        assert resp.get_json()["errors"][0]["field"] == "shipping_address.pincode"

    def test_unknown_payment_method(self, client, user_headers, shipping_address, stocked_cart):
        resp = _checkout(client, user_headers, shipping_address, payment_method="paypal")
        assert resp.status_code == 400

    def test_requires_token(self, client, shipping_address):
        resp = client.post(CHECKOUT_URL, json={"shipping_address": shipping_address, "payment_method": "cod"})
        assert resp.status_code == 401


class TestOnlineCheckout:
    def test_pending_order_with_session(self, client, user, user_headers, shipping_address, stocked_cart, gateway):
        resp = _checkout(client, user_headers, shipping_address, payment_method="upi")

        assert resp.status_code == 201
        data = resp.get_json()["data"]
        order = data["order"]
        assert order["status"] == "pending"
        assert order["shipping"] == 0
        assert order["total_amount"] == 14400
        assert data["payment"]["payment_session_id"] == f"session_{order['order_number']}"
        assert data["payment"]["amount"] == 14400
        assert len(gateway.calls("POST", "/pg/orders")) == 1

    def test_keeps_cart_until_paid(self, client, user, user_headers, shipping_address, stocked_cart):
        _checkout(client, user_headers, shipping_address, payment_method="card")
        assert len(Cart.objects.get(user=user.id).items) == 1

    def test_coupon_not_counted_until_paid(self, client, user_headers, shipping_address, stocked_cart, make_coupon):
        make_coupon("SAVE10")
        _checkout(client, user_headers, shipping_address, payment_method="cashfree", coupon_code="SAVE10")
        assert Coupon.objects.get(code="SAVE10").usage_count == 0


class TestOrderDocument:
    def test_order_number_format(self, client, user_headers, shipping_address, stocked_cart):
        order = _checkout(client, user_headers, shipping_address).get_json()["data"]["order"]
        assert re.fullmatch(r"BT-\d{8}-[A-Z0-9]+", order["order_number"])

    def test_order_number_is_immutable(self, client, user_headers, shipping_address, stocked_cart):
        _checkout(client, user_headers, shipping_address)
        order = Order.objects.first()
        order.order_number = "BT-20000101-CHANGED"
        with pytest.raises(DocumentValidationError):
            order.save()

    def test_total_invariant_enforced(self, client, user_headers, shipping_address, stocked_cart):
        _checkout(client, user_headers, shipping_address)
        order = Order.objects.first()
        order.total_amount = Decimal("1")
        with pytest.raises(DocumentValidationError):
            order.save()

    def test_items_are_snapshots(self, client, user_headers, shipping_address, stocked_cart):
        _checkout(client, user_headers, shipping_address)
        product = stocked_cart.items[0].product
        product.update(set__price=Decimal("9999"))

        item = Order.objects.first().items[0]
        assert item.price == Decimal("5000")
        assert item.name == "Bloom Dress"
        assert item.size == "M"
