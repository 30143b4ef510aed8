from datetime import datetime, timedelta, timezone

import pytest
from bson import ObjectId

from conftest import auth_headers

from Models.orderModel import Order
from Models.productModel import Product

ORDERS_URL = "/api/v1/orders"


@pytest.fixture
def dress(make_product):
    return make_product("Bloom Dress", price="1200", variants={"M": 5, "L": 2})


@pytest.fixture
def place_cod_order(client, user, user_headers, shipping_address, fill_cart):
    """Checkout the given cart lines with COD and return the order JSON."""
    def _place(*lines, headers=None, owner=None):
        fill_cart(owner or user, *lines)
        resp = client.post(
            "/api/v1/checkout",
            json={"shipping_address": shipping_address, "payment_method": "cod"},
            headers=headers or user_headers,
        )
        assert resp.status_code == 201, resp.get_json()
        return resp.get_json()["data"]["order"]
    return _place


def _patch(client, order_id, action, headers, **body):
    return client.patch(f"{ORDERS_URL}/{order_id}/{action}", json=body, headers=headers)


class TestApprove:
    def test_confirms_and_decrements_variant_stock(self, client, admin, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 2, "M"), (dress, 1, "L"))

        resp = _patch(client, order["id"], "approve", admin_headers, remarks="Looks good")

        assert resp.status_code == 200
        approved = resp.get_json()["data"]["order"]
        assert approved["status"] == "confirmed"
        assert approved["admin_approval"]["status"] == "approved"
        assert approved["admin_approval"]["approved_by"] == str(admin.id)
        assert approved["timeline"][-1]["note"] == "Order approved by admin. Remarks: Looks good"
        dress.reload()
        assert dress.get_variant_stock("M") == 3
        assert dress.get_variant_stock("L") == 1

    def test_flat_stock_is_decremented(self, client, admin_headers, make_product, place_cod_order):
        scarf = make_product("Silk Scarf", quantity=4, track_quantity=True)
        order = place_cod_order((scarf, 3, None))

        _patch(client, order["id"], "approve", admin_headers)

        assert Product.objects.get(id=scarf.id).quantity == 1

    def test_second_approval_conflicts(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)

        resp = _patch(client, order["id"], "approve", admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Order has already been processed"
        # Stock is only committed once
        assert Product.objects.get(id=dress.id).get_variant_stock("M") == 4

    def test_last_unit_cannot_be_approved_twice(self, client, other_user, admin_headers, make_product, place_cod_order):
        scarf = make_product("Silk Scarf", variants={"M": 1})
        first = place_cod_order((scarf, 1, "M"))
        second = place_cod_order((scarf, 1, "M"), headers=auth_headers(other_user), owner=other_user)

        assert _patch(client, first["id"], "approve", admin_headers).status_code == 200
        resp = _patch(client, second["id"], "approve", admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Insufficient stock for Silk Scarf (Size: M)"
        assert Order.objects.get(id=second["id"]).status == "awaiting_approval"
        assert Product.objects.get(id=scarf.id).get_variant_stock("M") == 0

    def test_pending_payment_cannot_be_approved(self, client, user_headers, admin_headers, dress, fill_cart, user, shipping_address):
        fill_cart(user, (dress, 1, "M"))
        order = client.post(
            "/api/v1/checkout",
            json={"shipping_address": shipping_address, "payment_method": "upi"},
            headers=user_headers,
        ).get_json()["data"]["order"]

        resp = _patch(client, order["id"], "approve", admin_headers)

        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Order cannot be approved while pending"

    def test_requires_admin(self, client, user_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        resp = _patch(client, order["id"], "approve", user_headers)
        assert resp.status_code == 403

    def test_unknown_order(self, client, admin_headers):
        assert _patch(client, str(ObjectId()), "approve", admin_headers).status_code == 404
        assert _patch(client, "not-an-id", "approve", admin_headers).status_code == 404


class TestReject:
    def test_requires_remarks(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        resp = _patch(client, order["id"], "reject", admin_headers, remarks="   ")
        assert resp.status_code == 400
        assert Order.objects.get(id=order["id"]).status == "awaiting_approval"

    def test_rejects_with_reason(self, client, admin, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))

        resp = _patch(client, order["id"], "reject", admin_headers, remarks="Address unserviceable")

        rejected = resp.get_json()["data"]["order"]
        assert rejected["status"] == "rejected"
        assert rejected["reject_reason"] == "Address unserviceable"
        assert rejected["admin_approval"]["status"] == "rejected"
        assert rejected["admin_approval"]["rejected_by"] == str(admin.id)
        assert rejected["category"] == "cancelled"
        assert len(rejected["timeline"]) == 2
        assert Product.objects.get(id=dress.id).get_variant_stock("M") == 5

    def test_cannot_reject_after_approval(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)
        resp = _patch(client, order["id"], "reject", admin_headers, remarks="Too late")
        assert resp.status_code == 409


class TestCancel:
    def _cancel(self, client, order_id, headers, reason=None):
        return client.post(f"{ORDERS_URL}/{order_id}/cancel", json={"reason": reason}, headers=headers)

    def test_owner_cancels_awaiting_order(self, client, user_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))

        resp = self._cancel(client, order["id"], user_headers, "Changed my mind")

        cancelled = resp.get_json()["data"]["order"]
        assert cancelled["status"] == "cancelled"
        assert cancelled["cancel_reason"] == "Changed my mind"
        assert cancelled["cancelled_at"] is not None

    def test_confirmed_order_can_still_be_cancelled(self, client, user_headers, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)
        resp = self._cancel(client, order["id"], user_headers)
        assert resp.status_code == 200
        assert resp.get_json()["data"]["order"]["cancel_reason"] == "Cancelled by customer"

    def test_shipped_order_cannot_be_cancelled(self, client, user_headers, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)
        _patch(client, order["id"], "shipping", admin_headers, tracking_number="TRK123")

        resp = self._cancel(client, order["id"], user_headers)

        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Order cannot be cancelled at this stage"

    def test_only_owner_can_cancel(self, client, other_user, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        resp = self._cancel(client, order["id"], auth_headers(other_user))
        assert resp.status_code == 403


class TestStatusUpdates:
    def test_delivered_completes_cod_payment(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)

        resp = _patch(client, order["id"], "status", admin_headers, status="delivered")

        delivered = resp.get_json()["data"]["order"]
        assert delivered["status"] == "delivered"
        assert delivered["payment_status"] == "completed"
        assert delivered["delivered_at"] is not None
        assert delivered["category"] == "completed"

    def test_invalid_status(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        resp = _patch(client, order["id"], "status", admin_headers, status="teleported")
        assert resp.status_code == 400

    def test_terminal_orders_are_frozen(self, client, user_headers, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        client.post(f"{ORDERS_URL}/{order['id']}/cancel", json={}, headers=user_headers)

        resp = _patch(client, order["id"], "status", admin_headers, status="processing")

        assert resp.status_code == 409
        assert resp.get_json()["message"] == "Order is cancelled and can no longer change status"

    def test_each_change_appends_one_timeline_entry(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)
        _patch(client, order["id"], "status", admin_headers, status="processing", note="Packing")

        timeline = Order.objects.get(id=order["id"]).timeline
        assert [t.status for t in timeline] == ["awaiting_approval", "confirmed", "processing"]
        assert timeline[-1].note == "Packing"


class TestShipping:
    def test_ships_confirmed_order(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)
        eta = (datetime.now(timezone.utc) + timedelta(days=4)).isoformat()

        resp = _patch(
            client, order["id"], "shipping", admin_headers,
            tracking_number="TRK123", carrier="Delhivery", estimated_delivery=eta,
        )

        shipped = resp.get_json()["data"]["order"]
        assert shipped["status"] == "shipped"
        assert shipped["tracking_number"] == "TRK123"
        assert shipped["carrier"] == "Delhivery"
        assert shipped["estimated_delivery"] is not None
        assert shipped["timeline"][-1]["note"] == "Order shipped via Delhivery. Tracking: TRK123"

    def test_unapproved_order_only_gets_tracking(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))

        resp = _patch(client, order["id"], "shipping", admin_headers, tracking_number="TRK999")

        updated = resp.get_json()["data"]["order"]
        assert updated["status"] == "awaiting_approval"
        assert updated["tracking_number"] == "TRK999"
        assert len(updated["timeline"]) == 1

    def test_requires_tracking_number(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        assert _patch(client, order["id"], "shipping", admin_headers).status_code == 400


class TestCustomerViews:
    def test_track(self, client, user_headers, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        _patch(client, order["id"], "approve", admin_headers)

        tracking = client.get(f"{ORDERS_URL}/{order['id']}/track", headers=user_headers).get_json()["data"]["tracking"]

        assert tracking["order_number"] == order["order_number"]
        assert tracking["status"] == "confirmed"
        assert [t["status"] for t in tracking["tracking_history"]] == ["awaiting_approval", "confirmed"]

    def test_other_users_cannot_read(self, client, other_user, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        resp = client.get(f"{ORDERS_URL}/{order['id']}", headers=auth_headers(other_user))
        assert resp.status_code == 403

    def test_admin_can_read_any_order(self, client, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        resp = client.get(f"{ORDERS_URL}/{order['id']}", headers=admin_headers)
        assert resp.status_code == 200

    def test_my_orders_by_category(self, client, user_headers, dress, place_cod_order):
        first = place_cod_order((dress, 1, "M"))
        place_cod_order((dress, 1, "L"))
        client.post(f"{ORDERS_URL}/{first['id']}/cancel", json={}, headers=user_headers)

        ongoing = client.get(f"{ORDERS_URL}?category=ongoing", headers=user_headers).get_json()["data"]
        cancelled = client.get(f"{ORDERS_URL}?category=cancelled", headers=user_headers).get_json()["data"]

        assert ongoing["pagination"]["total"] == 1
        assert [o["id"] for o in cancelled["orders"]] == [first["id"]]

    def test_stats(self, client, user_headers, dress, place_cod_order):
        first = place_cod_order((dress, 1, "M"))
        place_cod_order((dress, 1, "L"))
        client.post(f"{ORDERS_URL}/{first['id']}/cancel", json={}, headers=user_headers)

        stats = client.get(f"{ORDERS_URL}/stats", headers=user_headers).get_json()["data"]["stats"]

        assert stats["total"] == 2
        assert stats["ongoing"] == 1
        assert stats["cancelled"] == 1
        assert stats["total_value"] == 2 * (1200 + 199)


class TestAdminOrderList:
    def test_filters_by_approval_status(self, client, admin_headers, dress, place_cod_order):
        first = place_cod_order((dress, 1, "M"))
        place_cod_order((dress, 1, "L"))
        _patch(client, first["id"], "approve", admin_headers)

        resp = client.get("/api/v1/admin/orders?approval_status=pending", headers=admin_headers)

        data = resp.get_json()["data"]
        assert data["pagination"]["total"] == 1
        assert data["orders"][0]["admin_approval"]["status"] == "pending"

    def test_paginates(self, client, admin_headers, dress, place_cod_order):
        for _ in range(3):
            place_cod_order((dress, 1, "M"))

        data = client.get("/api/v1/admin/orders?limit=2&page=2", headers=admin_headers).get_json()["data"]

        assert len(data["orders"]) == 1
        assert data["pagination"] == {
            "page": 2, "limit": 2, "total": 3, "total_pages": 2, "has_next": False, "has_prev": True,
        }

    def test_search_by_order_number(self, client, admin_headers, dress, place_cod_order):
        target = place_cod_order((dress, 1, "M"))
        place_cod_order((dress, 1, "L"))

        resp = client.get(f"/api/v1/admin/orders?search={target['order_number']}", headers=admin_headers)

        assert [o["id"] for o in resp.get_json()["data"]["orders"]] == [target["id"]]

    def test_detail_includes_customer(self, client, user, admin_headers, dress, place_cod_order):
        order = place_cod_order((dress, 1, "M"))
        body = client.get(f"/api/v1/admin/orders/{order['id']}", headers=admin_headers).get_json()["data"]["order"]
        assert body["customer"]["email"] == user.email

    def test_user_orders(self, client, user, admin_headers, dress, place_cod_order):
        place_cod_order((dress, 1, "M"))
        data = client.get(f"/api/v1/admin/users/{user.id}/orders", headers=admin_headers).get_json()["data"]
        assert data["user"]["id"] == str(user.id)
        assert data["pagination"]["total"] == 1

    def test_non_admin_forbidden(self, client, user_headers):
        assert client.get("/api/v1/admin/orders", headers=user_headers).status_code == 403


class TestStockDecrement:
    def test_refuses_more_than_on_hand(self, make_product):
        scarf = make_product("Silk Scarf", variants={"M": 1})
        assert scarf.decrement_stock("M", 2) is False
        assert Product.objects.get(id=scarf.id).get_variant_stock("M") == 1

    def test_flat_quantity_is_not_clamped(self, make_product):
        scarf = make_product("Silk Scarf", quantity=1, track_quantity=True)
        assert scarf.decrement_stock(None, 3) is False
        assert Product.objects.get(id=scarf.id).quantity == 1
