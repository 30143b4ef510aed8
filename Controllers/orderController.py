import logging
from decimal import Decimal
from flask import jsonify, current_app

from Models.orderModel import Order, CATEGORY_STATUSES
from Utils import order_workflow as workflow
from Utils.auth_decorator import token_required, roles_required
from Utils.money import as_number, to_decimal
from Utils.pagination import paginate
from Utils.schemas import (
    parse_body, parse_query, CheckoutRequest, OrderListQuery, CancelRequest,
    ApprovalRequest, StatusUpdateRequest, ShippingUpdateRequest
)

logger = logging.getLogger(__name__)


def _order_response(order, message=None, status=200, **extra):
    body = {'success': True, 'data': {'order': order.to_json(), **extra}}
    if message:
        body['message'] = message
    return jsonify(body), status


def checkout_response(order):
    """201 body for a freshly placed order, with session details for gateway payments."""
    if order.status == 'pending':
        details = order.payment_details
        return _order_response(
            order, "Order created, complete the payment to continue", 201,
            payment={
                'payment_session_id': details.payment_session_id,
                'cf_order_id': details.cf_order_id,
                'amount': as_number(details.amount),
                'order_number': order.order_number,
            }
        )
    return _order_response(order, "Order created successfully and sent for admin approval", 201)


# =====================================
#  CUSTOMER
# =====================================
@token_required
def checkout(user):
    data = parse_body(CheckoutRequest)
    order = workflow.place_order(
        user, data,
        client=current_app.extensions["cashfree"],
        config=current_app.config["SETTINGS"].cashfree,
    )
    return checkout_response(order)


@token_required
def get_my_orders(user):
    query = parse_query(OrderListQuery)
    qs = Order.objects(user=user)
    if query.category:
        qs = qs.filter(status__in=CATEGORY_STATUSES[query.category])

    orders, pagination = paginate(qs.order_by('-created_at'), query.page, query.limit)
    return jsonify({
        'success': True,
        'data': {'orders': [o.to_json() for o in orders], 'pagination': pagination}
    })


@token_required
def get_order_stats(user):
    stats = {'total': 0, 'ongoing': 0, 'completed': 0, 'cancelled': 0}
    total_value = Decimal("0")
    for order in Order.objects(user=user).only('status', 'total_amount'):
        stats['total'] += 1
        for category, statuses in CATEGORY_STATUSES.items():
            if order.status in statuses:
                stats[category] += 1
        total_value += to_decimal(order.total_amount)
    stats['total_value'] = as_number(total_value)
    return jsonify({'success': True, 'data': {'stats': stats}})


@token_required
def get_order(user, order_id):
    order = workflow.get_owned_order(order_id, user)
    return _order_response(order)


@token_required
def track_order(user, order_id):
    order = workflow.get_owned_order(order_id, user)
    return jsonify({'success': True, 'data': {'tracking': order.tracking_json()}})


@token_required
def cancel_order(user, order_id):
    data = parse_body(CancelRequest)
    order = workflow.cancel(order_id, user, data.reason)
    logger.info(f"Order {order.order_number} cancelled by {user.email}")
    return _order_response(order, "Order cancelled successfully")


# =====================================
#  ADMIN
# =====================================
@roles_required("admin")
def approve_order(admin, order_id):
    data = parse_body(ApprovalRequest)
    order = workflow.approve(order_id, admin, data.remarks)
    return _order_response(order, "Order approved successfully")


@roles_required("admin")
def reject_order(admin, order_id):
    data = parse_body(ApprovalRequest)
    order = workflow.reject(order_id, admin, data.remarks)
    return _order_response(order, "Order rejected successfully")


@roles_required("admin")
def update_order_status(admin, order_id):
    data = parse_body(StatusUpdateRequest)
    order = workflow.update_status(order_id, admin, data.status, data.note)
    logger.info(f"Order {order.order_number} moved to {order.status} by {admin.email}")
    return _order_response(order, "Order status updated successfully")


@roles_required("admin")
def update_order_shipping(admin, order_id):
    data = parse_body(ShippingUpdateRequest)
    order = workflow.update_shipping(
        order_id, admin, data.tracking_number,
        carrier=data.carrier, estimated_delivery=data.estimated_delivery
    )
    return _order_response(order, "Shipping information updated successfully")
