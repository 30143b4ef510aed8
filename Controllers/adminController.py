import logging
import re
from flask import jsonify, current_app
from bson import ObjectId
from mongoengine import Q

from Models.orderModel import Order
from Models.userModel import User
from Utils import order_workflow as workflow
from Utils.appError import NotFoundError
from Utils.auth_decorator import roles_required
from Utils.logger import summarize_log_dir
from Utils.pagination import paginate
from Utils.schemas import parse_query, AdminOrderQuery, OrderListQuery

logger = logging.getLogger(__name__)


def _admin_order_filters(query: AdminOrderQuery) -> Q:
    filters = Q()
    if query.status:
        filters &= Q(status=query.status)
    if query.payment_status:
        filters &= Q(payment_status=query.payment_status)
    if query.approval_status:
        filters &= Q(admin_approval__status=query.approval_status)
    if query.start_date:
        filters &= Q(created_at__gte=query.start_date)
    if query.end_date:
        filters &= Q(created_at__lte=query.end_date)
    if query.search:
        pattern = re.escape(query.search)
        filters &= (
            Q(order_number__iregex=pattern)
            | Q(shipping_address__full_name__iregex=pattern)
            | Q(shipping_address__email__iregex=pattern)
        )
    return filters


# =============================
# Orders
# =============================
@roles_required("admin")
def list_all_orders(admin):
    query = parse_query(AdminOrderQuery)
    qs = Order.objects(_admin_order_filters(query)).order_by('-created_at')
    orders, pagination = paginate(qs, query.page, query.limit)
    return jsonify({
        'success': True,
        'data': {'orders': [o.to_json() for o in orders], 'pagination': pagination}
    })


@roles_required("admin")
def get_order_detail(admin, order_id):
    order = workflow.get_order_or_404(order_id)
    body = order.to_json()
    customer = User.objects(id=order.user_id).first()
    body['customer'] = customer.to_json() if customer else None
    return jsonify({'success': True, 'data': {'order': body}})


@roles_required("admin")
def get_user_orders(admin, user_id):
    if not ObjectId.is_valid(user_id):
        raise NotFoundError("User not found")
    customer = User.objects(id=user_id).first()
    if not customer:
        raise NotFoundError("User not found")

    query = parse_query(OrderListQuery)
    orders, pagination = paginate(
        Order.objects(user=customer).order_by('-created_at'), query.page, query.limit
    )
    return jsonify({
        'success': True,
        'data': {
            'user': customer.to_json(),
            'orders': [o.to_json() for o in orders],
            'pagination': pagination,
        }
    })


# =============================
# Logs
# =============================
@roles_required("admin")
def get_logs_summary(admin):
    """Per-day INFO/WARNING/ERROR counts from the rotating log files."""
    log_dir = current_app.config["SETTINGS"].log_dir
    summary = summarize_log_dir(log_dir)

    totals = {"INFO": 0, "ERROR": 0, "WARNING": 0}
    for counts in summary.values():
        for level, value in counts.items():
            totals[level] += value

    return jsonify({'success': True, 'data': {'summary': summary, 'totals': totals}})
