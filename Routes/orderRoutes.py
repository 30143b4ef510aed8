from flask import Blueprint
from Controllers.orderController import (
    checkout, get_my_orders, get_order_stats, get_order, track_order, cancel_order,
    approve_order, reject_order, update_order_status, update_order_shipping
)

order_routes = Blueprint('order_routes', __name__, url_prefix='/api/v1')

# ----------------------------
# Checkout
# ----------------------------
order_routes.add_url_rule('/checkout', view_func=checkout, methods=['POST'])
order_routes.add_url_rule('/orders/create', endpoint='create_order', view_func=checkout, methods=['POST'])

# ----------------------------
# Customer orders
# ----------------------------
order_routes.add_url_rule('/orders', view_func=get_my_orders, methods=['GET'])
order_routes.add_url_rule('/orders/stats', view_func=get_order_stats, methods=['GET'])
order_routes.add_url_rule('/orders/<order_id>', view_func=get_order, methods=['GET'])
order_routes.add_url_rule('/orders/<order_id>/track', view_func=track_order, methods=['GET'])
order_routes.add_url_rule('/orders/<order_id>/cancel', view_func=cancel_order, methods=['POST'])

# ----------------------------
# Admin transitions
# ----------------------------
order_routes.add_url_rule('/orders/<order_id>/approve', view_func=approve_order, methods=['PATCH'])
order_routes.add_url_rule('/orders/<order_id>/reject', view_func=reject_order, methods=['PATCH'])
order_routes.add_url_rule('/orders/<order_id>/status', view_func=update_order_status, methods=['PATCH'])
order_routes.add_url_rule('/orders/<order_id>/shipping', view_func=update_order_shipping, methods=['PATCH'])
