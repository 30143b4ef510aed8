from flask import Blueprint
from Controllers.adminController import (
    list_all_orders, get_order_detail, get_user_orders, get_logs_summary
)

admin_routes = Blueprint("admin_routes", __name__, url_prefix='/api/v1/admin')

# Order management
admin_routes.add_url_rule('/orders', view_func=list_all_orders, methods=['GET'])
admin_routes.add_url_rule('/orders/<order_id>', view_func=get_order_detail, methods=['GET'])
admin_routes.add_url_rule('/users/<user_id>/orders', view_func=get_user_orders, methods=['GET'])

# Operational data
admin_routes.add_url_rule('/logs/summary', view_func=get_logs_summary, methods=['GET'])
