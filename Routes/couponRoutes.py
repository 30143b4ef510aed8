from flask import Blueprint
from Controllers.couponController import (
    validate_coupon, create_coupon, list_coupons, get_coupon, update_coupon,
    delete_coupon, coupon_analytics
)

coupon_routes = Blueprint('coupon_routes', __name__, url_prefix='/api/v1/coupons')

# Public; a bearer token enables the per-user limit check
coupon_routes.add_url_rule('/validate', view_func=validate_coupon, methods=['GET'])

# Admin
coupon_routes.add_url_rule('', view_func=create_coupon, methods=['POST'])
coupon_routes.add_url_rule('', view_func=list_coupons, methods=['GET'])
coupon_routes.add_url_rule('/analytics', view_func=coupon_analytics, methods=['GET'])
coupon_routes.add_url_rule('/<coupon_id>', view_func=get_coupon, methods=['GET'])
coupon_routes.add_url_rule('/<coupon_id>', view_func=update_coupon, methods=['PUT'])
coupon_routes.add_url_rule('/<coupon_id>', view_func=delete_coupon, methods=['DELETE'])
