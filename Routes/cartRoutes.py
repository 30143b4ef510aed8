from flask import Blueprint
from Controllers.cartController import (
    get_cart, add_to_cart, update_cart_item, remove_from_cart, clear_cart
)

cart_routes = Blueprint('cart_routes', __name__, url_prefix='/api/v1/cart')

cart_routes.add_url_rule('', view_func=get_cart, methods=['GET'])
cart_routes.add_url_rule('/add', view_func=add_to_cart, methods=['POST'])
cart_routes.add_url_rule('/update/<item_id>', view_func=update_cart_item, methods=['PUT'])
cart_routes.add_url_rule('/remove/<item_id>', view_func=remove_from_cart, methods=['DELETE'])
cart_routes.add_url_rule('/clear', view_func=clear_cart, methods=['DELETE'])
