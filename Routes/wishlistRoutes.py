from flask import Blueprint
from Controllers.wishlistController import (
    get_wishlist, add_to_wishlist, remove_from_wishlist, clear_wishlist
)

wishlist_routes = Blueprint('wishlist_routes', __name__, url_prefix='/api/v1/wishlist')

wishlist_routes.add_url_rule('', view_func=get_wishlist, methods=['GET'])
wishlist_routes.add_url_rule('/add/<product_id>', view_func=add_to_wishlist, methods=['POST'])
wishlist_routes.add_url_rule('/remove/<product_id>', view_func=remove_from_wishlist, methods=['DELETE'])
wishlist_routes.add_url_rule('/clear', view_func=clear_wishlist, methods=['DELETE'])
