from flask import Blueprint
from Controllers.productController import (
    list_products, search_products, list_categories, new_arrivals, sale_products, get_product,
    create_product, update_product, delete_product
)

product_routes = Blueprint('product_routes', __name__, url_prefix='/api/v1/products')

# Public
product_routes.add_url_rule('', view_func=list_products, methods=['GET'])
product_routes.add_url_rule('/categories', view_func=list_categories, methods=['GET'])
product_routes.add_url_rule('/new-arrivals', view_func=new_arrivals, methods=['GET'])
product_routes.add_url_rule('/sale', view_func=sale_products, methods=['GET'])
product_routes.add_url_rule('/search', view_func=search_products, methods=['GET'])
product_routes.add_url_rule('/<product_id>', view_func=get_product, methods=['GET'])

# Admin
product_routes.add_url_rule('', view_func=create_product, methods=['POST'])
product_routes.add_url_rule('/<product_id>', view_func=update_product, methods=['PUT'])
product_routes.add_url_rule('/<product_id>', view_func=delete_product, methods=['DELETE'])
