import logging
import re
from flask import jsonify
from bson import ObjectId
from mongoengine import Q
from mongoengine.errors import ValidationError as DocumentValidationError

from Models.productModel import Product, ProductColor, ProductImage, Variant, CATEGORIES, COLORS
from Utils.appError import NotFoundError, ValidationError
from Utils.auth_decorator import roles_required
from Utils.pagination import paginate
from Utils.schemas import (
    parse_body, parse_query, ProductCreate, ProductUpdate, ProductListQuery, ProductSearchQuery, ProductShelfQuery
)

logger = logging.getLogger(__name__)


def _get_product_or_404(product_id):
    """Look a product up by id, or by slug for storefront links."""
    if ObjectId.is_valid(product_id):
        product = Product.objects(id=product_id).first()
    else:
        product = Product.objects(slug=product_id.lower()).first()
    if not product:
        raise NotFoundError("Product not found")
    return product


def _text_match(term):
    pattern = re.escape(term.strip())
    return Q(name__iregex=pattern) | Q(description__iregex=pattern) | Q(material__iregex=pattern)


def _apply_fields(product, fields: dict):
    """Copy validated request fields onto a product, building embedded documents."""
    if 'color' in fields:
        name = fields.pop('color')
        product.color = ProductColor(name=name, hex_code=COLORS[name]) if name else None
    if 'images' in fields:
        images = [ProductImage(**img) for img in fields.pop('images') or []]
        if images and not any(img.is_primary for img in images):
            images[0].is_primary = True
        product.images = images
    if 'variants' in fields:
        product.variants = [Variant(**v) for v in fields.pop('variants') or []]
    for field, value in fields.items():
        setattr(product, field, value)
    return product


def _save(product):
    try:
        product.save()
    except DocumentValidationError as e:
        raise ValidationError(e.message if isinstance(e.message, str) else "Invalid product")
    return product


def _listing(products, pagination):
    return jsonify({
        'success': True,
        'data': {'products': [p.to_json() for p in products], 'pagination': pagination}
    })


# =====================================
#  PUBLIC
# =====================================
def list_products():
    query = parse_query(ProductListQuery)

    filters = Q()
    if query.category:
        filters &= Q(category=query.category)
    if query.size:
        filters &= Q(variants__match={'size': query.size, 'stock__gt': 0}) | Q(size=query.size)
    if query.color:
        filters &= Q(color__name=query.color)
    if query.min_price is not None:
        filters &= Q(price__gte=query.min_price)
    if query.max_price is not None:
        filters &= Q(price__lte=query.max_price)
    if query.search:
        filters &= _text_match(query.search)

    products, pagination = paginate(Product.objects(filters).order_by(query.sort), query.page, query.limit)
    return _listing(products, pagination)


def search_products():
    query = parse_query(ProductSearchQuery)
    products, pagination = paginate(
        Product.objects(_text_match(query.q)).order_by('-created_at'), query.page, query.limit
    )
    return _listing(products, pagination)


def list_categories():
    """Every catalog category with the number of products filed under it."""
    counts = {category: 0 for category in CATEGORIES}
    for category in Product.objects(category__ne=None).scalar('category'):
        counts[category] = counts.get(category, 0) + 1
    return jsonify({
        'success': True,
        'data': {'categories': [{'name': name, 'count': count} for name, count in counts.items()]}
    })


def new_arrivals():
    query = parse_query(ProductShelfQuery)
    products = Product.objects(is_new_arrival=True).order_by('-created_at').limit(query.limit)
    return jsonify({'success': True, 'data': {'products': [p.to_json() for p in products]}})


def sale_products():
    query = parse_query(ProductShelfQuery)
    products = Product.objects(is_sale=True).order_by('-created_at').limit(query.limit)
    return jsonify({'success': True, 'data': {'products': [p.to_json() for p in products]}})


def get_product(product_id):
    product = _get_product_or_404(product_id)
    return jsonify({'success': True, 'data': {'product': product.to_json()}})


# =====================================
#  ADMIN
# =====================================
@roles_required("admin")
def create_product(admin):
    data = parse_body(ProductCreate)
    product = _save(_apply_fields(Product(), data.model_dump(exclude_none=True)))
    logger.info(f"Product {product.name} ({product.id}) created by {admin.email}")
    return jsonify({'success': True, 'message': 'Product created successfully', 'data': {'product': product.to_json()}}), 201


@roles_required("admin")
def update_product(admin, product_id):
    product = _get_product_or_404(product_id)
    data = parse_body(ProductUpdate)

    _save(_apply_fields(product, data.model_dump(exclude_unset=True)))
    logger.info(f"Product {product.name} ({product.id}) updated by {admin.email}")
    return jsonify({'success': True, 'message': 'Product updated successfully', 'data': {'product': product.to_json()}})


@roles_required("admin")
def delete_product(admin, product_id):
    """Hard delete; carts and wishlists drop the line on their next read."""
    product = _get_product_or_404(product_id)
    product.delete()
    logger.info(f"Product {product.name} ({product.id}) deleted by {admin.email}")
    return jsonify({'success': True, 'message': 'Product deleted successfully'})
