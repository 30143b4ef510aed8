import logging
from flask import jsonify
from bson import ObjectId

from Models.cartModel import Cart, CartItem
from Models.productModel import Product
from Utils.appError import NotFoundError, ValidationError
from Utils.auth_decorator import token_required
from Utils.schemas import parse_body, CartAddRequest, CartUpdateRequest

logger = logging.getLogger(__name__)


def _cart_response(cart, message=None, status=200):
    body = {'success': True, 'data': {'cart': cart.to_json()}}
    if message:
        body['message'] = message
    return jsonify(body), status


def _drop_missing_products(cart):
    """Remove lines whose product has been deleted from the catalog."""
    kept = cart.live_items()
    if len(kept) != len(cart.items):
        cart.items = kept
        cart.save()
    return cart


@token_required
def get_cart(user):
    cart = _drop_missing_products(Cart.for_user(user))
    return _cart_response(cart)


@token_required
def add_to_cart(user):
    data = parse_body(CartAddRequest)
    if not ObjectId.is_valid(data.product_id):
        raise NotFoundError("Product not found")
    product = Product.objects(id=data.product_id).first()
    if not product:
        raise NotFoundError("Product not found")

    size = data.size or product.size
    if product.has_variants and not size:
        raise ValidationError("Size is required for this product")
    shortage = product.stock_shortage(size, data.quantity)
    if shortage:
        raise ValidationError(shortage)

    cart = _drop_missing_products(Cart.for_user(user))
    existing = next(
        (it for it in cart.items if it.product_id == product.id and it.size == size),
        None
    )
    if existing:
        existing.quantity = data.quantity
    else:
        cart.items.append(CartItem(product=product, quantity=data.quantity, size=size))
    cart.save()

    logger.info(f"Cart {cart.id}: {product.name} x{data.quantity} ({size or '-'}) for {user.email}")
    return _cart_response(cart, "Item added to cart")


@token_required
def update_cart_item(user, item_id):
    data = parse_body(CartUpdateRequest)
    cart = Cart.for_user(user)
    item = cart.find_item(item_id)
    if not item:
        raise NotFoundError("Cart item not found")

    product = Product.objects(id=item.product_id).first()
    shortage = product.stock_shortage(item.size, data.quantity) if product else None
    if shortage:
        raise ValidationError(shortage)

    item.quantity = data.quantity
    cart.save()
    return _cart_response(cart, "Cart updated")


@token_required
def remove_from_cart(user, item_id):
    cart = Cart.for_user(user)
    item = cart.find_item(item_id)
    if not item:
        raise NotFoundError("Cart item not found")

    cart.items = [it for it in cart.items if it.item_id != item.item_id]
    cart.save()
    return _cart_response(cart, "Item removed from cart")


@token_required
def clear_cart(user):
    cart = Cart.for_user(user)
    cart.items = []
    cart.save()
    return _cart_response(cart, "Cart cleared")
