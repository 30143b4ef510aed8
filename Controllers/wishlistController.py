import logging
from flask import jsonify
from bson import ObjectId

from Models.productModel import Product
from Models.wishlistModel import Wishlist, WishlistItem
from Utils.appError import NotFoundError, ValidationError
from Utils.auth_decorator import token_required

logger = logging.getLogger(__name__)


def _wishlist_response(wishlist, message=None):
    body = {'success': True, 'data': {'wishlist': wishlist.to_json()}}
    if message:
        body['message'] = message
    return jsonify(body)


def _existing_wishlist(user):
    wishlist = Wishlist.objects(user=user).first()
    if wishlist is None:
        raise NotFoundError("Wishlist not found")
    return wishlist


@token_required
def get_wishlist(user):
    wishlist = Wishlist.for_user(user)
    kept = wishlist.live_items()
    if len(kept) != len(wishlist.items):
        wishlist.items = kept
        wishlist.save()
    return _wishlist_response(wishlist)


@token_required
def add_to_wishlist(user, product_id):
    if not ObjectId.is_valid(product_id):
        raise NotFoundError("Product not found")
    product = Product.objects(id=product_id).first()
    if not product:
        raise NotFoundError("Product not found")

    wishlist = Wishlist.for_user(user)
    if wishlist.contains(product.id):
        raise ValidationError("Product already in wishlist")

    wishlist.items.append(WishlistItem(product=product))
    wishlist.save()
    return _wishlist_response(wishlist, "Product added to wishlist")


@token_required
def remove_from_wishlist(user, product_id):
    wishlist = _existing_wishlist(user)
    wishlist.items = [it for it in wishlist.items if str(it.product_id) != product_id]
    wishlist.save()
    return _wishlist_response(wishlist, "Product removed from wishlist")


@token_required
def clear_wishlist(user):
    wishlist = _existing_wishlist(user)
    wishlist.items = []
    wishlist.save()
    return _wishlist_response(wishlist, "Wishlist cleared")
