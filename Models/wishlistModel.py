from mongoengine import (
    Document, EmbeddedDocument, ReferenceField, ListField, EmbeddedDocumentField, DateTimeField
)
from datetime import datetime, timezone

from Models.productModel import Product


class WishlistItem(EmbeddedDocument):
    product = ReferenceField('Product', required=True)
    added_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    @property
    def product_id(self):
        """Referenced product id, read without dereferencing (the product may be gone)."""
        ref = self._data.get('product')
        return getattr(ref, 'id', ref)


class Wishlist(Document):
    user = ReferenceField('User', required=True, unique=True)
    items = ListField(EmbeddedDocumentField(WishlistItem))
    updated_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    meta = {'collection': 'wishlists'}

    @classmethod
    def for_user(cls, user):
        wishlist = cls.objects(user=user).first()
        if wishlist is None:
            wishlist = cls(user=user, items=[])
            wishlist.save()
        return wishlist

    def contains(self, product_id) -> bool:
        return any(it.product_id == product_id for it in self.items)

    def live_items(self):
        ids = [it.product_id for it in self.items]
        existing = set(Product.objects(id__in=ids).scalar('id')) if ids else set()
        return [it for it in self.items if it.product_id in existing]

    def save(self, *args, **kwargs):
        self.updated_at = datetime.now(timezone.utc)
        return super(Wishlist, self).save(*args, **kwargs)

    def to_json(self) -> dict:
        live = self.live_items()
        return {
            'id': str(self.id),
            'user': str(self.user.id) if self.user else None,
            'items': [
                {
                    'product': it.product.to_json(),
                    'added_at': it.added_at.isoformat() if it.added_at else None,
                }
                for it in live
            ],
            'total_items': len(live),
        }
