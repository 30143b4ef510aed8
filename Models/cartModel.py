from mongoengine import (
    Document, EmbeddedDocument, ReferenceField, ListField, EmbeddedDocumentField,
    IntField, DecimalField, StringField, ObjectIdField, DateTimeField
)
from bson import ObjectId
from datetime import datetime, timezone
from decimal import Decimal

from Models.productModel import Product, SIZES


class CartItem(EmbeddedDocument):
    item_id = ObjectIdField(default=ObjectId)
    product = ReferenceField('Product', required=True)
    quantity = IntField(required=True, min_value=1, default=1)
    size = StringField(choices=SIZES)

    @property
    def product_id(self):
        """Referenced product id, read without dereferencing (the product may be gone)."""
        ref = self._data.get('product')
        return getattr(ref, 'id', ref)


class Cart(Document):
    user = ReferenceField('User', required=True, unique=True)
    items = ListField(EmbeddedDocumentField(CartItem))
    total_items = IntField(default=0)
    total_amount = DecimalField(default=Decimal("0"), precision=2)
    updated_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    meta = {'collection': 'carts'}

    @classmethod
    def for_user(cls, user):
        """Return the user's cart, creating an empty one on first use."""
        cart = cls.objects(user=user).first()
        if cart is None:
            cart = cls(user=user, items=[])
            cart.save()
        return cart

    @classmethod
    def empty_for_user(cls, user_id) -> int:
        """Atomically empty a user's cart. Returns the number of carts touched."""
        return cls.objects(user=user_id).update_one(
            set__items=[], set__total_items=0, set__total_amount=Decimal("0"),
            set__updated_at=datetime.now(timezone.utc)
        )

    def find_item(self, item_id):
        return next((it for it in self.items if str(it.item_id) == str(item_id)), None)

    def live_items(self):
        """Lines whose product still exists in the catalog."""
        ids = [it.product_id for it in self.items]
        existing = set(Product.objects(id__in=ids).scalar('id')) if ids else set()
        return [it for it in self.items if it.product_id in existing]

    def recalculate(self):
        """Refresh derived totals from current product prices."""
        live = self.live_items()
        self.total_items = sum(it.quantity for it in live)
        self.total_amount = sum(
            (Decimal(str(it.product.price)) * it.quantity for it in live),
            Decimal("0"),
        )

    def save(self, *args, **kwargs):
        self.recalculate()
        self.updated_at = datetime.now(timezone.utc)
        return super(Cart, self).save(*args, **kwargs)

    def to_json(self) -> dict:
        live = {id(it) for it in self.live_items()}
        return {
            'id': str(self.id),
            'user': str(self.user.id) if self.user else None,
            'items': [
                {
                    'id': str(it.item_id),
                    'product': it.product.to_json() if id(it) in live else None,
                    'quantity': it.quantity,
                    'size': it.size,
                }
                for it in self.items
            ],
            'total_items': self.total_items,
            'total_amount': float(self.total_amount or 0),
        }
