from mongoengine import (
    Document, EmbeddedDocument, StringField, DecimalField, IntField, BooleanField,
    DateTimeField, ListField, MapField, ReferenceField, EmbeddedDocumentField, ObjectIdField, ValidationError, Q
)
from datetime import datetime, timezone
from decimal import Decimal

from Utils.money import round_currency, to_decimal

DISCOUNT_TYPES = ('percentage', 'fixed')


def _utc(dt):
    """Mongo returns naive datetimes; treat them as UTC."""
    if dt is not None and dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


class CouponUsage(EmbeddedDocument):
    # Plain ids: usage history outlives the users and orders it mentions
    user = ObjectIdField()
    order = ObjectIdField()
    discount_amount = DecimalField(required=True, precision=2)
    order_amount = DecimalField(required=True, precision=2)
    used_at = DateTimeField(default=lambda: datetime.now(timezone.utc))


class Coupon(Document):
    code = StringField(required=True, unique=True, min_length=3, max_length=20, regex=r'^[A-Z0-9]+$')
    description = StringField(max_length=500)
    discount_type = StringField(required=True, choices=DISCOUNT_TYPES, default='percentage')
    discount_value = DecimalField(required=True, precision=2)
    min_purchase_amount = DecimalField(default=Decimal("0"), min_value=0, precision=2)
    max_discount_amount = DecimalField(min_value=0, precision=2, null=True)
    valid_from = DateTimeField(required=True, default=lambda: datetime.now(timezone.utc))
    valid_until = DateTimeField(required=True)
    usage_limit = IntField(min_value=1, null=True)  # None means unlimited
    usage_count = IntField(default=0, min_value=0)
    user_usage_limit = IntField(default=1, min_value=1)
    is_active = BooleanField(default=True)
    created_by = ReferenceField('User')
    usage_history = ListField(EmbeddedDocumentField(CouponUsage))
    # Uses per user id, kept in step with usage_history by record_usage
    user_usage = MapField(IntField(min_value=0))
    created_at = DateTimeField(default=lambda: datetime.now(timezone.utc))
    updated_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    meta = {
        'collection': 'coupons',
        'indexes': [('is_active', 'valid_from', 'valid_until'), '-created_at']
    }

    def clean(self):
        if self.code:
            self.code = self.code.strip().upper()

        value = to_decimal(self.discount_value)
        if self.discount_type == 'percentage':
            if not (Decimal("0") < value <= Decimal("100")):
                raise ValidationError("Percentage discount must be greater than 0 and at most 100")
        elif value <= 0:
            raise ValidationError("Fixed discount must be greater than 0")

        if self.valid_from and self.valid_until and _utc(self.valid_until) <= _utc(self.valid_from):
            raise ValidationError("Valid until date must be after valid from date")

    def save(self, *args, **kwargs):
        self.updated_at = datetime.now(timezone.utc)
        return super(Coupon, self).save(*args, **kwargs)

    # =====================================
    #  EVALUATION
    # =====================================
    def user_usage_count(self, user_id) -> int:
        if not user_id:
            return 0
        user_id = str(user_id)
        return sum(
            1 for usage in self.usage_history
            if usage.user is not None and str(usage.user) == user_id
        )

    def check_validity(self, user_id=None, now=None):
        """Return (True, None) if the coupon can be applied, else (False, reason)."""
        now = now or datetime.now(timezone.utc)

        if not self.is_active:
            return False, "Coupon is not active"
        if now < _utc(self.valid_from):
            return False, "Coupon is not yet valid"
        if now > _utc(self.valid_until):
            return False, "Coupon has expired"
        if self.usage_limit and self.usage_count >= self.usage_limit:
            return False, "Coupon usage limit reached"
        if user_id and self.user_usage_count(user_id) >= self.user_usage_limit:
            return False, "You have reached the maximum usage limit for this coupon"
        return True, None

    def compute_discount(self, subtotal):
        """Return (amount, None) for a subtotal, or (None, reason) below the minimum."""
        subtotal = to_decimal(subtotal)
        minimum = to_decimal(self.min_purchase_amount)
        if subtotal < minimum:
            return None, f"Minimum purchase amount of ₹{minimum} required"

        value = to_decimal(self.discount_value)
        if self.discount_type == 'percentage':
            amount = subtotal * value / Decimal("100")
            if self.max_discount_amount is not None and amount > to_decimal(self.max_discount_amount):
                amount = to_decimal(self.max_discount_amount)
        else:
            amount = value

        amount = min(round_currency(amount), subtotal)
        return max(amount, Decimal("0")), None

    # =====================================
    #  USAGE ACCOUNTING
    # =====================================
    @classmethod
    def record_usage(cls, code, user_id, order_id, discount_amount, order_amount) -> bool:
        """Atomically count one use of `code` by an order.

        The write is skipped when the order is already in the usage history, the
        global limit has been reached, or the user has used up their own limit.
        Both limits are part of the update filter, so concurrent payments for
        the same user cannot push the counts past them.
        """
        coupon = cls.objects(code=code).only('usage_limit', 'user_usage_limit').first()
        if coupon is None:
            return False

        query = Q(code=code, usage_history__order__ne=order_id)
        if coupon.usage_limit:
            query &= Q(usage_count__lt=coupon.usage_limit)
        updates = {}
        if user_id:
            key = str(user_id)
            query &= (
                Q(**{f'user_usage__{key}__exists': False})
                | Q(**{f'user_usage__{key}__lt': coupon.user_usage_limit})
            )
            updates[f'inc__user_usage__{key}'] = 1

        usage = CouponUsage(
            user=user_id,
            order=order_id,
            discount_amount=round_currency(discount_amount),
            order_amount=round_currency(order_amount),
        )
        updated = cls.objects(query).update_one(
            inc__usage_count=1,
            push__usage_history=usage,
            set__updated_at=datetime.now(timezone.utc),
            **updates
        )
        return bool(updated)

    @property
    def total_discount_given(self) -> Decimal:
        return sum((to_decimal(u.discount_amount) for u in self.usage_history), Decimal("0"))

    def summary_json(self) -> dict:
        """Public subset returned by the validate endpoint."""
        return {
            'code': self.code,
            'description': self.description,
            'discount_type': self.discount_type,
            'discount_value': float(self.discount_value),
            'min_purchase_amount': float(self.min_purchase_amount or 0),
            'max_discount_amount': float(self.max_discount_amount) if self.max_discount_amount is not None else None,
        }

    def to_json(self) -> dict:
        now = datetime.now(timezone.utc)
        return {
            **self.summary_json(),
            'id': str(self.id),
            'valid_from': self.valid_from.isoformat() if self.valid_from else None,
            'valid_until': self.valid_until.isoformat() if self.valid_until else None,
            'usage_limit': self.usage_limit,
            'usage_count': self.usage_count,
            'user_usage_limit': self.user_usage_limit,
            'is_active': self.is_active,
            'is_expired': bool(self.valid_until and _utc(self.valid_until) < now),
            'total_discount_given': float(self.total_discount_given),
            'usage_history': [
                {
                    'user': str(u.user) if u.user else None,
                    'order': str(u.order) if u.order else None,
                    'discount_amount': float(u.discount_amount),
                    'order_amount': float(u.order_amount),
                    'used_at': u.used_at.isoformat() if u.used_at else None,
                }
                for u in self.usage_history
            ],
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
