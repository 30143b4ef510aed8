from mongoengine import (
    Document, EmbeddedDocument, StringField, DecimalField, IntField, DateTimeField,
    ListField, ReferenceField, EmbeddedDocumentField, ValidationError
)
from datetime import datetime, timezone
from decimal import Decimal

from Utils.hashid_utils import generate_order_number
from Utils.money import as_number, to_decimal

ORDER_STATUSES = (
    'pending', 'awaiting_approval', 'confirmed', 'processing',
    'shipped', 'delivered', 'cancelled', 'rejected', 'refunded'
)
PAYMENT_STATUSES = ('pending', 'completed', 'failed', 'refunded')
APPROVAL_STATUSES = ('pending', 'approved', 'rejected')
PAYMENT_METHODS = ('cod', 'upi', 'card', 'cashfree')
GATEWAY_METHODS = ('upi', 'card', 'cashfree')

CANCELLABLE_STATUSES = ('awaiting_approval', 'confirmed')
SHIPPABLE_STATUSES = ('confirmed', 'processing')
TERMINAL_STATUSES = ('cancelled', 'rejected', 'refunded')
ONGOING_STATUSES = ('awaiting_approval', 'confirmed', 'processing', 'shipped')

# User-facing order categories used by the "my orders" filter
CATEGORY_STATUSES = {
    'ongoing': ONGOING_STATUSES,
    'completed': ('delivered',),
    'cancelled': ('cancelled', 'rejected'),
}


def _iso(dt):
    return dt.isoformat() if dt else None


def _ref_id(ref):
    if ref is None:
        return None
    return str(getattr(ref, 'id', ref))


class OrderColor(EmbeddedDocument):
    name = StringField()
    hex_code = StringField()


class OrderItem(EmbeddedDocument):
    """Line item snapshot, frozen at order creation."""
    product = ReferenceField('Product', required=True)
    name = StringField()
    image = StringField()
    price = DecimalField(required=True, min_value=0, precision=2)
    quantity = IntField(required=True, min_value=1)
    size = StringField()
    color = EmbeddedDocumentField(OrderColor)

    @property
    def product_id(self):
        ref = self._data.get('product')
        return getattr(ref, 'id', ref)

    def to_json(self):
        return {
            'product': _ref_id(self.product_id),
            'name': self.name,
            'image': self.image,
            'price': as_number(self.price),
            'quantity': self.quantity,
            'size': self.size,
            'color': {'name': self.color.name, 'hex_code': self.color.hex_code} if self.color else None,
        }


class ShippingAddress(EmbeddedDocument):
    full_name = StringField(required=True)
    email = StringField(required=True)
    phone = StringField(required=True)
    address = StringField(required=True)
    city = StringField(required=True)
    state = StringField(required=True)
    pincode = StringField(required=True)
    nearby_places = StringField()

    def to_json(self):
        return {
            'full_name': self.full_name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'pincode': self.pincode,
            'nearby_places': self.nearby_places,
        }


class PaymentDetails(EmbeddedDocument):
    """Gateway correlation identifiers; cf_payment_id is the idempotency key."""
    cf_order_id = StringField()
    payment_session_id = StringField()
    cf_payment_id = StringField()
    amount = DecimalField(precision=2)
    paid_at = DateTimeField()
    refund_id = StringField()

    def to_json(self):
        return {
            'cf_order_id': self.cf_order_id,
            'payment_session_id': self.payment_session_id,
            'cf_payment_id': self.cf_payment_id,
            'amount': as_number(self.amount),
            'paid_at': _iso(self.paid_at),
            'refund_id': self.refund_id,
        }


class AdminApproval(EmbeddedDocument):
    status = StringField(choices=APPROVAL_STATUSES, default='pending')
    approved_by = ReferenceField('User')
    approved_at = DateTimeField()
    rejected_by = ReferenceField('User')
    rejected_at = DateTimeField()
    remarks = StringField()

    def to_json(self):
        return {
            'status': self.status,
            'approved_by': _ref_id(self.approved_by),
            'approved_at': _iso(self.approved_at),
            'rejected_by': _ref_id(self.rejected_by),
            'rejected_at': _iso(self.rejected_at),
            'remarks': self.remarks,
        }


class TimelineEntry(EmbeddedDocument):
    status = StringField(required=True)
    note = StringField()
    timestamp = DateTimeField(default=lambda: datetime.now(timezone.utc))
    updated_by = ReferenceField('User')

    def to_json(self):
        return {
            'status': self.status,
            'note': self.note,
            'timestamp': _iso(self.timestamp),
            'updated_by': _ref_id(self.updated_by),
        }


class Order(Document):
    order_number = StringField(unique=True)
    user = ReferenceField('User', required=True)
    items = ListField(EmbeddedDocumentField(OrderItem), required=True)
    shipping_address = EmbeddedDocumentField(ShippingAddress, required=True)
    payment_method = StringField(required=True, choices=PAYMENT_METHODS)
    payment_status = StringField(choices=PAYMENT_STATUSES, default='pending')
    payment_details = EmbeddedDocumentField(PaymentDetails, default=PaymentDetails)
    status = StringField(choices=ORDER_STATUSES, default='pending')
    admin_approval = EmbeddedDocumentField(AdminApproval, default=AdminApproval)

    subtotal = DecimalField(required=True, min_value=0, precision=2)
    discount = DecimalField(default=Decimal("0"), min_value=0, precision=2)
    coupon_discount = DecimalField(default=Decimal("0"), min_value=0, precision=2)
    shipping = DecimalField(default=Decimal("0"), min_value=0, precision=2)
    advance_payment = DecimalField(default=Decimal("0"), min_value=0, precision=2)
    total_amount = DecimalField(required=True, min_value=0, precision=2)
    coupon_code = StringField()

    notes = StringField()
    carrier = StringField()
    tracking_number = StringField()
    estimated_delivery = DateTimeField()
    delivered_at = DateTimeField()
    cancelled_at = DateTimeField()
    rejected_at = DateTimeField()
    cancel_reason = StringField()
    reject_reason = StringField()
    timeline = ListField(EmbeddedDocumentField(TimelineEntry))

    created_at = DateTimeField(default=lambda: datetime.now(timezone.utc))
    updated_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    meta = {
        'collection': 'orders',
        'indexes': [
            ('user', '-created_at'),
            'status',
            'admin_approval.status',
            'payment_status',
            'payment_details.cf_order_id',
            '-created_at',
        ]
    }

    def clean(self):
        """Enforce the order total invariant."""
        expected = to_decimal(self.subtotal) - to_decimal(self.discount) + to_decimal(self.shipping)
        if to_decimal(self.total_amount) != expected:
            raise ValidationError(
                f"total_amount {self.total_amount} does not equal subtotal - discount + shipping ({expected})"
            )
        if to_decimal(self.discount) > to_decimal(self.subtotal):
            raise ValidationError("discount cannot exceed subtotal")

    def save(self, *args, **kwargs):
        if not self.pk:
            if not self.order_number:
                self.order_number = generate_order_number()
        elif 'order_number' in self._get_changed_fields():
            raise ValidationError("order_number cannot be changed once assigned")
        self.updated_at = datetime.now(timezone.utc)
        return super(Order, self).save(*args, **kwargs)

    @property
    def category(self) -> str:
        if self.status in ('cancelled', 'rejected'):
            return 'cancelled'
        if self.status == 'delivered':
            return 'completed'
        return 'ongoing'

    @property
    def user_id(self):
        ref = self._data.get('user')
        return getattr(ref, 'id', ref)

    def is_owned_by(self, user) -> bool:
        return self.user_id == user.id

    def tracking_json(self) -> dict:
        return {
            'order_id': str(self.id),
            'order_number': self.order_number,
            'status': self.status,
            'admin_approval': self.admin_approval.to_json() if self.admin_approval else None,
            'carrier': self.carrier,
            'tracking_number': self.tracking_number,
            'estimated_delivery': _iso(self.estimated_delivery),
            'tracking_history': [t.to_json() for t in self.timeline],
        }

    def to_json(self) -> dict:
        return {
            'id': str(self.id),
            'order_number': self.order_number,
            'user': _ref_id(self.user_id),
            'items': [it.to_json() for it in self.items],
            'shipping_address': self.shipping_address.to_json() if self.shipping_address else None,
            'payment_method': self.payment_method,
            'payment_status': self.payment_status,
            'payment_details': self.payment_details.to_json() if self.payment_details else None,
            'status': self.status,
            'category': self.category,
            'admin_approval': self.admin_approval.to_json() if self.admin_approval else None,
            'subtotal': as_number(self.subtotal),
            'discount': as_number(self.discount),
            'coupon_discount': as_number(self.coupon_discount),
            'shipping': as_number(self.shipping),
            'advance_payment': as_number(self.advance_payment),
            'total_amount': as_number(self.total_amount),
            'coupon_code': self.coupon_code,
            'carrier': self.carrier,
            'tracking_number': self.tracking_number,
            'estimated_delivery': _iso(self.estimated_delivery),
            'delivered_at': _iso(self.delivered_at),
            'cancelled_at': _iso(self.cancelled_at),
            'rejected_at': _iso(self.rejected_at),
            'cancel_reason': self.cancel_reason,
            'reject_reason': self.reject_reason,
            'timeline': [t.to_json() for t in self.timeline],
            'created_at': _iso(self.created_at),
            'updated_at': _iso(self.updated_at),
        }
