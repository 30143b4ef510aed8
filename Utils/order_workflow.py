"""Order state transitions.

Every transition is a single conditional ``modify`` on the order document:
the filter encodes the state the transition starts from, and the same write
sets the new state and pushes one timeline entry. When two requests race,
only the one whose write matched runs the follow-on side effects.
"""
import logging
from datetime import datetime, timezone

from bson import ObjectId
from mongoengine.errors import ValidationError as DocumentValidationError

from Models.cartModel import Cart
from Models.couponModel import Coupon
from Models.orderModel import (
    Order, TimelineEntry, ShippingAddress, ORDER_STATUSES, CANCELLABLE_STATUSES,
    SHIPPABLE_STATUSES, TERMINAL_STATUSES
)
from Models.productModel import Product
from Utils.appError import ValidationError, NotFoundError, ConflictError, ForbiddenError, GatewayError
from Utils.cashfree import CashfreeError, SUCCESS, FAILURE_STATUSES, resolve_payment_attempts
from Utils.money import to_decimal
from Utils.pricing import (
    build_order_lines, gateway_amount, is_gateway_method, price_order, resolve_coupon
)

logger = logging.getLogger(__name__)
payments_logger = logging.getLogger("payments")


def _now():
    return datetime.now(timezone.utc)


def _user_id(ref):
    return getattr(ref, 'id', ref)


def _entry(status, note, actor=None):
    return TimelineEntry(status=status, note=note, timestamp=_now(), updated_by=_user_id(actor) if actor else None)


def _transition(order_id, expected: dict, entry: TimelineEntry, **updates):
    """Apply `updates` only if the order still matches `expected`. Returns the new doc or None."""
    return Order.objects(id=order_id, **expected).modify(
        new=True, push__timeline=entry, set__updated_at=_now(), **updates
    )


def get_order_or_404(order_id) -> Order:
    if not ObjectId.is_valid(str(order_id)):
        raise NotFoundError("Order not found")
    order = Order.objects(id=order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_owned_order(order_id, user) -> Order:
    """Fetch an order readable by `user`: its owner, or any admin."""
    order = get_order_or_404(order_id)
    if not (user.is_admin or order.is_owned_by(user)):
        raise ForbiddenError("Access denied")
    return order


# =====================================
#  CHECKOUT
# =====================================
def record_coupon_usage(order: Order):
    if not order.coupon_code:
        return
    counted = Coupon.record_usage(
        order.coupon_code,
        order.user_id,
        order.id,
        discount_amount=order.coupon_discount,
        order_amount=order.subtotal,
    )
    if counted or Coupon.objects(code=order.coupon_code, usage_history__order=order.id).count():
        return

    # The discount is already priced in (and maybe paid), so flag the order
    # for the approving admin instead of repricing it.
    note = f"Coupon {order.coupon_code} not counted: usage limit reached. Review before approval"
    Order.objects(id=order.id).update_one(
        push__timeline=_entry(order.status, note), set__updated_at=_now()
    )
    payments_logger.error(
        f"Coupon {order.coupon_code} over its usage limit for order {order.order_number} "
        f"(discount {order.coupon_discount}); manual reconciliation needed"
    )


def commit_order(order: Order):
    """Side effects of an order becoming a real commitment: coupon usage and cart clearing."""
    record_coupon_usage(order)
    Cart.empty_for_user(order.user_id)


def open_gateway_session(order: Order, user, client, config) -> Order:
    """Create the gateway order for a tentative `pending` order.

    Any failure deletes the tentative order so no unpayable order is left behind.
    """
    address = order.shipping_address
    customer = {
        'customer_id': str(user.id),
        'customer_email': user.email or (address.email if address else None),
        'customer_phone': user.phone or (address.phone if address else None),
        'customer_name': user.full_name or (address.full_name if address else None),
    }
    amount = gateway_amount(order.total_amount, config.min_amount)

    missing = [field for field in ('customer_email', 'customer_phone') if not customer[field]]
    if missing or amount <= 0:
        order.delete()
        errors = [{'field': field, 'message': 'is required for online payment'} for field in missing]
        if amount <= 0:
            errors.append({'field': 'amount', 'message': 'must be greater than 0'})
        raise ValidationError("Cannot create payment session", errors=errors)

    return_url = config.return_url.format(order_number=order.order_number)
    try:
        response = client.create_order(order.order_number, amount, customer, return_url)
    except CashfreeError as e:
        order.delete()
        payments_logger.error(f"Session for {order.order_number} failed, order rolled back: {e}")
        raise GatewayError("Payment session could not be created", upstream=str(e)) from e

    session_id = response.get('payment_session_id')
    if not session_id:
        order.delete()
        payments_logger.error(f"Session for {order.order_number} returned no payment_session_id, order rolled back")
        raise GatewayError("Payment session could not be created", upstream="missing payment_session_id")

    Order.objects(id=order.id).update_one(
        set__payment_details__cf_order_id=response.get('order_id') or order.order_number,
        set__payment_details__payment_session_id=session_id,
        set__payment_details__amount=amount,
        set__updated_at=_now(),
    )
    order.reload()
    payments_logger.info(f"Session opened for {order.order_number} ({amount} {config.currency})")
    return order


def place_order(user, data, client=None, config=None) -> Order:
    """Turn the user's cart into an order.

    COD orders are committed immediately and wait for admin approval. Gateway
    orders stay `pending` until the payment is confirmed, and get a payment
    session opened here.
    """
    cart = Cart.objects(user=user).first()
    items, subtotal = build_order_lines(cart)
    coupon = resolve_coupon(data.coupon_code) if data.coupon_code else None
    price = price_order(subtotal, data.payment_method, coupon=coupon, user_id=user.id)

    gateway = is_gateway_method(data.payment_method)
    status = 'pending' if gateway else 'awaiting_approval'
    if gateway:
        note = "Order created, awaiting payment"
    elif price.coupon_code:
        note = f"Order created with coupon {price.coupon_code} and awaiting admin approval"
    else:
        note = "Order created and awaiting admin approval"

    order = Order(
        user=user,
        items=items,
        shipping_address=ShippingAddress(**data.shipping_address.model_dump()),
        payment_method=data.payment_method,
        subtotal=price.subtotal,
        discount=price.discount,
        coupon_discount=price.coupon_discount,
        shipping=price.shipping,
        advance_payment=price.advance_payment,
        total_amount=price.total,
        coupon_code=price.coupon_code,
        notes=data.notes,
        status=status,
        timeline=[_entry(status, note, user)],
    )
    try:
        order.save()
    except DocumentValidationError as e:
        raise ValidationError(f"Order could not be created: {e}") from e

    logger.info(f"Order {order.order_number} created for {user.email} ({data.payment_method}, total {price.total})")
    if gateway:
        return open_gateway_session(order, user, client, config)

    commit_order(order)
    return order


# =====================================
#  PAYMENT RECONCILIATION
# =====================================
def mark_payment_completed(order: Order, cf_payment_id, source: str):
    """pending -> awaiting_approval after a confirmed payment. Returns (order, applied)."""
    now = _now()
    updated = _transition(
        order.id,
        {'payment_status': 'pending', 'status': 'pending'},
        _entry('awaiting_approval', f"Payment confirmed via {source}", order.user_id),
        set__payment_status='completed',
        set__status='awaiting_approval',
        set__payment_details__cf_payment_id=str(cf_payment_id) if cf_payment_id else None,
        set__payment_details__paid_at=now,
    )
    if updated is None:
        current = Order.objects(id=order.id).first()
        if current is not None and current.payment_status == 'completed':
            payments_logger.info(f"Payment for {order.order_number} already applied ({source})")
        else:
            payments_logger.error(
                f"Payment {cf_payment_id} succeeded for {order.order_number} while order is "
                f"{getattr(current, 'status', 'missing')}/{getattr(current, 'payment_status', '-')}; "
                f"manual reconciliation needed"
            )
        return current, False

    commit_order(updated)
    payments_logger.info(f"Payment {cf_payment_id} completed {updated.order_number} via {source}")
    return updated, True


def mark_payment_failed(order: Order, cf_payment_id, source: str, gateway_status="FAILED"):
    """pending -> cancelled after a failed or abandoned payment. Returns (order, applied)."""
    updated = _transition(
        order.id,
        {'payment_status': 'pending', 'status': 'pending'},
        _entry('cancelled', f"Payment {gateway_status.lower()} via {source}", order.user_id),
        set__payment_status='failed',
        set__status='cancelled',
        set__cancelled_at=_now(),
        set__cancel_reason=f"Payment {gateway_status.lower()}",
        set__payment_details__cf_payment_id=str(cf_payment_id) if cf_payment_id else None,
    )
    if updated is None:
        payments_logger.info(f"Failure for {order.order_number} ignored; order no longer awaiting payment")
        return Order.objects(id=order.id).first(), False

    payments_logger.info(f"Payment {cf_payment_id} {gateway_status} for {updated.order_number} via {source}")
    return updated, True


# =====================================
#  ADMIN APPROVAL
# =====================================
def _check_stock(order: Order):
    """Raise a 409 when any line can no longer be supplied from current stock."""
    for item in order.items:
        product = Product.objects(id=item.product_id).first()
        if product is None:
            continue
        shortage = product.stock_shortage(item.size, item.quantity)
        if shortage:
            raise ConflictError(shortage)


def approve(order_id, admin, remarks=None) -> Order:
    order = get_order_or_404(order_id)
    if order.status == 'awaiting_approval':
        _check_stock(order)
    note = "Order approved by admin"
    if remarks:
        note = f"{note}. Remarks: {remarks}"

    updated = _transition(
        order.id,
        {'admin_approval__status': 'pending', 'status': 'awaiting_approval'},
        _entry('confirmed', note, admin),
        set__status='confirmed',
        set__admin_approval__status='approved',
        set__admin_approval__approved_by=admin.id,
        set__admin_approval__approved_at=_now(),
        set__admin_approval__remarks=remarks,
    )
    if updated is None:
        _raise_approval_conflict(order_id, "approved")

    for item in updated.items:
        product = Product.objects(id=item.product_id).first()
        if product is None:
            logger.warning(f"Approved order {updated.order_number} references a missing product")
        elif (product.has_variants or product.track_quantity) and not product.decrement_stock(item.size, item.quantity):
            # Another approval took the stock between the check and the write
            logger.error(
                f"Stock for {product.name} (size {item.size or '-'}) could not cover {item.quantity} "
                f"for approved order {updated.order_number}; manual reconciliation needed"
            )

    logger.info(f"Order {updated.order_number} approved by {admin.email}")
    return updated


def reject(order_id, admin, remarks) -> Order:
    remarks = (remarks or "").strip()
    if not remarks:
        raise ValidationError("Remarks are required to reject an order",
                              errors=[{'field': 'remarks', 'message': 'must not be empty'}])

    order = get_order_or_404(order_id)
    now = _now()
    updated = _transition(
        order.id,
        {'admin_approval__status': 'pending', 'status__in': ('pending', 'awaiting_approval')},
        _entry('rejected', f"Order rejected by admin. Reason: {remarks}", admin),
        set__status='rejected',
        set__rejected_at=now,
        set__reject_reason=remarks,
        set__admin_approval__status='rejected',
        set__admin_approval__rejected_by=admin.id,
        set__admin_approval__rejected_at=now,
        set__admin_approval__remarks=remarks,
    )
    if updated is None:
        _raise_approval_conflict(order_id, "rejected")

    logger.info(f"Order {updated.order_number} rejected by {admin.email}")
    return updated


def _raise_approval_conflict(order_id, action):
    current = get_order_or_404(order_id)
    if current.admin_approval and current.admin_approval.status != 'pending':
        raise ConflictError("Order has already been processed")
    raise ConflictError(f"Order cannot be {action} while {current.status}")


# =====================================
#  CUSTOMER & ADMIN STATUS CHANGES
# =====================================
def cancel(order_id, user, reason=None) -> Order:
    order = get_order_or_404(order_id)
    if not order.is_owned_by(user):
        raise ForbiddenError("Access denied")

    reason = (reason or "").strip() or "Cancelled by customer"
    updated = _transition(
        order.id,
        {'status__in': CANCELLABLE_STATUSES},
        _entry('cancelled', f"Order cancelled by customer: {reason}", user),
        set__status='cancelled',
        set__cancelled_at=_now(),
        set__cancel_reason=reason,
    )
    if updated is None:
        raise ConflictError("Order cannot be cancelled at this stage")
    return updated


def update_status(order_id, admin, status, note=None) -> Order:
    if status not in ORDER_STATUSES:
        raise ValidationError("Invalid status", errors=[{'field': 'status', 'message': f"must be one of {', '.join(ORDER_STATUSES)}"}])

    order = get_order_or_404(order_id)
    now = _now()
    updates = {'set__status': status}
    if status == 'delivered':
        updates['set__delivered_at'] = now
        updates['set__payment_status'] = 'completed'
    elif status == 'cancelled':
        updates['set__cancelled_at'] = now
    elif status == 'rejected':
        updates['set__rejected_at'] = now

    updated = _transition(
        order.id,
        {'status__nin': TERMINAL_STATUSES},
        _entry(status, note or f"Order status updated to {status} by admin", admin),
        **updates,
    )
    if updated is None:
        current = get_order_or_404(order_id)
        raise ConflictError(f"Order is {current.status} and can no longer change status")
    return updated


def update_shipping(order_id, admin, tracking_number, carrier=None, estimated_delivery=None) -> Order:
    """Store tracking info; confirmed/processing orders also move to shipped."""
    order = get_order_or_404(order_id)
    fields = {'set__tracking_number': tracking_number}
    if carrier:
        fields['set__carrier'] = carrier
    if estimated_delivery:
        fields['set__estimated_delivery'] = estimated_delivery

    via = f" via {carrier}" if carrier else ""
    updated = _transition(
        order.id,
        {'status__in': SHIPPABLE_STATUSES},
        _entry('shipped', f"Order shipped{via}. Tracking: {tracking_number}", admin),
        set__status='shipped',
        **fields,
    )
    if updated is None:
        updated = Order.objects(id=order.id).modify(new=True, set__updated_at=_now(), **fields)
    return updated


# =====================================
#  REFUND
# =====================================
def refund(order_id, admin, client, note=None) -> Order:
    order = get_order_or_404(order_id)
    if order.payment_status != 'completed':
        raise ConflictError("Refund not allowed: payment is not completed")
    cf_order_id = order.payment_details.cf_order_id if order.payment_details else None
    if not cf_order_id:
        raise ValidationError("Only gateway payments can be refunded")

    amount = order.payment_details.amount or order.total_amount
    refund_id = f"refund_{order.order_number}"
    try:
        response = client.create_refund(cf_order_id, amount, refund_id, note or "Order refunded")
    except CashfreeError as e:
        raise GatewayError("Refund could not be initiated", upstream=str(e)) from e

    updated = _transition(
        order.id,
        {'payment_status': 'completed'},
        _entry('refunded', note or f"Refund {refund_id} initiated by admin", admin),
        set__payment_status='refunded',
        set__status='refunded',
        set__payment_details__refund_id=response.get('refund_id') or refund_id,
    )
    if updated is None:
        raise ConflictError("Refund not allowed: payment is not completed")

    payments_logger.info(f"Refund {refund_id} of {amount} initiated for {updated.order_number}")
    return updated


# =====================================
#  GATEWAY EVENTS
# =====================================
def verify_payment(order_number, client) -> Order:
    """Pull-based reconciliation for a client returning from the hosted payment page.

    Gateway errors never fail the call; the local status is returned so the
    client can poll again while the webhook is still in flight.
    """
    order = Order.objects(order_number=order_number).first()
    if order is None:
        raise NotFoundError("Order not found")
    if order.payment_status != 'pending':
        return order

    cf_order_id = order.payment_details.cf_order_id if order.payment_details else None
    if not cf_order_id:
        return order

    try:
        attempts = client.get_order_payments(cf_order_id)
    except CashfreeError as e:
        payments_logger.warning(f"Verify for {order_number} fell back to local status: {e}")
        return order

    status, attempt = resolve_payment_attempts(attempts)
    if status == SUCCESS:
        order, _ = mark_payment_completed(order, attempt.get('cf_payment_id'), 'verify')
    elif status in FAILURE_STATUSES:
        order, _ = mark_payment_failed(order, attempt.get('cf_payment_id'), 'verify', status)
    return order


def reconcile_webhook(payload: dict) -> str:
    """Apply a verified webhook payload. Returns a short outcome label for the ack."""
    data = payload.get('data') or {}
    gateway_order_id = (data.get('order') or {}).get('order_id')
    payment = data.get('payment') or {}
    cf_payment_id = payment.get('cf_payment_id')
    status = payment.get('payment_status')

    if not gateway_order_id:
        payments_logger.warning(f"Webhook {payload.get('type')} without an order id ignored")
        return 'ignored'

    order = Order.objects(payment_details__cf_order_id=str(gateway_order_id)).first()
    if order is None:
        payments_logger.warning(f"Webhook for unknown gateway order {gateway_order_id}")
        return 'order_not_found'

    if cf_payment_id and order.payment_details.cf_payment_id == str(cf_payment_id):
        payments_logger.info(f"Duplicate webhook for payment {cf_payment_id} on {order.order_number}")
        return 'duplicate'

    charged = payment.get('payment_amount')
    if charged is not None and order.payment_details.amount is not None \
            and to_decimal(charged) != to_decimal(order.payment_details.amount):
        payments_logger.warning(
            f"Webhook amount {charged} differs from session amount {order.payment_details.amount} for {order.order_number}"
        )

    if status == SUCCESS:
        _, applied = mark_payment_completed(order, cf_payment_id, 'webhook')
        return 'applied' if applied else 'ignored'
    if status in FAILURE_STATUSES:
        _, applied = mark_payment_failed(order, cf_payment_id, 'webhook', status)
        return 'applied' if applied else 'ignored'

    payments_logger.info(f"Webhook status {status} for {order.order_number} needs no action")
    return 'ignored'
