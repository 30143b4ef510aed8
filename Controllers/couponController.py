import logging
import re
from datetime import datetime, timezone
from flask import jsonify
from bson import ObjectId
from mongoengine import NotUniqueError, Q
from mongoengine.errors import ValidationError as DocumentValidationError

from Models.couponModel import Coupon
from Utils.appError import NotFoundError, ValidationError, ConflictError
from Utils.auth_decorator import roles_required, current_user_optional
from Utils.money import as_number, to_decimal
from Utils.pagination import paginate
from Utils.schemas import (
    parse_body, parse_query, CouponCreate, CouponUpdate, CouponListQuery, CouponValidateQuery
)

logger = logging.getLogger(__name__)


def _get_coupon_or_404(coupon_id):
    if not ObjectId.is_valid(coupon_id):
        raise NotFoundError("Coupon not found")
    coupon = Coupon.objects(id=coupon_id).first()
    if not coupon:
        raise NotFoundError("Coupon not found")
    return coupon


def _save(coupon):
    try:
        coupon.save()
    except NotUniqueError:
        raise ConflictError("Coupon code already exists")
    except DocumentValidationError as e:
        raise ValidationError(e.message if isinstance(e.message, str) else "Invalid coupon")
    return coupon


# =====================================
#  PUBLIC
# =====================================
def validate_coupon():
    """Check a code for the current shopper; the bearer token is optional."""
    query = parse_query(CouponValidateQuery)
    user = current_user_optional()

    coupon = Coupon.objects(code=query.code.upper()).first()
    if not coupon:
        raise NotFoundError("Invalid coupon code")

    valid, reason = coupon.check_validity(user_id=user.id if user else None)
    if not valid:
        raise ValidationError(reason)

    discount = None
    if query.subtotal is not None:
        amount, reason = coupon.compute_discount(query.subtotal)
        if amount is None:
            raise ValidationError(reason)
        discount = {
            'discount_amount': as_number(amount),
            'final_amount': as_number(to_decimal(query.subtotal) - amount),
        }

    return jsonify({
        'success': True,
        'message': 'Coupon is valid',
        'data': {'coupon': coupon.summary_json(), 'discount': discount}
    })


# =====================================
#  ADMIN
# =====================================
@roles_required("admin")
def create_coupon(admin):
    data = parse_body(CouponCreate)
    if Coupon.objects(code=data.code).first():
        raise ConflictError("Coupon code already exists")

    fields = data.model_dump(exclude_none=True)
    coupon = _save(Coupon(created_by=admin, **fields))
    logger.info(f"Coupon {coupon.code} created by {admin.email}")
    return jsonify({'success': True, 'message': 'Coupon created successfully', 'data': {'coupon': coupon.to_json()}}), 201


@roles_required("admin")
def list_coupons(admin):
    query = parse_query(CouponListQuery)
    now = datetime.now(timezone.utc)

    filters = Q()
    if query.status == 'active':
        filters &= Q(is_active=True, valid_from__lte=now, valid_until__gte=now)
    elif query.status == 'expired':
        filters &= Q(valid_until__lt=now)
    elif query.status == 'inactive':
        filters &= Q(is_active=False)
    if query.search:
        pattern = re.escape(query.search)
        filters &= Q(code__iregex=pattern) | Q(description__iregex=pattern)

    coupons, pagination = paginate(Coupon.objects(filters).order_by('-created_at'), query.page, query.limit)
    return jsonify({
        'success': True,
        'data': {'coupons': [c.to_json() for c in coupons], 'pagination': pagination}
    })


@roles_required("admin")
def get_coupon(admin, coupon_id):
    coupon = _get_coupon_or_404(coupon_id)
    return jsonify({'success': True, 'data': {'coupon': coupon.to_json()}})


@roles_required("admin")
def update_coupon(admin, coupon_id):
    coupon = _get_coupon_or_404(coupon_id)
    data = parse_body(CouponUpdate)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(coupon, field, value)
    _save(coupon)

    logger.info(f"Coupon {coupon.code} updated by {admin.email}")
    return jsonify({'success': True, 'message': 'Coupon updated successfully', 'data': {'coupon': coupon.to_json()}})


@roles_required("admin")
def delete_coupon(admin, coupon_id):
    coupon = _get_coupon_or_404(coupon_id)
    # Conditional delete, so a use recorded after the lookup still blocks it
    if not Coupon.objects(id=coupon.id, usage_count=0).delete():
        raise ConflictError("Cannot delete coupon that has been used. Deactivate it instead.")
    logger.info(f"Coupon {coupon.code} deleted by {admin.email}")
    return jsonify({'success': True, 'message': 'Coupon deleted successfully'})


@roles_required("admin")
def coupon_analytics(admin):
    now = datetime.now(timezone.utc)
    coupons = list(Coupon.objects.order_by('-created_at'))

    rows = []
    for c in coupons:
        rows.append({
            'code': c.code,
            'discount_type': c.discount_type,
            'discount_value': as_number(c.discount_value),
            'usage_count': c.usage_count,
            'usage_limit': c.usage_limit,
            'is_active': c.is_active,
            'total_discount_given': as_number(c.total_discount_given),
            'total_orders': len(c.usage_history),
            'total_revenue': as_number(sum((to_decimal(u.order_amount) for u in c.usage_history), to_decimal(0))),
        })

    def _expired(c):
        until = c.valid_until.replace(tzinfo=timezone.utc) if c.valid_until.tzinfo is None else c.valid_until
        return until < now

    overall = {
        'total_coupons': len(coupons),
        'active_coupons': sum(1 for c in coupons if c.is_active and not _expired(c)),
        'expired_coupons': sum(1 for c in coupons if _expired(c)),
        'total_usage': sum(c.usage_count for c in coupons),
        'total_discount_given': as_number(sum((c.total_discount_given for c in coupons), to_decimal(0))),
        'total_orders': sum(r['total_orders'] for r in rows),
        'total_revenue': as_number(sum((to_decimal(u.order_amount) for c in coupons for u in c.usage_history), to_decimal(0))),
    }
    return jsonify({'success': True, 'data': {'analytics': rows, 'overall_stats': overall}})
