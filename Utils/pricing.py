from dataclasses import dataclass
from decimal import Decimal

from Models.couponModel import Coupon
from Models.orderModel import OrderItem, OrderColor, GATEWAY_METHODS
from Models.productModel import Product
from Utils.appError import ValidationError, NotFoundError
from Utils.money import round_currency, round_whole, to_decimal, as_number

# Automatic discount tiers, highest first: (subtotal strictly above, rate)
AUTO_DISCOUNT_TIERS = (
    (Decimal("20000"), Decimal("0.10")),
    (Decimal("10000"), Decimal("0.04")),
)
COD_SHIPPING = Decimal("199")
COD_ADVANCE = Decimal("300")


@dataclass(frozen=True)
class PriceBreakdown:
    subtotal: Decimal
    automatic_discount: Decimal
    coupon_discount: Decimal
    shipping: Decimal
    advance_payment: Decimal
    total: Decimal
    coupon_code: str | None = None

    @property
    def discount(self) -> Decimal:
        return self.automatic_discount + self.coupon_discount

    def to_json(self) -> dict:
        return {
            'subtotal': as_number(self.subtotal),
            'automatic_discount': as_number(self.automatic_discount),
            'coupon_discount': as_number(self.coupon_discount),
            'discount': as_number(self.discount),
            'shipping': as_number(self.shipping),
            'advance_payment': as_number(self.advance_payment),
            'total_amount': as_number(self.total),
            'coupon_code': self.coupon_code,
        }


def automatic_discount(subtotal) -> Decimal:
    """Tiered discount on the raw subtotal, rounded to a whole unit."""
    subtotal = to_decimal(subtotal)
    for threshold, rate in AUTO_DISCOUNT_TIERS:
        if subtotal > threshold:
            return round_whole(subtotal * rate)
    return Decimal("0")


def shipping_for(payment_method):
    """Return (shipping, advance_payment) for a payment method."""
    if payment_method == 'cod':
        return COD_SHIPPING, COD_ADVANCE
    return Decimal("0"), Decimal("0")


def resolve_coupon(code):
    """Look up a coupon by code (case-insensitive) or raise a 400."""
    coupon = Coupon.objects(code=code.strip().upper()).first()
    if coupon is None:
        raise ValidationError("Invalid coupon code")
    return coupon


def price_order(subtotal, payment_method, coupon=None, user_id=None) -> PriceBreakdown:
    """Compute the full price breakdown for an order.

    The coupon applies to the subtotal after the automatic discount. Advance
    payment for COD is collected separately and is not part of the total.
    """
    subtotal = round_currency(subtotal)
    auto = automatic_discount(subtotal)

    coupon_discount = Decimal("0")
    if coupon is not None:
        valid, reason = coupon.check_validity(user_id=user_id)
        if not valid:
            raise ValidationError(reason)
        amount, reason = coupon.compute_discount(subtotal - auto)
        if amount is None:
            raise ValidationError(reason)
        coupon_discount = amount

    shipping, advance = shipping_for(payment_method)
    total = subtotal - (auto + coupon_discount) + shipping
    return PriceBreakdown(
        subtotal=subtotal,
        automatic_discount=auto,
        coupon_discount=coupon_discount,
        shipping=shipping,
        advance_payment=advance,
        total=total,
        coupon_code=coupon.code if coupon is not None else None,
    )


def gateway_amount(total, min_amount) -> Decimal:
    """Amount actually charged through the gateway."""
    return max(round_currency(total), to_decimal(min_amount))


def is_gateway_method(payment_method) -> bool:
    return payment_method in GATEWAY_METHODS


def build_order_lines(cart):
    """Check stock for every cart line and snapshot it into order items.

    Returns (items, subtotal) priced at current product prices.
    """
    if cart is None or not cart.items:
        raise ValidationError("Cart is empty")

    products = {p.id: p for p in Product.objects(id__in=[line.product_id for line in cart.items])}
    items = []
    subtotal = Decimal("0")
    for line in cart.items:
        product = products.get(line.product_id)
        if product is None:
            raise NotFoundError(f"Product not found for cart item {line.item_id}")

        shortage = product.stock_shortage(line.size, line.quantity)
        if shortage:
            raise ValidationError(shortage)

        price = round_currency(product.price)
        subtotal += price * line.quantity
        items.append(OrderItem(
            product=product,
            name=product.name,
            image=product.primary_image,
            price=price,
            quantity=line.quantity,
            size=line.size or product.size,
            color=OrderColor(name=product.color.name, hex_code=product.color.hex_code) if product.color else None,
        ))
    return items, subtotal
