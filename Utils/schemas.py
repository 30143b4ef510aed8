from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from flask import request
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic import ValidationError as PydanticValidationError

from Models.productModel import SIZES, CATEGORIES, COLORS
from Utils.appError import ValidationError

PaymentMethod = Literal['cod', 'upi', 'card', 'cashfree']
GatewayMethod = Literal['upi', 'card', 'cashfree']
Size = Literal[SIZES]


class _Schema(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra='ignore')


def _as_utc(v):
    """Naive datetimes from clients are taken as UTC."""
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


def _field_errors(exc: PydanticValidationError) -> list:
    return [
        {'field': '.'.join(str(part) for part in err['loc']) or 'body', 'message': err['msg']}
        for err in exc.errors()
    ]


def parse_body(model, data=None):
    """Validate a JSON body against `model`, raising a 400 with field errors."""
    if data is None:
        data = request.get_json(silent=True) or {}
    try:
        return model.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError("Validation failed", errors=_field_errors(e)) from e


def parse_query(model):
    """Validate query-string arguments against `model`."""
    args = {key: value for key, value in request.args.items() if value != ''}
    return parse_body(model, args)


# =====================================
#  CHECKOUT & PAYMENTS
# =====================================
class ShippingAddressIn(_Schema):
    full_name: str = Field(..., min_length=1, max_length=100)
    email: str = Field(..., pattern=r'^[^@\s]+@[^@\s]+\.[^@\s]+$')
    phone: str = Field(..., min_length=7, max_length=20)
    address: str = Field(..., min_length=1, max_length=300)
    city: str = Field(..., min_length=1, max_length=100)
    state: str = Field(..., min_length=1, max_length=100)
    pincode: str = Field(..., pattern=r'^\d{6}$')
    nearby_places: Optional[str] = Field(None, max_length=300)


class CheckoutRequest(_Schema):
    shipping_address: ShippingAddressIn
    payment_method: PaymentMethod
    coupon_code: Optional[str] = Field(None, max_length=20)
    notes: Optional[str] = Field(None, max_length=500)

    @field_validator('coupon_code')
    @classmethod
    def upper_code(cls, v):
        return v.upper() if v else None


class PaymentSessionRequest(CheckoutRequest):
    payment_method: GatewayMethod = 'cashfree'


class RefundRequest(_Schema):
    note: Optional[str] = Field(None, max_length=300)


# =====================================
#  CART
# =====================================
class CartAddRequest(_Schema):
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(1, ge=1, le=100)
    size: Optional[Size] = None


class CartUpdateRequest(_Schema):
    quantity: int = Field(..., ge=1, le=100)


# =====================================
#  ORDERS
# =====================================
class CancelRequest(_Schema):
    reason: Optional[str] = Field(None, max_length=500)


class ApprovalRequest(_Schema):
    remarks: Optional[str] = Field(None, max_length=500)


class StatusUpdateRequest(_Schema):
    status: str = Field(..., min_length=1)
    note: Optional[str] = Field(None, max_length=500)


class ShippingUpdateRequest(_Schema):
    tracking_number: str = Field(..., min_length=1, max_length=100)
    carrier: Optional[str] = Field(None, max_length=100)
    estimated_delivery: Optional[datetime] = None

    @field_validator('estimated_delivery')
    @classmethod
    def utc_dates(cls, v):
        return _as_utc(v)


class OrderListQuery(_Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    category: Optional[Literal['ongoing', 'completed', 'cancelled']] = None


class AdminOrderQuery(_Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    status: Optional[str] = None
    payment_status: Optional[str] = None
    approval_status: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    search: Optional[str] = Field(None, max_length=100)

    @field_validator('start_date', 'end_date')
    @classmethod
    def utc_dates(cls, v):
        return _as_utc(v)


# =====================================
#  COUPONS
# =====================================
class CouponCreate(_Schema):
    code: str = Field(..., pattern=r'^[A-Za-z0-9]{3,20}$')
    description: Optional[str] = Field(None, max_length=500)
    discount_type: Literal['percentage', 'fixed'] = 'percentage'
    discount_value: Decimal = Field(..., gt=0)
    min_purchase_amount: Decimal = Field(Decimal("0"), ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: datetime
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: int = Field(1, ge=1)
    is_active: bool = True

    @field_validator('valid_from', 'valid_until')
    @classmethod
    def utc_dates(cls, v):
        return _as_utc(v)

    @field_validator('code')
    @classmethod
    def upper_code(cls, v):
        return v.upper()

    @model_validator(mode='after')
    def check_rules(self):
        if self.discount_type == 'percentage' and self.discount_value > 100:
            raise ValueError("Percentage discount cannot exceed 100")
        if self.valid_from and self.valid_until <= self.valid_from:
            raise ValueError("Valid until date must be after valid from date")
        return self


class CouponUpdate(_Schema):
    description: Optional[str] = Field(None, max_length=500)
    discount_type: Optional[Literal['percentage', 'fixed']] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    min_purchase_amount: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, ge=0)
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    usage_limit: Optional[int] = Field(None, ge=1)
    user_usage_limit: Optional[int] = Field(None, ge=1)
    is_active: Optional[bool] = None

    @field_validator('valid_from', 'valid_until')
    @classmethod
    def utc_dates(cls, v):
        return _as_utc(v)


class CouponListQuery(_Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(10, ge=1, le=100)
    status: Optional[Literal['active', 'expired', 'inactive']] = None
    search: Optional[str] = Field(None, max_length=50)


class CouponValidateQuery(_Schema):
    code: str = Field(..., min_length=1, max_length=20)
    subtotal: Optional[Decimal] = Field(None, ge=0)


# =====================================
#  CATALOG
# =====================================
Category = Literal[CATEGORIES]
ColorName = Literal[tuple(COLORS)]
ProductSort = Literal['-created_at', 'created_at', 'price', '-price', 'name', '-name']


class ImageIn(_Schema):
    url: str = Field(..., min_length=1, max_length=500)
    alt: Optional[str] = Field(None, max_length=200)
    is_primary: bool = False


class VariantIn(_Schema):
    size: Size
    stock: int = Field(0, ge=0)
    sku: Optional[str] = Field(None, max_length=50)


def _check_variants(variants):
    if variants:
        sizes = [v.size for v in variants]
        if len(sizes) != len(set(sizes)):
            raise ValueError("Each size may only appear once in variants")
    return variants


class ProductCreate(_Schema):
    name: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=2000)
    price: Decimal = Field(..., ge=0)
    compare_price: Optional[Decimal] = Field(None, ge=0)
    material: str = Field(..., min_length=1, max_length=100)
    category: Category
    care_instructions: str = Field(..., min_length=1, max_length=1000)
    is_new_arrival: bool = False
    is_sale: bool = False
    size: Optional[Size] = None
    color: Optional[ColorName] = None
    images: list[ImageIn] = Field(default_factory=list, max_length=5)
    variants: list[VariantIn] = Field(default_factory=list)
    quantity: int = Field(0, ge=0)
    track_quantity: bool = False

    @field_validator('variants')
    @classmethod
    def unique_sizes(cls, v):
        return _check_variants(v)


class ProductUpdate(_Schema):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, min_length=1, max_length=2000)
    price: Optional[Decimal] = Field(None, ge=0)
    compare_price: Optional[Decimal] = Field(None, ge=0)
    material: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[Category] = None
    care_instructions: Optional[str] = Field(None, min_length=1, max_length=1000)
    is_new_arrival: Optional[bool] = None
    is_sale: Optional[bool] = None
    size: Optional[Size] = None
    color: Optional[ColorName] = None
    images: Optional[list[ImageIn]] = Field(None, max_length=5)
    variants: Optional[list[VariantIn]] = None
    quantity: Optional[int] = Field(None, ge=0)
    track_quantity: Optional[bool] = None

    @field_validator('variants')
    @classmethod
    def unique_sizes(cls, v):
        return _check_variants(v)


class ProductListQuery(_Schema):
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)
    sort: ProductSort = '-created_at'
    category: Optional[Category] = None
    size: Optional[Size] = None
    color: Optional[ColorName] = None
    min_price: Optional[Decimal] = Field(None, ge=0)
    max_price: Optional[Decimal] = Field(None, ge=0)
    search: Optional[str] = Field(None, max_length=100)


class ProductSearchQuery(_Schema):
    q: str = Field(..., min_length=1, max_length=100)
    page: int = Field(1, ge=1)
    limit: int = Field(20, ge=1, le=100)


class ProductShelfQuery(_Schema):
    limit: int = Field(10, ge=1, le=50)
