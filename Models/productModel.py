import logging
from mongoengine import (
    Document, EmbeddedDocument, StringField, DecimalField, IntField, BooleanField,
    ListField, EmbeddedDocumentField, DateTimeField
)
from datetime import datetime, timezone

logger = logging.getLogger(__name__)

SIZES = ('XS', 'S', 'M', 'L', 'XL', 'XXL')
CATEGORIES = ('Cordset', 'Anarkali', 'Suite', 'Kurti', 'Saree', 'Lehenga', 'Western Dress')
COLORS = {
    'Red': '#EF4444',
    'Blue': '#3B82F6',
    'Black': '#000000',
    'White': '#FFFFFF',
    'Green': '#10B981',
    'Pink': '#EC4899',
    'Yellow': '#FBBF24',
}
MAX_STOCK_RETRIES = 5


def slugify(name: str) -> str:
    return "-".join(
        part for part in "".join(c if c.isalnum() else "-" for c in name.lower()).split("-") if part
    )


class ProductImage(EmbeddedDocument):
    url = StringField(required=True)
    alt = StringField()
    is_primary = BooleanField(default=False)


class ProductColor(EmbeddedDocument):
    name = StringField(choices=tuple(COLORS))
    hex_code = StringField(choices=tuple(COLORS.values()))


class Variant(EmbeddedDocument):
    size = StringField(required=True, choices=SIZES)
    stock = IntField(required=True, min_value=0, default=0)
    sku = StringField()


class Product(Document):
    """Catalog entry.

    Descriptive fields are required by the admin API schemas rather than here,
    so checkout and approval can work with price and stock alone.
    """

    name = StringField(required=True, max_length=200)
    slug = StringField()
    description = StringField(max_length=2000)
    price = DecimalField(required=True, min_value=0, precision=2)
    compare_price = DecimalField(min_value=0, precision=2, null=True)
    material = StringField(max_length=100)
    category = StringField(choices=CATEGORIES)
    care_instructions = StringField(max_length=1000)
    is_new_arrival = BooleanField(default=False)
    is_sale = BooleanField(default=False)
    size = StringField(choices=SIZES)  # legacy single size
    color = EmbeddedDocumentField(ProductColor)
    images = ListField(EmbeddedDocumentField(ProductImage))
    variants = ListField(EmbeddedDocumentField(Variant))
    # Legacy flat stock for products without variants
    quantity = IntField(default=0)
    track_quantity = BooleanField(default=False)
    # Optimistic concurrency counter for stock writes
    version = IntField(default=0)
    created_at = DateTimeField(default=lambda: datetime.now(timezone.utc))
    updated_at = DateTimeField(default=lambda: datetime.now(timezone.utc))

    meta = {
        'collection': 'products',
        'indexes': ['slug', 'category', 'price', 'is_new_arrival', 'is_sale', '-created_at', 'variants.size']
    }

    def save(self, *args, **kwargs):
        # Slug follows the name, as links are built from it
        if self.name and (not self.slug or 'name' in self._get_changed_fields()):
            self.slug = slugify(self.name)
        self.updated_at = datetime.now(timezone.utc)
        return super(Product, self).save(*args, **kwargs)

    @property
    def has_variants(self) -> bool:
        return bool(self.variants)

    @property
    def discount_percentage(self) -> int:
        if self.compare_price and self.compare_price > self.price:
            return int(round((self.compare_price - self.price) / self.compare_price * 100))
        return 0

    @property
    def total_stock(self) -> int:
        if self.has_variants:
            return sum(v.stock for v in self.variants)
        return self.quantity or 0

    @property
    def available_sizes(self) -> list:
        if self.has_variants:
            return [v.size for v in self.variants if v.stock > 0]
        return [self.size] if self.size else []

    @property
    def primary_image(self):
        if not self.images:
            return None
        primary = next((img for img in self.images if img.is_primary), self.images[0])
        return primary.url

    def get_variant_stock(self, size):
        """Stock for `size`; None when the product has no variants, 0 for an unknown size."""
        if not self.has_variants:
            return None
        variant = next((v for v in self.variants if v.size == size), None)
        return variant.stock if variant else 0

    def stock_shortage(self, size, quantity):
        """Return a reason string if `quantity` of `size` cannot be supplied, else None."""
        if self.has_variants:
            if size:
                stock = self.get_variant_stock(size)
                if stock < quantity:
                    return f"Insufficient stock for {self.name} (Size: {size})"
            return None
        if self.track_quantity and self.quantity < quantity:
            return f"Insufficient stock for {self.name}"
        return None

    def decrement_stock(self, size, quantity) -> bool:
        """Commit `quantity` units of inventory.

        Variant-aware: decrements the matching size's stock, or the legacy flat
        quantity when the product has no variants and tracks quantity. Writes
        are conditioned on `version`, so concurrent decrements retry instead of
        overwriting each other. Returns False when nothing applied, including
        when the stock on hand is below `quantity`.
        """
        product = self
        for _ in range(MAX_STOCK_RETRIES):
            if product.has_variants:
                if not size or product.get_variant_stock(size) < quantity:
                    return False
                variants = [
                    Variant(size=v.size, stock=v.stock - quantity if v.size == size else v.stock, sku=v.sku)
                    for v in product.variants
                ]
                updated = Product.objects(id=product.id, version=product.version).update_one(
                    set__variants=variants, inc__version=1
                )
            elif product.track_quantity:
                if product.quantity < quantity:
                    return False
                updated = Product.objects(id=product.id, version=product.version).update_one(
                    set__quantity=product.quantity - quantity, inc__version=1
                )
            else:
                return False

            if updated:
                return True
            product = Product.objects(id=product.id).first()
            if product is None:
                return False

        logger.error(f"Stock decrement for product {self.id} gave up after {MAX_STOCK_RETRIES} conflicts")
        return False

    def to_json(self) -> dict:
        return {
            'id': str(self.id),
            'name': self.name,
            'slug': self.slug,
            'description': self.description,
            'price': float(self.price) if self.price is not None else None,
            'compare_price': float(self.compare_price) if self.compare_price is not None else None,
            'discount_percentage': self.discount_percentage,
            'material': self.material,
            'category': self.category,
            'care_instructions': self.care_instructions,
            'is_new_arrival': self.is_new_arrival,
            'is_sale': self.is_sale,
            'size': self.size,
            'color': {'name': self.color.name, 'hex_code': self.color.hex_code} if self.color else None,
            'image': self.primary_image,
            'images': [{'url': img.url, 'alt': img.alt, 'is_primary': img.is_primary} for img in self.images],
            'variants': [{'size': v.size, 'stock': v.stock, 'sku': v.sku} for v in self.variants],
            'available_sizes': self.available_sizes,
            'total_stock': self.total_stock,
            'quantity': self.quantity,
            'track_quantity': self.track_quantity,
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
