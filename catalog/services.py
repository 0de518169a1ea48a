# catalog/services.py
import logging
from decimal import Decimal, InvalidOperation

from django.core.exceptions import ValidationError
from django.utils import timezone

from .models import Product

logger = logging.getLogger(__name__)

REQUIRED_LISTING_FIELDS = ("name", "brand", "category", "condition", "asking_price")


def get_product(product_id):
    """
    Catalog lookup used when pricing a cart line.

    Only active listings can be bought; anything else is reported as not
    found so the caller gets a single not-found condition.
    """
    product = Product.objects.get(id=product_id, status="active")
    return {
        "id": product.id,
        "price": product.final_price,
        "stock": product.stock,
        "weight": product.weight,
        "dimensions": product.dimensions,
        "seller_id": product.seller_id,
    }


def create_listing(seller, data):
    """Validate listing input and create an active product for the seller"""
    for field in REQUIRED_LISTING_FIELDS:
        if not str(data.get(field, "")).strip():
            raise ValidationError(f"{field} is required")

    try:
        asking_price = Decimal(str(data["asking_price"]))
    except (InvalidOperation, ValueError):
        raise ValidationError("Invalid asking price")
    if asking_price <= 0:
        raise ValidationError("Invalid asking price")

    category = str(data["category"]).strip().lower()
    if category not in dict(Product.CATEGORY_CHOICES):
        raise ValidationError(f"Unknown category: {data['category']}")

    condition = str(data["condition"]).strip().lower()
    if condition not in dict(Product.CONDITION_CHOICES):
        raise ValidationError(f"Unknown condition: {data['condition']}")

    try:
        stock = int(data.get("stock", 1))
    except (TypeError, ValueError):
        raise ValidationError("Invalid stock")
    if stock < 1:
        raise ValidationError("Invalid stock")

    product = Product(
        seller=seller,
        name=str(data["name"]).strip(),
        brand=str(data["brand"]).strip(),
        category=category,
        condition=condition,
        description=str(data.get("description", "")).strip(),
        asking_price=asking_price,
        stock=stock,
    )
    for field in ("weight", "length", "breadth", "height"):
        if data.get(field):
            try:
                value = int(data[field])
            except (TypeError, ValueError):
                raise ValidationError(f"Invalid {field}")
            if value < 1:
                raise ValidationError(f"Invalid {field}")
            setattr(product, field, value)
    product.save()

    logger.info(f"Listing {product.id} created: asking {asking_price}, fee {product.platform_fee}%, final {product.final_price}")
    return product


def verify_seller(profile, notifier):
    """Mark a seller verified and tell them; notification failures are ignored"""
    if profile.is_verified:
        return profile

    profile.is_verified = True
    profile.verified_at = timezone.now()
    profile.save(update_fields=["is_verified", "verified_at"])
    logger.info(f"Seller {profile.user_id} verified")

    notifier.notify(
        profile.email or profile.user.email,
        f"Your seller account '{profile.display_name}' has been verified. You can now list products.",
        {"event": "seller_verified", "seller_id": profile.user_id, "subject": "Seller account verified"},
    )
    return profile
