# cart/services.py
"""
Cart mutations. Each one validates its input, changes the items and
recalculates the aggregates inside a single transaction.
"""
import logging

from django.core.exceptions import ValidationError
from django.db import transaction

from catalog.services import get_product

from . import pricing
from .models import Cart, CartItem

logger = logging.getLogger(__name__)


def validate_quantity(quantity):
    try:
        quantity = int(quantity)
    except (TypeError, ValueError):
        raise ValidationError("Valid quantity is required")
    if quantity < 1:
        raise ValidationError("Valid quantity is required")
    return quantity


def get_cart(user):
    """Return the user's cart or None (carts are created lazily on first add)"""
    return Cart.objects.filter(owner=user).first()


def _locked_cart(user):
    """Cart row locked for the rest of the transaction; DoesNotExist if absent"""
    return Cart.objects.select_for_update().get(owner=user)


def add_item(user, product_id, quantity=1, protection_selected=False, protection_price=None):
    quantity = validate_quantity(quantity)
    product = get_product(product_id)

    if product["stock"] < quantity:
        raise ValidationError("Insufficient stock available")

    unit_price = product["price"]
    final_protection_price = 0
    if protection_selected:
        if protection_price and pricing.to_decimal(protection_price) > 0:
            final_protection_price = pricing.to_decimal(protection_price)
        else:
            final_protection_price = pricing.default_protection_price(unit_price)

    with transaction.atomic():
        Cart.objects.get_or_create(owner=user)
        cart = _locked_cart(user)

        item = cart.items.filter(product_id=product["id"]).first()
        if item:
            new_quantity = item.quantity + quantity
            if product["stock"] < new_quantity:
                raise ValidationError("Insufficient stock for the requested quantity")
            item.quantity = new_quantity
            item.unit_price = unit_price
            item.protection_selected = bool(protection_selected)
            item.protection_price = final_protection_price
            item.save()
        else:
            CartItem.objects.create(
                cart=cart,
                product_id=product["id"],
                quantity=quantity,
                unit_price=unit_price,
                protection_selected=bool(protection_selected),
                protection_price=final_protection_price,
            )

        cart.recalculate()

    logger.info(f"Added product {product['id']} x{quantity} to cart {cart.id}")
    return cart


def update_item_quantity(user, item_id, quantity):
    quantity = validate_quantity(quantity)

    with transaction.atomic():
        cart = _locked_cart(user)
        item = cart.items.select_related("product").get(id=item_id)

        if item.product.stock < quantity:
            raise ValidationError("Insufficient stock available")

        item.quantity = quantity
        item.save(update_fields=["quantity"])
        cart.recalculate()

    return cart


def remove_item(user, item_id):
    with transaction.atomic():
        cart = _locked_cart(user)
        deleted, _ = cart.items.filter(id=item_id).delete()
        if not deleted:
            raise CartItem.DoesNotExist(f"Item {item_id} not found in cart")
        cart.recalculate()

    return cart


def toggle_protection(user, item_id, selected):
    if selected is None:
        raise ValidationError("Selected status is required")

    with transaction.atomic():
        cart = _locked_cart(user)
        item = cart.items.get(id=item_id)

        item.protection_selected = bool(selected)
        if item.protection_selected:
            item.protection_price = pricing.default_protection_price(item.unit_price)
        else:
            item.protection_price = 0
        item.save(update_fields=["protection_selected", "protection_price"])
        cart.recalculate()

    return cart


def clear_cart(user):
    with transaction.atomic():
        cart = _locked_cart(user)
        cart.items.all().delete()
        cart.recalculate()

    return cart


def empty_cart_for(user):
    """
    Empty the cart after a verified payment. Runs in the caller's
    transaction; a missing cart is not an error here.
    """
    cart = Cart.objects.select_for_update().filter(owner=user).first()
    if cart is None:
        return None
    cart.items.all().delete()
    cart.recalculate()
    return cart
