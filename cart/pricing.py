# cart/pricing.py
"""
Cart pricing: line totals, cart aggregates and the checkout breakdown.

Everything here is a pure function of its arguments (plus the pricing
policies in settings); nothing touches the database.

Items are any objects exposing ``unit_price``, ``quantity``,
``protection_selected`` and ``protection_price`` (CartItem and OrderItem
both do), or dicts with the same keys.
"""
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings

DEFAULT_CHECKOUT_FEE_TIERS = (
    (None, 2000, 30),
    (2001, 5000, 28),
    (5001, 10000, 25),
    (10001, 15000, 20),
)
DEFAULT_LISTING_FEE_TIERS = (
    (None, 2000, 30),
    (None, 5000, 28),
    (None, 10000, 25),
    (None, 15000, 20),
)

# Fields of checkout_breakdown() that may be shown to the buyer
BUYER_VISIBLE_FIELDS = ("subtotal", "protection_plan_total", "gst", "shipping", "grand_total")


def to_decimal(value):
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_currency(value):
    """Round half up to a whole currency unit"""
    return to_decimal(value).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _field(item, name):
    if isinstance(item, dict):
        return item[name]
    return getattr(item, name)


def line_amounts(item):
    """Return (line subtotal, line protection, line total) for one item"""
    quantity = int(_field(item, "quantity"))
    line_subtotal = to_decimal(_field(item, "unit_price")) * quantity
    if _field(item, "protection_selected"):
        line_protection = to_decimal(_field(item, "protection_price") or 0) * quantity
    else:
        line_protection = Decimal("0")
    return line_subtotal, line_protection, line_subtotal + line_protection


def recompute(items):
    """
    Compute cart aggregates from its items.

    Returns a dict with ``subtotal``, ``protection_plan_total``,
    ``total_item_count``, ``grand_total`` and ``line_totals`` (one per item,
    in item order).
    """
    subtotal = Decimal("0")
    protection_plan_total = Decimal("0")
    total_item_count = 0
    line_totals = []

    for item in items:
        line_subtotal, line_protection, line_total = line_amounts(item)
        subtotal += line_subtotal
        protection_plan_total += line_protection
        total_item_count += int(_field(item, "quantity"))
        line_totals.append(line_total)

    return {
        "subtotal": subtotal,
        "protection_plan_total": protection_plan_total,
        "total_item_count": total_item_count,
        "grand_total": subtotal + protection_plan_total,
        "line_totals": line_totals,
    }


def default_protection_price(unit_price):
    threshold = getattr(settings, "PROTECTION_PLAN_THRESHOLD", Decimal("15000"))
    below, above = getattr(settings, "PROTECTION_PLAN_PRICES", (Decimal("499"), Decimal("999")))
    return below if to_decimal(unit_price) < threshold else above


def fee_percentage(amount, tiers, fallback):
    """First tier whose inclusive [low, high] range holds amount wins"""
    amount = to_decimal(amount)
    for low, high, percentage in tiers:
        if low is not None and amount < low:
            continue
        if high is not None and amount > high:
            continue
        return percentage
    return fallback


def checkout_fee_percentage(subtotal):
    return fee_percentage(
        subtotal,
        getattr(settings, "CHECKOUT_PLATFORM_FEE_TIERS", DEFAULT_CHECKOUT_FEE_TIERS),
        getattr(settings, "CHECKOUT_PLATFORM_FEE_FALLBACK", 15),
    )


def listing_fee_percentage(asking_price):
    return fee_percentage(
        asking_price,
        getattr(settings, "LISTING_PLATFORM_FEE_TIERS", DEFAULT_LISTING_FEE_TIERS),
        getattr(settings, "LISTING_PLATFORM_FEE_FALLBACK", 15),
    )


def checkout_breakdown(subtotal, protection_plan_total, shipping_charge=None):
    """
    Checkout totals for a cart.

    The platform fee itself is never shown to the buyer: only the GST
    levied on it is folded into the grand total. ``platform_fee`` and
    ``platform_fee_percentage`` are internal fields; use buyer_view()
    before returning a breakdown to a buyer.
    """
    subtotal = to_decimal(subtotal)
    protection_plan_total = to_decimal(protection_plan_total)
    if shipping_charge is None:
        shipping_charge = getattr(settings, "CHECKOUT_SHIPPING_CHARGE", Decimal("1"))
    shipping_charge = to_decimal(shipping_charge)

    percentage = checkout_fee_percentage(subtotal)
    platform_fee = round_currency(subtotal * percentage / 100)
    gst = round_currency(platform_fee * to_decimal(getattr(settings, "GST_RATE", Decimal("0.18"))))

    return {
        "subtotal": subtotal,
        "protection_plan_total": protection_plan_total,
        "gst": gst,
        "shipping": shipping_charge,
        "grand_total": subtotal + protection_plan_total + gst + shipping_charge,
        "platform_fee": platform_fee,
        "platform_fee_percentage": percentage,
    }


def buyer_view(breakdown):
    return {key: breakdown[key] for key in BUYER_VISIBLE_FIELDS}
