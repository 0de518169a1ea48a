# orders/checkout.py
import logging
import re

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.utils import timezone

from cart.models import Cart
from cart.services import empty_cart_for

from .models import Order, OrderItem
from .razorpay_utils import PaymentGatewayError, create_razorpay_order, verify_payment_signature
from .relay import ShippingLegError, start_origin_leg

logger = logging.getLogger(__name__)

ADDRESS_FIELDS = ["full_name", "phone", "email", "address", "city", "state", "pin_code"]
INVOICE_NUMBER_ATTEMPTS = 3


# ==================== VALIDATION HELPERS ====================

def validate_phone_number(phone):
    """Validate Indian mobile number format"""
    pattern = re.compile(r'^[6-9]\d{9}$')
    return pattern.match(phone) is not None


def validate_pincode(pincode):
    """Validate 6-digit pincode"""
    return len(pincode) == 6 and pincode.isdigit()


def clean_address(data):
    cleaned = {}
    for field in ADDRESS_FIELDS:
        value = str(data.get(field) or "").strip()
        if not value:
            raise ValidationError(f"{field} is required")
        cleaned[field] = value
    cleaned["landmark"] = str(data.get("landmark") or "").strip()

    if not validate_phone_number(cleaned["phone"]):
        raise ValidationError("Invalid mobile number")
    if not validate_pincode(cleaned["pin_code"]):
        raise ValidationError("Invalid pincode")
    return cleaned


def _checked_items(cart):
    items = list(cart.items.select_related("product"))
    if not items:
        raise ValidationError("Cart is empty")

    for item in items:
        product = item.product
        if product.status != "active":
            raise ValidationError(f"{product.name} is no longer available")
        if product.stock < item.quantity:
            raise ValidationError(f"Insufficient stock for {product.name}")
    return items


# ==================== ORDER CREATION ====================

def create_order_from_cart(user, address_data, gateway=create_razorpay_order):
    """
    Snapshot the user's cart into a pending order and open a payment
    order at the gateway. The cart itself is only emptied once the payment
    is verified.

    Returns (order, gateway_order). Raises ValidationError for bad input
    and PaymentGatewayError when the gateway refuses; in that case the
    order is kept as failed.
    """
    address = clean_address(address_data)

    with transaction.atomic():
        cart = Cart.objects.select_for_update().get(owner=user)
        items = _checked_items(cart)
        cart.recalculate()
        breakdown = cart.checkout_breakdown()

        order = Order.objects.create(
            buyer=user,
            seller_id=items[0].product.seller_id,
            email=address["email"],
            phone_number=address["phone"],
            full_name=address["full_name"],
            address=address["address"],
            city=address["city"],
            state=address["state"],
            pin_code=address["pin_code"],
            landmark=address["landmark"],
            subtotal=breakdown["subtotal"],
            protection_plan_total=breakdown["protection_plan_total"],
            platform_fee=breakdown["platform_fee"],
            platform_fee_percentage=breakdown["platform_fee_percentage"],
            gst=breakdown["gst"],
            shipping=breakdown["shipping"],
            total_amount=breakdown["grand_total"],
        )
        for item in items:
            OrderItem.objects.create(
                order=order,
                product=item.product,
                title=item.product.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                protection_selected=item.protection_selected,
                protection_price=item.protection_price,
                line_total=item.line_total,
            )

    try:
        gateway_order = gateway(order.total_amount, f"order_{order.id}", {"order_id": str(order.id)})
    except PaymentGatewayError:
        order.payment_status = "failed"
        order.failed_at = timezone.now()
        order.save(update_fields=["payment_status", "failed_at", "updated_at"])
        raise

    order.gateway_order_id = gateway_order["id"]
    order.save(update_fields=["gateway_order_id", "updated_at"])
    logger.info(f"Order #{order.id} created for {user}, total {order.total_amount}")
    return order, gateway_order


# ==================== PAYMENT VERIFICATION ====================

def next_invoice_number(paid_at=None):
    day = timezone.localdate(paid_at or timezone.now())
    prefix = f"INV-{day:%Y%m%d}-"
    last = (
        Order.objects.filter(invoice_number__startswith=prefix)
        .order_by("-invoice_number")
        .values_list("invoice_number", flat=True)
        .first()
    )
    sequence = int(last.rsplit("-", 1)[1]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


def _save_with_invoice_number(order, paid_at):
    """
    Assign the next invoice number and save. A concurrent payment may take
    the same number first; the unique constraint rejects ours and we retry.
    """
    for attempt in range(1, INVOICE_NUMBER_ATTEMPTS + 1):
        order.invoice_number = next_invoice_number(paid_at)
        try:
            with transaction.atomic():
                order.save()
            return
        except IntegrityError as e:
            logger.warning(f"Invoice number {order.invoice_number} taken (attempt {attempt}): {e}")
    raise ValidationError("Duplicate processing prevented")


def _notify_paid(notifier, order):
    items = ", ".join(f"{item.title} x {item.quantity}" for item in order.items.all())
    notifier.notify(
        order.email,
        f"Payment received for order #{order.id} ({order.invoice_number}). Items: {items}. Total: Rs. {order.total_amount}",
        {
            "event": "order_paid",
            "order_id": order.id,
            "subject": f"Order Confirmed - #{order.id}",
        },
    )


def verify_payment(gateway_order_id, payment_id, signature, courier=None, notifier=None):
    """
    Apply the gateway's checkout callback. Returns the order; its
    payment_status tells whether the signature was accepted.
    """
    with transaction.atomic():
        order = Order.objects.select_for_update().get(gateway_order_id=gateway_order_id)

        if order.is_paid:
            logger.info(f"Order #{order.id} already paid, ignoring repeated verification")
            return order

        if order.payment_status == "failed" or order.fulfillment_status == "cancelled":
            logger.warning(f"Order #{order.id} is {order.payment_status}/{order.fulfillment_status}, payment not applied")
            return order

        if not verify_payment_signature(gateway_order_id, payment_id, signature):
            logger.error(f"Razorpay signature mismatch for order #{order.id}")
            order.payment_status = "failed"
            order.failed_at = timezone.now()
            order.save(update_fields=["payment_status", "failed_at", "updated_at"])
            return order

        now = timezone.now()
        order.payment_status = "paid"
        order.paid_at = now
        if not order.gateway_payment_id:
            order.gateway_payment_id = payment_id
        _save_with_invoice_number(order, now)
        empty_cart_for(order.buyer)

    logger.info(f"Order #{order.id} paid ({payment_id})")

    try:
        start_origin_leg(order, courier=courier, notifier=notifier)
    except ShippingLegError as e:
        logger.error(f"Could not start shipment for order #{order.id}: {str(e)}")
    except Exception as e:
        logger.error(f"Shipment error for order #{order.id}: {str(e)}", exc_info=True)

    if notifier is not None:
        _notify_paid(notifier, order)
    return order

