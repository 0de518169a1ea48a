# orders/relay.py
"""
Two-leg shipment relay: seller -> warehouse -> buyer.

Every order goes through the warehouse. The first leg is booked once the
order is paid; the second is booked only by the monitor, after the courier
confirms the first leg was delivered to the warehouse. The monitor keeps no
state between cycles: each run re-reads the orders from the database, so a
failed booking is simply retried on the next run.
"""
import logging
from datetime import timedelta

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

from marketplace.notifications import get_notification_channel

from .models import Order, ShippingLeg
from .nimbuspost_utils import NimbusPostAPI

logger = logging.getLogger(__name__)

ORIGIN_TO_HUB = ShippingLeg.ORIGIN_TO_HUB
HUB_TO_DESTINATION = ShippingLeg.HUB_TO_DESTINATION

# Forward-only; completed and cancelled are terminal
LEG_TRANSITIONS = {
    "pending": {"in_transit", "completed", "cancelled"},
    "in_transit": {"completed", "cancelled"},
    "completed": set(),
    "cancelled": set(),
}


class ShippingLegError(Exception):
    """A leg operation that would break the relay's ordering rules"""


class InvalidLegTransition(ShippingLegError):
    pass


def derive_fulfillment_status(legs):
    """Order-level fulfillment status from its legs"""
    by_kind = {leg.leg_kind: leg for leg in legs}
    origin = by_kind.get(ORIGIN_TO_HUB)
    hub = by_kind.get(HUB_TO_DESTINATION)

    if hub is not None:
        if hub.status == "in_transit":
            return "shipped"
        if hub.status == "completed":
            return "delivered"
        return "processing"
    if origin is not None and origin.status == "completed":
        return "processing"
    return "pending"


def apply_leg_transition(leg, new_status, note=""):
    """Move one leg to new_status, stamping its timestamps. Does not save the order."""
    if new_status not in LEG_TRANSITIONS:
        raise ValidationError(f"Unknown leg status: {new_status}")
    if new_status not in LEG_TRANSITIONS[leg.status]:
        raise InvalidLegTransition(f"Cannot move {leg.leg_kind} leg from {leg.status} to {new_status}")

    now = timezone.now()
    leg.status = new_status
    if new_status == "in_transit" and not leg.started_at:
        leg.started_at = now
    if new_status == "completed":
        leg.completed_at = now
    if note:
        leg.notes = f"{leg.notes}\n{note}".strip()
    leg.save()
    return leg


def open_leg(order, leg_kind, shipment=None, note=""):
    """
    Append a new pending leg to the order. Must run inside a transaction
    holding the order row.
    """
    if leg_kind not in (ORIGIN_TO_HUB, HUB_TO_DESTINATION):
        raise ValidationError(f"Unknown leg kind: {leg_kind}")
    if not order.is_paid:
        raise ShippingLegError(f"Order #{order.id} is not paid")
    if order.fulfillment_status == "cancelled":
        raise ShippingLegError(f"Order #{order.id} is cancelled")
    if order.shipping_legs.filter(leg_kind=leg_kind).exists():
        raise ShippingLegError(f"Order #{order.id} already has a {leg_kind} leg")
    if leg_kind == HUB_TO_DESTINATION:
        origin = order.get_leg(ORIGIN_TO_HUB)
        if origin is None or origin.status != "completed":
            raise ShippingLegError(f"Order #{order.id} has not reached the warehouse yet")

    shipment = shipment or {}
    return ShippingLeg.objects.create(
        order=order,
        leg_kind=leg_kind,
        status="pending",
        tracking_ref=shipment.get("tracking_ref") or "",
        shipment_id=shipment.get("shipment_id") or "",
        courier_name=shipment.get("courier_name") or "",
        label_url=shipment.get("label_url") or "",
        tracking_url=shipment.get("tracking_url") or "",
        notes=note,
        started_at=timezone.now(),
    )


def _notify_leg(notifier, order, leg_kind, status):
    label = dict(ShippingLeg.LEG_KIND_CHOICES).get(leg_kind, leg_kind)
    notifier.notify(
        order.email,
        f"Order #{order.id}: {label} is now {status.replace('_', ' ')}.",
        {
            "event": "leg_transition",
            "order_id": order.id,
            "leg_kind": leg_kind,
            "status": status,
            "subject": f"Order #{order.id} shipping update",
        },
    )


def record_leg_transition(order, leg_kind, new_status, note="", notifier=None):
    """
    Manual status update of one leg. Never books the next leg: only the
    monitor does that.
    """
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        leg = order.shipping_legs.filter(leg_kind=leg_kind).first()
        if leg is None:
            raise ShippingLeg.DoesNotExist(f"Order #{order.id} has no {leg_kind} leg")

        apply_leg_transition(leg, new_status, note)
        if order.fulfillment_status != "cancelled":
            order.fulfillment_status = derive_fulfillment_status(order.shipping_legs.all())
        order.save(update_fields=["fulfillment_status", "updated_at"])

    logger.info(f"Order #{order.id} {leg_kind} -> {new_status}, fulfillment {order.fulfillment_status}")
    if notifier is not None:
        _notify_leg(notifier, order, leg_kind, new_status)
    return order


def build_parcel(order):
    """One parcel for the whole order: weights add up, dimensions take the largest item"""
    items = list(order.items.select_related("product"))
    weight = length = breadth = height = 0
    for item in items:
        product = item.product
        if product is None:
            continue
        weight += product.weight * item.quantity
        length = max(length, product.length)
        breadth = max(breadth, product.breadth)
        height = max(height, product.height)

    name = items[0].title if items else "Product"
    if len(items) > 1:
        name = f"{name} and {len(items) - 1} more"

    return {
        "name": name,
        "price": order.subtotal,
        "quantity": sum(item.quantity for item in items) or 1,
        "weight": weight or 500,
        "length": length or 20,
        "breadth": breadth or 15,
        "height": height or 10,
        "sku": f"ORD-{order.id}",
    }


def seller_pickup_address(order):
    profile = getattr(order.seller, "seller_profile", None) if order.seller_id else None
    if profile is None:
        raise ShippingLegError(f"Order #{order.id} seller has no pickup address")
    return profile.pickup_address()


def start_origin_leg(order, courier=None, notifier=None):
    """
    Book the seller -> warehouse shipment for a paid order.
    Returns the leg, or None when the courier booking failed.
    """
    courier = courier or NimbusPostAPI()

    existing = order.get_leg(ORIGIN_TO_HUB)
    if existing is not None:
        return existing
    order.refresh_from_db(fields=["payment_status", "fulfillment_status"])
    if not order.is_paid:
        raise ShippingLegError(f"Order #{order.id} is not paid")
    if order.fulfillment_status == "cancelled":
        raise ShippingLegError(f"Order #{order.id} is cancelled")

    success, shipment = courier.create_shipment(
        f"IN-{order.id}", seller_pickup_address(order), settings.WAREHOUSE_ADDRESS, build_parcel(order)
    )
    if not success:
        logger.error(f"Seller -> warehouse booking failed for order #{order.id}: {shipment}")
        return None

    try:
        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            leg = open_leg(locked, ORIGIN_TO_HUB, shipment, note="Seller to warehouse shipment booked")
    except (IntegrityError, ShippingLegError) as e:
        logger.warning(f"Origin leg for order #{order.id} not recorded: {str(e)}")
        return order.get_leg(ORIGIN_TO_HUB)

    logger.info(f"Order #{order.id} seller -> warehouse AWB {leg.tracking_ref}")
    if notifier is not None:
        _notify_leg(notifier, locked, ORIGIN_TO_HUB, "pending")
    return leg


def _claim_for_forwarding(order):
    """
    Compare-and-set on the order row: only one monitor run may book the
    second leg. A claim older than the lease belongs to a run that died
    mid-booking and is taken over.
    """
    now = timezone.now()
    lease = timedelta(seconds=getattr(settings, "RELAY_CLAIM_LEASE_SECONDS", 120))
    claimable = Q(hub_leg_claimed=False) | Q(hub_leg_claimed_at__isnull=True) | Q(hub_leg_claimed_at__lt=now - lease)
    claimed = Order.objects.filter(claimable, pk=order.pk).update(hub_leg_claimed=True, hub_leg_claimed_at=now)
    if claimed and order.hub_leg_claimed:
        logger.warning(f"Order #{order.id} took over a stale forwarding claim from {order.hub_leg_claimed_at}")
    return bool(claimed)


def _release_claim(order):
    if not ShippingLeg.objects.filter(order=order, leg_kind=HUB_TO_DESTINATION).exists():
        Order.objects.filter(pk=order.pk).update(hub_leg_claimed=False, hub_leg_claimed_at=None)


def forward_order(order, courier, notifier=None):
    """
    Book the warehouse -> buyer leg if the courier reports the first leg
    delivered. Returns True when a leg was created.
    """
    origin = order.get_leg(ORIGIN_TO_HUB)
    if origin is None or origin.status == "cancelled":
        return False
    if order.get_leg(HUB_TO_DESTINATION) is not None:
        return False
    if not origin.tracking_ref:
        logger.warning(f"Order #{order.id} origin leg has no tracking reference")
        return False

    success, tracking = courier.track_shipment(origin.tracking_ref)
    if not success:
        logger.warning(f"Tracking failed for order #{order.id} ({origin.tracking_ref}): {tracking}, retrying next cycle")
        return False
    if not tracking["delivered"]:
        return False

    if not _claim_for_forwarding(order):
        logger.info(f"Order #{order.id} already claimed for forwarding")
        return False

    try:
        success, shipment = courier.create_shipment(
            f"OUT-{order.id}", settings.WAREHOUSE_ADDRESS, order.shipping_address(), build_parcel(order)
        )
        if not success:
            logger.error(f"Warehouse -> buyer booking failed for order #{order.id}: {shipment}, retrying next cycle")
            _release_claim(order)
            return False

        with transaction.atomic():
            locked = Order.objects.select_for_update().get(pk=order.pk)
            origin = locked.get_leg(ORIGIN_TO_HUB)
            origin.tracking_data = tracking.get("raw") or {}
            if origin.status != "completed":
                apply_leg_transition(origin, "completed", note="Delivered to warehouse")
            else:
                origin.save(update_fields=["tracking_data", "updated_at"])
            open_leg(locked, HUB_TO_DESTINATION, shipment, note="Auto-forwarded from warehouse")
            locked.fulfillment_status = derive_fulfillment_status(locked.shipping_legs.all())
            locked.save(update_fields=["fulfillment_status", "updated_at"])
    except Exception:
        _release_claim(order)
        raise

    logger.info(f"Order #{order.id} forwarded to buyer, AWB {shipment['tracking_ref']}")
    if notifier is not None:
        _notify_leg(notifier, locked, HUB_TO_DESTINATION, "pending")
    return True


def orders_awaiting_forwarding():
    """Paid orders whose first leg is live and whose second leg does not exist yet"""
    live_origin = ShippingLeg.objects.filter(leg_kind=ORIGIN_TO_HUB).exclude(status="cancelled")
    forwarded = ShippingLeg.objects.filter(leg_kind=HUB_TO_DESTINATION)
    return (
        Order.objects.filter(id__in=live_origin.values("order_id"))
        .exclude(id__in=forwarded.values("order_id"))
        .exclude(fulfillment_status="cancelled")
        .order_by("id")
    )


def monitor_and_forward(courier=None, notifier=None, orders=None):
    """
    One monitor cycle. Each order is handled on its own: a failure is
    logged and the cycle moves on to the next order.

    When ``orders`` is given, only those of them still awaiting
    forwarding are checked.
    """
    courier = courier or NimbusPostAPI()
    notifier = notifier or get_notification_channel()
    checked = forwarded = failed = 0

    candidates = orders_awaiting_forwarding()
    if orders is not None:
        candidates = candidates.filter(id__in=orders.values("id"))

    for order in candidates:
        checked += 1
        try:
            if forward_order(order, courier, notifier):
                forwarded += 1
        except Exception as e:
            failed += 1
            logger.error(f"Relay monitor error for order #{order.id}: {str(e)}", exc_info=True)

    logger.info(f"Relay monitor: checked {checked}, forwarded {forwarded}, failed {failed}")
    return {"checked": checked, "forwarded": forwarded, "failed": failed}


def cancel_order(order, courier=None, notifier=None):
    """Cancel an order that has not completed any leg; open legs are cancelled too"""
    with transaction.atomic():
        order = Order.objects.select_for_update().get(pk=order.pk)
        if not order.can_cancel:
            raise ValidationError("Order can no longer be cancelled")

        open_legs = list(order.shipping_legs.filter(status__in=["pending", "in_transit"]))
        for leg in open_legs:
            apply_leg_transition(leg, "cancelled", note="Order cancelled")

        order.fulfillment_status = "cancelled"
        order.cancelled_at = timezone.now()
        order.save(update_fields=["fulfillment_status", "cancelled_at", "updated_at"])

    booked = [leg for leg in open_legs if leg.tracking_ref]
    if booked:
        courier = courier or NimbusPostAPI()
        for leg in booked:
            success, message = courier.cancel_shipment(leg.tracking_ref)
            if not success:
                logger.error(f"Courier cancellation failed for AWB {leg.tracking_ref}: {message}")

    logger.info(f"Order #{order.id} cancelled")
    if notifier is not None:
        notifier.notify(
            order.email,
            f"Order #{order.id} has been cancelled.",
            {"event": "order_cancelled", "order_id": order.id, "subject": f"Order #{order.id} cancelled"},
        )
    return order
