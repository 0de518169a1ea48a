# orders/views.py
import json
import logging

from django.conf import settings
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.cache import never_cache
from django.views.decorators.http import require_GET, require_POST

from cart.models import Cart
from marketplace.decorators import api_login_required, api_staff_required
from marketplace.notifications import get_notification_channel

from . import relay
from .checkout import create_order_from_cart, verify_payment
from .models import Order, ShippingLeg
from .nimbuspost_utils import NimbusPostAPI
from .razorpay_utils import PaymentGatewayError, to_paise

logger = logging.getLogger(__name__)


def _money(value):
    return float(value)


def _order_summary(order):
    return {
        "id": order.id,
        "invoice_number": order.invoice_number,
        "payment_status": order.payment_status,
        "fulfillment_status": order.fulfillment_status,
        "total_amount": _money(order.total_amount),
        "created_at": order.created_at.isoformat(),
    }


def _order_detail(order):
    """Buyer view of an order: the platform fee stays internal"""
    data = _order_summary(order)
    data.update({
        "shipping_address": order.shipping_address(),
        "landmark": order.landmark,
        "items": [
            {
                "title": item.title,
                "quantity": item.quantity,
                "unit_price": _money(item.unit_price),
                "protection_selected": item.protection_selected,
                "protection_price": _money(item.protection_price),
                "line_total": _money(item.line_total),
            }
            for item in order.items.all()
        ],
        "totals": {
            "subtotal": _money(order.subtotal),
            "protection_plan_total": _money(order.protection_plan_total),
            "gst": _money(order.gst),
            "shipping": _money(order.shipping),
            "grand_total": _money(order.total_amount),
        },
        "paid_at": order.paid_at.isoformat() if order.paid_at else None,
        "cancelled_at": order.cancelled_at.isoformat() if order.cancelled_at else None,
        "can_cancel": order.can_cancel,
    })
    return data


def _tracking_payload(order):
    return {
        "order_id": order.id,
        "fulfillment_status": order.fulfillment_status,
        "legs": [leg.to_dict() for leg in order.shipping_legs.all()],
        "timeline": [
            dict(event, timestamp=event["timestamp"].isoformat()) for event in order.timeline()
        ],
    }


# ==================== CHECKOUT ====================

@require_POST
@api_login_required
def create_order(request):
    """Create an order from the cart and a Razorpay order to pay it"""
    try:
        data = json.loads(request.body)
        order, gateway_order = create_order_from_cart(request.user, data)
        return JsonResponse({
            "success": True,
            "order_id": order.id,
            "razorpay": {
                "key": settings.RAZORPAY_KEY_ID,
                "order_id": gateway_order["id"],
                "amount": to_paise(order.total_amount),
                "currency": gateway_order.get("currency", "INR"),
            },
            "totals": _order_detail(order)["totals"],
        }, status=201)
    except json.JSONDecodeError:
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)
    except ValidationError as e:
        return JsonResponse({"success": False, "error": e.messages[0]}, status=400)
    except Cart.DoesNotExist:
        return JsonResponse({"success": False, "error": "Cart is empty"}, status=400)
    except PaymentGatewayError as e:
        return JsonResponse({"success": False, "error": f"Payment gateway error: {e}"}, status=502)
    except Exception as e:
        logger.error(f"Order creation error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Failed to create order"}, status=500)


@never_cache
@require_POST
@api_login_required
def verify_payment_view(request):
    """Handle the Razorpay checkout callback posted by the client"""
    try:
        data = json.loads(request.body)
        gateway_order_id = data.get("razorpay_order_id", "")
        if not Order.objects.filter(gateway_order_id=gateway_order_id, buyer=request.user).exists():
            return JsonResponse({"success": False, "error": "Order not found"}, status=404)

        order = verify_payment(
            gateway_order_id,
            data.get("razorpay_payment_id", ""),
            data.get("razorpay_signature", ""),
            notifier=get_notification_channel(),
        )
        if not order.is_paid:
            return JsonResponse({"success": False, "error": "Security verification failed", "order_id": order.id}, status=400)

        return JsonResponse({"success": True, "order": _order_detail(order)})
    except json.JSONDecodeError:
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)
    except ValidationError as e:
        return JsonResponse({"success": False, "error": e.messages[0]}, status=409)
    except Exception as e:
        logger.error(f"Payment verification error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Payment verification failed"}, status=500)


# ==================== BUYER ORDERS ====================

@require_GET
@api_login_required
def my_orders(request):
    orders = Order.objects.filter(buyer=request.user)
    return JsonResponse({"success": True, "orders": [_order_summary(order) for order in orders]})


@require_GET
@api_login_required
def order_detail(request, order_id):
    try:
        order = Order.objects.get(id=order_id, buyer=request.user)
    except Order.DoesNotExist:
        return JsonResponse({"success": False, "error": "Order not found"}, status=404)
    return JsonResponse({"success": True, "order": _order_detail(order)})


@require_GET
@api_login_required
def order_tracking(request, order_id):
    try:
        order = Order.objects.get(id=order_id)
    except Order.DoesNotExist:
        return JsonResponse({"success": False, "error": "Order not found"}, status=404)
    if order.buyer_id != request.user.id and not request.user.is_staff:
        return JsonResponse({"success": False, "error": "Order not found"}, status=404)
    return JsonResponse({"success": True, "tracking": _tracking_payload(order)})


@require_POST
@api_login_required
def cancel_order(request, order_id):
    try:
        order = Order.objects.get(id=order_id, buyer=request.user)
        order = relay.cancel_order(order, notifier=get_notification_channel())
        return JsonResponse({"success": True, "message": "Order cancelled", "order": _order_summary(order)})
    except Order.DoesNotExist:
        return JsonResponse({"success": False, "error": "Order not found"}, status=404)
    except ValidationError as e:
        return JsonResponse({"success": False, "error": e.messages[0]}, status=409)
    except Exception as e:
        logger.error(f"Cancel order error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Failed to cancel order"}, status=500)


# ==================== WAREHOUSE (STAFF) ====================

@require_POST
@api_staff_required
def forward_all(request):
    """Run one relay monitor cycle now"""
    try:
        result = relay.monitor_and_forward(NimbusPostAPI(), get_notification_channel())
        return JsonResponse({"success": True, "result": result})
    except Exception as e:
        logger.error(f"Forward-all error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Relay monitor failed"}, status=500)


@require_POST
@api_staff_required
def forward_single_order(request, order_id):
    """Book the warehouse -> buyer leg for one order the courier reports delivered to the warehouse"""
    try:
        order = Order.objects.get(id=order_id)
        if not relay.forward_order(order, NimbusPostAPI(), get_notification_channel()):
            return JsonResponse({
                "success": False,
                "error": "Order not delivered to the warehouse yet or already forwarded",
            }, status=400)
        return JsonResponse({"success": True, "tracking": _tracking_payload(order)})
    except Order.DoesNotExist:
        return JsonResponse({"success": False, "error": "Order not found"}, status=404)
    except relay.ShippingLegError as e:
        return JsonResponse({"success": False, "error": str(e)}, status=409)
    except Exception as e:
        logger.error(f"Forward order #{order_id} error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Failed to forward order"}, status=500)


@require_GET
@api_staff_required
def warehouse_dashboard(request):
    at_hub = relay.orders_awaiting_forwarding().filter(
        shipping_legs__leg_kind=ShippingLeg.ORIGIN_TO_HUB,
        shipping_legs__status="completed",
    )
    inbound = relay.orders_awaiting_forwarding().exclude(id__in=at_hub.values("id"))
    recent = (
        ShippingLeg.objects.filter(leg_kind=ShippingLeg.HUB_TO_DESTINATION)
        .select_related("order")
        .order_by("-created_at")[:20]
    )
    return JsonResponse({
        "success": True,
        "at_warehouse": [_order_summary(order) for order in at_hub],
        "inbound": [_order_summary(order) for order in inbound],
        "recently_forwarded": [
            dict(_order_summary(leg.order), outbound=leg.to_dict()) for leg in recent
        ],
    })


@require_POST
@api_staff_required
def update_leg_status(request, order_id, leg_kind):
    """Manually record a leg transition"""
    try:
        data = json.loads(request.body)
        order = Order.objects.get(id=order_id)
        order = relay.record_leg_transition(
            order, leg_kind, data.get("status", ""), data.get("note", ""), notifier=get_notification_channel()
        )
        return JsonResponse({"success": True, "tracking": _tracking_payload(order)})
    except json.JSONDecodeError:
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)
    except ValidationError as e:
        return JsonResponse({"success": False, "error": e.messages[0]}, status=400)
    except (Order.DoesNotExist, ShippingLeg.DoesNotExist):
        return JsonResponse({"success": False, "error": "Shipping leg not found"}, status=404)
    except relay.ShippingLegError as e:
        return JsonResponse({"success": False, "error": str(e)}, status=409)
    except Exception as e:
        logger.error(f"Leg status update error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Failed to update leg"}, status=500)


@require_POST
@api_staff_required
def start_shipment(request, order_id):
    """Book the seller -> warehouse leg for a paid order (retry after a failed booking)"""
    try:
        order = Order.objects.get(id=order_id)
        leg = relay.start_origin_leg(order, NimbusPostAPI(), get_notification_channel())
        if leg is None:
            return JsonResponse({"success": False, "error": "Courier booking failed"}, status=502)
        return JsonResponse({"success": True, "leg": leg.to_dict()})
    except Order.DoesNotExist:
        return JsonResponse({"success": False, "error": "Order not found"}, status=404)
    except relay.ShippingLegError as e:
        return JsonResponse({"success": False, "error": str(e)}, status=409)
    except Exception as e:
        logger.error(f"Start shipment error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Failed to start shipment"}, status=500)
