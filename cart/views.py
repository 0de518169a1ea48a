# cart/views.py
import json
import logging
from functools import wraps

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from catalog.models import Product
from marketplace.decorators import api_login_required, api_staff_required

from . import pricing, services
from .models import Cart, CartItem

logger = logging.getLogger(__name__)

EMPTY_CART = {
    "items": [],
    "subtotal": 0,
    "protection_plan_total": 0,
    "total_item_count": 0,
    "grand_total": 0,
}


def _as_floats(values):
    return {key: float(value) for key, value in values.items()}


def _cart_response(cart, message):
    return JsonResponse({"success": True, "message": message, "cart": cart.to_dict()})


def _mutation(handler):
    """Shared error mapping for the cart mutation endpoints"""
    @wraps(handler)
    def wrapper(request, *args, **kwargs):
        try:
            return handler(request, *args, **kwargs)
        except json.JSONDecodeError:
            return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)
        except ValidationError as e:
            return JsonResponse({"success": False, "error": e.messages[0]}, status=400)
        except Product.DoesNotExist:
            return JsonResponse({"success": False, "error": "Product not found"}, status=404)
        except Cart.DoesNotExist:
            return JsonResponse({"success": False, "error": "Cart not found"}, status=404)
        except CartItem.DoesNotExist:
            return JsonResponse({"success": False, "error": "Item not found in cart"}, status=404)
        except Exception as e:
            logger.error(f"Cart mutation error: {str(e)}", exc_info=True)
            return JsonResponse({"success": False, "error": "Server error while updating cart"}, status=500)
    return wrapper


# ==================== CART API ====================

@require_GET
@api_login_required
def get_cart(request):
    cart = services.get_cart(request.user)
    if cart is None:
        return JsonResponse({"success": True, "cart": EMPTY_CART})
    return JsonResponse({"success": True, "cart": cart.to_dict()})


@require_POST
@api_login_required
@_mutation
def add_to_cart(request):
    """Add a product; quantities merge when it is already in the cart"""
    data = json.loads(request.body)
    if not data.get("product_id"):
        raise ValidationError("Product ID is required")

    cart = services.add_item(
        request.user,
        data["product_id"],
        quantity=data.get("quantity", 1),
        protection_selected=bool(data.get("protection_selected", False)),
        protection_price=data.get("protection_price"),
    )
    return _cart_response(cart, "Product added to cart successfully")


@require_POST
@api_login_required
@_mutation
def update_cart_item(request, item_id):
    data = json.loads(request.body)
    cart = services.update_item_quantity(request.user, item_id, data.get("quantity"))
    return _cart_response(cart, "Cart updated successfully")


@require_POST
@api_login_required
@_mutation
def remove_from_cart(request, item_id):
    cart = services.remove_item(request.user, item_id)
    return _cart_response(cart, "Item removed from cart successfully")


@require_POST
@api_login_required
@_mutation
def toggle_protection(request, item_id):
    data = json.loads(request.body)
    selected = data.get("selected")
    cart = services.toggle_protection(request.user, item_id, selected)
    return _cart_response(cart, f"Protection plan {'enabled' if selected else 'disabled'} successfully")


@require_POST
@api_login_required
@_mutation
def clear_cart(request):
    cart = services.clear_cart(request.user)
    return _cart_response(cart, "Cart cleared successfully")


# ==================== CHECKOUT TOTALS ====================

@require_GET
@api_login_required
def checkout_totals(request):
    """Buyer-facing totals: the platform fee is folded into GST, never shown"""
    cart = services.get_cart(request.user)
    if cart is None:
        return JsonResponse({"success": False, "error": "Cart not found"}, status=404)

    breakdown = cart.checkout_breakdown()
    return JsonResponse({
        "success": True,
        "totals": _as_floats(pricing.buyer_view(breakdown)),
        "cart": {
            "subtotal": float(cart.subtotal),
            "protection_plan_total": float(cart.protection_plan_total),
            "total_item_count": cart.total_item_count,
        },
    })


@require_GET
@api_staff_required
def cart_breakdown(request, owner_id):
    """Full breakdown including the internal fee fields (staff only)"""
    try:
        cart = Cart.objects.get(owner_id=owner_id)
    except Cart.DoesNotExist:
        return JsonResponse({"success": False, "error": "Cart not found"}, status=404)

    breakdown = cart.checkout_breakdown()
    items = []
    for item in cart.items.all():
        line_subtotal, line_protection, line_total = pricing.line_amounts(item)
        items.append({
            "id": item.id,
            "product_id": item.product_id,
            "quantity": item.quantity,
            "unit_price": float(item.unit_price),
            "subtotal": float(line_subtotal),
            "protection_plan_total": float(line_protection),
            "line_total": float(line_total),
        })

    totals = _as_floats({k: v for k, v in breakdown.items() if k != "platform_fee_percentage"})
    totals["platform_fee_percentage"] = breakdown["platform_fee_percentage"]
    return JsonResponse({
        "success": True,
        "breakdown": {
            "items": items,
            "totals": totals,
            "calculation": {
                "formula": "subtotal + protection_plan_total + gst + shipping = grand_total",
                "note": "Platform fee is hidden from the buyer; only its GST is charged",
            },
        },
    })
