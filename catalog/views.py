# catalog/views.py
import json
import logging

from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_POST

from marketplace.decorators import api_login_required

from . import services
from .models import Product

logger = logging.getLogger(__name__)


def _product_payload(product):
    return {
        "id": product.id,
        "name": product.name,
        "brand": product.brand,
        "category": product.category,
        "condition": product.condition,
        "description": product.description,
        "final_price": float(product.final_price),
        "stock": product.stock,
        "status": product.status,
        "seller_id": product.seller_id,
    }


@require_GET
def product_detail(request, product_id):
    try:
        product = Product.objects.get(id=product_id)
    except Product.DoesNotExist:
        return JsonResponse({"success": False, "error": "Product not found"}, status=404)
    return JsonResponse({"success": True, "product": _product_payload(product)})


@require_POST
@api_login_required
def create_listing(request):
    """Create a listing; the seller sees the asking price and the final price"""
    try:
        data = json.loads(request.body)
        product = services.create_listing(request.user, data)
        payload = _product_payload(product)
        payload["asking_price"] = float(product.asking_price)
        return JsonResponse({"success": True, "product": payload}, status=201)
    except ValidationError as e:
        return JsonResponse({"success": False, "error": e.messages[0]}, status=400)
    except json.JSONDecodeError:
        return JsonResponse({"success": False, "error": "Invalid JSON body"}, status=400)
    except Exception as e:
        logger.error(f"Create listing error: {str(e)}", exc_info=True)
        return JsonResponse({"success": False, "error": "Failed to create listing"}, status=500)
