# orders/razorpay_utils.py
import hashlib
import hmac
import logging
from decimal import Decimal

import requests
from django.conf import settings

logger = logging.getLogger(__name__)


class PaymentGatewayError(Exception):
    pass


def to_paise(amount):
    """Razorpay takes amounts in the smallest currency unit"""
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1")))


def create_razorpay_order(amount, receipt, notes=None):
    """
    Create a Razorpay order for the amount (in rupees).
    Returns the gateway response dict; raises PaymentGatewayError.
    """
    url = f"{settings.RAZORPAY_BASE_URL}/orders"
    payload = {
        "amount": to_paise(amount),
        "currency": getattr(settings, "RAZORPAY_CURRENCY", "INR"),
        "receipt": receipt,
        "notes": notes or {},
    }

    try:
        response = requests.post(
            url,
            json=payload,
            auth=(settings.RAZORPAY_KEY_ID, settings.RAZORPAY_KEY_SECRET),
            timeout=15,
        )
        response.raise_for_status()
        data = response.json()
    except requests.exceptions.RequestException as e:
        logger.error(f"Razorpay order creation failed for {receipt}: {str(e)}")
        raise PaymentGatewayError(str(e)) from e

    if not data.get("id"):
        logger.error(f"Razorpay order creation returned no id: {data}")
        raise PaymentGatewayError(data.get("error", {}).get("description", "Order creation failed"))

    logger.info(f"Razorpay order {data['id']} created for {receipt}")
    return data


def generate_payment_signature(gateway_order_id, gateway_payment_id):
    message = f"{gateway_order_id}|{gateway_payment_id}".encode("utf-8")
    secret = str(settings.RAZORPAY_KEY_SECRET).encode("utf-8")
    return hmac.new(secret, message, hashlib.sha256).hexdigest()


def verify_payment_signature(gateway_order_id, gateway_payment_id, signature):
    """Verify the checkout signature Razorpay hands back to the client"""
    if not (gateway_order_id and gateway_payment_id and signature):
        return False
    expected = generate_payment_signature(gateway_order_id, gateway_payment_id)
    return hmac.compare_digest(expected, str(signature))
