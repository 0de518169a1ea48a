# orders/nimbuspost_utils.py
import logging
import time
from datetime import timedelta

import requests
from django.conf import settings
from django.utils import timezone

logger = logging.getLogger(__name__)


class NimbusPostAPI:
    """NimbusPost courier client: token login, shipment booking, tracking"""

    TOKEN_TTL = timedelta(hours=1)

    def __init__(self):
        self.base_url = getattr(settings, "NIMBUSPOST_BASE_URL", "https://api.nimbuspost.com/v1").strip().rstrip("/")
        self.email = settings.NIMBUSPOST_EMAIL
        self.password = settings.NIMBUSPOST_PASSWORD
        self.api_key = getattr(settings, "NIMBUSPOST_API_KEY", "")
        self.courier_id = getattr(settings, "NIMBUSPOST_COURIER_ID", None)
        self.mock_fallback = getattr(settings, "NIMBUSPOST_MOCK_FALLBACK", False)
        self.token = None
        self.token_expiry = None

    def _authenticate(self):
        """Log in and store the token"""
        url = f"{self.base_url}/users/login"
        payload = {"email": self.email, "password": self.password}
        response = requests.post(url, json=payload, headers={"x-api-key": self.api_key}, timeout=10)
        response.raise_for_status()
        data = response.json()

        if data.get("status") and data.get("data"):
            self.token = data["data"]
            self.token_expiry = timezone.now() + self.TOKEN_TTL
            logger.info("NimbusPost authentication successful")
            return self.token

        logger.error(f"NimbusPost auth failed: {data}")
        raise requests.exceptions.RequestException(data.get("message", "Authentication failed"))

    def get_headers(self):
        if not self.token or not self.token_expiry or timezone.now() >= self.token_expiry:
            self._authenticate()
        return {
            "Authorization": f"Bearer {self.token}",
            "x-api-key": self.api_key,
            "Content-Type": "application/json",
        }

    def create_shipment(self, reference, pickup, destination, parcel):
        """
        Book a prepaid shipment from pickup to destination.

        pickup/destination are address dicts (name, phone, email, address,
        city, state, pin_code); parcel carries name, price, quantity, weight
        (grams) and length/breadth/height (cm).
        Returns (success, result_dict) or (False, error_message).
        """
        payload = {
            "order_number": reference,
            "payment_type": "prepaid",
            "package_weight": parcel.get("weight", 500),
            "package_length": parcel.get("length", 20),
            "package_breadth": parcel.get("breadth", 15),
            "package_height": parcel.get("height", 10),
            "request_auto_pickup": "yes",
            "courier_id": self.courier_id,
            "consignee": {
                "name": destination["name"],
                "address": destination["address"],
                "city": destination["city"],
                "state": destination["state"],
                "pincode": destination["pin_code"],
                "phone": destination["phone"],
            },
            "pickup": {
                "warehouse_name": pickup.get("company") or pickup["name"],
                "name": pickup["name"],
                "address": pickup["address"],
                "city": pickup["city"],
                "state": pickup["state"],
                "pincode": pickup["pin_code"],
                "phone": pickup["phone"],
            },
            "order_items": [{
                "name": str(parcel.get("name", "Product"))[:100],
                "qty": parcel.get("quantity", 1),
                "price": float(parcel.get("price", 0)),
                "sku": parcel.get("sku", reference),
            }],
        }

        try:
            response = requests.post(
                f"{self.base_url}/shipments", json=payload, headers=self.get_headers(), timeout=30
            )
            response.raise_for_status()
            data = response.json()

            if data.get("status") and data.get("data"):
                shipment = data["data"]
                awb = shipment.get("awb_number") or shipment.get("awb")
                logger.info(f"NimbusPost shipment {reference} booked, AWB {awb}")
                return True, {
                    "tracking_ref": awb,
                    "shipment_id": str(shipment.get("shipment_id", "")),
                    "courier_name": shipment.get("courier_name", ""),
                    "label_url": shipment.get("label", "") or "",
                    "tracking_url": f"https://track.nimbuspost.com/track/{awb}",
                }

            logger.error(f"NimbusPost shipment creation failed: {data}")
            error = data.get("message", "Shipment creation failed")

        except Exception as e:
            logger.error(f"NimbusPost shipment creation error for {reference}: {str(e)}", exc_info=True)
            error = str(e)

        if self.mock_fallback:
            logger.warning(f"Using mock shipment for {reference}")
            return True, self.mock_shipment(reference)
        return False, error

    def track_shipment(self, awb_number):
        """Returns (True, {"delivered", "status", "raw"}) or (False, error_message)"""
        try:
            response = requests.get(
                f"{self.base_url}/shipments/track/{awb_number}", headers=self.get_headers(), timeout=15
            )
            response.raise_for_status()
            data = response.json()

            if not data.get("status"):
                return False, data.get("message", "Tracking failed")

            tracking = data.get("data") or {}
            status = tracking.get("status") or tracking.get("current_status") or ""
            logger.info(f"AWB {awb_number}: {status}")
            return True, {
                "delivered": self.is_delivered(tracking),
                "status": status,
                "raw": tracking,
            }

        except Exception as e:
            logger.error(f"NimbusPost tracking error for {awb_number}: {str(e)}")
            return False, str(e)

    @staticmethod
    def is_delivered(tracking):
        if str(tracking.get("status", "")).lower() == "delivered":
            return True
        if tracking.get("current_status") == "Delivered":
            return True
        history = tracking.get("history") or tracking.get("tracking") or []
        return any(event.get("status") == "Delivered" for event in history)

    @staticmethod
    def mock_shipment(reference):
        awb = f"MOCK{int(time.time() * 1000)}"
        return {
            "tracking_ref": awb,
            "shipment_id": f"mock-{reference}",
            "courier_name": "Delhivery",
            "label_url": f"https://labels.nimbuspost.com/{awb}.pdf",
            "tracking_url": f"https://track.nimbuspost.com/track/{awb}",
        }

    def cancel_shipment(self, awb_number):
        """Returns (success, message)"""
        try:
            response = requests.post(
                f"{self.base_url}/shipments/cancel", json={"awb": awb_number}, headers=self.get_headers(), timeout=15
            )
            response.raise_for_status()
            data = response.json()
            if data.get("status"):
                logger.info(f"NimbusPost shipment {awb_number} cancelled")
                return True, data.get("message", "Cancelled")
            return False, data.get("message", "Cancellation failed")
        except Exception as e:
            logger.error(f"NimbusPost cancel error for {awb_number}: {str(e)}")
            return False, str(e)
