from decimal import Decimal

from django.contrib.auth import get_user_model
from django.utils import timezone

from catalog.models import Product, SellerProfile
from orders.models import Order, OrderItem

User = get_user_model()

ADDRESS = {
    "full_name": "Riya Sharma",
    "phone": "9876543210",
    "email": "riya@example.com",
    "address": "44 Park Street",
    "city": "Kolkata",
    "state": "West Bengal",
    "pin_code": "700016",
}


class FakeCourier:
    """In-memory stand-in for NimbusPostAPI"""

    def __init__(self, delivered=None, fail_create=False, fail_track=False):
        self.delivered = set(delivered or ())
        self.fail_create = fail_create
        self.fail_track = fail_track
        self.created = []
        self.tracked = []
        self.cancelled = []

    def create_shipment(self, reference, pickup, destination, parcel):
        self.created.append({"reference": reference, "pickup": pickup, "destination": destination, "parcel": parcel})
        if self.fail_create:
            return False, "Courier unavailable"
        awb = f"AWB{len(self.created)}"
        return True, {
            "tracking_ref": awb,
            "shipment_id": f"SHP{len(self.created)}",
            "courier_name": "Delhivery",
            "label_url": f"https://labels.example.com/{awb}.pdf",
            "tracking_url": f"https://track.example.com/{awb}",
        }

    def track_shipment(self, awb):
        self.tracked.append(awb)
        if self.fail_track:
            return False, "Read timed out"
        delivered = awb in self.delivered
        return True, {"delivered": delivered, "status": "Delivered" if delivered else "In Transit", "raw": {"awb": awb}}

    def cancel_shipment(self, awb):
        self.cancelled.append(awb)
        return True, "Cancelled"


def make_seller(username="seller"):
    user = User.objects.create_user(username, f"{username}@example.com", "pass")
    SellerProfile.objects.create(
        user=user,
        display_name="Vintage Vault",
        phone_number="9123456780",
        email=f"{username}@example.com",
        address="7 Linking Road",
        city="Mumbai",
        state="Maharashtra",
        pin_code="400050",
        is_verified=True,
    )
    return user


def make_product(seller, price=1000, stock=5, **fields):
    product = Product.objects.create(
        seller=seller,
        name=fields.pop("name", "Denim Jacket"),
        brand="Levi's",
        category="men",
        condition="like_new",
        asking_price=price,
        stock=stock,
        **fields,
    )
    Product.objects.filter(pk=product.pk).update(final_price=price)
    product.refresh_from_db()
    return product


def make_paid_order(buyer, seller, product, quantity=1, **fields):
    subtotal = product.final_price * quantity
    order = Order.objects.create(
        buyer=buyer,
        seller=seller,
        email=ADDRESS["email"],
        phone_number=ADDRESS["phone"],
        full_name=ADDRESS["full_name"],
        address=ADDRESS["address"],
        city=ADDRESS["city"],
        state=ADDRESS["state"],
        pin_code=ADDRESS["pin_code"],
        subtotal=subtotal,
        total_amount=subtotal + Decimal("1"),
        payment_status=fields.pop("payment_status", "paid"),
        paid_at=timezone.now(),
        **fields,
    )
    OrderItem.objects.create(
        order=order,
        product=product,
        title=product.name,
        quantity=quantity,
        unit_price=product.final_price,
        line_total=subtotal,
    )
    return order
