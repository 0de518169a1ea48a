# orders/models.py
from django.conf import settings
from django.db import models


class Order(models.Model):
    PAYMENT_STATUS_CHOICES = [
        ("pending", "Pending"),
        ("paid", "Paid"),
        ("failed", "Failed"),
    ]
    FULFILLMENT_STATUS_CHOICES = [
        ("pending", "Pending"),
        ("processing", "Processing"),
        ("shipped", "Shipped"),
        ("delivered", "Delivered"),
        ("cancelled", "Cancelled"),
    ]

    buyer = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="orders", on_delete=models.PROTECT)
    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL, related_name="sales", on_delete=models.PROTECT, blank=True, null=True
    )

    # Contact & Shipping
    email = models.EmailField(blank=True)
    phone_number = models.CharField(max_length=20)
    full_name = models.CharField(max_length=200)
    address = models.TextField()
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    pin_code = models.CharField(max_length=10)
    landmark = models.CharField(max_length=200, blank=True)

    # Breakdown fixed at checkout
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    protection_plan_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    platform_fee_percentage = models.PositiveSmallIntegerField(default=0)
    gst = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    shipping = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)

    # Payment (gateway ids are written once)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default="pending", db_index=True)
    gateway_order_id = models.CharField(max_length=100, blank=True, null=True, unique=True, db_index=True)
    gateway_payment_id = models.CharField(max_length=100, blank=True, null=True, unique=True)
    invoice_number = models.CharField(max_length=40, blank=True)

    fulfillment_status = models.CharField(
        max_length=20, choices=FULFILLMENT_STATUS_CHOICES, default="pending", db_index=True
    )

    # Idempotency flag: set by the relay monitor before it books the hub -> buyer leg
    hub_leg_claimed = models.BooleanField(default=False, db_index=True)
    # Claims older than RELAY_CLAIM_LEASE_SECONDS can be taken over by a later run
    hub_leg_claimed_at = models.DateTimeField(blank=True, null=True)

    # Timeline
    paid_at = models.DateTimeField(blank=True, null=True)
    failed_at = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=['buyer', 'created_at'], name='orders_buyer_created_idx'),
            models.Index(fields=['payment_status', 'fulfillment_status'], name='orders_status_idx'),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["invoice_number"],
                condition=~models.Q(invoice_number=""),
                name="unique_invoice_number",
            ),
        ]

    @property
    def is_paid(self):
        return self.payment_status == "paid"

    @property
    def can_cancel(self):
        if self.fulfillment_status == "cancelled" or self.payment_status == "failed":
            return False
        return not self.shipping_legs.filter(status="completed").exists()

    def get_leg(self, leg_kind):
        return self.shipping_legs.filter(leg_kind=leg_kind).first()

    def shipping_address(self):
        return {
            "name": self.full_name,
            "phone": self.phone_number,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pin_code": self.pin_code,
        }

    def timeline(self):
        events = [{"event": "Order Placed", "timestamp": self.created_at, "status": "completed"}]
        if self.paid_at:
            events.append({"event": "Payment Received", "timestamp": self.paid_at, "status": "completed"})
        for leg in self.shipping_legs.all():
            label = leg.get_leg_kind_display()
            events.append({
                "event": label,
                "timestamp": leg.started_at or leg.created_at,
                "status": {"completed": "completed", "in_transit": "in_progress"}.get(leg.status, leg.status),
                "details": leg.notes,
            })
            if leg.completed_at:
                events.append({"event": f"{label} Completed", "timestamp": leg.completed_at, "status": "completed"})
        if self.cancelled_at:
            events.append({"event": "Order Cancelled", "timestamp": self.cancelled_at, "status": "cancelled"})
        return sorted(events, key=lambda e: e["timestamp"])

    def __str__(self):
        return f"Order #{self.id} - {self.full_name}"


class OrderItem(models.Model):
    """Frozen copy of a cart line, independent of later cart changes"""

    order = models.ForeignKey(Order, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey(
        "catalog.Product", related_name="order_items", on_delete=models.SET_NULL, blank=True, null=True
    )
    title = models.CharField(max_length=255)
    quantity = models.PositiveIntegerField(default=1)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)
    protection_selected = models.BooleanField(default=False)
    protection_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    line_total = models.DecimalField(max_digits=12, decimal_places=2)

    class Meta:
        ordering = ["id"]

    def __str__(self):
        return f"{self.title} x {self.quantity}"


class ShippingLeg(models.Model):
    ORIGIN_TO_HUB = "origin_to_hub"
    HUB_TO_DESTINATION = "hub_to_destination"
    LEG_KIND_CHOICES = [
        (ORIGIN_TO_HUB, "Seller to Warehouse"),
        (HUB_TO_DESTINATION, "Warehouse to Buyer"),
    ]
    STATUS_CHOICES = [
        ("pending", "Pending"),
        ("in_transit", "In Transit"),
        ("completed", "Completed"),
        ("cancelled", "Cancelled"),
    ]

    order = models.ForeignKey(Order, related_name="shipping_legs", on_delete=models.CASCADE)
    leg_kind = models.CharField(max_length=30, choices=LEG_KIND_CHOICES)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="pending", db_index=True)

    # Courier details
    tracking_ref = models.CharField(max_length=100, blank=True, db_index=True)
    shipment_id = models.CharField(max_length=100, blank=True)
    courier_name = models.CharField(max_length=200, blank=True)
    label_url = models.URLField(blank=True)
    tracking_url = models.URLField(blank=True)
    tracking_data = models.JSONField(default=dict, blank=True)
    notes = models.TextField(blank=True)

    started_at = models.DateTimeField(blank=True, null=True)
    completed_at = models.DateTimeField(blank=True, null=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["order", "leg_kind"], name="unique_leg_kind_per_order"),
        ]

    def to_dict(self):
        return {
            "leg_kind": self.leg_kind,
            "status": self.status,
            "tracking_ref": self.tracking_ref,
            "courier_name": self.courier_name,
            "label_url": self.label_url,
            "tracking_url": self.tracking_url,
            "notes": self.notes,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }

    def __str__(self):
        return f"Order #{self.order_id} {self.leg_kind} ({self.status})"
