# cart/models.py
from django.conf import settings
from django.db import models

from . import pricing


class Cart(models.Model):
    owner = models.OneToOneField(settings.AUTH_USER_MODEL, related_name="cart", on_delete=models.CASCADE)

    # Derived from items; only recalculate() writes these
    subtotal = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    protection_plan_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    total_item_count = models.PositiveIntegerField(default=0)
    grand_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    def recalculate(self):
        """
        Recompute line totals and aggregates from the current items and
        persist them. Callers run this inside the transaction that changed
        the items so readers never see stale aggregates.
        """
        items = list(self.items.all())
        totals = pricing.recompute(items)

        for item, line_total in zip(items, totals["line_totals"]):
            if item.line_total != line_total:
                item.line_total = line_total
                item.save(update_fields=["line_total"])

        self.subtotal = totals["subtotal"]
        self.protection_plan_total = totals["protection_plan_total"]
        self.total_item_count = totals["total_item_count"]
        self.grand_total = totals["grand_total"]
        self.save(update_fields=["subtotal", "protection_plan_total", "total_item_count", "grand_total", "updated_at"])
        return totals

    def checkout_breakdown(self):
        return pricing.checkout_breakdown(self.subtotal, self.protection_plan_total)

    def to_dict(self):
        return {
            "id": self.id,
            "items": [item.to_dict() for item in self.items.select_related("product")],
            "subtotal": float(self.subtotal),
            "protection_plan_total": float(self.protection_plan_total),
            "total_item_count": self.total_item_count,
            "grand_total": float(self.grand_total),
        }

    def __str__(self):
        return f"Cart of {self.owner} ({self.total_item_count} items)"


class CartItem(models.Model):
    cart = models.ForeignKey(Cart, related_name="items", on_delete=models.CASCADE)
    product = models.ForeignKey("catalog.Product", related_name="cart_items", on_delete=models.CASCADE)
    quantity = models.PositiveIntegerField(default=1)

    # Price snapshot taken when the item was added, not the live product price
    unit_price = models.DecimalField(max_digits=12, decimal_places=2)

    protection_selected = models.BooleanField(default=False)
    protection_price = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    line_total = models.DecimalField(max_digits=12, decimal_places=2, default=0)

    added_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["id"]
        constraints = [
            models.UniqueConstraint(fields=["cart", "product"], name="unique_cart_product"),
        ]

    def to_dict(self):
        return {
            "id": self.id,
            "product_id": self.product_id,
            "name": self.product.name,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "protection_plan": {
                "selected": self.protection_selected,
                "price": float(self.protection_price),
            },
            "line_total": float(self.line_total),
        }

    def __str__(self):
        return f"{self.product_id} x {self.quantity}"
