# catalog/models.py
import math
from datetime import timedelta
from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from cart.pricing import listing_fee_percentage


def default_expiry():
    return timezone.now() + timedelta(days=30)


class SellerProfile(models.Model):
    user = models.OneToOneField(settings.AUTH_USER_MODEL, related_name="seller_profile", on_delete=models.CASCADE)
    display_name = models.CharField(max_length=200)
    phone_number = models.CharField(max_length=20)
    email = models.EmailField(blank=True)

    # Pickup address (origin of the seller -> warehouse leg)
    address = models.TextField()
    city = models.CharField(max_length=100)
    state = models.CharField(max_length=100)
    pin_code = models.CharField(max_length=10)

    is_verified = models.BooleanField(default=False, db_index=True)
    verified_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def pickup_address(self):
        return {
            "name": self.display_name,
            "phone": self.phone_number,
            "email": self.email,
            "address": self.address,
            "city": self.city,
            "state": self.state,
            "pin_code": self.pin_code,
        }

    def __str__(self):
        return f"{self.display_name} ({'verified' if self.is_verified else 'unverified'})"


class Product(models.Model):
    CATEGORY_CHOICES = [
        ("men", "Men"),
        ("women", "Women"),
        ("kids", "Kids"),
        ("luxury", "Luxury"),
        ("electronics", "Electronics"),
        ("accessories", "Accessories"),
        ("other", "Other"),
    ]
    CONDITION_CHOICES = [
        ("new_with_tags", "New With Tags"),
        ("like_new", "Like New"),
        ("good", "Good"),
        ("fair", "Fair"),
    ]
    STATUS_CHOICES = [
        ("active", "Active"),
        ("sold", "Sold"),
        ("pending", "Pending"),
        ("draft", "Draft"),
        ("expired", "Expired"),
        ("rejected", "Rejected"),
    ]

    seller = models.ForeignKey(settings.AUTH_USER_MODEL, related_name="products", on_delete=models.CASCADE)
    name = models.CharField(max_length=200)
    brand = models.CharField(max_length=100)
    category = models.CharField(max_length=20, choices=CATEGORY_CHOICES)
    condition = models.CharField(max_length=20, choices=CONDITION_CHOICES)
    description = models.TextField(blank=True)

    # Pricing
    asking_price = models.DecimalField(max_digits=12, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=5, decimal_places=2, blank=True, null=True)
    final_price = models.DecimalField(max_digits=12, decimal_places=2, blank=True, null=True)

    stock = models.PositiveIntegerField(default=1)

    # Parcel (grams / cm)
    weight = models.PositiveIntegerField(default=500)
    length = models.PositiveIntegerField(default=20)
    breadth = models.PositiveIntegerField(default=15)
    height = models.PositiveIntegerField(default=10)

    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default="active", db_index=True)
    expires_at = models.DateTimeField(default=default_expiry)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=['status', 'created_at'], name='catalog_product_status_idx'),
        ]

    def save(self, *args, **kwargs):
        if self.platform_fee is None or self.final_price is None or self._asking_price_changed():
            self.apply_listing_fee()
        super().save(*args, **kwargs)

    def _asking_price_changed(self):
        if not self.pk:
            return True
        stored = type(self).objects.filter(pk=self.pk).values_list("asking_price", flat=True).first()
        return stored is None or Decimal(stored) != Decimal(self.asking_price)

    def apply_listing_fee(self):
        """final price = asking price + listing platform fee, rounded up"""
        price = Decimal(str(self.asking_price))
        percentage = listing_fee_percentage(price)
        self.platform_fee = Decimal(percentage)
        self.final_price = Decimal(math.ceil(price + price * percentage / 100))

    @property
    def dimensions(self):
        return {"length": self.length, "breadth": self.breadth, "height": self.height}

    def __str__(self):
        return f"{self.name} ({self.get_status_display()})"
