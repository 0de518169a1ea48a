import json
from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth import get_user_model
from django.core.exceptions import ValidationError
from django.test import Client, TestCase

from . import services
from .models import Product, SellerProfile

User = get_user_model()


def listing_data(**overrides):
    data = {
        "name": "Leather Handbag",
        "brand": "Hidesign",
        "category": "Accessories",
        "condition": "like_new",
        "asking_price": "3000",
        "stock": 2,
    }
    data.update(overrides)
    return data


class ListingFeeTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user("seller", "seller@example.com", "pass")

    def make(self, asking_price):
        return Product.objects.create(
            seller=self.seller, name="Kurta", brand="Fabindia", category="men", condition="good",
            asking_price=asking_price,
        )

    def test_final_price_includes_listing_fee(self):
        cases = [
            ("1000", 30, Decimal("1300")),
            ("2000", 30, Decimal("2600")),
            ("3000", 28, Decimal("3840")),
            ("8000", 25, Decimal("10000")),
            ("15000", 20, Decimal("18000")),
            ("20000", 15, Decimal("23000")),
        ]
        for asking_price, fee, final_price in cases:
            with self.subTest(asking_price=asking_price):
                product = self.make(asking_price)
                self.assertEqual(product.platform_fee, fee)
                self.assertEqual(product.final_price, final_price)

    def test_final_price_rounds_up(self):
        product = self.make("999.99")  # 1299.987
        self.assertEqual(product.final_price, Decimal("1300"))

    def test_price_change_reapplies_fee(self):
        product = self.make("1000")
        product.asking_price = Decimal("6000")
        product.save()
        product.refresh_from_db()
        self.assertEqual(product.platform_fee, 25)
        self.assertEqual(product.final_price, Decimal("7500"))

    def test_unrelated_save_keeps_price(self):
        product = self.make("1000")
        Product.objects.filter(pk=product.pk).update(final_price=1111)
        product.refresh_from_db()
        product.stock = 3
        product.save()
        product.refresh_from_db()
        self.assertEqual(product.final_price, Decimal("1111"))

    def test_listing_expires_after_thirty_days(self):
        product = self.make("1000")
        self.assertAlmostEqual(product.expires_at - product.created_at, timedelta(days=30), delta=timedelta(minutes=1))


class CatalogServiceTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user("seller", "seller@example.com", "pass")

    def test_create_listing(self):
        product = services.create_listing(self.seller, listing_data(weight=800))
        self.assertEqual(product.category, "accessories")
        self.assertEqual(product.status, "active")
        self.assertEqual(product.final_price, Decimal("3840"))
        self.assertEqual(product.weight, 800)
        self.assertEqual(product.length, 20)

    def test_create_listing_validation(self):
        bad = [
            listing_data(name=""),
            listing_data(asking_price="abc"),
            listing_data(asking_price="-5"),
            listing_data(category="furniture"),
            listing_data(condition="broken"),
            listing_data(stock=0),
            listing_data(weight="heavy"),
            listing_data(length="-3"),
            listing_data(height=[10]),
        ]
        for data in bad:
            with self.subTest(data=data):
                with self.assertRaises(ValidationError):
                    services.create_listing(self.seller, data)
        self.assertFalse(Product.objects.exists())

    def test_get_product_only_active(self):
        product = services.create_listing(self.seller, listing_data())
        found = services.get_product(product.id)
        self.assertEqual(found["price"], product.final_price)
        self.assertEqual(found["seller_id"], self.seller.id)
        self.assertEqual(found["dimensions"], {"length": 20, "breadth": 15, "height": 10})

        Product.objects.filter(pk=product.pk).update(status="expired")
        with self.assertRaises(Product.DoesNotExist):
            services.get_product(product.id)


class SellerVerificationTests(TestCase):
    def setUp(self):
        user = User.objects.create_user("seller", "seller@example.com", "pass")
        self.profile = SellerProfile.objects.create(
            user=user, display_name="Asha Closet", phone_number="9876543210",
            address="12 MG Road", city="Pune", state="Maharashtra", pin_code="411001",
        )

    def test_verify_notifies_seller(self):
        notifier = mock.Mock()
        notifier.notify.return_value = (True, "sent")

        services.verify_seller(self.profile, notifier)

        self.profile.refresh_from_db()
        self.assertTrue(self.profile.is_verified)
        self.assertIsNotNone(self.profile.verified_at)
        recipient, _, metadata = notifier.notify.call_args[0]
        self.assertEqual(recipient, "seller@example.com")
        self.assertEqual(metadata["event"], "seller_verified")

    def test_already_verified_is_noop(self):
        notifier = mock.Mock()
        services.verify_seller(self.profile, notifier)
        services.verify_seller(self.profile, notifier)
        self.assertEqual(notifier.notify.call_count, 1)

    def test_pickup_address(self):
        address = self.profile.pickup_address()
        self.assertEqual(address["name"], "Asha Closet")
        self.assertEqual(address["pin_code"], "411001")


class CatalogApiTests(TestCase):
    def setUp(self):
        self.seller = User.objects.create_user("seller", "seller@example.com", "pass")
        self.client = Client()

    def test_create_requires_login(self):
        response = self.client.post("/api/catalog/products/", json.dumps(listing_data()), content_type="application/json")
        self.assertEqual(response.status_code, 401)

    def test_create_and_fetch(self):
        self.client.force_login(self.seller)
        response = self.client.post("/api/catalog/products/", json.dumps(listing_data()), content_type="application/json")
        self.assertEqual(response.status_code, 201)
        product = response.json()["product"]
        self.assertEqual(product["asking_price"], 3000.0)
        self.assertEqual(product["final_price"], 3840.0)

        detail = self.client.get(f"/api/catalog/products/{product['id']}/").json()["product"]
        self.assertEqual(detail["name"], "Leather Handbag")
        self.assertNotIn("asking_price", detail)

    def test_create_invalid(self):
        self.client.force_login(self.seller)
        response = self.client.post(
            "/api/catalog/products/", json.dumps(listing_data(category="boats")), content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)

    def test_create_with_non_numeric_weight(self):
        self.client.force_login(self.seller)
        response = self.client.post(
            "/api/catalog/products/", json.dumps(listing_data(weight="heavy")), content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Invalid weight")
        self.assertFalse(Product.objects.exists())

    def test_unknown_product(self):
        self.assertEqual(self.client.get("/api/catalog/products/999/").status_code, 404)
