from datetime import timedelta
from unittest import mock

from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import timezone

from orders import relay
from orders.models import Order, ShippingLeg

from .helpers import FakeCourier, User, make_paid_order, make_product, make_seller

ORIGIN = ShippingLeg.ORIGIN_TO_HUB
HUB = ShippingLeg.HUB_TO_DESTINATION

WAREHOUSE = {
    "name": "Hub Desk",
    "company": "Test Hub",
    "address": "1 Hub Road",
    "city": "Indore",
    "state": "Madhya Pradesh",
    "pin_code": "452001",
    "phone": "9000000000",
    "email": "hub@example.com",
}


def leg(kind, status):
    return ShippingLeg(leg_kind=kind, status=status)


class FulfillmentStatusTests(SimpleTestCase):
    def test_derivation(self):
        cases = [
            ([], "pending"),
            ([leg(ORIGIN, "pending")], "pending"),
            ([leg(ORIGIN, "in_transit")], "pending"),
            ([leg(ORIGIN, "completed")], "processing"),
            ([leg(ORIGIN, "completed"), leg(HUB, "pending")], "processing"),
            ([leg(ORIGIN, "completed"), leg(HUB, "in_transit")], "shipped"),
            ([leg(ORIGIN, "completed"), leg(HUB, "completed")], "delivered"),
        ]
        for legs, expected in cases:
            with self.subTest(legs=[(shipping_leg.leg_kind, shipping_leg.status) for shipping_leg in legs]):
                self.assertEqual(relay.derive_fulfillment_status(legs), expected)


class RelayTestCase(TestCase):
    def setUp(self):
        self.seller = make_seller()
        self.buyer = User.objects.create_user("buyer", "buyer@example.com", "pass")
        self.product = make_product(self.seller, price=1000, weight=700)
        self.order = make_paid_order(self.buyer, self.seller, self.product, quantity=2)
        self.notifier = mock.Mock()
        self.notifier.notify.return_value = (True, "ok")

    def add_leg(self, kind=ORIGIN, status="in_transit", tracking_ref="AWB-IN", order=None):
        return ShippingLeg.objects.create(
            order=order or self.order, leg_kind=kind, status=status, tracking_ref=tracking_ref
        )

    def reload(self):
        self.order.refresh_from_db()
        return self.order


class LegTransitionTests(RelayTestCase):
    def test_allowed_paths(self):
        paths = [
            ["in_transit", "completed"],
            ["completed"],
            ["cancelled"],
            ["in_transit", "cancelled"],
        ]
        for path in paths:
            with self.subTest(path=path):
                shipping_leg = ShippingLeg(order=self.order, leg_kind=ORIGIN, status="pending")
                for status in path:
                    relay.apply_leg_transition(shipping_leg, status)
                self.assertEqual(shipping_leg.status, path[-1])
                shipping_leg.delete()

    def test_rejected_transitions(self):
        rejected = [
            ("pending", "pending"),
            ("in_transit", "pending"),
            ("in_transit", "in_transit"),
            ("completed", "in_transit"),
            ("completed", "cancelled"),
            ("cancelled", "pending"),
            ("cancelled", "completed"),
        ]
        for current, new in rejected:
            with self.subTest(current=current, new=new):
                with self.assertRaises(relay.InvalidLegTransition):
                    relay.apply_leg_transition(ShippingLeg(leg_kind=ORIGIN, status=current), new)

    def test_unknown_status(self):
        with self.assertRaises(ValidationError):
            relay.apply_leg_transition(ShippingLeg(leg_kind=ORIGIN, status="pending"), "lost")

    def test_timestamps(self):
        shipping_leg = self.add_leg(status="pending")
        shipping_leg.started_at = None
        relay.apply_leg_transition(shipping_leg, "in_transit", note="Picked up")
        self.assertIsNotNone(shipping_leg.started_at)
        self.assertIsNone(shipping_leg.completed_at)

        relay.apply_leg_transition(shipping_leg, "completed", note="At warehouse")
        self.assertIsNotNone(shipping_leg.completed_at)
        self.assertEqual(shipping_leg.notes, "Picked up\nAt warehouse")

    def test_record_transition_updates_order(self):
        self.add_leg(status="pending")

        relay.record_leg_transition(self.order, ORIGIN, "in_transit", notifier=self.notifier)
        self.assertEqual(self.reload().fulfillment_status, "pending")

        relay.record_leg_transition(self.order, ORIGIN, "completed", notifier=self.notifier)
        self.assertEqual(self.reload().fulfillment_status, "processing")

        # Completing the first leg never books the second one
        self.assertIsNone(self.order.get_leg(HUB))
        self.assertEqual(self.notifier.notify.call_count, 2)
        metadata = self.notifier.notify.call_args[0][2]
        self.assertEqual(metadata["event"], "leg_transition")
        self.assertEqual(metadata["status"], "completed")

    def test_record_transition_on_hub_leg(self):
        self.add_leg(status="completed")
        self.add_leg(kind=HUB, status="pending", tracking_ref="AWB-OUT")

        relay.record_leg_transition(self.order, HUB, "in_transit")
        self.assertEqual(self.reload().fulfillment_status, "shipped")

        relay.record_leg_transition(self.order, HUB, "completed")
        self.assertEqual(self.reload().fulfillment_status, "delivered")

    def test_record_transition_missing_leg(self):
        with self.assertRaises(ShippingLeg.DoesNotExist):
            relay.record_leg_transition(self.order, ORIGIN, "completed")

    def test_invalid_transition_leaves_order_alone(self):
        self.add_leg(status="completed")
        Order.objects.filter(pk=self.order.pk).update(fulfillment_status="processing")

        with self.assertRaises(relay.InvalidLegTransition):
            relay.record_leg_transition(self.order, ORIGIN, "in_transit")
        self.assertEqual(self.reload().fulfillment_status, "processing")
        self.assertEqual(self.order.get_leg(ORIGIN).status, "completed")

    def test_one_leg_per_kind(self):
        self.add_leg()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                self.add_leg(tracking_ref="AWB-DUP")

    def test_open_hub_leg_requires_completed_origin(self):
        self.add_leg(status="in_transit")
        with self.assertRaises(relay.ShippingLegError):
            relay.open_leg(self.order, HUB)

    def test_open_leg_requires_payment(self):
        order = make_paid_order(self.buyer, self.seller, self.product, payment_status="pending")
        with self.assertRaises(relay.ShippingLegError):
            relay.open_leg(order, ORIGIN)

    def test_open_leg_rejects_duplicate(self):
        self.add_leg()
        with self.assertRaises(relay.ShippingLegError):
            relay.open_leg(self.order, ORIGIN)


@override_settings(WAREHOUSE_ADDRESS=WAREHOUSE)
class StartOriginLegTests(RelayTestCase):
    def test_books_seller_to_warehouse(self):
        courier = FakeCourier()

        shipping_leg = relay.start_origin_leg(self.order, courier, self.notifier)

        self.assertEqual(shipping_leg.leg_kind, ORIGIN)
        self.assertEqual(shipping_leg.status, "pending")
        self.assertEqual(shipping_leg.tracking_ref, "AWB1")
        self.assertIsNotNone(shipping_leg.started_at)

        booking = courier.created[0]
        self.assertEqual(booking["reference"], f"IN-{self.order.id}")
        self.assertEqual(booking["pickup"]["pin_code"], "400050")
        self.assertEqual(booking["destination"], WAREHOUSE)
        self.assertEqual(booking["parcel"]["weight"], 1400)
        self.assertEqual(self.reload().fulfillment_status, "pending")

    def test_idempotent(self):
        courier = FakeCourier()
        first = relay.start_origin_leg(self.order, courier)
        second = relay.start_origin_leg(self.order, courier)
        self.assertEqual(first.pk, second.pk)
        self.assertEqual(len(courier.created), 1)

    def test_booking_failure(self):
        with self.assertLogs("orders.relay", level="ERROR"):
            self.assertIsNone(relay.start_origin_leg(self.order, FakeCourier(fail_create=True)))
        self.assertFalse(self.order.shipping_legs.exists())

    def test_cancelled_order_is_not_booked(self):
        relay.cancel_order(self.order, FakeCourier())
        courier = FakeCourier()

        # self.order is the in-memory copy from before the cancellation
        with self.assertRaises(relay.ShippingLegError):
            relay.start_origin_leg(self.order, courier)

        self.assertEqual(courier.created, [])
        self.assertFalse(self.order.shipping_legs.exists())

    def test_unpaid_order(self):
        order = make_paid_order(self.buyer, self.seller, self.product, payment_status="pending")
        with self.assertRaises(relay.ShippingLegError):
            relay.start_origin_leg(order, FakeCourier())

    def test_seller_without_pickup_address(self):
        other = User.objects.create_user("nopickup", "np@example.com", "pass")
        order = make_paid_order(self.buyer, other, self.product)
        with self.assertRaises(relay.ShippingLegError):
            relay.start_origin_leg(order, FakeCourier())


@override_settings(WAREHOUSE_ADDRESS=WAREHOUSE)
class MonitorAndForwardTests(RelayTestCase):
    def test_forwards_delivered_order(self):
        self.add_leg(status="completed")
        courier = FakeCourier(delivered={"AWB-IN"})

        result = relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(result, {"checked": 1, "forwarded": 1, "failed": 0})
        hub = self.order.get_leg(HUB)
        self.assertEqual(hub.status, "pending")
        self.assertEqual(hub.tracking_ref, "AWB1")
        self.assertEqual(self.reload().fulfillment_status, "processing")
        self.assertTrue(self.order.hub_leg_claimed)

        booking = courier.created[0]
        self.assertEqual(booking["reference"], f"OUT-{self.order.id}")
        self.assertEqual(booking["pickup"], WAREHOUSE)
        self.assertEqual(booking["destination"]["pin_code"], "700016")
        self.assertEqual(booking["parcel"]["weight"], 1400)

    def test_marks_origin_completed_when_courier_reports_delivery(self):
        self.add_leg(status="in_transit")

        relay.monitor_and_forward(FakeCourier(delivered={"AWB-IN"}), self.notifier)

        origin = self.order.get_leg(ORIGIN)
        self.assertEqual(origin.status, "completed")
        self.assertIsNotNone(origin.completed_at)
        self.assertEqual(origin.tracking_data, {"awb": "AWB-IN"})
        self.assertEqual(self.order.get_leg(HUB).status, "pending")
        self.assertEqual(self.reload().fulfillment_status, "processing")

    def test_not_yet_delivered(self):
        self.add_leg(status="in_transit")
        courier = FakeCourier()

        result = relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(result, {"checked": 1, "forwarded": 0, "failed": 0})
        self.assertEqual(courier.created, [])
        self.assertEqual(self.order.get_leg(ORIGIN).status, "in_transit")

    def test_tracking_failure_skips_order(self):
        self.add_leg(status="in_transit")
        with self.assertLogs("orders.relay", level="WARNING"):
            result = relay.monitor_and_forward(FakeCourier(fail_track=True), self.notifier)
        self.assertEqual(result["forwarded"], 0)
        self.assertIsNone(self.order.get_leg(HUB))

    def test_booking_failure_leaves_state_for_next_cycle(self):
        self.add_leg(status="in_transit")
        Order.objects.filter(pk=self.order.pk).update(fulfillment_status="pending")

        with self.assertLogs("orders.relay", level="ERROR"):
            result = relay.monitor_and_forward(FakeCourier(delivered={"AWB-IN"}, fail_create=True), self.notifier)

        self.assertEqual(result, {"checked": 1, "forwarded": 0, "failed": 0})
        origin = self.order.get_leg(ORIGIN)
        self.assertEqual(origin.status, "in_transit")
        self.assertIsNone(origin.completed_at)
        self.assertIsNone(self.order.get_leg(HUB))
        self.assertEqual(self.reload().fulfillment_status, "pending")
        self.assertFalse(self.order.hub_leg_claimed)

        result = relay.monitor_and_forward(FakeCourier(delivered={"AWB-IN"}), self.notifier)
        self.assertEqual(result["forwarded"], 1)
        self.assertEqual(self.order.get_leg(HUB).status, "pending")

    def test_repeated_runs_create_one_hub_leg(self):
        self.add_leg(status="completed")
        courier = FakeCourier(delivered={"AWB-IN"})

        relay.monitor_and_forward(courier, self.notifier)
        second = relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(second, {"checked": 0, "forwarded": 0, "failed": 0})
        self.assertEqual(self.order.shipping_legs.filter(leg_kind=HUB).count(), 1)
        self.assertEqual(len(courier.created), 1)

    def test_claimed_order_is_not_booked_twice(self):
        self.add_leg(status="completed")
        # Another monitor run holds the claim
        Order.objects.filter(pk=self.order.pk).update(hub_leg_claimed=True, hub_leg_claimed_at=timezone.now())
        courier = FakeCourier(delivered={"AWB-IN"})

        result = relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(result["forwarded"], 0)
        self.assertEqual(courier.created, [])

    @override_settings(RELAY_CLAIM_LEASE_SECONDS=120)
    def test_stale_claim_is_taken_over(self):
        self.add_leg(status="in_transit")
        # A run that died mid-booking left its claim behind
        abandoned_at = timezone.now() - timedelta(minutes=10)
        Order.objects.filter(pk=self.order.pk).update(hub_leg_claimed=True, hub_leg_claimed_at=abandoned_at)
        courier = FakeCourier(delivered={"AWB-IN"})

        with self.assertLogs("orders.relay", level="WARNING"):
            result = relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(result, {"checked": 1, "forwarded": 1, "failed": 0})
        self.assertEqual(self.order.get_leg(HUB).status, "pending")
        self.assertGreater(self.reload().hub_leg_claimed_at, abandoned_at)

    def test_claim_without_timestamp_is_taken_over(self):
        self.add_leg(status="in_transit")
        Order.objects.filter(pk=self.order.pk).update(hub_leg_claimed=True, hub_leg_claimed_at=None)
        courier = FakeCourier(delivered={"AWB-IN"})

        with self.assertLogs("orders.relay", level="WARNING"):
            for _ in range(3):
                relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(self.order.shipping_legs.filter(leg_kind=HUB).count(), 1)
        self.assertEqual(len(courier.created), 1)

    def test_failed_booking_clears_claim_timestamp(self):
        self.add_leg(status="in_transit")
        with self.assertLogs("orders.relay", level="ERROR"):
            relay.monitor_and_forward(FakeCourier(delivered={"AWB-IN"}, fail_create=True), self.notifier)
        order = self.reload()
        self.assertFalse(order.hub_leg_claimed)
        self.assertIsNone(order.hub_leg_claimed_at)

    def test_limited_to_given_orders(self):
        self.add_leg(status="in_transit")
        other = make_paid_order(self.buyer, self.seller, self.product)
        self.add_leg(status="in_transit", tracking_ref="AWB-OTHER", order=other)
        courier = FakeCourier(delivered={"AWB-IN", "AWB-OTHER"})

        result = relay.monitor_and_forward(courier, self.notifier, orders=Order.objects.filter(pk=other.pk))

        self.assertEqual(result, {"checked": 1, "forwarded": 1, "failed": 0})
        self.assertIsNotNone(other.get_leg(HUB))
        self.assertIsNone(self.order.get_leg(HUB))

    def test_one_failing_order_does_not_block_others(self):
        class BrokenTracking(FakeCourier):
            def track_shipment(self, awb):
                if awb == "AWB-BROKEN":
                    raise RuntimeError("unexpected payload")
                return super().track_shipment(awb)

        broken = make_paid_order(self.buyer, self.seller, self.product)
        self.add_leg(status="in_transit", tracking_ref="AWB-BROKEN", order=broken)
        self.add_leg(status="in_transit")

        with self.assertLogs("orders.relay", level="ERROR"):
            result = relay.monitor_and_forward(BrokenTracking(delivered={"AWB-IN"}), self.notifier)

        self.assertEqual(result, {"checked": 2, "forwarded": 1, "failed": 1})
        self.assertIsNotNone(self.order.get_leg(HUB))
        self.assertIsNone(broken.get_leg(HUB))

    def test_skips_cancelled_and_unshipped_orders(self):
        self.add_leg(status="cancelled")
        no_legs = make_paid_order(self.buyer, self.seller, self.product)
        cancelled = make_paid_order(self.buyer, self.seller, self.product, fulfillment_status="cancelled")
        self.add_leg(status="in_transit", tracking_ref="AWB-C", order=cancelled)
        courier = FakeCourier(delivered={"AWB-IN", "AWB-C"})

        result = relay.monitor_and_forward(courier, self.notifier)

        self.assertEqual(result["checked"], 0)
        self.assertIsNone(no_legs.get_leg(HUB))
        self.assertEqual(courier.tracked, [])

    def test_notifies_buyer_after_forwarding(self):
        self.add_leg(status="completed")
        relay.monitor_and_forward(FakeCourier(delivered={"AWB-IN"}), self.notifier)

        recipient, _, metadata = self.notifier.notify.call_args[0]
        self.assertEqual(recipient, "riya@example.com")
        self.assertEqual(metadata["leg_kind"], HUB)

    def test_notification_failure_does_not_undo_forwarding(self):
        self.add_leg(status="completed")
        self.notifier.notify.return_value = (False, "SMTP down")

        result = relay.monitor_and_forward(FakeCourier(delivered={"AWB-IN"}), self.notifier)

        self.assertEqual(result["forwarded"], 1)


class CancelOrderTests(RelayTestCase):
    def test_cancel_with_open_leg(self):
        self.add_leg(status="in_transit")
        courier = FakeCourier()

        order = relay.cancel_order(self.order, courier, self.notifier)

        self.assertEqual(order.fulfillment_status, "cancelled")
        self.assertIsNotNone(order.cancelled_at)
        self.assertEqual(order.get_leg(ORIGIN).status, "cancelled")
        self.assertEqual(courier.cancelled, ["AWB-IN"])
        self.assertEqual(self.notifier.notify.call_args[0][2]["event"], "order_cancelled")

    def test_cancel_unpaid_order(self):
        order = make_paid_order(self.buyer, self.seller, self.product, payment_status="pending")
        order = relay.cancel_order(order, FakeCourier())
        self.assertEqual(order.fulfillment_status, "cancelled")

    def test_cannot_cancel_after_a_leg_completed(self):
        self.add_leg(status="completed")
        with self.assertRaises(ValidationError):
            relay.cancel_order(self.order, FakeCourier())
        self.assertNotEqual(self.reload().fulfillment_status, "cancelled")

    def test_cannot_cancel_twice(self):
        relay.cancel_order(self.order, FakeCourier())
        with self.assertRaises(ValidationError):
            relay.cancel_order(self.order, FakeCourier())

    def test_cancelled_order_takes_no_new_legs(self):
        relay.cancel_order(self.order, FakeCourier())
        with self.assertRaises(relay.ShippingLegError):
            relay.open_leg(self.reload(), ORIGIN)


class ParcelTests(RelayTestCase):
    def test_parcel_sums_weight_and_takes_largest_dimensions(self):
        bulky = make_product(self.seller, price=500, name="Suitcase", weight=3000, length=60, breadth=40, height=25)
        order = make_paid_order(self.buyer, self.seller, self.product, quantity=2)
        order.items.create(product=bulky, title="Suitcase", quantity=1, unit_price=500, line_total=500)

        parcel = relay.build_parcel(order)

        self.assertEqual(parcel["weight"], 4400)
        self.assertEqual((parcel["length"], parcel["breadth"], parcel["height"]), (60, 40, 25))
        self.assertEqual(parcel["quantity"], 3)
        self.assertEqual(parcel["name"], "Denim Jacket and 1 more")
