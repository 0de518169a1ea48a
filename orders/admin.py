from django.contrib import admin, messages

from marketplace.notifications import get_notification_channel

from .models import Order, OrderItem, ShippingLeg
from .nimbuspost_utils import NimbusPostAPI
from .relay import monitor_and_forward


class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    fields = ("title", "product", "unit_price", "quantity", "protection_selected", "protection_price", "line_total")
    readonly_fields = fields
    can_delete = False  # Items are a snapshot of the cart at checkout


class ShippingLegInline(admin.TabularInline):
    model = ShippingLeg
    extra = 0
    fields = ("leg_kind", "status", "tracking_ref", "courier_name", "label_url", "started_at", "completed_at", "notes")
    # Status changes go through the relay so fulfillment_status stays derived
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "full_name",
        "email",
        "phone_number",
        "payment_status",
        "fulfillment_status",
        "invoice_number",
        "total_amount",
        "created_at",
    )
    list_filter = ("payment_status", "fulfillment_status", "created_at")
    search_fields = ("full_name", "email", "phone_number", "id", "gateway_order_id", "invoice_number")
    readonly_fields = (
        "buyer",
        "seller",
        "subtotal",
        "protection_plan_total",
        "platform_fee",
        "platform_fee_percentage",
        "gst",
        "shipping",
        "total_amount",
        "payment_status",
        "gateway_order_id",
        "gateway_payment_id",
        "invoice_number",
        "fulfillment_status",
        "hub_leg_claimed",
        "hub_leg_claimed_at",
        "paid_at",
        "failed_at",
        "cancelled_at",
        "created_at",
        "updated_at",
    )
    inlines = [OrderItemInline, ShippingLegInline]
    actions = ["forward_selected_orders"]

    fieldsets = (
        ("Customer Information", {
            "fields": ("buyer", "seller", "full_name", "email", "phone_number")
        }),
        ("Shipping Address", {
            "fields": ("address", "city", "state", "pin_code", "landmark")
        }),
        ("Payment & Pricing", {
            "fields": (
                "subtotal",
                "protection_plan_total",
                "platform_fee",
                "platform_fee_percentage",
                "gst",
                "shipping",
                "total_amount",
                "payment_status",
                "gateway_order_id",
                "gateway_payment_id",
                "invoice_number",
            )
        }),
        ("Fulfillment", {
            "fields": ("fulfillment_status", "hub_leg_claimed", "hub_leg_claimed_at")
        }),
        ("System Metadata", {
            "fields": ("paid_at", "failed_at", "cancelled_at", "created_at", "updated_at"),
            "classes": ("collapse",)
        }),
    )

    def get_queryset(self, request):
        return super().get_queryset(request).prefetch_related("items", "shipping_legs")

    @admin.action(description="Forward selected orders that reached the warehouse")
    def forward_selected_orders(self, request, queryset):
        result = monitor_and_forward(NimbusPostAPI(), get_notification_channel(), orders=queryset)
        level = messages.WARNING if result["failed"] else messages.SUCCESS
        self.message_user(
            request,
            f"Checked {result['checked']}, forwarded {result['forwarded']}, failed {result['failed']}",
            level,
        )


@admin.register(ShippingLeg)
class ShippingLegAdmin(admin.ModelAdmin):
    list_display = ("id", "order", "leg_kind", "status", "tracking_ref", "courier_name", "started_at", "completed_at")
    list_filter = ("leg_kind", "status", ("created_at", admin.DateFieldListFilter))
    search_fields = ("tracking_ref", "order__id", "shipment_id")
    readonly_fields = ("order", "leg_kind", "status", "tracking_data", "started_at", "completed_at", "created_at", "updated_at")
    list_select_related = ("order",)
