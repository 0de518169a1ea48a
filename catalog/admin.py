from django.contrib import admin, messages

from marketplace.notifications import get_notification_channel

from .models import Product, SellerProfile
from .services import verify_seller


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ("id", "name", "brand", "seller", "asking_price", "platform_fee", "final_price", "stock", "status")
    list_filter = ("status", "category", "condition")
    search_fields = ("name", "brand", "seller__username")
    readonly_fields = ("platform_fee", "final_price", "created_at", "updated_at")


@admin.register(SellerProfile)
class SellerProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "display_name", "phone_number", "city", "is_verified", "verified_at")
    list_filter = ("is_verified",)
    search_fields = ("display_name", "user__username", "phone_number")
    readonly_fields = ("verified_at", "created_at")
    actions = ["mark_verified"]

    @admin.action(description="Verify selected sellers")
    def mark_verified(self, request, queryset):
        notifier = get_notification_channel()
        count = 0
        for profile in queryset.select_related("user"):
            if not profile.is_verified:
                verify_seller(profile, notifier)
                count += 1
        self.message_user(request, f"{count} seller(s) verified", messages.SUCCESS)
