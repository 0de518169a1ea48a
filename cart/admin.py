from django.contrib import admin
from .models import Cart, CartItem


class CartItemInline(admin.TabularInline):
    model = CartItem
    extra = 0
    fields = ("product", "quantity", "unit_price", "protection_selected", "protection_price", "line_total")
    readonly_fields = fields
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Cart)
class CartAdmin(admin.ModelAdmin):
    # Aggregates are derived; editing them here would break the cart invariant
    list_display = ("id", "owner", "total_item_count", "subtotal", "protection_plan_total", "grand_total", "updated_at")
    search_fields = ("owner__username", "owner__email")
    readonly_fields = ("owner", "subtotal", "protection_plan_total", "total_item_count", "grand_total", "created_at", "updated_at")
    inlines = [CartItemInline]

    def get_queryset(self, request):
        return super().get_queryset(request).select_related("owner")
