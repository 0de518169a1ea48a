from django.contrib import admin
from django.urls import path, include

urlpatterns = [
    # ============ CATALOG (listings, sellers) ============
    path("api/catalog/", include("catalog.urls")),

    # ============ CART & CHECKOUT TOTALS ============
    path("api/cart/", include("cart.urls")),

    # ============ ORDERS, PAYMENT, SHIPPING RELAY ============
    path("api/", include("orders.urls")),

    # ============ ADMIN ============
    path("admin/", admin.site.urls),
]
