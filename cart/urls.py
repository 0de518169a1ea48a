from django.urls import path
from . import views

urlpatterns = [
    path("", views.get_cart, name="get_cart"),
    path("add/", views.add_to_cart, name="add_to_cart"),
    path("items/<int:item_id>/update/", views.update_cart_item, name="update_cart_item"),
    path("items/<int:item_id>/remove/", views.remove_from_cart, name="remove_from_cart"),
    path("items/<int:item_id>/protection/", views.toggle_protection, name="toggle_protection"),
    path("clear/", views.clear_cart, name="clear_cart"),
    path("checkout-totals/", views.checkout_totals, name="checkout_totals"),
    path("breakdown/<int:owner_id>/", views.cart_breakdown, name="cart_breakdown"),
]
