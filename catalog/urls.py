from django.urls import path
from . import views

urlpatterns = [
    path("products/", views.create_listing, name="create_listing"),
    path("products/<int:product_id>/", views.product_detail, name="product_detail"),
]
