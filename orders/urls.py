from django.urls import path

from . import views

urlpatterns = [
    # Checkout
    path('checkout/create-order/', views.create_order, name='create_order'),
    path('checkout/verify-payment/', views.verify_payment_view, name='verify_payment'),

    # Buyer orders
    path('orders/', views.my_orders, name='my_orders'),
    path('orders/<int:order_id>/', views.order_detail, name='order_detail'),
    path('orders/<int:order_id>/tracking/', views.order_tracking, name='order_tracking'),
    path('orders/<int:order_id>/cancel/', views.cancel_order, name='cancel_order'),

    # Warehouse
    path('warehouse/forward-all/', views.forward_all, name='warehouse_forward_all'),
    path('warehouse/forward/<int:order_id>/', views.forward_single_order, name='warehouse_forward_order'),
    path('warehouse/dashboard/', views.warehouse_dashboard, name='warehouse_dashboard'),
    path('orders/<int:order_id>/legs/<str:leg_kind>/status/', views.update_leg_status, name='update_leg_status'),
    path('orders/<int:order_id>/start-shipment/', views.start_shipment, name='start_shipment'),
]
