from django.urls import path
from . import views

urlpatterns = [
    path('pos/orders', views.PosOrderCreateView.as_view(), name='pos_create_order'),
    path('customer/restaurant/<slug:slug>/order', views.CustomerOrderCreateView.as_view(), name='customer_create_order'),
    path('customer/order/<str:order_number>/invoice', views.OrderInvoiceView.as_view(), name='order_invoice'),
]
