from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from rest_framework.permissions import AllowAny
from django.shortcuts import get_object_or_404
from drf_spectacular.utils import extend_schema, OpenApiParameter, OpenApiExample
from drf_spectacular.types import OpenApiTypes

from tenants.models import Tenant
from .exceptions import BillingError, NotFound
from .models import Order
from .serializers import (
    CreatePosOrderSerializer, CreateCustomerOrderSerializer, OrderSerializer,
    InvoiceSerializer, build_invoice
)
from .services import BillingService


def billing_error_response(exc):
    status_code = status.HTTP_404_NOT_FOUND if isinstance(exc, NotFound) else status.HTTP_422_UNPROCESSABLE_ENTITY
    return Response({'error': str(exc), 'code': exc.code}, status=status_code)


ORDER_REQUEST_EXAMPLE = OpenApiExample(
    'Create Order Example',
    summary='Parcel order for two dishes',
    description='Two biriyani and one kacchi, paid in cash',
    value={
        'type': 'parcel',
        'customer_name': 'Rahim',
        'customer_phone': '01712345678',
        'items': [
            {'menu_item_id': 1, 'qty': 2},
            {'menu_item_id': 2, 'qty': 1}
        ],
        'payment_method': 'cash',
        'payment_status': 'paid'
    }
)


class PosOrderCreateView(APIView):
    @extend_schema(
        summary="Create a POS order",
        description="Create a billed order from a POS terminal. The tenant comes from the X-API-Key header.",
        request=CreatePosOrderSerializer,
        responses={
            201: OrderSerializer,
            400: OpenApiTypes.OBJECT,
            422: OpenApiTypes.OBJECT
        },
        examples=[ORDER_REQUEST_EXAMPLE]
    )
    def post(self, request):
        tenant = request.auth

        serializer = CreatePosOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = BillingService().create_order(tenant, serializer.validated_data, source='pos')
        except BillingError as exc:
            return billing_error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class CustomerOrderCreateView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="Place a customer order",
        description="Public QR-menu ordering for a restaurant identified by its slug",
        request=CreateCustomerOrderSerializer,
        parameters=[
            OpenApiParameter(
                name='slug',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.PATH,
                description='Restaurant slug'
            )
        ],
        responses={
            201: OrderSerializer,
            400: OpenApiTypes.OBJECT,
            404: OpenApiTypes.OBJECT,
            422: OpenApiTypes.OBJECT
        },
        examples=[ORDER_REQUEST_EXAMPLE]
    )
    def post(self, request, slug):
        tenant = get_object_or_404(Tenant, slug=slug, is_active=True)

        serializer = CreateCustomerOrderSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = BillingService().create_order(tenant, serializer.validated_data, source='customer')
        except BillingError as exc:
            return billing_error_response(exc)

        return Response(OrderSerializer(order).data, status=status.HTTP_201_CREATED)


class OrderInvoiceView(APIView):
    authentication_classes = []
    permission_classes = [AllowAny]

    @extend_schema(
        summary="Get order invoice",
        description="VAT invoice for an order, rendered from the values stored when it was billed",
        parameters=[
            OpenApiParameter(
                name='order_number',
                type=OpenApiTypes.STR,
                location=OpenApiParameter.PATH,
                description='Order number (e.g., ORD-1-20260221-0001)'
            )
        ],
        responses={
            200: InvoiceSerializer,
            404: OpenApiTypes.OBJECT
        }
    )
    def get(self, request, order_number):
        order = (
            Order.objects.select_related('tenant')
            .prefetch_related('items__menu_item')
            .filter(order_number=order_number)
            .first()
        )
        if order is None:
            return billing_error_response(NotFound('Order not found'))

        return Response(InvoiceSerializer(build_invoice(order)).data)
