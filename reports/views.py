from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status
from drf_spectacular.utils import extend_schema, OpenApiParameter
from drf_spectacular.types import OpenApiTypes

from .serializers import (
    DailyZReportQuerySerializer, MonthlyVatReportQuerySerializer,
    DailyZReportSerializer, MonthlyVatReportSerializer
)
from .services import VatReportService


class DailyZReportView(APIView):
    @extend_schema(
        summary="Daily Z report",
        description="End-of-day sales and VAT summary for the authenticated restaurant, from stored order values",
        parameters=[
            OpenApiParameter(
                name='date',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=True,
                description='Report day (YYYY-MM-DD)'
            )
        ],
        responses={
            200: DailyZReportSerializer,
            400: OpenApiTypes.OBJECT
        }
    )
    def get(self, request):
        serializer = DailyZReportQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        report = VatReportService().daily_z_report(request.auth.id, serializer.validated_data['date'])
        return Response(DailyZReportSerializer(report).data)


class MonthlyVatReportView(APIView):
    @extend_schema(
        summary="Monthly VAT report",
        description="VAT collected over a date range, broken down by day and by the VAT rate stored on each order",
        parameters=[
            OpenApiParameter(
                name='from',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=True,
                description='First day (YYYY-MM-DD)'
            ),
            OpenApiParameter(
                name='to',
                type=OpenApiTypes.DATE,
                location=OpenApiParameter.QUERY,
                required=True,
                description='Last day, inclusive (YYYY-MM-DD)'
            )
        ],
        responses={
            200: MonthlyVatReportSerializer,
            400: OpenApiTypes.OBJECT
        }
    )
    def get(self, request):
        serializer = MonthlyVatReportQuerySerializer(data=request.query_params)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        report = VatReportService().monthly_vat_report(
            request.auth.id,
            serializer.validated_data['from'],
            serializer.validated_data['to'],
        )
        return Response(MonthlyVatReportSerializer(report).data)
