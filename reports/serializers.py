from rest_framework import serializers


def money_field(help_text=None):
    return serializers.DecimalField(max_digits=14, decimal_places=2, help_text=help_text)


class DailyZReportQuerySerializer(serializers.Serializer):
    date = serializers.DateField(input_formats=['%Y-%m-%d'], help_text="Report day (YYYY-MM-DD)")


class MonthlyVatReportQuerySerializer(serializers.Serializer):
    to = serializers.DateField(input_formats=['%Y-%m-%d'], help_text="Last day, inclusive (YYYY-MM-DD)")

    def get_fields(self):
        # 'from' is a keyword, so it can't be declared as a class attribute
        fields = super().get_fields()
        fields['from'] = serializers.DateField(input_formats=['%Y-%m-%d'], help_text="First day (YYYY-MM-DD)")
        return fields

    def validate(self, attrs):
        if attrs['to'] < attrs['from']:
            raise serializers.ValidationError({'to': 'to must be a date after or equal to from.'})
        return attrs


class ZReportSummarySerializer(serializers.Serializer):
    order_count = serializers.IntegerField()
    total_subtotal = money_field("Sum of order subtotals before discount")
    total_discount = money_field()
    total_net_amount = money_field("Sum of taxable amounts")
    total_vat_collected = money_field("Sum of stored VAT amounts")
    total_sales = money_field("Sum of grand totals")


class PaymentMethodBreakdownSerializer(serializers.Serializer):
    payment_method = serializers.CharField()
    count = serializers.IntegerField()
    total = money_field()
    vat_amount = money_field()


class OrderTypeBreakdownSerializer(serializers.Serializer):
    type = serializers.CharField()
    count = serializers.IntegerField()
    total = money_field()


class DailyZReportSerializer(serializers.Serializer):
    date = serializers.DateField()
    tenant_id = serializers.IntegerField()
    summary = ZReportSummarySerializer()
    by_payment_method = PaymentMethodBreakdownSerializer(many=True)
    by_order_type = OrderTypeBreakdownSerializer(many=True)


class ReportPeriodSerializer(serializers.Serializer):
    to = serializers.DateField()

    def get_fields(self):
        fields = super().get_fields()
        fields['from'] = serializers.DateField()
        return fields


class VatReportSummarySerializer(serializers.Serializer):
    total_invoices = serializers.IntegerField()
    total_subtotal = money_field()
    total_discount = money_field()
    total_taxable_sales = money_field("Sum of net amounts VAT was charged on")
    total_vat_collected = money_field()
    total_sales = money_field()


class DailyBreakdownSerializer(serializers.Serializer):
    date = serializers.DateField()
    invoice_count = serializers.IntegerField()
    taxable_sales = money_field()
    vat_collected = money_field()
    total_sales = money_field()
    discounts = money_field()


class VatRateBreakdownSerializer(serializers.Serializer):
    vat_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    invoice_count = serializers.IntegerField()
    taxable_sales = money_field()
    vat_collected = money_field()


class MonthlyVatReportSerializer(serializers.Serializer):
    period = ReportPeriodSerializer()
    tenant_id = serializers.IntegerField()
    summary = VatReportSummarySerializer()
    daily_breakdown = DailyBreakdownSerializer(many=True)
    by_vat_rate = VatRateBreakdownSerializer(many=True)
