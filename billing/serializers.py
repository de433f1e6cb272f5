from rest_framework import serializers
from .models import Order, OrderItem


class OrderItemSerializer(serializers.ModelSerializer):
    menu_item_name = serializers.CharField(source='menu_item.name', read_only=True)

    class Meta:
        model = OrderItem
        fields = ['id', 'menu_item', 'menu_item_name', 'qty', 'price_at_sale',
                 'line_total', 'special_instructions']
        extra_kwargs = {
            'price_at_sale': {'help_text': 'Unit price frozen when the order was placed'},
            'line_total': {'help_text': 'price_at_sale x qty'}
        }


class OrderSerializer(serializers.ModelSerializer):
    items = OrderItemSerializer(many=True, read_only=True)
    table_id = serializers.IntegerField(read_only=True, allow_null=True)

    class Meta:
        model = Order
        fields = ['id', 'order_number', 'invoice_number', 'type', 'status', 'source',
                 'table_id', 'customer_name', 'customer_phone', 'notes',
                 'payment_method', 'payment_status', 'paid_at',
                 'subtotal', 'discount', 'net_amount', 'vat_rate', 'vat_amount',
                 'grand_total', 'created_at', 'items']
        read_only_fields = fields
        extra_kwargs = {
            'subtotal': {'help_text': 'Sum of price_at_sale x qty, before discount'},
            'net_amount': {'help_text': 'Taxable amount, excluding VAT'},
            'vat_rate': {'help_text': 'VAT rate in effect when the order was placed'},
            'grand_total': {'help_text': 'net_amount + vat_amount'}
        }


class OrderLineSerializer(serializers.Serializer):
    menu_item_id = serializers.IntegerField(help_text="ID of the menu item to order")
    qty = serializers.IntegerField(min_value=1, help_text="Quantity (minimum 1)")
    special_instructions = serializers.CharField(
        max_length=255, required=False, allow_blank=True, allow_null=True
    )


class BaseCreateOrderSerializer(serializers.Serializer):
    table_id = serializers.IntegerField(required=False, allow_null=True)
    customer_name = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)
    customer_phone = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)
    items = OrderLineSerializer(many=True, allow_empty=False)
    voucher_code = serializers.CharField(max_length=50, required=False, allow_blank=True, allow_null=True)
    notes = serializers.CharField(max_length=500, required=False, allow_blank=True, allow_null=True)


class CreatePosOrderSerializer(BaseCreateOrderSerializer):
    type = serializers.ChoiceField(choices=['dine', 'parcel', 'quick'])
    payment_method = serializers.ChoiceField(choices=['cash', 'card', 'mobile_banking'])
    payment_status = serializers.ChoiceField(choices=['paid', 'pending'])
    transaction_id = serializers.CharField(max_length=100, required=False, allow_blank=True, allow_null=True)

    def validate(self, attrs):
        if attrs['type'] == 'parcel' and not attrs.get('customer_name'):
            raise serializers.ValidationError({
                'customer_name': 'Customer name is required for takeaway orders'
            })
        return attrs


class CreateCustomerOrderSerializer(BaseCreateOrderSerializer):
    type = serializers.ChoiceField(choices=['dine', 'parcel'])
    payment_method = serializers.ChoiceField(choices=['cash', 'online', 'pay_later'])

    def validate(self, attrs):
        if attrs['type'] == 'parcel':
            errors = {}
            if not attrs.get('customer_name'):
                errors['customer_name'] = 'Customer name is required for parcel orders.'
            if not attrs.get('customer_phone'):
                errors['customer_phone'] = 'Customer phone is required for parcel orders.'
            if errors:
                raise serializers.ValidationError(errors)
        attrs['payment_status'] = 'pending'
        return attrs


def build_invoice(order):
    """Invoice document from the order's stored values; nothing is recalculated"""
    tenant = order.tenant
    return {
        'invoice': {
            'invoice_number': order.invoice_number,
            'date': order.created_at,
            'order_number': order.order_number,
        },
        'restaurant': {
            'name': tenant.name,
            'address': tenant.address,
            'phone': tenant.phone,
            'email': tenant.email,
            'vat_number': tenant.vat_number,
            'currency': tenant.currency,
        },
        'items': order.items.all(),
        'totals': {
            'subtotal': order.subtotal,
            'discount': order.discount,
            'net_amount': order.net_amount,
            'vat_rate': order.vat_rate,
            'vat_amount': order.vat_amount,
            'grand_total': order.grand_total,
        },
        'payment': {
            'method': order.payment_method,
            'status': order.payment_status,
        },
    }


class InvoiceHeaderSerializer(serializers.Serializer):
    invoice_number = serializers.CharField()
    date = serializers.DateTimeField()
    order_number = serializers.CharField()


class InvoiceRestaurantSerializer(serializers.Serializer):
    name = serializers.CharField()
    address = serializers.CharField()
    phone = serializers.CharField()
    email = serializers.CharField()
    vat_number = serializers.CharField()
    currency = serializers.CharField()


class InvoiceTotalsSerializer(serializers.Serializer):
    subtotal = serializers.DecimalField(max_digits=12, decimal_places=2)
    discount = serializers.DecimalField(max_digits=12, decimal_places=2)
    net_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    vat_rate = serializers.DecimalField(max_digits=5, decimal_places=2)
    vat_amount = serializers.DecimalField(max_digits=12, decimal_places=2)
    grand_total = serializers.DecimalField(max_digits=12, decimal_places=2)


class InvoicePaymentSerializer(serializers.Serializer):
    method = serializers.CharField()
    status = serializers.CharField()


class InvoiceSerializer(serializers.Serializer):
    invoice = InvoiceHeaderSerializer()
    restaurant = InvoiceRestaurantSerializer()
    items = OrderItemSerializer(many=True)
    totals = InvoiceTotalsSerializer()
    payment = InvoicePaymentSerializer()
