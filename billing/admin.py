from django.contrib import admin
from .models import MenuItem, Voucher, RestaurantTable, Order, OrderItem, InvoiceCounter

# Register your models here.
@admin.register(MenuItem)
class MenuItemAdmin(admin.ModelAdmin):
    list_display = ['id', 'tenant', 'name', 'price', 'is_active']
    search_fields = ['name']
    list_filter = ['tenant', 'is_active']

@admin.register(Voucher)
class VoucherAdmin(admin.ModelAdmin):
    list_display = ['id', 'tenant', 'code', 'type', 'discount_value', 'expiry_date', 'used_count', 'max_uses', 'is_active']
    search_fields = ['code']
    list_filter = ['tenant', 'type', 'is_active']

@admin.register(RestaurantTable)
class RestaurantTableAdmin(admin.ModelAdmin):
    list_display = ['id', 'tenant', 'table_number', 'capacity', 'status']
    list_filter = ['tenant', 'status']
    search_fields = ['table_number']

class OrderItemInline(admin.TabularInline):
    model = OrderItem
    extra = 0
    readonly_fields = ['menu_item', 'qty', 'price_at_sale', 'line_total', 'special_instructions']
    can_delete = False

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = ['order_number', 'invoice_number', 'tenant', 'status', 'payment_method', 'grand_total', 'created_at']
    list_filter = ['status', 'payment_method', 'source', 'created_at']
    search_fields = ['order_number', 'invoice_number', 'customer_name', 'customer_phone']
    readonly_fields = list(Order.FROZEN_FIELDS) + ['order_number', 'created_at', 'updated_at']
    inlines = [OrderItemInline]

    # Orders only come from BillingService; invoice and order numbers are never given back
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

@admin.register(InvoiceCounter)
class InvoiceCounterAdmin(admin.ModelAdmin):
    list_display = ['tenant_id', 'last_invoice_number', 'period', 'updated_at']
    readonly_fields = ['tenant_id', 'last_invoice_number', 'period', 'updated_at']
