from django.contrib import admin
from .models import Tenant


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['id', 'name', 'slug', 'is_active', 'vat_registered', 'default_vat_rate', 'vat_inclusive']
    list_filter = ['is_active', 'vat_registered', 'vat_inclusive']
    search_fields = ['name', 'slug', 'vat_number']
    readonly_fields = ['api_key', 'created_at', 'updated_at']
