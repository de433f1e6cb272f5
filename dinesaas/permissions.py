from rest_framework.permissions import BasePermission

from tenants.models import Tenant


class APIKeyPermission(BasePermission):
    """
    Allows access only to requests authenticated with a tenant API key
    """
    
    def has_permission(self, request, view):
        # APIKeyAuthentication returns (None, tenant) on success
        return isinstance(getattr(request, 'auth', None), Tenant)
