from rest_framework.authentication import BaseAuthentication
from rest_framework.exceptions import AuthenticationFailed

from tenants.models import Tenant


class APIKeyAuthentication(BaseAuthentication):
    """
    Tenant API key authentication using X-API-Key header
    """
    
    def authenticate(self, request):
        api_key = request.META.get('HTTP_X_API_KEY')
        
        if not api_key:
            return None
            
        tenant = Tenant.objects.filter(api_key=api_key).first()
        
        if tenant is None:
            raise AuthenticationFailed('Invalid API key')
        
        if not tenant.is_active:
            raise AuthenticationFailed('Restaurant account is not active')
            
        # No user model behind POS terminals; request.auth carries the tenant
        return (None, tenant)
